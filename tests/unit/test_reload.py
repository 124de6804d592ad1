"""Unit tests for the reload orchestrator."""

import threading
import time

from schemax.reload import Reloadable, ReloadOrchestrator, ReloadResult, ReloadStatus


class StaticReloadable(Reloadable):
    def __init__(self, name, result=None, error=None, gate=None, entered=None):
        self.name = name
        self.result = result
        self.error = error
        self.gate = gate
        self.entered = entered
        self.calls = 0

    def reload(self):
        self.calls += 1
        if self.entered is not None:
            self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return self.result or ReloadResult.success(self.name, 1, 0)


class TimedReloadable(Reloadable):
    def __init__(self, name, seconds):
        self.name = name
        self.seconds = seconds

    def reload(self):
        start = time.perf_counter()
        time.sleep(self.seconds)
        return ReloadResult.success(self.name, 1, int((time.perf_counter() - start) * 1000))


class TestReloadResult:
    """Test result construction."""

    def test_from_counts(self):
        assert ReloadResult.from_counts("x", 3, 1, []).status == ReloadStatus.OK
        assert ReloadResult.from_counts("x", 3, 1, ["e"]).status == ReloadStatus.PARTIAL
        assert ReloadResult.from_counts("x", 0, 1, ["e"]).status == ReloadStatus.FAILED

    def test_to_dict(self):
        data = ReloadResult.partial("Schemas", 2, 15, ["INVOICE: missing"]).to_dict()
        assert data == {
            "component": "Schemas",
            "status": "PARTIAL",
            "loadedCount": 2,
            "durationMs": 15,
            "errors": ["INVOICE: missing"],
        }

    def test_ok_flag(self):
        assert ReloadResult.success("x", 1, 0).ok
        assert not ReloadResult.partial("x", 1, 0, ["e"]).ok
        assert not ReloadResult.failed("x", 0, "boom").ok
        assert not ReloadResult("x", ReloadStatus.SKIPPED).ok


class TestReloadOrchestrator:
    """Test ordered, isolated and exclusive reloads."""

    def test_failures_are_isolated(self):
        """Test a raising subsystem does not stop the others."""
        first = StaticReloadable("Profiles")
        broken = StaticReloadable("Schemas", error=RuntimeError("disk gone"))
        last = StaticReloadable("Rules", result=ReloadResult.partial("Rules", 1, 0, ["X: bad"]))
        orchestrator = ReloadOrchestrator([first, broken, last])

        results = orchestrator.reload_all()

        assert [r.component for r in results] == ["Profiles", "Schemas", "Rules"]
        assert [r.status for r in results] == [ReloadStatus.OK, ReloadStatus.FAILED, ReloadStatus.PARTIAL]
        assert "disk gone" in results[1].errors[0]
        assert last.calls == 1
        assert orchestrator.last_success is False

    def test_all_ok(self):
        orchestrator = ReloadOrchestrator([StaticReloadable("A"), StaticReloadable("B")])
        results = orchestrator.reload_all()
        assert [r.status for r in results] == [ReloadStatus.OK, ReloadStatus.OK]
        assert all(r.ok for r in results)
        assert orchestrator.last_success is True
        assert orchestrator.last_results == tuple(results)

    def test_elapsed_covers_every_subsystem(self):
        orchestrator = ReloadOrchestrator([TimedReloadable("A", 0.02), TimedReloadable("B", 0.03)])
        results = orchestrator.reload_all()
        assert all(r.duration_ms >= 20 for r in results)
        assert orchestrator.last_elapsed_ms >= sum(r.duration_ms for r in results)

    def test_failed_subsystem_is_not_ok(self):
        orchestrator = ReloadOrchestrator([StaticReloadable("A", error=RuntimeError("gone"))])
        assert not orchestrator.reload_all()[0].ok
        assert orchestrator.last_success is False

    def test_concurrent_reload_is_skipped(self):
        entered = threading.Event()
        gate = threading.Event()
        slow = StaticReloadable("Slow", gate=gate, entered=entered)
        orchestrator = ReloadOrchestrator([slow])
        outcome = []

        thread = threading.Thread(target=lambda: outcome.extend(orchestrator.reload_all()))
        thread.start()
        assert entered.wait(timeout=5)
        try:
            assert orchestrator.in_progress
            skipped = orchestrator.reload_all()
        finally:
            gate.set()
            thread.join(timeout=5)

        assert len(skipped) == 1
        assert skipped[0].status == ReloadStatus.SKIPPED
        assert skipped[0].component == "ReloadOrchestrator"
        assert outcome[0].status == ReloadStatus.OK
        assert slow.calls == 1
        assert not orchestrator.in_progress
