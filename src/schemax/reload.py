"""Coordinated hot reload of every reloadable subsystem."""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from schemax.errors import SubsystemReloadError

logger = logging.getLogger(__name__)


class ReloadStatus(str, Enum):
    """Outcome of one subsystem reload."""
    OK = "OK"            # fully usable
    PARTIAL = "PARTIAL"  # usable, some items failed
    FAILED = "FAILED"    # nothing usable
    SKIPPED = "SKIPPED"  # another reload was already running


@dataclass(frozen=True)
class ReloadResult:
    """Result of reloading one subsystem."""
    component: str
    status: ReloadStatus
    loaded_count: int = 0
    duration_ms: int = 0
    errors: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def success(cls, component: str, count: int, duration_ms: int) -> "ReloadResult":
        return cls(component, ReloadStatus.OK, count, duration_ms)

    @classmethod
    def partial(cls, component: str, count: int, duration_ms: int, errors: Sequence[str]) -> "ReloadResult":
        return cls(component, ReloadStatus.PARTIAL, count, duration_ms, tuple(errors))

    @classmethod
    def failed(cls, component: str, duration_ms: int, error: str) -> "ReloadResult":
        return cls(component, ReloadStatus.FAILED, 0, duration_ms, (error,))

    @classmethod
    def from_counts(cls, component: str, count: int, duration_ms: int, errors: Sequence[str]) -> "ReloadResult":
        """OK without errors, PARTIAL when something loaded, FAILED otherwise."""
        if not errors:
            return cls.success(component, count, duration_ms)
        if count > 0:
            return cls.partial(component, count, duration_ms, errors)
        return cls(component, ReloadStatus.FAILED, 0, duration_ms, tuple(errors))

    @property
    def ok(self) -> bool:
        return self.status == ReloadStatus.OK

    def to_dict(self) -> dict[str, Any]:
        return {
            "component": self.component,
            "status": self.status.value,
            "loadedCount": self.loaded_count,
            "durationMs": self.duration_ms,
            "errors": list(self.errors),
        }


class Reloadable(ABC):
    """A subsystem whose state is rebuilt from storage on demand.

    Implementations build the new state completely before publishing it with
    a single attribute assignment, so readers see either the old or the new
    state and never a mix.
    """

    name: str = "Reloadable"

    @abstractmethod
    def reload(self) -> ReloadResult:
        """Rebuild and publish the subsystem state."""


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class ReloadOrchestrator:
    """Reloads subsystems in order, one reload process-wide at a time.

    A reload requested while another is running is rejected immediately with
    a single SKIPPED result; requests are never queued. ``lock`` is shared
    with subsystems that reload themselves after a write, so a write-triggered
    reload and an orchestrated one never overlap.
    """

    def __init__(self, reloadables: Sequence[Reloadable], lock: threading.Lock | None = None):
        self.reloadables = list(reloadables)
        self._lock = lock or threading.Lock()
        self.last_success: bool | None = None
        self.last_elapsed_ms: int | None = None
        self.last_results: tuple[ReloadResult, ...] = ()

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    def reload_all(self) -> list[ReloadResult]:
        """Reload every subsystem, isolating failures per subsystem.

        Returns:
            One result per subsystem in reload order, or a single SKIPPED
            result when a reload is already in progress
        """
        if not self._lock.acquire(blocking=False):
            logger.warning("Reload already in progress, skipping")
            return [ReloadResult("ReloadOrchestrator", ReloadStatus.SKIPPED, errors=("Reload already in progress",))]

        try:
            start = time.perf_counter()
            logger.info(f"Reloading {len(self.reloadables)} subsystem(s): {[r.name for r in self.reloadables]}")

            results = []
            for reloadable in self.reloadables:
                results.append(self._reload_one(reloadable))

            elapsed_ms = _elapsed_ms(start)
            success = all(r.ok for r in results)
            self.last_success = success
            self.last_elapsed_ms = elapsed_ms
            self.last_results = tuple(results)
            logger.info(f"Reload finished in {elapsed_ms} ms (success={success})")
            return results
        finally:
            self._lock.release()

    def _reload_one(self, reloadable: Reloadable) -> ReloadResult:
        logger.info(f"Reloading {reloadable.name}")
        start = time.perf_counter()
        try:
            result = reloadable.reload()
        except Exception as e:
            error = SubsystemReloadError(reloadable.name, e)
            logger.error(f"{reloadable.name} reload raised: {e}", exc_info=True)
            return ReloadResult.failed(reloadable.name, _elapsed_ms(start), str(error))

        if result.status == ReloadStatus.OK:
            logger.info(f"{result.component}: {result.loaded_count} item(s) loaded ({result.duration_ms} ms)")
        elif result.status == ReloadStatus.PARTIAL:
            logger.warning(
                f"{result.component}: {result.loaded_count} item(s) loaded, "
                f"{len(result.errors)} error(s) ({result.duration_ms} ms)"
            )
            for error in result.errors:
                logger.warning(f"  {error}")
        else:
            logger.error(f"{result.component}: reload failed ({result.duration_ms} ms)")
            for error in result.errors:
                logger.error(f"  {error}")
        return result
