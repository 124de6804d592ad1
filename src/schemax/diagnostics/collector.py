"""Diagnostic collection for compilation and validation runs.

Turns transformation engine error logs into structured, line-numbered
diagnostics that travel with the typed errors raised by schemax.
"""

import logging
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class DiagnosticSeverity(str, Enum):
    """Diagnostic severity levels."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Diagnostic:
    """A single message reported while processing a source."""
    severity: DiagnosticSeverity
    message: str
    line: int | None = None
    column: int | None = None
    stage: str | None = None

    def __str__(self) -> str:
        location = f"line {self.line}: " if self.line else ""
        prefix = f"[{self.stage}] " if self.stage else ""
        return f"{prefix}{location}{self.message}"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["severity"] = self.severity.value
        return data


class DiagnosticCollector:
    """Collects diagnostics for one compilation or validation run."""

    def __init__(self, stage: str | None = None):
        self.stage = stage
        self.diagnostics: list[Diagnostic] = []

    def add(
        self,
        message: str,
        severity: DiagnosticSeverity = DiagnosticSeverity.ERROR,
        line: int | None = None,
        column: int | None = None,
    ) -> Diagnostic:
        diagnostic = Diagnostic(severity, message.strip(), line or None, column or None, self.stage)
        self.diagnostics.append(diagnostic)
        return diagnostic

    def collect_error_log(self, error_log: Iterable[Any]) -> None:
        """Collect entries of an lxml style error log.

        Entries expose ``message``, ``line``, ``column`` and ``level_name``;
        anything missing is tolerated.
        """
        for entry in error_log or ():
            level = str(getattr(entry, "level_name", "ERROR")).upper()
            if level == "WARNING":
                severity = DiagnosticSeverity.WARNING
            elif level in ("ERROR", "FATAL"):
                severity = DiagnosticSeverity.ERROR
            else:
                severity = DiagnosticSeverity.INFO
            self.add(
                str(getattr(entry, "message", entry)),
                severity,
                getattr(entry, "line", None),
                getattr(entry, "column", None),
            )

    def extend(self, diagnostics: Iterable[Diagnostic]) -> None:
        self.diagnostics.extend(diagnostics)

    def has_errors(self) -> bool:
        return any(d.severity == DiagnosticSeverity.ERROR for d in self.diagnostics)

    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == DiagnosticSeverity.ERROR]

    def get_counts(self) -> dict[str, int]:
        counts = {severity.value: 0 for severity in DiagnosticSeverity}
        for diagnostic in self.diagnostics:
            counts[diagnostic.severity.value] += 1
        return counts

    def summary(self) -> str:
        """Single line summary of all error diagnostics, warnings when there are none."""
        selected = self.errors() or self.diagnostics
        return "; ".join(str(d) for d in selected)
