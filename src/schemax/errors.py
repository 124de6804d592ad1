"""Exception types raised across the schemax public surface."""

from collections.abc import Sequence
from typing import Any

from schemax.diagnostics import Diagnostic


class SchemaxError(Exception):
    """Base class for all schemax errors."""


class CompilationError(SchemaxError):
    """A rule-set or schema source could not be compiled."""

    def __init__(self, message: str, diagnostics: Sequence[Diagnostic] = (), stage: str | None = None):
        self.diagnostics = tuple(diagnostics)
        self.stage = stage
        if self.diagnostics:
            detail = "; ".join(str(d) for d in self.diagnostics)
            message = f"{message} ({len(self.diagnostics)} diagnostic(s)): {detail}"
        super().__init__(message)


class InjectionError(SchemaxError):
    """Custom assertions could not be embedded into a rule-set source."""


class ResolutionError(SchemaxError):
    """Profile inheritance could not be resolved (unknown parent or cycle)."""

    def __init__(self, profile_name: str, message: str):
        self.profile_name = profile_name
        super().__init__(message)


class PatternError(SchemaxError):
    """A suppression pattern is not a valid regular expression."""

    def __init__(self, pattern: str, message: str):
        self.pattern = pattern
        super().__init__(f"Invalid suppression pattern {pattern!r}: {message}")


class CacheComputeError(SchemaxError):
    """Filling a cache entry failed; the entry stays empty."""

    def __init__(self, key: Any, cause: BaseException):
        self.key = key
        self.cause = cause
        super().__init__(f"Compilation for {key} failed: {cause}")


class SubsystemReloadError(SchemaxError):
    """A reloadable subsystem raised while reloading."""

    def __init__(self, subsystem: str, cause: BaseException):
        self.subsystem = subsystem
        self.cause = cause
        super().__init__(f"{subsystem} reload failed: {cause}")


class EngineError(SchemaxError):
    """The transformation engine rejected a source or failed while running."""

    def __init__(self, message: str, diagnostics: Sequence[Diagnostic] = ()):
        self.diagnostics = tuple(diagnostics)
        super().__init__(message)
