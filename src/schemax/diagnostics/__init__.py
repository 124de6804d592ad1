"""Structured diagnostics for schemax compilation and validation runs."""

from .collector import Diagnostic, DiagnosticCollector, DiagnosticSeverity
from .humanizer import humanize_schema_error, strip_namespaces

__all__ = [
    "Diagnostic",
    "DiagnosticCollector",
    "DiagnosticSeverity",
    "humanize_schema_error",
    "strip_namespaces",
]
