"""Data models for schemax."""

from .findings import Finding, SuppressionResult, ValidationReport
from .profile import Profile, SuppressionRule, XsdOverride
from .ruleset import CompiledArtifact, CustomAssertion, RuleSetSource, fingerprint_assertions
from .types import LogLevel, MatchMode, RuleSetKind, RuleSetType, SchemaType

__all__ = [
    "CompiledArtifact",
    "CustomAssertion",
    "Finding",
    "LogLevel",
    "MatchMode",
    "Profile",
    "RuleSetKind",
    "RuleSetSource",
    "RuleSetType",
    "SchemaType",
    "SuppressionResult",
    "SuppressionRule",
    "ValidationReport",
    "XsdOverride",
    "fingerprint_assertions",
]
