"""Impact of rule-set updates on existing suppression rules.

When a new version of a rule-set drops a rule identifier, every id-mode
suppression rule that matched it silently stops working. This module
compares the identifiers of two rule-set versions and reports those rules,
with a "possibly renamed to" hint when a similar new identifier exists.
"""

import logging
import re
import xml.etree.ElementTree as ET
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from defusedxml import DefusedXmlException
from defusedxml.ElementTree import fromstring as defused_fromstring

from schemax.config import ImpactConfig
from schemax.models import MatchMode, Profile

logger = logging.getLogger(__name__)

_ID_CARRIERS = frozenset({"pattern", "rule", "assert", "report"})


def _local_name(tag: Any) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def rule_ids(source: bytes | None) -> set[str]:
    """Identifiers of every pattern, rule, assert and report of a rule-set source.

    Unreadable sources yield no identifiers.
    """
    if not source:
        return set()
    try:
        root = defused_fromstring(source)
    except (ET.ParseError, DefusedXmlException) as e:
        logger.warning(f"Could not extract rule ids: {e}")
        return set()
    ids = set()
    for element in root.iter():
        if _local_name(element.tag) in _ID_CARRIERS:
            value = (element.get("id") or "").strip()
            if value:
                ids.add(value)
    return ids


@dataclass(frozen=True)
class RuleIdDiff:
    """Identifier changes between two versions of a rule-set."""
    removed: frozenset[str]
    added: frozenset[str]
    retained: frozenset[str]

    @classmethod
    def between(cls, old_source: bytes | None, new_source: bytes | None) -> "RuleIdDiff":
        old_ids = rule_ids(old_source)
        new_ids = rule_ids(new_source)
        return cls(
            removed=frozenset(old_ids - new_ids),
            added=frozenset(new_ids - old_ids),
            retained=frozenset(old_ids & new_ids),
        )

    @property
    def has_changes(self) -> bool:
        return bool(self.removed or self.added)


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, 1):
        current = [i]
        for j, char_b in enumerate(b, 1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def find_similar_id(removed_id: str, candidates: Iterable[str], config: ImpactConfig | None = None) -> str | None:
    """Closest candidate within ``max(min_distance, len(removed_id) // length_divisor)``.

    Comparison is case-insensitive; ties go to the alphabetically first candidate.
    """
    config = config or ImpactConfig()
    threshold = max(config.min_distance, len(removed_id) // config.length_divisor)
    best = None
    best_distance = None
    for candidate in sorted(candidates):
        distance = levenshtein(removed_id.lower(), candidate.lower())
        if distance <= threshold and (best_distance is None or distance < best_distance):
            best, best_distance = candidate, distance
    return best


class WarningSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class SuppressionWarning:
    """A suppression rule affected by a removed rule identifier."""
    rule_id: str
    profile_name: str
    pattern: str
    severity: WarningSeverity
    message: str
    possible_new_id: str | None = None

    @classmethod
    def removed(cls, rule_id: str, profile_name: str, pattern: str) -> "SuppressionWarning":
        return cls(
            rule_id, profile_name, pattern, WarningSeverity.CRITICAL,
            f"Suppression {pattern!r} of profile {profile_name!r} targets rule id {rule_id!r}, "
            f"which was removed in the new version; the suppression no longer has any effect.",
        )

    @classmethod
    def possibly_renamed(cls, rule_id: str, profile_name: str, pattern: str, new_id: str) -> "SuppressionWarning":
        return cls(
            rule_id, profile_name, pattern, WarningSeverity.WARNING,
            f"Suppression {pattern!r} of profile {profile_name!r} targets rule id {rule_id!r}, "
            f"which may have been renamed (possible new id: {new_id!r}); check it manually.",
            possible_new_id=new_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "ruleId": self.rule_id,
            "profileName": self.profile_name,
            "pattern": self.pattern,
            "severity": self.severity.value,
            "message": self.message,
            "possibleNewId": self.possible_new_id,
        }


def _pattern_matches(mode: MatchMode, pattern: str, rule_id: str) -> bool:
    if mode.is_literal:
        return pattern == rule_id
    try:
        return re.fullmatch(pattern, rule_id) is not None
    except re.error:
        return pattern == rule_id


class SuppressionImpactAnalyzer:
    """Finds id-mode suppression rules broken by a rule-set update."""

    def __init__(self, config: ImpactConfig | None = None):
        self.config = config or ImpactConfig()

    def analyze(self, profiles: Mapping[str, Profile], diff: RuleIdDiff) -> list[SuppressionWarning]:
        """One warning per (removed id, matching id-mode suppression rule).

        Pass profiles as loaded (unresolved) to report an inherited rule
        once, under the profile that declares it.
        """
        if not diff.removed:
            return []

        suppressions = [
            (profile.name, rule.match, rule.pattern)
            for profile in profiles.values()
            for rule in profile.suppression_rules
            if rule.match.is_id_mode
        ]
        warnings = []
        for removed_id in sorted(diff.removed):
            for profile_name, mode, pattern in suppressions:
                if not _pattern_matches(mode, pattern, removed_id):
                    continue
                new_id = find_similar_id(removed_id, diff.added, self.config)
                if new_id:
                    warnings.append(SuppressionWarning.possibly_renamed(removed_id, profile_name, pattern, new_id))
                else:
                    warnings.append(SuppressionWarning.removed(removed_id, profile_name, pattern))
        if warnings:
            logger.warning(f"{len(warnings)} suppression rule(s) affected by removed rule ids")
        return warnings

    def analyze_sources(
        self,
        profiles: Mapping[str, Profile],
        old_source: bytes | None,
        new_source: bytes | None,
    ) -> list[SuppressionWarning]:
        return self.analyze(profiles, RuleIdDiff.between(old_source, new_source))
