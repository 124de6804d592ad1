"""Suppression rule compilation and application."""

import logging
import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from schemax.errors import PatternError
from schemax.models import Finding, MatchMode, SuppressionResult, SuppressionRule

logger = logging.getLogger(__name__)

AD_HOC_DESCRIPTION = "Ad-hoc suppression"

_AD_HOC_PREFIXES = (
    ("test:", MatchMode.TEST_EXACT),
    ("text:", MatchMode.TEXT_REGEX),
)


@dataclass(frozen=True)
class CompiledRule:
    """A suppression rule with its pattern compiled into a whole-string matcher."""
    mode: MatchMode
    regex: re.Pattern
    scope: frozenset[str] = frozenset()
    description: str | None = None

    def in_scope(self, active_types: Iterable[str] | None) -> bool:
        """Empty scope always applies; otherwise the active types must intersect it."""
        if not self.scope:
            return True
        if not active_types:
            return False
        return not self.scope.isdisjoint(active_types)

    def matches(self, finding: Finding) -> bool:
        target = target_field(self.mode, finding)
        return target is not None and self.regex.fullmatch(target) is not None


def target_field(mode: MatchMode, finding: Finding) -> str | None:
    """Finding field a match mode is evaluated against."""
    if mode in (MatchMode.ID_EXACT, MatchMode.ID_REGEX):
        return finding.rule_id
    if mode in (MatchMode.TEST_EXACT, MatchMode.TEST_REGEX):
        return finding.test_expression
    return finding.message


def compile_pattern(mode: MatchMode, pattern: str) -> re.Pattern:
    """Compile a pattern literally for exact modes and as a regex otherwise.

    Raises:
        PatternError: If a regex mode pattern does not compile
    """
    if mode.is_literal:
        return re.compile(re.escape(pattern))
    try:
        return re.compile(pattern)
    except re.error as e:
        raise PatternError(pattern, str(e)) from e


def compile_rule(rule: SuppressionRule) -> CompiledRule:
    return CompiledRule(
        mode=rule.match,
        regex=compile_pattern(rule.match, rule.pattern),
        scope=frozenset(rule.scope),
        description=rule.description,
    )


def compile_rules(rules: Iterable[SuppressionRule]) -> tuple[tuple[CompiledRule, ...], list[PatternError]]:
    """Compile suppression rules, dropping blank and invalid patterns.

    Returns:
        Tuple of (compiled rules in order, errors for the dropped regexes)
    """
    compiled = []
    errors = []
    for rule in rules:
        if not rule.pattern or not rule.pattern.strip():
            continue
        try:
            compiled.append(compile_rule(rule))
        except PatternError as e:
            logger.warning(f"Dropping suppression rule: {e}")
            errors.append(e)
    return tuple(compiled), errors


def parse_ad_hoc(directives: Iterable[str] | None) -> list[CompiledRule]:
    """Parse caller supplied suppression directives.

    ``test:<expr>`` suppresses by exact test expression, ``text:<regex>`` by
    message regex, anything else by exact rule id. Ad-hoc rules are never
    scoped.
    """
    rules = []
    for entry in directives or ():
        if entry is None or not entry.strip():
            continue
        stripped = entry.strip()
        mode, pattern = MatchMode.ID_EXACT, stripped
        for prefix, prefixed_mode in _AD_HOC_PREFIXES:
            if stripped.startswith(prefix):
                mode, pattern = prefixed_mode, stripped[len(prefix):].strip()
                break
        if not pattern:
            continue
        try:
            rules.append(CompiledRule(mode, compile_pattern(mode, pattern), description=AD_HOC_DESCRIPTION))
        except PatternError as e:
            logger.warning(f"Dropping ad-hoc suppression: {e}")
    return rules


class SuppressionEngine:
    """Applies profile and ad-hoc suppression rules to findings.

    ``rules_lookup`` returns the compiled rules of a profile, or ``None`` when
    the profile is unknown; it reads the registry's current snapshot.
    """

    def __init__(self, rules_lookup: Callable[[str], Sequence[CompiledRule] | None]):
        self.rules_lookup = rules_lookup

    def gather_rules(
        self,
        profile_name: str | None,
        ad_hoc: Iterable[str] | None = None,
        active_types: Iterable[str] | None = None,
    ) -> list[CompiledRule]:
        active = frozenset(active_types or ())
        rules = []
        if profile_name and profile_name.strip():
            profile_rules = self.rules_lookup(profile_name)
            if profile_rules is None:
                logger.warning(f"Profile not found: {profile_name}")
            else:
                rules.extend(rule for rule in profile_rules if rule.in_scope(active))
        rules.extend(parse_ad_hoc(ad_hoc))
        return rules

    def apply_suppressions(
        self,
        findings: Sequence[Finding],
        profile_name: str | None,
        ad_hoc: Iterable[str] | None = None,
        active_types: Iterable[str] | None = None,
    ) -> SuppressionResult:
        """Partition findings into active and suppressed.

        A finding is suppressed when any gathered rule matches it; the two
        partitions always add up to the input.
        """
        if not findings:
            return SuppressionResult(profile_name=profile_name)

        rules = self.gather_rules(profile_name, ad_hoc, active_types)
        active = []
        suppressed = []
        for finding in findings:
            if any(rule.matches(finding) for rule in rules):
                suppressed.append(finding)
            else:
                active.append(finding)

        if suppressed:
            logger.debug(f"Suppressed {len(suppressed)} of {len(findings)} finding(s) (profile: {profile_name})")
        return SuppressionResult(active=tuple(active), suppressed=tuple(suppressed), profile_name=profile_name)

    def apply_text_suppressions(
        self,
        errors: Sequence[str],
        profile_name: str | None,
        ad_hoc: Iterable[str] | None = None,
        active_types: Iterable[str] | None = None,
    ) -> list[str]:
        """Filter plain error strings (schema errors) using only text-mode rules."""
        if not errors:
            return []
        rules = [
            rule for rule in self.gather_rules(profile_name, ad_hoc, active_types)
            if rule.mode == MatchMode.TEXT_REGEX
        ]
        if not rules:
            return list(errors)
        return [error for error in errors if not any(rule.regex.fullmatch(error) for rule in rules)]
