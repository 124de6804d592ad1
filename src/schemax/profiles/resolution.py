"""Profile inheritance resolution."""

from collections.abc import Mapping

from schemax.errors import ResolutionError
from schemax.models import CustomAssertion, Profile, XsdOverride


def merge_overrides(
    parent: Mapping[str, tuple[XsdOverride, ...]],
    child: Mapping[str, tuple[XsdOverride, ...]],
) -> dict[str, tuple[XsdOverride, ...]]:
    """Merge XSD overrides per (schema type, element); child entries replace parent ones.

    Parent-only entries pass through in their original position.
    """
    merged: dict[str, dict[str, XsdOverride]] = {}
    for source in (parent, child):
        for schema_type, overrides in source.items():
            by_element = merged.setdefault(schema_type, {})
            for override in overrides:
                by_element[override.element] = override
    return {schema_type: tuple(by_element.values()) for schema_type, by_element in merged.items()}


def merge_assertions(
    parent: Mapping[str, tuple[CustomAssertion, ...]],
    child: Mapping[str, tuple[CustomAssertion, ...]],
) -> dict[str, tuple[CustomAssertion, ...]]:
    """Concatenate per-type assertion lists, parent first."""
    merged: dict[str, list[CustomAssertion]] = {}
    for source in (parent, child):
        for rule_set_type, assertions in source.items():
            merged.setdefault(rule_set_type, []).extend(assertions)
    return {rule_set_type: tuple(items) for rule_set_type, items in merged.items()}


class ProfileResolver:
    """Resolves ``extends`` chains over one set of raw profiles.

    Results are memoized for the lifetime of the resolver, which is one
    reload. The resolution path is passed down as an immutable frozenset, so
    no recursion state is shared between calls.
    """

    def __init__(self, raw_profiles: Mapping[str, Profile]):
        self.raw_profiles = dict(raw_profiles)
        self._resolved: dict[str, Profile] = {}

    def resolve(self, name: str, path: frozenset[str] = frozenset()) -> Profile:
        """Return the effective profile with everything inherited from its ancestors.

        Raises:
            ResolutionError: If the profile or one of its ancestors is unknown,
                or if the ``extends`` chain loops back on itself
        """
        if name in path:
            raise ResolutionError(name, f"Cyclic profile inheritance detected at {name!r}")
        if name in self._resolved:
            return self._resolved[name]

        raw = self.raw_profiles.get(name)
        if raw is None:
            raise ResolutionError(name, f"Unknown profile: {name!r}")

        if raw.parent:
            if raw.parent not in self.raw_profiles:
                raise ResolutionError(name, f"Profile {name!r} extends unknown profile {raw.parent!r}")
            parent = self.resolve(raw.parent, path | {name})
            resolved = raw.model_copy(update={
                "suppression_rules": parent.suppression_rules + raw.suppression_rules,
                "xsd_overrides": merge_overrides(parent.xsd_overrides, raw.xsd_overrides),
                "custom_assertions": merge_assertions(parent.custom_assertions, raw.custom_assertions),
            })
        else:
            resolved = raw

        self._resolved[name] = resolved
        return resolved

    def resolve_all(self) -> tuple[dict[str, Profile], dict[str, ResolutionError]]:
        """Resolve every profile; broken ones are returned separately, not raised."""
        resolved = {}
        failures = {}
        for name in self.raw_profiles:
            try:
                resolved[name] = self.resolve(name)
            except ResolutionError as e:
                failures[name] = e
        return resolved, failures
