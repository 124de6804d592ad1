"""Validation profile models."""

from pydantic import BaseModel, ConfigDict, Field

from schemax.models.ruleset import CustomAssertion
from schemax.models.types import MatchMode


class SuppressionRule(BaseModel):
    """Single suppression rule of a profile.

    ``scope`` limits the rule to a set of rule-set or schema types; an empty
    scope applies everywhere.
    """
    match: MatchMode = MatchMode.ID_REGEX
    pattern: str
    scope: frozenset[str] = frozenset()
    description: str | None = None

    model_config = ConfigDict(frozen=True)

    def is_global(self) -> bool:
        return not self.scope


class XsdOverride(BaseModel):
    """Occurrence constraint override for one ``xsd:element ref``.

    ``None`` leaves the corresponding attribute untouched.
    """
    element: str
    min_occurs: str | None = Field(alias="minOccurs", default=None)
    max_occurs: str | None = Field(alias="maxOccurs", default=None)

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def serialize(self) -> str:
        parts = [self.element]
        if self.min_occurs is not None:
            parts.append(f"min={self.min_occurs}")
        if self.max_occurs is not None:
            parts.append(f"max={self.max_occurs}")
        return ":".join(parts)

    def to_record(self) -> dict[str, str]:
        record = {"element": self.element}
        if self.min_occurs is not None:
            record["minOccurs"] = self.min_occurs
        if self.max_occurs is not None:
            record["maxOccurs"] = self.max_occurs
        return record


class Profile(BaseModel):
    """Named, inheritable bundle of suppression rules, XSD overrides and custom assertions.

    As loaded from the profiles document the collections hold the profile's
    own entries; after resolution they hold the effective, inherited ones.
    """
    name: str
    description: str = ""
    parent: str | None = None
    suppression_rules: tuple[SuppressionRule, ...] = ()
    xsd_overrides: dict[str, tuple[XsdOverride, ...]] = Field(default_factory=dict)
    custom_assertions: dict[str, tuple[CustomAssertion, ...]] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    def overrides_for(self, schema_type: str) -> tuple[XsdOverride, ...]:
        return self.xsd_overrides.get(schema_type, ())

    def assertions_for(self, rule_set_type: str) -> tuple[CustomAssertion, ...]:
        return self.custom_assertions.get(rule_set_type, ())
