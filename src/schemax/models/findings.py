"""Models for validation findings and suppression results."""

from pydantic import BaseModel, ConfigDict, Field


class Finding(BaseModel):
    """One validation failure produced by a compiled rule-set.

    ``rule_id`` and ``test_expression`` are present for rule-sets compiled at
    runtime; pre-compiled stylesheets may only report the message.
    """
    rule_id: str | None = Field(alias="ruleId", default=None)
    test_expression: str | None = Field(alias="test", default=None)
    message: str

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def __str__(self) -> str:
        return self.message


class SuppressionResult(BaseModel):
    """Partition of a batch of findings into active and suppressed ones."""
    active: tuple[Finding, ...] = ()
    suppressed: tuple[Finding, ...] = ()
    profile_name: str | None = Field(alias="profileName", default=None)

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @property
    def suppressed_count(self) -> int:
        return len(self.suppressed)

    @property
    def total(self) -> int:
        return len(self.active) + len(self.suppressed)


class ValidationReport(BaseModel):
    """Outcome of validating one document against a schema and a rule-set."""
    rule_set_type: str = Field(alias="ruleSetType")
    schema_type: str | None = Field(alias="schemaType", default=None)
    profile_name: str | None = Field(alias="profileName", default=None)
    schema_errors: tuple[str, ...] = Field(alias="schemaErrors", default=())
    suppressed_schema_errors: int = Field(alias="suppressedSchemaErrors", default=0)
    findings: SuppressionResult = Field(default_factory=SuppressionResult)

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @property
    def is_valid(self) -> bool:
        return not self.schema_errors and not self.findings.active
