"""Enumerations shared across schemax."""

from enum import Enum


class RuleSetType(str, Enum):
    """Business rule families, one per document category."""
    UBLTR_MAIN = "UBLTR_MAIN"
    EARCHIVE_REPORT = "EARCHIVE_REPORT"
    EDEFTER_YEVMIYE = "EDEFTER_YEVMIYE"
    EDEFTER_KEBIR = "EDEFTER_KEBIR"
    EDEFTER_BERAT = "EDEFTER_BERAT"
    EDEFTER_RAPOR = "EDEFTER_RAPOR"
    ENVANTER_BERAT = "ENVANTER_BERAT"
    ENVANTER_DEFTER = "ENVANTER_DEFTER"


class SchemaType(str, Enum):
    """XML Schema document types."""
    INVOICE = "INVOICE"
    DESPATCH_ADVICE = "DESPATCH_ADVICE"
    RECEIPT_ADVICE = "RECEIPT_ADVICE"
    CREDIT_NOTE = "CREDIT_NOTE"
    APPLICATION_RESPONSE = "APPLICATION_RESPONSE"
    EARCHIVE = "EARCHIVE"
    EDEFTER = "EDEFTER"


class RuleSetKind(str, Enum):
    """How a rule-set is turned into an executable."""
    SOURCE = "source"  # declarative rules, compiled through the pipeline
    XSL = "xsl"        # pre-compiled stylesheet, loaded as is


class MatchMode(str, Enum):
    """Suppression rule match modes.

    Values are the names used in the profiles document.
    """
    ID_EXACT = "ruleIdEquals"
    ID_REGEX = "ruleId"
    TEST_EXACT = "testEquals"
    TEST_REGEX = "test"
    TEXT_REGEX = "text"

    @property
    def is_literal(self) -> bool:
        return self in (MatchMode.ID_EXACT, MatchMode.TEST_EXACT)

    @property
    def is_id_mode(self) -> bool:
        return self in (MatchMode.ID_EXACT, MatchMode.ID_REGEX)


class LogLevel(str, Enum):
    """Logging levels."""
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"
