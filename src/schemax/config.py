"""Configuration management for schemax using Pydantic models."""

import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from schemax.models.types import LogLevel, RuleSetKind, RuleSetType, SchemaType


class AssetsConfig(BaseModel):
    """Asset storage configuration section."""
    root: str = "assets"
    generated_dir: str = Field(alias="generatedDir", default="auto-generated")
    profiles_file: str = Field(alias="profilesFile", default="validation-profiles.yml")

    model_config = ConfigDict(populate_by_name=True)


class RuleSetConfig(BaseModel):
    """Location and kind of a single rule-set."""
    path: str
    kind: RuleSetKind = RuleSetKind.SOURCE


def _default_rulesets() -> dict[RuleSetType, RuleSetConfig]:
    eledger = "validator/eledger/schematron"
    return {
        RuleSetType.UBLTR_MAIN: RuleSetConfig(
            path="validator/ubl-tr-package/schematron/UBL-TR_Main_Schematron.xml"
        ),
        RuleSetType.EARCHIVE_REPORT: RuleSetConfig(
            path="validator/earchive/schematron/earsiv_schematron.xsl",
            kind=RuleSetKind.XSL,
        ),
        RuleSetType.EDEFTER_YEVMIYE: RuleSetConfig(path=f"{eledger}/edefter_yevmiye.sch"),
        RuleSetType.EDEFTER_KEBIR: RuleSetConfig(path=f"{eledger}/edefter_kebir.sch"),
        RuleSetType.EDEFTER_BERAT: RuleSetConfig(path=f"{eledger}/edefter_berat.sch"),
        RuleSetType.EDEFTER_RAPOR: RuleSetConfig(path=f"{eledger}/edefter_rapor.sch"),
        RuleSetType.ENVANTER_BERAT: RuleSetConfig(path=f"{eledger}/envanter_berat.sch"),
        RuleSetType.ENVANTER_DEFTER: RuleSetConfig(path=f"{eledger}/envanter_defter.sch"),
    }


def _default_schemas() -> dict[SchemaType, str]:
    maindoc = "validator/ubl-tr-package/schema/maindoc"
    return {
        SchemaType.INVOICE: f"{maindoc}/UBL-Invoice-2.1.xsd",
        SchemaType.DESPATCH_ADVICE: f"{maindoc}/UBL-DespatchAdvice-2.1.xsd",
        SchemaType.RECEIPT_ADVICE: f"{maindoc}/UBL-ReceiptAdvice-2.1.xsd",
        SchemaType.CREDIT_NOTE: f"{maindoc}/UBL-CreditNote-2.1.xsd",
        SchemaType.APPLICATION_RESPONSE: f"{maindoc}/UBL-ApplicationResponse-2.1.xsd",
        SchemaType.EARCHIVE: "validator/earchive/schema/EArsiv.xsd",
        SchemaType.EDEFTER: "validator/eledger/schema/edefter.xsd",
    }


class CacheConfig(BaseModel):
    """Compiled artifact cache configuration section."""
    rule_max_size: int = Field(alias="ruleMaxSize", default=50)
    rule_ttl_seconds: int = Field(alias="ruleTtlSeconds", default=3600)
    override_max_size: int = Field(alias="overrideMaxSize", default=50)
    override_ttl_seconds: int = Field(alias="overrideTtlSeconds", default=3600)

    @field_validator("rule_max_size", "rule_ttl_seconds", "override_max_size", "override_ttl_seconds")
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("cache limits must be >= 1")
        return v

    model_config = ConfigDict(populate_by_name=True)


class CompilerConfig(BaseModel):
    """Rule source compiler configuration section."""
    phase: str = "#ALL"
    allow_foreign: bool = Field(alias="allowForeign", default=True)
    parameter_allow_list: list[str] = Field(alias="parameterAllowList", default_factory=lambda: ["type"])
    default_subtype: str = Field(alias="defaultSubtype", default="efatura")

    @field_validator("parameter_allow_list")
    @classmethod
    def validate_parameter_names(cls, v):
        """Parameter names must be plain XML names."""
        for name in v:
            if not name or not name.replace("-", "").replace("_", "").replace(".", "").isalnum():
                raise ValueError(f"invalid parameter name in allow-list: {name!r}")
        return v

    model_config = ConfigDict(populate_by_name=True)


class ImpactConfig(BaseModel):
    """Similar-id heuristic used by suppression impact analysis."""
    min_distance: int = Field(alias="minDistance", default=3)
    length_divisor: int = Field(alias="lengthDivisor", default=3)

    @field_validator("min_distance")
    @classmethod
    def validate_min_distance(cls, v):
        if v < 0:
            raise ValueError("min_distance must be >= 0")
        return v

    @field_validator("length_divisor")
    @classmethod
    def validate_length_divisor(cls, v):
        if v < 1:
            raise ValueError("length_divisor must be >= 1")
        return v

    model_config = ConfigDict(populate_by_name=True)


class LoggingConfig(BaseModel):
    """Logging configuration section."""
    level: LogLevel = LogLevel.INFO

    model_config = ConfigDict(use_enum_values=True)


class SchemaxConfig(BaseModel):
    """Complete schemax configuration model."""
    assets: AssetsConfig = Field(default_factory=AssetsConfig)
    rulesets: dict[RuleSetType, RuleSetConfig] = Field(default_factory=_default_rulesets)
    schemas: dict[SchemaType, str] = Field(default_factory=_default_schemas)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    compiler: CompilerConfig = Field(default_factory=CompilerConfig)
    impact: ImpactConfig = Field(default_factory=ImpactConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(extra="forbid")


def load_config(config_path: str | Path | None = None) -> SchemaxConfig:
    """Load configuration from file with fallback to defaults.

    Args:
        config_path: Optional path to configuration file. If None, searches
                    current directory and parents for .schemax.json

    Returns:
        SchemaxConfig: Loaded and validated configuration

    Raises:
        ValueError: If configuration is invalid
    """
    if config_path is None:
        config_path = find_config_file()
    else:
        config_path = Path(config_path)

    if config_path and config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                config_data = json.load(f)
            return SchemaxConfig(**config_data)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in config file {config_path}: {e}")
        except Exception as e:
            raise ValueError(f"Failed to load config from {config_path}: {e}")
    else:
        return create_default_config()


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Find .schemax.json configuration file by searching up directory tree.

    Args:
        start_dir: Directory to start search from (default: current directory)

    Returns:
        Path to config file if found, None otherwise
    """
    if start_dir is None:
        start_dir = Path.cwd()

    current = Path(start_dir).resolve()

    while True:
        config_file = current / ".schemax.json"
        if config_file.exists():
            return config_file

        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def create_default_config() -> SchemaxConfig:
    """Create default configuration with the GIB package layout."""
    return SchemaxConfig()
