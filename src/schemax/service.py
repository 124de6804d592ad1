"""Validation engine facade wiring every schemax component together."""

import logging
import threading
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from schemax.cache import ComputeCache
from schemax.compiler import RuleSourceCompiler
from schemax.config import SchemaxConfig
from schemax.engine import LxmlEngine, TransformEngine
from schemax.impact import RuleIdDiff, SuppressionImpactAnalyzer, SuppressionWarning
from schemax.models import (
    CompiledArtifact,
    CustomAssertion,
    Finding,
    Profile,
    RuleSetType,
    SchemaType,
    SuppressionResult,
    ValidationReport,
    XsdOverride,
)
from schemax.profiles import ProfileRegistry, ProfileStore
from schemax.reload import ReloadOrchestrator, ReloadResult
from schemax.rulesets import RuleSetService
from schemax.schemas import SchemaService
from schemax.storage import FileSystemStorage, Storage
from schemax.suppression import SuppressionEngine

logger = logging.getLogger(__name__)


class ValidationEngine:
    """Entry point for compiling, validating and suppressing.

    Reload order is profiles, then schemas, then rule-sets: base rule-sets
    need the global assertions the profile registry has just loaded.
    """

    def __init__(
        self,
        config: SchemaxConfig | None = None,
        storage: Storage | None = None,
        engine: TransformEngine | None = None,
    ):
        self.config = config or SchemaxConfig()
        self.storage = storage or FileSystemStorage(self.config.assets.root, self.config.assets.generated_dir)
        self.engine = engine or LxmlEngine()
        self.compiler = RuleSourceCompiler(self.engine, self.config.compiler)

        cache_config = self.config.cache
        # one reload at a time, orchestrated or write-triggered
        self.reload_lock = threading.Lock()
        self.registry = ProfileRegistry(ProfileStore(self.storage, self.config.assets.profiles_file), self.reload_lock)
        self.schemas = SchemaService(
            self.storage,
            self.engine,
            self.config.schemas,
            ComputeCache("schema-override", cache_config.override_max_size, cache_config.override_ttl_seconds),
        )
        self.rule_sets = RuleSetService(
            self.storage,
            self.compiler,
            self.config.rulesets,
            ComputeCache("rule", cache_config.rule_max_size, cache_config.rule_ttl_seconds),
            global_assertions=self.registry.global_assertions,
        )
        self.suppression = SuppressionEngine(self.registry.compiled_rules)
        self.orchestrator = ReloadOrchestrator([self.registry, self.schemas, self.rule_sets], self.reload_lock)
        self.impact = SuppressionImpactAnalyzer(self.config.impact)

        self.registry.add_change_listener(self._on_profiles_changed)

    # Reload

    def reload_all(self) -> list[ReloadResult]:
        return self.orchestrator.reload_all()

    # Compilation

    def compile_rule_set(self, rule_set_type: RuleSetType | str) -> CompiledArtifact:
        return self.rule_sets.compile_rule_set(rule_set_type)

    def get_or_compile_custom(
        self,
        rule_set_type: RuleSetType | str,
        assertions: Sequence[CustomAssertion],
        profile_name: str | None = None,
    ) -> CompiledArtifact:
        return self.rule_sets.get_or_compile_custom(rule_set_type, assertions, profile_name)

    def get_or_compile_schema_override(
        self,
        schema_type: SchemaType | str,
        overrides: Sequence[XsdOverride],
        profile_name: str | None = None,
    ) -> Any:
        return self.schemas.get_or_compile_schema_override(schema_type, overrides, profile_name)

    # Profiles

    def resolve_profile(self, name: str) -> Profile | None:
        return self.registry.resolve_profile(name)

    def profiles(self) -> Mapping[str, Profile]:
        return self.registry.profiles()

    def save_profile(self, profile: Profile) -> None:
        self.registry.save_profile(profile)

    def delete_profile(self, name: str) -> bool:
        return self.registry.delete_profile(name)

    def save_global_assertions(self, assertions: Mapping[str, Sequence[CustomAssertion]]) -> ReloadResult:
        """Persist global assertions and rebuild the base rule-sets that embed them."""
        self.registry.save_global_assertions(assertions)
        with self.reload_lock:
            return self.rule_sets.reload()

    def precompile_profile(self, name: str) -> None:
        """Compile a profile's schema overrides and custom rule-sets ahead of use."""
        profile = self.registry.get_profile(name)
        if profile is None:
            return
        for schema_type, overrides in profile.xsd_overrides.items():
            self.schemas.precompile(schema_type, overrides, name)
        for rule_set_type, assertions in profile.custom_assertions.items():
            self.rule_sets.precompile(rule_set_type, assertions, name)

    def _on_profiles_changed(self, profile_name: str | None) -> None:
        self.schemas.invalidate_override_cache()
        self.rule_sets.invalidate_custom_cache()
        if profile_name:
            self.precompile_profile(profile_name)

    # Suppression

    def apply_suppressions(
        self,
        findings: Sequence[Finding],
        profile_name: str | None,
        ad_hoc: Iterable[str] | None = None,
        active_types: Iterable[str] | None = None,
    ) -> SuppressionResult:
        return self.suppression.apply_suppressions(findings, profile_name, ad_hoc, active_types)

    # Validation

    def validate(
        self,
        document: bytes,
        rule_set_type: RuleSetType | str,
        schema_type: SchemaType | str | None = None,
        profile: str | None = None,
        suppressions: Iterable[str] | None = None,
        subtype: str | None = None,
        source_name: str | None = None,
    ) -> ValidationReport:
        """Validate a document against a schema (optional) and a rule-set.

        The profile contributes schema overrides, custom assertions and
        suppression rules; ``suppressions`` adds ad-hoc directives. Suppression
        scopes are evaluated against the rule-set and schema types in play.

        Raises:
            SchemaxError: If a requested schema or rule-set is unavailable
        """
        rule_set_type = RuleSetType(rule_set_type)
        schema_type = SchemaType(schema_type) if schema_type else None
        suppressions = list(suppressions or ())
        active_types = {rule_set_type.value}
        if schema_type:
            active_types.add(schema_type.value)

        schema_errors: list[str] = []
        suppressed_schema_errors = 0
        if schema_type:
            overrides = self.registry.overrides_for(profile, schema_type.value)
            raw_errors = self.schemas.validate(schema_type, document, overrides, profile)
            schema_errors = self.suppression.apply_text_suppressions(raw_errors, profile, suppressions, active_types)
            suppressed_schema_errors = len(raw_errors) - len(schema_errors)

        findings = self.rule_sets.run(
            rule_set_type,
            document,
            subtype=subtype or self.config.compiler.default_subtype,
            assertions=self.registry.assertions_for(profile, rule_set_type.value),
            profile_name=profile,
            source_name=source_name,
        )
        result = self.suppression.apply_suppressions(findings, profile, suppressions, active_types)

        logger.info(
            f"Validated against {rule_set_type.value}: {len(result.active)} active, "
            f"{result.suppressed_count} suppressed finding(s), {len(schema_errors)} schema error(s)"
        )
        return ValidationReport(
            rule_set_type=rule_set_type.value,
            schema_type=schema_type.value if schema_type else None,
            profile_name=profile,
            schema_errors=tuple(schema_errors),
            suppressed_schema_errors=suppressed_schema_errors,
            findings=result,
        )

    # Impact analysis

    def analyze_impact(self, rule_set_type: RuleSetType | str, new_source: bytes) -> list[SuppressionWarning]:
        """Suppression rules that a new version of a rule-set would break."""
        old_source = self.rule_sets.load_source(rule_set_type).content
        raw_profiles = self.registry.store.load().profiles
        return self.impact.analyze(raw_profiles, RuleIdDiff.between(old_source, new_source))
