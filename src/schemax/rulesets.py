"""Compiled rule-set management: base rule-sets, custom compilation and runs."""

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime

from schemax.cache import ComputeCache, RuleCacheKey
from schemax.compiler import RuleSourceCompiler
from schemax.config import RuleSetConfig
from schemax.errors import CacheComputeError, EngineError, SchemaxError
from schemax.injector import inject_assertions, sanitize_identifier
from schemax.models import (
    CompiledArtifact,
    CustomAssertion,
    Finding,
    RuleSetKind,
    RuleSetSource,
    RuleSetType,
    fingerprint_assertions,
)
from schemax.reload import Reloadable, ReloadResult
from schemax.storage import Storage, with_leading_comment
from schemax.svrl import extract_findings

logger = logging.getLogger(__name__)

GENERATED_SUBDIR = "schematron"
CUSTOM_SUBDIR = "schematron-rules"
GLOBAL_PROFILE = "global"
ANONYMOUS_PROFILE = "anonymous"

GlobalAssertions = Callable[[str], Sequence[CustomAssertion]]


def _no_global_assertions(rule_set_type: str) -> Sequence[CustomAssertion]:
    return ()


class RuleSetService(Reloadable):
    """Serves compiled rule-sets.

    Base rule-sets (with the global assertions injected) are compiled at
    reload and published as one immutable mapping. Rule-sets extended with
    profile assertions are compiled on demand through a get-or-compute cache
    keyed by (type, profile, assertion fingerprint).
    """

    name = "Schematron Rules"

    def __init__(
        self,
        storage: Storage,
        compiler: RuleSourceCompiler,
        rulesets: Mapping[RuleSetType, RuleSetConfig],
        cache: ComputeCache | None = None,
        global_assertions: GlobalAssertions = _no_global_assertions,
    ):
        self.storage = storage
        self.compiler = compiler
        self.rulesets = dict(rulesets)
        self.cache = cache or ComputeCache("rule", max_size=50, ttl_seconds=3600)
        self.global_assertions = global_assertions
        self._compiled: Mapping[RuleSetType, CompiledArtifact] = {}

    def _config(self, rule_set_type: RuleSetType | str) -> tuple[RuleSetType, RuleSetConfig]:
        rule_set_type = RuleSetType(rule_set_type)
        config = self.rulesets.get(rule_set_type)
        if config is None:
            raise SchemaxError(f"No rule-set configured for {rule_set_type.value}")
        return rule_set_type, config

    def load_source(self, rule_set_type: RuleSetType | str) -> RuleSetSource:
        """Read a rule-set's raw source, with its on-disk location as base.

        Raises:
            SchemaxError: If the rule-set is not configured or its file is missing
        """
        rule_set_type, config = self._config(rule_set_type)
        if not self.storage.exists(config.path):
            raise SchemaxError(f"{rule_set_type.value} source not found: {config.path}")
        location = self.storage.resolve_on_disk(config.path)
        return RuleSetSource(content=self.storage.read_bytes(config.path), base_location=str(location))

    # Base rule-sets

    def compile_rule_set(self, rule_set_type: RuleSetType | str) -> CompiledArtifact:
        """Compile one base rule-set with the current global assertions injected.

        Pre-compiled (``xsl``) rule-sets are loaded as they are.

        Raises:
            CompilationError: If the source does not compile
            SchemaxError: If the rule-set is not configured or missing
        """
        rule_set_type, config = self._config(rule_set_type)
        source = self.load_source(rule_set_type)
        name = rule_set_type.value

        if config.kind == RuleSetKind.XSL:
            artifact = self.compiler.load_compiled(source.content, name, source.base_location)
            logger.debug(f"{name} pre-compiled stylesheet loaded")
            return artifact

        assertions = list(self.global_assertions(name))
        if not assertions:
            return self.compiler.compile(source, name)

        injected = inject_assertions(source, assertions, GLOBAL_PROFILE)
        artifact = self.compiler.compile(injected, name)
        self._write_custom_audit(name, GLOBAL_PROFILE, injected.content, artifact, assertions)
        logger.info(f"{name} compiled with {len(assertions)} global assertion(s)")
        return artifact

    def reload(self) -> ReloadResult:
        start = time.perf_counter()
        self.storage.clear_generated(GENERATED_SUBDIR)
        self.storage.clear_generated(CUSTOM_SUBDIR)
        self.invalidate_custom_cache()

        compiled = {}
        errors = []
        for rule_set_type in self.rulesets:
            try:
                artifact = self.compile_rule_set(rule_set_type)
            except SchemaxError as e:
                errors.append(f"{rule_set_type.value}: {e}")
                logger.warning(f"{rule_set_type.value} not loaded: {e}")
                continue
            compiled[rule_set_type] = artifact
            if self.rulesets[rule_set_type].kind == RuleSetKind.SOURCE:
                self._write_audit(GENERATED_SUBDIR, f"{rule_set_type.value}.xsl", artifact.generated_source)

        self._compiled = compiled
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        return ReloadResult.from_counts(self.name, len(compiled), elapsed_ms, errors)

    def get_compiled(self, rule_set_type: RuleSetType | str) -> CompiledArtifact | None:
        return self._compiled.get(RuleSetType(rule_set_type))

    def loaded_types(self) -> list[RuleSetType]:
        return list(self._compiled)

    # Custom rule-sets

    def cache_key(
        self,
        rule_set_type: RuleSetType | str,
        assertions: Sequence[CustomAssertion],
        profile_name: str | None,
    ) -> RuleCacheKey:
        rule_set_type = RuleSetType(rule_set_type)
        combined = self._combined(rule_set_type, assertions)
        return RuleCacheKey(rule_set_type.value, profile_name or ANONYMOUS_PROFILE, fingerprint_assertions(combined))

    def _combined(self, rule_set_type: RuleSetType, assertions: Sequence[CustomAssertion]) -> list[CustomAssertion]:
        return [*self.global_assertions(rule_set_type.value), *assertions]

    def get_or_compile_custom(
        self,
        rule_set_type: RuleSetType | str,
        assertions: Sequence[CustomAssertion],
        profile_name: str | None,
    ) -> CompiledArtifact:
        """Compile a rule-set extended with global and profile assertions, once per key.

        Raises:
            CacheComputeError: If compilation failed, or the rule-set is pre-compiled
        """
        rule_set_type = RuleSetType(rule_set_type)
        combined = self._combined(rule_set_type, assertions)
        key = RuleCacheKey(rule_set_type.value, profile_name or ANONYMOUS_PROFILE, fingerprint_assertions(combined))
        return self.cache.get_or_compute(key, lambda: self._compile_custom(rule_set_type, combined, key.profile_name))

    def _compile_custom(
        self,
        rule_set_type: RuleSetType,
        combined: Sequence[CustomAssertion],
        profile: str,
    ) -> CompiledArtifact:
        name = rule_set_type.value
        _, config = self._config(rule_set_type)
        if config.kind == RuleSetKind.XSL:
            raise SchemaxError(f"{name} is a pre-compiled stylesheet and does not support custom assertions")

        logger.info(f"Compiling custom rule-set {name} (profile: {profile}, {len(combined)} assertion(s))")

        injected = inject_assertions(self.load_source(rule_set_type), combined, profile)
        artifact = self.compiler.compile(injected, f"{name}[{profile}]")
        self._write_custom_audit(name, profile, injected.content, artifact, combined)
        return artifact

    def precompile(
        self,
        rule_set_type: RuleSetType | str,
        assertions: Sequence[CustomAssertion],
        profile_name: str | None,
    ) -> bool:
        """Fill the custom cache ahead of the first request; failures are logged."""
        if not assertions:
            return False
        try:
            self.get_or_compile_custom(rule_set_type, assertions, profile_name)
        except (CacheComputeError, ValueError) as e:
            logger.warning(f"Pre-compilation of {rule_set_type} failed (profile: {profile_name}): {e}")
            return False
        logger.info(f"Pre-compiled {rule_set_type} custom rule-set (profile: {profile_name}, {len(assertions)} assertion(s))")
        return True

    def invalidate_custom_cache(self) -> None:
        self.cache.invalidate_all()

    # Running

    def run(
        self,
        rule_set_type: RuleSetType | str,
        document: bytes,
        subtype: str | None = None,
        assertions: Sequence[CustomAssertion] = (),
        profile_name: str | None = None,
        source_name: str | None = None,
    ) -> list[Finding]:
        """Run a rule-set against a document and return the raw findings.

        With ``assertions`` the custom rule-set for that profile is used,
        otherwise the base one. ``subtype`` feeds the runtime ``type``
        parameter when the artifact exposes it.

        Raises:
            SchemaxError: If the rule-set is not loaded, does not compile,
                or the run fails
        """
        rule_set_type = RuleSetType(rule_set_type)
        if assertions:
            artifact = self.get_or_compile_custom(rule_set_type, assertions, profile_name)
        else:
            artifact = self.get_compiled(rule_set_type)
        if artifact is None:
            raise SchemaxError(f"Rule-set {rule_set_type.value} is not loaded; reload the assets first")

        parameters = {}
        if subtype and artifact.accepts_parameter("type"):
            parameters["type"] = subtype
        try:
            output = self.compiler.engine.run(artifact.executable, document, parameters, base_location=source_name)
        except EngineError as e:
            raise SchemaxError(f"Running rule-set {rule_set_type.value} failed: {e}") from e
        return extract_findings(output)

    # Audit output

    def _write_audit(self, subdir: str, filename: str, content: bytes) -> None:
        try:
            path = self.storage.write_generated(subdir, filename, content)
            logger.debug(f"Audit file written: {path}")
        except OSError as e:
            logger.warning(f"Could not write audit file {subdir}/{filename}: {e}")

    def _write_custom_audit(
        self,
        rule_set_type: str,
        profile_name: str,
        injected_source: bytes,
        artifact: CompiledArtifact,
        assertions: Sequence[CustomAssertion],
    ) -> None:
        metadata = (
            "Custom Schematron Rules Output\n"
            f"     Profile:        {profile_name}\n"
            f"     Rule-set Type:  {rule_set_type}\n"
            f"     Generated:      {datetime.now().replace(microsecond=0).isoformat()}\n"
            f"     Custom Rules:   {len(assertions)} assertion(s)\n"
        )
        base = f"{rule_set_type}_{sanitize_identifier(profile_name)}_custom"
        self._write_audit(CUSTOM_SUBDIR, f"{base}.xml", with_leading_comment(injected_source, metadata))
        self._write_audit(CUSTOM_SUBDIR, f"{base}.xsl", artifact.generated_source)
