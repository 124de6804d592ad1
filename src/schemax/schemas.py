"""XML Schema management: base schemas, override compilation and validation."""

import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from lxml import etree

from schemax.cache import ComputeCache, OverrideCacheKey
from schemax.engine import TransformEngine
from schemax.errors import CacheComputeError, CompilationError, EngineError, SchemaxError
from schemax.injector import sanitize_identifier
from schemax.models import SchemaType, XsdOverride
from schemax.reload import Reloadable, ReloadResult
from schemax.storage import Storage, with_leading_comment

logger = logging.getLogger(__name__)

XSD_NS = "http://www.w3.org/2001/XMLSchema"
OVERRIDES_SUBDIR = "schema-overrides"


@dataclass(frozen=True)
class OverrideReport:
    """Which overrides found their ``xsd:element ref`` in the main schema."""
    matched_count: int
    unmatched: tuple[str, ...]

    def status_of(self, override: XsdOverride) -> str:
        return "NOT FOUND" if override.element in self.unmatched else "OK"


def apply_overrides(schema_source: bytes, overrides: Sequence[XsdOverride]) -> tuple[bytes, OverrideReport]:
    """Set occurrence constraints on every ``xsd:element`` whose ``ref`` is overridden.

    Only the main schema document is modified; imported schemas are not.

    Returns:
        Tuple of (modified schema bytes, report of matched and unmatched refs)

    Raises:
        CompilationError: If the schema source is not well-formed
    """
    parser = etree.XMLParser(resolve_entities=False, no_network=True, load_dtd=False)
    try:
        root = etree.fromstring(schema_source, parser)
    except etree.XMLSyntaxError as e:
        raise CompilationError(f"Schema source is not well-formed: {e}", stage="overrides") from e

    by_ref = {override.element: override for override in overrides}
    matched = set()
    for element in root.iter(f"{{{XSD_NS}}}element"):
        override = by_ref.get(element.get("ref"))
        if override is None:
            continue
        if override.min_occurs is not None:
            element.set("minOccurs", override.min_occurs)
        if override.max_occurs is not None:
            element.set("maxOccurs", override.max_occurs)
        matched.add(override.element)

    unmatched = tuple(o.element for o in overrides if o.element not in matched)
    content = etree.tostring(root.getroottree(), encoding="UTF-8", xml_declaration=True)
    return content, OverrideReport(matched_count=len(matched), unmatched=unmatched)


def override_key(schema_type: SchemaType | str, overrides: Sequence[XsdOverride]) -> OverrideCacheKey:
    return OverrideCacheKey(SchemaType(schema_type).value, tuple(sorted(o.serialize() for o in overrides)))


class SchemaService(Reloadable):
    """Serves compiled XML Schemas, with and without occurrence overrides."""

    name = "XSD Schemas"

    def __init__(
        self,
        storage: Storage,
        engine: TransformEngine,
        schemas: Mapping[SchemaType, str],
        cache: ComputeCache | None = None,
    ):
        self.storage = storage
        self.engine = engine
        self.schemas = dict(schemas)
        self.cache = cache or ComputeCache("schema-override", max_size=50, ttl_seconds=3600)
        self._compiled: Mapping[SchemaType, Any] = {}

    def _main_schema(self, schema_type: SchemaType | str) -> tuple[SchemaType, str]:
        schema_type = SchemaType(schema_type)
        path = self.schemas.get(schema_type)
        if path is None:
            raise SchemaxError(f"No schema configured for {schema_type.value}")
        if not self.storage.exists(path):
            raise SchemaxError(f"{schema_type.value} schema not found: {path}")
        return schema_type, path

    def _compile(self, schema_type: SchemaType, content: bytes, path: str) -> Any:
        location = str(self.storage.resolve_on_disk(path))
        try:
            return self.engine.compile_schema(content, location)
        except EngineError as e:
            raise CompilationError(f"Schema {schema_type.value} does not compile: {e}", e.diagnostics, "schema") from e

    def compile_schema(self, schema_type: SchemaType | str) -> Any:
        """Compile the base schema of a type.

        Raises:
            CompilationError: If the schema does not compile
            SchemaxError: If the schema is not configured or missing
        """
        schema_type, path = self._main_schema(schema_type)
        return self._compile(schema_type, self.storage.read_bytes(path), path)

    def reload(self) -> ReloadResult:
        start = time.perf_counter()
        self.invalidate_override_cache()

        compiled = {}
        errors = []
        for schema_type in self.schemas:
            try:
                compiled[schema_type] = self.compile_schema(schema_type)
                logger.debug(f"{schema_type.value} schema loaded")
            except SchemaxError as e:
                errors.append(f"{schema_type.value}: {e}")
                logger.warning(f"{schema_type.value} schema not loaded: {e}")

        self._compiled = compiled
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        return ReloadResult.from_counts(self.name, len(compiled), elapsed_ms, errors)

    def get_compiled(self, schema_type: SchemaType | str) -> Any | None:
        return self._compiled.get(SchemaType(schema_type))

    # Overrides

    def get_or_compile_schema_override(
        self,
        schema_type: SchemaType | str,
        overrides: Sequence[XsdOverride],
        profile_name: str | None = None,
    ) -> Any:
        """Compile the base schema with overrides applied, once per override set.

        The key does not include the profile: profiles with identical
        overrides share one compiled schema.

        Raises:
            CacheComputeError: If the modified schema does not compile
        """
        key = override_key(schema_type, overrides)
        return self.cache.get_or_compute(key, lambda: self._compile_override(schema_type, overrides, profile_name))

    def _compile_override(
        self,
        schema_type: SchemaType | str,
        overrides: Sequence[XsdOverride],
        profile_name: str | None,
    ) -> Any:
        schema_type, path = self._main_schema(schema_type)
        modified, report = apply_overrides(self.storage.read_bytes(path), overrides)
        profile = profile_name or "-"

        if report.unmatched:
            logger.warning(
                f"{len(report.unmatched)} XSD override(s) did not match any element ref: {list(report.unmatched)} "
                f"(profile: {profile}, type: {schema_type.value}); refs must include the namespace prefix, "
                f"e.g. 'cac:Signature'"
            )
        if report.matched_count:
            logger.info(
                f"XSD overrides applied: {report.matched_count}/{len(overrides)} matched "
                f"(profile: {profile}, type: {schema_type.value})"
            )

        self._write_override_audit(schema_type, overrides, modified, profile_name, report)
        schema = self._compile(schema_type, modified, path)
        logger.info(f"Compiled {schema_type.value} schema with {len(overrides)} override(s) (profile: {profile})")
        return schema

    def precompile(
        self,
        schema_type: SchemaType | str,
        overrides: Sequence[XsdOverride],
        profile_name: str | None = None,
    ) -> bool:
        """Fill the override cache ahead of the first request; failures are logged."""
        if not overrides:
            return False
        try:
            self.get_or_compile_schema_override(schema_type, overrides, profile_name)
        except (CacheComputeError, ValueError) as e:
            logger.error(f"Override pre-compilation of {schema_type} failed (profile: {profile_name or '-'}): {e}")
            return False
        return True

    def invalidate_override_cache(self) -> None:
        self.cache.invalidate_all()

    # Validation

    def validate(
        self,
        schema_type: SchemaType | str,
        document: bytes,
        overrides: Sequence[XsdOverride] = (),
        profile_name: str | None = None,
    ) -> list[str]:
        """Validate a document, returning error strings with line numbers.

        Raises:
            SchemaxError: If the schema is not loaded or the overrides do not compile
        """
        schema_type = SchemaType(schema_type)
        if overrides:
            schema = self.get_or_compile_schema_override(schema_type, overrides, profile_name)
        else:
            schema = self.get_compiled(schema_type)
        if schema is None:
            raise SchemaxError(f"Schema {schema_type.value} is not loaded; reload the assets first")
        return self.engine.validate_schema(schema, document)

    def _write_override_audit(
        self,
        schema_type: SchemaType,
        overrides: Sequence[XsdOverride],
        content: bytes,
        profile_name: str | None,
        report: OverrideReport,
    ) -> None:
        lines = [
            "XSD Override Metadata",
            f"     Profile    : {profile_name or '(ad-hoc)'}",
            f"     SchemaType : {schema_type.value}",
            f"     GeneratedAt: {datetime.now(timezone.utc).replace(microsecond=0).isoformat()}",
            f"     Matched    : {report.matched_count}/{len(overrides)}",
        ]
        if report.unmatched:
            lines.append(f"     UNMATCHED  : {list(report.unmatched)}")
        lines.append("     Overrides:")
        for override in overrides:
            detail = f"       - element: {override.element}"
            if override.min_occurs is not None:
                detail += f", minOccurs={override.min_occurs}"
            if override.max_occurs is not None:
                detail += f", maxOccurs={override.max_occurs}"
            lines.append(f"{detail} [{report.status_of(override)}]")

        filename = f"{schema_type.value}_{sanitize_identifier(profile_name) if profile_name else 'adhoc'}_override.xsd"
        try:
            path = self.storage.write_generated(OVERRIDES_SUBDIR, filename, with_leading_comment(content, "\n".join(lines) + "\n"))
            logger.debug(f"Audit file written: {path}")
        except OSError as e:
            logger.warning(f"Could not write override audit file {filename}: {e}")
