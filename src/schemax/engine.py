"""Transformation and schema engine adapters.

The compiler and services talk to the engine only through ``TransformEngine``;
``LxmlEngine`` is the default implementation backed by libxslt/libxml2.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, NamedTuple

from schemax.diagnostics import DiagnosticCollector, humanize_schema_error
from schemax.errors import EngineError

logger = logging.getLogger(__name__)


class PipelineStages(NamedTuple):
    """Executables of the three rule compilation stages."""
    dispatch: Any
    abstract: Any
    message: Any


class TransformEngine(ABC):
    """Opaque compile/run service for stylesheets and schemas."""

    @abstractmethod
    def compile(self, source: bytes, base_location: str | None = None) -> Any:
        """Compile a stylesheet into an executable.

        Raises:
            EngineError: If the stylesheet is malformed
        """

    @abstractmethod
    def run(
        self,
        executable: Any,
        document: bytes,
        parameters: Mapping[str, str] | None = None,
        base_location: str | None = None,
    ) -> bytes:
        """Apply an executable to a document and return the serialized output.

        Raises:
            EngineError: If the document is malformed or the run fails
        """

    @abstractmethod
    def compile_schema(self, source: bytes, base_location: str | None = None) -> Any:
        """Compile an XML Schema.

        Raises:
            EngineError: If the schema is malformed
        """

    @abstractmethod
    def validate_schema(self, schema: Any, document: bytes) -> list[str]:
        """Validate a document against a compiled schema, returning error strings."""

    @abstractmethod
    def pipeline_stages(self) -> PipelineStages:
        """Stage executables for rule compilation, compiled once per process."""


class LxmlEngine(TransformEngine):
    """Engine backed by ``lxml.etree`` (XSLT 1.0 and XML Schema 1.0)."""

    def __init__(self):
        from lxml import etree

        self._etree = etree
        self._parser = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=False)

    def _parse(self, content: bytes, base_location: str | None, what: str):
        try:
            return self._etree.fromstring(content, self._parser, base_url=base_location).getroottree()
        except self._etree.XMLSyntaxError as e:
            collector = DiagnosticCollector()
            collector.collect_error_log(e.error_log)
            if not collector.diagnostics:
                collector.add(str(e), line=getattr(e, "lineno", None))
            raise EngineError(f"Malformed {what}: {e}", collector.diagnostics) from e

    def compile(self, source: bytes, base_location: str | None = None) -> Any:
        tree = self._parse(source, base_location, "stylesheet")
        try:
            return self._etree.XSLT(tree)
        except self._etree.XSLTParseError as e:
            collector = DiagnosticCollector()
            collector.collect_error_log(e.error_log)
            raise EngineError(f"Stylesheet compilation failed: {e}", collector.diagnostics) from e

    def run(
        self,
        executable: Any,
        document: bytes,
        parameters: Mapping[str, str] | None = None,
        base_location: str | None = None,
    ) -> bytes:
        tree = self._parse(document, base_location, "document")
        params = {name: self._etree.XSLT.strparam(value) for name, value in (parameters or {}).items()}
        try:
            result = executable(tree, **params)
        except self._etree.XSLTApplyError as e:
            collector = DiagnosticCollector()
            collector.collect_error_log(executable.error_log)
            raise EngineError(f"Transformation failed: {e}", collector.diagnostics) from e
        if result.getroot() is None:
            return bytes(result)
        return self._etree.tostring(result, encoding="UTF-8", xml_declaration=True)

    def compile_schema(self, source: bytes, base_location: str | None = None) -> Any:
        tree = self._parse(source, base_location, "schema")
        try:
            return self._etree.XMLSchema(tree)
        except self._etree.XMLSchemaParseError as e:
            collector = DiagnosticCollector()
            collector.collect_error_log(e.error_log)
            raise EngineError(f"Schema compilation failed: {e}", collector.diagnostics) from e

    def validate_schema(self, schema: Any, document: bytes) -> list[str]:
        try:
            tree = self._parse(document, None, "document")
        except EngineError as e:
            return [str(d) for d in e.diagnostics] or [str(e)]
        if schema.validate(tree):
            return []
        return [humanize_schema_error(entry.message, entry.line) for entry in schema.error_log]

    def pipeline_stages(self) -> PipelineStages:
        # compiled by lxml when isoschematron is first imported
        from lxml import isoschematron

        return PipelineStages(
            dispatch=isoschematron.iso_dsdl_include,
            abstract=isoschematron.iso_abstract_expand,
            message=isoschematron.iso_svrl_for_xslt1,
        )
