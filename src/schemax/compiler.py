"""Rule source compiler.

Turns one declarative rule-set source into one executable artifact through
three stages:

1. dispatch: resolves includes against the source's base location
2. abstract: expands abstract rule templates into concrete rules
3. message: generates the executable stylesheet, keeping the originating
   rule id and test expression on every generated assertion and passing
   foreign elements through

Top-level bindings of the generated stylesheet whose names are on the
parameter allow-list are then exposed as stylesheet parameters, and no
other binding is, so the caller can pick a runtime variant without
recompiling.
"""

import dataclasses
import logging
import time

from lxml import etree

from schemax.config import CompilerConfig
from schemax.engine import TransformEngine
from schemax.errors import CompilationError, EngineError
from schemax.injector import SCHEMATRON_NS
from schemax.models import CompiledArtifact, RuleSetSource

logger = logging.getLogger(__name__)

XSL_NS = "http://www.w3.org/1999/XSL/Transform"


def _secure_parser() -> etree.XMLParser:
    return etree.XMLParser(resolve_entities=False, no_network=True)


def schema_bindings(source: bytes) -> frozenset[str]:
    """Names bound by schema-level ``sch:let`` elements of a rule source."""
    try:
        root = etree.fromstring(source, _secure_parser())
    except etree.XMLSyntaxError as e:
        raise CompilationError(f"Rule source is not well-formed: {e}", stage="parameters") from e
    return frozenset(let.get("name") for let in root.iterchildren(f"{{{SCHEMATRON_NS}}}let") if let.get("name"))


def expose_parameters(
    generated: bytes,
    allow_list: list[str] | frozenset[str],
    bindings: frozenset[str] = frozenset(),
) -> tuple[bytes, frozenset[str]]:
    """Make exactly the allow-listed top-level bindings settable at run time.

    Allow-listed top-level ``xsl:variable`` elements become ``xsl:param``;
    allow-listed top-level ``xsl:param`` elements are kept and recorded.
    Top-level parameters generated from a schema-level binding in
    ``bindings`` that is not allow-listed are turned back into variables.
    Other parameters of the generated stylesheet are left alone, and only
    direct children of the stylesheet root are touched.

    Returns:
        Tuple of (rewritten stylesheet bytes, names that were exposed)
    """
    allowed = set(allow_list)
    if not allowed and not bindings:
        return generated, frozenset()

    try:
        root = etree.fromstring(generated, _secure_parser())
    except etree.XMLSyntaxError as e:
        raise CompilationError(f"Generated stylesheet is not well-formed: {e}", stage="parameters") from e

    exposed = set()
    changed = False
    variable_tag = f"{{{XSL_NS}}}variable"
    param_tag = f"{{{XSL_NS}}}param"
    for child in root:
        name = child.get("name")
        if child.tag == variable_tag and name in allowed:
            child.tag = param_tag
            exposed.add(name)
            changed = True
        elif child.tag == param_tag and name in allowed:
            exposed.add(name)
        elif child.tag == param_tag and name in bindings:
            child.tag = variable_tag
            changed = True

    if not changed:
        return generated, frozenset(exposed)
    rewritten = etree.tostring(root.getroottree(), encoding="UTF-8", xml_declaration=True)
    return rewritten, frozenset(exposed)


class RuleSourceCompiler:
    """Compiles rule-set sources into executable artifacts."""

    STAGES = ("dispatch", "abstract", "message")

    def __init__(self, engine: TransformEngine, config: CompilerConfig | None = None):
        self.engine = engine
        self.config = config or CompilerConfig()
        # stage executables are process wide; fetched once per compiler
        self._stages = engine.pipeline_stages()

    def _stage_parameters(self, stage: str) -> dict[str, str]:
        if stage != "message":
            return {}
        return {
            "phase": self.config.phase,
            "allow-foreign": "true" if self.config.allow_foreign else "false",
        }

    def generate(self, source: RuleSetSource, name: str) -> bytes:
        """Run the three pipeline stages and return the generated stylesheet.

        Raises:
            CompilationError: If any stage rejects its input
        """
        document = source.content
        for stage in self.STAGES:
            executable = getattr(self._stages, stage)
            try:
                document = self.engine.run(
                    executable,
                    document,
                    self._stage_parameters(stage),
                    base_location=source.base_location,
                )
            except EngineError as e:
                diagnostics = [dataclasses.replace(d, stage=stage) for d in e.diagnostics]
                raise CompilationError(f"Rule-set {name} failed in {stage} stage: {e}", diagnostics, stage) from e
        return document

    def compile(self, source: RuleSetSource, name: str) -> CompiledArtifact:
        """Compile a rule-set source into a CompiledArtifact.

        Args:
            source: Raw rule-set source and base location
            name: Artifact name used in logs and errors

        Returns:
            CompiledArtifact holding the executable and the generated source

        Raises:
            CompilationError: With diagnostics collected from the failing stage
        """
        start = time.perf_counter()
        generated = self.generate(source, name)
        generated, parameters = expose_parameters(
            generated, self.config.parameter_allow_list, schema_bindings(source.content)
        )

        try:
            executable = self.engine.compile(generated, source.base_location)
        except EngineError as e:
            diagnostics = [dataclasses.replace(d, stage="compile") for d in e.diagnostics]
            raise CompilationError(f"Generated stylesheet for {name} does not compile: {e}", diagnostics, "compile") from e

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        logger.info(f"Compiled rule-set {name} in {elapsed_ms} ms")
        if parameters:
            logger.debug(f"Rule-set {name} exposes runtime parameters: {sorted(parameters)}")
        return CompiledArtifact(name=name, executable=executable, generated_source=generated, parameters=parameters)

    def load_compiled(self, content: bytes, name: str, base_location: str | None = None) -> CompiledArtifact:
        """Load a pre-compiled stylesheet as an artifact without running the pipeline."""
        try:
            executable = self.engine.compile(content, base_location)
        except EngineError as e:
            raise CompilationError(f"Pre-compiled stylesheet {name} does not compile: {e}", e.diagnostics, "compile") from e
        return CompiledArtifact(name=name, executable=executable, generated_source=content)
