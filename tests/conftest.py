"""Shared fixtures for schemax tests."""

import threading
from pathlib import Path

import pytest

from schemax.config import AssetsConfig, RuleSetConfig, SchemaxConfig
from schemax.engine import PipelineStages, TransformEngine
from schemax.errors import EngineError
from schemax.models import RuleSetKind, RuleSetType, SchemaType
from schemax.storage import FileSystemStorage

MAIN_RULES = b"""<?xml version="1.0" encoding="UTF-8"?>
<sch:schema xmlns:sch="http://purl.oclc.org/dsdl/schematron" queryBinding="xslt">
  <sch:ns prefix="inv" uri="urn:test:invoice"/>
  <sch:let name="type" value="'efatura'"/>
  <sch:pattern id="base">
    <sch:rule context="inv:Invoice" id="InvoiceRule">
      <sch:assert test="inv:ID" id="InvoiceIDCheck">Invoice must have an ID</sch:assert>
      <sch:assert test="inv:IssueDate" id="IssueDateCheck">Invoice must have an issue date</sch:assert>
    </sch:rule>
  </sch:pattern>
</sch:schema>
"""

EARSIV_XSL = b"""<?xml version="1.0" encoding="UTF-8"?>
<xsl:stylesheet version="1.0" xmlns:xsl="http://www.w3.org/1999/XSL/Transform">
  <xsl:template match="/"><Errors/></xsl:template>
</xsl:stylesheet>
"""

INVOICE_XSD = b"""<?xml version="1.0" encoding="UTF-8"?>
<xsd:schema xmlns:xsd="http://www.w3.org/2001/XMLSchema"
            xmlns:cac="urn:test:cac"
            targetNamespace="urn:test:invoice" elementFormDefault="qualified">
  <xsd:element name="Invoice">
    <xsd:complexType>
      <xsd:sequence>
        <xsd:element ref="cac:Signature" minOccurs="1" maxOccurs="unbounded"/>
      </xsd:sequence>
    </xsd:complexType>
  </xsd:element>
</xsd:schema>
"""

PROFILES_YAML = """\
schematron-rules:
  UBLTR_MAIN:
    - context: inv:Invoice
      test: inv:Note
      message: Global note check
      id: GlobalNote
profiles:
  base:
    description: Base profile
    suppressions:
      - match: ruleId
        pattern: InvoiceIDCheck
  strict:
    extends: base
    suppressions:
      - match: text
        pattern: ".*issue date.*"
        scope: [UBLTR_MAIN]
    xsd-overrides:
      INVOICE:
        - element: cac:Signature
          minOccurs: "0"
    schematron-rules:
      UBLTR_MAIN:
        - context: inv:Invoice
          test: inv:Total
          message: Invoice must have a total
          id: TotalCheck
"""

SVRL_TWO_FAILURES = b"""<?xml version="1.0" encoding="UTF-8"?>
<svrl:schematron-output xmlns:svrl="http://purl.oclc.org/dsdl/svrl">
  <svrl:active-pattern id="base"/>
  <svrl:fired-rule context="inv:Invoice" id="InvoiceRule"/>
  <svrl:failed-assert test="inv:ID" id="InvoiceIDCheck" location="/Invoice">
    <svrl:text>Invoice must have an ID</svrl:text>
  </svrl:failed-assert>
  <svrl:failed-assert test="inv:IssueDate" location="/Invoice">
    <svrl:text>Invoice must have an
      issue date</svrl:text>
  </svrl:failed-assert>
</svrl:schematron-output>
"""


class FakeExecutable:
    """Stand-in for a compiled stylesheet."""

    def __init__(self, source: bytes):
        self.source = source


class FakeSchema:
    """Stand-in for a compiled XML Schema."""

    def __init__(self, source: bytes):
        self.source = source


class FakeEngine(TransformEngine):
    """Engine double: stages pass documents through, runs return canned output."""

    def __init__(self):
        self.compile_count = 0
        self.schema_compile_count = 0
        self.runs = []
        self.run_output = b""
        self.schema_errors: list[str] = []
        self.fail_compile = False
        self.compile_gate: threading.Event | None = None
        self._lock = threading.Lock()

    def compile(self, source, base_location=None):
        if self.compile_gate is not None:
            self.compile_gate.wait(timeout=5)
        with self._lock:
            self.compile_count += 1
        if self.fail_compile:
            raise EngineError("broken stylesheet")
        return FakeExecutable(source)

    def run(self, executable, document, parameters=None, base_location=None):
        self.runs.append((executable, dict(parameters or {}), base_location))
        if isinstance(executable, str):
            return document
        return self.run_output

    def compile_schema(self, source, base_location=None):
        self.schema_compile_count += 1
        return FakeSchema(source)

    def validate_schema(self, schema, document):
        return list(self.schema_errors)

    def pipeline_stages(self):
        return PipelineStages(dispatch="dispatch", abstract="abstract", message="message")


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def asset_root(tmp_path: Path) -> Path:
    """Asset directory with one source rule-set, one stylesheet and one schema."""
    (tmp_path / "rules").mkdir()
    (tmp_path / "schemas").mkdir()
    (tmp_path / "rules" / "main.sch").write_bytes(MAIN_RULES)
    (tmp_path / "rules" / "earsiv.xsl").write_bytes(EARSIV_XSL)
    (tmp_path / "schemas" / "invoice.xsd").write_bytes(INVOICE_XSD)
    return tmp_path


@pytest.fixture
def storage(asset_root: Path) -> FileSystemStorage:
    return FileSystemStorage(asset_root)


@pytest.fixture
def config(asset_root: Path) -> SchemaxConfig:
    return SchemaxConfig(
        assets=AssetsConfig(root=str(asset_root)),
        rulesets={
            RuleSetType.UBLTR_MAIN: RuleSetConfig(path="rules/main.sch"),
            RuleSetType.EARCHIVE_REPORT: RuleSetConfig(path="rules/earsiv.xsl", kind=RuleSetKind.XSL),
        },
        schemas={SchemaType.INVOICE: "schemas/invoice.xsd"},
    )


@pytest.fixture
def profiles_file(asset_root: Path) -> Path:
    path = asset_root / "validation-profiles.yml"
    path.write_text(PROFILES_YAML, encoding="utf-8")
    return path


@pytest.fixture
def main_rules() -> bytes:
    return MAIN_RULES


@pytest.fixture
def svrl_two_failures() -> bytes:
    return SVRL_TWO_FAILURES
