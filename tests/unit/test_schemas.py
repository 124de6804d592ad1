"""Unit tests for schema override application and the schema service."""

import pytest
from lxml import etree

from schemax.cache import ComputeCache
from schemax.errors import CompilationError, SchemaxError
from schemax.models import SchemaType, XsdOverride
from schemax.reload import ReloadStatus
from schemax.schemas import OVERRIDES_SUBDIR, XSD_NS, SchemaService, apply_overrides, override_key

SIGNATURE_OPTIONAL = XsdOverride(element="cac:Signature", minOccurs="0")


@pytest.fixture
def schema_source(storage):
    return storage.read_bytes("schemas/invoice.xsd")


@pytest.fixture
def service(storage, fake_engine, config):
    return SchemaService(storage, fake_engine, config.schemas, ComputeCache("schema-override"))


class TestApplyOverrides:
    """Test occurrence overrides on the main schema document."""

    def test_matched_override(self, schema_source):
        modified, report = apply_overrides(schema_source, [SIGNATURE_OPTIONAL])
        element = etree.fromstring(modified).find(f".//{{{XSD_NS}}}element[@ref='cac:Signature']")

        assert element.get("minOccurs") == "0"
        assert element.get("maxOccurs") == "unbounded"
        assert report.matched_count == 1
        assert report.unmatched == ()
        assert report.status_of(SIGNATURE_OPTIONAL) == "OK"

    def test_unmatched_override_reported(self, schema_source):
        missing = XsdOverride(element="Signature", maxOccurs="1")
        modified, report = apply_overrides(schema_source, [missing])
        assert report.matched_count == 0
        assert report.unmatched == ("Signature",)
        assert report.status_of(missing) == "NOT FOUND"
        assert b'minOccurs="1"' in modified

    def test_malformed_schema(self):
        with pytest.raises(CompilationError):
            apply_overrides(b"<xsd:schema", [SIGNATURE_OPTIONAL])

    def test_override_key_order_independent(self):
        other = XsdOverride(element="cac:Note", maxOccurs="2")
        assert override_key("INVOICE", [SIGNATURE_OPTIONAL, other]) == override_key(SchemaType.INVOICE, [other, SIGNATURE_OPTIONAL])


class TestSchemaService:
    """Test base and override compilation over a fake engine."""

    def test_reload(self, service, fake_engine):
        result = service.reload()
        assert result.status == ReloadStatus.OK
        assert result.loaded_count == 1
        assert service.get_compiled(SchemaType.INVOICE) is not None
        assert service.get_compiled(SchemaType.EARCHIVE) is None

    def test_reload_partial_with_missing_schema(self, storage, fake_engine):
        schemas = {SchemaType.INVOICE: "schemas/invoice.xsd", SchemaType.EARCHIVE: "schemas/missing.xsd"}
        result = SchemaService(storage, fake_engine, schemas).reload()
        assert result.status == ReloadStatus.PARTIAL
        assert "EARCHIVE" in result.errors[0]

    def test_override_compiled_once_and_shared(self, service, fake_engine):
        first = service.get_or_compile_schema_override("INVOICE", [SIGNATURE_OPTIONAL], "acme")
        second = service.get_or_compile_schema_override("INVOICE", [SIGNATURE_OPTIONAL], "other")
        assert first is second
        assert fake_engine.schema_compile_count == 1
        assert b'minOccurs="0"' in first.source

    def test_override_audit_file(self, service, storage):
        service.get_or_compile_schema_override("INVOICE", [SIGNATURE_OPTIONAL], "acme corp")
        audit = storage.generated_path(OVERRIDES_SUBDIR) / "INVOICE_acme_corp_override.xsd"
        content = audit.read_text(encoding="utf-8")
        assert "Profile    : acme corp" in content
        assert "Matched    : 1/1" in content
        assert "cac:Signature, minOccurs=0 [OK]" in content
        etree.fromstring(audit.read_bytes())

    def test_reload_invalidates_overrides(self, service, fake_engine):
        service.get_or_compile_schema_override("INVOICE", [SIGNATURE_OPTIONAL])
        service.reload()
        service.get_or_compile_schema_override("INVOICE", [SIGNATURE_OPTIONAL])
        assert fake_engine.schema_compile_count == 3

    def test_validate_requires_loaded_schema(self, service):
        with pytest.raises(SchemaxError, match="not loaded"):
            service.validate("INVOICE", b"<Invoice/>")

    def test_validate_returns_engine_errors(self, service, fake_engine):
        service.reload()
        fake_engine.schema_errors = ["Line 1: Missing child element"]
        assert service.validate("INVOICE", b"<Invoice/>") == ["Line 1: Missing child element"]

    def test_precompile_without_overrides(self, service):
        assert service.precompile("INVOICE", []) is False
