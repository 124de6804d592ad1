"""Unit tests for the rule-set service."""

import pytest
from lxml import etree

from schemax.cache import ComputeCache
from schemax.compiler import RuleSourceCompiler
from schemax.errors import CacheComputeError, SchemaxError
from schemax.injector import SCHEMATRON_NS
from schemax.models import CustomAssertion, RuleSetType
from schemax.reload import ReloadStatus
from schemax.rulesets import CUSTOM_SUBDIR, GENERATED_SUBDIR, RuleSetService

TOTAL = CustomAssertion(context="inv:Invoice", test="inv:Total", message="Need total", id="TotalCheck")
NOTE = CustomAssertion(context="inv:Invoice", test="inv:Note", message="Need note", id="NoteCheck")


@pytest.fixture
def global_assertions():
    return {}


@pytest.fixture
def service(storage, fake_engine, config, global_assertions):
    return RuleSetService(
        storage,
        RuleSourceCompiler(fake_engine, config.compiler),
        config.rulesets,
        ComputeCache("rule"),
        global_assertions=lambda rule_set_type: global_assertions.get(rule_set_type, ()),
    )


class TestReload:
    """Test base rule-set compilation at reload."""

    def test_reload_compiles_every_rule_set(self, service, storage):
        result = service.reload()
        assert result.status == ReloadStatus.OK
        assert result.loaded_count == 2
        assert set(service.loaded_types()) == {RuleSetType.UBLTR_MAIN, RuleSetType.EARCHIVE_REPORT}
        assert (storage.generated_path(GENERATED_SUBDIR) / "UBLTR_MAIN.xsl").exists()
        assert not (storage.generated_path(GENERATED_SUBDIR) / "EARCHIVE_REPORT.xsl").exists()

    def test_missing_source_is_partial(self, service, asset_root):
        (asset_root / "rules" / "earsiv.xsl").unlink()
        result = service.reload()
        assert result.status == ReloadStatus.PARTIAL
        assert service.get_compiled("EARCHIVE_REPORT") is None
        assert service.get_compiled("UBLTR_MAIN") is not None

    def test_global_assertions_injected(self, service, global_assertions, storage):
        global_assertions["UBLTR_MAIN"] = (NOTE,)
        service.reload()

        generated = service.get_compiled("UBLTR_MAIN").generated_source
        root = etree.fromstring(generated)
        assert root[-1].get("id") == "custom-rules-global"
        assert (storage.generated_path(CUSTOM_SUBDIR) / "UBLTR_MAIN_global_custom.xml").exists()

    def test_reload_clears_custom_cache(self, service, fake_engine):
        service.reload()
        service.get_or_compile_custom("UBLTR_MAIN", [TOTAL], "acme")
        assert len(service.cache) == 1
        service.reload()
        assert len(service.cache) == 0


class TestCustomCompilation:
    """Test on-demand compilation of extended rule-sets."""

    def test_compiled_once_per_key(self, service, fake_engine):
        first = service.get_or_compile_custom("UBLTR_MAIN", [TOTAL, NOTE], "acme")
        second = service.get_or_compile_custom("UBLTR_MAIN", [NOTE, TOTAL], "acme")
        assert first is second
        assert fake_engine.compile_count == 1

    def test_profiles_do_not_share_entries(self, service, fake_engine):
        service.get_or_compile_custom("UBLTR_MAIN", [TOTAL], "acme")
        service.get_or_compile_custom("UBLTR_MAIN", [TOTAL], "other")
        assert fake_engine.compile_count == 2

    def test_key_includes_global_assertions(self, service, global_assertions):
        before = service.cache_key("UBLTR_MAIN", [TOTAL], "acme")
        global_assertions["UBLTR_MAIN"] = (NOTE,)
        after = service.cache_key("UBLTR_MAIN", [TOTAL], "acme")
        assert before.profile_name == after.profile_name == "acme"
        assert before.fingerprint != after.fingerprint

    def test_anonymous_profile(self, service):
        assert service.cache_key("UBLTR_MAIN", [TOTAL], None).profile_name == "anonymous"

    def test_custom_pattern_and_audit(self, service, storage):
        artifact = service.get_or_compile_custom("UBLTR_MAIN", [TOTAL], "acme")
        root = etree.fromstring(artifact.generated_source)
        asserts = root[-1].findall(f"{{{SCHEMATRON_NS}}}rule/{{{SCHEMATRON_NS}}}assert")
        assert [a.get("id") for a in asserts] == ["TotalCheck"]

        audit = storage.generated_path(CUSTOM_SUBDIR) / "UBLTR_MAIN_acme_custom.xml"
        assert "Profile:        acme" in audit.read_text(encoding="utf-8")
        assert (storage.generated_path(CUSTOM_SUBDIR) / "UBLTR_MAIN_acme_custom.xsl").exists()

    def test_failure_not_cached(self, service, fake_engine):
        fake_engine.fail_compile = True
        with pytest.raises(CacheComputeError):
            service.get_or_compile_custom("UBLTR_MAIN", [TOTAL], "acme")
        fake_engine.fail_compile = False
        assert service.get_or_compile_custom("UBLTR_MAIN", [TOTAL], "acme") is not None

    def test_precompiled_stylesheet_rejects_assertions(self, service):
        with pytest.raises(CacheComputeError, match="pre-compiled"):
            service.get_or_compile_custom("EARCHIVE_REPORT", [TOTAL], "acme")
        assert service.precompile("EARCHIVE_REPORT", [TOTAL], "acme") is False


class TestRun:
    """Test running compiled rule-sets."""

    def test_run_base_rule_set(self, service, fake_engine, svrl_two_failures):
        service.reload()
        fake_engine.run_output = svrl_two_failures
        findings = service.run("UBLTR_MAIN", b"<Invoice/>", subtype="earsiv", source_name="/tmp/doc.xml")

        assert [f.rule_id for f in findings] == ["InvoiceIDCheck", "InvoiceRule"]
        executable, parameters, base_location = fake_engine.runs[-1]
        assert parameters == {}
        assert base_location == "/tmp/doc.xml"

    def test_run_passes_exposed_subtype(self, service, fake_engine, storage):
        generated = b"""<xsl:stylesheet version="1.0" xmlns:xsl="http://www.w3.org/1999/XSL/Transform">
          <xsl:variable name="type" select="'efatura'"/>
        </xsl:stylesheet>"""
        storage.write_bytes("rules/main.sch", generated)
        service.reload()
        service.run("UBLTR_MAIN", b"<Invoice/>", subtype="earsiv")
        assert fake_engine.runs[-1][1] == {"type": "earsiv"}

    def test_run_requires_reload(self, service):
        with pytest.raises(SchemaxError, match="not loaded"):
            service.run("UBLTR_MAIN", b"<Invoice/>")
