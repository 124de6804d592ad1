"""Unit tests for the ValidationEngine facade."""

import pytest

from schemax.models import CustomAssertion, MatchMode, Profile, SuppressionRule
from schemax.reload import ReloadStatus
from schemax.rulesets import CUSTOM_SUBDIR
from schemax.service import ValidationEngine

NEW_MAIN_RULES = b"""<sch:schema xmlns:sch="http://purl.oclc.org/dsdl/schematron">
  <sch:pattern id="base">
    <sch:rule context="inv:Invoice" id="InvoiceRule">
      <sch:assert test="inv:ID" id="InvoiceIdCheck">Invoice must have an ID</sch:assert>
      <sch:assert test="inv:IssueDate" id="IssueDateCheck">Invoice must have an issue date</sch:assert>
    </sch:rule>
  </sch:pattern>
</sch:schema>"""


@pytest.fixture
def engine(config, storage, fake_engine, profiles_file):
    validation_engine = ValidationEngine(config, storage, fake_engine)
    validation_engine.reload_all()
    return validation_engine


class TestReloadAll:
    """Test the facade's reload wiring."""

    def test_reload_order(self, engine):
        results = engine.reload_all()
        assert [r.component for r in results] == ["Validation Profiles", "XSD Schemas", "Schematron Rules"]
        assert all(r.status == ReloadStatus.OK for r in results)

    def test_base_rule_set_carries_global_assertions(self, engine, storage):
        generated = engine.rule_sets.get_compiled("UBLTR_MAIN").generated_source
        assert b"custom-rules-global" in generated
        assert b"GlobalNote" in generated


class TestValidate:
    """Test end-to-end validation over a fake engine."""

    def test_profile_suppressions_applied(self, engine, fake_engine, svrl_two_failures):
        fake_engine.run_output = svrl_two_failures
        fake_engine.schema_errors = ["Line 2: Element 'Signature' missing"]

        report = engine.validate(b"<Invoice/>", "UBLTR_MAIN", schema_type="INVOICE", profile="strict")

        assert report.findings.active == ()
        assert report.findings.suppressed_count == 2
        assert report.schema_errors == ("Line 2: Element 'Signature' missing",)
        assert not report.is_valid
        assert report.profile_name == "strict"

    def test_ad_hoc_text_suppresses_schema_errors(self, engine, fake_engine):
        fake_engine.schema_errors = ["Line 2: Element 'Signature' missing"]
        report = engine.validate(
            b"<Invoice/>", "UBLTR_MAIN", schema_type="INVOICE", suppressions=["text:Line 2: .*"],
        )
        assert report.schema_errors == ()
        assert report.suppressed_schema_errors == 1
        assert report.is_valid

    def test_profile_assertions_compile_custom_rule_set(self, engine, fake_engine):
        compiles = fake_engine.compile_count
        engine.validate(b"<Invoice/>", "UBLTR_MAIN", profile="strict")
        engine.validate(b"<Invoice/>", "UBLTR_MAIN", profile="strict")
        assert fake_engine.compile_count == compiles + 1

    def test_clean_document(self, engine):
        report = engine.validate(b"<Invoice/>", "UBLTR_MAIN", profile="base")
        assert report.is_valid
        assert report.findings.total == 0

    def test_unknown_rule_set_type(self, engine):
        with pytest.raises(ValueError):
            engine.validate(b"<Invoice/>", "NOT_A_TYPE")


class TestProfileChanges:
    """Test cache invalidation and pre-compilation on profile writes."""

    def test_save_precompiles(self, engine, storage):
        assertion = CustomAssertion(context="inv:Invoice", test="inv:X", message="x", id="X1")
        engine.save_profile(Profile(
            name="fresh",
            parent="base",
            suppression_rules=(SuppressionRule(match=MatchMode.ID_EXACT, pattern="X1"),),
            custom_assertions={"UBLTR_MAIN": (assertion,)},
        ))

        assert len(engine.rule_sets.cache) == 1
        assert (storage.generated_path(CUSTOM_SUBDIR) / "UBLTR_MAIN_fresh_custom.xml").exists()
        assert [r.pattern for r in engine.resolve_profile("fresh").suppression_rules] == ["InvoiceIDCheck", "X1"]

    def test_delete_invalidates(self, engine):
        engine.validate(b"<Invoice/>", "UBLTR_MAIN", profile="strict")
        assert len(engine.rule_sets.cache) == 1
        assert engine.delete_profile("base") is True
        assert len(engine.rule_sets.cache) == 0
        assert engine.resolve_profile("strict") is None

    def test_save_global_assertions_rebuilds_base(self, engine):
        result = engine.save_global_assertions({})
        assert result.status == ReloadStatus.OK
        assert b"custom-rules-global" not in engine.rule_sets.get_compiled("UBLTR_MAIN").generated_source


class TestAnalyzeImpact:
    """Test impact analysis against the current rule-set source."""

    def test_renamed_id_detected(self, engine):
        warnings = engine.analyze_impact("UBLTR_MAIN", NEW_MAIN_RULES)
        assert len(warnings) == 1
        assert warnings[0].profile_name == "base"
        assert warnings[0].rule_id == "InvoiceIDCheck"
        assert warnings[0].possible_new_id == "InvoiceIdCheck"
