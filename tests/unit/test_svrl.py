"""Unit tests for finding extraction."""

from schemax.svrl import extract_findings


class TestExtractFindings:
    """Test SVRL and legacy output parsing."""

    def test_svrl_failed_asserts(self, svrl_two_failures):
        findings = extract_findings(svrl_two_failures)
        assert len(findings) == 2
        assert findings[0].rule_id == "InvoiceIDCheck"
        assert findings[0].test_expression == "inv:ID"
        assert findings[0].message == "Invoice must have an ID"
        # no own id: falls back to the enclosing fired rule
        assert findings[1].rule_id == "InvoiceRule"
        assert findings[1].message == "Invoice must have an issue date"

    def test_successful_report(self):
        output = b"""<svrl:schematron-output xmlns:svrl="http://purl.oclc.org/dsdl/svrl">
          <svrl:fired-rule context="x"/>
          <svrl:successful-report test="count(x) &gt; 1" id="R9"><svrl:text>Too many</svrl:text></svrl:successful-report>
        </svrl:schematron-output>"""
        findings = extract_findings(output)
        assert [(f.rule_id, f.test_expression, f.message) for f in findings] == [("R9", "count(x) > 1", "Too many")]

    def test_legacy_error_elements(self):
        output = b"""<Errors>
          <Error ruleId="EA-1" test="//Header">Header missing</Error>
          <Error>   </Error>
          <Error>Plain message</Error>
        </Errors>"""
        findings = extract_findings(output)
        assert len(findings) == 2
        assert findings[0].rule_id == "EA-1"
        assert findings[0].test_expression == "//Header"
        assert findings[1].rule_id is None
        assert findings[1].message == "Plain message"

    def test_clean_output(self):
        assert extract_findings(b"<svrl:schematron-output xmlns:svrl='http://purl.oclc.org/dsdl/svrl'/>") == []
        assert extract_findings(b"  ") == []

    def test_non_xml_output(self):
        findings = extract_findings("Fatal: something went wrong\n")
        assert len(findings) == 1
        assert findings[0].message == "Fatal: something went wrong"
        assert findings[0].rule_id is None
