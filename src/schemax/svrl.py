"""Extraction of findings from compiled rule-set output."""

import logging
import xml.etree.ElementTree as ET

from defusedxml import DefusedXmlException
from defusedxml.ElementTree import fromstring as defused_fromstring

from schemax.models import Finding

logger = logging.getLogger(__name__)

SVRL_NS = "http://purl.oclc.org/dsdl/svrl"

_FIRED_RULE = f"{{{SVRL_NS}}}fired-rule"
_FAILED_ASSERT = f"{{{SVRL_NS}}}failed-assert"
_SUCCESSFUL_REPORT = f"{{{SVRL_NS}}}successful-report"
_TEXT = f"{{{SVRL_NS}}}text"


def _normalize(text: str | None) -> str:
    return " ".join((text or "").split())


def _attribute(element, name: str) -> str | None:
    value = element.get(name)
    return value if value and value.strip() else None


def extract_findings(output: bytes | str) -> list[Finding]:
    """Parse the output of a compiled rule-set into findings.

    Two output shapes are understood:

    - SVRL reports: every ``svrl:failed-assert`` and ``svrl:successful-report``
      becomes a finding. The rule id is the assertion's own ``id`` or, when it
      has none, the id of the closest preceding ``svrl:fired-rule``.
    - ``<Error ruleId="..." test="...">message</Error>`` elements produced by
      pre-compiled stylesheets; blank messages are ignored.

    Output that is not XML at all is reported as a single finding carrying the
    raw text.
    """
    if isinstance(output, bytes):
        text = output.decode("utf-8", errors="replace")
    else:
        text = output
    if not text.strip():
        return []

    try:
        root = defused_fromstring(output)
    except (ET.ParseError, DefusedXmlException) as e:
        logger.debug(f"Rule-set output is not XML, reporting it verbatim: {e}")
        return [Finding(message=text.strip())]

    findings = []
    fired_rule_id = None
    for element in root.iter():
        tag = element.tag
        if tag == _FIRED_RULE:
            fired_rule_id = _attribute(element, "id")
        elif tag in (_FAILED_ASSERT, _SUCCESSFUL_REPORT):
            message_element = element.find(_TEXT)
            message = _normalize("".join(message_element.itertext()) if message_element is not None else "")
            findings.append(Finding(
                rule_id=_attribute(element, "id") or fired_rule_id,
                test_expression=_attribute(element, "test"),
                message=message,
            ))
        elif tag == "Error":
            message = "".join(element.itertext()).strip()
            if message:
                findings.append(Finding(
                    rule_id=_attribute(element, "ruleId"),
                    test_expression=_attribute(element, "test"),
                    message=message,
                ))
    return findings
