"""Custom assertion injection into rule-set sources."""

import logging
import re
from collections.abc import Sequence
from datetime import datetime

from lxml import etree

from schemax.errors import InjectionError
from schemax.models import CustomAssertion, RuleSetSource

logger = logging.getLogger(__name__)

SCHEMATRON_NS = "http://purl.oclc.org/dsdl/schematron"

_UNSAFE_ID_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def sanitize_identifier(name: str | None) -> str:
    """Map a profile name onto the identifier-safe alphabet ``[a-zA-Z0-9_-]``."""
    if name is None or not name.strip():
        return "unknown"
    return _UNSAFE_ID_CHARS.sub("_", name)


def _comment_safe(text: str) -> str:
    while "--" in text:
        text = text.replace("--", "-")
    return text.rstrip("-")


def _format_timestamp(generated_at: datetime | str | None) -> str:
    if generated_at is None:
        generated_at = datetime.now()
    if isinstance(generated_at, datetime):
        return generated_at.replace(microsecond=0).isoformat()
    return generated_at


def inject_assertions(
    source: RuleSetSource,
    assertions: Sequence[CustomAssertion],
    name: str | None,
    generated_at: datetime | str | None = None,
) -> RuleSetSource:
    """Embed custom assertions into a rule-set source as one extra pattern.

    Assertions are grouped by ``context`` in first-seen order; each group
    becomes one ``sch:rule`` with one ``sch:assert`` per assertion. The new
    ``sch:pattern`` (id ``custom-rules-{name}``) is appended as the last child
    of the rule-set root, preceded by a provenance comment. Incomplete
    assertions are skipped with a warning.

    The output depends only on the arguments: identical inputs, including
    ``generated_at``, give byte-identical output.

    Args:
        source: Rule-set source to extend
        assertions: Assertions in the order they should appear
        name: Profile name, sanitized into the pattern id
        generated_at: Provenance timestamp, defaults to now

    Returns:
        New RuleSetSource with the same base location

    Raises:
        InjectionError: If the source is not a well-formed document
    """
    parser = etree.XMLParser(resolve_entities=False, no_network=True, load_dtd=False)
    try:
        root = etree.fromstring(source.content, parser)
    except etree.XMLSyntaxError as e:
        raise InjectionError(f"Rule-set source is not well-formed: {e}") from e

    grouped: dict[str, list[CustomAssertion]] = {}
    for assertion in assertions:
        if not assertion.is_complete:
            logger.warning(
                f"Skipping incomplete custom assertion (profile: {name}): "
                f"context={assertion.context!r}, test={assertion.test!r}, message={assertion.message!r}"
            )
            continue
        grouped.setdefault(assertion.context, []).append(assertion)

    injected = sum(len(group) for group in grouped.values())
    pattern_id = f"custom-rules-{sanitize_identifier(name)}"

    root.append(etree.Comment(_comment_safe(
        f" Custom Schematron rules, profile: {name}, "
        f"generated: {_format_timestamp(generated_at)}, {injected} assertion(s) "
    )))

    pattern = etree.SubElement(root, f"{{{SCHEMATRON_NS}}}pattern", id=pattern_id)
    for context, group in grouped.items():
        rule = etree.SubElement(pattern, f"{{{SCHEMATRON_NS}}}rule", context=context)
        for assertion in group:
            check = etree.SubElement(rule, f"{{{SCHEMATRON_NS}}}assert", test=assertion.test)
            if assertion.id and assertion.id.strip():
                check.set("id", assertion.id)
            check.text = assertion.message

    logger.info(f"Injected custom assertions: pattern={pattern_id}, {len(grouped)} context(s), {injected} assertion(s)")
    content = etree.tostring(root.getroottree(), encoding="UTF-8", xml_declaration=True)
    return RuleSetSource(content=content, base_location=source.base_location)
