"""Readable rewrites of libxml2 XML Schema validation messages.

libxml2 reports element names in Clark notation (``{uri}local``) and phrases
facet failures in terms of the schema machinery. The rewrites below keep the
element, the offending value and the expectation, and drop the rest.
Messages with no known shape are only stripped of namespace URIs.
"""

import re

CLARK_NAME = re.compile(r"\{[^{}'\s]+\}(?=\w)")

_ELEMENT = r"Element '(?P<element>[^']+)': "

DATATYPE_NAMES = {
    "date": "a date (YYYY-MM-DD)",
    "dateTime": "a date and time (YYYY-MM-DDThh:mm:ss)",
    "time": "a time (hh:mm:ss)",
    "decimal": "a decimal number",
    "integer": "an integer",
    "int": "an integer",
    "boolean": "true or false",
}


def _expected(items: str) -> str:
    return ", ".join(item.strip() for item in items.split(",") if item.strip())


def _missing_child(m: re.Match) -> str:
    return f"Element '{m['element']}' is incomplete; expected {_expected(m['expected'])}."


def _unexpected(m: re.Match) -> str:
    message = f"Element '{m['element']}' is not allowed here"
    if m["expected"]:
        return f"{message}; expected {_expected(m['expected'])}."
    return f"{message}."


def _invalid_value(m: re.Match) -> str:
    if not m["value"]:
        return f"Element '{m['element']}' must not be empty."
    if not m["type"]:
        return f"Element '{m['element']}' has invalid value '{m['value']}'."
    type_name = m["type"].split(":")[-1]
    expected = DATATYPE_NAMES.get(type_name, f"a valid {type_name}")
    return f"Element '{m['element']}' has invalid value '{m['value']}'; expected {expected}."


def _enumeration(m: re.Match) -> str:
    allowed = ", ".join(v.strip().strip("'") for v in m["allowed"].split(","))
    return f"Element '{m['element']}' has invalid value '{m['value']}'; allowed values: {allowed}."


def _too_short(m: re.Match) -> str:
    return (
        f"Element '{m['element']}' value '{m['value']}' is too short "
        f"({m['length']} characters, minimum {m['limit']})."
    )


def _too_long(m: re.Match) -> str:
    return (
        f"Element '{m['element']}' value '{m['value']}' is too long "
        f"({m['length']} characters, maximum {m['limit']})."
    )


REWRITES = [
    (
        re.compile(_ELEMENT + r"Missing child element\(s\)\. Expected is (?:one of )?\( (?P<expected>.+?) \)\."),
        _missing_child,
    ),
    (
        re.compile(_ELEMENT + r"This element is not expected\.(?: Expected is (?:one of )?\( (?P<expected>.+?) \)\.)?"),
        _unexpected,
    ),
    (
        re.compile(_ELEMENT + r"'(?P<value>[^']*)' is not a valid value of the (?:local )?atomic type(?: '(?P<type>[^']+)')?\."),
        _invalid_value,
    ),
    (
        re.compile(_ELEMENT + r"\[facet 'enumeration'\] The value '(?P<value>[^']*)' is not an element of the set \{(?P<allowed>[^}]*)\}\."),
        _enumeration,
    ),
    (
        re.compile(
            _ELEMENT + r"\[facet 'minLength'\] The value '(?P<value>[^']*)' has a length of '(?P<length>\d+)'; "
            r"this underruns the allowed minimum length of '(?P<limit>\d+)'\."
        ),
        _too_short,
    ),
    (
        re.compile(
            _ELEMENT + r"\[facet 'maxLength'\] The value '(?P<value>[^']*)' has a length of '(?P<length>\d+)'; "
            r"this exceeds the allowed maximum length of '(?P<limit>\d+)'\."
        ),
        _too_long,
    ),
    (
        re.compile(_ELEMENT + r"Element content is not allowed, because the content type is a simple type definition\."),
        lambda m: f"Element '{m['element']}' must hold a text value and no child elements.",
    ),
    (
        re.compile(_ELEMENT + r"Character content other than whitespace is not allowed because the content type is 'element-only'\."),
        lambda m: f"Element '{m['element']}' must not contain text.",
    ),
]


def strip_namespaces(message: str) -> str:
    """Replace ``{uri}local`` names with their local part."""
    return CLARK_NAME.sub("", message)


def humanize_schema_error(message: str, line: int | None = None) -> str:
    """Rewrite one schema validation message, prefixed with its line number.

    Args:
        message: Message as reported by libxml2
        line: Line number in the validated document, if known

    Returns:
        ``"Line {line}: {readable message}"``, or the message alone without a line
    """
    text = strip_namespaces(message.strip())
    for pattern, rewrite in REWRITES:
        match = pattern.fullmatch(text)
        if match:
            text = rewrite(match)
            break
    return f"Line {line}: {text}" if line is not None else text
