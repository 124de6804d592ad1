"""YAML persistence of validation profiles.

Document layout (``validation-profiles.yml``)::

    schematron-rules:            # global assertions, always active
      UBLTR_MAIN:
        - context: ...
          test: ...
          message: ...
          id: ...
    profiles:
      strict:
        description: ...
        extends: base
        suppressions:
          - match: ruleId        # ruleId | ruleIdEquals | test | testEquals | text
            pattern: ...
            scope: [INVOICE]     # list or single value, optional
            description: ...
        xsd-overrides:
          INVOICE:
            - element: cac:Signature
              minOccurs: "0"
        schematron-rules:
          UBLTR_MAIN: [...]
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import jsonschema
import yaml

from schemax.errors import SchemaxError
from schemax.models import CustomAssertion, MatchMode, Profile, SuppressionRule, XsdOverride
from schemax.storage import Storage

logger = logging.getLogger(__name__)

PROFILES_KEY = "profiles"
GLOBAL_RULES_KEY = "schematron-rules"

_NULLABLE_STRING = {"type": ["string", "number", "null"]}

_ASSERTION_LIST = {
    "type": ["array", "null"],
    "items": {
        "type": "object",
        "properties": {
            "context": _NULLABLE_STRING,
            "test": _NULLABLE_STRING,
            "message": _NULLABLE_STRING,
            "id": _NULLABLE_STRING,
        },
    },
}

PROFILE_RECORD_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": ["object", "null"],
    "properties": {
        "description": _NULLABLE_STRING,
        "extends": {"type": ["string", "null"]},
        "suppressions": {
            "type": ["array", "null"],
            "items": {
                "type": "object",
                "required": ["pattern"],
                "properties": {
                    "match": {"enum": [mode.value for mode in MatchMode]},
                    "pattern": {"type": ["string", "number"]},
                    "scope": {
                        "type": ["array", "string", "null"],
                        "items": {"type": ["string", "null"]},
                    },
                    "description": _NULLABLE_STRING,
                },
            },
        },
        "xsd-overrides": {
            "type": ["object", "null"],
            "additionalProperties": {
                "type": ["array", "null"],
                "items": {
                    "type": "object",
                    "properties": {
                        "element": _NULLABLE_STRING,
                        "minOccurs": _NULLABLE_STRING,
                        "maxOccurs": _NULLABLE_STRING,
                    },
                },
            },
        },
        GLOBAL_RULES_KEY: {"type": ["object", "null"], "additionalProperties": _ASSERTION_LIST},
    },
}

_profile_validator = jsonschema.Draft202012Validator(PROFILE_RECORD_SCHEMA)


class ProfileRecordError(SchemaxError):
    """A profile record does not have the expected shape."""

    def __init__(self, profile_name: str, messages: list[str]):
        self.profile_name = profile_name
        self.messages = messages
        super().__init__(f"{profile_name}: invalid profile record: {'; '.join(messages)}")


@dataclass(frozen=True)
class ProfilesDocument:
    """Parsed profiles document; profiles hold their own, unresolved entries."""
    global_assertions: dict[str, tuple[CustomAssertion, ...]] = field(default_factory=dict)
    profiles: dict[str, Profile] = field(default_factory=dict)
    errors: tuple[str, ...] = ()


def _text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value).strip()


def parse_assertions(data: Any) -> dict[str, tuple[CustomAssertion, ...]]:
    """Parse a per-type assertion map, keeping only complete assertions."""
    result = {}
    if not isinstance(data, Mapping):
        return result
    for type_name, items in data.items():
        if not isinstance(items, list):
            continue
        assertions = []
        for item in items:
            if not isinstance(item, Mapping):
                continue
            assertion = CustomAssertion(
                context=_text(item.get("context")),
                test=_text(item.get("test")),
                message=_text(item.get("message")),
                id=_text(item.get("id")),
            )
            if assertion.is_complete:
                assertions.append(assertion)
        if assertions:
            result[str(type_name).strip()] = tuple(assertions)
    return result


def _parse_scope(value: Any) -> frozenset[str]:
    if isinstance(value, list):
        return frozenset(s for s in (_text(v) for v in value if v is not None) if s)
    if isinstance(value, str) and value.strip():
        return frozenset([value.strip()])
    return frozenset()


def _parse_overrides(data: Any) -> dict[str, tuple[XsdOverride, ...]]:
    result = {}
    if not isinstance(data, Mapping):
        return result
    for schema_type, items in data.items():
        if not isinstance(items, list):
            continue
        overrides = []
        for item in items:
            if not isinstance(item, Mapping):
                continue
            element = _text(item.get("element"))
            if element:
                overrides.append(XsdOverride(
                    element=element,
                    min_occurs=_text(item.get("minOccurs")),
                    max_occurs=_text(item.get("maxOccurs")),
                ))
        if overrides:
            result[str(schema_type).strip()] = tuple(overrides)
    return result


def parse_profile(name: str, record: Any) -> Profile:
    """Build a Profile from one record of the ``profiles`` map.

    Raises:
        ProfileRecordError: If the record does not match the expected shape
    """
    errors = sorted(_profile_validator.iter_errors(record), key=lambda e: list(e.path))
    if errors:
        raise ProfileRecordError(name, [f"{e.json_path}: {e.message}" for e in errors])
    record = record or {}

    rules = []
    for item in record.get("suppressions") or []:
        rules.append(SuppressionRule(
            match=MatchMode(item.get("match", MatchMode.ID_REGEX.value)),
            pattern=str(item["pattern"]),
            scope=_parse_scope(item.get("scope")),
            description=_text(item.get("description")),
        ))

    parent = _text(record.get("extends"))
    return Profile(
        name=name,
        description=_text(record.get("description")) or "",
        parent=parent or None,
        suppression_rules=tuple(rules),
        xsd_overrides=_parse_overrides(record.get("xsd-overrides")),
        custom_assertions=parse_assertions(record.get(GLOBAL_RULES_KEY)),
    )


def assertions_to_records(assertions: Mapping[str, Any]) -> dict[str, list[dict[str, str]]]:
    return {str(type_name): [a.to_record() for a in items] for type_name, items in assertions.items()}


def profile_to_record(profile: Profile) -> dict[str, Any]:
    """Serialize a profile's own entries; empty sections are omitted."""
    record: dict[str, Any] = {}
    if profile.description and profile.description.strip():
        record["description"] = profile.description
    if profile.parent and profile.parent.strip():
        record["extends"] = profile.parent
    if profile.suppression_rules:
        suppressions = []
        for rule in profile.suppression_rules:
            item: dict[str, Any] = {"match": rule.match.value, "pattern": rule.pattern}
            if not rule.is_global():
                item["scope"] = sorted(rule.scope)
            if rule.description and rule.description.strip():
                item["description"] = rule.description
            suppressions.append(item)
        record["suppressions"] = suppressions
    if profile.xsd_overrides:
        record["xsd-overrides"] = {
            schema_type: [o.to_record() for o in overrides]
            for schema_type, overrides in profile.xsd_overrides.items()
        }
    if profile.custom_assertions:
        record[GLOBAL_RULES_KEY] = assertions_to_records(profile.custom_assertions)
    return record


class ProfileStore:
    """Reads and writes the profiles document through a Storage."""

    def __init__(self, storage: Storage, path: str = "validation-profiles.yml"):
        self.storage = storage
        self.path = path

    def load_raw(self) -> dict[str, Any]:
        """Load the document as plain data; a missing file is an empty document.

        Raises:
            SchemaxError: If the document is not valid YAML or not a mapping
        """
        if not self.storage.exists(self.path):
            return {PROFILES_KEY: {}}
        try:
            root = yaml.safe_load(self.storage.read_bytes(self.path))
        except yaml.YAMLError as e:
            raise SchemaxError(f"Invalid YAML in {self.path}: {e}") from e
        if root is None:
            root = {}
        if not isinstance(root, dict):
            raise SchemaxError(f"{self.path} must contain a mapping at the top level")
        if not isinstance(root.get(PROFILES_KEY), dict):
            root[PROFILES_KEY] = {}
        return root

    def load(self) -> ProfilesDocument:
        """Load global assertions and every well-formed profile record."""
        root = self.load_raw()
        profiles = {}
        errors = []
        for name, record in root[PROFILES_KEY].items():
            name = str(name)
            try:
                profiles[name] = parse_profile(name, record)
            except ProfileRecordError as e:
                errors.append(str(e))
                logger.warning(f"Skipping profile {name}: {e}")
        return ProfilesDocument(
            global_assertions=parse_assertions(root.get(GLOBAL_RULES_KEY)),
            profiles=profiles,
            errors=tuple(errors),
        )

    def write_raw(self, root: Mapping[str, Any]) -> None:
        content = yaml.safe_dump(
            dict(root),
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
            indent=2,
        )
        self.storage.write_bytes(self.path, content.encode("utf-8"))
        logger.debug(f"Profiles document written: {self.path}")

    def put_profile(self, profile: Profile) -> None:
        root = self.load_raw()
        root[PROFILES_KEY][profile.name] = profile_to_record(profile)
        self.write_raw(root)

    def remove_profile(self, name: str) -> bool:
        root = self.load_raw()
        if name not in root[PROFILES_KEY]:
            return False
        del root[PROFILES_KEY][name]
        self.write_raw(root)
        return True

    def put_global_assertions(self, assertions: Mapping[str, Any]) -> None:
        """Replace the global assertion section, placing it first in the document."""
        root = self.load_raw()
        root.pop(GLOBAL_RULES_KEY, None)
        if assertions:
            root = {GLOBAL_RULES_KEY: assertions_to_records(assertions), **root}
        self.write_raw(root)
