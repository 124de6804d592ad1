"""Models for rule-set sources, custom assertions and compiled artifacts."""

import hashlib
import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict


@dataclass(frozen=True)
class RuleSetSource:
    """Raw declarative rule text plus the location relative references resolve against."""
    content: bytes
    base_location: str | None = None

    @property
    def content_hash(self) -> str:
        return hashlib.sha256(self.content).hexdigest()


class CustomAssertion(BaseModel):
    """A caller supplied assertion layered into a rule-set before compilation.

    ``context`` selects the nodes the check runs on, ``test`` must hold for
    each of them and ``message`` is reported when it does not. Incomplete
    assertions are accepted here and skipped at injection time.
    """
    context: str | None = None
    test: str | None = None
    message: str | None = None
    id: str | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_complete(self) -> bool:
        return all(value is not None and value.strip() for value in (self.context, self.test, self.message))

    def canonical(self) -> str:
        """Stable serialization used for fingerprints and cache keys."""
        return json.dumps(
            [self.context, self.test, self.message, self.id],
            ensure_ascii=False,
            separators=(",", ":"),
        )

    def to_record(self) -> dict[str, str]:
        record = {"context": self.context, "test": self.test, "message": self.message}
        if self.id and self.id.strip():
            record["id"] = self.id
        return record


def fingerprint_assertions(assertions: Iterable[CustomAssertion]) -> str:
    """Order-independent SHA-256 fingerprint of an assertion set."""
    canonical = sorted({assertion.canonical() for assertion in assertions})
    digest = hashlib.sha256()
    for line in canonical:
        digest.update(line.encode("utf-8"))
        digest.update(b"\n")
    return digest.hexdigest()


@dataclass(frozen=True)
class CompiledArtifact:
    """Executable handle plus the generated source it was compiled from."""
    name: str
    executable: Any = field(compare=False, repr=False)
    generated_source: bytes = field(repr=False)
    parameters: frozenset[str] = frozenset()

    def accepts_parameter(self, name: str) -> bool:
        return name in self.parameters
