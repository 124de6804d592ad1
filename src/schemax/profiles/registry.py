"""Validation profile registry."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from schemax.errors import SchemaxError
from schemax.models import CustomAssertion, Profile, XsdOverride
from schemax.profiles.resolution import ProfileResolver
from schemax.profiles.store import ProfileStore
from schemax.reload import Reloadable, ReloadResult
from schemax.suppression import CompiledRule, compile_rules

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str | None], None]


@dataclass(frozen=True)
class ProfileSnapshot:
    """Everything the registry serves, published as one immutable value."""
    profiles: Mapping[str, Profile] = field(default_factory=dict)
    rules: Mapping[str, tuple[CompiledRule, ...]] = field(default_factory=dict)
    global_assertions: Mapping[str, tuple[CustomAssertion, ...]] = field(default_factory=dict)


class ProfileRegistry(Reloadable):
    """Loads, resolves and serves validation profiles.

    Readers go through ``snapshot`` and never lock; a reload builds a complete
    new snapshot and swaps it in with one assignment. Profile writes hold
    ``reload_lock`` (shared with the reload orchestrator) across the write and
    the reload that follows it; change listeners run afterwards (cache
    invalidation and eager compilation).
    """

    name = "Validation Profiles"

    def __init__(self, store: ProfileStore, reload_lock: threading.Lock | None = None):
        self.store = store
        self._snapshot = ProfileSnapshot()
        self.reload_lock = reload_lock or threading.Lock()
        self._listeners: list[ChangeListener] = []

    @property
    def snapshot(self) -> ProfileSnapshot:
        return self._snapshot

    def add_change_listener(self, listener: ChangeListener) -> None:
        """Register a callback run after every persisted change.

        The callback receives the saved profile's name, or None when the
        change was a deletion or touched the global assertions.
        """
        self._listeners.append(listener)

    def reload(self) -> ReloadResult:
        start = time.perf_counter()
        try:
            document = self.store.load()
        except (SchemaxError, OSError) as e:
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            logger.error(f"Failed to load profiles document: {e}")
            return ReloadResult.failed(self.name, elapsed_ms, str(e))

        resolved, failures = ProfileResolver(document.profiles).resolve_all()
        errors = list(document.errors)
        for name, error in failures.items():
            logger.warning(f"Skipping profile {name}: {error}")
            errors.append(f"{name}: {error}")

        rules = {}
        for name, profile in resolved.items():
            compiled, pattern_errors = compile_rules(profile.suppression_rules)
            rules[name] = compiled
            errors.extend(f"{name}: {e}" for e in pattern_errors)
            logger.debug(
                f"Profile loaded: {name} ({len(profile.suppression_rules)} suppression rule(s), "
                f"{sum(len(v) for v in profile.xsd_overrides.values())} XSD override(s), "
                f"{sum(len(v) for v in profile.custom_assertions.values())} custom assertion(s))"
            )

        if document.global_assertions:
            total = sum(len(v) for v in document.global_assertions.values())
            logger.info(f"Global custom assertions loaded: {len(document.global_assertions)} type(s), {total} assertion(s)")

        self._snapshot = ProfileSnapshot(
            profiles=resolved,
            rules=rules,
            global_assertions=document.global_assertions,
        )

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        if not document.profiles and not errors:
            return ReloadResult.success(self.name, 0, elapsed_ms)
        return ReloadResult.from_counts(self.name, len(resolved), elapsed_ms, list(dict.fromkeys(errors)))

    # Lookups

    def get_profile(self, name: str | None) -> Profile | None:
        """Resolved profile by name, None when unknown or broken."""
        if not name or not name.strip():
            return None
        return self._snapshot.profiles.get(name)

    resolve_profile = get_profile

    def profiles(self) -> Mapping[str, Profile]:
        return self._snapshot.profiles

    def compiled_rules(self, name: str) -> tuple[CompiledRule, ...] | None:
        return self._snapshot.rules.get(name)

    def global_assertions(self, rule_set_type: str | None = None):
        """All global assertions, or those of one rule-set type."""
        snapshot = self._snapshot
        if rule_set_type is None:
            return snapshot.global_assertions
        return snapshot.global_assertions.get(rule_set_type, ())

    def overrides_for(self, profile_name: str | None, schema_type: str) -> tuple[XsdOverride, ...]:
        profile = self.get_profile(profile_name)
        return profile.overrides_for(schema_type) if profile else ()

    def assertions_for(self, profile_name: str | None, rule_set_type: str) -> tuple[CustomAssertion, ...]:
        profile = self.get_profile(profile_name)
        return profile.assertions_for(rule_set_type) if profile else ()

    # Persistence

    def save_profile(self, profile: Profile) -> None:
        """Create or replace a profile's record, then reload.

        Raises:
            ValueError: If the profile name is blank
            OSError: If the profiles document cannot be written
        """
        if not profile.name or not profile.name.strip():
            raise ValueError("Profile name must not be blank")
        with self.reload_lock:
            self.store.put_profile(profile)
            self.reload()
        logger.info(f"Profile saved: {profile.name} ({len(profile.suppression_rules)} suppression rule(s))")
        self._notify(profile.name)

    def delete_profile(self, name: str) -> bool:
        """Delete a profile's record; False when there was none."""
        with self.reload_lock:
            if not self.store.remove_profile(name):
                return False
            self.reload()
        logger.info(f"Profile deleted: {name}")
        self._notify(None)
        return True

    def save_global_assertions(self, assertions: Mapping[str, Sequence[CustomAssertion]]) -> None:
        """Replace the global assertions (an empty mapping removes them), then reload."""
        with self.reload_lock:
            self.store.put_global_assertions({k: tuple(v) for k, v in assertions.items() if v})
            self.reload()
        total = sum(len(v) for v in assertions.values())
        logger.info(f"Global custom assertions saved: {len(assertions)} type(s), {total} assertion(s)")
        self._notify(None)

    def _notify(self, profile_name: str | None) -> None:
        for listener in self._listeners:
            listener(profile_name)
