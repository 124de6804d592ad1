"""Validation profiles: persistence, inheritance resolution and the registry."""

from .registry import ProfileRegistry, ProfileSnapshot
from .resolution import ProfileResolver, merge_assertions, merge_overrides
from .store import ProfileRecordError, ProfilesDocument, ProfileStore, parse_profile, profile_to_record

__all__ = [
    "ProfileRecordError",
    "ProfileRegistry",
    "ProfileResolver",
    "ProfileSnapshot",
    "ProfileStore",
    "ProfilesDocument",
    "merge_assertions",
    "merge_overrides",
    "parse_profile",
    "profile_to_record",
]
