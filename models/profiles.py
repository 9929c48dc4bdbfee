"""Static temperature profiles per storage-location category."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional

from models.records import LocationProfile

DEFAULT_LOCATION = "storage"


class ProfileTableError(RuntimeError):
    """Raised when the profile table cannot serve a lookup at all."""


PROFILES: Mapping[str, LocationProfile] = MappingProxyType(
    {
        "refrigerator": LocationProfile(
            location="refrigerator",
            base_temperature=4.0,
            normal_variance=1.0,
            seasonal_variance=0.5,
            daily_variance=0.3,
            alert_probability=0.02,
        ),
        "freezer": LocationProfile(
            location="freezer",
            base_temperature=-20.0,
            normal_variance=2.0,
            seasonal_variance=1.0,
            daily_variance=0.5,
            alert_probability=0.015,
        ),
        "storage": LocationProfile(
            location="storage",
            base_temperature=20.0,
            normal_variance=2.0,
            seasonal_variance=3.0,
            daily_variance=1.0,
            alert_probability=0.01,
        ),
    }
)


def get_profile(
    location: Optional[str],
    table: Optional[Mapping[str, LocationProfile]] = None,
) -> LocationProfile:
    """Look up a profile by category, falling back to ``storage``."""
    profiles = PROFILES if table is None else table
    if not profiles or DEFAULT_LOCATION not in profiles:
        raise ProfileTableError(
            f"Profile table is missing the {DEFAULT_LOCATION!r} fallback profile."
        )
    key = (location or "").strip().lower()
    return profiles.get(key, profiles[DEFAULT_LOCATION])


def resolve_profile(profile: LocationProfile | str | None) -> LocationProfile:
    if isinstance(profile, LocationProfile):
        return profile
    return get_profile(profile)
