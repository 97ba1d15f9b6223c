"""
Business Profiles.

Lifecycle and blending parameters per business type. Built-in profiles
cover saas, ecommerce, services, events and blog; unknown types resolve to
saas. User profiles can extend a built-in profile using the ``base`` field.

User profile location: userdata/profiles/*.yaml

Example (userdata/profiles/marketplace.yaml):

    name: marketplace
    base: ecommerce
    graduation_threshold: 25
    post_graduation_ratio: 0.9
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from ...models.widgets import clamp_ratio

logger = logging.getLogger(__name__)

DEFAULT_BUSINESS_TYPE = "saas"


@dataclass(frozen=True)
class BusinessProfile:
    """Graduation, lifecycle and blending parameters of one business type."""

    name: str
    graduation_threshold: int = 10
    graduation_enabled: bool = True
    quick_win_ttl_hours: int = 168
    flagged_ttl_hours: int = 24
    auto_expire_quick_wins: bool = True
    max_quick_wins_per_session: int = 3
    pre_graduation_ratio: float = 0.2
    post_graduation_ratio: float = 0.8
    graduation_ctr_factor: float = 1.0
    natural_floor: int = 1
    description: str = ""

    def validate(self) -> list[str]:
        errors = []
        if self.graduation_threshold <= 0:
            errors.append(f"graduation_threshold must be positive, got {self.graduation_threshold}")
        for name in ("pre_graduation_ratio", "post_graduation_ratio"):
            value = getattr(self, name)
            if not (0.0 <= value <= 1.0):
                errors.append(f"{name} must be between 0.0 and 1.0, got {value}")
        if self.graduation_ctr_factor < 0:
            errors.append(
                f"graduation_ctr_factor must be non-negative, got {self.graduation_ctr_factor}"
            )
        if self.natural_floor < 0:
            errors.append(f"natural_floor must be non-negative, got {self.natural_floor}")
        return errors

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


BUILTIN_PROFILES: dict[str, BusinessProfile] = {
    "saas": BusinessProfile(
        name="saas",
        description="Software products: sign-ups and trials",
        graduation_threshold=10,
        quick_win_ttl_hours=168,
        flagged_ttl_hours=24,
        max_quick_wins_per_session=3,
    ),
    "ecommerce": BusinessProfile(
        name="ecommerce",
        description="Online stores: purchases and reviews",
        graduation_threshold=15,
        quick_win_ttl_hours=72,
        flagged_ttl_hours=12,
        max_quick_wins_per_session=2,
    ),
    "services": BusinessProfile(
        name="services",
        description="Service businesses: bookings and inquiries",
        graduation_threshold=8,
        quick_win_ttl_hours=240,
        flagged_ttl_hours=48,
        max_quick_wins_per_session=4,
    ),
    "events": BusinessProfile(
        name="events",
        description="Event organisers: registrations (no graduation)",
        graduation_threshold=20,
        graduation_enabled=False,
        quick_win_ttl_hours=720,
        flagged_ttl_hours=6,
        auto_expire_quick_wins=False,
        max_quick_wins_per_session=2,
    ),
    "blog": BusinessProfile(
        name="blog",
        description="Publishers: subscriptions and comments",
        graduation_threshold=12,
        quick_win_ttl_hours=336,
        flagged_ttl_hours=72,
        max_quick_wins_per_session=5,
    ),
}

_INT_FIELDS = (
    "graduation_threshold",
    "quick_win_ttl_hours",
    "flagged_ttl_hours",
    "max_quick_wins_per_session",
    "natural_floor",
)
_FLOAT_FIELDS = ("graduation_ctr_factor",)
_RATIO_FIELDS = ("pre_graduation_ratio", "post_graduation_ratio")
_BOOL_FIELDS = ("graduation_enabled", "auto_expire_quick_wins")


def get_builtin_profile(business_type: str | None) -> BusinessProfile:
    """Built-in profile for a business type (unknown types resolve to saas)."""
    key = (business_type or DEFAULT_BUSINESS_TYPE).strip().lower()
    return BUILTIN_PROFILES.get(key, BUILTIN_PROFILES[DEFAULT_BUSINESS_TYPE])


class BusinessProfileLoader:
    """
    Business profile loader with inheritance support.

    Resolves profiles in order:
    1. User-defined profiles (userdata/profiles/*.yaml)
    2. Built-in profiles
    3. The default business type

    Usage:
        loader = BusinessProfileLoader(settings.profile_dir)
        profile = loader.get_profile("ecommerce")
    """

    def __init__(
        self,
        user_profile_dir: Path | None = None,
        default_type: str = DEFAULT_BUSINESS_TYPE,
    ) -> None:
        self._user_dir = user_profile_dir
        self._default_type = default_type
        self._user_profiles: dict[str, BusinessProfile] = {}
        self._loaded = False

    def _ensure_loaded(self) -> None:
        """Lazy-load user profiles on first access."""
        if self._loaded:
            return
        self._loaded = True

        if self._user_dir and self._user_dir.exists():
            self._load_user_profiles()

    def _load_user_profiles(self) -> None:
        if not self._user_dir:
            return

        # Sorted so a profile may extend one defined in an earlier file
        for profile_file in sorted(self._user_dir.glob("*.yaml")):
            try:
                with open(profile_file) as f:
                    data = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Failed to load profile {profile_file}: {e}")
                continue

            if not isinstance(data, dict):
                logger.warning(f"Invalid profile file: {profile_file}")
                continue

            name = str(data.get("name", profile_file.stem))
            profile = self._parse_user_profile(name, data)
            errors = profile.validate()
            if errors:
                logger.warning(f"Profile {name} rejected: {'; '.join(errors)}")
                continue
            self._user_profiles[name.lower()] = profile
            logger.debug(f"Loaded user profile: {name}")

    def _parse_user_profile(self, name: str, data: dict[str, Any]) -> BusinessProfile:
        """
        Parse a user profile definition.

        Fields not given are inherited from ``base`` (or from the default
        business type). Values of the wrong type are ignored.
        """
        base_name = data.get("base")
        base: BusinessProfile | None = None
        if isinstance(base_name, str):
            key = base_name.lower()
            base = self._user_profiles.get(key) or BUILTIN_PROFILES.get(key)
            if base is None:
                logger.warning(f"Profile {name} references unknown base: {base_name}")
        if base is None:
            base = get_builtin_profile(self._default_type)

        overrides: dict[str, Any] = {"name": name}
        description = data.get("description")
        overrides["description"] = str(description) if description else f"User profile: {name}"

        for key in _INT_FIELDS:
            value = data.get(key)
            if isinstance(value, int) and not isinstance(value, bool):
                overrides[key] = value
        for key in _FLOAT_FIELDS:
            value = data.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                overrides[key] = float(value)
        for key in _RATIO_FIELDS:
            value = data.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                overrides[key] = clamp_ratio(value)
        for key in _BOOL_FIELDS:
            value = data.get(key)
            if isinstance(value, bool):
                overrides[key] = value

        return replace(base, **overrides)

    def get_profile(self, business_type: str | None) -> BusinessProfile:
        """
        Resolve a business type to a profile.

        Args:
            business_type: Business type (case-insensitive); None or unknown
                types resolve to the default type

        Returns:
            BusinessProfile (never None)
        """
        self._ensure_loaded()

        key = (business_type or self._default_type).strip().lower()
        if key in self._user_profiles:
            return self._user_profiles[key]
        if key in BUILTIN_PROFILES:
            return BUILTIN_PROFILES[key]

        default_key = self._default_type.lower()
        if default_key in self._user_profiles:
            return self._user_profiles[default_key]
        return get_builtin_profile(default_key)

    def list_profiles(self) -> dict[str, list[str]]:
        """
        List all available profiles.

        Returns:
            Dict with 'builtin' and 'user' profile name lists
        """
        self._ensure_loaded()
        return {
            "builtin": sorted(BUILTIN_PROFILES),
            "user": sorted(self._user_profiles),
        }
