"""
Campaign and playlist configuration.

Display rules and playlist rules are stored as opaque JSON. ``from_dict``
never raises on them: missing or malformed fields fall back to bounded
defaults. ``validate()`` reports problems for tooling without rejecting
the configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .coerce import as_bool, as_int, as_str_list, format_datetime, parse_datetime, pick, utcnow

# Widget display defaults
DEFAULT_SHOW_DURATION_MS = 5000
DEFAULT_INTERVAL_MS = 8000
DEFAULT_MAX_PER_PAGE = 5
DEFAULT_MAX_PER_SESSION = 20

# Playlist defaults
DEFAULT_PLAYLIST_MAX_PER_SESSION = 10
DEFAULT_PLAYLIST_COOLDOWN_SECONDS = 300


class CampaignStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"


class SequenceMode(str, Enum):
    """How a playlist orders its campaigns."""

    PRIORITY = "priority"
    SEQUENTIAL = "sequential"
    RANDOM = "random"


class ConflictResolution(str, Enum):
    """How winners of different playlists and ungrouped campaigns are ranked."""

    PRIORITY = "priority"
    NEWEST = "newest"
    OLDEST = "oldest"


def _parse_enum(enum_cls: type[Enum], value: Any, default: Any) -> Any:
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            return default
    return default


@dataclass
class TriggerRules:
    """Behavioural triggers. Configured triggers are OR'd."""

    min_time_on_page_ms: int = 0
    scroll_depth_pct: int = 0
    exit_intent: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> TriggerRules:
        if not isinstance(data, dict):
            return cls()
        return cls(
            min_time_on_page_ms=as_int(
                pick(data, "min_time_on_page_ms", "minTimeOnPageMs"), 0, minimum=0
            ),
            scroll_depth_pct=as_int(
                pick(data, "scroll_depth_pct", "scrollDepthPct"), 0, minimum=0, maximum=100
            ),
            exit_intent=as_bool(pick(data, "exit_intent", "exitIntent"), False),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "min_time_on_page_ms": self.min_time_on_page_ms,
            "scroll_depth_pct": self.scroll_depth_pct,
            "exit_intent": self.exit_intent,
        }

    def is_configured(self) -> bool:
        """Check if any trigger is configured."""
        return self.min_time_on_page_ms > 0 or self.scroll_depth_pct > 0 or self.exit_intent


@dataclass
class DisplayRules:
    """Per-campaign targeting and pacing rules."""

    show_duration_ms: int = DEFAULT_SHOW_DURATION_MS
    interval_ms: int = DEFAULT_INTERVAL_MS
    max_per_page: int = DEFAULT_MAX_PER_PAGE
    max_per_session: int = DEFAULT_MAX_PER_SESSION
    url_allow: list[str] = field(default_factory=list)
    url_deny: list[str] = field(default_factory=list)
    referrer_allow: list[str] = field(default_factory=list)
    referrer_deny: list[str] = field(default_factory=list)
    triggers: TriggerRules = field(default_factory=TriggerRules)
    enforce_verified_only: bool = False
    geo_allow: list[str] = field(default_factory=list)
    geo_deny: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DisplayRules:
        """Create from dictionary, falling back to defaults on malformed values."""
        if not isinstance(data, dict):
            return cls()
        return cls(
            show_duration_ms=as_int(
                pick(data, "show_duration_ms", "showDurationMs"),
                DEFAULT_SHOW_DURATION_MS,
                minimum=0,
            ),
            interval_ms=as_int(
                pick(data, "interval_ms", "intervalMs"), DEFAULT_INTERVAL_MS, minimum=0
            ),
            max_per_page=as_int(
                pick(data, "max_per_page", "maxPerPage"), DEFAULT_MAX_PER_PAGE, minimum=0
            ),
            max_per_session=as_int(
                pick(data, "max_per_session", "maxPerSession"),
                DEFAULT_MAX_PER_SESSION,
                minimum=0,
            ),
            url_allow=as_str_list(pick(data, "url_allow", "url_allowlist", "urlAllow")),
            url_deny=as_str_list(pick(data, "url_deny", "url_denylist", "urlDeny")),
            referrer_allow=as_str_list(
                pick(data, "referrer_allow", "referrer_allowlist", "referrerAllow")
            ),
            referrer_deny=as_str_list(
                pick(data, "referrer_deny", "referrer_denylist", "referrerDeny")
            ),
            triggers=TriggerRules.from_dict(data.get("triggers")),
            enforce_verified_only=as_bool(
                pick(data, "enforce_verified_only", "enforceVerifiedOnly"), False
            ),
            geo_allow=as_str_list(pick(data, "geo_allow", "geo_allowlist", "geoAllow")),
            geo_deny=as_str_list(pick(data, "geo_deny", "geo_denylist", "geoDeny")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "show_duration_ms": self.show_duration_ms,
            "interval_ms": self.interval_ms,
            "max_per_page": self.max_per_page,
            "max_per_session": self.max_per_session,
            "url_allow": list(self.url_allow),
            "url_deny": list(self.url_deny),
            "referrer_allow": list(self.referrer_allow),
            "referrer_deny": list(self.referrer_deny),
            "triggers": self.triggers.to_dict(),
            "enforce_verified_only": self.enforce_verified_only,
            "geo_allow": list(self.geo_allow),
            "geo_deny": list(self.geo_deny),
        }

    def validate(self) -> list[str]:
        """Report configuration problems (does not reject)."""
        errors = []
        if self.max_per_page == 0:
            errors.append("max_per_page is 0: campaign can never be shown")
        if self.max_per_session == 0:
            errors.append("max_per_session is 0: campaign can never be shown")
        if self.max_per_page > self.max_per_session:
            errors.append(
                f"max_per_page ({self.max_per_page}) exceeds "
                f"max_per_session ({self.max_per_session}); session cap wins"
            )
        overlap = set(self.url_allow) & set(self.url_deny)
        if overlap:
            errors.append(f"URL patterns both allowed and denied: {sorted(overlap)}")
        return errors


@dataclass
class Campaign:
    """A campaign groups events of one widget under a set of display rules."""

    id: str
    widget_id: str
    website_id: str | None = None
    status: CampaignStatus = CampaignStatus.DRAFT
    priority: int = 0
    created_at: datetime = field(default_factory=utcnow)
    display_rules: DisplayRules = field(default_factory=DisplayRules)
    name: str = ""

    @property
    def is_active(self) -> bool:
        return self.status == CampaignStatus.ACTIVE

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Campaign:
        campaign_id = pick(data, "id")
        widget_id = pick(data, "widget_id", "widgetId")
        if not campaign_id or not widget_id:
            raise ValueError("Campaign requires 'id' and 'widget_id'")
        return cls(
            id=str(campaign_id),
            widget_id=str(widget_id),
            website_id=pick(data, "website_id", "websiteId"),
            status=_parse_enum(CampaignStatus, data.get("status"), CampaignStatus.DRAFT),
            priority=as_int(data.get("priority"), 0),
            created_at=parse_datetime(pick(data, "created_at", "createdAt")) or utcnow(),
            display_rules=DisplayRules.from_dict(pick(data, "display_rules", "displayRules")),
            name=str(data.get("name") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "widget_id": self.widget_id,
            "website_id": self.website_id,
            "name": self.name,
            "status": self.status.value,
            "priority": self.priority,
            "created_at": format_datetime(self.created_at),
            "display_rules": self.display_rules.to_dict(),
        }


@dataclass
class PlaylistRules:
    """Sequencing rules shared by all campaigns of a playlist."""

    sequence_mode: SequenceMode = SequenceMode.PRIORITY
    max_per_session: int = DEFAULT_PLAYLIST_MAX_PER_SESSION
    cooldown_seconds: int = DEFAULT_PLAYLIST_COOLDOWN_SECONDS
    conflict_resolution: ConflictResolution = ConflictResolution.PRIORITY

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PlaylistRules:
        if not isinstance(data, dict):
            return cls()
        return cls(
            sequence_mode=_parse_enum(
                SequenceMode, pick(data, "sequence_mode", "sequenceMode"), SequenceMode.PRIORITY
            ),
            max_per_session=as_int(
                pick(data, "max_per_session", "maxPerSession"),
                DEFAULT_PLAYLIST_MAX_PER_SESSION,
                minimum=0,
            ),
            cooldown_seconds=as_int(
                pick(data, "cooldown_seconds", "cooldownSeconds"),
                DEFAULT_PLAYLIST_COOLDOWN_SECONDS,
                minimum=0,
            ),
            conflict_resolution=_parse_enum(
                ConflictResolution,
                pick(data, "conflict_resolution", "conflictResolution"),
                ConflictResolution.PRIORITY,
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "sequence_mode": self.sequence_mode.value,
            "max_per_session": self.max_per_session,
            "cooldown_seconds": self.cooldown_seconds,
            "conflict_resolution": self.conflict_resolution.value,
        }


@dataclass
class Playlist:
    """An ordered group of campaigns of one website."""

    id: str
    website_id: str
    campaign_order: list[str] = field(default_factory=list)
    rules: PlaylistRules = field(default_factory=PlaylistRules)
    is_active: bool = True
    name: str = ""

    def position_of(self, campaign_id: str) -> int:
        """Order position of a campaign (unknown campaigns sort last)."""
        try:
            return self.campaign_order.index(campaign_id)
        except ValueError:
            return len(self.campaign_order)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Playlist:
        playlist_id = pick(data, "id")
        website_id = pick(data, "website_id", "websiteId")
        if not playlist_id or not website_id:
            raise ValueError("Playlist requires 'id' and 'website_id'")
        order = as_str_list(pick(data, "campaign_order", "campaignOrder"))
        # Duplicates would make a campaign appear twice in one round
        deduped = list(dict.fromkeys(order))
        return cls(
            id=str(playlist_id),
            website_id=str(website_id),
            campaign_order=deduped,
            rules=PlaylistRules.from_dict(data.get("rules")),
            is_active=as_bool(pick(data, "is_active", "isActive"), True),
            name=str(data.get("name") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "website_id": self.website_id,
            "name": self.name,
            "campaign_order": list(self.campaign_order),
            "rules": self.rules.to_dict(),
            "is_active": self.is_active,
        }
