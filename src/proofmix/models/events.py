"""
Notification event records.

Events are produced by the moderation pipeline (status + quality score) and
consumed read-only by the admission engine. View and click counters are only
ever advanced by the store's atomic increments.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .coerce import as_int, format_datetime, parse_datetime, pick, utcnow


class EventOrigin(str, Enum):
    """Where an event came from."""

    NATURAL = "natural"
    QUICK_WIN = "quick_win"
    DEMO = "demo"
    MANUAL = "manual"

    @classmethod
    def parse(cls, value: Any) -> EventOrigin | None:
        """Parse an origin, accepting ``quickWin`` / ``quick-win`` spellings."""
        if isinstance(value, EventOrigin):
            return value
        if not isinstance(value, str):
            return None
        normalized = value.strip().replace("-", "_")
        if normalized == "quickWin":
            normalized = "quick_win"
        try:
            return cls(normalized.lower())
        except ValueError:
            return None

    @property
    def is_organic(self) -> bool:
        """Real visitor/business activity (the "natural" side of the mix)."""
        return self in ORGANIC_ORIGINS


class EventStatus(str, Enum):
    """Moderation status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FLAGGED = "flagged"


ORGANIC_ORIGINS = frozenset({EventOrigin.NATURAL, EventOrigin.MANUAL})
FILLER_ORIGINS = frozenset({EventOrigin.QUICK_WIN, EventOrigin.DEMO})


@dataclass
class NotificationEvent:
    """A single piece of social proof that may be shown in a widget."""

    id: str
    widget_id: str
    origin: EventOrigin
    status: EventStatus = EventStatus.PENDING
    quality_score: int = 50
    campaign_id: str | None = None
    view_count: int = 0
    click_count: int = 0
    created_at: datetime = field(default_factory=utcnow)
    expires_at: datetime | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.quality_score = max(0, min(100, int(self.quality_score)))
        self.view_count = max(0, int(self.view_count))
        self.click_count = max(0, int(self.click_count))

    def is_eligible(self, now: datetime | None = None) -> bool:
        """Approved and not expired."""
        if self.status != EventStatus.APPROVED:
            return False
        if self.expires_at is None:
            return True
        return self.expires_at > (now or utcnow())

    @property
    def is_organic(self) -> bool:
        return self.origin.is_organic

    @property
    def message(self) -> str:
        """Rendered message text, if the payload carries one."""
        value = self.payload.get("message") or self.payload.get("message_template") or ""
        return str(value)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NotificationEvent:
        """
        Create from a store row or JSON document.

        Raises:
            ValueError: If the id, widget or origin is missing or unknown
        """
        event_id = pick(data, "id")
        widget_id = pick(data, "widget_id", "widgetId")
        origin = EventOrigin.parse(pick(data, "origin", "source"))
        if not event_id or not widget_id:
            raise ValueError("Event requires 'id' and 'widget_id'")
        if origin is None:
            raise ValueError(f"Event {event_id} has unknown origin: {data.get('origin')!r}")

        raw_status = pick(data, "status", "moderation_status", default="pending")
        try:
            status = EventStatus(str(raw_status).lower())
        except ValueError:
            status = EventStatus.PENDING

        payload = pick(data, "payload", "event_data", default={})
        if not isinstance(payload, dict):
            payload = {}

        return cls(
            id=str(event_id),
            widget_id=str(widget_id),
            origin=origin,
            status=status,
            quality_score=as_int(pick(data, "quality_score", "qualityScore"), 50, 0, 100),
            campaign_id=pick(data, "campaign_id", "campaignId"),
            view_count=as_int(pick(data, "view_count", "views"), 0, 0),
            click_count=as_int(pick(data, "click_count", "clicks"), 0, 0),
            created_at=parse_datetime(pick(data, "created_at", "createdAt")) or utcnow(),
            expires_at=parse_datetime(pick(data, "expires_at", "expiresAt")),
            payload=payload,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "widget_id": self.widget_id,
            "campaign_id": self.campaign_id,
            "origin": self.origin.value,
            "status": self.status.value,
            "quality_score": self.quality_score,
            "view_count": self.view_count,
            "click_count": self.click_count,
            "created_at": format_datetime(self.created_at),
            "expires_at": format_datetime(self.expires_at),
            "payload": self.payload,
        }
