"""
Widget configuration record.

The record is versioned: every write goes through the store's single
compare-and-set operation, which bumps ``version``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from .coerce import as_bool, as_float, as_int, format_datetime, parse_datetime, pick
from .events import EventOrigin


def clamp_ratio(value: float) -> float:
    """Clamp a natural-event share into [0, 1]."""
    return max(0.0, min(1.0, float(value)))


@dataclass
class WidgetConfig:
    """Per-widget blending configuration."""

    widget_id: str
    website_id: str | None = None
    business_type: str = "saas"
    # Empty means every origin is allowed
    allowed_event_sources: list[EventOrigin] = field(default_factory=list)
    target_ratio: float | None = None
    graduated: bool = False
    graduated_at: datetime | None = None
    version: int = 0

    def __post_init__(self) -> None:
        if self.target_ratio is not None:
            self.target_ratio = clamp_ratio(self.target_ratio)
        self.business_type = (self.business_type or "saas").strip().lower()

    def allows_origin(self, origin: EventOrigin) -> bool:
        return not self.allowed_event_sources or origin in self.allowed_event_sources

    def effective_ratio(self, pre_graduation_ratio: float, post_graduation_ratio: float) -> float:
        """Target natural share: explicit override, else the profile ratio for the phase."""
        if self.target_ratio is not None:
            return self.target_ratio
        return clamp_ratio(post_graduation_ratio if self.graduated else pre_graduation_ratio)

    def graduate(self, ratio: float, at: datetime) -> WidgetConfig:
        """Return the graduated copy of this record (version is bumped by the store)."""
        return replace(self, target_ratio=clamp_ratio(ratio), graduated=True, graduated_at=at)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WidgetConfig:
        widget_id = pick(data, "widget_id", "widgetId", "id")
        if not widget_id:
            raise ValueError("Widget config requires 'widget_id'")

        sources_raw = pick(data, "allowed_event_sources", "allowedEventSources", default=[])
        sources: list[EventOrigin] = []
        if isinstance(sources_raw, (list, tuple)):
            for raw in sources_raw:
                origin = EventOrigin.parse(raw)
                if origin is not None and origin not in sources:
                    sources.append(origin)

        return cls(
            widget_id=str(widget_id),
            website_id=pick(data, "website_id", "websiteId"),
            business_type=str(pick(data, "business_type", "businessType", default="saas")),
            allowed_event_sources=sources,
            target_ratio=as_float(pick(data, "target_ratio", "targetRatio"), None),
            graduated=as_bool(data.get("graduated"), False),
            graduated_at=parse_datetime(pick(data, "graduated_at", "graduatedAt")),
            version=as_int(data.get("version"), 0, minimum=0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "widget_id": self.widget_id,
            "website_id": self.website_id,
            "business_type": self.business_type,
            "allowed_event_sources": [origin.value for origin in self.allowed_event_sources],
            "target_ratio": self.target_ratio,
            "graduated": self.graduated,
            "graduated_at": format_datetime(self.graduated_at),
            "version": self.version,
        }
