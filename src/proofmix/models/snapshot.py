"""
Pool snapshot: everything the admission path needs for one widget.

Fetched from the store in one call and served from the pool cache until it
expires, so evaluation runs entirely in memory.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from .campaigns import Campaign, Playlist
from .events import NotificationEvent
from .widgets import WidgetConfig


@dataclass
class PoolSnapshot:
    """Widget config, campaigns, playlists and candidate events of one widget."""

    widget: WidgetConfig
    campaigns: list[Campaign] = field(default_factory=list)
    playlists: list[Playlist] = field(default_factory=list)
    events: list[NotificationEvent] = field(default_factory=list)
    fetched_at: float = field(default_factory=time.time)

    @property
    def widget_id(self) -> str:
        return self.widget.widget_id

    def campaign_map(self) -> dict[str, Campaign]:
        return {campaign.id: campaign for campaign in self.campaigns}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PoolSnapshot:
        """
        Build a snapshot from a JSON document.

        Playlists of other websites are dropped.

        Raises:
            ValueError: If the widget section or a record is malformed
        """
        widget_data = data.get("widget")
        if not isinstance(widget_data, dict):
            raise ValueError("Snapshot requires a 'widget' object")
        widget = WidgetConfig.from_dict(widget_data)

        campaigns = [Campaign.from_dict(item) for item in data.get("campaigns") or []]
        playlists = [Playlist.from_dict(item) for item in data.get("playlists") or []]
        if widget.website_id is not None:
            playlists = [p for p in playlists if p.website_id == widget.website_id]

        events = []
        for item in data.get("events") or []:
            item = dict(item)
            item.setdefault("widget_id", widget.widget_id)
            events.append(NotificationEvent.from_dict(item))

        return cls(widget=widget, campaigns=campaigns, playlists=playlists, events=events)

    def to_dict(self) -> dict[str, Any]:
        return {
            "widget": self.widget.to_dict(),
            "campaigns": [c.to_dict() for c in self.campaigns],
            "playlists": [p.to_dict() for p in self.playlists],
            "events": [e.to_dict() for e in self.events],
            "fetched_at": self.fetched_at,
        }
