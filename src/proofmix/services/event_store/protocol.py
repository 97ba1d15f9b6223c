"""
Event Store Protocol Interface.

Defines the storage interface consumed by the admission path (pool
snapshots, view/click counters) and the graduation control loop (widget
config compare-and-set, leases, lifecycle deletes).

Design notes:
- Counters are advanced with atomic ``UPDATE ... SET n = n + 1`` statements,
  never read-modify-write in engine memory.
- Widget configuration is versioned; every update is a compare-and-set on
  ``version``.
- A graduation lease makes one widget's cycle mutually exclusive across
  processes; expired leases may be taken over.
"""

from __future__ import annotations

import time
from abc import abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

import aiosqlite

from ...models.campaigns import Campaign, Playlist
from ...models.events import EventOrigin, EventStatus, NotificationEvent
from ...models.snapshot import PoolSnapshot
from ...models.widgets import WidgetConfig

# =============================================================================
# Exceptions
# =============================================================================


class StoreError(Exception):
    """Base class for event store failures."""


class WidgetNotFoundError(StoreError):
    """The widget has no configuration record."""

    def __init__(self, widget_id: str) -> None:
        self.widget_id = widget_id
        super().__init__(f"Widget not found: {widget_id}")


# Failures a caller must contain: store errors plus unwrapped SQLite driver errors
STORE_ERRORS: tuple[type[Exception], ...] = (StoreError, aiosqlite.Error)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class GraduationLease:
    """Exclusive right to run one widget's graduation cycle."""

    widget_id: str
    holder: str
    acquired_at: float
    expires_at: float

    def is_expired(self, now: float | None = None) -> bool:
        return (time.time() if now is None else now) >= self.expires_at


@dataclass
class StoreStats:
    """Storage statistics for observability."""

    total_widgets: int
    total_campaigns: int
    total_playlists: int
    total_events: int
    events_by_status: dict[str, int]
    active_leases: int
    database_size_bytes: int

    def to_dict(self) -> dict:
        return {
            "total_widgets": self.total_widgets,
            "total_campaigns": self.total_campaigns,
            "total_playlists": self.total_playlists,
            "total_events": self.total_events,
            "events_by_status": dict(self.events_by_status),
            "active_leases": self.active_leases,
            "database_size_bytes": self.database_size_bytes,
        }


# =============================================================================
# Protocol Interface
# =============================================================================


@runtime_checkable
class EventStore(Protocol):
    """
    Abstract interface for event storage.

    Implementations must be async-compatible and safe for concurrent use by
    the admission service and the graduation scheduler.
    """

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @abstractmethod
    async def initialize(self) -> None:
        """Open the store and apply pending migrations."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release resources."""
        ...

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    @abstractmethod
    async def upsert_event(self, event: NotificationEvent) -> None:
        """Insert or replace an event (counters are preserved on replace)."""
        ...

    @abstractmethod
    async def upsert_events(self, events: Iterable[NotificationEvent]) -> int:
        """Insert or replace several events. Returns the number written."""
        ...

    @abstractmethod
    async def get_event(self, event_id: str) -> NotificationEvent | None:
        ...

    @abstractmethod
    async def list_events(
        self,
        widget_id: str,
        *,
        since: datetime | None = None,
        statuses: Iterable[EventStatus] | None = None,
        origins: Iterable[EventOrigin] | None = None,
    ) -> list[NotificationEvent]:
        """
        List a widget's events.

        Args:
            widget_id: Widget to list
            since: Only events created at or after this time
            statuses: Restrict to these moderation statuses
            origins: Restrict to these origins
        """
        ...

    @abstractmethod
    async def increment_view(self, event_id: str) -> bool:
        """Atomically add one view. Returns False if the event is unknown."""
        ...

    @abstractmethod
    async def increment_click(self, event_id: str) -> bool:
        """Atomically add one click. Returns False if the event is unknown."""
        ...

    # -------------------------------------------------------------------------
    # Campaigns and Playlists
    # -------------------------------------------------------------------------

    @abstractmethod
    async def upsert_campaign(self, campaign: Campaign) -> None:
        ...

    @abstractmethod
    async def upsert_playlist(self, playlist: Playlist) -> None:
        ...

    # -------------------------------------------------------------------------
    # Widget Configuration
    # -------------------------------------------------------------------------

    @abstractmethod
    async def create_widget_config(self, config: WidgetConfig) -> WidgetConfig | None:
        """
        Create a widget record at version 1.

        Returns:
            The stored record, or None if the widget already exists
        """
        ...

    @abstractmethod
    async def get_widget_config(self, widget_id: str) -> WidgetConfig | None:
        ...

    @abstractmethod
    async def compare_and_set_widget_config(
        self,
        config: WidgetConfig,
        expected_version: int,
    ) -> WidgetConfig | None:
        """
        Replace a widget record if its stored version matches.

        Returns:
            The stored record with its new version, or None on version conflict
        """
        ...

    @abstractmethod
    async def list_widget_ids(self) -> list[str]:
        ...

    # -------------------------------------------------------------------------
    # Admission Snapshot
    # -------------------------------------------------------------------------

    @abstractmethod
    async def load_snapshot(self, widget_id: str) -> PoolSnapshot:
        """
        Fetch everything the admission path needs for one widget.

        Raises:
            WidgetNotFoundError: If the widget has no configuration
        """
        ...

    # -------------------------------------------------------------------------
    # Graduation Leases
    # -------------------------------------------------------------------------

    @abstractmethod
    async def try_acquire_lease(self, widget_id: str, holder: str, ttl_seconds: int) -> bool:
        """
        Acquire (or renew) the widget's graduation lease.

        Succeeds when no lease exists, the existing lease has expired, or it
        is already held by ``holder``.
        """
        ...

    @abstractmethod
    async def release_lease(self, widget_id: str, holder: str) -> bool:
        """Release a lease held by ``holder``."""
        ...

    @abstractmethod
    async def get_lease(self, widget_id: str) -> GraduationLease | None:
        ...

    # -------------------------------------------------------------------------
    # Lifecycle Maintenance
    # -------------------------------------------------------------------------

    @abstractmethod
    async def delete_quick_wins_before(self, widget_id: str, cutoff: datetime) -> int:
        """Delete quick-win events created before cutoff. Returns rows deleted."""
        ...

    @abstractmethod
    async def delete_flagged_before(self, widget_id: str, cutoff: datetime) -> int:
        """Delete flagged events created before cutoff. Returns rows deleted."""
        ...

    @abstractmethod
    async def get_stats(self) -> StoreStats:
        ...
