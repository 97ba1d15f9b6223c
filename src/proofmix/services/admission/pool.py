"""
Event Pool and Pool Cache.

EventPool is an in-memory view over a widget's candidate events: it answers
"which events may be shown for this campaign right now", split into the
natural (organic) and quick-win (filler) sides.

PoolCache keeps one PoolSnapshot per widget for a bounded time so the
admission hot path performs at most one store fetch.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime

from ...core.logging import get_logger
from ...models.coerce import utcnow
from ...models.events import NotificationEvent
from ...models.snapshot import PoolSnapshot
from ...models.widgets import WidgetConfig

logger = get_logger(__name__)


class PoolUnavailableError(Exception):
    """The event pool for a widget could not be fetched."""

    def __init__(self, widget_id: str, message: str) -> None:
        self.widget_id = widget_id
        self.message = message
        super().__init__(f"Event pool unavailable for widget {widget_id}: {message}")


class EventPool:
    """
    Selectable events of one widget.

    An event is selectable when it is eligible (approved, unexpired) and its
    origin is allowed by the widget's configuration. A campaign sees the
    events attached to it plus the widget-wide events (no campaign).
    """

    def __init__(
        self,
        events: Iterable[NotificationEvent],
        widget: WidgetConfig | None = None,
    ) -> None:
        self._events = list(events)
        self._widget = widget
        self._by_id = {event.id: event for event in self._events}

    def __len__(self) -> int:
        return len(self._events)

    def get(self, event_id: str) -> NotificationEvent | None:
        return self._by_id.get(event_id)

    def selectable(
        self,
        campaign_id: str | None = None,
        now: datetime | None = None,
    ) -> list[NotificationEvent]:
        """
        Events that may be shown now.

        Args:
            campaign_id: Restrict to this campaign's scope (None = all events)
            now: Reference time for expiry (defaults to now)
        """
        current = now or utcnow()
        result = []
        for event in self._events:
            if campaign_id is not None and event.campaign_id not in (campaign_id, None):
                continue
            if not event.is_eligible(current):
                continue
            if self._widget is not None and not self._widget.allows_origin(event.origin):
                continue
            result.append(event)
        return result

    def split(
        self,
        campaign_id: str | None = None,
        now: datetime | None = None,
    ) -> tuple[list[NotificationEvent], list[NotificationEvent]]:
        """Selectable events as (natural, quick_win) sides."""
        natural: list[NotificationEvent] = []
        quick_win: list[NotificationEvent] = []
        for event in self.selectable(campaign_id, now):
            (natural if event.is_organic else quick_win).append(event)
        return natural, quick_win


SnapshotLoader = Callable[[str], Awaitable[PoolSnapshot]]


class PoolCache:
    """
    TTL cache of pool snapshots, one per widget.

    Concurrent misses for the same widget share a single fetch.
    """

    def __init__(self, loader: SnapshotLoader, ttl_seconds: float = 60.0) -> None:
        """
        Initialize cache.

        Args:
            loader: Async callable returning a fresh snapshot for a widget id
            ttl_seconds: Snapshot lifetime (0 disables caching)
        """
        self._loader = loader
        self.ttl_seconds = ttl_seconds
        self._entries: dict[str, PoolSnapshot] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self.hits = 0
        self.misses = 0

    def _is_fresh(self, snapshot: PoolSnapshot, now: float) -> bool:
        return now - snapshot.fetched_at < self.ttl_seconds

    async def get(self, widget_id: str, now: float | None = None) -> PoolSnapshot:
        """
        Return the cached snapshot, fetching it when missing or expired.

        Raises:
            PoolUnavailableError: If the fetch fails
        """
        current = time.time() if now is None else now
        cached = self._entries.get(widget_id)
        if cached is not None and self._is_fresh(cached, current):
            self.hits += 1
            return cached

        lock = self._locks.setdefault(widget_id, asyncio.Lock())
        async with lock:
            # Another task may have refreshed while we waited
            cached = self._entries.get(widget_id)
            if cached is not None and self._is_fresh(cached, current):
                self.hits += 1
                return cached

            self.misses += 1
            snapshot = await self._fetch(widget_id)
            snapshot.fetched_at = current
            self._entries[widget_id] = snapshot
            return snapshot

    async def _fetch(self, widget_id: str) -> PoolSnapshot:
        try:
            return await self._loader(widget_id)
        except PoolUnavailableError:
            raise
        except Exception as e:
            raise PoolUnavailableError(widget_id, f"{type(e).__name__}: {e}") from e

    async def prefetch(self, widget_ids: Iterable[str]) -> dict[str, bool]:
        """
        Warm the cache for several widgets.

        Returns:
            Map of widget id to whether its snapshot is now cached
        """
        ids = list(widget_ids)
        results = await asyncio.gather(*(self.get(wid) for wid in ids), return_exceptions=True)
        status = {}
        for widget_id, result in zip(ids, results):
            if isinstance(result, BaseException):
                logger.warning(f"Prefetch failed for widget {widget_id}: {result}")
                status[widget_id] = False
            else:
                status[widget_id] = True
        return status

    def invalidate(self, widget_id: str | None = None) -> None:
        """Drop one widget's snapshot, or all of them."""
        if widget_id is None:
            self._entries.clear()
        else:
            self._entries.pop(widget_id, None)
