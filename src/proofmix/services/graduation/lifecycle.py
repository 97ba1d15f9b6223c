"""
Event lifecycle maintenance.

Expires quick-win events after the business profile's TTL and removes
flagged events once the flagged TTL has passed.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from ...core.logging import get_logger
from ...models.coerce import to_datetime
from ...models.graduation import MaintenanceReport
from ..event_store.protocol import STORE_ERRORS, EventStore
from .profiles import BusinessProfileLoader

logger = get_logger(__name__)


class LifecycleMaintenance:
    """Per-widget TTL enforcement driven by business profiles."""

    def __init__(self, store: EventStore, profiles: BusinessProfileLoader | None = None) -> None:
        self.store = store
        self.profiles = profiles or BusinessProfileLoader()

    async def run_for_widget(
        self,
        widget_id: str,
        now: float | datetime | None = None,
    ) -> MaintenanceReport:
        """
        Expire old quick-wins and flagged events for one widget.

        Store errors are reported on the result, never raised.
        """
        current = to_datetime(now)
        try:
            config = await self.store.get_widget_config(widget_id)
            if config is None:
                return MaintenanceReport(widget_id=widget_id, error="widget not found")
            profile = self.profiles.get_profile(config.business_type)

            expired = 0
            if profile.auto_expire_quick_wins:
                expired = await self.store.delete_quick_wins_before(
                    widget_id, current - timedelta(hours=profile.quick_win_ttl_hours)
                )
            removed = await self.store.delete_flagged_before(
                widget_id, current - timedelta(hours=profile.flagged_ttl_hours)
            )
        except STORE_ERRORS as e:
            logger.warning(f"Lifecycle maintenance failed for {widget_id}: {e}")
            return MaintenanceReport(widget_id=widget_id, error=str(e))

        if expired or removed:
            logger.info(
                f"Widget {widget_id}: expired {expired} quick-wins, removed {removed} flagged"
            )
        return MaintenanceReport(
            widget_id=widget_id, quick_wins_expired=expired, flagged_removed=removed
        )
