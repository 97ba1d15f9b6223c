"""
Graduation Controller.

Derives a widget's graduation status and lifecycle health from its events,
and flips the widget to the post-graduation ratio once it is ready.

Graduation is one-way: a graduated widget is never downgraded by the
controller. The flip is a single compare-and-set on the widget record, and
a cycle for one widget runs under a store lease so concurrent schedulers
never double-process it.
"""

from __future__ import annotations

import os
import socket
from datetime import datetime, timedelta
from enum import Enum

from ...core.logging import get_logger
from ...models.coerce import to_datetime
from ...models.events import EventStatus
from ...models.graduation import CycleReport, GraduationStatus, LifecycleHealth
from ...models.widgets import WidgetConfig
from ..event_store.protocol import STORE_ERRORS, EventStore, WidgetNotFoundError
from .analytics import (
    AnalyticsUnavailableError,
    compute_analytics,
    compute_health,
    is_ready,
    status_recommendation,
    suggest_ratio,
)
from .profiles import BusinessProfile, BusinessProfileLoader
from .sources import AnalyticsSource, StoreAnalyticsSource

logger = get_logger(__name__)


class CycleOutcome(str, Enum):
    """Outcome of one graduation cycle."""

    GRADUATED = "graduated"
    NOT_READY = "not_ready"
    ALREADY_GRADUATED = "already_graduated"
    SKIPPED_LOCKED = "skipped_locked"
    ABORTED = "aborted"
    CONFLICT = "conflict"


def default_holder() -> str:
    """Lease holder identity of this process."""
    return f"{socket.gethostname()}:{os.getpid()}"


class GraduationController:
    """
    Graduation status, health and auto-graduation for widgets.

    Usage:
        controller = GraduationController(store)
        status = await controller.compute_status("widget-1")
        report = await controller.run_cycle("widget-1")
    """

    def __init__(
        self,
        store: EventStore,
        source: AnalyticsSource | None = None,
        profiles: BusinessProfileLoader | None = None,
        *,
        window_days: int = 7,
        health_window_days: int = 30,
        lease_ttl_seconds: int = 300,
        holder: str | None = None,
    ) -> None:
        self.store = store
        self.source = source or StoreAnalyticsSource()
        self.profiles = profiles or BusinessProfileLoader()
        self.window_days = window_days
        self.health_window_days = health_window_days
        self.lease_ttl_seconds = lease_ttl_seconds
        self.holder = holder or default_holder()

    def profile_for(self, config: WidgetConfig) -> BusinessProfile:
        return self.profiles.get_profile(config.business_type)

    async def _require_config(self, widget_id: str) -> WidgetConfig:
        config = await self.store.get_widget_config(widget_id)
        if config is None:
            raise WidgetNotFoundError(widget_id)
        return config

    async def compute_status(
        self,
        widget_id: str,
        now: float | datetime | None = None,
    ) -> GraduationStatus:
        """
        Compute the graduation status over the trailing window.

        Only approved events count towards graduation.

        Raises:
            WidgetNotFoundError: If the widget has no configuration
            AnalyticsUnavailableError: If view/click counts cannot be fetched
        """
        config = await self._require_config(widget_id)
        return await self._status_for(config, to_datetime(now))

    async def _status_for(self, config: WidgetConfig, now: datetime) -> GraduationStatus:
        profile = self.profile_for(config)
        since = now - timedelta(days=self.window_days)
        events = await self.store.list_events(
            config.widget_id, since=since, statuses=[EventStatus.APPROVED]
        )
        counts = await self.source.fetch_counts(config.widget_id, events)

        analytics = compute_analytics(
            events,
            counts,
            threshold=profile.graduation_threshold,
            window_days=self.window_days,
        )
        ready = is_ready(
            analytics,
            ctr_factor=profile.graduation_ctr_factor,
            graduation_enabled=profile.graduation_enabled,
        )
        recommendation, next_steps = status_recommendation(
            analytics.natural.count, profile.graduation_threshold, ready
        )

        return GraduationStatus(
            widget_id=config.widget_id,
            business_type=profile.name,
            ready=ready,
            graduated=config.graduated,
            graduation_enabled=profile.graduation_enabled,
            natural_count=analytics.natural.count,
            quick_win_count=analytics.quick_win.count,
            graduation_threshold=profile.graduation_threshold,
            graduation_progress=analytics.graduation_progress,
            natural_ctr=analytics.natural.ctr,
            quick_win_ctr=analytics.quick_win.ctr,
            current_ratio=config.effective_ratio(
                profile.pre_graduation_ratio, profile.post_graduation_ratio
            ),
            analytics=analytics,
            recommendation=recommendation,
            next_steps=next_steps,
            suggested_ratio=suggest_ratio(
                analytics.natural.count,
                profile.graduation_threshold,
                analytics.natural.ctr,
                analytics.quick_win.ctr,
            ),
        )

    async def compute_health(
        self,
        widget_id: str,
        now: float | datetime | None = None,
    ) -> LifecycleHealth:
        """
        Compute lifecycle health over the health window.

        All moderation statuses are considered so the flagged ratio is
        meaningful; graduation progress comes from the status computation.
        """
        current = to_datetime(now)
        config = await self._require_config(widget_id)
        profile = self.profile_for(config)
        status = await self._status_for(config, current)

        events = await self.store.list_events(
            widget_id, since=current - timedelta(days=self.health_window_days)
        )
        return compute_health(
            widget_id,
            events,
            threshold=profile.graduation_threshold,
            target_natural_ratio=status.current_ratio,
            progress=status.graduation_progress,
            window_days=self.health_window_days,
        )

    async def auto_graduate(
        self,
        widget_id: str,
        now: float | datetime | None = None,
    ) -> CycleReport:
        """
        Graduate the widget if it is ready.

        One compare-and-set sets ``graduated`` and the post-graduation ratio.
        A version conflict leaves the record untouched and reports CONFLICT;
        the next cycle re-evaluates from scratch.
        """
        current = to_datetime(now)
        config = await self._require_config(widget_id)
        if config.graduated:
            return CycleReport(widget_id=widget_id, outcome=CycleOutcome.ALREADY_GRADUATED.value)

        status = await self._status_for(config, current)
        if not status.ready:
            return CycleReport(
                widget_id=widget_id, outcome=CycleOutcome.NOT_READY.value, status=status
            )

        profile = self.profile_for(config)
        updated = await self.store.compare_and_set_widget_config(
            config.graduate(profile.post_graduation_ratio, current),
            expected_version=config.version,
        )
        if updated is None:
            logger.info(f"Graduation of {widget_id} lost a version race, retrying next cycle")
            return CycleReport(
                widget_id=widget_id, outcome=CycleOutcome.CONFLICT.value, status=status
            )

        logger.info(
            f"Widget {widget_id} graduated: ratio "
            f"{status.current_ratio:.2f} -> {updated.target_ratio:.2f}"
        )
        return CycleReport(
            widget_id=widget_id,
            outcome=CycleOutcome.GRADUATED.value,
            status=status,
            new_ratio=updated.target_ratio,
        )

    async def run_cycle(
        self,
        widget_id: str,
        now: float | datetime | None = None,
    ) -> CycleReport:
        """
        Run one graduation cycle under the widget's lease.

        Never raises for analytics or store failures: they abort only this
        widget's cycle with outcome ABORTED and nothing is mutated.
        """
        try:
            acquired = await self.store.try_acquire_lease(
                widget_id, self.holder, self.lease_ttl_seconds
            )
        except STORE_ERRORS as e:
            logger.warning(f"Graduation lease failed for {widget_id}: {e}")
            return CycleReport(widget_id=widget_id, outcome=CycleOutcome.ABORTED.value, error=str(e))

        if not acquired:
            logger.debug(f"Graduation of {widget_id} skipped: lease held elsewhere")
            return CycleReport(widget_id=widget_id, outcome=CycleOutcome.SKIPPED_LOCKED.value)

        try:
            return await self.auto_graduate(widget_id, now)
        except (AnalyticsUnavailableError, *STORE_ERRORS) as e:
            logger.warning(f"Graduation cycle aborted for {widget_id}: {e}")
            return CycleReport(widget_id=widget_id, outcome=CycleOutcome.ABORTED.value, error=str(e))
        finally:
            try:
                await self.store.release_lease(widget_id, self.holder)
            except STORE_ERRORS as e:
                logger.warning(f"Failed to release graduation lease for {widget_id}: {e}")
