"""
Graduation Scheduler.

Background task that periodically runs, for every widget:
- Lifecycle maintenance (quick-win expiry, flagged cleanup)
- One graduation cycle under the widget's lease

Widgets are processed concurrently, bounded by a semaphore. A failure in one
widget never stops the others.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime

from ...core.config import ProofmixSettings, get_settings
from ...models.graduation import CycleReport, MaintenanceReport
from ..event_store.protocol import EventStore
from .controller import CycleOutcome, GraduationController
from .lifecycle import LifecycleMaintenance
from .profiles import BusinessProfileLoader
from .sources import AnalyticsSource

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 86400  # daily
DEFAULT_CONCURRENCY = 4


@dataclass
class SchedulerStats:
    """Statistics from a scheduler run."""

    widgets_processed: int = 0
    outcomes: dict[str, int] = field(default_factory=dict)
    quick_wins_expired: int = 0
    flagged_removed: int = 0
    errors: int = 0
    duration_seconds: float = 0.0

    @property
    def graduated(self) -> int:
        return self.outcomes.get(CycleOutcome.GRADUATED.value, 0)

    def to_dict(self) -> dict:
        return {
            "widgets_processed": self.widgets_processed,
            "outcomes": dict(self.outcomes),
            "quick_wins_expired": self.quick_wins_expired,
            "flagged_removed": self.flagged_removed,
            "errors": self.errors,
            "duration_seconds": round(self.duration_seconds, 3),
        }


class GraduationScheduler:
    """
    Periodic graduation and lifecycle runner.

    Runs in a loop, sleeping between runs. Should be started as an asyncio
    task and stopped on shutdown.
    """

    def __init__(
        self,
        store: EventStore,
        controller: GraduationController | None = None,
        maintenance: LifecycleMaintenance | None = None,
        *,
        interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
        concurrency: int = DEFAULT_CONCURRENCY,
    ):
        """
        Initialize the scheduler.

        Args:
            store: Event store shared by controller and maintenance
            controller: Graduation controller (built on the store if omitted)
            maintenance: Lifecycle maintenance (built on the store if omitted)
            interval_seconds: How often to run
            concurrency: Maximum widgets processed at once
        """
        self.store = store
        self.controller = controller or GraduationController(store)
        self.maintenance = maintenance or LifecycleMaintenance(store, self.controller.profiles)
        self.interval_seconds = interval_seconds
        self.concurrency = max(1, concurrency)
        self._running = False
        self._task: asyncio.Task | None = None

    @classmethod
    def from_settings(
        cls,
        store: EventStore,
        source: AnalyticsSource | None = None,
        settings: ProofmixSettings | None = None,
    ) -> GraduationScheduler:
        settings = settings or get_settings()
        profiles = BusinessProfileLoader(
            settings.profile_dir, default_type=settings.default_business_type
        )
        controller = GraduationController(
            store,
            source,
            profiles,
            window_days=settings.analytics_window_days,
            health_window_days=settings.health_window_days,
            lease_ttl_seconds=settings.lease_ttl_seconds,
        )
        return cls(
            store,
            controller,
            LifecycleMaintenance(store, profiles),
            interval_seconds=settings.graduation_interval_seconds,
            concurrency=settings.graduation_concurrency,
        )

    async def process_widget(
        self,
        widget_id: str,
        now: float | datetime | None = None,
    ) -> tuple[MaintenanceReport, CycleReport]:
        """Maintenance then one graduation cycle for a single widget."""
        maintenance = await self.maintenance.run_for_widget(widget_id, now)
        cycle = await self.controller.run_cycle(widget_id, now)
        return maintenance, cycle

    async def run_once(
        self,
        widget_ids: list[str] | None = None,
        now: float | datetime | None = None,
    ) -> SchedulerStats:
        """
        Run a single pass over widgets.

        Args:
            widget_ids: Widgets to process (all stored widgets if omitted)
            now: Reference time (defaults to the current time)

        Returns:
            Statistics from the run
        """
        start_time = time.time()
        stats = SchedulerStats()

        if widget_ids is None:
            widget_ids = await self.store.list_widget_ids()

        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(widget_id: str) -> tuple[MaintenanceReport, CycleReport]:
            async with semaphore:
                return await self.process_widget(widget_id, now)

        results = await asyncio.gather(
            *(bounded(widget_id) for widget_id in widget_ids),
            return_exceptions=True,
        )

        outcomes: Counter[str] = Counter()
        for widget_id, result in zip(widget_ids, results):
            stats.widgets_processed += 1
            if isinstance(result, BaseException):
                logger.error("Graduation run failed for %s: %s", widget_id, result)
                stats.errors += 1
                outcomes[CycleOutcome.ABORTED.value] += 1
                continue

            maintenance, cycle = result
            stats.quick_wins_expired += maintenance.quick_wins_expired
            stats.flagged_removed += maintenance.flagged_removed
            if maintenance.error or cycle.error:
                stats.errors += 1
            outcomes[cycle.outcome] += 1

        stats.outcomes = dict(outcomes)
        stats.duration_seconds = time.time() - start_time

        if stats.graduated > 0:
            logger.info(
                "Graduation run complete: %d of %d widgets graduated in %.2fs",
                stats.graduated,
                stats.widgets_processed,
                stats.duration_seconds,
            )
        else:
            logger.debug("Graduation run complete: %d widgets, none graduated", len(widget_ids))

        return stats

    async def run(self) -> None:
        """
        Run the scheduler loop continuously.

        Runs until cancelled. Whole-run failures back off exponentially.
        """
        self._running = True
        backoff = 60.0
        max_backoff = 3600.0

        logger.info(
            "Graduation scheduler started (interval=%d seconds, concurrency=%d)",
            self.interval_seconds,
            self.concurrency,
        )

        while self._running:
            try:
                await self.run_once()
                backoff = 60.0
                await asyncio.sleep(self.interval_seconds)

            except asyncio.CancelledError:
                logger.info("Graduation scheduler cancelled")
                break

            except Exception as e:
                logger.error(
                    "Graduation scheduler error, retrying in %.0fs: %s",
                    backoff,
                    e,
                )
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, max_backoff)

        self._running = False
        logger.info("Graduation scheduler stopped")

    def start(self) -> asyncio.Task:
        """
        Start the scheduler as a background task.

        Returns:
            The asyncio Task running the scheduler loop
        """
        if self._task is not None and not self._task.done():
            raise RuntimeError("Graduation scheduler already running")

        self._task = asyncio.create_task(self.run(), name="graduation-scheduler")
        return self._task

    async def stop(self, timeout: float = 5.0) -> None:
        """
        Stop the scheduler gracefully.

        Args:
            timeout: How long to wait for the task to finish
        """
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await asyncio.wait_for(self._task, timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Graduation scheduler did not stop within timeout")
            except asyncio.CancelledError:
                pass
