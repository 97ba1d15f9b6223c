"""Tests for LifecycleMaintenance and GraduationScheduler."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import aiosqlite
import pytest

pytestmark = pytest.mark.asyncio

from proofmix.core.config import ProofmixSettings
from proofmix.models import EventOrigin, EventStatus
from proofmix.services.graduation import (
    AnalyticsUnavailableError,
    GraduationController,
    GraduationScheduler,
    LifecycleMaintenance,
    StoreAnalyticsSource,
)


def hours_ago(hours: float) -> datetime:
    return datetime.now(timezone.utc) - timedelta(hours=hours)


class PartiallyBrokenSource(StoreAnalyticsSource):
    """Store counters, except for one widget whose analytics are down."""

    def __init__(self, broken_widget: str) -> None:
        self.broken_widget = broken_widget

    async def fetch_counts(self, widget_id, events):
        if widget_id == self.broken_widget:
            raise AnalyticsUnavailableError(widget_id, "timeout")
        return await super().fetch_counts(widget_id, events)


class TestLifecycleMaintenance:
    async def test_expires_by_profile_ttl(self, store, make_widget, make_event):
        await store.create_widget_config(make_widget())
        await store.upsert_events(
            [
                make_event("qw-old", EventOrigin.QUICK_WIN, created_at=hours_ago(24 * 8)),
                make_event("qw-new", EventOrigin.QUICK_WIN),
                make_event("flagged-old", status=EventStatus.FLAGGED, created_at=hours_ago(48)),
                make_event("flagged-new", status=EventStatus.FLAGGED),
                make_event("natural-old", created_at=hours_ago(24 * 8)),
            ]
        )

        report = await LifecycleMaintenance(store).run_for_widget("widget-1")

        assert report.quick_wins_expired == 1
        assert report.flagged_removed == 1
        assert report.error is None
        remaining = {e.id for e in await store.list_events("widget-1")}
        assert remaining == {"qw-new", "flagged-new", "natural-old"}

    async def test_profile_without_quick_win_expiry(self, store, make_widget, make_event):
        await store.create_widget_config(make_widget(business_type="events"))
        await store.upsert_event(
            make_event("qw-ancient", EventOrigin.QUICK_WIN, created_at=hours_ago(24 * 60))
        )

        report = await LifecycleMaintenance(store).run_for_widget("widget-1")

        assert report.quick_wins_expired == 0
        assert await store.get_event("qw-ancient") is not None

    async def test_database_failure_is_reported(self, store, make_widget, monkeypatch):
        await store.create_widget_config(make_widget())

        async def failing(*args, **kwargs):
            raise aiosqlite.OperationalError("disk I/O error")

        monkeypatch.setattr(store, "delete_flagged_before", failing)

        report = await LifecycleMaintenance(store).run_for_widget("widget-1")

        assert report.error == "disk I/O error"
        assert report.flagged_removed == 0

    async def test_unknown_widget(self, store):
        report = await LifecycleMaintenance(store).run_for_widget("widget-404")

        assert report.error == "widget not found"


class TestGraduationScheduler:
    @pytest.fixture
    def seed_widgets(self, store, make_widget, make_event):
        async def seed():
            await store.create_widget_config(make_widget("widget-ready"))
            await store.create_widget_config(make_widget("widget-new"))
            await store.create_widget_config(make_widget("widget-broken"))
            await store.upsert_events(
                [make_event(f"r{i}", widget_id="widget-ready") for i in range(10)]
                + [make_event("n0", widget_id="widget-new")]
                + [make_event(f"b{i}", widget_id="widget-broken") for i in range(10)]
                + [
                    make_event(
                        "stale-qw",
                        EventOrigin.QUICK_WIN,
                        widget_id="widget-new",
                        created_at=hours_ago(24 * 10),
                    )
                ]
            )

        return seed

    async def test_run_once_isolates_failures(self, store, seed_widgets):
        await seed_widgets()
        controller = GraduationController(store, PartiallyBrokenSource("widget-broken"))
        scheduler = GraduationScheduler(store, controller)

        stats = await scheduler.run_once()

        assert stats.widgets_processed == 3
        assert stats.outcomes == {"graduated": 1, "not_ready": 1, "aborted": 1}
        assert stats.graduated == 1
        assert stats.errors == 1
        assert stats.quick_wins_expired == 1
        assert (await store.get_widget_config("widget-ready")).graduated is True
        assert (await store.get_widget_config("widget-broken")).graduated is False

    async def test_unexpected_exception_is_counted(self, store, seed_widgets, monkeypatch):
        await seed_widgets()
        scheduler = GraduationScheduler(store)
        original = scheduler.maintenance.run_for_widget

        async def explode(widget_id, now=None):
            if widget_id == "widget-new":
                raise RuntimeError("boom")
            return await original(widget_id, now)

        monkeypatch.setattr(scheduler.maintenance, "run_for_widget", explode)

        stats = await scheduler.run_once(["widget-ready", "widget-new"])

        assert stats.widgets_processed == 2
        assert stats.errors == 1
        assert stats.outcomes == {"graduated": 1, "aborted": 1}

    async def test_maintenance_failure_still_runs_graduation(
        self, store, seed_widgets, monkeypatch
    ):
        await seed_widgets()

        async def failing(*args, **kwargs):
            raise aiosqlite.OperationalError("database is locked")

        monkeypatch.setattr(store, "delete_flagged_before", failing)

        stats = await GraduationScheduler(store).run_once(["widget-ready"])

        assert stats.errors == 1
        assert stats.outcomes == {"graduated": 1}
        assert (await store.get_widget_config("widget-ready")).graduated is True

    async def test_empty_store(self, store):
        stats = await GraduationScheduler(store).run_once()

        assert stats.widgets_processed == 0
        assert stats.to_dict()["outcomes"] == {}

    async def test_from_settings(self, store):
        settings = ProofmixSettings(graduation_interval_seconds=60, graduation_concurrency=2)

        scheduler = GraduationScheduler.from_settings(store, settings=settings)

        assert scheduler.interval_seconds == 60
        assert scheduler.concurrency == 2
        assert scheduler.maintenance.profiles is scheduler.controller.profiles

    async def test_start_and_stop(self, store):
        scheduler = GraduationScheduler(store, interval_seconds=3600)

        task = scheduler.start()
        await asyncio.sleep(0.05)
        with pytest.raises(RuntimeError):
            scheduler.start()

        await scheduler.stop()

        assert task.done()
