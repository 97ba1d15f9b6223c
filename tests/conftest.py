"""
proofmix Test Suite - Shared Fixtures and Configuration

Provides factories for events, campaigns, playlists, widgets and sessions,
and resets module-level singletons between tests.
"""

from __future__ import annotations

import random
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from proofmix.models import (
    Campaign,
    CampaignStatus,
    DisplayRules,
    EventOrigin,
    EventStatus,
    NotificationEvent,
    PageContext,
    Playlist,
    PlaylistRules,
    PoolSnapshot,
    SessionState,
    WidgetConfig,
)

# Fixed reference time for admission tests (epoch seconds)
T0 = 1_767_225_600.0  # 2026-01-01T00:00:00Z

WIDGET_ID = "widget-1"
WEBSITE_ID = "site-1"


# =============================================================================
# Singleton Reset
# =============================================================================


@pytest.fixture(autouse=True)
def reset_all_singletons():
    """
    Reset module-level singletons between tests.

    Resets:
    - Settings cache (MUST be first - other modules read from settings)
    - Logging state (so caplog can capture records)
    """

    def do_reset():
        from proofmix.core.config import reset_settings

        reset_settings()

        from proofmix.core.logging import reset_logging

        reset_logging()

    do_reset()
    yield
    do_reset()


@pytest.fixture(autouse=True)
def isolated_instance(tmp_path, monkeypatch):
    """Point settings at a temporary instance root so no test touches real data."""
    monkeypatch.setenv("PROOFMIX_INSTANCE_ROOT", str(tmp_path / "instance"))
    monkeypatch.delenv("PROOFMIX_DB_PATH", raising=False)
    monkeypatch.delenv("PROOFMIX_PROFILE_DIR", raising=False)
    monkeypatch.delenv("PROOFMIX_ANALYTICS_URL", raising=False)


# =============================================================================
# RNG Fixtures
# =============================================================================


@pytest.fixture
def seeded_rng() -> random.Random:
    """
    Return a seeded Random instance for deterministic randomness in tests.

    Admission components take the RNG by injection, so tests never touch
    global random state.
    """
    return random.Random(42)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_event() -> Callable[..., NotificationEvent]:
    """
    Factory for approved notification events.

    Usage:
        def test_pool(make_event):
            event = make_event("e1", origin=EventOrigin.QUICK_WIN)
    """

    def factory(
        event_id: str,
        origin: EventOrigin = EventOrigin.NATURAL,
        *,
        widget_id: str = WIDGET_ID,
        campaign_id: str | None = None,
        status: EventStatus = EventStatus.APPROVED,
        quality_score: int = 50,
        views: int = 0,
        clicks: int = 0,
        created_at: datetime | None = None,
        expires_at: datetime | None = None,
    ) -> NotificationEvent:
        return NotificationEvent(
            id=event_id,
            widget_id=widget_id,
            origin=origin,
            status=status,
            quality_score=quality_score,
            campaign_id=campaign_id,
            view_count=views,
            click_count=clicks,
            created_at=created_at or datetime.now(timezone.utc) - timedelta(hours=1),
            expires_at=expires_at,
            payload={"message": f"Someone just signed up ({event_id})"},
        )

    return factory


@pytest.fixture
def make_campaign() -> Callable[..., Campaign]:
    """Factory for active campaigns with default display rules."""

    def factory(
        campaign_id: str,
        *,
        priority: int = 0,
        widget_id: str = WIDGET_ID,
        website_id: str | None = WEBSITE_ID,
        status: CampaignStatus = CampaignStatus.ACTIVE,
        created_at: datetime | None = None,
        rules: dict[str, Any] | None = None,
    ) -> Campaign:
        return Campaign(
            id=campaign_id,
            widget_id=widget_id,
            website_id=website_id,
            status=status,
            priority=priority,
            created_at=created_at or datetime(2026, 1, 1, tzinfo=timezone.utc),
            display_rules=DisplayRules.from_dict(rules or {}),
            name=f"Campaign {campaign_id}",
        )

    return factory


@pytest.fixture
def make_playlist() -> Callable[..., Playlist]:
    """Factory for active playlists."""

    def factory(
        playlist_id: str,
        campaign_order: list[str],
        *,
        website_id: str = WEBSITE_ID,
        **rules: Any,
    ) -> Playlist:
        return Playlist(
            id=playlist_id,
            website_id=website_id,
            campaign_order=list(campaign_order),
            rules=PlaylistRules.from_dict(rules),
        )

    return factory


@pytest.fixture
def make_widget() -> Callable[..., WidgetConfig]:
    def factory(
        widget_id: str = WIDGET_ID,
        *,
        business_type: str = "saas",
        target_ratio: float | None = None,
        graduated: bool = False,
        allowed: list[EventOrigin] | None = None,
    ) -> WidgetConfig:
        return WidgetConfig(
            widget_id=widget_id,
            website_id=WEBSITE_ID,
            business_type=business_type,
            allowed_event_sources=list(allowed or []),
            target_ratio=target_ratio,
            graduated=graduated,
        )

    return factory


@pytest.fixture
def make_snapshot(make_widget) -> Callable[..., PoolSnapshot]:
    """Factory for pool snapshots (widget defaults to a saas widget)."""

    def factory(
        campaigns: list[Campaign] | None = None,
        events: list[NotificationEvent] | None = None,
        playlists: list[Playlist] | None = None,
        widget: WidgetConfig | None = None,
    ) -> PoolSnapshot:
        return PoolSnapshot(
            widget=widget or make_widget(),
            campaigns=list(campaigns or []),
            playlists=list(playlists or []),
            events=list(events or []),
            fetched_at=T0,
        )

    return factory


@pytest.fixture
def session() -> SessionState:
    """Fresh session on page 'home' at T0."""
    return SessionState.new(WIDGET_ID, now=T0, session_id="session-1", page_id="home")


@pytest.fixture
def context() -> PageContext:
    """Plain page view with no behavioural signals."""
    return PageContext(url="https://shop.example/products/shoes", page_id="home")
