"""
Tests for SessionThrottle pacing, caps and playlist cooldowns.
"""

from __future__ import annotations

import pytest

from proofmix.models import DisplayRules, EventOrigin, Playlist, PlaylistRules, SessionState
from proofmix.services.admission import SessionThrottle

T0 = 1_767_225_600.0


@pytest.fixture
def throttle() -> SessionThrottle:
    return SessionThrottle(recent_window=3)


@pytest.fixture
def fresh_session() -> SessionState:
    return SessionState.new("widget-1", now=T0, page_id="p0")


class TestCaps:
    def test_session_cap(self, throttle, fresh_session):
        """max_per_session=2: two shows on different pages, the third is refused."""
        rules = DisplayRules(max_per_session=2, interval_ms=0)

        for index in range(2):
            fresh_session.start_page(f"p{index + 1}")
            assert throttle.can_show(fresh_session, "c1", rules, T0 + index)
            throttle.record_show(fresh_session, "c1", now=T0 + index)

        fresh_session.start_page("p3")
        decision = throttle.check(fresh_session, "c1", rules, T0 + 10)
        assert decision.allowed is False
        assert decision.reason == "max_per_session"

    def test_session_cap_applies_across_campaigns(self, throttle, fresh_session):
        rules = DisplayRules(max_per_session=1, interval_ms=0)
        throttle.record_show(fresh_session, "c1", now=T0)
        assert not throttle.can_show(fresh_session, "c2", rules, T0 + 1)

    def test_page_cap_resets_on_new_page(self, throttle, fresh_session):
        rules = DisplayRules(max_per_page=1, interval_ms=0)
        throttle.record_show(fresh_session, "c1", now=T0)

        assert throttle.check(fresh_session, "c1", rules, T0 + 1).reason == "max_per_page"

        fresh_session.start_page("p1")
        assert throttle.can_show(fresh_session, "c1", rules, T0 + 1)

    def test_same_page_id_does_not_reset(self, throttle, fresh_session):
        rules = DisplayRules(max_per_page=1, interval_ms=0)
        throttle.record_show(fresh_session, "c1", now=T0)
        fresh_session.start_page("p0")
        assert not throttle.can_show(fresh_session, "c1", rules, T0 + 1)


class TestInterval:
    def test_interval_blocks_until_elapsed(self, throttle, fresh_session):
        rules = DisplayRules(interval_ms=8000)
        throttle.record_show(fresh_session, "c1", now=T0)

        decision = throttle.check(fresh_session, "c1", rules, T0 + 5)
        assert decision.reason == "interval"
        assert decision.retry_after_seconds == pytest.approx(3.0)
        assert throttle.can_show(fresh_session, "c1", rules, T0 + 8)

    def test_interval_is_per_campaign(self, throttle, fresh_session):
        rules = DisplayRules(interval_ms=8000)
        throttle.record_show(fresh_session, "c1", now=T0)
        assert throttle.can_show(fresh_session, "c2", rules, T0 + 1)

    def test_check_does_not_mutate(self, throttle, fresh_session):
        rules = DisplayRules(interval_ms=8000)
        throttle.record_show(fresh_session, "c1", now=T0)
        before = fresh_session.to_dict()

        throttle.check(fresh_session, "c1", rules, T0 + 1)
        throttle.can_show(fresh_session, "c1", rules, T0 + 1)

        assert fresh_session.to_dict() == before

    def test_can_show_is_idempotent(self, throttle, fresh_session):
        rules = DisplayRules()
        results = {throttle.can_show(fresh_session, "c1", rules, T0) for _ in range(5)}
        assert results == {True}


class TestPlaylistLimits:
    @pytest.fixture
    def playlist(self) -> Playlist:
        return Playlist(
            id="pl-1",
            website_id="site-1",
            campaign_order=["c1", "c2"],
            rules=PlaylistRules(max_per_session=2, cooldown_seconds=300),
        )

    def test_cooldown(self, throttle, fresh_session, playlist):
        throttle.record_show(
            fresh_session, "c1", now=T0, playlist_id="pl-1", playlist_cooldown_seconds=300
        )

        decision = throttle.check_playlist(fresh_session, playlist, T0 + 100)
        assert decision.reason == "playlist_cooldown"
        assert decision.retry_after_seconds == pytest.approx(200.0)
        assert throttle.can_show_playlist(fresh_session, playlist, T0 + 300)

    def test_playlist_session_cap(self, throttle, fresh_session, playlist):
        for index, campaign_id in enumerate(["c1", "c2"]):
            throttle.record_show(fresh_session, campaign_id, now=T0 + index, playlist_id="pl-1")

        decision = throttle.check_playlist(fresh_session, playlist, T0 + 1000)
        assert decision.reason == "playlist_max_per_session"

    def test_sequential_round_wraps(self, throttle, fresh_session):
        for campaign_id in ["c1", "c2", "c1"]:
            throttle.record_show(fresh_session, campaign_id, now=T0, playlist_id="pl-1")

        assert fresh_session.playlist_rounds["pl-1"] == ["c1"]

    def test_cleanup_expired(self, throttle, fresh_session):
        fresh_session.playlist_cooldown_until = {"old": T0 - 1, "live": T0 + 60}

        assert throttle.cleanup_expired(fresh_session, T0) == 1
        assert list(fresh_session.playlist_cooldown_until) == ["live"]


class TestRecordShow:
    def test_counters_and_timestamp(self, throttle, fresh_session):
        throttle.record_show(fresh_session, "c1", now=T0 + 5)

        assert fresh_session.shown_on_page_count == 1
        assert fresh_session.shown_in_session_count == 1
        assert fresh_session.last_shown_at == {"c1": T0 + 5}

    def test_recent_window_is_bounded(self, throttle, fresh_session):
        for index in range(5):
            throttle.record_show(fresh_session, "c1", now=T0 + index, event_id=f"e{index}")

        assert fresh_session.recent_event_ids == ["e2", "e3", "e4"]

    def test_quick_win_counter(self, throttle, fresh_session):
        throttle.record_show(fresh_session, "c1", now=T0, origin=EventOrigin.QUICK_WIN)
        throttle.record_show(fresh_session, "c1", now=T0, origin=EventOrigin.DEMO)
        throttle.record_show(fresh_session, "c1", now=T0, origin=EventOrigin.NATURAL)
        throttle.record_show(fresh_session, "c1", now=T0, origin=EventOrigin.MANUAL)

        assert fresh_session.quick_win_shown_count == 2
