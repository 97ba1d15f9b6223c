"""
Tests for the PlaylistOrchestrator admission cycle.
"""

from __future__ import annotations

import random
from datetime import datetime, timezone

import pytest

from proofmix.models import EventOrigin, SessionState
from proofmix.services.admission import CycleState, PlaylistOrchestrator, SessionThrottle
from proofmix.services.admission.blending import BlendingPolicy

T0 = 1_767_225_600.0


@pytest.fixture
def orchestrator() -> PlaylistOrchestrator:
    rng = random.Random(42)
    return PlaylistOrchestrator(
        throttle=SessionThrottle(recent_window=3),
        blending=BlendingPolicy(rng=rng),
        rng=rng,
    )


@pytest.fixture
def events(make_event):
    return [make_event(f"n{i}") for i in range(3)] + [
        make_event("q1", origin=EventOrigin.QUICK_WIN),
    ]


def confirm(orchestrator, session, result, now):
    """Apply a selection to the session the way the engine does after rendering."""
    selection = result.selection
    orchestrator.throttle.record_show(
        session,
        selection.campaign_id,
        now=now,
        playlist_id=selection.playlist_id,
        playlist_cooldown_seconds=selection.playlist_cooldown_seconds,
        event_id=selection.event.id,
        origin=selection.event.origin,
    )


# =============================================================================
# Priority Sequencing
# =============================================================================


class TestPrioritySequencing:
    def test_highest_priority_then_next_after_interval(
        self, orchestrator, session, context, make_campaign, make_playlist, make_snapshot, events
    ):
        """A(80) is shown first; while A waits out its interval B(50) is next."""
        snapshot = make_snapshot(
            campaigns=[make_campaign("A", priority=80), make_campaign("B", priority=50)],
            playlists=[make_playlist("pl-1", ["A", "B"], cooldown_seconds=0)],
            events=events,
        )

        first = orchestrator.run_cycle(snapshot, session, context, 1.0, now=T0)
        assert first.state == CycleState.SELECT_ONE
        assert first.selection.campaign_id == "A"
        assert first.selection.playlist_id == "pl-1"
        confirm(orchestrator, session, first, T0)

        second = orchestrator.run_cycle(snapshot, session, context, 1.0, now=T0 + 1)
        assert second.selection.campaign_id == "B"

        later = orchestrator.run_cycle(snapshot, session, context, 1.0, now=T0 + 9)
        assert later.selection.campaign_id == "A"

    def test_playlist_cooldown_blocks_every_member(
        self, orchestrator, session, context, make_campaign, make_playlist, make_snapshot, events
    ):
        snapshot = make_snapshot(
            campaigns=[make_campaign("A", priority=80), make_campaign("B", priority=50)],
            playlists=[make_playlist("pl-1", ["A", "B"])],
            events=events,
        )

        first = orchestrator.run_cycle(snapshot, session, context, 1.0, now=T0)
        assert first.selection.playlist_cooldown_seconds == 300
        confirm(orchestrator, session, first, T0)

        blocked = orchestrator.run_cycle(snapshot, session, context, 1.0, now=T0 + 10)
        assert blocked.state == CycleState.NONE_AVAILABLE
        assert blocked.reason == "no_eligible_campaign"
        assert {t.reason for t in blocked.trace} == {"playlist_cooldown"}

        reopened = orchestrator.run_cycle(snapshot, session, context, 1.0, now=T0 + 300)
        assert reopened.selected

    def test_equal_priority_keeps_playlist_order(
        self, orchestrator, session, context, make_campaign, make_playlist, make_snapshot, events
    ):
        snapshot = make_snapshot(
            campaigns=[make_campaign("A"), make_campaign("B")],
            playlists=[make_playlist("pl-1", ["B", "A"])],
            events=events,
        )

        result = orchestrator.run_cycle(snapshot, session, context, 1.0, now=T0)

        assert result.selection.campaign_id == "B"

    def test_other_website_campaign_is_skipped(
        self, orchestrator, session, context, make_campaign, make_playlist, make_snapshot, events
    ):
        snapshot = make_snapshot(
            campaigns=[
                make_campaign("A", priority=90, website_id="site-2"),
                make_campaign("B", priority=10),
            ],
            playlists=[make_playlist("pl-1", ["A", "B"])],
            events=events,
        )

        result = orchestrator.run_cycle(snapshot, session, context, 1.0, now=T0)

        assert result.selection.campaign_id == "B"


# =============================================================================
# Sequential And Random Modes
# =============================================================================


class TestSequenceModes:
    def test_sequential_round_robin(
        self, orchestrator, session, context, make_campaign, make_playlist, make_snapshot, events
    ):
        no_interval = {"interval_ms": 0}
        snapshot = make_snapshot(
            campaigns=[
                make_campaign("A", priority=1, rules=no_interval),
                make_campaign("B", priority=99, rules=no_interval),
                make_campaign("C", priority=50, rules=no_interval),
            ],
            playlists=[
                make_playlist("pl-1", ["A", "B", "C"], sequence_mode="sequential", cooldown_seconds=0)
            ],
            events=events,
        )

        shown = []
        for step in range(4):
            result = orchestrator.run_cycle(snapshot, session, context, 1.0, now=T0 + step)
            shown.append(result.selection.campaign_id)
            confirm(orchestrator, session, result, T0 + step)

        assert shown == ["A", "B", "C", "A"]

    def test_sequential_skips_campaign_ineligible_for_page(
        self, orchestrator, session, context, make_campaign, make_playlist, make_snapshot, events
    ):
        snapshot = make_snapshot(
            campaigns=[
                make_campaign("A", rules={"url_allow": ["/checkout"]}),
                make_campaign("B"),
            ],
            playlists=[make_playlist("pl-1", ["A", "B"], sequence_mode="sequential")],
            events=events,
        )

        result = orchestrator.run_cycle(snapshot, session, context, 1.0, now=T0)

        assert result.selection.campaign_id == "B"
        assert result.trace[0].reason == "url_not_allowed"

    def test_sequential_round_wraps_past_campaign_without_events(
        self, orchestrator, session, context, make_campaign, make_playlist, make_snapshot, make_event
    ):
        no_interval = {"interval_ms": 0}
        snapshot = make_snapshot(
            campaigns=[make_campaign(cid, rules=no_interval) for cid in ("A", "B", "C")],
            playlists=[
                make_playlist("pl-1", ["A", "B", "C"], sequence_mode="sequential", cooldown_seconds=0)
            ],
            events=[make_event("a1", campaign_id="A"), make_event("b1", campaign_id="B")],
        )

        shown = []
        for step in range(4):
            result = orchestrator.run_cycle(snapshot, session, context, 1.0, now=T0 + step)
            assert result.selected, result.reason
            shown.append(result.selection.campaign_id)
            confirm(orchestrator, session, result, T0 + step)

        assert shown == ["A", "B", "A", "B"]

    def test_sequential_round_wraps_when_quick_win_cap_reached(
        self, orchestrator, session, context, make_campaign, make_playlist, make_snapshot, make_event
    ):
        no_interval = {"interval_ms": 0}
        snapshot = make_snapshot(
            campaigns=[make_campaign(cid, rules=no_interval) for cid in ("A", "B")],
            playlists=[
                make_playlist("pl-1", ["A", "B"], sequence_mode="sequential", cooldown_seconds=0)
            ],
            events=[
                make_event("a1", campaign_id="A"),
                make_event("b1", EventOrigin.QUICK_WIN, campaign_id="B"),
            ],
        )

        shown = []
        for step in range(3):
            result = orchestrator.run_cycle(
                snapshot, session, context, 0.0, now=T0 + step, allow_filler=False
            )
            assert result.selected, result.reason
            shown.append(result.selection.campaign_id)
            confirm(orchestrator, session, result, T0 + step)

        assert shown == ["A", "A", "A"]

    def test_random_mode_reaches_every_campaign(
        self, orchestrator, context, make_campaign, make_playlist, make_snapshot, events
    ):
        snapshot = make_snapshot(
            campaigns=[make_campaign(cid) for cid in ("A", "B", "C")],
            playlists=[make_playlist("pl-1", ["A", "B", "C"], sequence_mode="random")],
            events=events,
        )

        chosen = set()
        for index in range(60):
            fresh = SessionState.new("widget-1", now=T0, session_id=f"s{index}")
            chosen.add(orchestrator.run_cycle(snapshot, fresh, context, 1.0, now=T0).selection.campaign_id)

        assert chosen == {"A", "B", "C"}


# =============================================================================
# Conflict Resolution
# =============================================================================


class TestConflictResolution:
    def test_priority_across_playlist_and_ungrouped(
        self, orchestrator, session, context, make_campaign, make_playlist, make_snapshot, events
    ):
        snapshot = make_snapshot(
            campaigns=[make_campaign("A", priority=10), make_campaign("U", priority=50)],
            playlists=[make_playlist("pl-1", ["A"])],
            events=events,
        )

        result = orchestrator.run_cycle(snapshot, session, context, 1.0, now=T0)

        assert result.selection.campaign_id == "U"
        assert result.selection.playlist_id is None
        assert result.selection.playlist_cooldown_seconds == 0

    def test_newest_rule(
        self, orchestrator, session, context, make_campaign, make_playlist, make_snapshot, events
    ):
        snapshot = make_snapshot(
            campaigns=[
                make_campaign("A", priority=100, created_at=datetime(2026, 1, 1, tzinfo=timezone.utc)),
                make_campaign("U", priority=0, created_at=datetime(2026, 2, 1, tzinfo=timezone.utc)),
            ],
            playlists=[make_playlist("pl-1", ["A"], conflict_resolution="newest")],
            events=events,
        )

        result = orchestrator.run_cycle(snapshot, session, context, 1.0, now=T0)

        assert result.selection.campaign_id == "U"

    def test_oldest_rule(
        self, orchestrator, session, context, make_campaign, make_playlist, make_snapshot, events
    ):
        snapshot = make_snapshot(
            campaigns=[
                make_campaign("A", created_at=datetime(2026, 3, 1, tzinfo=timezone.utc)),
                make_campaign("U", created_at=datetime(2025, 6, 1, tzinfo=timezone.utc)),
            ],
            playlists=[make_playlist("pl-1", ["A"], conflict_resolution="oldest")],
            events=events,
        )

        assert orchestrator.run_cycle(snapshot, session, context, 1.0, now=T0).selection.campaign_id == "U"


# =============================================================================
# Outcomes
# =============================================================================


class TestOutcomes:
    def test_no_campaigns(self, orchestrator, session, context, make_snapshot, events):
        result = orchestrator.run_cycle(make_snapshot(events=events), session, context, 1.0, now=T0)

        assert result.state == CycleState.NONE_AVAILABLE
        assert result.reason == "no_campaigns"

    def test_no_eligible_campaign(
        self, orchestrator, session, context, make_campaign, make_snapshot, events
    ):
        snapshot = make_snapshot(
            campaigns=[make_campaign("A", rules={"url_deny": ["/products/*"]})],
            events=events,
        )

        result = orchestrator.run_cycle(snapshot, session, context, 1.0, now=T0)

        assert result.reason == "no_eligible_campaign"
        assert result.trace[0].reason == "url_denied"

    def test_campaign_without_events_is_skipped(
        self, orchestrator, session, context, make_campaign, make_snapshot, make_event
    ):
        snapshot = make_snapshot(
            campaigns=[make_campaign("A", priority=9), make_campaign("B", priority=1)],
            events=[make_event("only-b", campaign_id="B")],
        )

        result = orchestrator.run_cycle(snapshot, session, context, 1.0, now=T0)

        assert result.selection.campaign_id == "B"
        traces = {t.campaign_id: t for t in result.trace}
        assert traces["A"].reason == "no_selectable_event"

    def test_filler_only_campaign_skipped_when_filler_disallowed(
        self, orchestrator, session, context, make_campaign, make_snapshot, make_event
    ):
        snapshot = make_snapshot(
            campaigns=[make_campaign("A")],
            events=[make_event("q1", origin=EventOrigin.QUICK_WIN)],
        )

        result = orchestrator.run_cycle(
            snapshot, session, context, 0.0, now=T0, allow_filler=False
        )

        assert result.state == CycleState.NONE_AVAILABLE

    def test_states_visited(
        self, orchestrator, session, context, make_campaign, make_snapshot, events
    ):
        snapshot = make_snapshot(campaigns=[make_campaign("A")], events=events)

        result = orchestrator.run_cycle(snapshot, session, context, 1.0, now=T0)

        assert result.states == [
            CycleState.IDLE,
            CycleState.COLLECT_CANDIDATES,
            CycleState.FILTER_ELIGIBLE,
            CycleState.SELECT_ONE,
        ]
        assert result.to_dict()["state"] == "select_one"

    def test_cycle_does_not_mutate_session(
        self, orchestrator, session, context, make_campaign, make_playlist, make_snapshot, events
    ):
        snapshot = make_snapshot(
            campaigns=[make_campaign("A"), make_campaign("B")],
            playlists=[make_playlist("pl-1", ["A", "B"], sequence_mode="sequential")],
            events=events,
        )
        before = session.to_dict()

        for step in range(3):
            orchestrator.run_cycle(snapshot, session, context, 0.5, now=T0 + step)

        assert session.to_dict() == before
