"""
Tests for AdmissionEngine: profile ratios, quick-win caps and confirmation.
"""

from __future__ import annotations

import random

import pytest

from proofmix.models import EventOrigin
from proofmix.services.admission import AdmissionEngine, CycleState
from proofmix.services.graduation import BusinessProfileLoader

T0 = 1_767_225_600.0


@pytest.fixture
def engine() -> AdmissionEngine:
    return AdmissionEngine(rng=random.Random(42), recent_window=3)


class TestTargetRatio:
    def test_pre_graduation_ratio(self, engine, make_widget):
        assert engine.target_ratio_for(make_widget()) == pytest.approx(0.2)

    def test_post_graduation_ratio(self, engine, make_widget):
        assert engine.target_ratio_for(make_widget(graduated=True)) == pytest.approx(0.8)

    def test_explicit_ratio_wins(self, engine, make_widget):
        assert engine.target_ratio_for(make_widget(target_ratio=0.55)) == pytest.approx(0.55)

    def test_unknown_business_type_uses_saas(self, engine, make_widget):
        assert engine.profile_for(make_widget(business_type="bakery")).name == "saas"

    def test_user_profile_ratio(self, tmp_path, make_widget):
        profile_dir = tmp_path / "profiles"
        profile_dir.mkdir()
        (profile_dir / "launch.yaml").write_text(
            "name: launch\nbase: saas\npre_graduation_ratio: 0.05\n"
        )
        engine = AdmissionEngine(BusinessProfileLoader(profile_dir))

        assert engine.target_ratio_for(make_widget(business_type="launch")) == pytest.approx(0.05)


class TestEvaluate:
    def test_selects_and_leaves_session_untouched(
        self, engine, session, context, make_campaign, make_event, make_snapshot
    ):
        snapshot = make_snapshot(campaigns=[make_campaign("A")], events=[make_event("n1")])
        before = session.to_dict()

        result = engine.evaluate(snapshot, session, context, now=T0)

        assert result.state == CycleState.SELECT_ONE
        assert result.selection.event.id == "n1"
        assert session.to_dict() == before

    def test_expired_session(self, engine, session, context, make_campaign, make_event, make_snapshot):
        snapshot = make_snapshot(campaigns=[make_campaign("A")], events=[make_event("n1")])

        result = engine.evaluate(snapshot, session, context, now=session.expires_at)

        assert result.state == CycleState.NONE_AVAILABLE
        assert result.reason == "session_expired"

    def test_quick_win_cap_blocks_filler_only_pool(
        self, engine, session, context, make_campaign, make_event, make_snapshot
    ):
        snapshot = make_snapshot(
            campaigns=[make_campaign("A", rules={"interval_ms": 0})],
            events=[make_event("q1", EventOrigin.QUICK_WIN), make_event("q2", EventOrigin.QUICK_WIN)],
        )

        for step in range(3):
            result = engine.evaluate(snapshot, session, context, now=T0 + step)
            assert result.selection.side == "quick_win"
            engine.confirm(result, session, now=T0 + step)

        assert session.quick_win_shown_count == 3
        capped = engine.evaluate(snapshot, session, context, now=T0 + 10)
        assert capped.state == CycleState.NONE_AVAILABLE

    def test_quick_win_cap_falls_back_to_natural(
        self, engine, session, context, make_campaign, make_event, make_snapshot
    ):
        snapshot = make_snapshot(
            campaigns=[make_campaign("A")],
            events=[make_event("n1"), make_event("q1", EventOrigin.QUICK_WIN)],
            widget=None,
        )
        session.quick_win_shown_count = 3

        picks = set()
        for _ in range(20):
            picks.add(engine.evaluate(snapshot, session, context, now=T0).selection.event.id)

        assert picks == {"n1"}


class TestConfirm:
    def test_confirm_moves_to_shown(
        self, engine, session, context, make_campaign, make_playlist, make_event, make_snapshot
    ):
        snapshot = make_snapshot(
            campaigns=[make_campaign("A")],
            playlists=[make_playlist("pl-1", ["A"], cooldown_seconds=120)],
            events=[make_event("n1")],
        )
        result = engine.evaluate(snapshot, session, context, now=T0)

        selection = engine.confirm(result, session, now=T0)

        assert selection.event.id == "n1"
        assert result.state == CycleState.SHOWN
        assert result.states[-2:] == [CycleState.SELECT_ONE, CycleState.SHOWN]
        assert session.shown_in_session_count == 1
        assert session.recent_event_ids == ["n1"]
        assert session.playlist_cooldown_until == {"pl-1": T0 + 120}

    def test_double_confirm_raises(
        self, engine, session, context, make_campaign, make_event, make_snapshot
    ):
        snapshot = make_snapshot(campaigns=[make_campaign("A")], events=[make_event("n1")])
        result = engine.evaluate(snapshot, session, context, now=T0)
        engine.confirm(result, session, now=T0)

        with pytest.raises(ValueError):
            engine.confirm(result, session, now=T0)
        assert session.shown_in_session_count == 1

    def test_confirm_without_selection_raises(self, engine, session, context, make_snapshot):
        result = engine.evaluate(make_snapshot(), session, context, now=T0)

        with pytest.raises(ValueError):
            engine.confirm(result, session, now=T0)
