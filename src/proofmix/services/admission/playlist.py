"""
Playlist Orchestrator.

Runs one admission cycle for a page view:

    IDLE -> COLLECT_CANDIDATES -> FILTER_ELIGIBLE -> SELECT_ONE -> SHOWN
                                                              \\-> NONE_AVAILABLE

Collect orders each playlist's campaigns by its sequence mode. Filter walks
the candidates in order and keeps the first one that passes the display rules,
the session throttle and has a selectable event. Winners of different
playlists and eligible ungrouped campaigns are ranked by conflict resolution;
the blending policy then picks the event.

SELECT_ONE is terminal for the orchestrator. The admission service moves a
selection to SHOWN only after the renderer confirms it.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ...core.logging import get_logger
from ...models.campaigns import Campaign, ConflictResolution, Playlist, SequenceMode
from ...models.coerce import to_datetime
from ...models.context import PageContext
from ...models.events import NotificationEvent
from ...models.session import SessionState
from ...models.snapshot import PoolSnapshot
from .blending import BlendingPolicy
from .pool import EventPool
from .rules import DisplayRuleEvaluator
from .throttle import SessionThrottle

logger = get_logger(__name__)


class CycleState(str, Enum):
    """States of one admission cycle."""

    IDLE = "idle"
    COLLECT_CANDIDATES = "collect_candidates"
    FILTER_ELIGIBLE = "filter_eligible"
    SELECT_ONE = "select_one"
    SHOWN = "shown"
    NONE_AVAILABLE = "none_available"


@dataclass(frozen=True)
class CandidateTrace:
    """Why a candidate campaign passed or was skipped."""

    campaign_id: str
    playlist_id: str | None
    passed: bool
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "campaign_id": self.campaign_id,
            "playlist_id": self.playlist_id,
            "passed": self.passed,
            "reason": self.reason,
        }


@dataclass
class Selection:
    """One event chosen for rendering."""

    event: NotificationEvent
    campaign_id: str
    playlist_id: str | None
    side: str
    fallback: bool = False
    show_duration_ms: int = 5000
    playlist_cooldown_seconds: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event.to_dict(),
            "campaign_id": self.campaign_id,
            "playlist_id": self.playlist_id,
            "side": self.side,
            "fallback": self.fallback,
            "show_duration_ms": self.show_duration_ms,
        }


@dataclass
class AdmissionResult:
    """Outcome of an admission cycle, with the states it passed through."""

    state: CycleState
    selection: Selection | None = None
    reason: str | None = None
    states: list[CycleState] = field(default_factory=list)
    trace: list[CandidateTrace] = field(default_factory=list)

    @property
    def selected(self) -> bool:
        return self.selection is not None

    def advance(self, state: CycleState) -> None:
        self.state = state
        self.states.append(state)

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "reason": self.reason,
            "selection": self.selection.to_dict() if self.selection else None,
            "states": [s.value for s in self.states],
            "trace": [t.to_dict() for t in self.trace],
        }


@dataclass(frozen=True)
class _Contender:
    campaign: Campaign
    playlist: Playlist | None


class PlaylistOrchestrator:
    """
    Picks at most one campaign and event per page view.

    Evaluation never mutates the session; see SessionThrottle.record_show.
    """

    def __init__(
        self,
        evaluator: DisplayRuleEvaluator | None = None,
        throttle: SessionThrottle | None = None,
        blending: BlendingPolicy | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._rng = rng or random.Random()
        self.evaluator = evaluator or DisplayRuleEvaluator()
        self.throttle = throttle or SessionThrottle()
        self.blending = blending or BlendingPolicy(rng=self._rng)

    # =========================================================================
    # Collect
    # =========================================================================

    def playlist_campaigns(
        self, playlist: Playlist, campaigns: dict[str, Campaign]
    ) -> list[Campaign]:
        """Active campaigns of a playlist in campaign_order, same website only."""
        result = []
        for campaign_id in playlist.campaign_order:
            campaign = campaigns.get(campaign_id)
            if campaign is None or not campaign.is_active:
                continue
            if campaign.website_id is not None and campaign.website_id != playlist.website_id:
                continue
            result.append(campaign)
        return result

    def collect_candidates(
        self,
        playlist: Playlist,
        campaigns: dict[str, Campaign],
        session: SessionState,
        context: PageContext,
        pool: EventPool | None = None,
        now: float | None = None,
        allow_filler: bool = True,
    ) -> list[Campaign]:
        """
        Order a playlist's campaigns by its sequence mode.

        Sequential mode yields the unshown campaigns of the current round;
        the round wraps once no unshown campaign is eligible for this page
        context with a showable event. Throttled campaigns still hold the round.
        """
        members = self.playlist_campaigns(playlist, campaigns)
        mode = playlist.rules.sequence_mode

        if mode == SequenceMode.SEQUENTIAL:
            visited = set(session.playlist_rounds.get(playlist.id, ()))
            unshown = [c for c in members if c.id not in visited]
            current = time.time() if now is None else now
            pending = [
                c
                for c in unshown
                if self.evaluator.is_eligible(c.display_rules, context)
                and (pool is None or self._has_showable_event(c, pool, current, allow_filler))
            ]
            if not pending:
                return members
            return unshown

        if mode == SequenceMode.RANDOM:
            shuffled = list(members)
            self._rng.shuffle(shuffled)
            return shuffled

        return sorted(members, key=lambda c: (-c.priority, playlist.position_of(c.id)))

    # =========================================================================
    # Filter
    # =========================================================================

    def _candidate_failure(
        self,
        campaign: Campaign,
        pool: EventPool,
        session: SessionState,
        context: PageContext,
        now: float,
        allow_filler: bool,
    ) -> str | None:
        evaluation = self.evaluator.evaluate(campaign.display_rules, context)
        if not evaluation.passed:
            return evaluation.reason

        decision = self.throttle.check(session, campaign.id, campaign.display_rules, now)
        if not decision.allowed:
            return decision.reason

        if not self._has_showable_event(campaign, pool, now, allow_filler):
            return "no_selectable_event"
        return None

    @staticmethod
    def _has_showable_event(
        campaign: Campaign, pool: EventPool, now: float, allow_filler: bool
    ) -> bool:
        natural, quick_win = pool.split(campaign.id, to_datetime(now))
        return bool(natural) or (allow_filler and bool(quick_win))

    def filter_playlist(
        self,
        playlist: Playlist,
        campaigns: dict[str, Campaign],
        pool: EventPool,
        session: SessionState,
        context: PageContext,
        now: float,
        allow_filler: bool,
        trace: list[CandidateTrace],
    ) -> Campaign | None:
        """First candidate of the playlist that passes every gate."""
        playlist_decision = self.throttle.check_playlist(session, playlist, now)
        if not playlist_decision.allowed:
            for campaign in self.playlist_campaigns(playlist, campaigns):
                trace.append(
                    CandidateTrace(campaign.id, playlist.id, False, playlist_decision.reason)
                )
            return None

        candidates = self.collect_candidates(
            playlist, campaigns, session, context, pool, now, allow_filler
        )
        for campaign in candidates:
            failure = self._candidate_failure(
                campaign, pool, session, context, now, allow_filler
            )
            trace.append(CandidateTrace(campaign.id, playlist.id, failure is None, failure))
            if failure is None:
                return campaign
        return None

    # =========================================================================
    # Conflict resolution
    # =========================================================================

    @staticmethod
    def resolve_conflict(
        contenders: list[_Contender],
        rule: ConflictResolution,
    ) -> _Contender | None:
        """Rank contenders; ties fall back to campaign id."""
        if not contenders:
            return None
        if rule == ConflictResolution.NEWEST:
            key = lambda c: (-c.campaign.created_at.timestamp(), c.campaign.id)  # noqa: E731
        elif rule == ConflictResolution.OLDEST:
            key = lambda c: (c.campaign.created_at.timestamp(), c.campaign.id)  # noqa: E731
        else:
            key = lambda c: (-c.campaign.priority, c.campaign.id)  # noqa: E731
        return sorted(contenders, key=key)[0]

    # =========================================================================
    # Cycle
    # =========================================================================

    def run_cycle(
        self,
        snapshot: PoolSnapshot,
        session: SessionState,
        context: PageContext,
        target_ratio: float,
        *,
        now: float | None = None,
        allow_filler: bool = True,
        natural_floor: int | None = None,
    ) -> AdmissionResult:
        """
        Run one admission cycle.

        Args:
            snapshot: Widget snapshot (campaigns, playlists, events)
            session: Caller-owned session state (not modified)
            context: Current page view
            target_ratio: Natural share for blending
            now: Current epoch seconds
            allow_filler: False when the session's quick-win cap is reached
            natural_floor: Override the blending policy's natural floor

        Returns:
            AdmissionResult in SELECT_ONE (with a selection) or NONE_AVAILABLE
        """
        current = time.time() if now is None else now
        result = AdmissionResult(state=CycleState.IDLE, states=[CycleState.IDLE])
        widget = snapshot.widget
        pool = EventPool(snapshot.events, widget)

        campaigns = {
            c.id: c for c in snapshot.campaigns if c.widget_id == widget.widget_id
        }
        playlists = [
            p
            for p in snapshot.playlists
            if p.is_active and (widget.website_id is None or p.website_id == widget.website_id)
        ]

        result.advance(CycleState.COLLECT_CANDIDATES)
        grouped = {cid for p in playlists for cid in p.campaign_order}
        ungrouped = sorted(
            (c for c in campaigns.values() if c.is_active and c.id not in grouped),
            key=lambda c: c.id,
        )

        result.advance(CycleState.FILTER_ELIGIBLE)
        contenders: list[_Contender] = []
        for playlist in playlists:
            winner = self.filter_playlist(
                playlist, campaigns, pool, session, context, current, allow_filler, result.trace
            )
            if winner is not None:
                contenders.append(_Contender(winner, playlist))

        for campaign in ungrouped:
            failure = self._candidate_failure(
                campaign, pool, session, context, current, allow_filler
            )
            result.trace.append(CandidateTrace(campaign.id, None, failure is None, failure))
            if failure is None:
                contenders.append(_Contender(campaign, None))

        rule = playlists[0].rules.conflict_resolution if playlists else ConflictResolution.PRIORITY
        chosen = self.resolve_conflict(contenders, rule)
        if chosen is None:
            result.reason = "no_eligible_campaign" if campaigns else "no_campaigns"
            result.advance(CycleState.NONE_AVAILABLE)
            return result

        decision = self.blending.decide(
            *pool.split(chosen.campaign.id, to_datetime(current)),
            target_ratio,
            session.recent_event_ids,
            allow_filler=allow_filler,
            natural_floor=natural_floor,
        )
        if decision is None:
            result.reason = "no_selectable_event"
            result.advance(CycleState.NONE_AVAILABLE)
            return result

        result.selection = Selection(
            event=decision.event,
            campaign_id=chosen.campaign.id,
            playlist_id=chosen.playlist.id if chosen.playlist else None,
            side=decision.side,
            fallback=decision.fallback,
            show_duration_ms=chosen.campaign.display_rules.show_duration_ms,
            playlist_cooldown_seconds=(
                chosen.playlist.rules.cooldown_seconds if chosen.playlist else 0
            ),
        )
        result.advance(CycleState.SELECT_ONE)
        logger.debug(
            f"Selected event {decision.event.id} from campaign {chosen.campaign.id} "
            f"({decision.side}) for widget {widget.widget_id}"
        )
        return result
