"""
Admission Engine.

Synchronous, in-memory admission for one page view: resolves the widget's
business profile and blending target, runs the playlist orchestrator, and
applies the session bookkeeping once a selection has been rendered.
"""

from __future__ import annotations

import random
import time

from ...core.logging import get_logger
from ...models.context import PageContext
from ...models.session import SessionState
from ...models.snapshot import PoolSnapshot
from ...models.widgets import WidgetConfig
from ..graduation.profiles import BusinessProfile, BusinessProfileLoader
from .blending import BlendingPolicy
from .playlist import AdmissionResult, CycleState, PlaylistOrchestrator, Selection
from .rules import DisplayRuleEvaluator
from .throttle import SessionThrottle

logger = get_logger(__name__)


class AdmissionEngine:
    """
    Decides whether, which and what mix of notification to show.

    Usage:
        engine = AdmissionEngine(rng=random.Random(42))
        result = engine.evaluate(snapshot, session, context)
        if result.selection:
            render(result.selection)
            engine.confirm(result, session)
    """

    def __init__(
        self,
        profiles: BusinessProfileLoader | None = None,
        *,
        rng: random.Random | None = None,
        recent_window: int = 5,
        orchestrator: PlaylistOrchestrator | None = None,
    ) -> None:
        """
        Initialize engine.

        Args:
            profiles: Business profile resolver (built-ins only by default)
            rng: Random source shared by shuffling and blending
            recent_window: Anti-repetition window per session
            orchestrator: Pre-built orchestrator (overrides rng/recent_window)
        """
        self.profiles = profiles or BusinessProfileLoader()
        if orchestrator is None:
            source = rng or random.Random()
            orchestrator = PlaylistOrchestrator(
                evaluator=DisplayRuleEvaluator(),
                throttle=SessionThrottle(recent_window=recent_window),
                blending=BlendingPolicy(rng=source),
                rng=source,
            )
        self.orchestrator = orchestrator

    @property
    def throttle(self) -> SessionThrottle:
        return self.orchestrator.throttle

    def profile_for(self, widget: WidgetConfig) -> BusinessProfile:
        return self.profiles.get_profile(widget.business_type)

    def target_ratio_for(self, widget: WidgetConfig) -> float:
        """Effective natural share for a widget."""
        profile = self.profile_for(widget)
        return widget.effective_ratio(profile.pre_graduation_ratio, profile.post_graduation_ratio)

    def evaluate(
        self,
        snapshot: PoolSnapshot,
        session: SessionState,
        context: PageContext,
        now: float | None = None,
    ) -> AdmissionResult:
        """
        Run one admission cycle without mutating the session.

        Returns:
            AdmissionResult in SELECT_ONE or NONE_AVAILABLE
        """
        current = time.time() if now is None else now
        if session.is_expired(current):
            result = AdmissionResult(state=CycleState.IDLE, states=[CycleState.IDLE])
            result.reason = "session_expired"
            result.advance(CycleState.NONE_AVAILABLE)
            return result

        profile = self.profile_for(snapshot.widget)
        allow_filler = session.quick_win_shown_count < profile.max_quick_wins_per_session
        return self.orchestrator.run_cycle(
            snapshot,
            session,
            context,
            self.target_ratio_for(snapshot.widget),
            now=current,
            allow_filler=allow_filler,
            natural_floor=profile.natural_floor,
        )

    def confirm(
        self,
        result: AdmissionResult | Selection,
        session: SessionState,
        now: float | None = None,
    ) -> Selection:
        """
        Record a rendered selection into the session.

        Moves the result (when given) from SELECT_ONE to SHOWN.

        Raises:
            ValueError: If the result holds no selection or was already confirmed
        """
        if isinstance(result, AdmissionResult):
            if result.selection is None or result.state != CycleState.SELECT_ONE:
                raise ValueError(f"Cannot confirm admission result in state {result.state.value}")
            selection = result.selection
        else:
            selection = result

        self.throttle.record_show(
            session,
            selection.campaign_id,
            now=now,
            playlist_id=selection.playlist_id,
            playlist_cooldown_seconds=selection.playlist_cooldown_seconds,
            event_id=selection.event.id,
            origin=selection.event.origin,
        )

        if isinstance(result, AdmissionResult):
            result.advance(CycleState.SHOWN)
        return selection
