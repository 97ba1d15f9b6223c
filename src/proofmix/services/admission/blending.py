"""
Blending Policy.

Chooses one event from a campaign's pool, mixing the natural (organic) and
quick-win (filler) sides towards a target natural share:

1. Roll r in [0, 1). If r < target_ratio and the natural side holds at least
   ``natural_floor`` events, draw from the natural side; otherwise from the
   quick-win side.
2. If the chosen side is empty, fall back to the other side.
3. Exclude recently shown events when more than one candidate remains; if
   exclusion would leave nothing, repetition is allowed.
4. Pick rank-biased at random: candidates are ranked by quality score and
   split into quartiles weighted 4:3:2:1.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Collection, Sequence
from dataclasses import dataclass
from datetime import datetime

from ...models.events import NotificationEvent
from ...models.widgets import clamp_ratio
from .pool import EventPool

logger = logging.getLogger(__name__)

QUARTILE_WEIGHTS = (4, 3, 2, 1)

SIDE_NATURAL = "natural"
SIDE_QUICK_WIN = "quick_win"


@dataclass(frozen=True)
class BlendDecision:
    """Which event was picked and how."""

    event: NotificationEvent
    side: str
    roll: float
    fallback: bool = False


def quartile_weights(count: int) -> list[int]:
    """Weights for ``count`` quality-ranked candidates (best first)."""
    if count <= 0:
        return []
    return [QUARTILE_WEIGHTS[min(3, index * 4 // count)] for index in range(count)]


class BlendingPolicy:
    """
    Natural vs quick-win event selection.

    The RNG is injected so selections are reproducible in tests.
    """

    def __init__(self, natural_floor: int = 1, rng: random.Random | None = None) -> None:
        """
        Initialize policy.

        Args:
            natural_floor: Minimum natural events before the natural side is
                used on a natural roll (1 means "non-empty")
            rng: Random source (defaults to a fresh random.Random)
        """
        self.natural_floor = max(0, natural_floor)
        self._rng = rng or random.Random()

    def select_event(
        self,
        pool: EventPool,
        target_ratio: float,
        recently_shown_ids: Collection[str] = (),
        rng: random.Random | None = None,
        *,
        campaign_id: str | None = None,
        now: datetime | None = None,
        allow_filler: bool = True,
    ) -> NotificationEvent | None:
        """
        Select one event from the pool.

        Args:
            pool: Event pool of the widget
            target_ratio: Desired natural share (clamped into [0, 1])
            recently_shown_ids: Anti-repetition window
            rng: Override random source for this call
            campaign_id: Restrict to one campaign's events
            now: Reference time for event expiry
            allow_filler: False removes the quick-win side entirely

        Returns:
            Selected event, or None when nothing is selectable
        """
        natural, quick_win = pool.split(campaign_id, now)
        decision = self.decide(
            natural,
            quick_win,
            target_ratio,
            recently_shown_ids,
            rng=rng,
            allow_filler=allow_filler,
        )
        return decision.event if decision else None

    def decide(
        self,
        natural: Sequence[NotificationEvent],
        quick_win: Sequence[NotificationEvent],
        target_ratio: float,
        recently_shown_ids: Collection[str] = (),
        *,
        rng: random.Random | None = None,
        allow_filler: bool = True,
        natural_floor: int | None = None,
    ) -> BlendDecision | None:
        """Select from explicit natural / quick-win sides, reporting the side used."""
        source = rng or self._rng
        ratio = clamp_ratio(target_ratio)
        floor = self.natural_floor if natural_floor is None else max(0, natural_floor)
        if not allow_filler:
            quick_win = []

        roll = source.random()
        natural_sufficient = bool(natural) and len(natural) >= floor
        if roll < ratio and natural_sufficient:
            side, primary, secondary = SIDE_NATURAL, natural, quick_win
        else:
            side, primary, secondary = SIDE_QUICK_WIN, quick_win, natural

        fallback = False
        if not primary:
            if not secondary:
                return None
            side = SIDE_QUICK_WIN if side == SIDE_NATURAL else SIDE_NATURAL
            primary = secondary
            fallback = True

        candidates = self._exclude_recent(primary, recently_shown_ids)
        event = self._rank_biased_pick(candidates, source)
        logger.debug(
            f"Blend roll={roll:.3f} ratio={ratio:.2f} side={side} "
            f"fallback={fallback} picked={event.id}"
        )
        return BlendDecision(event=event, side=side, roll=roll, fallback=fallback)

    @staticmethod
    def _exclude_recent(
        candidates: Sequence[NotificationEvent],
        recently_shown_ids: Collection[str],
    ) -> list[NotificationEvent]:
        if len(candidates) <= 1 or not recently_shown_ids:
            return list(candidates)
        fresh = [event for event in candidates if event.id not in recently_shown_ids]
        return fresh or list(candidates)

    @staticmethod
    def _rank_biased_pick(
        candidates: Sequence[NotificationEvent],
        source: random.Random,
    ) -> NotificationEvent:
        ranked = sorted(candidates, key=lambda e: (-e.quality_score, e.id))
        if len(ranked) == 1:
            return ranked[0]
        return source.choices(ranked, weights=quartile_weights(len(ranked)), k=1)[0]
