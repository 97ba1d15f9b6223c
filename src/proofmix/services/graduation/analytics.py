"""
Graduation Analytics.

Pure computations over a widget's events and their view/click counts:
per-origin stats, graduation progress, lifecycle health, and the
recommendation texts shown alongside them.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from ...models.events import EventOrigin, EventStatus, NotificationEvent
from ...models.graduation import (
    GraduationAnalytics,
    HealthFactors,
    LifecycleHealth,
    OriginStats,
    SuggestedRatio,
)

# Health score weights
WEIGHT_NATURAL_GROWTH = 0.3
WEIGHT_QUICK_WIN_BALANCE = 0.2
WEIGHT_FLAGGED_RATIO = 0.2
WEIGHT_GRADUATION_PROGRESS = 0.3

# Factor levels below which a recommendation is issued
HEALTH_RECOMMENDATIONS = (
    ("natural_event_growth", 50, "Increase natural event generation through integrations"),
    ("quick_win_balance", 70, "Optimize quick-win to natural event ratio"),
    ("flagged_event_ratio", 80, "Review and improve event quality controls"),
    ("graduation_progress", 70, "Work towards graduation from quick-wins"),
)


class AnalyticsUnavailableError(Exception):
    """Per-event view/click counts could not be obtained."""

    def __init__(self, widget_id: str, message: str) -> None:
        self.widget_id = widget_id
        self.message = message
        super().__init__(f"Analytics unavailable for widget {widget_id}: {message}")


@dataclass(frozen=True)
class EventCounts:
    """Views and clicks of one event."""

    views: int = 0
    clicks: int = 0


def ctr_percent(views: int, clicks: int) -> float:
    """Click-through rate in percent (0 when there are no views)."""
    if views <= 0:
        return 0.0
    return clicks / views * 100


def graduation_progress(natural_count: int, threshold: int) -> float:
    """Progress towards graduation, 0-100."""
    if threshold <= 0:
        return 100.0
    return min(100.0, natural_count / threshold * 100)


def _stats(events: list[NotificationEvent], counts: Mapping[str, EventCounts]) -> OriginStats:
    views = 0
    clicks = 0
    for event in events:
        event_counts = counts.get(event.id, EventCounts())
        views += event_counts.views
        clicks += event_counts.clicks
    return OriginStats(
        count=len(events), views=views, clicks=clicks, ctr=round(ctr_percent(views, clicks), 4)
    )


def compute_analytics(
    events: Iterable[NotificationEvent],
    counts: Mapping[str, EventCounts],
    *,
    threshold: int,
    window_days: int,
) -> GraduationAnalytics:
    """
    Aggregate trailing-window analytics.

    Args:
        events: Events inside the window
        counts: Views/clicks per event id (missing ids count as zero)
        threshold: Natural events needed to graduate
        window_days: Length of the window (reported only)
    """
    event_list = list(events)
    by_origin = {
        origin.value: _stats([e for e in event_list if e.origin == origin], counts)
        for origin in EventOrigin
    }
    natural = _stats([e for e in event_list if e.is_organic], counts)
    quick_win = _stats([e for e in event_list if not e.is_organic], counts)

    return GraduationAnalytics(
        window_days=window_days,
        natural=natural,
        quick_win=quick_win,
        by_origin=by_origin,
        graduation_progress=round(graduation_progress(natural.count, threshold), 2),
    )


def is_ready(
    analytics: GraduationAnalytics,
    *,
    ctr_factor: float,
    graduation_enabled: bool,
) -> bool:
    """Full progress and natural CTR at least quick-win CTR times the factor."""
    if not graduation_enabled:
        return False
    if analytics.graduation_progress < 100:
        return False
    return analytics.natural.ctr >= analytics.quick_win.ctr * ctr_factor


def compute_health(
    widget_id: str,
    events: Iterable[NotificationEvent],
    *,
    threshold: int,
    target_natural_ratio: float,
    progress: float,
    window_days: int,
) -> LifecycleHealth:
    """
    Weighted lifecycle health.

    Factors (each 0-100):
    - natural_event_growth: natural events against twice the threshold
    - quick_win_balance: distance of the actual quick-win share from the
      target share (50 when there are no events)
    - flagged_event_ratio: share of events not flagged (100 when there are
      no events)
    - graduation_progress: as computed for the graduation status
    """
    event_list = list(events)
    total = len(event_list)
    natural = sum(1 for e in event_list if e.is_organic)
    quick_win = total - natural
    flagged = sum(1 for e in event_list if e.status == EventStatus.FLAGGED)

    growth = min(100.0, natural / (2 * threshold) * 100) if threshold > 0 else 100.0
    if total:
        target_share = 1.0 - target_natural_ratio
        actual_share = quick_win / total
        balance = max(0.0, 100.0 - abs(target_share - actual_share) * 100)
        flagged_ratio = max(0.0, 100.0 - flagged / total * 100)
    else:
        balance = 50.0
        flagged_ratio = 100.0
    progress = max(0.0, min(100.0, progress))

    score = (
        growth * WEIGHT_NATURAL_GROWTH
        + balance * WEIGHT_QUICK_WIN_BALANCE
        + flagged_ratio * WEIGHT_FLAGGED_RATIO
        + progress * WEIGHT_GRADUATION_PROGRESS
    )

    factors = HealthFactors(
        natural_event_growth=round(growth, 2),
        quick_win_balance=round(balance, 2),
        flagged_event_ratio=round(flagged_ratio, 2),
        graduation_progress=round(progress, 2),
    )
    recommendations = [
        text for name, floor, text in HEALTH_RECOMMENDATIONS if getattr(factors, name) < floor
    ]

    return LifecycleHealth(
        widget_id=widget_id,
        window_days=window_days,
        total_events=total,
        score=round(score, 2),
        factors=factors,
        recommendations=recommendations,
    )


def status_recommendation(
    natural_count: int,
    threshold: int,
    ready: bool,
) -> tuple[str, list[str]]:
    """Recommendation text and next steps for a graduation status."""
    if ready:
        return (
            f"Excellent! You have {natural_count} natural events. Ready to reduce quick-wins.",
            [
                "Reduce quick-win ratio to 20-30%",
                "Monitor conversion rates",
                "Set up more integrations for sustained growth",
            ],
        )
    if natural_count >= threshold * 0.5:
        return (
            f"Good progress! {natural_count}/{threshold} natural events needed.",
            [
                "Continue current integration setup",
                "Consider adding more data sources",
                "Monitor event quality and authenticity",
            ],
        )
    if natural_count > 0:
        return (
            "Natural events starting to flow. Keep building integrations.",
            [
                "Complete pending integration setups",
                "Test webhook connections",
                "Verify event data quality",
            ],
        )
    return (
        "Focus on connecting data sources to generate natural events.",
        [
            "Connect e-commerce platform (Shopify/WooCommerce)",
            "Set up email integration webhooks",
            "Configure Google Reviews sync",
            "Test event generation",
        ],
    )


def suggest_ratio(
    natural_count: int,
    threshold: int,
    natural_ctr: float,
    quick_win_ctr: float,
) -> SuggestedRatio:
    """Suggested natural / quick-win split for the current volume and engagement."""
    if natural_count >= 2 * threshold and natural_ctr >= quick_win_ctr:
        return SuggestedRatio(natural=85, quick_win=15)
    if natural_count >= threshold and natural_ctr > quick_win_ctr * 0.8:
        return SuggestedRatio(natural=70, quick_win=30)
    if natural_count >= threshold * 0.5:
        return SuggestedRatio(natural=60, quick_win=40)
    return SuggestedRatio(natural=40, quick_win=60)
