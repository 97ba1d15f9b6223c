"""
Pydantic models for graduation reports.

These models describe the derived (never stored) graduation status and
lifecycle health of a widget. Used by the graduation controller, the
scheduler and the CLI.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

CycleOutcomeValue = Literal[
    "graduated",
    "not_ready",
    "already_graduated",
    "skipped_locked",
    "aborted",
    "conflict",
]


class GraduationModel(BaseModel):
    """
    Base model for graduation reports.

    Configuration:
    - frozen: Reports are snapshots and never mutated
    - extra="forbid": Catches typos in field names during construction
    """

    model_config = ConfigDict(frozen=True, extra="forbid")


class OriginStats(GraduationModel):
    """Counts and engagement for one origin (or one side of the mix)."""

    count: int = Field(ge=0, default=0)
    views: int = Field(ge=0, default=0)
    clicks: int = Field(ge=0, default=0)
    ctr: float = Field(ge=0, default=0.0, description="Click-through rate in percent")


class GraduationAnalytics(GraduationModel):
    """Trailing-window analytics for one widget."""

    window_days: int = Field(gt=0)
    natural: OriginStats = Field(default_factory=OriginStats)
    quick_win: OriginStats = Field(default_factory=OriginStats)
    by_origin: dict[str, OriginStats] = Field(default_factory=dict)
    graduation_progress: float = Field(ge=0, le=100, default=0.0)


class SuggestedRatio(GraduationModel):
    """Suggested natural / quick-win split, in percent."""

    natural: int = Field(ge=0, le=100)
    quick_win: int = Field(ge=0, le=100)


class HealthFactors(GraduationModel):
    natural_event_growth: float = Field(ge=0, le=100)
    quick_win_balance: float = Field(ge=0, le=100)
    flagged_event_ratio: float = Field(ge=0, le=100)
    graduation_progress: float = Field(ge=0, le=100)


class LifecycleHealth(GraduationModel):
    """Weighted health score of a widget's event lifecycle."""

    widget_id: str
    window_days: int = Field(gt=0)
    total_events: int = Field(ge=0)
    score: float = Field(ge=0, le=100)
    factors: HealthFactors
    recommendations: list[str] = Field(default_factory=list)


class GraduationStatus(GraduationModel):
    """Derived graduation readiness of one widget."""

    widget_id: str
    business_type: str
    ready: bool
    graduated: bool
    graduation_enabled: bool
    natural_count: int = Field(ge=0)
    quick_win_count: int = Field(ge=0)
    graduation_threshold: int = Field(gt=0)
    graduation_progress: float = Field(ge=0, le=100)
    natural_ctr: float = Field(ge=0)
    quick_win_ctr: float = Field(ge=0)
    current_ratio: float = Field(ge=0, le=1)
    analytics: GraduationAnalytics
    recommendation: str = ""
    next_steps: list[str] = Field(default_factory=list)
    suggested_ratio: SuggestedRatio


class CycleReport(GraduationModel):
    """Result of one graduation cycle for one widget."""

    widget_id: str
    outcome: CycleOutcomeValue
    status: GraduationStatus | None = None
    new_ratio: float | None = None
    error: str | None = None


class MaintenanceReport(GraduationModel):
    """Result of lifecycle maintenance for one widget."""

    widget_id: str
    quick_wins_expired: int = Field(ge=0, default=0)
    flagged_removed: int = Field(ge=0, default=0)
    error: str | None = None
