"""
Graduation - From Quick-Win Filler to Natural Social Proof.

Key Components:
- GraduationController: status, health and one-way auto-graduation
- GraduationScheduler: periodic maintenance and graduation for all widgets
- LifecycleMaintenance: quick-win expiry and flagged cleanup
- BusinessProfileLoader: per business type parameters (YAML extensible)
- AnalyticsSource: view/click counts from the store or an aggregator
"""

from .analytics import (
    AnalyticsUnavailableError,
    EventCounts,
    compute_analytics,
    compute_health,
    ctr_percent,
    graduation_progress,
    is_ready,
    status_recommendation,
    suggest_ratio,
)
from .controller import CycleOutcome, GraduationController
from .lifecycle import LifecycleMaintenance
from .profiles import (
    BUILTIN_PROFILES,
    BusinessProfile,
    BusinessProfileLoader,
    get_builtin_profile,
)
from .scheduler import GraduationScheduler, SchedulerStats
from .sources import AggregatorAnalyticsSource, AnalyticsSource, StoreAnalyticsSource

__all__ = [
    # Controller
    "GraduationController",
    "CycleOutcome",
    "GraduationScheduler",
    "SchedulerStats",
    "LifecycleMaintenance",
    # Profiles
    "BusinessProfile",
    "BusinessProfileLoader",
    "BUILTIN_PROFILES",
    "get_builtin_profile",
    # Analytics
    "AnalyticsSource",
    "StoreAnalyticsSource",
    "AggregatorAnalyticsSource",
    "AnalyticsUnavailableError",
    "EventCounts",
    "compute_analytics",
    "compute_health",
    "ctr_percent",
    "graduation_progress",
    "is_ready",
    "status_recommendation",
    "suggest_ratio",
]
