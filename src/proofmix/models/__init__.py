"""
proofmix Models

Domain records (dataclasses) for events, campaigns, playlists, page context,
session state and widget configuration, plus pydantic report models for
graduation.
"""

from proofmix.models.campaigns import (
    Campaign,
    CampaignStatus,
    ConflictResolution,
    DisplayRules,
    Playlist,
    PlaylistRules,
    SequenceMode,
    TriggerRules,
)
from proofmix.models.context import PageContext
from proofmix.models.events import (
    FILLER_ORIGINS,
    ORGANIC_ORIGINS,
    EventOrigin,
    EventStatus,
    NotificationEvent,
)
from proofmix.models.graduation import (
    CycleReport,
    GraduationAnalytics,
    GraduationStatus,
    HealthFactors,
    LifecycleHealth,
    MaintenanceReport,
    OriginStats,
    SuggestedRatio,
)
from proofmix.models.session import SessionState
from proofmix.models.snapshot import PoolSnapshot
from proofmix.models.widgets import WidgetConfig, clamp_ratio

__all__ = [
    # Events
    "EventOrigin",
    "EventStatus",
    "NotificationEvent",
    "ORGANIC_ORIGINS",
    "FILLER_ORIGINS",
    # Campaigns
    "Campaign",
    "CampaignStatus",
    "DisplayRules",
    "TriggerRules",
    "Playlist",
    "PlaylistRules",
    "SequenceMode",
    "ConflictResolution",
    # Runtime
    "PageContext",
    "SessionState",
    "WidgetConfig",
    "PoolSnapshot",
    "clamp_ratio",
    # Graduation reports
    "OriginStats",
    "GraduationAnalytics",
    "GraduationStatus",
    "HealthFactors",
    "LifecycleHealth",
    "SuggestedRatio",
    "CycleReport",
    "MaintenanceReport",
]
