"""
Notification Admission, Sequencing & Blending.

Per page view: the orchestrator asks the rule evaluator which campaigns are
eligible, the session throttle filters cooldowns and quotas, and the
blending policy picks one event from the surviving campaign's pool.
"""

from .blending import BlendDecision, BlendingPolicy, quartile_weights
from .engine import AdmissionEngine
from .patterns import compile_pattern, matches, matches_any
from .playlist import (
    AdmissionResult,
    CandidateTrace,
    CycleState,
    PlaylistOrchestrator,
    Selection,
)
from .pool import EventPool, PoolCache, PoolUnavailableError
from .rules import DisplayRuleEvaluator, RuleEvaluation
from .service import AdmissionService
from .throttle import SessionThrottle, ThrottleDecision

__all__ = [
    # Engine
    "AdmissionEngine",
    "AdmissionService",
    "AdmissionResult",
    "CycleState",
    "Selection",
    "CandidateTrace",
    # Components
    "DisplayRuleEvaluator",
    "RuleEvaluation",
    "SessionThrottle",
    "ThrottleDecision",
    "BlendingPolicy",
    "BlendDecision",
    "PlaylistOrchestrator",
    "EventPool",
    "PoolCache",
    "PoolUnavailableError",
    # Patterns
    "compile_pattern",
    "matches",
    "matches_any",
    "quartile_weights",
]
