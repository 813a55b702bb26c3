"""
Case workflow: statuses, the transition table and recommendations.

The Status/Assignment service lives in sentinel.workflow.service.
"""

from sentinel.workflow.states import (
    PSA_MARKER,
    RECOMMENDATIONS,
    TRANSITIONS,
    CaseAction,
    CaseKind,
    CaseStatus,
    InvalidTransitionError,
    allowed_actions,
    default_recommendation,
    is_psa,
    validate_recommendation,
    validate_transition,
)

__all__ = [
    "PSA_MARKER",
    "RECOMMENDATIONS",
    "TRANSITIONS",
    "CaseAction",
    "CaseKind",
    "CaseStatus",
    "InvalidTransitionError",
    "allowed_actions",
    "default_recommendation",
    "is_psa",
    "validate_recommendation",
    "validate_transition",
]
