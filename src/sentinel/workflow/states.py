"""
Case lifecycle states and the transition table.

A case moves New -> Assigned -> Under Review -> Submitted -> Approved.
Rejection and withdrawal both return a Submitted case to Under Review;
there is no separate Rejected state.
"""

from enum import Enum
from typing import Optional

from sentinel.errors import ConflictError


class CaseStatus(str, Enum):
    """Status of a CTR or Form 8300 case."""

    NEW = "New"
    ASSIGNED = "Assigned"
    UNDER_REVIEW = "Under Review"
    SUBMITTED = "Submitted"
    APPROVED = "Approved"

    @property
    def is_terminal(self) -> bool:
        return self is CaseStatus.APPROVED

    @property
    def key(self) -> str:
        """Snake-case key used in dashboard counts."""
        return self.value.lower().replace(" ", "_")


class CaseKind(str, Enum):
    """The two case tables. A case is exactly one of these."""

    CTR = "ctr"
    FORM_8300 = "8300"

    @property
    def table(self) -> str:
        return "ctrs" if self is CaseKind.CTR else "form_8300s"

    @property
    def id_field(self) -> str:
        return "ctr_id" if self is CaseKind.CTR else "form_id"

    @property
    def label(self) -> str:
        return "CTR" if self is CaseKind.CTR else "8300"


class CaseAction(str, Enum):
    """User actions that move a case between states."""

    ASSIGN = "assign"
    START_REVIEW = "start_review"
    UNASSIGN = "unassign"
    RETURN = "return"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    WITHDRAW = "withdraw"


TRANSITIONS: dict[tuple[CaseStatus, CaseAction], CaseStatus] = {
    (CaseStatus.NEW, CaseAction.ASSIGN): CaseStatus.ASSIGNED,
    # Reassignment from the management view
    (CaseStatus.ASSIGNED, CaseAction.ASSIGN): CaseStatus.ASSIGNED,
    (CaseStatus.ASSIGNED, CaseAction.START_REVIEW): CaseStatus.UNDER_REVIEW,
    (CaseStatus.ASSIGNED, CaseAction.UNASSIGN): CaseStatus.NEW,
    (CaseStatus.UNDER_REVIEW, CaseAction.RETURN): CaseStatus.ASSIGNED,
    (CaseStatus.UNDER_REVIEW, CaseAction.SUBMIT): CaseStatus.SUBMITTED,
    (CaseStatus.SUBMITTED, CaseAction.APPROVE): CaseStatus.APPROVED,
    (CaseStatus.SUBMITTED, CaseAction.REJECT): CaseStatus.UNDER_REVIEW,
    (CaseStatus.SUBMITTED, CaseAction.WITHDRAW): CaseStatus.UNDER_REVIEW,
}


class InvalidTransitionError(ConflictError):
    """Raised when an action is not legal from the case's current status."""

    def __init__(self, status: CaseStatus, action: CaseAction, case_id: Optional[str] = None):
        self.status = status
        self.action = action
        self.case_id = case_id
        subject = f"Case {case_id}" if case_id else "Case"
        super().__init__(
            f"{subject} cannot {action.value.replace('_', ' ')} "
            f"while {status.value}"
        )


def validate_transition(
    status: CaseStatus,
    action: CaseAction,
    case_id: Optional[str] = None,
) -> CaseStatus:
    """
    Return the status that results from applying action to status.

    Raises:
        InvalidTransitionError: If the transition is not in the table
    """
    try:
        return TRANSITIONS[(CaseStatus(status), action)]
    except KeyError:
        raise InvalidTransitionError(CaseStatus(status), action, case_id) from None


def allowed_actions(status: CaseStatus) -> list[CaseAction]:
    """Actions that are legal from the given status, in table order."""
    return [action for (source, action) in TRANSITIONS if source == status]


# Recommendations offered at submission time, per case kind
RECOMMENDATIONS: dict[CaseKind, tuple[str, ...]] = {
    CaseKind.CTR: (
        "File CTR",
        "File CTR - Data Exception Noted",
        "File CTR - Flag for PSA",
        "File CTR - Data Exception Noted - Flag for PSA",
        "Do not file CTR",
    ),
    CaseKind.FORM_8300: (
        "File 8300",
        "File 8300 - Data Exception Noted",
        "File 8300 - Flag for PSA",
        "File 8300 - Data Exception Noted - Flag for PSA",
        "Do not file 8300",
    ),
}

PSA_MARKER = "PSA"


def default_recommendation(kind: CaseKind) -> str:
    return RECOMMENDATIONS[kind][0]


def validate_recommendation(kind: CaseKind, recommendation: Optional[str]) -> str:
    """
    Raises:
        ValueError: If the recommendation is missing or not offered for this kind
    """
    if not recommendation:
        raise ValueError("A recommendation is required")
    if recommendation not in RECOMMENDATIONS[kind]:
        raise ValueError(
            f"Unknown {kind.label} recommendation: {recommendation!r}"
        )
    return recommendation


def is_psa(recommendation: Optional[str]) -> bool:
    """PSA cases are those whose recommendation carries the PSA flag."""
    return bool(recommendation) and PSA_MARKER in recommendation
