"""
Status/Assignment Service.

Owns every status transition of a CTR or Form 8300. Each operation:
1. Loads the case
2. Checks the transition against the table
3. Checks the caller against the case (owner or approver)
4. Writes the new status with a compare-and-swap on the version column

Bulk operations run the single-case operation per id, sequentially, each
inside its own savepoint, and report per-item outcomes instead of failing
the batch.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sentinel.db.orm import CaseRecord
from sentinel.db.repositories import CaseRepository, PatronRepository, ProfileRepository
from sentinel.errors import ConflictError, SentinelError, StaleVersionError
from sentinel.files.service import AttachmentService, CopyResult
from sentinel.security.auth import AuthorizationError, User
from sentinel.storage.blobs import BlobStoreError
from sentinel.workflow.states import (
    CaseAction,
    CaseKind,
    CaseStatus,
    validate_recommendation,
    validate_transition,
)

logger = logging.getLogger(__name__)

# Per-item bulk failures; anything else aborts the batch
BULK_ITEM_ERRORS = (
    SentinelError,
    AuthorizationError,
    ValueError,
    SQLAlchemyError,
    BlobStoreError,
)


class NotCaseOwnerError(AuthorizationError):
    """Caller is not the case's current owner."""

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(f"Only the case owner can change {case_id}")


class NotApproverError(AuthorizationError):
    """Caller is not the approver the case was submitted to."""

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(f"Only the designated approver can decide {case_id}")


@dataclass
class BulkFailure:
    case_id: str
    error: str

    def to_dict(self) -> dict[str, str]:
        return {"case_id": self.case_id, "error": self.error}


@dataclass
class BulkResult:
    """Per-item outcome of a bulk assign or submit."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def error_message(self) -> Optional[str]:
        if not self.failed:
            return None
        ids = ", ".join(f.case_id for f in self.failed)
        return f"{len(self.failed)} of {len(self.failed) + len(self.succeeded)} case(s) failed: {ids}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "failed": [f.to_dict() for f in self.failed],
            "ok": self.ok,
            "error_message": self.error_message,
        }


@dataclass
class SubmissionResult:
    case: CaseRecord
    copy: CopyResult


class CaseWorkflowService:
    """
    Moves cases through New, Assigned, Under Review, Submitted and Approved.

    The acting user is passed in explicitly; nothing is read from globals.
    """

    def __init__(
        self,
        session: AsyncSession,
        user: User,
        attachments: Optional[AttachmentService] = None,
    ):
        self.session = session
        self.user = user
        self.attachments = attachments
        self.profiles = ProfileRepository(session)

    @property
    def user_id(self) -> UUID:
        return UUID(self.user.id)

    def _cases(self, kind: CaseKind) -> CaseRepository:
        return CaseRepository(self.session, kind)

    def _require_owner(self, case: CaseRecord) -> None:
        if case.current_owner != self.user_id:
            raise NotCaseOwnerError(case.case_id)

    def _require_approver(self, case: CaseRecord) -> None:
        if case.approver != self.user_id:
            raise NotApproverError(case.case_id)

    async def _apply(
        self,
        kind: CaseKind,
        case: CaseRecord,
        action: CaseAction,
        expected_version: Optional[int],
        **changes: Any,
    ) -> CaseRecord:
        previous = case.status
        status = validate_transition(case.status, action, case.case_id)
        updated = await self._cases(kind).update(
            case, expected_version=expected_version, status=status, **changes
        )
        logger.info(
            f"{kind.label} {case.case_id}: {previous.value} -> {status.value} "
            f"({action.value} by {self.user.id})"
        )
        return updated

    async def _load(self, kind: CaseKind, case_id: str, action: CaseAction) -> CaseRecord:
        case = await self._cases(kind).require(case_id)
        validate_transition(case.status, action, case_id)
        return case

    async def create_case(self, kind: CaseKind, case_id: str, **fields: Any) -> CaseRecord:
        """
        Intake a new case in status New.

        Raises:
            ConflictError: If the case id is already taken
            PatronNotFoundError: If a patron_id is given that does not exist
        """
        case_id = case_id.strip()
        if not case_id:
            raise ValueError("A case id is required")
        cases = self._cases(kind)
        if await cases.get_by_case_id(case_id) is not None:
            raise ConflictError(f"{kind.label} {case_id} already exists")
        if fields.get("patron_id") is not None:
            await PatronRepository(self.session).require(fields["patron_id"])

        fields.pop("status", None)
        case = await cases.create(case_id, status=CaseStatus.NEW, **fields)
        logger.info(f"Intake of {kind.label} {case_id} by {self.user.id}")
        return case

    async def assign(
        self,
        kind: CaseKind,
        case_id: str,
        member_id: UUID,
        expected_version: Optional[int] = None,
    ) -> CaseRecord:
        """
        Assign a case to a team member.

        A New case can be claimed by anyone. Reassigning an Assigned case
        is limited to its owner and admins.

        Raises:
            CaseNotFoundError: If the case does not exist
            InvalidTransitionError: If the case is past Assigned
            NotCaseOwnerError: If reassigning someone else's case without admin rights
            MemberNotFoundError: If the target member does not exist
        """
        case = await self._load(kind, case_id, CaseAction.ASSIGN)
        if (
            case.status == CaseStatus.ASSIGNED
            and case.current_owner != self.user_id
            and not self.user.can_manage_team
        ):
            raise NotCaseOwnerError(case_id)

        member = await self.profiles.require(member_id)
        return await self._apply(
            kind, case, CaseAction.ASSIGN, expected_version, current_owner=member.id
        )

    async def start_review(
        self, kind: CaseKind, case_id: str, expected_version: Optional[int] = None
    ) -> CaseRecord:
        case = await self._load(kind, case_id, CaseAction.START_REVIEW)
        self._require_owner(case)
        return await self._apply(kind, case, CaseAction.START_REVIEW, expected_version)

    async def unassign(
        self, kind: CaseKind, case_id: str, expected_version: Optional[int] = None
    ) -> CaseRecord:
        """Release an Assigned case back to the New queue."""
        case = await self._load(kind, case_id, CaseAction.UNASSIGN)
        self._require_owner(case)
        return await self._apply(
            kind, case, CaseAction.UNASSIGN, expected_version, current_owner=None
        )

    async def return_case(
        self, kind: CaseKind, case_id: str, expected_version: Optional[int] = None
    ) -> CaseRecord:
        case = await self._load(kind, case_id, CaseAction.RETURN)
        self._require_owner(case)
        return await self._apply(kind, case, CaseAction.RETURN, expected_version)

    async def submit(
        self,
        kind: CaseKind,
        case_id: str,
        approver_id: Optional[UUID],
        recommendation: Optional[str],
        expected_version: Optional[int] = None,
    ) -> SubmissionResult:
        """
        Submit a case for approval.

        Every attached file is copied into the patron record before the
        status changes. Copy failures are logged and reported in the
        result but do not block the submission. A stale expected_version
        is rejected before anything is copied.

        Raises:
            ValueError: If the approver or recommendation is missing or invalid
            NotCaseOwnerError: If the caller does not own the case
            MemberNotFoundError: If the approver does not exist
            StaleVersionError: If expected_version is not the stored version
        """
        case = await self._load(kind, case_id, CaseAction.SUBMIT)
        self._require_owner(case)
        if expected_version is not None and expected_version != case.version:
            raise StaleVersionError(case.case_id, expected_version, case.version)
        if approver_id is None:
            raise ValueError("An approver is required")
        recommendation = validate_recommendation(kind, recommendation)
        approver = await self.profiles.require(approver_id)

        copy = CopyResult()
        if self.attachments is not None:
            copy = await self.attachments.copy_case_files_to_patron(case)
            if copy.failed:
                logger.warning(
                    f"{kind.label} {case_id}: {len(copy.failed)} file(s) not copied "
                    f"to patron record"
                )

        updated = await self._apply(
            kind,
            case,
            CaseAction.SUBMIT,
            expected_version,
            approver=approver.id,
            recommendation=recommendation,
        )
        return SubmissionResult(case=updated, copy=copy)

    async def approve(
        self, kind: CaseKind, case_id: str, expected_version: Optional[int] = None
    ) -> CaseRecord:
        case = await self._load(kind, case_id, CaseAction.APPROVE)
        self._require_approver(case)
        return await self._apply(kind, case, CaseAction.APPROVE, expected_version)

    async def reject(
        self, kind: CaseKind, case_id: str, expected_version: Optional[int] = None
    ) -> CaseRecord:
        """Send a submission back to its owner, clearing approver and recommendation."""
        case = await self._load(kind, case_id, CaseAction.REJECT)
        self._require_approver(case)
        return await self._apply(
            kind,
            case,
            CaseAction.REJECT,
            expected_version,
            approver=None,
            recommendation=None,
        )

    async def withdraw(
        self, kind: CaseKind, case_id: str, expected_version: Optional[int] = None
    ) -> CaseRecord:
        """Pull a submission back; approver and recommendation are kept."""
        case = await self._load(kind, case_id, CaseAction.WITHDRAW)
        self._require_owner(case)
        return await self._apply(kind, case, CaseAction.WITHDRAW, expected_version)

    async def bulk_assign(
        self, kind: CaseKind, case_ids: Iterable[str], member_id: UUID
    ) -> BulkResult:
        result = BulkResult()
        for case_id in case_ids:
            try:
                async with self.session.begin_nested():
                    await self.assign(kind, case_id, member_id)
            except BULK_ITEM_ERRORS as e:
                logger.warning(f"Bulk assign of {kind.label} {case_id} failed: {e}")
                result.failed.append(BulkFailure(case_id, str(e)))
                continue
            result.succeeded.append(case_id)
        return result

    async def bulk_submit(
        self,
        kind: CaseKind,
        case_ids: Iterable[str],
        approver_id: Optional[UUID],
        recommendation: Optional[str],
    ) -> BulkResult:
        result = BulkResult()
        for case_id in case_ids:
            try:
                async with self.session.begin_nested():
                    await self.submit(kind, case_id, approver_id, recommendation)
            except BULK_ITEM_ERRORS as e:
                logger.warning(f"Bulk submit of {kind.label} {case_id} failed: {e}")
                result.failed.append(BulkFailure(case_id, str(e)))
                continue
            result.succeeded.append(case_id)
        return result
