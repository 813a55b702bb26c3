"""
Tests for the Status/Assignment service.

Tests:
- Single-case transitions and who may perform them
- Compare-and-swap version checks
- Submission copying case files into the patron record
- Bulk assign/submit partial failure reporting
"""

from unittest.mock import AsyncMock, patch
from uuid import UUID, uuid4

import pytest
from sqlalchemy.exc import OperationalError

from sentinel.db.repositories import CaseRepository
from sentinel.errors import (
    CaseNotFoundError,
    ConflictError,
    MemberNotFoundError,
    PatronNotFoundError,
    StaleVersionError,
)
from sentinel.files.service import AttachmentService, CopyResult
from sentinel.storage.blobs import PATRON_FILES_BUCKET, BlobStoreError
from sentinel.workflow.service import (
    CaseWorkflowService,
    NotApproverError,
    NotCaseOwnerError,
)
from sentinel.workflow.states import CaseKind, CaseStatus, InvalidTransitionError

CTR_RECOMMENDATION = "File CTR"


class TestCaseIntake:
    """Tests for creating cases."""

    @pytest.mark.asyncio
    async def test_create_case_starts_new(self, session, analyst):
        workflow = CaseWorkflowService(session, analyst)
        case = await workflow.create_case(
            CaseKind.CTR, "CTR-2024-001", first_name="John", last_name="Smith"
        )

        assert case.ctr_id == "CTR-2024-001"
        assert case.status == CaseStatus.NEW
        assert case.current_owner is None
        assert case.version == 1

    @pytest.mark.asyncio
    async def test_create_case_ignores_requested_status(self, session, analyst):
        workflow = CaseWorkflowService(session, analyst)
        case = await workflow.create_case(
            CaseKind.FORM_8300, "8300-1", status=CaseStatus.APPROVED, folio_number="F-77"
        )

        assert case.status == CaseStatus.NEW
        assert case.folio_number == "F-77"

    @pytest.mark.asyncio
    async def test_duplicate_case_id_conflicts(self, session, analyst, make_case):
        await make_case(CaseKind.CTR, "CTR-1")
        workflow = CaseWorkflowService(session, analyst)

        with pytest.raises(ConflictError):
            await workflow.create_case(CaseKind.CTR, "CTR-1")

    @pytest.mark.asyncio
    async def test_unknown_patron_rejected(self, session, analyst):
        workflow = CaseWorkflowService(session, analyst)

        with pytest.raises(PatronNotFoundError):
            await workflow.create_case(CaseKind.CTR, "CTR-1", patron_id=uuid4())


class TestSingleCaseTransitions:
    """Tests for assign, review, submit and decide."""

    @pytest.mark.asyncio
    async def test_claim_new_case(self, session, analyst, make_case):
        await make_case(CaseKind.CTR, "CTR-1")
        workflow = CaseWorkflowService(session, analyst)

        case = await workflow.assign(CaseKind.CTR, "CTR-1", UUID(analyst.id))

        assert case.status == CaseStatus.ASSIGNED
        assert case.current_owner == UUID(analyst.id)
        assert case.owner_name == "Anna Analyst"
        assert case.version == 2

    @pytest.mark.asyncio
    async def test_assign_to_missing_member(self, session, analyst, make_case):
        await make_case(CaseKind.CTR, "CTR-1")
        workflow = CaseWorkflowService(session, analyst)

        with pytest.raises(MemberNotFoundError):
            await workflow.assign(CaseKind.CTR, "CTR-1", uuid4())

    @pytest.mark.asyncio
    async def test_assign_missing_case(self, session, analyst):
        workflow = CaseWorkflowService(session, analyst)

        with pytest.raises(CaseNotFoundError):
            await workflow.assign(CaseKind.CTR, "CTR-404", UUID(analyst.id))

    @pytest.mark.asyncio
    async def test_reassign_requires_owner_or_admin(
        self, session, analyst, second_analyst, admin, make_case
    ):
        await make_case(CaseKind.CTR, "CTR-1", status=CaseStatus.ASSIGNED, owner=analyst)

        with pytest.raises(NotCaseOwnerError):
            await CaseWorkflowService(session, second_analyst).assign(
                CaseKind.CTR, "CTR-1", UUID(second_analyst.id)
            )

        case = await CaseWorkflowService(session, admin).assign(
            CaseKind.CTR, "CTR-1", UUID(second_analyst.id)
        )
        assert case.status == CaseStatus.ASSIGNED
        assert case.current_owner == UUID(second_analyst.id)

    @pytest.mark.asyncio
    async def test_start_review_requires_owner(self, session, analyst, second_analyst, make_case):
        await make_case(CaseKind.CTR, "CTR-1", status=CaseStatus.ASSIGNED, owner=analyst)

        with pytest.raises(NotCaseOwnerError):
            await CaseWorkflowService(session, second_analyst).start_review(CaseKind.CTR, "CTR-1")

        case = await CaseWorkflowService(session, analyst).start_review(CaseKind.CTR, "CTR-1")
        assert case.status == CaseStatus.UNDER_REVIEW

    @pytest.mark.asyncio
    async def test_unassign_clears_owner(self, session, analyst, make_case):
        await make_case(CaseKind.CTR, "CTR-1", status=CaseStatus.ASSIGNED, owner=analyst)

        case = await CaseWorkflowService(session, analyst).unassign(CaseKind.CTR, "CTR-1")

        assert case.status == CaseStatus.NEW
        assert case.current_owner is None

    @pytest.mark.asyncio
    async def test_return_to_assigned(self, session, analyst, make_case):
        await make_case(CaseKind.CTR, "CTR-1", status=CaseStatus.UNDER_REVIEW, owner=analyst)

        case = await CaseWorkflowService(session, analyst).return_case(CaseKind.CTR, "CTR-1")

        assert case.status == CaseStatus.ASSIGNED
        assert case.current_owner == UUID(analyst.id)

    @pytest.mark.asyncio
    async def test_full_lifecycle_to_approved(self, session, analyst, manager, make_case):
        await make_case(CaseKind.CTR, "CTR-1")
        workflow = CaseWorkflowService(session, analyst)

        await workflow.assign(CaseKind.CTR, "CTR-1", UUID(analyst.id))
        await workflow.start_review(CaseKind.CTR, "CTR-1")
        result = await workflow.submit(
            CaseKind.CTR, "CTR-1", UUID(manager.id), CTR_RECOMMENDATION
        )

        assert result.case.status == CaseStatus.SUBMITTED
        assert result.case.approver == UUID(manager.id)
        assert result.case.recommendation == CTR_RECOMMENDATION

        case = await CaseWorkflowService(session, manager).approve(CaseKind.CTR, "CTR-1")
        assert case.status == CaseStatus.APPROVED
        assert case.status.is_terminal
        assert case.version == 5

    @pytest.mark.asyncio
    async def test_only_approver_can_approve(
        self, session, analyst, manager, second_analyst, make_case
    ):
        await make_case(
            CaseKind.CTR,
            "CTR-1",
            status=CaseStatus.SUBMITTED,
            owner=analyst,
            approver=manager,
            recommendation=CTR_RECOMMENDATION,
        )

        with pytest.raises(NotApproverError):
            await CaseWorkflowService(session, second_analyst).approve(CaseKind.CTR, "CTR-1")
        with pytest.raises(NotApproverError):
            await CaseWorkflowService(session, analyst).approve(CaseKind.CTR, "CTR-1")

    @pytest.mark.asyncio
    async def test_reject_clears_approver_and_recommendation(
        self, session, analyst, manager, make_case
    ):
        await make_case(
            CaseKind.CTR,
            "CTR-1",
            status=CaseStatus.SUBMITTED,
            owner=analyst,
            approver=manager,
            recommendation=CTR_RECOMMENDATION,
        )

        case = await CaseWorkflowService(session, manager).reject(CaseKind.CTR, "CTR-1")

        assert case.status == CaseStatus.UNDER_REVIEW
        assert case.approver is None
        assert case.recommendation is None
        assert case.current_owner == UUID(analyst.id)

    @pytest.mark.asyncio
    async def test_withdraw_keeps_approver(self, session, analyst, manager, make_case):
        await make_case(
            CaseKind.FORM_8300,
            "8300-1",
            status=CaseStatus.SUBMITTED,
            owner=analyst,
            approver=manager,
            recommendation="File 8300",
        )

        case = await CaseWorkflowService(session, analyst).withdraw(CaseKind.FORM_8300, "8300-1")

        assert case.status == CaseStatus.UNDER_REVIEW
        assert case.approver == UUID(manager.id)
        assert case.recommendation == "File 8300"

    @pytest.mark.asyncio
    async def test_illegal_transition(self, session, analyst, manager, make_case):
        await make_case(CaseKind.CTR, "CTR-1")

        with pytest.raises(InvalidTransitionError) as exc_info:
            await CaseWorkflowService(session, manager).approve(CaseKind.CTR, "CTR-1")

        assert exc_info.value.status == CaseStatus.NEW
        assert "CTR-1" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_approved_case_is_final(self, session, analyst, make_case):
        await make_case(CaseKind.CTR, "CTR-1", status=CaseStatus.APPROVED, owner=analyst)

        with pytest.raises(InvalidTransitionError):
            await CaseWorkflowService(session, analyst).assign(
                CaseKind.CTR, "CTR-1", UUID(analyst.id)
            )


class TestSubmission:
    """Tests for submit validation and the patron copy."""

    @pytest.mark.asyncio
    async def test_submit_requires_approver(self, session, analyst, make_case):
        await make_case(CaseKind.CTR, "CTR-1", status=CaseStatus.UNDER_REVIEW, owner=analyst)

        with pytest.raises(ValueError, match="approver"):
            await CaseWorkflowService(session, analyst).submit(
                CaseKind.CTR, "CTR-1", None, CTR_RECOMMENDATION
            )

    @pytest.mark.asyncio
    async def test_submit_rejects_other_kinds_recommendation(
        self, session, analyst, manager, make_case
    ):
        await make_case(CaseKind.CTR, "CTR-1", status=CaseStatus.UNDER_REVIEW, owner=analyst)

        with pytest.raises(ValueError, match="recommendation"):
            await CaseWorkflowService(session, analyst).submit(
                CaseKind.CTR, "CTR-1", UUID(manager.id), "File 8300"
            )

    @pytest.mark.asyncio
    async def test_submit_copies_files_to_patron(
        self, session, blobs, analyst, manager, patron, make_case
    ):
        await make_case(
            CaseKind.CTR,
            "CTR-1",
            status=CaseStatus.UNDER_REVIEW,
            owner=analyst,
            patron_id=patron.id,
        )
        attachments = AttachmentService(session, blobs, analyst)
        await attachments.upload_case_file(CaseKind.CTR, "CTR-1", "log.pdf", b"%PDF-1.4 log")

        result = await CaseWorkflowService(session, analyst, attachments).submit(
            CaseKind.CTR, "CTR-1", UUID(manager.id), CTR_RECOMMENDATION
        )

        assert result.case.status == CaseStatus.SUBMITTED
        assert result.copy.copied == ["log.pdf"]
        patron_files = await attachments.list_patron_files(patron.id)
        assert [f.file_name for f in patron_files] == ["log.pdf"]

    @pytest.mark.asyncio
    async def test_copy_failure_does_not_block_submission(
        self, session, blobs, analyst, manager, patron, make_case
    ):
        await make_case(
            CaseKind.CTR,
            "CTR-1",
            status=CaseStatus.UNDER_REVIEW,
            owner=analyst,
            patron_id=patron.id,
        )
        attachments = AttachmentService(session, blobs, analyst)
        await attachments.upload_case_file(CaseKind.CTR, "CTR-1", "log.pdf", b"data")

        with patch.object(
            blobs, "download", AsyncMock(side_effect=BlobStoreError("storage offline"))
        ):
            result = await CaseWorkflowService(session, analyst, attachments).submit(
                CaseKind.CTR, "CTR-1", UUID(manager.id), CTR_RECOMMENDATION
            )

        assert result.case.status == CaseStatus.SUBMITTED
        assert result.copy.copied == []
        assert "log.pdf" in result.copy.failed
        assert "storage offline" in result.copy.failed["log.pdf"]


class TestCompareAndSwap:
    """Tests for version-checked updates."""

    @pytest.mark.asyncio
    async def test_stale_version_rejected(self, session, analyst, make_case):
        await make_case(CaseKind.CTR, "CTR-1")
        workflow = CaseWorkflowService(session, analyst)

        with pytest.raises(StaleVersionError) as exc_info:
            await workflow.assign(CaseKind.CTR, "CTR-1", UUID(analyst.id), expected_version=7)

        assert exc_info.value.expected == 7
        assert exc_info.value.actual == 1

        case = await workflow.assign(
            CaseKind.CTR, "CTR-1", UUID(analyst.id), expected_version=1
        )
        assert case.version == 2

    @pytest.mark.asyncio
    async def test_stale_submit_copies_nothing(
        self, session, blobs, analyst, manager, patron, make_case
    ):
        await make_case(
            CaseKind.CTR,
            "CTR-1",
            status=CaseStatus.UNDER_REVIEW,
            owner=analyst,
            patron_id=patron.id,
        )
        attachments = AttachmentService(session, blobs, analyst)
        await attachments.upload_case_file(CaseKind.CTR, "CTR-1", "log.pdf", b"%PDF-1.4 log")

        with pytest.raises(StaleVersionError):
            await CaseWorkflowService(session, analyst, attachments).submit(
                CaseKind.CTR, "CTR-1", UUID(manager.id), CTR_RECOMMENDATION, expected_version=7
            )

        assert await attachments.list_patron_files(patron.id) == []
        assert not (blobs.root / PATRON_FILES_BUCKET / str(patron.id)).exists()

    def test_stale_version_is_conflict(self):
        assert issubclass(StaleVersionError, ConflictError)
        assert issubclass(InvalidTransitionError, ConflictError)


class TestBulkOperations:
    """Tests for per-item bulk results."""

    @pytest.mark.asyncio
    async def test_bulk_assign_reports_partial_failure(
        self, session, analyst, second_analyst, make_case
    ):
        await make_case(CaseKind.CTR, "CTR-1")
        await make_case(CaseKind.CTR, "CTR-2", status=CaseStatus.UNDER_REVIEW, owner=analyst)
        await make_case(CaseKind.CTR, "CTR-3")

        result = await CaseWorkflowService(session, analyst).bulk_assign(
            CaseKind.CTR, ["CTR-1", "CTR-2", "CTR-404", "CTR-3"], UUID(second_analyst.id)
        )

        assert result.succeeded == ["CTR-1", "CTR-3"]
        assert [f.case_id for f in result.failed] == ["CTR-2", "CTR-404"]
        assert not result.ok
        assert result.error_message == "2 of 4 case(s) failed: CTR-2, CTR-404"

        cases = CaseRepository(session, CaseKind.CTR)
        for case_id in ("CTR-1", "CTR-3"):
            case = await cases.require(case_id)
            assert case.status == CaseStatus.ASSIGNED
            assert case.current_owner == UUID(second_analyst.id)
        untouched = await cases.require("CTR-2")
        assert untouched.status == CaseStatus.UNDER_REVIEW
        assert untouched.current_owner == UUID(analyst.id)

    @pytest.mark.asyncio
    async def test_bulk_assign_continues_after_store_error(
        self, session, analyst, second_analyst, make_case
    ):
        for case_id in ("CTR-1", "CTR-2", "CTR-3"):
            await make_case(CaseKind.CTR, case_id)
        original = CaseRepository.update

        async def update_failing_for_ctr_2(self, case, expected_version=None, **changes):
            if case.case_id == "CTR-2":
                raise OperationalError("UPDATE ctrs", {}, Exception("connection reset"))
            return await original(self, case, expected_version, **changes)

        with patch.object(CaseRepository, "update", update_failing_for_ctr_2):
            result = await CaseWorkflowService(session, analyst).bulk_assign(
                CaseKind.CTR, ["CTR-1", "CTR-2", "CTR-3"], UUID(second_analyst.id)
            )

        assert result.succeeded == ["CTR-1", "CTR-3"]
        assert [f.case_id for f in result.failed] == ["CTR-2"]
        assert "connection reset" in result.failed[0].error
        cases = CaseRepository(session, CaseKind.CTR)
        assert (await cases.require("CTR-1")).status == CaseStatus.ASSIGNED
        assert (await cases.require("CTR-2")).status == CaseStatus.NEW
        assert (await cases.require("CTR-3")).status == CaseStatus.ASSIGNED

    @pytest.mark.asyncio
    async def test_bulk_submit_reports_copy_store_error(
        self, session, blobs, analyst, manager, patron, make_case
    ):
        for case_id in ("CTR-1", "CTR-2"):
            await make_case(
                CaseKind.CTR,
                case_id,
                status=CaseStatus.UNDER_REVIEW,
                owner=analyst,
                patron_id=patron.id,
            )
        attachments = AttachmentService(session, blobs, analyst)

        with patch.object(
            attachments,
            "copy_case_files_to_patron",
            AsyncMock(side_effect=[BlobStoreError("storage offline"), CopyResult()]),
        ):
            result = await CaseWorkflowService(session, analyst, attachments).bulk_submit(
                CaseKind.CTR, ["CTR-1", "CTR-2"], UUID(manager.id), CTR_RECOMMENDATION
            )

        assert result.succeeded == ["CTR-2"]
        assert result.failed[0].case_id == "CTR-1"
        assert result.failed[0].error == "storage offline"
        cases = CaseRepository(session, CaseKind.CTR)
        assert (await cases.require("CTR-1")).status == CaseStatus.UNDER_REVIEW
        assert (await cases.require("CTR-2")).status == CaseStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_bulk_submit_all_succeed(self, session, analyst, manager, make_case):
        for case_id in ("CTR-1", "CTR-2"):
            await make_case(CaseKind.CTR, case_id, status=CaseStatus.UNDER_REVIEW, owner=analyst)

        result = await CaseWorkflowService(session, analyst).bulk_submit(
            CaseKind.CTR, ["CTR-1", "CTR-2"], UUID(manager.id), CTR_RECOMMENDATION
        )

        assert result.ok
        assert result.error_message is None
        assert result.to_dict()["succeeded"] == ["CTR-1", "CTR-2"]

    @pytest.mark.asyncio
    async def test_bulk_submit_without_approver_fails_each(self, session, analyst, make_case):
        await make_case(CaseKind.CTR, "CTR-1", status=CaseStatus.UNDER_REVIEW, owner=analyst)

        result = await CaseWorkflowService(session, analyst).bulk_submit(
            CaseKind.CTR, ["CTR-1"], None, CTR_RECOMMENDATION
        )

        assert result.succeeded == []
        assert result.failed[0].error == "An approver is required"
