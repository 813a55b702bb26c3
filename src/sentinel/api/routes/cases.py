"""
Case workflow API routes.

Lists for each screen, case intake, single-case transitions and the
bulk assign/submit actions of the Case Management view.
"""

import logging
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from sentinel.api.deps import Attachments, Queries, User, Workflow
from sentinel.cases.sorting import SortField, SortOrder, sort_cases
from sentinel.cases.views import CaseListView, CaseRow, StoredFileView
from sentinel.db.orm import CaseRecord
from sentinel.workflow.states import CaseKind, CaseStatus, RECOMMENDATIONS

logger = logging.getLogger(__name__)

router = APIRouter()


class CaseCreate(BaseModel):
    """Request model for case intake."""

    case_id: str = Field(..., min_length=1, max_length=50)
    gaming_day: Optional[date] = None
    ship: str = Field("", max_length=100)
    first_name: str = Field("", max_length=100)
    last_name: str = Field("", max_length=100)
    date_of_birth: Optional[date] = None
    embark_date: Optional[date] = None
    debark_date: Optional[date] = None
    cash_in_total: float = 0
    cash_out_total: float = 0
    patron_id: Optional[UUID] = None
    # Form 8300 only
    folio_number: Optional[str] = Field(None, max_length=50)
    voyage_total: Optional[float] = None


class ActionRequest(BaseModel):
    """Body for transitions that need nothing but the version check."""

    expected_version: Optional[int] = None


class AssignRequest(ActionRequest):
    member_id: UUID


class SubmitRequest(ActionRequest):
    approver_id: Optional[UUID] = None
    recommendation: Optional[str] = None


class BulkAssignRequest(BaseModel):
    case_ids: list[str] = Field(..., min_length=1)
    member_id: UUID


class BulkSubmitRequest(BaseModel):
    case_ids: list[str] = Field(..., min_length=1)
    approver_id: Optional[UUID] = None
    recommendation: Optional[str] = None


class BulkFailureResponse(BaseModel):
    case_id: str
    error: str


class BulkResponse(BaseModel):
    succeeded: list[str]
    failed: list[BulkFailureResponse]
    ok: bool
    error_message: Optional[str] = None


class CopyFailureResponse(BaseModel):
    file_name: str
    error: str


class SubmitResponse(BaseModel):
    case: CaseRow
    copied: list[str]
    failed: list[CopyFailureResponse]


class CaseDetailResponse(BaseModel):
    case: CaseRow
    files: list[StoredFileView]
    recommendations: list[str]


def _list_view(
    cases: list[CaseRecord],
    kind: Optional[CaseKind],
    sort: Optional[SortField],
    order: SortOrder,
) -> CaseListView:
    rows = [CaseRow.from_record(c) for c in sort_cases(cases, sort, order)]
    return CaseListView(kind=kind, sort=sort, order=order, rows=rows, total=len(rows))


@router.get("/psa", response_model=CaseListView)
async def list_psa_cases(
    queries: Queries,
    user: User,
    status_filter: Optional[CaseStatus] = Query(None, alias="status"),
    sort: Optional[SortField] = Query(None, description="Column to sort by"),
    order: SortOrder = Query(SortOrder.DESC),
):
    """PSA-flagged CTRs and 8300s together."""
    cases = await queries.psa_cases(status=status_filter)
    return _list_view(cases, None, sort, order)


@router.get("/{kind}", response_model=CaseListView)
async def list_cases(
    kind: CaseKind,
    queries: Queries,
    user: User,
    status_filter: Optional[CaseStatus] = Query(None, alias="status"),
    sort: Optional[SortField] = Query(None, description="Column to sort by"),
    order: SortOrder = Query(SortOrder.DESC),
):
    """Every case of a kind, for Case Management."""
    if status_filter is None:
        cases = await queries.all_cases(kind)
    else:
        cases = await queries.list_cases(kind, status=status_filter)
    return _list_view(cases, kind, sort, order)


@router.get("/{kind}/mine", response_model=CaseListView)
async def list_my_cases(
    kind: CaseKind,
    queries: Queries,
    user: User,
    sort: Optional[SortField] = None,
    order: SortOrder = SortOrder.DESC,
):
    return _list_view(await queries.my_cases(user, kind), kind, sort, order)


@router.get("/{kind}/under-review", response_model=CaseListView)
async def list_under_review(
    kind: CaseKind,
    queries: Queries,
    user: User,
    sort: Optional[SortField] = None,
    order: SortOrder = SortOrder.DESC,
):
    return _list_view(await queries.under_review(user, kind), kind, sort, order)


@router.get("/{kind}/submitted", response_model=CaseListView)
async def list_my_submissions(
    kind: CaseKind,
    queries: Queries,
    user: User,
    sort: Optional[SortField] = None,
    order: SortOrder = SortOrder.DESC,
):
    return _list_view(await queries.my_submissions(user, kind), kind, sort, order)


@router.get("/{kind}/pending-approval", response_model=CaseListView)
async def list_pending_approval(
    kind: CaseKind,
    queries: Queries,
    user: User,
    sort: Optional[SortField] = None,
    order: SortOrder = SortOrder.DESC,
):
    """Submissions waiting on the current user's decision."""
    return _list_view(await queries.pending_approval(user, kind), kind, sort, order)


@router.post("/{kind}", response_model=CaseRow, status_code=status.HTTP_201_CREATED)
async def create_case(kind: CaseKind, body: CaseCreate, workflow: Workflow):
    """Intake a new case."""
    fields = body.model_dump(exclude={"case_id", "folio_number", "voyage_total"})
    if kind is CaseKind.FORM_8300:
        fields["folio_number"] = body.folio_number
        fields["voyage_total"] = body.voyage_total
    case = await workflow.create_case(kind, body.case_id, **fields)
    return CaseRow.from_record(case)


@router.post("/{kind}/bulk-assign", response_model=BulkResponse)
async def bulk_assign(kind: CaseKind, body: BulkAssignRequest, workflow: Workflow):
    """Assign several cases; each succeeds or fails on its own."""
    result = await workflow.bulk_assign(kind, body.case_ids, body.member_id)
    return result.to_dict()


@router.post("/{kind}/bulk-submit", response_model=BulkResponse)
async def bulk_submit(kind: CaseKind, body: BulkSubmitRequest, workflow: Workflow):
    result = await workflow.bulk_submit(
        kind, body.case_ids, body.approver_id, body.recommendation
    )
    return result.to_dict()


@router.get("/{kind}/{case_id}", response_model=CaseDetailResponse)
async def get_case(
    kind: CaseKind,
    case_id: str,
    queries: Queries,
    attachments: Attachments,
):
    case = await queries.get_case(kind, case_id)
    files = await attachments.list_case_files(kind, case_id)
    return CaseDetailResponse(
        case=CaseRow.from_record(case),
        files=[StoredFileView.model_validate(f) for f in files],
        recommendations=list(RECOMMENDATIONS[kind]),
    )


@router.post("/{kind}/{case_id}/assign", response_model=CaseRow)
async def assign_case(kind: CaseKind, case_id: str, body: AssignRequest, workflow: Workflow):
    case = await workflow.assign(kind, case_id, body.member_id, body.expected_version)
    return CaseRow.from_record(case)


@router.post("/{kind}/{case_id}/start-review", response_model=CaseRow)
async def start_review(
    kind: CaseKind, case_id: str, workflow: Workflow, body: Optional[ActionRequest] = None
):
    case = await workflow.start_review(kind, case_id, body.expected_version if body else None)
    return CaseRow.from_record(case)


@router.post("/{kind}/{case_id}/unassign", response_model=CaseRow)
async def unassign_case(
    kind: CaseKind, case_id: str, workflow: Workflow, body: Optional[ActionRequest] = None
):
    case = await workflow.unassign(kind, case_id, body.expected_version if body else None)
    return CaseRow.from_record(case)


@router.post("/{kind}/{case_id}/return", response_model=CaseRow)
async def return_case(
    kind: CaseKind, case_id: str, workflow: Workflow, body: Optional[ActionRequest] = None
):
    """Move a case under review back to Assigned."""
    case = await workflow.return_case(kind, case_id, body.expected_version if body else None)
    return CaseRow.from_record(case)


@router.post("/{kind}/{case_id}/submit", response_model=SubmitResponse)
async def submit_case(kind: CaseKind, case_id: str, body: SubmitRequest, workflow: Workflow):
    """Submit for approval; case files are copied to the patron first."""
    result = await workflow.submit(
        kind, case_id, body.approver_id, body.recommendation, body.expected_version
    )
    return SubmitResponse(
        case=CaseRow.from_record(result.case),
        copied=result.copy.copied,
        failed=[
            CopyFailureResponse(file_name=name, error=error)
            for name, error in result.copy.failed.items()
        ],
    )


@router.post("/{kind}/{case_id}/approve", response_model=CaseRow)
async def approve_case(
    kind: CaseKind, case_id: str, workflow: Workflow, body: Optional[ActionRequest] = None
):
    case = await workflow.approve(kind, case_id, body.expected_version if body else None)
    return CaseRow.from_record(case)


@router.post("/{kind}/{case_id}/reject", response_model=CaseRow)
async def reject_case(
    kind: CaseKind, case_id: str, workflow: Workflow, body: Optional[ActionRequest] = None
):
    case = await workflow.reject(kind, case_id, body.expected_version if body else None)
    return CaseRow.from_record(case)


@router.post("/{kind}/{case_id}/withdraw", response_model=CaseRow)
async def withdraw_case(
    kind: CaseKind, case_id: str, workflow: Workflow, body: Optional[ActionRequest] = None
):
    case = await workflow.withdraw(kind, case_id, body.expected_version if body else None)
    return CaseRow.from_record(case)
