"""
Per-screen view models.

Each is built from a query result for one response and then discarded.
"""

from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, computed_field

from sentinel.cases.sorting import SortField, SortOrder
from sentinel.db.orm import CaseRecord, Patron
from sentinel.security.encryption import mask_sensitive
from sentinel.workflow.states import CaseKind, CaseStatus, allowed_actions


class CaseRow(BaseModel):
    """One row of a case list."""

    id: UUID
    kind: CaseKind
    case_id: str
    gaming_day: Optional[date] = None
    ship: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    embark_date: Optional[date] = None
    debark_date: Optional[date] = None
    cash_in_total: float = 0
    cash_out_total: float = 0
    folio_number: Optional[str] = None
    voyage_total: Optional[float] = None
    status: CaseStatus
    recommendation: Optional[str] = None
    current_owner: Optional[UUID] = None
    owner_name: Optional[str] = None
    approver: Optional[UUID] = None
    approver_name: Optional[str] = None
    patron_id: Optional[UUID] = None
    is_psa: bool = False
    version: int
    allowed_actions: list[str] = Field(default_factory=list)

    @classmethod
    def from_record(cls, case: CaseRecord) -> "CaseRow":
        return cls(
            id=case.id,
            kind=case.kind,
            case_id=case.case_id,
            gaming_day=case.gaming_day,
            ship=case.ship,
            first_name=case.first_name,
            last_name=case.last_name,
            date_of_birth=case.date_of_birth,
            embark_date=case.embark_date,
            debark_date=case.debark_date,
            cash_in_total=case.cash_in_total or 0,
            cash_out_total=case.cash_out_total or 0,
            folio_number=getattr(case, "folio_number", None),
            voyage_total=getattr(case, "voyage_total", None),
            status=case.status,
            recommendation=case.recommendation,
            current_owner=case.current_owner,
            owner_name=case.owner_name,
            approver=case.approver,
            approver_name=case.approver_name,
            patron_id=case.patron_id,
            is_psa=case.is_psa,
            version=case.version,
            allowed_actions=[a.value for a in allowed_actions(case.status)],
        )


class CaseListView(BaseModel):
    """A sorted case list for one tab."""

    kind: Optional[CaseKind] = None
    sort: Optional[SortField] = None
    order: SortOrder = SortOrder.DESC
    rows: list[CaseRow]
    total: int


class ArchiveGroupView(BaseModel):
    label: str
    cases: list[CaseRow]


class ArchiveView(BaseModel):
    folder: str
    groups: list[ArchiveGroupView]
    total: int


class PatronView(BaseModel):
    """Patron profile with identifying fields masked unless revealed."""

    id: UUID
    first_name: str
    last_name: str
    date_of_birth: Optional[date] = None
    phone_number: str
    email_address: str
    address_line: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    occupation: Optional[str] = None
    ssn: str
    id_type: Optional[str] = None
    id_number: str
    id_state: Optional[str] = None
    id_country: Optional[str] = None
    created_at: Optional[datetime] = None
    masked: bool = True
    ctrs: list[CaseRow] = Field(default_factory=list)
    form_8300s: list[CaseRow] = Field(default_factory=list)

    @classmethod
    def from_record(cls, patron: Patron, reveal: bool = False) -> "PatronView":
        return cls(
            id=patron.id,
            first_name=patron.first_name,
            last_name=patron.last_name,
            date_of_birth=patron.date_of_birth,
            phone_number=mask_sensitive(patron.phone_number, reveal),
            email_address=mask_sensitive(patron.email_address, reveal),
            address_line=patron.address_line,
            city=patron.city,
            state=patron.state,
            country=patron.country,
            occupation=patron.occupation,
            ssn=mask_sensitive(patron.ssn, reveal),
            id_type=patron.id_type,
            id_number=mask_sensitive(patron.id_number, reveal),
            id_state=patron.id_state,
            id_country=patron.id_country,
            created_at=patron.created_at,
            masked=not reveal,
            ctrs=[CaseRow.from_record(c) for c in patron.ctrs],
            form_8300s=[CaseRow.from_record(c) for c in patron.form_8300s],
        )


class StoredFileView(BaseModel):
    """Metadata of a case or patron file."""

    id: UUID
    file_name: str
    file_size: int
    file_type: str
    file_path: str
    last_modified: datetime
    description: Optional[str] = None
    user_id: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class OwnerWorkload(BaseModel):
    owner_id: UUID
    owner_name: str
    assigned: int = 0
    under_review: int = 0
    submitted: int = 0

    @computed_field
    @property
    def total(self) -> int:
        return self.assigned + self.under_review + self.submitted


class DaysToFileBucket(BaseModel):
    days: int
    count: int


class DashboardView(BaseModel):
    tab: str
    greeting: str
    status_counts: dict[str, int]
    owner_workload: list[OwnerWorkload] = Field(default_factory=list)
    days_to_file: list[DaysToFileBucket] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
