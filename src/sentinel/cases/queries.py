"""
Case Query Layer.

Named queries behind each list screen (My Cases, Under Review, Submitted,
Pending Approval, PSA, Case Management) plus the archive of approved
cases grouped by gaming-day month.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from sentinel.cases.sorting import SortField, SortOrder, sort_cases
from sentinel.db.orm import CaseRecord
from sentinel.db.repositories import CaseRepository
from sentinel.security.auth import User
from sentinel.workflow.states import CaseKind, CaseStatus

logger = logging.getLogger(__name__)

UNKNOWN_MONTH = "Unknown"


class ArchiveFolder(str, Enum):
    CTRS = "CTRs"
    FORM_8300S = "8300s"
    PSAS = "PSAs"


@dataclass
class ArchiveGroup:
    """Approved cases from one gaming-day month."""

    label: str
    cases: list[CaseRecord] = field(default_factory=list)
    month: Optional[date] = None

    def to_dict(self) -> dict:
        return {"label": self.label, "count": len(self.cases)}


def month_label(day: Optional[date]) -> str:
    """'March 2024' for any day in March 2024, 'Unknown' without a day."""
    if day is None:
        return UNKNOWN_MONTH
    return f"{day.strftime('%B')} {day.year}"


def group_by_month(cases: list[CaseRecord]) -> list[ArchiveGroup]:
    """
    Group cases by gaming-day month.

    Groups are ordered newest month first with the Unknown group last.
    Within a group cases are ordered by gaming day, newest first.
    """
    groups: dict[Optional[date], ArchiveGroup] = {}
    for case in cases:
        day = case.gaming_day
        key = day.replace(day=1) if day is not None else None
        if key not in groups:
            groups[key] = ArchiveGroup(label=month_label(day), month=key)
        groups[key].cases.append(case)

    dated = sorted((k for k in groups if k is not None), reverse=True)
    ordered = [groups[k] for k in dated]
    if None in groups:
        ordered.append(groups[None])

    for group in ordered:
        group.cases = sort_cases(group.cases, SortField.GAMING_DAY, SortOrder.DESC)
    return ordered


class CaseQueryService:
    """Read-only queries over CTRs and Form 8300s."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_cases(
        self,
        kind: CaseKind,
        status: Optional[CaseStatus] = None,
        owner_id: Optional[UUID] = None,
        approver_id: Optional[UUID] = None,
        psa: Optional[bool] = None,
    ) -> list[CaseRecord]:
        return await CaseRepository(self.session, kind).list_cases(
            status=status, owner_id=owner_id, approver_id=approver_id, psa=psa
        )

    async def get_case(self, kind: CaseKind, case_id: str) -> CaseRecord:
        """
        Raises:
            CaseNotFoundError: If the case does not exist
        """
        return await CaseRepository(self.session, kind).require(case_id)

    async def all_cases(self, kind: CaseKind) -> list[CaseRecord]:
        """Every case of a kind, for the Case Management view."""
        return await self.list_cases(kind)

    async def my_cases(self, user: User, kind: CaseKind) -> list[CaseRecord]:
        return await self.list_cases(kind, status=CaseStatus.ASSIGNED, owner_id=UUID(user.id))

    async def under_review(self, user: User, kind: CaseKind) -> list[CaseRecord]:
        return await self.list_cases(
            kind, status=CaseStatus.UNDER_REVIEW, owner_id=UUID(user.id)
        )

    async def my_submissions(self, user: User, kind: CaseKind) -> list[CaseRecord]:
        return await self.list_cases(kind, status=CaseStatus.SUBMITTED, owner_id=UUID(user.id))

    async def pending_approval(self, user: User, kind: CaseKind) -> list[CaseRecord]:
        return await self.list_cases(
            kind, status=CaseStatus.SUBMITTED, approver_id=UUID(user.id)
        )

    async def psa_cases(self, status: Optional[CaseStatus] = None) -> list[CaseRecord]:
        """PSA-flagged CTRs and 8300s together, newest gaming day first."""
        cases: list[CaseRecord] = []
        for kind in CaseKind:
            cases.extend(await self.list_cases(kind, status=status, psa=True))
        return sort_cases(cases, SortField.GAMING_DAY, SortOrder.DESC)

    async def archive(self, folder: ArchiveFolder) -> list[ArchiveGroup]:
        """Approved cases in one archive folder, grouped by month."""
        folder = ArchiveFolder(folder)
        if folder is ArchiveFolder.PSAS:
            cases = await self.psa_cases(status=CaseStatus.APPROVED)
        else:
            kind = CaseKind.CTR if folder is ArchiveFolder.CTRS else CaseKind.FORM_8300
            cases = await self.list_cases(kind, status=CaseStatus.APPROVED, psa=False)

        groups = group_by_month(cases)
        logger.debug(f"Archive {folder.value}: {len(cases)} case(s) in {len(groups)} group(s)")
        return groups
