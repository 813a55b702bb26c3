"""
Dashboard statistics.

Aggregates for the dashboard tabs:
- Case counts by status (PSA cases are counted only on the PSA tab)
- Open workload per owner
- Days remaining until the filing deadline, in 5-day bins
"""

import logging
import math
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Optional, Union
from uuid import UUID

from sqlalchemy import func, not_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from sentinel.cases.views import DashboardView, DaysToFileBucket, OwnerWorkload
from sentinel.db.orm import CASE_MODELS, Profile
from sentinel.security.auth import User
from sentinel.workflow.states import PSA_MARKER, CaseKind, CaseStatus

logger = logging.getLogger(__name__)

BIN_DAYS = 5
OPEN_STATUSES = (CaseStatus.ASSIGNED, CaseStatus.UNDER_REVIEW, CaseStatus.SUBMITTED)


class DashboardTab(str, Enum):
    CTRS = "CTRs"
    FORM_8300S = "8300s"
    PSAS = "PSAs"


def greeting(now: datetime) -> str:
    if now.hour < 12:
        return "Good morning"
    if now.hour < 18:
        return "Good afternoon"
    return "Good evening"


def greet(user: User, now: datetime) -> str:
    """Time-of-day greeting addressed to the user's first name."""
    salutation = greeting(now)
    return f"{salutation}, {user.first_name}" if user.first_name else salutation


def days_remaining(
    gaming_day: date,
    today: Union[date, datetime],
    deadline_days: int = 15,
) -> int:
    """Whole days until gaming_day + deadline_days, rounded up."""
    deadline = datetime.combine(gaming_day, time.min) + timedelta(days=deadline_days)
    if not isinstance(today, datetime):
        today = datetime.combine(today, time.min)
    return math.ceil((deadline - today.replace(tzinfo=None)) / timedelta(days=1))


def bucket_days(days: int) -> int:
    """Lower edge of the 5-day bin holding days; -1 falls in -5."""
    return math.floor(days / BIN_DAYS) * BIN_DAYS


class DashboardService:
    """Read-only aggregates over the case tables."""

    def __init__(self, session: AsyncSession, deadline_days: int = 15):
        self.session = session
        self.deadline_days = deadline_days

    @staticmethod
    def _psa_filter(model, psa: bool):
        match = model.recommendation.like(f"%{PSA_MARKER}%")
        if psa:
            return match
        return or_(model.recommendation.is_(None), not_(match))

    async def _counts(self, kind: CaseKind, psa: bool) -> dict[str, int]:
        model = CASE_MODELS[kind]
        result = await self.session.execute(
            select(model.status, func.count(model.id))
            .where(self._psa_filter(model, psa))
            .group_by(model.status)
        )
        counts = {status.key: 0 for status in CaseStatus}
        for status, count in result.all():
            counts[CaseStatus(status).key] += count
        return counts

    async def status_counts(self, kind: CaseKind) -> dict[str, int]:
        """Cases of one kind by status, PSA cases excluded."""
        return await self._counts(kind, psa=False)

    async def psa_status_counts(self) -> dict[str, int]:
        """PSA cases by status across CTRs and 8300s."""
        totals = {status.key: 0 for status in CaseStatus}
        for kind in CaseKind:
            for key, count in (await self._counts(kind, psa=True)).items():
                totals[key] += count
        return totals

    async def owner_workload(self, kind: CaseKind) -> list[OwnerWorkload]:
        """
        Open cases per owner, busiest first.

        Unowned and PSA cases are left out, as are owners with nothing open.
        """
        model = CASE_MODELS[kind]
        result = await self.session.execute(
            select(model.current_owner, model.status, func.count(model.id))
            .where(
                model.current_owner.is_not(None),
                model.status.in_(OPEN_STATUSES),
                self._psa_filter(model, psa=False),
            )
            .group_by(model.current_owner, model.status)
        )

        workloads: dict[UUID, OwnerWorkload] = {}
        for owner_id, status, count in result.all():
            if owner_id not in workloads:
                workloads[owner_id] = OwnerWorkload(owner_id=owner_id, owner_name="Unknown")
            setattr(workloads[owner_id], CaseStatus(status).key, count)

        if workloads:
            profiles = await self.session.execute(
                select(Profile).where(Profile.id.in_(list(workloads)))
            )
            for profile in profiles.scalars():
                workloads[profile.id].owner_name = profile.display_name

        rows = [w for w in workloads.values() if w.total > 0]
        rows.sort(key=lambda w: w.total, reverse=True)
        return rows

    async def days_to_file(
        self,
        kind: CaseKind,
        today: Optional[Union[date, datetime]] = None,
    ) -> list[DaysToFileBucket]:
        """
        Histogram of days left before the filing deadline.

        Approved cases and cases without a gaming day are skipped.
        """
        if today is None:
            today = datetime.now()
        model = CASE_MODELS[kind]
        result = await self.session.execute(
            select(model.gaming_day).where(
                model.status != CaseStatus.APPROVED,
                model.gaming_day.is_not(None),
            )
        )

        bins: dict[int, int] = {}
        for (gaming_day,) in result.all():
            days = days_remaining(gaming_day, today, self.deadline_days)
            key = bucket_days(days)
            bins[key] = bins.get(key, 0) + 1

        return [DaysToFileBucket(days=k, count=bins[k]) for k in sorted(bins)]

    async def build(
        self,
        tab: DashboardTab,
        user: User,
        now: Optional[datetime] = None,
    ) -> DashboardView:
        """Everything one dashboard tab shows."""
        if now is None:
            now = datetime.now()
        tab = DashboardTab(tab)

        if tab is DashboardTab.PSAS:
            counts = await self.psa_status_counts()
            workload: list[OwnerWorkload] = []
            # PSA deadlines are charted from the 8300 table
            histogram = await self.days_to_file(CaseKind.FORM_8300, now)
        else:
            kind = CaseKind.CTR if tab is DashboardTab.CTRS else CaseKind.FORM_8300
            counts = await self.status_counts(kind)
            workload = await self.owner_workload(kind)
            histogram = await self.days_to_file(kind, now)

        return DashboardView(
            tab=tab.value,
            greeting=greet(user, now),
            status_counts=counts,
            owner_workload=workload,
            days_to_file=histogram,
        )
