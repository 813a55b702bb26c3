"""
Database repositories for data access layer.

Provides async CRUD operations for profiles, patrons, cases and file
metadata. Case repositories are parameterized by CaseKind so one
implementation serves both the ctrs and form_8300s tables.
"""

import logging
from datetime import datetime
from typing import Any, Iterable, Optional
from uuid import UUID

from sqlalchemy import and_, func, not_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sentinel.db.orm import (
    CASE_MODELS,
    CaseFile,
    CaseRecord,
    Patron,
    PatronFile,
    Profile,
    utcnow,
)
from sentinel.errors import (
    AttachmentNotFoundError,
    CaseNotFoundError,
    MemberNotFoundError,
    PatronNotFoundError,
    StaleVersionError,
)
from sentinel.workflow.states import PSA_MARKER, CaseKind, CaseStatus

logger = logging.getLogger(__name__)


class ProfileRepository:
    """Repository for team member profiles."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, profile_id: UUID) -> Optional[Profile]:
        result = await self.session.execute(
            select(Profile).where(Profile.id == profile_id)
        )
        return result.scalar_one_or_none()

    async def require(self, profile_id: UUID) -> Profile:
        """Get a profile or raise MemberNotFoundError."""
        profile = await self.get_by_id(profile_id)
        if profile is None:
            raise MemberNotFoundError(profile_id)
        return profile

    async def get_by_email(self, email: str) -> Optional[Profile]:
        result = await self.session.execute(
            select(Profile).where(func.lower(Profile.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        email: str,
        password_hash: str,
        full_name: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        roles: Optional[list[str]] = None,
        is_admin: bool = False,
    ) -> Profile:
        profile = Profile(
            email=email.strip().lower(),
            password_hash=password_hash,
            full_name=full_name,
            first_name=first_name,
            last_name=last_name,
            roles=roles or ["Analyst"],
            is_admin=is_admin,
        )
        self.session.add(profile)
        await self.session.flush()
        return profile

    async def list_all(self) -> list[Profile]:
        """All profiles, oldest first."""
        result = await self.session.execute(
            select(Profile).order_by(Profile.created_at.asc(), Profile.email.asc())
        )
        return list(result.scalars().all())

    async def update(self, profile: Profile, **changes: Any) -> Profile:
        for field, value in changes.items():
            setattr(profile, field, value)
        profile.updated_at = utcnow()
        await self.session.flush()
        return profile


class CaseRepository:
    """Repository for CTR or Form 8300 rows."""

    def __init__(self, session: AsyncSession, kind: CaseKind):
        self.session = session
        self.kind = kind
        self.model = CASE_MODELS[kind]

    @property
    def id_column(self):
        return getattr(self.model, self.kind.id_field)

    async def get_by_case_id(self, case_id: str) -> Optional[CaseRecord]:
        result = await self.session.execute(
            select(self.model).where(self.id_column == case_id)
        )
        return result.scalar_one_or_none()

    async def require(self, case_id: str) -> CaseRecord:
        """Get a case or raise CaseNotFoundError."""
        case = await self.get_by_case_id(case_id)
        if case is None:
            raise CaseNotFoundError(case_id)
        return case

    async def create(self, case_id: str, **fields: Any) -> CaseRecord:
        case = self.model(**{self.kind.id_field: case_id}, **fields)
        self.session.add(case)
        await self.session.flush()
        await self.session.refresh(case)
        return case

    async def list_cases(
        self,
        status: Optional[CaseStatus] = None,
        owner_id: Optional[UUID] = None,
        approver_id: Optional[UUID] = None,
        psa: Optional[bool] = None,
        exclude_statuses: Iterable[CaseStatus] = (),
        owned_only: bool = False,
    ) -> list[CaseRecord]:
        """
        List cases with equality and null filters.

        Args:
            status: Only cases in this status
            owner_id: Only cases owned by this member
            approver_id: Only cases routed to this approver
            psa: True for PSA-flagged only, False to exclude them, None for all
            exclude_statuses: Statuses to leave out
            owned_only: Only cases that have an owner

        Returns:
            Cases ordered by gaming day, newest first
        """
        model = self.model
        stmt = select(model)

        if status is not None:
            stmt = stmt.where(model.status == status)
        if owner_id is not None:
            stmt = stmt.where(model.current_owner == owner_id)
        if approver_id is not None:
            stmt = stmt.where(model.approver == approver_id)
        if owned_only:
            stmt = stmt.where(model.current_owner.is_not(None))

        excluded = list(exclude_statuses)
        if excluded:
            stmt = stmt.where(model.status.not_in(excluded))

        psa_match = model.recommendation.like(f"%{PSA_MARKER}%")
        if psa is True:
            stmt = stmt.where(psa_match)
        elif psa is False:
            stmt = stmt.where(or_(model.recommendation.is_(None), not_(psa_match)))

        stmt = stmt.order_by(model.gaming_day.desc(), self.id_column.asc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def update(
        self,
        case: CaseRecord,
        expected_version: Optional[int] = None,
        **changes: Any,
    ) -> CaseRecord:
        """
        Apply changes with a compare-and-swap on the version column.

        The update only matches when the stored version equals
        expected_version (or the version loaded in this session when no
        expectation is given).

        Raises:
            StaleVersionError: If the row was changed in between
        """
        current = case.version if expected_version is None else expected_version
        stmt = (
            update(self.model)
            .where(and_(self.model.id == case.id, self.model.version == current))
            .values(**changes, version=current + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            await self.session.refresh(case)
            raise StaleVersionError(case.case_id, current, case.version)

        await self.session.refresh(case)
        return case


class PatronRepository:
    """Repository for patrons."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, patron_id: UUID) -> Optional[Patron]:
        result = await self.session.execute(
            select(Patron).where(Patron.id == patron_id)
        )
        return result.scalar_one_or_none()

    async def require(self, patron_id: UUID) -> Patron:
        patron = await self.get_by_id(patron_id)
        if patron is None:
            raise PatronNotFoundError(patron_id)
        return patron

    async def create(self, first_name: str, last_name: str, **fields: Any) -> Patron:
        patron = Patron(first_name=first_name, last_name=last_name, **fields)
        self.session.add(patron)
        await self.session.flush()
        await self.session.refresh(patron)
        return patron

    async def search(self, query: str, limit: int = 50) -> list[Patron]:
        """
        Search patrons by name prefix.

        "first last" matches both prefixes; a single term matches either
        the first or the last name. Case-insensitive.
        """
        terms = query.strip().split()
        if not terms:
            return []

        first = terms[0]
        stmt = select(Patron)
        if len(terms) > 1:
            stmt = stmt.where(
                Patron.first_name.ilike(f"{first}%"),
                Patron.last_name.ilike(f"{terms[1]}%"),
            )
        else:
            stmt = stmt.where(
                or_(
                    Patron.first_name.ilike(f"{first}%"),
                    Patron.last_name.ilike(f"{first}%"),
                )
            )

        stmt = stmt.order_by(Patron.created_at.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class CaseFileRepository:
    """Repository for case file metadata."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, file_id: UUID) -> Optional[CaseFile]:
        result = await self.session.execute(
            select(CaseFile).where(CaseFile.id == file_id)
        )
        return result.scalar_one_or_none()

    async def require(self, file_id: UUID) -> CaseFile:
        record = await self.get_by_id(file_id)
        if record is None:
            raise AttachmentNotFoundError(file_id)
        return record

    async def list_for_case(self, kind: CaseKind, case_id: str) -> list[CaseFile]:
        column = CaseFile.ctr_id if kind is CaseKind.CTR else CaseFile.form_id
        result = await self.session.execute(
            select(CaseFile).where(column == case_id).order_by(CaseFile.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_by_path(self, kind: CaseKind, case_id: str, file_path: str) -> Optional[CaseFile]:
        column = CaseFile.ctr_id if kind is CaseKind.CTR else CaseFile.form_id
        result = await self.session.execute(
            select(CaseFile).where(column == case_id, CaseFile.file_path == file_path)
        )
        return result.scalars().first()

    async def create(
        self,
        kind: CaseKind,
        case_id: str,
        file_name: str,
        file_path: str,
        file_size: int,
        file_type: str,
        user_id: Optional[UUID] = None,
        last_modified: Optional[datetime] = None,
        description: Optional[str] = None,
    ) -> CaseFile:
        record = CaseFile(
            **{kind.id_field: case_id},
            file_name=file_name,
            file_path=file_path,
            file_size=file_size,
            file_type=file_type,
            user_id=user_id,
            last_modified=last_modified or utcnow(),
            description=description,
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def delete(self, record: CaseFile) -> None:
        await self.session.delete(record)
        await self.session.flush()


class PatronFileRepository:
    """Repository for patron file metadata."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, file_id: UUID) -> Optional[PatronFile]:
        result = await self.session.execute(
            select(PatronFile).where(PatronFile.id == file_id)
        )
        return result.scalar_one_or_none()

    async def require(self, file_id: UUID) -> PatronFile:
        record = await self.get_by_id(file_id)
        if record is None:
            raise AttachmentNotFoundError(file_id)
        return record

    async def list_for_patron(self, patron_id: UUID) -> list[PatronFile]:
        result = await self.session.execute(
            select(PatronFile)
            .where(PatronFile.patron_id == patron_id)
            .order_by(PatronFile.created_at.desc())
        )
        return list(result.scalars().all())

    async def create(
        self,
        patron_id: UUID,
        file_name: str,
        file_path: str,
        file_size: int,
        file_type: str,
        user_id: Optional[UUID] = None,
        last_modified: Optional[datetime] = None,
        description: Optional[str] = None,
    ) -> PatronFile:
        record = PatronFile(
            patron_id=patron_id,
            file_name=file_name,
            file_path=file_path,
            file_size=file_size,
            file_type=file_type,
            user_id=user_id,
            last_modified=last_modified or utcnow(),
            description=description,
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def delete(self, record: PatronFile) -> None:
        await self.session.delete(record)
        await self.session.flush()
