"""
Pytest configuration and shared fixtures for Sentinel tests.
"""

from datetime import date
from typing import Any, AsyncGenerator, Callable
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from sentinel.db.orm import CaseRecord, Patron, Profile
from sentinel.db.repositories import CaseRepository, PatronRepository, ProfileRepository
from sentinel.db.session import build_engine, build_sessionmaker, create_schema
from sentinel.security.auth import User
from sentinel.storage.blobs import BlobStore
from sentinel.team.service import user_from_profile
from sentinel.workflow.states import CaseKind, CaseStatus


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """A fresh SQLite case store per test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'sentinel.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    async with build_sessionmaker(engine)() as session:
        yield session


@pytest.fixture
def blobs(tmp_path) -> BlobStore:
    """Blob store rooted in the test's temporary directory."""
    store = BlobStore(tmp_path / "storage", "http://testserver")
    store.ensure_buckets()
    return store


async def _profile(session: AsyncSession, email: str, first: str, last: str, **kwargs) -> Profile:
    return await ProfileRepository(session).create(
        email=email,
        # Not a real hash; these members never sign in
        password_hash="unused",
        full_name=f"{first} {last}",
        first_name=first,
        last_name=last,
        **kwargs,
    )


@pytest_asyncio.fixture
async def analyst_profile(session) -> Profile:
    return await _profile(session, "anna@sentinel-casino.com", "Anna", "Analyst")


@pytest_asyncio.fixture
async def second_analyst_profile(session) -> Profile:
    return await _profile(session, "ben@sentinel-casino.com", "Ben", "Analyst")


@pytest_asyncio.fixture
async def manager_profile(session) -> Profile:
    return await _profile(
        session, "maria@sentinel-casino.com", "Maria", "Manager", roles=["Manager"]
    )


@pytest_asyncio.fixture
async def admin_profile(session) -> Profile:
    return await _profile(
        session, "adam@sentinel-casino.com", "Adam", "Admin", roles=["Admin"], is_admin=True
    )


@pytest.fixture
def analyst(analyst_profile) -> User:
    return user_from_profile(analyst_profile)


@pytest.fixture
def second_analyst(second_analyst_profile) -> User:
    return user_from_profile(second_analyst_profile)


@pytest.fixture
def manager(manager_profile) -> User:
    return user_from_profile(manager_profile)


@pytest.fixture
def admin(admin_profile) -> User:
    return user_from_profile(admin_profile)


@pytest_asyncio.fixture
async def patron(session) -> Patron:
    """A patron with identifiers on file."""
    return await PatronRepository(session).create(
        first_name="John",
        last_name="Smith",
        date_of_birth=date(1970, 5, 17),
        phone_number="555-123-4567",
        email_address="jsmith@example.com",
        ssn="123-45-6789",
        id_type="DL",
        id_number="D1234567",
    )


@pytest.fixture
def make_case(session) -> Callable[..., Any]:
    """
    Factory inserting a case directly through the repository.

    Usage:
        case = await make_case(CaseKind.CTR, "CTR-1", status=CaseStatus.ASSIGNED, ...)
    """

    async def _make(
        kind: CaseKind,
        case_id: str,
        status: CaseStatus = CaseStatus.NEW,
        owner: Any = None,
        approver: Any = None,
        **fields: Any,
    ) -> CaseRecord:
        fields.setdefault("first_name", "John")
        fields.setdefault("last_name", "Smith")
        fields.setdefault("ship", "Harmony")
        return await CaseRepository(session, kind).create(
            case_id,
            status=status,
            current_owner=_id(owner),
            approver=_id(approver),
            **fields,
        )

    return _make


def _id(member: Any) -> Any:
    if member is None:
        return None
    if isinstance(member, User):
        return UUID(member.id)
    return member.id
