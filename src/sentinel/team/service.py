"""
Team roster and profile settings.

Role and admin edits publish a profiles UPDATE on the change feed so open
team screens refresh.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from sentinel.db.orm import Profile
from sentinel.db.repositories import ProfileRepository
from sentinel.realtime.feed import ChangeEvent, ChangeFeed, ChangeType
from sentinel.security.auth import (
    DEFAULT_ROLE,
    Role,
    User,
    hash_password,
    require_role,
    validate_new_password,
)
from sentinel.storage.blobs import AVATARS_BUCKET, BlobStore

logger = logging.getLogger(__name__)

PROFILES_TABLE = "profiles"


def normalize_roles(roles: Optional[Iterable[str]]) -> list[str]:
    """
    Keep valid role names, de-duplicated, in their original order.

    Anything unrecognized is dropped; an empty result becomes ["Analyst"].
    """
    valid = {role.value for role in Role}
    result: list[str] = []
    for role in roles or []:
        value = role.value if isinstance(role, Role) else str(role)
        if value in valid and value not in result:
            result.append(value)
    return result or [DEFAULT_ROLE.value]


def validate_roles(roles: Iterable[str]) -> list[str]:
    """
    Strict check used by the role editors.

    Raises:
        ValueError: If the list is empty or names an unknown role
    """
    roles = list(roles)
    if not roles:
        raise ValueError("At least one role is required")
    valid = {role.value for role in Role}
    unknown = [r for r in roles if r not in valid]
    if unknown:
        raise ValueError(f"Unknown role(s): {', '.join(unknown)}")
    return normalize_roles(roles)


class MemberView(BaseModel):
    """A team roster entry."""

    id: UUID
    email: str
    full_name: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    roles: list[str]
    is_admin: bool = False
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, profile: Profile) -> "MemberView":
        return cls(
            id=profile.id,
            email=profile.email,
            full_name=profile.display_name,
            first_name=profile.first_name,
            last_name=profile.last_name,
            phone=profile.phone,
            avatar_url=profile.avatar_url,
            roles=normalize_roles(profile.roles),
            is_admin=bool(profile.is_admin),
            created_at=profile.created_at,
        )


def user_from_profile(profile: Profile) -> User:
    """Authenticated-user context for a stored profile."""
    return User(
        id=str(profile.id),
        email=profile.email,
        full_name=profile.display_name,
        first_name=profile.first_name,
        roles=[Role(r) for r in normalize_roles(profile.roles)],
        is_admin=bool(profile.is_admin),
    )


def publish_profile_change(
    feed: Optional[ChangeFeed],
    session: AsyncSession,
    profile: Profile,
    event_type: ChangeType,
) -> None:
    """Announce a profile change to roster subscribers once it is committed."""
    if feed is None:
        return
    feed.publish_on_commit(
        session,
        ChangeEvent(
            table=PROFILES_TABLE,
            event_type=event_type,
            record_id=str(profile.id),
            payload=MemberView.from_record(profile).model_dump(mode="json"),
        ),
    )
    logger.debug(f"Queued {event_type.value} for profile {profile.id}")


class TeamService:
    """The Team screen: roster plus admin-only role management."""

    def __init__(self, session: AsyncSession, user: User, feed: Optional[ChangeFeed] = None):
        self.session = session
        self.user = user
        self.feed = feed
        self.profiles = ProfileRepository(session)

    async def list_members(self) -> list[MemberView]:
        return [MemberView.from_record(p) for p in await self.profiles.list_all()]

    async def update_roles(self, member_id: UUID, roles: Iterable[str]) -> MemberView:
        """
        Raises:
            AuthorizationError: If the caller is not an admin
            ValueError: If roles is empty or contains unknown names
            MemberNotFoundError: If the member does not exist
        """
        require_role(self.user, Role.ADMIN)
        roles = validate_roles(roles)
        profile = await self.profiles.require(member_id)
        await self.profiles.update(profile, roles=roles)
        logger.info(f"{self.user.id} set roles of {member_id} to {roles}")
        publish_profile_change(self.feed, self.session, profile, ChangeType.UPDATE)
        return MemberView.from_record(profile)

    async def set_admin(self, member_id: UUID, is_admin: bool) -> MemberView:
        require_role(self.user, Role.ADMIN)
        profile = await self.profiles.require(member_id)
        await self.profiles.update(profile, is_admin=is_admin)
        logger.info(f"{self.user.id} set is_admin={is_admin} on {member_id}")
        publish_profile_change(self.feed, self.session, profile, ChangeType.UPDATE)
        return MemberView.from_record(profile)


class ProfileSettingsService:
    """The Settings screen for the signed-in user."""

    def __init__(
        self,
        session: AsyncSession,
        user: User,
        blobs: Optional[BlobStore] = None,
        feed: Optional[ChangeFeed] = None,
    ):
        self.session = session
        self.user = user
        self.blobs = blobs
        self.feed = feed
        self.profiles = ProfileRepository(session)

    async def _own_profile(self) -> Profile:
        return await self.profiles.require(UUID(self.user.id))

    async def get_profile(self) -> MemberView:
        return MemberView.from_record(await self._own_profile())

    async def update_profile(
        self,
        first_name: Optional[str],
        last_name: Optional[str],
        phone: Optional[str] = None,
    ) -> MemberView:
        first = (first_name or "").strip() or None
        last = (last_name or "").strip() or None
        full_name = " ".join(p for p in (first, last) if p) or None

        profile = await self._own_profile()
        changes = {"first_name": first, "last_name": last, "full_name": full_name}
        if phone is not None:
            changes["phone"] = phone.strip() or None
        await self.profiles.update(profile, **changes)
        publish_profile_change(self.feed, self.session, profile, ChangeType.UPDATE)
        return MemberView.from_record(profile)

    async def update_own_roles(self, roles: Iterable[str]) -> MemberView:
        roles = validate_roles(roles)
        profile = await self._own_profile()
        await self.profiles.update(profile, roles=roles)
        logger.info(f"{self.user.id} changed own roles to {roles}")
        publish_profile_change(self.feed, self.session, profile, ChangeType.UPDATE)
        return MemberView.from_record(profile)

    async def change_password(self, new_password: str, confirm_password: str) -> None:
        """
        Raises:
            ValueError: If the passwords differ or are too short
        """
        validate_new_password(new_password, confirm_password)
        profile = await self._own_profile()
        await self.profiles.update(profile, password_hash=hash_password(new_password))
        logger.info(f"Password changed for {self.user.id}")

    async def upload_avatar(self, data: bytes) -> MemberView:
        """Store a cropped JPEG avatar and point the profile at its public URL."""
        if self.blobs is None:
            raise RuntimeError("Avatar upload needs a blob store")
        if not data:
            raise ValueError("Avatar image is empty")

        path = f"{self.user.id}/{uuid4()}.jpg"
        await self.blobs.upload(AVATARS_BUCKET, path, data, "image/jpeg", upsert=True)
        profile = await self._own_profile()
        await self.profiles.update(profile, avatar_url=self.blobs.public_url(AVATARS_BUCKET, path))
        publish_profile_change(self.feed, self.session, profile, ChangeType.UPDATE)
        return MemberView.from_record(profile)
