"""
Account sign-up, sign-in and token lifecycle.
"""

import logging
from typing import Optional
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from sentinel.config import settings
from sentinel.db.orm import Profile
from sentinel.db.repositories import ProfileRepository
from sentinel.errors import ConflictError
from sentinel.realtime.feed import ChangeFeed, ChangeType
from sentinel.security.auth import (
    AuthenticationError,
    DEFAULT_ROLE,
    User,
    create_access_token,
    create_refresh_token,
    hash_password,
    revoke_token,
    validate_new_password,
    verify_access_token,
    verify_password,
    verify_refresh_token,
)
from sentinel.team.service import publish_profile_change, user_from_profile

logger = logging.getLogger(__name__)


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


def issue_tokens(user: User) -> TokenPair:
    return TokenPair(
        access_token=create_access_token(user),
        refresh_token=create_refresh_token(user),
        expires_in=settings.access_token_expire_minutes * 60,
    )


class AccountService:
    """Credentials and sessions for team members."""

    def __init__(self, session: AsyncSession, feed: Optional[ChangeFeed] = None):
        self.session = session
        self.feed = feed
        self.profiles = ProfileRepository(session)

    async def sign_up(
        self,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> Profile:
        """
        Create a member with the default Analyst role.

        Raises:
            ValueError: If the password is too short
            ConflictError: If the email is already registered
        """
        validate_new_password(password)
        if await self.profiles.get_by_email(email) is not None:
            raise ConflictError("An account with this email already exists")

        full_name = " ".join(p for p in (first_name, last_name) if p) or None
        profile = await self.profiles.create(
            email=email,
            password_hash=hash_password(password),
            full_name=full_name,
            first_name=first_name,
            last_name=last_name,
            roles=[DEFAULT_ROLE.value],
        )
        logger.info(f"New account {profile.id}")
        publish_profile_change(self.feed, self.session, profile, ChangeType.INSERT)
        return profile

    async def sign_in(self, email: str, password: str) -> tuple[Profile, TokenPair]:
        """
        Raises:
            AuthenticationError: If the email or password is wrong
        """
        profile = await self.profiles.get_by_email(email)
        if profile is None or not verify_password(password, profile.password_hash):
            logger.warning(f"Failed sign-in for {email!r}")
            raise AuthenticationError("Invalid login credentials")
        return profile, issue_tokens(user_from_profile(profile))

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Trade a refresh token for a new pair; the old one is revoked."""
        payload = verify_refresh_token(refresh_token)
        profile = await self.profiles.get_by_id(_profile_id(payload.sub))
        if profile is None:
            raise AuthenticationError("Account no longer exists")
        revoke_token(refresh_token)
        return issue_tokens(user_from_profile(profile))

    async def current_user(self, user_id: str) -> User:
        profile = await self.profiles.get_by_id(_profile_id(user_id))
        if profile is None:
            raise AuthenticationError("Account no longer exists")
        return user_from_profile(profile)

    async def get_current_user(self, access_token: Optional[str]) -> Optional[User]:
        """The signed-in user, or None when there is no valid session."""
        if not access_token:
            return None
        try:
            payload = verify_access_token(access_token)
            return await self.current_user(payload.sub)
        except AuthenticationError as e:
            logger.debug(f"No current user: {e}")
            return None

    @staticmethod
    def sign_out(access_token: str, refresh_token: Optional[str] = None) -> None:
        revoke_token(access_token)
        if refresh_token:
            try:
                revoke_token(refresh_token)
            except AuthenticationError as e:
                logger.info(f"Refresh token not revoked on sign-out: {e}")


def _profile_id(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as e:
        raise AuthenticationError("Invalid token subject") from e
