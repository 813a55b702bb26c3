"""
Authentication API routes.

Provides endpoints for:
- Sign-up and sign-in (email/password)
- Token refresh
- Sign-out (token revocation)
- Current user and password change
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, EmailStr, Field

from sentinel.api.deps import Accounts, BearerToken, ProfileSettings, User
from sentinel.security.auth import AuthenticationError
from sentinel.team.accounts import TokenPair
from sentinel.team.service import MemberView

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


class SignUpRequest(BaseModel):
    """Sign-up request body."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=200)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)


class SignInRequest(BaseModel):
    """Sign-in request body."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=200)


class SignInResponse(TokenPair):
    """Tokens plus the signed-in member."""

    user: MemberView


class RefreshRequest(BaseModel):
    refresh_token: str


class SignOutRequest(BaseModel):
    refresh_token: Optional[str] = None


class PasswordChangeRequest(BaseModel):
    new_password: str = Field(..., min_length=1, max_length=200)
    confirm_password: str = Field(..., min_length=1, max_length=200)


class CurrentUserResponse(BaseModel):
    id: str
    email: Optional[str]
    full_name: Optional[str]
    first_name: Optional[str]
    roles: list[str]
    is_admin: bool
    can_manage_team: bool
    can_view_sensitive: bool


@router.post("/signup", response_model=MemberView, status_code=status.HTTP_201_CREATED)
async def sign_up(body: SignUpRequest, accounts: Accounts):
    """Create an account with the Analyst role."""
    profile = await accounts.sign_up(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return MemberView.from_record(profile)


@router.post("/signin", response_model=SignInResponse)
async def sign_in(body: SignInRequest, accounts: Accounts):
    """Authenticate and issue access and refresh tokens."""
    try:
        profile, tokens = await accounts.sign_in(body.email, body.password)
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e)) from e
    return SignInResponse(**tokens.model_dump(), user=MemberView.from_record(profile))


@router.post("/refresh", response_model=TokenPair)
async def refresh(body: RefreshRequest, accounts: Accounts):
    try:
        return await accounts.refresh(body.refresh_token)
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e)) from e


@router.post("/signout", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(
    token: BearerToken,
    user: User,
    accounts: Accounts,
    body: Optional[SignOutRequest] = None,
):
    """Revoke the access token, and the refresh token when given."""
    accounts.sign_out(token, body.refresh_token if body else None)
    logger.info(f"User {user.id} signed out")


@router.get("/me", response_model=CurrentUserResponse)
async def me(user: User):
    return CurrentUserResponse(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        first_name=user.first_name,
        roles=[r.value for r in user.roles],
        is_admin=user.is_admin,
        can_manage_team=user.can_manage_team,
        can_view_sensitive=user.can_view_sensitive,
    )


@router.post("/password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(body: PasswordChangeRequest, settings_service: ProfileSettings):
    await settings_service.change_password(body.new_password, body.confirm_password)
