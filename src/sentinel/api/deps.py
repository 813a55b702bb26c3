"""
FastAPI dependencies for the API.

Provides:
- Database session management
- JWT-based authentication
- Role-based authorization
- Blob store, change feed and preferences store from app state
- Per-request service construction
"""

import logging
from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from sentinel.cases.queries import CaseQueryService
from sentinel.config import Settings
from sentinel.dashboard.stats import DashboardService
from sentinel.files.service import AttachmentService
from sentinel.patrons.service import PatronService
from sentinel.realtime.feed import ChangeFeed
from sentinel.reports.pdf import CTRTemplateService
from sentinel.security.auth import (
    AuthenticationError,
    AuthorizationError,
    Role,
    User as AuthUser,
    require_role,
    verify_access_token,
)
from sentinel.storage.blobs import BlobStore
from sentinel.team.accounts import AccountService
from sentinel.team.preferences import PreferencesStore
from sentinel.team.service import ProfileSettingsService, TeamService
from sentinel.workflow.service import CaseWorkflowService

logger = logging.getLogger(__name__)


# HTTP Bearer token extractor
security = HTTPBearer(auto_error=False)


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Get database session from request state.

    Commits when the request succeeds, rolls back when it raises.
    """
    async with request.app.state.db_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# Type alias for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blobs


def get_change_feed(request: Request) -> ChangeFeed:
    return request.app.state.feed


def get_preferences_store(request: Request) -> PreferencesStore:
    return request.app.state.preferences


AppSettings = Annotated[Settings, Depends(get_settings)]
Blobs = Annotated[BlobStore, Depends(get_blob_store)]
Feed = Annotated[ChangeFeed, Depends(get_change_feed)]
PreferencesDep = Annotated[PreferencesStore, Depends(get_preferences_store)]


async def get_bearer_token(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> str:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


BearerToken = Annotated[str, Depends(get_bearer_token)]


async def get_current_user(token: BearerToken, session: DbSession) -> AuthUser:
    """
    Get current authenticated user from the JWT and the stored profile.

    Roles and names come from the profile so edits apply without
    re-signing in.

    Raises:
        HTTPException: 401 if not authenticated
    """
    try:
        payload = verify_access_token(token)
        return await AccountService(session).current_user(payload.sub)
    except AuthenticationError as e:
        logger.warning(f"JWT authentication failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


User = Annotated[AuthUser, Depends(get_current_user)]


# Role-based dependencies
async def require_admin(user: User) -> AuthUser:
    """Require admin role."""
    try:
        require_role(user, Role.ADMIN)
        return user
    except AuthorizationError as e:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(e),
        ) from e


async def require_manager(user: User) -> AuthUser:
    """Require manager or admin role."""
    try:
        require_role(user, Role.ADMIN, Role.MANAGER)
        return user
    except AuthorizationError as e:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(e),
        ) from e


AdminUser = Annotated[AuthUser, Depends(require_admin)]
ManagerUser = Annotated[AuthUser, Depends(require_manager)]


def get_account_service(session: DbSession, feed: Feed) -> AccountService:
    return AccountService(session, feed)


def get_attachment_service(session: DbSession, blobs: Blobs, user: User) -> AttachmentService:
    return AttachmentService(session, blobs, user)


Accounts = Annotated[AccountService, Depends(get_account_service)]
Attachments = Annotated[AttachmentService, Depends(get_attachment_service)]


def get_workflow_service(
    session: DbSession, user: User, attachments: Attachments
) -> CaseWorkflowService:
    return CaseWorkflowService(session, user, attachments)


def get_query_service(session: DbSession) -> CaseQueryService:
    return CaseQueryService(session)


def get_dashboard_service(session: DbSession, settings: AppSettings) -> DashboardService:
    return DashboardService(session, deadline_days=settings.filing_deadline_days)


def get_patron_service(session: DbSession) -> PatronService:
    return PatronService(session)


def get_team_service(session: DbSession, user: User, feed: Feed) -> TeamService:
    return TeamService(session, user, feed)


def get_profile_settings_service(
    session: DbSession, user: User, blobs: Blobs, feed: Feed
) -> ProfileSettingsService:
    return ProfileSettingsService(session, user, blobs, feed)


def get_ctr_template_service(blobs: Blobs, attachments: Attachments) -> CTRTemplateService:
    return CTRTemplateService(blobs, attachments)


# Type aliases for services
Workflow = Annotated[CaseWorkflowService, Depends(get_workflow_service)]
Queries = Annotated[CaseQueryService, Depends(get_query_service)]
Dashboard = Annotated[DashboardService, Depends(get_dashboard_service)]
Patrons = Annotated[PatronService, Depends(get_patron_service)]
Team = Annotated[TeamService, Depends(get_team_service)]
ProfileSettings = Annotated[ProfileSettingsService, Depends(get_profile_settings_service)]
CTRTemplates = Annotated[CTRTemplateService, Depends(get_ctr_template_service)]
