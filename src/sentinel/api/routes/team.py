"""
Team management API routes.
"""

from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel

from sentinel.api.deps import Team, User
from sentinel.team.service import MemberView

router = APIRouter()


class RolesUpdate(BaseModel):
    roles: list[str]


class AdminUpdate(BaseModel):
    is_admin: bool


@router.get("", response_model=list[MemberView])
async def list_members(team: Team, user: User):
    """All team members, oldest account first."""
    return await team.list_members()


@router.put("/{member_id}/roles", response_model=MemberView)
async def update_member_roles(member_id: UUID, body: RolesUpdate, team: Team):
    """Replace a member's roles (admin only)."""
    return await team.update_roles(member_id, body.roles)


@router.put("/{member_id}/admin", response_model=MemberView)
async def update_member_admin(member_id: UUID, body: AdminUpdate, team: Team):
    return await team.set_admin(member_id, body.is_admin)
