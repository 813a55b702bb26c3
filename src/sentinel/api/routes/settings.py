"""
Personal settings API routes.

Profile, own roles, avatar and the local preferences store.
"""

from typing import Optional

from fastapi import APIRouter, File, UploadFile
from pydantic import BaseModel, Field

from sentinel.api.deps import AppSettings, PreferencesDep, ProfileSettings, User
from sentinel.team.preferences import Preferences
from sentinel.team.service import MemberView

router = APIRouter()


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)


class RolesUpdate(BaseModel):
    roles: list[str]


@router.get("/profile", response_model=MemberView)
async def get_profile(settings_service: ProfileSettings):
    return await settings_service.get_profile()


@router.put("/profile", response_model=MemberView)
async def update_profile(body: ProfileUpdate, settings_service: ProfileSettings):
    return await settings_service.update_profile(body.first_name, body.last_name, body.phone)


@router.put("/roles", response_model=MemberView)
async def update_own_roles(body: RolesUpdate, settings_service: ProfileSettings):
    """Change your own roles; at least one is required."""
    return await settings_service.update_own_roles(body.roles)


@router.post("/avatar", response_model=MemberView)
async def upload_avatar(
    settings_service: ProfileSettings,
    settings: AppSettings,
    file: UploadFile = File(..., description="Cropped JPEG image"),
):
    data = await file.read()
    if len(data) > settings.max_upload_bytes:
        raise ValueError("Avatar image is too large")
    return await settings_service.upload_avatar(data)


@router.get("/preferences", response_model=Preferences)
async def get_preferences(user: User, store: PreferencesDep):
    return store.load(user.id)


@router.put("/preferences", response_model=Preferences)
async def save_preferences(body: Preferences, user: User, store: PreferencesDep):
    return store.save(user.id, body)
