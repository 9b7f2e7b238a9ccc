"""User account router: current user, account details, avatar and cover image."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from vidtube.auth.dependencies import get_current_user
from vidtube.auth.schemas import AccountUpdateRequest, MediaUpdateResponse, UserResponse
from vidtube.database import get_session
from vidtube.db.models import User
from vidtube.media.service import MediaService, get_media_service
from vidtube.users.service import replace_avatar, replace_cover, update_account

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("/current-user", response_model=UserResponse)
async def get_current_user_endpoint(
    user: User = Depends(get_current_user),
) -> UserResponse:
    """Get own profile."""
    return UserResponse.model_validate(user)


@router.patch("/update-account", response_model=UserResponse)
async def update_account_endpoint(
    body: AccountUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    """Update full name and email."""
    user = await update_account(db, user, full_name=body.full_name, email=body.email)
    return UserResponse.model_validate(user)


@router.patch("/avatar", response_model=MediaUpdateResponse)
async def update_avatar_endpoint(
    avatar: UploadFile = File(...),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    media: MediaService = Depends(get_media_service),
) -> MediaUpdateResponse:
    """Replace the avatar image."""
    data = await media.read_image(avatar, label="Avatar")
    result = await replace_avatar(db, media, user, data, avatar.filename or "avatar", avatar.content_type)
    return MediaUpdateResponse(url=result.url, previous_asset_cleanup=result.cleanup.value)


@router.patch("/cover-image", response_model=MediaUpdateResponse)
async def update_cover_endpoint(
    cover_image: UploadFile = File(..., alias="coverImage"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    media: MediaService = Depends(get_media_service),
) -> MediaUpdateResponse:
    """Replace the cover image."""
    data = await media.read_image(cover_image, label="Cover image")
    result = await replace_cover(
        db, media, user, data, cover_image.filename or "cover", cover_image.content_type
    )
    return MediaUpdateResponse(url=result.url, previous_asset_cleanup=result.cleanup.value)
