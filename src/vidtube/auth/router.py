"""Session router: login, refresh, logout, password endpoints under /api/v1/users."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from vidtube.auth.cookies import clear_session_cookies, set_session_cookies
from vidtube.auth.dependencies import get_current_user
from vidtube.auth.schemas import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    TokenResponse,
    UserResponse,
)
from vidtube.auth.service import change_password, login, logout, refresh, register_account
from vidtube.config import get_settings
from vidtube.database import get_session
from vidtube.db.models import User
from vidtube.media.service import MediaService, get_media_service

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/users", tags=["Authentication"])


def _user_response(user: User) -> UserResponse:
    """Build a UserResponse from a User model."""
    return UserResponse.model_validate(user)


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register_endpoint(
    username: str = Form(..., max_length=64),
    email: str = Form(..., max_length=320),
    full_name: str = Form(..., max_length=128),
    password: str = Form(..., max_length=128),
    avatar: UploadFile | None = File(None),
    cover_image: UploadFile | None = File(None, alias="coverImage"),
    db: AsyncSession = Depends(get_session),
    media: MediaService = Depends(get_media_service),
) -> UserResponse:
    """Register from a multipart form with optional avatar and cover image."""
    user = await register_account(
        db,
        media,
        username=username,
        email=email,
        full_name=full_name,
        password=password,
        avatar=avatar,
        cover=cover_image,
    )
    return _user_response(user)


@router.post("/login", response_model=LoginResponse)
async def login_endpoint(
    body: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_session),
) -> LoginResponse:
    """Login with username or email + password. Sets session cookies."""
    session = await login(db, body.identifier, body.password)
    set_session_cookies(response, session.access_token, session.refresh_token)
    return LoginResponse(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_in=get_settings().jwt_access_token_expire_minutes * 60,
        user=_user_response(session.user),
    )


@router.post("/refresh-token", response_model=TokenResponse)
async def refresh_endpoint(
    request: Request,
    response: Response,
    body: RefreshRequest | None = None,
    db: AsyncSession = Depends(get_session),
) -> TokenResponse:
    """Rotate the refresh token (body or cookie) and issue a new pair."""
    presented = body.refresh_token if body is not None else None
    if not presented:
        presented = request.cookies.get(get_settings().refresh_cookie_name)
    session = await refresh(db, presented or "")
    set_session_cookies(response, session.access_token, session.refresh_token)
    return TokenResponse(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_in=get_settings().jwt_access_token_expire_minutes * 60,
    )


@router.post("/logout")
async def logout_endpoint(
    response: Response,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, str]:
    """Revoke the stored refresh token and clear cookies."""
    await logout(db, user.id)
    clear_session_cookies(response)
    return {"status": "logged_out"}


@router.post("/change-password")
async def change_password_endpoint(
    body: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict[str, str]:
    """Change password. Existing sessions stay valid."""
    await change_password(db, user.id, body.old_password, body.new_password)
    return {"status": "password_changed"}
