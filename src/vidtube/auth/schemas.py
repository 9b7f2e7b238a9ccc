"""Request/response schemas for authentication and account endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

# ---------------------------------------------------------------------------
# Login / password
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Login with username or email + password."""

    identifier: str = Field(..., min_length=1, max_length=320)
    password: str = Field(..., min_length=1, max_length=128)


class ChangePasswordRequest(BaseModel):
    """Change password (requires current password)."""

    old_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=1, max_length=128)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class RefreshRequest(BaseModel):
    """Refresh token rotation request. Falls back to the refresh cookie when empty."""

    refresh_token: str | None = None


class TokenResponse(BaseModel):
    """Token pair returned after refresh."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = 900


class LoginResponse(TokenResponse):
    """Token pair plus the redacted user, returned after login."""

    user: UserResponse


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """User profile. Never carries the password hash or refresh token."""

    id: str
    username: str
    email: str
    full_name: str
    avatar_url: str | None = None
    cover_url: str | None = None
    created_at: datetime | None = None
    last_login: datetime | None = None
    login_count: int = 0

    model_config = {"from_attributes": True}


class PublicUserResponse(BaseModel):
    """Public-facing user card used in listings."""

    id: str
    username: str
    full_name: str
    avatar_url: str | None = None

    model_config = {"from_attributes": True}


class AccountUpdateRequest(BaseModel):
    """Update account details."""

    full_name: str = Field(..., min_length=1, max_length=128)
    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class MediaUpdateResponse(BaseModel):
    """Response after replacing an avatar or cover image."""

    url: str
    previous_asset_cleanup: str


# Fix forward reference for LoginResponse
LoginResponse.model_rebuild()
