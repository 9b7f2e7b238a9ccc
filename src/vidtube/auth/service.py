"""
Authentication business logic.

Handles registration, credential checks and the refresh-token lifecycle.

Each account holds at most one live refresh token (``users.refresh_token``).
Login overwrites it, refresh rotates it with a compare-and-swap on the
presented value, logout clears it. Access tokens are never stored and can
only expire.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import jwt
import structlog
from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError

from vidtube.auth.jwt import issue_token_pair, verify_token
from vidtube.auth.password import (
    burn_verification,
    check_needs_rehash,
    hash_password,
    validate_password_strength,
    verify_password,
)
from vidtube.config import get_settings
from vidtube.db.models import User
from vidtube.exceptions import (
    ConflictRetryError,
    DuplicateIdentityError,
    InvalidArgumentError,
    InvalidCredentialError,
    NotFoundError,
    TokenReuseDetectedError,
    UnauthenticatedError,
)
from vidtube.ids import parse_id

if TYPE_CHECKING:
    from fastapi import UploadFile
    from sqlalchemy.ext.asyncio import AsyncSession

    from vidtube.media.service import MediaAsset, MediaService

logger = structlog.get_logger()

USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]{3,20}$")
INVALID_TOKEN_MESSAGE = "Invalid or expired token"


def normalize_email(email: str) -> str:
    """
    Lower-cased, syntax-checked email address.

    Raises:
        InvalidArgumentError: Not a syntactically valid address.
    """
    try:
        checked = validate_email((email or "").strip(), check_deliverability=False)
    except EmailNotValidError as e:
        msg = "Invalid email format"
        raise InvalidArgumentError(msg) from e
    return checked.normalized.lower()


@dataclass(frozen=True)
class IssuedSession:
    """Tokens handed to a client after login or refresh."""

    access_token: str
    refresh_token: str
    user: User


# ---------------------------------------------------------------------------
# User queries
# ---------------------------------------------------------------------------


async def get_user_by_id(db: AsyncSession, user_id: str) -> User | None:
    """Fetch a user by ID. Malformed ids match nobody."""
    try:
        user_id = parse_id(user_id)
    except InvalidArgumentError:
        return None
    result = await db.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_user_by_identifier(db: AsyncSession, identifier: str) -> User | None:
    """Fetch a user by username or email (case-insensitive)."""
    needle = identifier.strip().lower()
    result = await db.execute(
        select(User).where(or_(User.username == needle, func.lower(User.email) == needle))
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def validate_registration(username: str, email: str, full_name: str, password: str) -> str:
    """
    Check registration fields without touching the store.

    Returns the normalized email.

    Raises:
        InvalidArgumentError: Bad username, email or blank name.
        WeakPasswordError: Password fails the strength policy.
    """
    if not USERNAME_RE.match(username or ""):
        msg = "Username must be 3-20 characters and alphanumeric (underscores allowed)"
        raise InvalidArgumentError(msg)
    email = normalize_email(email)
    if not full_name or not full_name.strip():
        msg = "Full name is required"
        raise InvalidArgumentError(msg)
    validate_password_strength(password)
    return email


async def register(
    db: AsyncSession,
    username: str,
    email: str,
    full_name: str,
    password: str,
    *,
    avatar: MediaAsset | None = None,
    cover: MediaAsset | None = None,
) -> User:
    """
    Register a new account, optionally pointing at already stored images.

    Uniqueness of username and email is enforced by the database; the insert
    itself fails on a duplicate, so two concurrent registrations cannot both
    succeed. Callers that stored ``avatar``/``cover`` own their cleanup when
    this raises.

    Raises:
        InvalidArgumentError: Bad username, email or blank name.
        WeakPasswordError: Password fails the strength policy.
        DuplicateIdentityError: Username or email already taken.
    """
    email = validate_registration(username, email, full_name, password)

    now = datetime.now(timezone.utc)
    user = User(
        username=username.lower(),
        email=email,
        full_name=full_name.strip(),
        password_hash=hash_password(password),
        refresh_token=None,
        avatar_url=avatar.url if avatar else None,
        avatar_public_id=avatar.public_id if avatar else None,
        cover_url=cover.url if cover else None,
        cover_public_id=cover.public_id if cover else None,
        created_at=now,
        updated_at=now,
        login_count=0,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        msg = "User with this username or email already exists"
        raise DuplicateIdentityError(msg) from e

    logger.info("user_registered", user_id=user.id, username=user.username)
    return user


async def register_account(
    db: AsyncSession,
    media: MediaService,
    username: str,
    email: str,
    full_name: str,
    password: str,
    *,
    avatar: UploadFile | None = None,
    cover: UploadFile | None = None,
) -> User:
    """
    Register from a multipart form, storing optional avatar and cover images.

    Fields are checked before any upload is read. Images stored here are
    discarded again when the account cannot be created.

    Raises:
        InvalidArgumentError: Bad field or image.
        WeakPasswordError: Password fails the strength policy.
        DuplicateIdentityError: Username or email already taken.
        InternalError: The media provider failed.
    """
    validate_registration(username, email, full_name, password)
    avatar_data = await media.read_image(avatar, label="Avatar") if avatar is not None else None
    cover_data = await media.read_image(cover, label="Cover image") if cover is not None else None

    stored: list[MediaAsset] = []
    try:
        avatar_asset = cover_asset = None
        if avatar is not None and avatar_data is not None:
            avatar_asset = await media.store(
                avatar_data, avatar.filename or "avatar", avatar.content_type or "application/octet-stream"
            )
            stored.append(avatar_asset)
        if cover is not None and cover_data is not None:
            cover_asset = await media.store(
                cover_data, cover.filename or "cover", cover.content_type or "application/octet-stream"
            )
            stored.append(cover_asset)
        return await register(
            db, username, email, full_name, password, avatar=avatar_asset, cover=cover_asset
        )
    except Exception:
        for asset in stored:
            outcome = await media.discard(asset.public_id)
            logger.info("registration_media_discarded", public_id=asset.public_id, cleanup=outcome.value)
        raise


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


async def login(db: AsyncSession, identifier: str, password: str) -> IssuedSession:
    """
    Verify credentials and start a new session.

    The new refresh token replaces whatever was stored, so a previous
    session's refresh token stops working.

    Raises:
        InvalidArgumentError: Empty identifier.
        InvalidCredentialError: Wrong password (or unknown identity when
            ``login_conceal_unknown_identity`` is on).
        NotFoundError: Unknown identity when concealment is off.
    """
    if not identifier or not identifier.strip():
        msg = "Username or email is required"
        raise InvalidArgumentError(msg)

    user = await get_user_by_identifier(db, identifier)
    if user is None:
        burn_verification(password)
        if get_settings().login_conceal_unknown_identity:
            msg = "Invalid credentials"
            raise InvalidCredentialError(msg)
        msg = "User not found"
        raise NotFoundError(msg)

    if not verify_password(password, user.password_hash):
        msg = "Invalid credentials"
        raise InvalidCredentialError(msg)

    tokens = issue_token_pair(user.id, user.username)
    now = datetime.now(timezone.utc)
    values: dict[str, object] = {
        "refresh_token": tokens.refresh_token,
        "last_login": now,
        "login_count": User.login_count + 1,
    }
    if check_needs_rehash(user.password_hash):
        values["password_hash"] = hash_password(password)
        logger.info("password_rehashed", user_id=user.id)

    await db.execute(update(User).where(User.id == user.id).values(**values))
    await db.commit()
    await db.refresh(user)

    logger.info("session_started", user_id=user.id)
    return IssuedSession(tokens.access_token, tokens.refresh_token, user)


async def refresh(db: AsyncSession, presented_token: str) -> IssuedSession:
    """
    Rotate a refresh token.

    The swap is conditional on the stored value still being the presented
    token, so two concurrent refreshes of the same token cannot both win.

    Raises:
        UnauthenticatedError: Bad signature, expired, or wrong token type.
        NotFoundError: The subject no longer exists.
        TokenReuseDetectedError: Token is not the live one (already rotated
            or logged out).
        ConflictRetryError: A concurrent refresh/logout changed the stored
            token between the check and the swap.
    """
    if not presented_token:
        msg = "Refresh token is required"
        raise UnauthenticatedError(msg)
    try:
        payload = verify_token(presented_token, expected_type="refresh")
    except jwt.InvalidTokenError as e:
        logger.info("token_rejected", token_type="refresh", reason=str(e))
        raise UnauthenticatedError(INVALID_TOKEN_MESSAGE) from e

    user = await get_user_by_id(db, payload["sub"])
    if user is None:
        msg = "User not found"
        raise NotFoundError(msg)

    if user.refresh_token != presented_token:
        logger.warning("refresh_token_reuse_detected", user_id=user.id, jti=payload.get("jti"))
        msg = "Refresh token is expired or used"
        raise TokenReuseDetectedError(msg)

    # Rollback expires `user`; keep the id for the conflict path
    user_id = user.id
    tokens = issue_token_pair(user_id, user.username)
    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .where(User.refresh_token == presented_token)
        .values(refresh_token=tokens.refresh_token)
    )
    if result.rowcount != 1:
        await db.rollback()
        logger.info("refresh_conflict", user_id=user_id)
        msg = "Session changed concurrently, retry"
        raise ConflictRetryError(msg)
    await db.commit()
    await db.refresh(user)

    logger.info("session_refreshed", user_id=user.id)
    return IssuedSession(tokens.access_token, tokens.refresh_token, user)


async def logout(db: AsyncSession, user_id: str) -> None:
    """Clear the stored refresh token. Outstanding access tokens live on until expiry."""
    await db.execute(update(User).where(User.id == user_id).values(refresh_token=None))
    await db.commit()
    logger.info("session_ended", user_id=user_id)


async def change_password(
    db: AsyncSession,
    user_id: str,
    old_password: str,
    new_password: str,
) -> None:
    """
    Replace the password hash after checking the current password.

    Existing sessions are left alone: the stored refresh token is not touched.

    Raises:
        NotFoundError: Unknown user.
        InvalidCredentialError: ``old_password`` is wrong.
        WeakPasswordError: ``new_password`` fails the policy.
    """
    user = await get_user_by_id(db, user_id)
    if user is None:
        msg = "User not found"
        raise NotFoundError(msg)
    if not verify_password(old_password, user.password_hash):
        msg = "Old password is incorrect"
        raise InvalidCredentialError(msg)
    validate_password_strength(new_password)

    await db.execute(
        update(User)
        .where(User.id == user.id)
        .values(password_hash=hash_password(new_password), updated_at=datetime.now(timezone.utc))
    )
    await db.commit()
    logger.info("password_changed", user_id=user.id)


async def authenticate(db: AsyncSession, access_token: str) -> User:
    """
    Resolve an access token to its user.

    Raises:
        UnauthenticatedError: Malformed, badly signed or expired token, or the
            subject no longer exists.
    """
    if not access_token:
        msg = "Unauthorized request"
        raise UnauthenticatedError(msg)
    try:
        payload = verify_token(access_token, expected_type="access")
    except jwt.InvalidTokenError as e:
        logger.info("token_rejected", token_type="access", reason=str(e))
        raise UnauthenticatedError(INVALID_TOKEN_MESSAGE) from e

    user = await get_user_by_id(db, payload["sub"])
    if user is None:
        msg = "Invalid access token"
        raise UnauthenticatedError(msg)
    return user
