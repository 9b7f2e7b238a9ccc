"""User account business logic: details and media references."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy.exc import IntegrityError

from vidtube.auth.service import normalize_email
from vidtube.exceptions import DuplicateIdentityError, InvalidArgumentError
from vidtube.media.service import CleanupOutcome, MediaService

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from vidtube.db.models import User

logger = structlog.get_logger()


@dataclass(frozen=True)
class MediaReplacement:
    """Outcome of swapping a user's avatar or cover image."""

    url: str
    cleanup: CleanupOutcome


async def update_account(
    db: AsyncSession,
    user: User,
    full_name: str,
    email: str,
) -> User:
    """
    Update full name and email.

    Raises:
        InvalidArgumentError: Blank full name or malformed email.
        DuplicateIdentityError: Email belongs to another account.
    """
    if not full_name or not full_name.strip():
        msg = "Full name and email are required"
        raise InvalidArgumentError(msg)

    email = normalize_email(email)

    user.full_name = full_name.strip()
    user.email = email
    user.updated_at = datetime.now(timezone.utc)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        msg = "Email already registered"
        raise DuplicateIdentityError(msg) from e
    logger.info("account_updated", user_id=user.id)
    return user


async def _replace_media(
    db: AsyncSession,
    media: MediaService,
    user: User,
    slot: str,
    data: bytes,
    filename: str,
    content_type: str | None,
    label: str,
) -> MediaReplacement:
    """Upload the new asset, point the user at it, then discard the old one."""
    media.validate_image(content_type, len(data), label=label)
    asset = await media.store(data, filename, content_type or "application/octet-stream")

    old_public_id = getattr(user, f"{slot}_public_id")
    setattr(user, f"{slot}_url", asset.url)
    setattr(user, f"{slot}_public_id", asset.public_id)
    user.updated_at = datetime.now(timezone.utc)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        # The new asset is orphaned if the row never points at it.
        await media.discard(asset.public_id)
        raise

    cleanup = await media.discard(old_public_id)
    logger.info("media_replaced", user_id=user.id, slot=slot, cleanup=cleanup.value)
    return MediaReplacement(url=asset.url, cleanup=cleanup)


async def replace_avatar(
    db: AsyncSession,
    media: MediaService,
    user: User,
    data: bytes,
    filename: str,
    content_type: str | None,
) -> MediaReplacement:
    """Swap the user's avatar."""
    return await _replace_media(db, media, user, "avatar", data, filename, content_type, "Avatar")


async def replace_cover(
    db: AsyncSession,
    media: MediaService,
    user: User,
    data: bytes,
    filename: str,
    content_type: str | None,
) -> MediaReplacement:
    """Swap the user's cover image."""
    return await _replace_media(db, media, user, "cover", data, filename, content_type, "Cover image")
