"""
Relationship toggle engine: likes and subscriptions.

A relation is a row keyed by ``(actor_id, target_id, kind)``; a row existing
means "on". Toggling is two atomic statements: delete-if-exists, and if that
removed nothing, an insert guarded by the table's unique constraint. Two
concurrent toggles can therefore never leave duplicate rows; the loser of an
insert race gets ``ConflictRetryError`` and may simply retry.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from vidtube.db.models import Relation, RelationKind
from vidtube.exceptions import ConflictRetryError, InvalidArgumentError
from vidtube.ids import parse_id

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

_TARGET_LABELS = {
    RelationKind.VIDEO_LIKE: "video ID",
    RelationKind.COMMENT_LIKE: "comment ID",
    RelationKind.TWEET_LIKE: "tweet ID",
    RelationKind.SUBSCRIPTION: "channel ID",
}


@dataclass(frozen=True)
class ToggleResult:
    """State of the relation after a toggle."""

    active: bool


# ---------------------------------------------------------------------------
# Toggle
# ---------------------------------------------------------------------------


async def _delete_relation(db: AsyncSession, actor_id: str, target_id: str, kind: RelationKind) -> bool:
    """Delete the relation if present. Returns True if a row was removed."""
    result = await db.execute(
        delete(Relation)
        .where(Relation.actor_id == actor_id)
        .where(Relation.target_id == target_id)
        .where(Relation.kind == kind)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def _insert_relation(db: AsyncSession, actor_id: str, target_id: str, kind: RelationKind) -> None:
    """Insert the relation. Raises IntegrityError if it already exists."""
    db.add(
        Relation(
            actor_id=actor_id,
            target_id=target_id,
            kind=kind,
            created_at=datetime.now(timezone.utc),
        )
    )
    await db.flush()


async def toggle(
    db: AsyncSession,
    actor_id: str,
    target_id: str,
    kind: RelationKind,
) -> ToggleResult:
    """
    Flip the actor's relation to a target.

    Raises:
        InvalidArgumentError: ``target_id`` is malformed, or an actor tries to
            subscribe to themselves.
        ConflictRetryError: A concurrent toggle inserted the same relation
            first.
    """
    kind = RelationKind(kind)
    target_id = parse_id(target_id, _TARGET_LABELS[kind])
    actor_id = parse_id(actor_id, "actor ID")
    if kind is RelationKind.SUBSCRIPTION and actor_id == target_id:
        msg = "You cannot subscribe to your own channel"
        raise InvalidArgumentError(msg)

    try:
        if await _delete_relation(db, actor_id, target_id, kind):
            await db.commit()
            active = False
        else:
            await _insert_relation(db, actor_id, target_id, kind)
            await db.commit()
            active = True
    except IntegrityError as e:
        await db.rollback()
        logger.info("relation_toggle_conflict", actor_id=actor_id, target_id=target_id, kind=kind.value)
        msg = "Relation changed concurrently, retry"
        raise ConflictRetryError(msg) from e

    logger.info("relation_toggled", actor_id=actor_id, target_id=target_id, kind=kind.value, active=active)
    return ToggleResult(active=active)


async def toggle_video_like(db: AsyncSession, actor_id: str, video_id: str) -> ToggleResult:
    """Like or unlike a video."""
    return await toggle(db, actor_id, video_id, RelationKind.VIDEO_LIKE)


async def toggle_comment_like(db: AsyncSession, actor_id: str, comment_id: str) -> ToggleResult:
    """Like or unlike a comment."""
    return await toggle(db, actor_id, comment_id, RelationKind.COMMENT_LIKE)


async def toggle_tweet_like(db: AsyncSession, actor_id: str, tweet_id: str) -> ToggleResult:
    """Like or unlike a tweet."""
    return await toggle(db, actor_id, tweet_id, RelationKind.TWEET_LIKE)


async def toggle_subscription(db: AsyncSession, subscriber_id: str, channel_id: str) -> ToggleResult:
    """Subscribe to or unsubscribe from a channel."""
    return await toggle(db, subscriber_id, channel_id, RelationKind.SUBSCRIPTION)


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


async def list_active(
    db: AsyncSession,
    actor_id: str,
    kind: RelationKind,
    offset: int = 0,
    limit: int | None = None,
) -> list[Relation]:
    """Active relations held by an actor, most recent first."""
    stmt = (
        select(Relation)
        .where(Relation.actor_id == parse_id(actor_id, "actor ID"))
        .where(Relation.kind == RelationKind(kind))
        .order_by(Relation.created_at.desc(), Relation.id.desc())
        .offset(offset)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_active_for_target(
    db: AsyncSession,
    target_id: str,
    kind: RelationKind,
    offset: int = 0,
    limit: int | None = None,
) -> list[Relation]:
    """Active relations pointing at a target (e.g. a channel's subscribers), most recent first."""
    kind = RelationKind(kind)
    stmt = (
        select(Relation)
        .where(Relation.target_id == parse_id(target_id, _TARGET_LABELS[kind]))
        .where(Relation.kind == kind)
        .order_by(Relation.created_at.desc(), Relation.id.desc())
        .offset(offset)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def count_active_for_target(db: AsyncSession, target_id: str, kind: RelationKind) -> int:
    """Number of active relations pointing at a target."""
    kind = RelationKind(kind)
    result = await db.execute(
        select(func.count())
        .select_from(Relation)
        .where(Relation.target_id == parse_id(target_id, _TARGET_LABELS[kind]))
        .where(Relation.kind == kind)
    )
    return result.scalar_one()


async def is_active(db: AsyncSession, actor_id: str, target_id: str, kind: RelationKind) -> bool:
    """Whether the actor currently holds the relation."""
    result = await db.execute(
        select(Relation.id)
        .where(Relation.actor_id == parse_id(actor_id, "actor ID"))
        .where(Relation.target_id == parse_id(target_id))
        .where(Relation.kind == RelationKind(kind))
    )
    return result.first() is not None
