"""ORM models for identities and relations.

Videos, comments, tweets and channels are referenced by opaque id only;
their tables belong to other services.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from vidtube.db.base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Maps to the 'users' table.

    ``refresh_token`` holds the single live refresh token for the account.
    Only the session functions in ``vidtube.auth.service`` write it.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_new_id)
    username: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(128), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)

    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar_public_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    cover_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    cover_public_id: Mapped[str | None] = mapped_column(String(256), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    login_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")


# ---------------------------------------------------------------------------
# Relations (likes + subscriptions)
# ---------------------------------------------------------------------------


class RelationKind(str, enum.Enum):
    """What a relation points at."""

    VIDEO_LIKE = "video-like"
    COMMENT_LIKE = "comment-like"
    TWEET_LIKE = "tweet-like"
    SUBSCRIPTION = "subscription"


class Relation(Base):
    """An active directed edge from an actor to a target.

    A row existing means the like/subscription is on; there is no flag.
    """

    __tablename__ = "relations"
    __table_args__ = (
        UniqueConstraint("actor_id", "target_id", "kind", name="uq_relations_actor_target_kind"),
        Index("ix_relations_target_kind", "target_id", "kind"),
        Index("ix_relations_actor_kind_created", "actor_id", "kind", "created_at"),
    )

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_new_id)
    actor_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    target_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False)
    kind: Mapped[RelationKind] = mapped_column(
        Enum(
            RelationKind,
            name="relation_kind",
            values_callable=lambda kinds: [k.value for k in kinds],
            native_enum=False,
            length=32,
        ),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
