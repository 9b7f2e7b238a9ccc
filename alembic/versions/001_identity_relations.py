"""Identity and relation tables.

Creates users (with the single live refresh token column) and relations
(likes + subscriptions, unique per actor/target/kind).

Revision ID: 001_identity_relations
Revises:
Create Date: 2026-10-16
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "001_identity_relations"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create users and relations."""
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(as_uuid=False), primary_key=True),
        sa.Column("username", sa.String(20), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("full_name", sa.String(128), nullable=False),
        sa.Column("password_hash", sa.String(256), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("avatar_public_id", sa.String(256), nullable=True),
        sa.Column("cover_url", sa.Text(), nullable=True),
        sa.Column("cover_public_id", sa.String(256), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.Column("login_count", sa.Integer(), server_default="0", nullable=False),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "relations",
        sa.Column("id", sa.Uuid(as_uuid=False), primary_key=True),
        sa.Column("actor_id", sa.Uuid(as_uuid=False), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("target_id", sa.Uuid(as_uuid=False), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("actor_id", "target_id", "kind", name="uq_relations_actor_target_kind"),
        sa.CheckConstraint(
            "kind IN ('video-like', 'comment-like', 'tweet-like', 'subscription')",
            name="ck_relations_kind",
        ),
    )
    op.create_index("ix_relations_target_kind", "relations", ["target_id", "kind"])
    op.create_index("ix_relations_actor_kind_created", "relations", ["actor_id", "kind", "created_at"])


def downgrade() -> None:
    """Drop relations and users."""
    op.drop_index("ix_relations_actor_kind_created", table_name="relations")
    op.drop_index("ix_relations_target_kind", table_name="relations")
    op.drop_table("relations")
    op.drop_table("users")
