"""Members table.

Revision: 001_create_members
Created:  2026-10-19

Creates the single table behind member accounts. Access tokens, refresh
tokens, the logout blacklist and email verification codes all live in
Redis, so there is nothing else to migrate.

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_create_members"
down_revision: str | None = None      # first migration, no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:
    # username VARCHAR(100) NOT NULL UNIQUE CHECK(LENGTH(TRIM(username))>0)
    # email    VARCHAR(255) NOT NULL UNIQUE CHECK(email LIKE '%@%')
    # nickname VARCHAR(50)  NOT NULL UNIQUE

    op.create_table(
        "members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("nickname", sa.String(50), nullable=False),
        sa.Column(
            "role",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'USER'"),
        ),
        sa.Column(
            "verified",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("FALSE"),
        ),
        sa.Column(
            "deleted",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("FALSE"),
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_members"),
        sa.UniqueConstraint("username", name="uq_members_username"),
        sa.UniqueConstraint("email", name="uq_members_email"),
        sa.UniqueConstraint("nickname", name="uq_members_nickname"),
        sa.CheckConstraint(
            "LENGTH(TRIM(username)) > 0",
            name="ck_members_username_nonempty",
        ),
        sa.CheckConstraint(
            "email LIKE '%@%'",
            name="ck_members_email_format",
        ),
    )

    # The purge of expired soft-deleted rows scans by deleted_at.
    op.create_index(
        "idx_members_deleted_at",
        "members",
        ["deleted_at"],
        postgresql_where=sa.text("deleted = TRUE"),
    )


def downgrade() -> None:
    """Drop everything created in upgrade(). Local development reset only."""
    op.drop_index("idx_members_deleted_at", table_name="members")
    op.drop_table("members")
