"""
models/member.py — Member table definition.

Columns mirror migrations/versions/001_create_members.py.
Only eligibility logic for soft-delete restoration lives here; no imports
from services or routes.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import Boolean, CheckConstraint, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from tripfriend.extensions import db

RESTORE_WINDOW = timedelta(days=30)


class Member(db.Model):
    __tablename__ = "members"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(username)) > 0",
            name="ck_members_username_nonempty",
        ),
        CheckConstraint(
            "email LIKE '%@%'",
            name="ck_members_email_format",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    username: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    nickname: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    # Single authority string, e.g. "USER" or "ADMIN".
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="USER",
        server_default="USER",
    )

    # Email verification status.
    verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )

    # Soft delete. The row is kept until the restore window elapses.
    deleted: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def can_be_restored(self, now: datetime | None = None) -> bool:
        """True while a soft-deleted member is still inside the restore window."""
        if not self.deleted or self.deleted_at is None:
            return False

        now = now or datetime.now(timezone.utc)
        deleted_at = self.deleted_at
        # SQLite hands back naive datetimes even for timezone=True columns.
        if deleted_at.tzinfo is None:
            deleted_at = deleted_at.replace(tzinfo=timezone.utc)
        return now < deleted_at + RESTORE_WINDOW

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Member id={self.id} username={self.username!r}>"
