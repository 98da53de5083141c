"""
services/member_service.py — Member accounts.

Responsibilities:
  - Registration (uniqueness checks, bcrypt hashing)
  - Lookup by username for the session manager
  - Password verification for the session manager
  - Profile updates (email, nickname, password)
  - Soft delete (ends the current session) and restore

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, or HTTP cookies
  - The DB session is passed in; commit is the route's job

Password storage:
  - Hashed with bcrypt (cost factor passed in, from BCRYPT_LOG_ROUNDS)
  - Raw password is never stored, never logged
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import bcrypt
from sqlalchemy import select
from sqlalchemy.orm import Session

from tripfriend.errors import AccountDeactivatedError, AppError, ErrorCode, NotFoundError
from tripfriend.models.member import Member
from tripfriend.services.auth_service import AuthSessionManager

logger = logging.getLogger(__name__)


# ── Password helpers ───────────────────────────────────────────────────────

def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=rounds),
    ).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time bcrypt comparison. A malformed stored hash never matches."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


# ── Lookups ────────────────────────────────────────────────────────────────

def find_by_username(username: str, session: Session) -> Member | None:
    return session.execute(
        select(Member).where(Member.username == username)
    ).scalar_one_or_none()


def find_by_email(email: str, session: Session) -> Member | None:
    return session.execute(
        select(Member).where(Member.email == email)
    ).scalar_one_or_none()


def find_by_nickname(nickname: str, session: Session) -> Member | None:
    return session.execute(
        select(Member).where(Member.nickname == nickname)
    ).scalar_one_or_none()


def build_member_dict(member: Member) -> dict:
    """Serialises a Member to a plain dict. No business logic."""
    return {
        "id": member.id,
        "username": member.username,
        "email": member.email,
        "nickname": member.nickname,
        "role": member.role,
        "verified": member.verified,
        "deleted": member.deleted,
        "created_at": member.created_at.isoformat() if member.created_at else None,
    }


# ── Public service functions ───────────────────────────────────────────────

def join_member(
        username: str,
        email: str,
        password: str,
        nickname: str,
        session: Session,
        bcrypt_rounds: int = 12,
) -> dict:
    """
    Creates a new, unverified member account.

    Raises:
      AppError(DUPLICATE_USERNAME, 409)
      AppError(DUPLICATE_EMAIL, 409)
      AppError(DUPLICATE_NICKNAME, 409)

    Returns: the serialised member.
    """
    if find_by_username(username, session) is not None:
        raise AppError(
            ErrorCode.DUPLICATE_USERNAME,
            f"The username '{username}' is already taken.",
            409,
            field="username",
        )

    if find_by_email(email, session) is not None:
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            409,
            field="email",
        )

    if find_by_nickname(nickname, session) is not None:
        raise AppError(
            ErrorCode.DUPLICATE_NICKNAME,
            f"The nickname '{nickname}' is already taken.",
            409,
            field="nickname",
        )

    member = Member(
        username=username,
        email=email,
        password_hash=hash_password(password, rounds=bcrypt_rounds),
        nickname=nickname,
        role="USER",
        verified=False,
        deleted=False,
    )
    session.add(member)
    session.flush()  # populate member.id and server defaults

    logger.info("Registered member %s", username)
    return build_member_dict(member)


def update_member(
        member: Member,
        session: Session,
        email: str | None = None,
        nickname: str | None = None,
        password: str | None = None,
        bcrypt_rounds: int = 12,
) -> dict:
    """
    Partial profile update. Omitted fields are left alone.

    Uniqueness is re-checked only for values that actually change. A new email
    address clears `verified`; the member must verify it again.

    Raises:
      AppError(DUPLICATE_EMAIL, 409)
      AppError(DUPLICATE_NICKNAME, 409)
    """
    if email is not None and email != member.email:
        if find_by_email(email, session) is not None:
            raise AppError(
                ErrorCode.DUPLICATE_EMAIL,
                f"The email address '{email}' is already registered.",
                409,
                field="email",
            )
        member.email = email
        member.verified = False

    if nickname is not None and nickname != member.nickname:
        if find_by_nickname(nickname, session) is not None:
            raise AppError(
                ErrorCode.DUPLICATE_NICKNAME,
                f"The nickname '{nickname}' is already taken.",
                409,
                field="nickname",
            )
        member.nickname = nickname

    if password:
        member.password_hash = hash_password(password, rounds=bcrypt_rounds)

    session.flush()
    logger.info("Updated member %s", member.username)
    return build_member_dict(member)


def delete_member(
        member: Member,
        access_token: str | None,
        manager: AuthSessionManager,
        session: Session,
        now: datetime | None = None,
) -> None:
    """
    Soft-deletes a member and ends their current session.

    The row stays until the restore window elapses; logging in during the
    window yields restorable-account tokens.

    Raises:
      AccountDeactivatedError(403)  — member is already soft-deleted; the
                                      original deleted_at is kept
    """
    if member.deleted:
        raise AccountDeactivatedError("The account has already been deleted.")

    manager.logout(access_token)

    member.deleted = True
    member.deleted_at = now or datetime.now(timezone.utc)
    session.flush()
    logger.info("Soft-deleted member %s", member.username)


def restore_member(
        member: Member,
        session: Session,
        now: datetime | None = None,
) -> dict:
    """
    Reverses a soft delete inside the restore window.

    Raises:
      AppError(MEMBER_NOT_DELETED, 404)      — member is active
      AppError(RESTORE_WINDOW_EXPIRED, 403)  — window has elapsed
    """
    if not member.deleted:
        raise AppError(
            ErrorCode.MEMBER_NOT_DELETED,
            "The account does not exist or is already active.",
            404,
        )

    if not member.can_be_restored(now=now):
        raise AppError(
            ErrorCode.RESTORE_WINDOW_EXPIRED,
            "The restore period for this account has expired.",
            403,
        )

    member.deleted = False
    member.deleted_at = None
    session.flush()
    logger.info("Restored member %s", member.username)
    return build_member_dict(member)


def get_member(member_id: int, session: Session) -> dict:
    """
    Raises:
      NotFoundError — member_id no longer exists.
    """
    member = session.get(Member, member_id)
    if member is None:
        raise NotFoundError(f"Member {member_id} not found.")
    return build_member_dict(member)


def list_members(session: Session) -> list[dict]:
    members = session.execute(select(Member).order_by(Member.id)).scalars().all()
    return [build_member_dict(member) for member in members]
