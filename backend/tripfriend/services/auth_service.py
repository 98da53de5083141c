"""
services/auth_service.py — Session lifecycle: login, logout, refresh, and
resolving the member behind an access token.

Responsibilities:
  - Credential checks against the member lookup + password verifier
  - Issuing access/refresh pairs and recording them as the live session
  - Blacklisting access tokens on logout
  - Refreshing access tokens and rotating refresh tokens near expiry
  - Resolving a bearer token to its member record

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, current_app, or HTTP status codes
  - Cookies are the route's job; AuthTokens carries the max-age for each one

Token lifetimes:
  - Normal account:      access 30 min, refresh 7 days
  - Restorable account:  access 10 min, refresh 10 min, `deleted` claim set
    (soft-deleted member still inside the restore window)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Mapping, Optional, Protocol

from tripfriend.errors import (
    AccountPermanentlyDeletedError,
    AuthError,
    ExpiredTokenError,
    InvalidSessionError,
    InvalidTokenError,
    LoggedOutError,
    NoStoredRefreshTokenError,
    NotFoundError,
    RefreshExpiredError,
)
from tripfriend.services.session_store import SessionStore
from tripfriend.services.token_codec import Clock, TokenCodec, utcnow

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


class MemberRecord(Protocol):
    username: str
    password_hash: str
    role: str
    verified: bool
    deleted: bool

    def can_be_restored(self, now=None) -> bool: ...


MemberLookup = Callable[[str], Optional[MemberRecord]]
PasswordVerifier = Callable[[str, str], bool]


@dataclass(frozen=True)
class AuthSettings:
    access_ttl: timedelta = timedelta(minutes=30)
    refresh_ttl: timedelta = timedelta(days=7)
    restorable_ttl: timedelta = timedelta(minutes=10)
    renewal_ratio: float = 0.3

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "AuthSettings":
        """Builds settings from a Flask config mapping (see tripfriend/config.py)."""
        return cls(
            access_ttl=config["JWT_ACCESS_TOKEN_EXPIRES"],
            refresh_ttl=config["JWT_REFRESH_TOKEN_EXPIRES"],
            restorable_ttl=config["JWT_RESTORABLE_TOKEN_EXPIRES"],
            renewal_ratio=config.get("REFRESH_RENEWAL_RATIO", 0.3),
        )


@dataclass(frozen=True)
class AuthTokens:
    access_token: str
    refresh_token: str
    is_deleted_account: bool
    role: str
    # Cookie max-age in seconds. refresh_max_age is None when refresh() kept
    # the stored refresh token, in which case no refresh cookie is written.
    access_max_age: int
    refresh_max_age: int | None

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "is_deleted_account": self.is_deleted_account,
            "role": self.role,
        }


def strip_bearer(value: str) -> str:
    """Removes a leading "Bearer " if present; a bare token passes through."""
    if value.startswith(BEARER_PREFIX):
        return value[len(BEARER_PREFIX):]
    return value


class AuthSessionManager:

    def __init__(
            self,
            codec: TokenCodec,
            store: SessionStore,
            find_member: MemberLookup,
            verify_password: PasswordVerifier,
            settings: AuthSettings | None = None,
            clock: Clock = utcnow,
    ) -> None:
        self._codec           = codec
        self._store           = store
        self._find_member     = find_member
        self._verify_password = verify_password
        self._settings        = settings or AuthSettings()
        self._clock           = clock

    # ── Public operations ──────────────────────────────────────────────────

    def login(self, username: str, password: str) -> AuthTokens:
        """
        Checks credentials and starts a new session, overwriting any previous
        one for the same username.

        Raises:
          NotFoundError                   — no member with this username
          AuthError                       — password mismatch
          AccountPermanentlyDeletedError  — soft-deleted and past the restore window
        """
        member = self._find_member(username)
        if member is None:
            raise NotFoundError()

        if not self._verify_password(password, member.password_hash):
            raise AuthError()

        if member.deleted:
            if not member.can_be_restored(now=self._clock()):
                raise AccountPermanentlyDeletedError()
            tokens = self._start_session(member.username, member.role, member.verified, deleted=True)
            logger.info("Restorable-account login for %s", member.username)
            return tokens

        tokens = self._start_session(member.username, member.role, member.verified, deleted=False)
        logger.info("Login for %s", member.username)
        return tokens

    def logout(self, access_token: str | None) -> None:
        """
        Ends the session that `access_token` belongs to.

        Expired tokens are accepted; the point is cleanup. An undecodable
        token is logged and ignored, since there is nothing to invalidate.
        """
        if not access_token:
            return

        try:
            claims = self._codec.decode(access_token)
        except InvalidTokenError:
            logger.warning("Logout with an undecodable access token; nothing to invalidate")
            return

        self._store.blacklist(access_token, claims.expires_at - self._clock())
        self._store.delete_access_token(claims.subject)
        self._store.delete_refresh_token(claims.subject)
        logger.info("Logout for %s", claims.subject)

    def refresh(self, access_token: str) -> AuthTokens:
        """
        Issues a new access token for the session `access_token` belongs to.

        The presented access token may be expired but its signature must
        verify; its claims (role, verified, deleted) are carried over. The
        stored refresh token is rotated only once it is close to expiry.

        Raises:
          InvalidTokenError          — presented token fails signature/structure checks
          LoggedOutError             — presented token was blacklisted by logout
          NoStoredRefreshTokenError  — no live refresh token for the subject
          RefreshExpiredError        — stored refresh token has expired
        """
        claims = self._codec.decode(access_token)
        username = claims.subject

        if self._store.is_blacklisted(access_token):
            raise LoggedOutError()

        stored_refresh = self._store.get_refresh_token(username)
        if stored_refresh is None:
            raise NoStoredRefreshTokenError()

        if self._codec.is_expired(stored_refresh):
            raise RefreshExpiredError()

        access_ttl, refresh_ttl = self._lifetimes(claims.deleted)

        new_access = self._codec.issue(
            username, claims.role, claims.verified, ttl=access_ttl, deleted=claims.deleted,
        )
        self._store.put_access_token(username, new_access, access_ttl)

        refresh_token = stored_refresh
        refresh_max_age = None
        if self._refresh_needs_renewal(stored_refresh):
            refresh_token = self._codec.issue(
                username, claims.role, claims.verified, ttl=refresh_ttl, deleted=claims.deleted,
            )
            self._store.put_refresh_token(username, refresh_token, refresh_ttl)
            refresh_max_age = _seconds(refresh_ttl)
            logger.info("Rotated refresh token for %s", username)

        return AuthTokens(
            access_token=new_access,
            refresh_token=refresh_token,
            is_deleted_account=claims.deleted,
            role=claims.role,
            access_max_age=_seconds(access_ttl),
            refresh_max_age=refresh_max_age,
        )

    def resolve_principal(self, bearer_value: str) -> MemberRecord:
        """
        Returns the member record behind a bearer header value or bare token.

        Raises:
          LoggedOutError       — token was blacklisted by logout
          InvalidTokenError    — signature/structure checks failed
          InvalidSessionError  — a newer login/refresh replaced this token
          ExpiredTokenError    — token is past its `exp`
          NotFoundError        — live session but no member row (consistency fault)
        """
        token = strip_bearer(bearer_value)

        if self._store.is_blacklisted(token):
            raise LoggedOutError()

        username = self._codec.extract_subject(token)
        if not self._store.access_token_matches(username, token):
            raise InvalidSessionError()

        if self._codec.is_expired(token):
            raise ExpiredTokenError()

        member = self._find_member(username)
        if member is None:
            logger.error(
                "Live session for %s but no member record; session store and members table have diverged",
                username,
            )
            raise NotFoundError()
        return member

    # ── Internals ──────────────────────────────────────────────────────────

    def _lifetimes(self, deleted: bool) -> tuple[timedelta, timedelta]:
        if deleted:
            return self._settings.restorable_ttl, self._settings.restorable_ttl
        return self._settings.access_ttl, self._settings.refresh_ttl

    def _start_session(self, username: str, role: str, verified: bool, *, deleted: bool) -> AuthTokens:
        access_ttl, refresh_ttl = self._lifetimes(deleted)

        access_token = self._codec.issue(username, role, verified, ttl=access_ttl, deleted=deleted)
        refresh_token = self._codec.issue(username, role, verified, ttl=refresh_ttl, deleted=deleted)

        self._store.put_access_token(username, access_token, access_ttl)
        self._store.put_refresh_token(username, refresh_token, refresh_ttl)

        return AuthTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            is_deleted_account=deleted,
            role=role,
            access_max_age=_seconds(access_ttl),
            refresh_max_age=_seconds(refresh_ttl),
        )

    def _refresh_needs_renewal(self, refresh_token: str) -> bool:
        """
        True once less than `renewal_ratio` of the nominal (normal-account)
        refresh lifetime remains.

        Unlike every other call site, a decode failure here does not
        propagate: it counts as "needs renewal", so an unreadable stored
        token gets replaced.
        """
        try:
            remaining = self._codec.remaining(refresh_token)
        except InvalidTokenError:
            return True
        return remaining < self._settings.refresh_ttl * self._settings.renewal_ratio


def _seconds(ttl: timedelta) -> int:
    return int(ttl.total_seconds())
