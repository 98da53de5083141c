"""
middleware/auth_middleware.py — Bearer/cookie authentication decorators.

The @require_auth decorator:
  1. Reads the access token from "Authorization: Bearer <token>", falling
     back to the `accessToken` cookie
  2. Resolves it through AuthSessionManager.resolve_principal (blacklist,
     live-session, expiry, member lookup)
  3. Rejects soft-deleted (deactivated) members with 403
  4. Attaches the member and raw token to flask.g for the request
  5. Lets AppError propagate to the global error handler on any failure

@require_verified and @require_role layer authorization (403) on top.
@require_session is the one variant that lets a deactivated member through;
only /restore uses it, so a restorable-account session can do nothing but
restore.

get_session_manager() is the single place the Flask app is wired to the
framework-free session manager: config, Redis client, DB session, clock.
"""

from __future__ import annotations

import functools
from typing import Callable

from flask import current_app, g, request

from tripfriend.errors import AccountDeactivatedError, AppError, ErrorCode
from tripfriend.extensions import db, redis_client
from tripfriend.services import member_service
from tripfriend.services.auth_service import AuthSessionManager, AuthSettings, strip_bearer
from tripfriend.services.session_store import SessionStore
from tripfriend.services.token_codec import TokenCodec, utcnow

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"


def get_clock():
    return current_app.extensions.get("clock", utcnow)


def get_session_manager() -> AuthSessionManager:
    """Builds (once per request) the session manager for the current app."""
    manager = g.get("session_manager")
    if manager is None:
        config = current_app.config
        clock = get_clock()
        manager = AuthSessionManager(
            codec=TokenCodec(
                config["JWT_SECRET_KEY"],
                algorithm=config.get("JWT_ALGORITHM", "HS512"),
                clock=clock,
            ),
            store=SessionStore(redis_client.client),
            find_member=lambda username: member_service.find_by_username(username, db.session),
            verify_password=member_service.verify_password,
            settings=AuthSettings.from_config(config),
            clock=clock,
        )
        g.session_manager = manager
    return manager


def extract_access_token() -> str | None:
    """Bearer header first, then the accessToken cookie. None if neither is present."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header:
        token = strip_bearer(auth_header).strip()
        return token or None
    return request.cookies.get(ACCESS_COOKIE) or None


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces an authenticated, live session.

    Usage:
        @member_bp.route("/me")
        @require_auth
        def me():
            member = g.member
            ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def require_session(f: Callable) -> Callable:
    """Like require_auth, but a soft-deleted member inside the restore window passes."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request(allow_deactivated=True)
        return f(*args, **kwargs)

    return decorated


def require_verified(f: Callable) -> Callable:
    """Like require_auth, and the member's email must be verified."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        if not g.member.verified:
            raise AppError(
                ErrorCode.EMAIL_NOT_VERIFIED,
                "Email verification has not been completed.",
                403,
            )
        return f(*args, **kwargs)

    return decorated


def require_role(role: str) -> Callable:
    """Like require_auth, and the member must hold `role`."""
    def decorator(f: Callable) -> Callable:
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            _authenticate_request()
            if g.member.role != role:
                raise AppError(
                    ErrorCode.FORBIDDEN,
                    "You do not have permission to access this resource.",
                    403,
                )
            return f(*args, **kwargs)

        return decorated

    return decorator


def _authenticate_request(allow_deactivated: bool = False) -> None:
    """
    Resolves the request's access token and sets flask.g.member and
    flask.g.access_token.

    Raises AppError on any authentication failure (never returns a response
    directly). A soft-deleted member raises AccountDeactivatedError (403)
    unless `allow_deactivated` is set.
    """
    token = extract_access_token()
    if token is None:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token or the accessToken cookie.",
            401,
        )

    member = get_session_manager().resolve_principal(token)
    if member.deleted and not allow_deactivated:
        raise AccountDeactivatedError()

    g.member = member
    g.access_token = token
