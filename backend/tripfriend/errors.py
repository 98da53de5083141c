"""
errors.py — AppError base class, error code registry, and the auth error taxonomy.

Every error returned by the TripFriend API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD               = "MISSING_FIELD"
    INVALID_FIELD               = "INVALID_FIELD"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL             = "DUPLICATE_EMAIL"
    DUPLICATE_USERNAME          = "DUPLICATE_USERNAME"
    DUPLICATE_NICKNAME          = "DUPLICATE_NICKNAME"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    MEMBER_NOT_FOUND            = "MEMBER_NOT_FOUND"
    MEMBER_NOT_DELETED          = "MEMBER_NOT_DELETED"

    # ── Account State (403) ────────────────────────────────────────────────
    ACCOUNT_PERMANENTLY_DELETED = "ACCOUNT_PERMANENTLY_DELETED"
    ACCOUNT_DEACTIVATED         = "ACCOUNT_DEACTIVATED"
    RESTORE_WINDOW_EXPIRED      = "RESTORE_WINDOW_EXPIRED"
    EMAIL_NOT_VERIFIED          = "EMAIL_NOT_VERIFIED"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed (unauthorized)
    INVALID_CREDENTIALS         = "INVALID_CREDENTIALS"    # 401
    TOKEN_MISSING               = "TOKEN_MISSING"          # 401
    TOKEN_INVALID               = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED               = "TOKEN_EXPIRED"          # 401
    TOKEN_LOGGED_OUT            = "TOKEN_LOGGED_OUT"       # 401
    SESSION_INVALID             = "SESSION_INVALID"        # 401
    REFRESH_TOKEN_MISSING       = "REFRESH_TOKEN_MISSING"  # 401
    REFRESH_TOKEN_EXPIRED       = "REFRESH_TOKEN_EXPIRED"  # 401
    FORBIDDEN                   = "FORBIDDEN"              # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR              = "INTERNAL_ERROR"


# ── Auth taxonomy ──────────────────────────────────────────────────────────
#
# Each subclass pins a code and status so the session manager can raise by
# kind while the global handler still renders the standard envelope.
# ──────────────────────────────────────────────────────────────────────────

class NotFoundError(AppError):
    def __init__(self, message: str = "The account does not exist.") -> None:
        super().__init__(ErrorCode.MEMBER_NOT_FOUND, message, 404)


class AuthError(AppError):
    def __init__(self, message: str = "Check your password.") -> None:
        super().__init__(ErrorCode.INVALID_CREDENTIALS, message, 401)


class AccountPermanentlyDeletedError(AppError):
    def __init__(
            self,
            message: str = "This account has been permanently deleted. Please sign up with a new account.",
    ) -> None:
        super().__init__(ErrorCode.ACCOUNT_PERMANENTLY_DELETED, message, 403)


class NoStoredRefreshTokenError(AppError):
    def __init__(self, message: str = "No refresh token is stored for this session. Please log in again.") -> None:
        super().__init__(ErrorCode.REFRESH_TOKEN_MISSING, message, 401)


class RefreshExpiredError(AppError):
    def __init__(self, message: str = "The refresh token has expired. Please log in again.") -> None:
        super().__init__(ErrorCode.REFRESH_TOKEN_EXPIRED, message, 401)


class InvalidTokenError(AppError):
    def __init__(self, message: str = "The token is invalid or has been tampered with.") -> None:
        super().__init__(ErrorCode.TOKEN_INVALID, message, 401)


class LoggedOutError(AppError):
    def __init__(self, message: str = "This token has been logged out.") -> None:
        super().__init__(ErrorCode.TOKEN_LOGGED_OUT, message, 401)


class InvalidSessionError(AppError):
    def __init__(self, message: str = "This token is no longer the active session.") -> None:
        super().__init__(ErrorCode.SESSION_INVALID, message, 401)


class AccountDeactivatedError(AppError):
    def __init__(
            self,
            message: str = "This account is deactivated. Restore it to continue.",
    ) -> None:
        super().__init__(ErrorCode.ACCOUNT_DEACTIVATED, message, 403)


class ExpiredTokenError(AppError):
    def __init__(self, message: str = "The access token has expired. Use POST /member/refresh.") -> None:
        super().__init__(ErrorCode.TOKEN_EXPIRED, message, 401)
