"""
services/token_codec.py — Signed, expiring JWTs for member sessions.

Payload:
  sub      username
  role     single authority string ("USER", "ADMIN", ...)
  verified email-verification status at issuance time
  deleted  only present (and true) on restorable-account tokens
  iat/exp  integer UNIX seconds
  jti      random, so two tokens issued in the same second still differ

decode() verifies the signature and required claims but never rejects on
expiry; expiry is a separate question answered by is_expired(). This lets
logout and refresh read claims from an access token that has already expired.

The codec has no Flask dependency. Secret, algorithm and clock are passed in
by the caller.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

import jwt
from jwt.utils import base64url_decode, base64url_encode

from tripfriend.errors import InvalidTokenError

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TokenClaims:
    subject: str
    role: str
    verified: bool
    deleted: bool
    issued_at: datetime
    expires_at: datetime


class TokenCodec:

    def __init__(
            self,
            secret_key: str,
            algorithm: str = "HS512",
            clock: Clock = utcnow,
    ) -> None:
        if not secret_key:
            raise ValueError("A signing secret is required.")
        self._secret_key = secret_key
        self._algorithm  = algorithm
        self._clock      = clock

    def issue(
            self,
            subject: str,
            role: str,
            verified: bool,
            *,
            ttl: timedelta,
            deleted: bool = False,
    ) -> str:
        if not subject:
            raise ValueError("Token subject must be a non-empty username.")
        ttl_seconds = int(ttl.total_seconds())
        if ttl_seconds <= 0:
            raise ValueError("Token TTL must be at least one second.")

        issued_at = int(self._clock().timestamp())
        payload = {
            "sub": subject,
            "role": role,
            "verified": bool(verified),
            "iat": issued_at,
            "exp": issued_at + ttl_seconds,
            "jti": secrets.token_hex(8),
        }
        if deleted:
            payload["deleted"] = True

        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def decode(self, token: str) -> TokenClaims:
        if not token or not _is_canonical(token):
            raise InvalidTokenError()

        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "require": ["sub", "iat", "exp"],
                },
            )
        except jwt.InvalidTokenError:
            # Covers: bad signature, malformed token, missing claims.
            raise InvalidTokenError()

        role = payload.get("role")
        verified = payload.get("verified")
        deleted = payload.get("deleted", False)
        if (
                not isinstance(payload["sub"], str)
                or not payload["sub"]
                or not isinstance(role, str)
                or not isinstance(verified, bool)
                or not isinstance(deleted, bool)
                or not isinstance(payload["exp"], int)
                or not isinstance(payload["iat"], int)
        ):
            raise InvalidTokenError("The token is missing a required claim.")

        return TokenClaims(
            subject=payload["sub"],
            role=role,
            verified=verified,
            deleted=deleted,
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

    def is_expired(self, token: str) -> bool:
        """
        True once `exp` is not in the future.

        Decode failures raise InvalidTokenError; an unreadable token is never
        reported as merely "expired". Callers that want to fold the two
        together must catch and coerce explicitly.
        """
        return self.decode(token).expires_at <= self._clock()

    def remaining(self, token: str) -> timedelta:
        """Time left before `exp`; negative once expired."""
        return self.decode(token).expires_at - self._clock()

    def extract_subject(self, token: str) -> str:
        return self.decode(token).subject

    def extract_role(self, token: str) -> str:
        return self.decode(token).role

    def extract_verified(self, token: str) -> bool:
        return self.decode(token).verified

    def extract_deleted(self, token: str) -> bool:
        return self.decode(token).deleted


def _is_canonical(token: str) -> bool:
    """
    Rejects segments whose base64url text is not the canonical encoding of
    the bytes it decodes to. Without this, editing the unused low bits of a
    segment's final character yields a different string that still verifies.
    """
    segments = token.split(".")
    if len(segments) != 3:
        return False
    try:
        return all(
            base64url_encode(base64url_decode(segment)).decode("ascii") == segment
            for segment in segments
        )
    except (ValueError, TypeError, UnicodeError):
        return False
