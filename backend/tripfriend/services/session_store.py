"""
services/session_store.py — Redis key schema for live sessions and logout.

Keys:
  access:<username>     current access token    TTL = access lifetime
  refresh:<username>    current refresh token   TTL = refresh lifetime
  blacklist:<token>     "logout"                TTL = token's remaining lifetime

Each username holds at most one live access and one live refresh token;
every put overwrites the previous value. A store miss means "no live
session", so losing Redis logs everybody out rather than letting stale tokens
through.

`client` is anything with the redis-py get / set(px=...) / delete / exists
surface. Single-key atomicity is the client's job; nothing here locks.
"""

from __future__ import annotations

from datetime import timedelta


def _millis(ttl: timedelta) -> int:
    return int(ttl.total_seconds() * 1000)


class SessionStore:

    ACCESS_PREFIX = "access:"
    REFRESH_PREFIX = "refresh:"
    BLACKLIST_PREFIX = "blacklist:"
    BLACKLIST_SENTINEL = "logout"

    def __init__(self, client) -> None:
        self._client = client

    # ── Access tokens ──────────────────────────────────────────────────────

    def put_access_token(self, username: str, token: str, ttl: timedelta) -> None:
        self._client.set(self.ACCESS_PREFIX + username, token, px=_millis(ttl))

    def get_access_token(self, username: str) -> str | None:
        return self._client.get(self.ACCESS_PREFIX + username)

    def delete_access_token(self, username: str) -> None:
        self._client.delete(self.ACCESS_PREFIX + username)

    def access_token_matches(self, username: str, token: str) -> bool:
        """True only for the token most recently written for `username`."""
        return self.get_access_token(username) == token

    # ── Refresh tokens ─────────────────────────────────────────────────────

    def put_refresh_token(self, username: str, token: str, ttl: timedelta) -> None:
        self._client.set(self.REFRESH_PREFIX + username, token, px=_millis(ttl))

    def get_refresh_token(self, username: str) -> str | None:
        return self._client.get(self.REFRESH_PREFIX + username)

    def delete_refresh_token(self, username: str) -> None:
        self._client.delete(self.REFRESH_PREFIX + username)

    # ── Blacklist ──────────────────────────────────────────────────────────

    def blacklist(self, token: str, ttl: timedelta) -> bool:
        """
        Blacklists `token` until it would have expired anyway.

        Returns False without writing when `ttl` is not positive: an expired
        token is already rejected on expiry alone.
        """
        ttl_ms = _millis(ttl)
        if ttl_ms <= 0:
            return False
        self._client.set(
            self.BLACKLIST_PREFIX + token,
            self.BLACKLIST_SENTINEL,
            px=ttl_ms,
        )
        return True

    def is_blacklisted(self, token: str) -> bool:
        return bool(self._client.exists(self.BLACKLIST_PREFIX + token))
