"""
Unit tests for AuthSessionManager: login, logout, refresh, resolve_principal.

The manager is wired to the in-memory Redis double, a frozen clock, a dict of
Member objects (never added to a DB session) and a fake password verifier, so
every branch runs without Flask, PostgreSQL or bcrypt.
"""

from __future__ import annotations

import logging
from datetime import timedelta

import pytest

from tripfriend.errors import (
    AccountPermanentlyDeletedError,
    AuthError,
    ErrorCode,
    ExpiredTokenError,
    InvalidSessionError,
    InvalidTokenError,
    LoggedOutError,
    NoStoredRefreshTokenError,
    NotFoundError,
    RefreshExpiredError,
)
from tripfriend.models.member import Member
from tripfriend.services.auth_service import (
    AuthSessionManager,
    AuthSettings,
    strip_bearer,
)

NORMAL_ACCESS = timedelta(minutes=30)
NORMAL_REFRESH = timedelta(days=7)
RESTORABLE = timedelta(minutes=10)
# 30% of the nominal seven-day refresh lifetime.
RENEWAL_THRESHOLD = timedelta(seconds=181440)


def _fake_verify(password: str, password_hash: str) -> bool:
    return password_hash == "hashed:" + password


def _member(username: str = "alice", **overrides) -> Member:
    fields = {
        "id": 1,
        "username": username,
        "email": f"{username}@example.com",
        "nickname": username.title(),
        "password_hash": "hashed:correctpw",
        "role": "USER",
        "verified": True,
        "deleted": False,
        "deleted_at": None,
    }
    fields.update(overrides)
    return Member(**fields)


@pytest.fixture
def members():
    return {"alice": _member()}


@pytest.fixture
def manager(codec, store, members, clock):
    return AuthSessionManager(
        codec=codec,
        store=store,
        find_member=members.get,
        verify_password=_fake_verify,
        settings=AuthSettings(),
        clock=clock,
    )


# ═══════════════════════════════════════════════════════════════════════════
# login
# ═══════════════════════════════════════════════════════════════════════════

class TestLogin:

    def test_normal_account_gets_a_live_session(self, manager, store, codec, clock):
        tokens = manager.login("alice", "correctpw")

        assert tokens.is_deleted_account is False
        assert tokens.role == "USER"
        assert tokens.access_token != tokens.refresh_token
        assert store.get_access_token("alice") == tokens.access_token
        assert store.get_refresh_token("alice") == tokens.refresh_token
        assert codec.decode(tokens.access_token).expires_at == clock() + NORMAL_ACCESS
        assert codec.decode(tokens.refresh_token).expires_at == clock() + NORMAL_REFRESH

    def test_cookie_max_ages_match_token_lifetimes(self, manager):
        tokens = manager.login("alice", "correctpw")

        assert tokens.access_max_age == 1800
        assert tokens.refresh_max_age == 604800

    def test_claims_snapshot_the_member(self, manager, members, codec):
        members["alice"].role = "ADMIN"
        members["alice"].verified = False

        tokens = manager.login("alice", "correctpw")
        claims = codec.decode(tokens.access_token)

        assert claims.role == "ADMIN"
        assert claims.verified is False
        assert claims.deleted is False

    def test_unknown_username_raises_not_found(self, manager):
        with pytest.raises(NotFoundError) as exc_info:
            manager.login("nobody", "correctpw")

        assert exc_info.value.code == ErrorCode.MEMBER_NOT_FOUND
        assert exc_info.value.http_status == 404

    def test_wrong_password_raises_auth_error(self, manager, store):
        with pytest.raises(AuthError) as exc_info:
            manager.login("alice", "wrongpw")

        assert exc_info.value.code == ErrorCode.INVALID_CREDENTIALS
        assert exc_info.value.http_status == 401
        assert store.get_access_token("alice") is None

    def test_restorable_account_gets_short_lived_deleted_tokens(self, manager, members, codec, clock):
        members["alice"].deleted = True
        members["alice"].deleted_at = clock() - timedelta(days=3)

        tokens = manager.login("alice", "correctpw")
        access = codec.decode(tokens.access_token)
        refresh = codec.decode(tokens.refresh_token)

        assert tokens.is_deleted_account is True
        assert access.deleted is True
        assert access.expires_at - access.issued_at == RESTORABLE
        assert refresh.deleted is True
        assert refresh.expires_at - refresh.issued_at == RESTORABLE
        assert tokens.access_max_age == 600
        assert tokens.refresh_max_age == 600

    def test_restorable_session_entries_expire_after_ten_minutes(self, manager, members, store, clock):
        members["alice"].deleted = True
        members["alice"].deleted_at = clock() - timedelta(days=1)
        manager.login("alice", "correctpw")

        clock.advance(RESTORABLE)

        assert store.get_access_token("alice") is None
        assert store.get_refresh_token("alice") is None

    def test_deleted_past_window_raises_permanently_deleted(self, manager, members, store, clock):
        members["alice"].deleted = True
        members["alice"].deleted_at = clock() - timedelta(days=30)

        with pytest.raises(AccountPermanentlyDeletedError) as exc_info:
            manager.login("alice", "correctpw")

        assert exc_info.value.code == ErrorCode.ACCOUNT_PERMANENTLY_DELETED
        assert exc_info.value.http_status == 403
        assert store.get_access_token("alice") is None

    def test_deleted_without_timestamp_is_not_restorable(self, manager, members):
        members["alice"].deleted = True
        members["alice"].deleted_at = None

        with pytest.raises(AccountPermanentlyDeletedError):
            manager.login("alice", "correctpw")

    def test_password_is_checked_before_deletion_state(self, manager, members, clock):
        members["alice"].deleted = True
        members["alice"].deleted_at = clock() - timedelta(days=90)

        with pytest.raises(AuthError):
            manager.login("alice", "wrongpw")

    def test_second_login_replaces_the_first_session(self, manager, store):
        first = manager.login("alice", "correctpw")
        second = manager.login("alice", "correctpw")

        assert store.access_token_matches("alice", first.access_token) is False
        assert store.access_token_matches("alice", second.access_token) is True
        with pytest.raises(InvalidSessionError):
            manager.resolve_principal(first.access_token)


# ═══════════════════════════════════════════════════════════════════════════
# logout
# ═══════════════════════════════════════════════════════════════════════════

class TestLogout:

    def test_blacklists_for_the_remaining_lifetime(self, manager, store, fake_redis, clock):
        tokens = manager.login("alice", "correctpw")
        clock.advance(minutes=10)

        manager.logout(tokens.access_token)

        assert store.is_blacklisted(tokens.access_token) is True
        assert fake_redis.pttl("blacklist:" + tokens.access_token) == 20 * 60 * 1000

    def test_clears_both_session_entries(self, manager, store):
        tokens = manager.login("alice", "correctpw")

        manager.logout(tokens.access_token)

        assert store.get_access_token("alice") is None
        assert store.get_refresh_token("alice") is None

    def test_logged_out_token_cannot_refresh(self, manager):
        tokens = manager.login("alice", "correctpw")
        manager.logout(tokens.access_token)

        with pytest.raises(LoggedOutError):
            manager.refresh(tokens.access_token)

    def test_logged_out_token_cannot_refresh_a_later_session(self, manager, store):
        old = manager.login("alice", "correctpw")
        manager.logout(old.access_token)
        current = manager.login("alice", "correctpw")

        with pytest.raises(LoggedOutError):
            manager.refresh(old.access_token)

        assert store.get_access_token("alice") == current.access_token
        assert store.get_refresh_token("alice") == current.refresh_token

    def test_expired_token_is_not_blacklisted_but_session_is_cleared(self, manager, store, fake_redis, clock):
        tokens = manager.login("alice", "correctpw")
        clock.advance(hours=1)

        manager.logout(tokens.access_token)

        assert store.is_blacklisted(tokens.access_token) is False
        assert store.get_refresh_token("alice") is None
        assert fake_redis.keys() == []

    def test_undecodable_token_is_ignored(self, manager, store, caplog):
        tokens = manager.login("alice", "correctpw")

        with caplog.at_level(logging.WARNING, logger="tripfriend.services.auth_service"):
            manager.logout("garbage")

        assert store.get_access_token("alice") == tokens.access_token
        assert any(record.levelno == logging.WARNING for record in caplog.records)

    def test_missing_token_is_a_no_op(self, manager, store):
        tokens = manager.login("alice", "correctpw")

        manager.logout(None)
        manager.logout("")

        assert store.get_access_token("alice") == tokens.access_token

    def test_logout_is_idempotent(self, manager, store):
        tokens = manager.login("alice", "correctpw")

        manager.logout(tokens.access_token)
        manager.logout(tokens.access_token)

        assert store.is_blacklisted(tokens.access_token) is True


# ═══════════════════════════════════════════════════════════════════════════
# refresh
# ═══════════════════════════════════════════════════════════════════════════

class TestRefresh:

    def test_issues_and_stores_a_new_access_token(self, manager, store, clock):
        tokens = manager.login("alice", "correctpw")
        clock.advance(minutes=45)

        refreshed = manager.refresh(tokens.access_token)

        assert refreshed.access_token != tokens.access_token
        assert store.get_access_token("alice") == refreshed.access_token
        assert refreshed.access_max_age == 1800
        assert manager.resolve_principal(refreshed.access_token).username == "alice"

    def test_old_access_token_stops_matching(self, manager, clock):
        tokens = manager.login("alice", "correctpw")
        clock.advance(minutes=5)

        manager.refresh(tokens.access_token)

        with pytest.raises(InvalidSessionError):
            manager.resolve_principal(tokens.access_token)

    def test_claims_are_carried_over_from_the_presented_token(self, manager, members, codec):
        tokens = manager.login("alice", "correctpw")
        members["alice"].role = "ADMIN"

        refreshed = manager.refresh(tokens.access_token)

        assert codec.extract_role(refreshed.access_token) == "USER"
        assert refreshed.role == "USER"

    def test_keeps_refresh_token_while_plenty_of_life_remains(self, manager, store, clock):
        tokens = manager.login("alice", "correctpw")
        clock.advance(days=1)

        refreshed = manager.refresh(tokens.access_token)

        assert refreshed.refresh_token == tokens.refresh_token
        assert refreshed.refresh_max_age is None
        assert store.get_refresh_token("alice") == tokens.refresh_token

    def test_keeps_refresh_token_one_second_above_threshold(self, manager, clock):
        tokens = manager.login("alice", "correctpw")
        clock.advance(NORMAL_REFRESH - RENEWAL_THRESHOLD - timedelta(seconds=1))

        refreshed = manager.refresh(tokens.access_token)

        assert refreshed.refresh_token == tokens.refresh_token

    def test_keeps_refresh_token_exactly_at_threshold(self, manager, clock):
        tokens = manager.login("alice", "correctpw")
        clock.advance(NORMAL_REFRESH - RENEWAL_THRESHOLD)

        refreshed = manager.refresh(tokens.access_token)

        assert refreshed.refresh_token == tokens.refresh_token

    def test_rotates_refresh_token_one_second_below_threshold(self, manager, store, codec, clock):
        tokens = manager.login("alice", "correctpw")
        clock.advance(NORMAL_REFRESH - RENEWAL_THRESHOLD + timedelta(seconds=1))

        refreshed = manager.refresh(tokens.access_token)

        assert refreshed.refresh_token != tokens.refresh_token
        assert refreshed.refresh_max_age == 604800
        assert store.get_refresh_token("alice") == refreshed.refresh_token
        assert codec.decode(refreshed.refresh_token).expires_at == clock() + NORMAL_REFRESH

    def test_restorable_session_stays_restorable(self, manager, members, codec, clock):
        members["alice"].deleted = True
        members["alice"].deleted_at = clock() - timedelta(days=1)
        tokens = manager.login("alice", "correctpw")
        clock.advance(minutes=5)

        refreshed = manager.refresh(tokens.access_token)
        access = codec.decode(refreshed.access_token)

        assert refreshed.is_deleted_account is True
        assert access.deleted is True
        assert access.expires_at - access.issued_at == RESTORABLE
        assert refreshed.access_max_age == 600
        # Ten minutes is always under the renewal threshold.
        assert refreshed.refresh_token != tokens.refresh_token
        assert refreshed.refresh_max_age == 600

    def test_missing_stored_refresh_token(self, manager, store):
        tokens = manager.login("alice", "correctpw")
        store.delete_refresh_token("alice")

        with pytest.raises(NoStoredRefreshTokenError) as exc_info:
            manager.refresh(tokens.access_token)

        assert exc_info.value.code == ErrorCode.REFRESH_TOKEN_MISSING
        assert exc_info.value.http_status == 401

    def test_refresh_entry_gone_after_its_ttl(self, manager, clock):
        tokens = manager.login("alice", "correctpw")
        clock.advance(NORMAL_REFRESH)

        with pytest.raises(NoStoredRefreshTokenError):
            manager.refresh(tokens.access_token)

    def test_expired_stored_refresh_token(self, manager, store, codec, clock):
        tokens = manager.login("alice", "correctpw")
        stale = codec.issue("alice", "USER", True, ttl=timedelta(seconds=1))
        store.put_refresh_token("alice", stale, timedelta(days=1))
        clock.advance(seconds=2)

        with pytest.raises(RefreshExpiredError) as exc_info:
            manager.refresh(tokens.access_token)

        assert exc_info.value.code == ErrorCode.REFRESH_TOKEN_EXPIRED

    def test_expired_refresh_wins_over_a_fresh_access_token(self, manager, store, codec, clock):
        stale = codec.issue("alice", "USER", True, ttl=timedelta(seconds=1))
        tokens = manager.login("alice", "correctpw")
        store.put_refresh_token("alice", stale, timedelta(days=1))
        clock.advance(seconds=1)

        with pytest.raises(RefreshExpiredError):
            manager.refresh(tokens.access_token)

    def test_tampered_access_token_is_rejected(self, manager):
        tokens = manager.login("alice", "correctpw")

        with pytest.raises(InvalidTokenError):
            manager.refresh(tokens.access_token[:-2] + "xx")

    def test_unreadable_refresh_token_counts_as_needing_renewal(self, manager):
        assert manager._refresh_needs_renewal("garbage") is True


# ═══════════════════════════════════════════════════════════════════════════
# resolve_principal
# ═══════════════════════════════════════════════════════════════════════════

class TestResolvePrincipal:

    def test_accepts_bearer_prefix_and_bare_token(self, manager, members):
        tokens = manager.login("alice", "correctpw")

        assert manager.resolve_principal("Bearer " + tokens.access_token) is members["alice"]
        assert manager.resolve_principal(tokens.access_token) is members["alice"]

    def test_blacklist_is_checked_first(self, manager, store):
        store.blacklist("garbage", timedelta(minutes=5))

        with pytest.raises(LoggedOutError) as exc_info:
            manager.resolve_principal("garbage")

        assert exc_info.value.code == ErrorCode.TOKEN_LOGGED_OUT

    def test_garbage_token_is_invalid(self, manager):
        with pytest.raises(InvalidTokenError):
            manager.resolve_principal("Bearer garbage")

    def test_token_without_live_session_is_invalid_session(self, manager, codec):
        token = codec.issue("alice", "USER", True, ttl=NORMAL_ACCESS)

        with pytest.raises(InvalidSessionError) as exc_info:
            manager.resolve_principal(token)

        assert exc_info.value.code == ErrorCode.SESSION_INVALID

    def test_naturally_expired_token_has_no_live_session(self, manager, clock):
        tokens = manager.login("alice", "correctpw")
        clock.advance(NORMAL_ACCESS)

        with pytest.raises(InvalidSessionError):
            manager.resolve_principal(tokens.access_token)

    def test_expired_token_still_stored_is_expired(self, manager, store, codec, clock):
        token = codec.issue("alice", "USER", True, ttl=timedelta(seconds=1))
        store.put_access_token("alice", token, timedelta(minutes=5))
        clock.advance(seconds=1)

        with pytest.raises(ExpiredTokenError) as exc_info:
            manager.resolve_principal(token)

        assert exc_info.value.code == ErrorCode.TOKEN_EXPIRED

    def test_missing_member_is_logged_as_consistency_fault(self, manager, members, caplog):
        tokens = manager.login("alice", "correctpw")
        del members["alice"]

        with caplog.at_level(logging.ERROR, logger="tripfriend.services.auth_service"):
            with pytest.raises(NotFoundError):
                manager.resolve_principal(tokens.access_token)

        assert any(record.levelno == logging.ERROR for record in caplog.records)


# ═══════════════════════════════════════════════════════════════════════════
# Full lifecycle
# ═══════════════════════════════════════════════════════════════════════════

def test_login_resolve_logout_lifecycle(manager, members):
    tokens = manager.login("alice", "correctpw")

    assert tokens.access_token and tokens.refresh_token
    assert tokens.is_deleted_account is False
    assert manager.resolve_principal("Bearer " + tokens.access_token) is members["alice"]

    manager.logout(tokens.access_token)

    with pytest.raises(LoggedOutError):
        manager.resolve_principal("Bearer " + tokens.access_token)


def test_strip_bearer():
    assert strip_bearer("Bearer abc") == "abc"
    assert strip_bearer("abc") == "abc"
    assert strip_bearer("bearer abc") == "bearer abc"


def test_settings_from_config():
    settings = AuthSettings.from_config({
        "JWT_ACCESS_TOKEN_EXPIRES": timedelta(minutes=5),
        "JWT_REFRESH_TOKEN_EXPIRES": timedelta(days=1),
        "JWT_RESTORABLE_TOKEN_EXPIRES": timedelta(minutes=2),
    })

    assert settings.access_ttl == timedelta(minutes=5)
    assert settings.refresh_ttl == timedelta(days=1)
    assert settings.restorable_ttl == timedelta(minutes=2)
    assert settings.renewal_ratio == 0.3
