"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing"), which
    points SQLAlchemy at in-memory SQLite (or TEST_DATABASE_URL when set).
  - Redis is replaced by the in-memory FakeRedis and time by a FrozenClock;
    both are handed to create_app() so session TTLs, token expiry and the
    restore window can be moved forward without sleeping.
  - All tables are created once via db.create_all() at session start.
  - Between tests, member rows are deleted, Redis is flushed and the clock is
    reset, so tests are isolated.
  - The test client does not keep a cookie jar. Cookies a test wants to send
    are passed explicitly through cookie_header(), and cookies the server
    sets are read back with set_cookie(); nothing rides along implicitly.

Helper functions (not fixtures) are provided for common operations:
  - join(client, ...)         → member dict
  - login(client, ...)        → HTTP response
  - auth_headers(token)       → {"Authorization": "Bearer <token>"}
  - cookie_header(**cookies)  → {"Cookie": "name=value; ..."}
  - set_cookie(resp, name)    → the raw Set-Cookie header for `name`, or None
  - update_member(app, ...)   → change a member row directly (role, verified)
"""

from __future__ import annotations

import pytest
from sqlalchemy import delete

from tests.fakes import FakeRedis, FrozenClock
from tripfriend import create_app
from tripfriend.extensions import db as _db


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app_clock():
    return FrozenClock()


@pytest.fixture(scope="session")
def app_redis(app_clock):
    return FakeRedis(app_clock)


@pytest.fixture(scope="session")
def app(app_clock, app_redis):
    """
    Creates the Flask application in 'testing' mode once for the entire test session.
    """
    flask_app = create_app("testing", redis_client=app_redis, clock=app_clock)

    with flask_app.app_context():
        from tripfriend.models import member  # noqa: F401
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_state(app, app_clock, app_redis):
    """
    Deletes all member rows, flushes Redis and rewinds the clock after every
    test.
    """
    yield  # run the test

    with app.app_context():
        from tripfriend.models.member import Member

        _db.session.rollback()  # discard any uncommitted state from a failed test
        _db.session.execute(delete(Member))
        _db.session.commit()

    app_redis.flushall()
    app_clock.reset()


# The root conftest gives each unit test its own clock and Redis; here they
# must be the ones the app was built with.

@pytest.fixture
def clock(app_clock):
    return app_clock


@pytest.fixture
def fake_redis(app_redis):
    return app_redis


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client without a cookie jar. Each test gets a fresh client."""
    return app.test_client(use_cookies=False)


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def join(
    client,
    username: str = "alice",
    email: str | None = None,
    password: str = "Password1",
    nickname: str | None = None,
) -> dict:
    """
    Creates a member and returns the response data dict.
    """
    if email is None:
        email = f"{username}@test.com"
    if nickname is None:
        nickname = f"{username}_nick"
    resp = client.post(
        "/api/v1/member/join",
        json={
            "username": username,
            "email": email,
            "password": password,
            "nickname": nickname,
        },
    )
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["data"]


def login(client, username: str = "alice", password: str = "Password1"):
    """Returns the raw login response (status may be anything)."""
    return client.post(
        "/api/v1/member/login",
        json={"username": username, "password": password},
    )


def login_tokens(client, username: str = "alice", password: str = "Password1") -> dict:
    resp = login(client, username, password)
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()["data"]


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for the given access token."""
    return {"Authorization": f"Bearer {token}"}


def cookie_header(**cookies: str) -> dict:
    return {"Cookie": "; ".join(f"{name}={value}" for name, value in cookies.items())}


def set_cookie(resp, name: str) -> str | None:
    for header in resp.headers.getlist("Set-Cookie"):
        if header.startswith(f"{name}="):
            return header
    return None


def update_member(app, username: str, **values) -> None:
    with app.app_context():
        from tripfriend.services.member_service import find_by_username

        member = find_by_username(username, _db.session)
        for key, value in values.items():
            setattr(member, key, value)
        _db.session.commit()
