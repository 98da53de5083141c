"""
tests/conftest.py — Fixtures shared by the unit and integration suites.

Every fixture here is function-scoped: each test gets its own clock and its
own empty in-memory Redis, so TTL-driven behaviour (session expiry, blacklist
expiry, refresh rotation) is deterministic and never sleeps.
"""

from __future__ import annotations

import pytest

from tests.fakes import TEST_SECRET, FakeRedis, FrozenClock
from tripfriend.services.session_store import SessionStore
from tripfriend.services.token_codec import TokenCodec



@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock)


@pytest.fixture
def codec(clock):
    return TokenCodec(TEST_SECRET, algorithm="HS512", clock=clock)


@pytest.fixture
def store(fake_redis):
    return SessionStore(fake_redis)
