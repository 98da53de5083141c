"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy and the Redis client holder as
module-level objects so they can be imported anywhere without creating
circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in tripfriend/__init__.py.
    3. Import `db` or `redis_client` from here wherever needed.

    from tripfriend.extensions import db, redis_client
"""

from __future__ import annotations

import redis
from flask import Flask, current_app
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


class RedisClient:
    """
    Holds the Redis connection used for sessions, the logout blacklist and
    email verification codes.

    The client lives in app.extensions["redis"] so that each app instance
    (and each test app) owns its own connection. Tests pass an in-memory
    client to init_app instead of a URL-built one.
    """

    extension_key = "redis"

    def init_app(self, app: Flask, client=None) -> None:
        if client is None:
            client = redis.Redis.from_url(
                app.config["REDIS_URL"],
                decode_responses=True,
                socket_timeout=5.0,
                socket_connect_timeout=5.0,
            )
        app.extensions[self.extension_key] = client

    @property
    def client(self):
        return current_app.extensions[self.extension_key]


redis_client = RedisClient()
