"""
backend/migrations/env.py — Alembic environment.

The database URL comes from tripfriend.config, so migrations see exactly what
the app sees: the same .env files, the same postgres:// normalisation.

  TEST_RUN=1          → TestingConfig     (TEST_DATABASE_URL)
  FLASK_ENV=production → ProductionConfig (DATABASE_URL, required)
  otherwise           → DevelopmentConfig (DATABASE_URL or the local default)
"""

from __future__ import annotations

import os
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import engine_from_config, pool

# Make `import tripfriend` work when alembic runs from backend/ without an install.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from tripfriend.config import config_by_name  # noqa: E402
from tripfriend.extensions import db  # noqa: E402
from tripfriend.models import member  # noqa: E402,F401

target_metadata = db.metadata


def _config_name() -> str:
    if os.getenv("TEST_RUN"):
        return "testing"
    return os.getenv("FLASK_ENV", "development")


db_url = config_by_name.get(_config_name(), config_by_name["development"]).SQLALCHEMY_DATABASE_URI
if not db_url:
    raise RuntimeError(
        f"No database URL configured for '{_config_name()}'. Set DATABASE_URL."
    )

config = context.config
config.set_main_option("sqlalchemy.url", db_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def run_migrations_offline() -> None:
    context.configure(
        url=db_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
