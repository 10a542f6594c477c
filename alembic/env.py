"""Alembic environment for the trade-up engine schema.

The target database comes from ``DATABASE_URL`` (process environment or
``.env``), validated by the same settings group the engine uses. Online
migrations run on the engine's async driver.
"""

from __future__ import annotations

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection

from tradeup_engine.config import DatabaseSettings
from tradeup_engine.storage.database import create_async_db_engine, normalize_async_database_url
from tradeup_engine.storage.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _database_url() -> str:
    settings = DatabaseSettings(_env_file=".env", _env_file_encoding="utf-8")
    return normalize_async_database_url(settings.url)


def run_migrations_offline() -> None:
    """Emit migration SQL without connecting."""
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def _apply(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Apply migrations over a single async connection."""
    engine = create_async_db_engine(_database_url(), poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_apply)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
