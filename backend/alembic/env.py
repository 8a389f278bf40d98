"""
Alembic Migration Environment

1. Load application settings (DATABASE_URL)
2. Import the ingestion models so their tables are in Base.metadata
3. Run migrations offline (emit SQL) or online (async engine + run_sync)

Usage (from backend/):
    alembic upgrade head
    alembic upgrade head --sql   # offline
"""

import asyncio
import sys
from logging.config import fileConfig
from pathlib import Path

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

# backend/ on sys.path so lesson_ingest imports without installation
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from lesson_ingest.core.config import settings  # noqa: E402
from lesson_ingest.db.base import Base  # noqa: E402
from lesson_ingest.models import LessonUrl, UrlChunk  # noqa: E402,F401  (register tables)

config = context.config

# DATABASE_URL from settings overrides the alembic.ini placeholder
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit migration SQL without connecting to the database."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Create an asyncpg engine and run migrations through run_sync."""
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
