"""Alembic environment for the routing tables.

The router may share a PostgreSQL database with the workflow engine, so
autogenerate only considers tables registered on ``Base.metadata`` and keeps
its own version table.
"""

import asyncio
from logging.config import fileConfig
from typing import Any, Optional

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

import src.db.models  # noqa: F401 - registers tables on Base.metadata
from src.db.base import Base
from src.settings import load_settings

VERSION_TABLE = "alembic_version_router"

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def database_url() -> str:
    """DATABASE_URL from Settings; migrations cannot run without it."""
    url = load_settings().database_url
    if url is None:
        raise ValueError("DATABASE_URL must be set for migrations")
    return url


def include_name(name: Optional[str], type_: str, parent_names: dict[str, Any]) -> bool:
    """Skip tables owned by other services sharing the database."""
    if type_ == "table":
        return name in target_metadata.tables
    return True


def _configure_options() -> dict[str, Any]:
    return {
        "target_metadata": target_metadata,
        "version_table": VERSION_TABLE,
        "include_name": include_name,
        "compare_type": True,
    }


def run_migrations_offline() -> None:
    """Emit SQL for the pending revisions without a connection."""
    context.configure(
        url=database_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_options(),
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_on_connection(connection: Connection) -> None:
    context.configure(connection=connection, **_configure_options())
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Apply pending revisions over asyncpg with a throwaway engine."""
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = database_url()
    engine = async_engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_on_connection)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
