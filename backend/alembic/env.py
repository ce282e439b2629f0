"""
Alembic environment for the Crudo schema.

Runs migrations through the async engine against the URL resolved from
application settings. Autogenerate only compares tables the app models
own; Supabase's auth, storage and realtime tables are never touched.
"""

import asyncio
import os
import sys
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine
from alembic import context

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.config.settings import settings  # noqa: E402
from app.infrastructure.db.database import connect_args_for, resolve_database_url  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import app.infrastructure.db.models  # noqa: E402,F401


config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata

MANAGED_SCHEMAS = {None, "public"}


def include_object(object, name, type_, reflected, compare_to):
    """Skip reflected tables that no model declares, and foreign schemas."""
    if type_ != "table":
        return True
    if getattr(object, "schema", None) not in MANAGED_SCHEMAS:
        return False
    return not (reflected and compare_to is None)


def _configure(**options) -> None:
    context.configure(
        target_metadata=target_metadata,
        include_object=include_object,
        compare_type=True,
        **options,
    )


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting."""
    _configure(
        url=resolve_database_url(settings),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection) -> None:
    _configure(connection=connection, compare_server_default=True)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    url = resolve_database_url(settings)
    connectable = create_async_engine(
        url,
        poolclass=pool.NullPool,
        connect_args=connect_args_for(url),
    )
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
