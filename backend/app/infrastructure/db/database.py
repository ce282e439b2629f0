"""
Database Configuration for Crudo

Async SQLAlchemy engine and session management for the Supabase Postgres
database. One engine per process; sessions are opened per request
(``get_session``) or per webhook unit of work (``get_session_context``).
"""

import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional
from urllib.parse import quote_plus

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config.settings import Settings, get_settings


logger = logging.getLogger(__name__)

ASYNC_DRIVER = "postgresql+asyncpg://"

# Supavisor transaction-mode port; prepared statements do not survive it
TRANSACTION_POOLER_PORT = 6543

_SUPABASE_HOST = re.compile(r"https?://([^.]+)\.supabase\.co")


def resolve_database_url(settings: Settings) -> str:
    """
    PostgreSQL connection URL for the asyncpg driver.

    DATABASE_URL wins when set (any ``postgres://`` scheme is rewritten to
    the async driver). Otherwise the direct connection is derived from
    SUPABASE_URL and SUPABASE_PASSWORD.

    Raises:
        ValueError: neither source is configured, or SUPABASE_URL is not a
            Supabase project URL
    """
    if settings.database_url:
        for scheme in ("postgresql://", "postgres://"):
            if settings.database_url.startswith(scheme):
                return ASYNC_DRIVER + settings.database_url[len(scheme):]
        return settings.database_url

    if not settings.supabase_password:
        raise ValueError("DATABASE_URL or SUPABASE_PASSWORD must be set")

    match = _SUPABASE_HOST.match(settings.supabase_url)
    if not match:
        raise ValueError(f"Invalid SUPABASE_URL format: {settings.supabase_url}")

    password = quote_plus(settings.supabase_password)
    return f"{ASYNC_DRIVER}postgres:{password}@db.{match.group(1)}.supabase.co:5432/postgres"


def connect_args_for(url: str) -> Dict[str, Any]:
    """asyncpg connect arguments for ``url``."""
    if make_url(url).port == TRANSACTION_POOLER_PORT:
        return {"statement_cache_size": 0}
    return {}


class DatabaseManager:
    """Owns the lazily created async engine and its session factory."""

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings or get_settings()
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._initialize_engine()
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._initialize_engine()
        return self._session_factory

    def _initialize_engine(self) -> None:
        settings = self._settings
        url = resolve_database_url(settings)
        self._engine = create_async_engine(
            url,
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_pre_ping=True,
            connect_args=connect_args_for(url),
        )
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    async def close(self) -> None:
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None


_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """Get or create the process-wide database manager."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    One transaction: commit when the block exits cleanly, roll back if it
    raises.

    Usage:
        async with get_session_context() as session:
            await session.execute(query)
    """
    async with get_db_manager().session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session dependency; the request is the transaction."""
    async with get_session_context() as session:
        yield session


async def init_db() -> None:
    """Open the pool and check connectivity (called on app startup)."""
    async with get_db_manager().session_factory() as session:
        await session.execute(text("SELECT 1"))
    logger.info("Database connection verified")


async def close_db() -> None:
    """Dispose of the connection pool (called on app shutdown)."""
    await get_db_manager().close()
