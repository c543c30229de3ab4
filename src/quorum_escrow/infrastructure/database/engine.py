"""Async engine and unit-of-work sessions.

A session is one unit of work. An escrow operation touches the counter, the
record, the vault cell, the accounts and the audit log, and all of those
writes commit together or not at all.

Provides:
    - _get_engine / _get_session_factory: lazy process-wide singletons.
    - get_async_session: per-request session for FastAPI.
    - session_scope: the same commit/rollback contract outside FastAPI (MCP tools).
    - ping_db: connectivity probe for the health route.
    - init_db / close_db: lifespan hooks.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from quorum_escrow.config import get_settings
from quorum_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _engine_options(database_url: str) -> dict[str, Any]:
    settings = get_settings()
    options: dict[str, Any] = {"echo": settings.db_echo_sql}
    # SQLite drivers bring their own pool; pool sizing only applies to PostgreSQL.
    if not database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_pre_ping=True,
        )
    return options


def _get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        url = get_settings().database_url
        _engine = create_async_engine(url, **_engine_options(url))
        logger.info("database.engine_created", dialect=_engine.dialect.name)
    return _engine


def _get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=_get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """Open a session that commits on clean exit and rolls back on any error."""
    async with _get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency wrapping :func:`session_scope`."""
    async with session_scope() as session:
        yield session


async def ping_db() -> None:
    """Round-trip a trivial query. Raises whatever the driver raises."""
    async with _get_engine().connect() as conn:
        await conn.execute(text("SELECT 1"))


async def init_db() -> None:
    """Create the schema in development. Other environments manage it themselves."""
    from quorum_escrow.infrastructure.database.orm_models import Base

    if not get_settings().is_development:
        logger.info("database.schema_managed_externally")
        return

    async with _get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database.tables_created", tables=sorted(Base.metadata.tables))


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("database.engine_disposed")
    _engine = None
    _session_factory = None
