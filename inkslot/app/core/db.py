"""Async SQLAlchemy database helpers.

Single authoritative module providing:
    * get_engine / get_session / get_session_factory
    * init_db(force=..., on_create=...)
    * _reset_engine_for_tests (used in test isolation)
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..domain.models import Base

logger = logging.getLogger(__name__)

DATABASE_URL_ENV = "DATABASE_URL"
DEFAULT_URL = "postgresql+asyncpg://inkslot:change_me@db:5432/inkslot"

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None
_SCHEMA_READY: bool = False
_SCHEMA_CHECKING: bool = False


def _make_engine(url: str) -> AsyncEngine:
    """Create an async engine."""
    return create_async_engine(url, echo=False, pool_pre_ping=True)


def get_engine() -> AsyncEngine:
    global _engine, _session_factory
    if _engine is None:
        url = os.getenv(DATABASE_URL_ENV, DEFAULT_URL)
        _engine = _make_engine(url)
        _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    get_engine()
    assert _session_factory is not None
    return _session_factory


async def _ensure_schema() -> None:
    """Create the schema on first use when the reservations table is missing."""
    global _SCHEMA_READY, _SCHEMA_CHECKING
    _SCHEMA_CHECKING = True
    try:
        async with get_engine().connect() as conn:
            try:
                await conn.execute(text("SELECT 1 FROM reservations LIMIT 1"))
                _SCHEMA_READY = True
                return
            except Exception:
                logger.info("reservations table missing, creating schema")
        await init_db(force=False)
    finally:
        _SCHEMA_CHECKING = False


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """Provide a new AsyncSession."""
    if not _SCHEMA_READY and not _SCHEMA_CHECKING:
        await _ensure_schema()

    factory = get_session_factory()
    session = factory()
    try:
        yield session
    finally:
        await session.close()


async def init_db(
    force: bool = False, on_create: Callable[[AsyncEngine], None] | None = None
) -> None:
    """Create database schema (exclusion constraint included on PostgreSQL)."""
    engine = get_engine()
    async with engine.begin() as conn:
        if force:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    if on_create:
        on_create(engine)
    global _SCHEMA_READY
    _SCHEMA_READY = True


def _reset_engine_for_tests() -> None:
    """Reset engine references (fast, synchronous)."""
    global _engine, _session_factory, _SCHEMA_READY, _SCHEMA_CHECKING
    _engine = None
    _session_factory = None
    _SCHEMA_READY = False
    _SCHEMA_CHECKING = False


async def dispose_engine() -> None:
    """Close pooled connections; called on API shutdown."""
    if _engine is not None:
        await _engine.dispose()
    _reset_engine_for_tests()


__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "dispose_engine",
    "_reset_engine_for_tests",
]
