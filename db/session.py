"""
db/session.py

Async SQLAlchemy engine and session factory.

Every request runs as one unit of work on its own ``AsyncSession``; the
engine and sessionmaker are created lazily on first use so importing this
module never opens a connection.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from db.config import get_engine_settings, resolve_database_url


def create_db_engine() -> AsyncEngine:
    database_url = resolve_database_url()
    settings = get_engine_settings()
    return create_async_engine(
        database_url,
        echo=settings.echo,
        pool_pre_ping=True,
        pool_recycle=settings.pool_recycle,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
    )


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Return the shared engine, creating it on first call."""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding a request-scoped session.

    Services open their own transaction on it; anything left uncommitted
    when the request ends is rolled back by ``close()``.
    """
    async with get_sessionmaker()() as session:
        yield session


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def transaction(session: AsyncSession) -> Any:
    """
    Open a unit of work on *session*.

    Uses a SAVEPOINT when the caller already has a transaction open, in which
    case the caller owns the final commit and any deferred notifications.
    """
    if session.in_transaction():
        return session.begin_nested()
    return session.begin()
