"""Database engine and session management."""

import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, AsyncGenerator
from uuid import UUID

from sqlalchemy import text, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from dentflow.core.config import settings
from dentflow.models import Practice

logger = logging.getLogger(__name__)

PRACTICE_LOCK_INFO_KEY = "dentflow.practice_lock"


class Database:
    """
    Engine plus session factory.

    One instance per process, created lazily by :func:`get_database` and
    injected into request handlers; disposed once at shutdown.
    """

    def __init__(self, url: str, **engine_kwargs: Any) -> None:
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        self.session_maker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Plain session without tenant context.

        Only for health checks and tenant-less bootstrap work; every
        practice-scoped read or write goes through ``tenant_scope``.
        """
        async with self.session_maker() as session:
            yield session

    async def ping(self) -> None:
        async with self.session() as session:
            await session.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        await self.engine.dispose()


async def lock_practice(session: AsyncSession, practice_id: UUID) -> None:
    """
    Serialize writers of one practice until the current transaction ends.

    Taken before reading a per-practice sequence (patient numbers, the audit
    chain tip) so that two transactions cannot build on the same value.
    Re-entrant within one transaction.
    """
    if session.info.get(PRACTICE_LOCK_INFO_KEY) == practice_id:
        return

    if session.bind is not None and session.bind.dialect.name == "postgresql":
        await session.execute(
            text("SELECT pg_advisory_xact_lock(hashtextextended(:key, 0))"),
            {"key": f"practice:{practice_id}"},
        )
    else:
        # SQLite has no row locks; any write takes the database write lock
        # for the rest of the transaction
        practices = Practice.__table__
        await session.execute(
            update(practices)
            .where(practices.c.id == practice_id)
            .values(updated_at=practices.c.updated_at)
        )

    session.info[PRACTICE_LOCK_INFO_KEY] = practice_id


def _engine_kwargs(url: str) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"echo": settings.DB_ECHO}
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_recycle=settings.DB_POOL_RECYCLE,
            pool_pre_ping=True,  # Verify connections before using them
        )
    return kwargs


@lru_cache(maxsize=1)
def get_database() -> Database:
    """Process-wide database, created on first use."""
    logger.info("Creating database engine", extra={"dialect": settings.DATABASE_URL.split(":", 1)[0]})
    return Database(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))
