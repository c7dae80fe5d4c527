"""Async database engine and session lifecycle."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from sentirag.config import Settings
from sentirag.models import Base

logger = logging.getLogger(__name__)


class Database:
    """Owns one async engine and hands out transactional sessions.

    Construct once per process, share by reference, and call ``dispose()``
    on shutdown.
    """

    def __init__(self, url: str, *, echo: bool = False, engine: AsyncEngine | None = None) -> None:
        self._engine = engine or create_async_engine(
            url,
            echo=echo,
            pool_size=20,
            pool_pre_ping=True,
            pool_timeout=2,
        )
        self._sessionmaker = async_sessionmaker(self._engine, expire_on_commit=False)

    @classmethod
    def from_settings(cls, settings: Settings) -> Database:
        return cls(settings.database_url, echo=settings.database_echo)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield a session that commits on success and rolls back on error."""
        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_schema(self) -> None:
        """Create the pgvector extension and all tables if missing."""
        async with self._engine.begin() as conn:
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ensured")

    async def dispose(self) -> None:
        await self._engine.dispose()
        logger.info("Database engine disposed")
