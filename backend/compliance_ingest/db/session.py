"""
Database engine and session management.

A Database object owns one AsyncEngine and its session factory. The API
process builds one in its lifespan hook; each Celery task builds its own
because every task body runs on a fresh event loop and asyncpg
connections cannot cross loops.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from compliance_ingest.core.config import Settings

logger = logging.getLogger(__name__)


class Database:
    """Engine + session factory bound to one event loop."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        # expire_on_commit=False keeps ORM objects usable after commit
        self.sessionmaker = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        engine = create_async_engine(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,          # detect stale connections before use
            pool_recycle=3600,           # recycle connections every hour
            echo=settings.db_echo_sql,   # log SQL in dev; disable in prod
        )
        return cls(engine)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Transactional session: commits on clean exit, rolls back on error.
        """
        async with self.sessionmaker() as session:
            async with session.begin():
                yield session

    async def check_health(self) -> dict:
        """Ping the database; used by /ready."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return {"status": "ok"}
        except Exception as exc:
            logger.error("DB health check failed: %s", exc)
            return {"status": "error", "detail": str(exc)}

    async def dispose(self) -> None:
        await self.engine.dispose()
