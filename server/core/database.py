"""Async database service with SQLModel and SQLAlchemy 2.0."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel

from core.config import Settings
from core.logging import get_logger
# Imported so their tables register on SQLModel.metadata
from models.user import User  # noqa: F401
from models.address import Address  # noqa: F401
from models.auth import AuthSession  # noqa: F401

logger = get_logger(__name__)


class Database:
    """Async database service with SQLModel."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    async def startup(self):
        """Initialize database connection and create tables."""
        try:
            logging.getLogger("aiosqlite").setLevel(logging.WARNING)
            logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
            logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

            engine_args = {"echo": self.settings.database_echo, "future": True}
            if not self.settings.database_url.startswith("sqlite"):
                engine_args["pool_size"] = self.settings.database_pool_size
                engine_args["max_overflow"] = self.settings.database_max_overflow
                engine_args["pool_pre_ping"] = True

            self.engine = create_async_engine(self.settings.database_url, **engine_args)

            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully")

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """Get async database session."""
        if not self.async_session:
            raise RuntimeError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> bool:
        """Check database connectivity."""
        try:
            async with self.get_session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("Database ping failed", error=str(e))
            return False
