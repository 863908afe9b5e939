"""
Database Session Management
===========================

Async SQLAlchemy engine and session factory.

Author: TrustGraph Team
Version: 1.0.0
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from trustgraph.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


def create_engine(cfg: Optional[Settings] = None) -> AsyncEngine:
    cfg = cfg or default_settings
    return create_async_engine(
        cfg.postgres_async_dsn,
        echo=cfg.debug,
        pool_pre_ping=True,
        pool_timeout=cfg.store_timeout_seconds,
        connect_args={"timeout": cfg.store_timeout_seconds},
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def session_scope(factory: async_sessionmaker) -> AsyncIterator[AsyncSession]:
    """
    Yield a session that commits on success and rolls back on error.

    Yields:
        AsyncSession: Database session that auto-closes
    """
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(engine: AsyncEngine) -> None:
    """
    Verify the database answers.

    Called during application startup.
    """
    logger.info("Initializing PostgreSQL connection...")
    async with engine.begin() as conn:
        await conn.run_sync(lambda _: None)
    logger.info("PostgreSQL connection established")


async def close_db(engine: AsyncEngine) -> None:
    logger.info("Closing PostgreSQL connections...")
    await engine.dispose()
    logger.info("PostgreSQL connections closed")
