"""Database configuration and session management."""

import logging
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()


def build_engine(database_url: str) -> AsyncEngine:
    """Create the async engine for ``Settings.database_url``."""
    # SQLite doesn't benefit from connection pooling and should use minimal pool
    if "sqlite" in database_url:
        return create_async_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,  # Single persistent connection for SQLite
            pool_reset_on_return=None,
        )

    # PostgreSQL: Use connection pooling for concurrent OAuth callbacks
    return create_async_engine(
        database_url,
        echo=False,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=3600,  # Recycle connections after 1 hour to prevent stale connections
        pool_pre_ping=True,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting database sessions from the app's session factory."""
    async with request.app.state.session_factory() as session:
        yield session


async def init_db(engine: AsyncEngine):
    """Create tables that don't exist yet."""
    # Import models so they register on Base.metadata
    import blogen.models  # noqa: F401

    database_url = engine.url.render_as_string(hide_password=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

        if engine.dialect.name == "sqlite" and ":memory:" not in database_url:
            # WAL mode allows concurrent reads/writes
            await conn.execute(text("PRAGMA journal_mode=WAL"))
            await conn.execute(text("PRAGMA synchronous=NORMAL"))
            # Wait up to 5 seconds on a locked database (concurrent callbacks)
            await conn.execute(text("PRAGMA busy_timeout=5000"))
            logger.info("SQLite optimizations applied: WAL mode, 5s busy timeout")

    logger.info("Database tables ready")
