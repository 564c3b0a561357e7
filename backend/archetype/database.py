"""
Archetype Backend - Database Session Management
=================================================

What:  Async SQLAlchemy engine, session factory and lifecycle helpers.
Why:   Centralizes all database connection logic in one place.
How:   Database wraps an async engine built from Settings and hands out
       sessions that commit on success and roll back on error.
Who:   create_app() builds one Database when DATABASE_ENABLED=true; the SQL
       user repository and the health check use it.
When:  Engine created at startup (not at import); disposed on shutdown.

Connection Pooling Strategy:
    pool_size / max_overflow:  from settings (PostgreSQL/asyncpg)
    pool_pre_ping:             validates connections before use
    pool_recycle=3600:         recycles connections every hour
    SQLite URLs (tests) skip pool sizing, which SQLite's pools don't accept.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models (shared metadata for Alembic)."""
    pass


def engine_options(url: str, settings=None) -> Dict[str, Any]:
    options: Dict[str, Any] = {}
    if settings is not None:
        options["echo"] = settings.log_level == "DEBUG"
    if url.startswith("sqlite"):
        return options
    if settings is not None:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
        )
    options["pool_recycle"] = 3600
    return options


class Database:
    """Owns one async engine and its session factory."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        # expire_on_commit=False: attributes stay readable after commit
        self.session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    @classmethod
    def from_settings(cls, settings) -> "Database":
        url = settings.database_url
        return cls(create_async_engine(url, **engine_options(url, settings)))

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Yield a session; commit if the block succeeds, roll back if it raises.

        The exception is always re-raised so the pipeline can classify it.
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """Create tables directly from metadata (tests and local dev; prod uses Alembic)."""
        from archetype.models import user  # noqa: F401  (register the model)

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    async def dispose(self) -> None:
        """Close all pooled connections."""
        await self.engine.dispose()
