"""Async database engine, session factory, and store-error translation."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

import journal_buddy.journal.models  # noqa: F401  (registers journal tables)
from journal_buddy.constants import DB_SCHEMA
from journal_buddy.infra.errors import StoreUnavailableError
from journal_buddy.session.models import Base

if TYPE_CHECKING:
    from journal_buddy.config.settings import DatabaseSettings

logger = structlog.get_logger()


async def create_db_engine(settings: DatabaseSettings) -> AsyncEngine:
    """Create an async SQLAlchemy engine from DatabaseSettings."""
    url = (
        f"postgresql+asyncpg://{settings.user}:{settings.password}"
        f"@{settings.host}:{settings.port}/{settings.name}"
    )
    engine = create_async_engine(
        url,
        pool_size=5,
        max_overflow=10,
        connect_args={"server_settings": {"search_path": f"{settings.schema_}, public"}},
    )
    logger.info("db_engine_created", host=settings.host, database=settings.name)
    return engine


async def ensure_schema(engine: AsyncEngine, schema: str = DB_SCHEMA) -> None:
    """Ensure the target schema exists, then create all tables."""
    async with engine.begin() as conn:
        await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {schema}"))
        await conn.run_sync(Base.metadata.create_all)

    logger.info("db_schema_ensured", schema=schema)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the engine."""
    return async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def store_session(
    factory: async_sessionmaker[AsyncSession], operation: str
) -> AsyncIterator[AsyncSession]:
    """Open a DB session; translate driver/connection failures into StoreUnavailableError.

    Application errors raised inside the block (NotFoundError, ValidationError)
    pass through untouched. The session context manager rolls back on any exception.
    """
    try:
        async with factory() as db_session:
            yield db_session
    except (SQLAlchemyError, OSError) as e:
        logger.warning("store_unavailable", operation=operation, error=str(e))
        raise StoreUnavailableError(f"{operation} failed: {e}") from e
