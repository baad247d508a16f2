"""Shared pytest fixtures for JournalBuddy tests.

Provides containerized PostgreSQL for integration tests via two modes:
1. TEST_DATABASE_* env vars present → connect to external PG (CI scenario)
2. Otherwise → testcontainers auto-starts a temporary PG container (local dev)

Safety: refuses to run against any database whose name doesn't contain '_test'.

Also provides entry/summary builders shared by the unit tests.
"""

from __future__ import annotations

import inspect
import os
from collections.abc import AsyncGenerator, Iterable
from datetime import UTC, date, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from journal_buddy.constants import DB_SCHEMA
from journal_buddy.journal.contracts import Entry, Mood, PeriodType, Summary
from journal_buddy.session.database import Base

TRUNCATE_TABLES = ("messages", "conversations", "entries", "summaries")


def _make_entry(
    content: str = "Wrote some things down.",
    *,
    entry_id: str = "e1",
    user_id: str = "u1",
    created_at: datetime | None = None,
    mood: Mood | str | None = None,
    energy: int | None = None,
    tags: Iterable[str] = (),
    themes: Iterable[str] = (),
    reflection: str | None = None,
) -> Entry:
    """Build an Entry DTO with sensible defaults."""
    created = created_at or datetime(2025, 1, 15, 9, 0, tzinfo=UTC)
    return Entry(
        id=entry_id,
        user_id=user_id,
        content=content,
        created_at=created,
        updated_at=created,
        mood=Mood(mood) if mood else None,
        energy=energy,
        tags=tuple(tags),
        reflection=reflection,
        themes=tuple(themes),
        word_count=len(content.split()),
    )


def _make_summary(
    text_: str = "A steady month.",
    *,
    user_id: str = "u1",
    period_start: date = date(2025, 1, 1),
    period_end: date = date(2025, 1, 31),
    period_type: PeriodType = PeriodType.monthly,
    entry_count: int = 3,
) -> Summary:
    return Summary(
        user_id=user_id,
        period_start=period_start,
        period_end=period_end,
        period_type=period_type,
        summary=text_,
        entry_count=entry_count,
    )


@pytest.fixture()
def make_entry():
    return _make_entry


@pytest.fixture()
def make_summary():
    return _make_summary


@pytest.fixture()
def entry_store() -> MagicMock:
    """EntryStore double with async methods returning empty results."""
    store = MagicMock()
    store.list_entries = AsyncMock(return_value=[])
    store.list_all_entries = AsyncMock(return_value=[])
    store.list_entry_dates = AsyncMock(return_value=[])
    store.get_entry = AsyncMock(return_value=None)
    store.create_entry = AsyncMock()
    store.update_entry = AsyncMock()
    store.set_reflection = AsyncMock()
    store.set_themes = AsyncMock()
    store.soft_delete_entry = AsyncMock(return_value=True)
    return store


@pytest.fixture()
def summary_store() -> MagicMock:
    store = MagicMock()
    store.get_summary = AsyncMock(return_value=None)
    store.get_latest_summary = AsyncMock(return_value=None)
    store.upsert_summary = AsyncMock(side_effect=lambda s: s)
    return store


@pytest.fixture()
def completion() -> MagicMock:
    service = MagicMock()
    service.complete = AsyncMock(return_value="A thoughtful reply.")
    return service


# ---------------------------------------------------------------------------
# PostgreSQL (integration)
# ---------------------------------------------------------------------------


def _validate_test_db_name(name: str) -> None:
    """Safety: refuse to truncate a database whose name doesn't contain '_test'."""
    if "_test" not in name.lower():
        raise RuntimeError(
            f"Refusing to run tests against database '{name}': "
            "name must contain '_test' to prevent accidental data loss. "
            "Set TEST_DATABASE_NAME to a test-specific database."
        )


def _build_pg_url_from_env() -> str | None:
    """Build async PG URL from TEST_DATABASE_* env vars, or return None."""
    host = os.getenv("TEST_DATABASE_HOST")
    if host is None:
        return None
    port = os.getenv("TEST_DATABASE_PORT", "5432")
    user = os.getenv("TEST_DATABASE_USER", "postgres")
    password = os.getenv("TEST_DATABASE_PASSWORD", "")
    name = os.getenv("TEST_DATABASE_NAME", "journal_buddy_test")
    _validate_test_db_name(name)
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"


@pytest.fixture(scope="session")
def _pg_container():
    """Manage testcontainers PostgreSQL lifecycle.

    Yields (url, container) where container is None if using external PG.
    """
    url = _build_pg_url_from_env()
    if url is not None:
        yield url, None
        return

    from testcontainers.postgres import PostgresContainer

    container = PostgresContainer("postgres:16", dbname="journal_buddy_test")
    container.start()

    host = container.get_container_host_ip()
    port = container.get_exposed_port(5432)
    _validate_test_db_name(container.dbname)

    url = (
        f"postgresql+asyncpg://{container.username}:{container.password}"
        f"@{host}:{port}/{container.dbname}"
    )

    yield url, container

    container.stop()


@pytest.fixture(scope="session")
def pg_url(_pg_container) -> str:
    url, _ = _pg_container
    return url


@pytest_asyncio.fixture(scope="session")
async def db_engine(pg_url: str):
    """Create async engine, set up schema + tables. Tear down after session."""
    engine = create_async_engine(pg_url, echo=False)

    async with engine.begin() as conn:
        await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {DB_SCHEMA}"))
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.execute(text(f"DROP SCHEMA IF EXISTS {DB_SCHEMA} CASCADE"))

    await engine.dispose()


@pytest_asyncio.fixture(scope="session")
async def db_session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest_asyncio.fixture(autouse=True)
async def _integration_cleanup(request):
    """Truncate all tables after each integration test for isolation.

    Uses request.getfixturevalue() for lazy resolution so unit tests never
    trigger the db_session_factory → db_engine → _pg_container chain.
    """
    yield

    if not any(m.name == "integration" for m in request.node.iter_markers()):
        return
    if not inspect.iscoroutinefunction(request.node.obj):
        return
    if "db_session_factory" not in request.fixturenames:
        return

    factory = request.getfixturevalue("db_session_factory")
    async with factory() as db_session:
        qualified = ", ".join(f"{DB_SCHEMA}.{t}" for t in TRUNCATE_TABLES)
        await db_session.execute(text(f"TRUNCATE {qualified} CASCADE"))
        await db_session.commit()


@pytest_asyncio.fixture
async def conversation_manager(
    db_session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator:
    """Provide a fresh ConversationManager per test."""
    from journal_buddy.session.manager import ConversationManager

    yield ConversationManager(db_session_factory)
