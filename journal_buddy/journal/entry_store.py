"""Entry store: persisted journal entries with filtered retrieval.

All reads exclude soft-deleted rows. Updates go through an explicit
allow-list; arbitrary keys never reach the UPDATE statement.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import cast, func, select, update
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.types import Date, Text

from journal_buddy.infra.errors import ValidationError
from journal_buddy.journal.contracts import (
    Entry,
    EntryFilters,
    Mood,
    coerce_mood,
    count_words,
    normalize_tags,
    validate_content,
    validate_energy,
)
from journal_buddy.journal.models import EntryRecord
from journal_buddy.session.database import store_session

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = structlog.get_logger()

# Fields a caller may change after creation. Everything else is rejected.
UPDATABLE_FIELDS = frozenset({"content", "mood", "energy", "tags"})

MAX_LIST_LIMIT = 100


def _to_entry(record: EntryRecord) -> Entry:
    return Entry(
        id=record.id,
        user_id=record.user_id,
        content=record.content,
        created_at=record.created_at,
        updated_at=record.updated_at,
        mood=Mood(record.mood) if record.mood else None,
        energy=record.energy,
        tags=tuple(record.tags or ()),
        reflection=record.reflection,
        themes=tuple(record.themes or ()),
        word_count=record.word_count or 0,
    )


def validate_updates(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Check a partial update against the allow-list and normalize its values."""
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(
            f"Fields not updatable: {', '.join(sorted(unknown))}. "
            f"Allowed: {', '.join(sorted(UPDATABLE_FIELDS))}"
        )
    if not changes:
        raise ValidationError("No fields to update")

    values: dict[str, Any] = {}
    if "content" in changes:
        content = validate_content(changes["content"])
        values["content"] = content
        values["word_count"] = count_words(content)
    if "mood" in changes:
        mood = coerce_mood(changes["mood"])
        values["mood"] = mood.value if mood else None
    if "energy" in changes:
        values["energy"] = validate_energy(changes["energy"])
    if "tags" in changes:
        values["tags"] = list(normalize_tags(changes["tags"]))
    return values


class EntryStore:
    """PostgreSQL-backed journal entry store."""

    def __init__(self, db_session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._db = db_session_factory

    async def list_entries(
        self, user_id: str, filters: EntryFilters | None = None
    ) -> list[Entry]:
        """Return live entries newest-first, filtered by date range / mood / tag."""
        filters = filters or EntryFilters()
        if filters.limit <= 0 or filters.limit > MAX_LIST_LIMIT:
            raise ValidationError(f"limit must be in 1..{MAX_LIST_LIMIT} (got {filters.limit})")
        if filters.offset < 0:
            raise ValidationError(f"offset must be >= 0 (got {filters.offset})")

        stmt = select(EntryRecord).where(
            EntryRecord.user_id == user_id,
            EntryRecord.deleted_at.is_(None),
        )
        if filters.since is not None:
            stmt = stmt.where(EntryRecord.created_at >= filters.since)
        if filters.until is not None:
            stmt = stmt.where(EntryRecord.created_at < filters.until)
        if filters.mood is not None:
            stmt = stmt.where(EntryRecord.mood == filters.mood.value)
        if filters.tag:
            stmt = stmt.where(EntryRecord.tags.contains(cast([filters.tag], ARRAY(Text))))
        stmt = (
            stmt.order_by(EntryRecord.created_at.desc(), EntryRecord.id)
            .limit(filters.limit)
            .offset(filters.offset)
        )

        async with store_session(self._db, "entry_store.list_entries") as db:
            result = await db.execute(stmt)
            records = result.scalars().all()

        logger.debug("entries_listed", user_id=user_id, count=len(records))
        return [_to_entry(r) for r in records]

    async def list_all_entries(
        self, user_id: str, *, since: datetime, until: datetime | None = None
    ) -> list[Entry]:
        """Every live entry in [since, until), newest-first, paging past MAX_LIST_LIMIT."""
        entries: list[Entry] = []
        offset = 0
        while True:
            page = await self.list_entries(
                user_id,
                EntryFilters(since=since, until=until, limit=MAX_LIST_LIMIT, offset=offset),
            )
            entries.extend(page)
            if len(page) < MAX_LIST_LIMIT:
                return entries
            offset += MAX_LIST_LIMIT

    async def get_entry(self, user_id: str, entry_id: str) -> Entry | None:
        async with store_session(self._db, "entry_store.get_entry") as db:
            record = await self._get_live(db, user_id, entry_id)
        return _to_entry(record) if record is not None else None

    async def create_entry(
        self,
        user_id: str,
        content: str,
        *,
        mood: Mood | str | None = None,
        energy: int | str | None = None,
        tags: Iterable[str] | None = None,
    ) -> Entry:
        """Validate and insert a new entry. Reflection/themes are attached later."""
        content = validate_content(content)
        mood_value = coerce_mood(mood)
        record = EntryRecord(
            user_id=user_id,
            content=content,
            word_count=count_words(content),
            mood=mood_value.value if mood_value else None,
            energy=validate_energy(energy),
            tags=list(normalize_tags(tags)),
            themes=[],
        )
        async with store_session(self._db, "entry_store.create_entry") as db:
            db.add(record)
            await db.commit()
            await db.refresh(record)

        logger.info("entry_created", user_id=user_id, entry_id=record.id)
        return _to_entry(record)

    async def update_entry(
        self, user_id: str, entry_id: str, changes: Mapping[str, Any]
    ) -> Entry | None:
        """Apply an allow-listed partial update. Returns None if missing or deleted."""
        values = validate_updates(changes)
        return await self._update(user_id, entry_id, values, operation="update_entry")

    async def set_reflection(
        self, user_id: str, entry_id: str, reflection: str
    ) -> Entry | None:
        return await self._update(
            user_id, entry_id, {"reflection": reflection}, operation="set_reflection"
        )

    async def set_themes(
        self, user_id: str, entry_id: str, themes: Iterable[str]
    ) -> Entry | None:
        return await self._update(
            user_id, entry_id, {"themes": list(themes)}, operation="set_themes"
        )

    async def soft_delete_entry(self, user_id: str, entry_id: str) -> bool:
        stmt = (
            update(EntryRecord)
            .where(
                EntryRecord.id == entry_id,
                EntryRecord.user_id == user_id,
                EntryRecord.deleted_at.is_(None),
            )
            .values(deleted_at=func.now())
            .returning(EntryRecord.id)
        )
        async with store_session(self._db, "entry_store.soft_delete_entry") as db:
            result = await db.execute(stmt)
            deleted = result.scalar_one_or_none() is not None
            await db.commit()

        if deleted:
            logger.info("entry_soft_deleted", user_id=user_id, entry_id=entry_id)
        return deleted

    async def list_entry_dates(self, user_id: str) -> list[date]:
        """Distinct calendar dates (UTC) with at least one live entry, newest first."""
        entry_date = cast(func.timezone("UTC", EntryRecord.created_at), Date)
        stmt = (
            select(entry_date.label("entry_date"))
            .where(EntryRecord.user_id == user_id, EntryRecord.deleted_at.is_(None))
            .distinct()
            .order_by(entry_date.desc())
        )
        async with store_session(self._db, "entry_store.list_entry_dates") as db:
            result = await db.execute(stmt)
            return [row.entry_date for row in result]

    async def _update(
        self, user_id: str, entry_id: str, values: dict[str, Any], *, operation: str
    ) -> Entry | None:
        stmt = (
            update(EntryRecord)
            .where(
                EntryRecord.id == entry_id,
                EntryRecord.user_id == user_id,
                EntryRecord.deleted_at.is_(None),
            )
            .values(**values, updated_at=datetime.now(UTC))
            .returning(EntryRecord)
        )
        async with store_session(self._db, f"entry_store.{operation}") as db:
            result = await db.execute(stmt)
            record = result.scalar_one_or_none()
            await db.commit()

        if record is None:
            return None
        logger.info(operation, user_id=user_id, entry_id=entry_id, fields=sorted(values))
        return _to_entry(record)

    @staticmethod
    async def _get_live(db: AsyncSession, user_id: str, entry_id: str) -> EntryRecord | None:
        stmt = select(EntryRecord).where(
            EntryRecord.id == entry_id,
            EntryRecord.user_id == user_id,
            EntryRecord.deleted_at.is_(None),
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()
