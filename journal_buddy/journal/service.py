"""Journal service: entry lifecycle on top of the entry store.

Entry creation and reflection are separate steps. A failed reflection or
theme extraction never loses the saved entry.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

import structlog

from journal_buddy.infra.errors import CompletionError, NotFoundError, StoreUnavailableError
from journal_buddy.journal.contracts import Entry, EntryFilters, Mood, ReflectionStyle

if TYPE_CHECKING:
    from journal_buddy.agent.reflection import ReflectionGenerator
    from journal_buddy.journal.entry_store import EntryStore

logger = structlog.get_logger()


class JournalService:
    def __init__(
        self, entry_store: EntryStore, reflection_generator: ReflectionGenerator
    ) -> None:
        self._store = entry_store
        self._reflections = reflection_generator

    async def create_entry(
        self,
        user_id: str,
        content: str,
        *,
        mood: Mood | str | None = None,
        energy: int | str | None = None,
        tags: Iterable[str] | None = None,
        generate_reflection: bool = False,
        style: ReflectionStyle = ReflectionStyle.brief,
    ) -> Entry:
        entry = await self._store.create_entry(
            user_id, content, mood=mood, energy=energy, tags=tags
        )

        try:
            themes = await self._reflections.extract_themes(entry)
            if themes:
                entry = await self._store.set_themes(user_id, entry.id, themes) or entry
        except (CompletionError, StoreUnavailableError) as e:
            logger.warning(
                "theme_extraction_failed", user_id=user_id, entry_id=entry.id, error=str(e)
            )

        if generate_reflection:
            try:
                reflection = await self._reflections.generate_reflection(user_id, entry, style)
                entry = await self._store.set_reflection(user_id, entry.id, reflection) or entry
            except (CompletionError, StoreUnavailableError) as e:
                logger.warning(
                    "reflection_failed", user_id=user_id, entry_id=entry.id, error=str(e)
                )

        return entry

    async def reflect(
        self,
        user_id: str,
        entry_id: str,
        style: ReflectionStyle = ReflectionStyle.brief,
    ) -> Entry:
        """Generate and store a reflection for an existing entry. Failures propagate."""
        entry = await self.get_entry(user_id, entry_id)
        reflection = await self._reflections.generate_reflection(user_id, entry, style)
        updated = await self._store.set_reflection(user_id, entry_id, reflection)
        if updated is None:
            raise NotFoundError(f"Entry {entry_id} not found")
        return updated

    async def get_entry(self, user_id: str, entry_id: str) -> Entry:
        entry = await self._store.get_entry(user_id, entry_id)
        if entry is None:
            raise NotFoundError(f"Entry {entry_id} not found")
        return entry

    async def list_entries(
        self, user_id: str, filters: EntryFilters | None = None
    ) -> list[Entry]:
        return await self._store.list_entries(user_id, filters)

    async def update_entry(
        self, user_id: str, entry_id: str, changes: Mapping[str, Any]
    ) -> Entry:
        entry = await self._store.update_entry(user_id, entry_id, changes)
        if entry is None:
            raise NotFoundError(f"Entry {entry_id} not found")
        return entry

    async def delete_entry(self, user_id: str, entry_id: str) -> None:
        if not await self._store.soft_delete_entry(user_id, entry_id):
            raise NotFoundError(f"Entry {entry_id} not found")
