"""Context assembly: the per-request snapshot the companion prompt is built from.

Tiers:
- recent: entries from the last N days (newest-first, capped)
- derived: mood trend + recurring themes over that same window
- long-term: the latest stored monthly summary (never generated here)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import structlog

from journal_buddy.infra.errors import (
    ContextUnavailableError,
    StoreUnavailableError,
    ValidationError,
)
from journal_buddy.insights.aggregator import MoodTrend, mood_trend, recurring_themes
from journal_buddy.journal.contracts import Entry, EntryFilters, Mood, PeriodType

if TYPE_CHECKING:
    from journal_buddy.config.settings import ContextSettings, InsightsSettings
    from journal_buddy.journal.entry_store import EntryStore
    from journal_buddy.journal.summary_store import SummaryStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class RecentEntry:
    date: str  # YYYY-MM-DD (UTC)
    content: str
    mood: Mood | None
    themes: tuple[str, ...]

    @classmethod
    def from_entry(cls, entry: Entry) -> RecentEntry:
        return cls(
            date=entry.created_at.astimezone(UTC).date().isoformat(),
            content=entry.content,
            mood=entry.mood,
            themes=entry.themes,
        )


@dataclass(frozen=True)
class ContextPayload:
    recent_entries: tuple[RecentEntry, ...] = ()
    mood_trend: MoodTrend = MoodTrend.insufficient_data
    recurring_themes: tuple[str, ...] = ()
    long_term_summary: str = ""
    current_entry: str | None = None
    window_days: int = 7

    def to_dict(self) -> dict[str, Any]:
        """Wire shape used by GET /api/context."""
        return {
            "recentEntries": [
                {
                    "date": e.date,
                    "content": e.content,
                    "mood": e.mood.value if e.mood else None,
                    "themes": list(e.themes),
                }
                for e in self.recent_entries
            ],
            "moodTrend": self.mood_trend.value,
            "recurringThemes": list(self.recurring_themes),
            "longTermSummary": self.long_term_summary,
        }


class ContextAssembler:
    """Builds a ContextPayload from the entry and summary stores.

    Deterministic for identical store contents and `now`; nothing is cached.
    """

    def __init__(
        self,
        entry_store: EntryStore,
        summary_store: SummaryStore,
        settings: ContextSettings,
        insights_settings: InsightsSettings | None = None,
    ) -> None:
        self._entries = entry_store
        self._summaries = summary_store
        self._settings = settings
        self._trend_threshold = (
            insights_settings.trend_threshold if insights_settings is not None else 0.1
        )

    async def assemble(
        self,
        user_id: str,
        current_entry_text: str | None = None,
        *,
        now: datetime | None = None,
    ) -> ContextPayload:
        if current_entry_text is not None and not current_entry_text.strip():
            raise ValidationError("current_entry_text must not be blank")

        now = now or datetime.now(UTC)
        since = now - timedelta(days=self._settings.recent_window_days)
        filters = EntryFilters(since=since, limit=self._settings.recent_entry_limit)

        try:
            entries = await self._entries.list_entries(user_id, filters)
            latest = await self._summaries.get_latest_summary(user_id, PeriodType.monthly)
        except StoreUnavailableError as e:
            logger.warning("context_unavailable", user_id=user_id, error=str(e))
            raise ContextUnavailableError(f"Cannot assemble context: {e}") from e

        payload = ContextPayload(
            recent_entries=tuple(RecentEntry.from_entry(e) for e in entries),
            mood_trend=mood_trend(entries, threshold=self._trend_threshold),
            recurring_themes=tuple(
                recurring_themes(
                    entries,
                    min_count=self._settings.recurring_min_count,
                    k=self._settings.recurring_top_k,
                )
            ),
            long_term_summary=latest.summary if latest is not None else "",
            current_entry=current_entry_text,
            window_days=self._settings.recent_window_days,
        )
        logger.debug(
            "context_assembled",
            user_id=user_id,
            recent_entries=len(payload.recent_entries),
            mood_trend=payload.mood_trend.value,
            recurring_themes=len(payload.recurring_themes),
            has_long_term=bool(payload.long_term_summary),
        )
        return payload
