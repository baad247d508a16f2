from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from journal_buddy.agent.summary_generator import SummaryResult, month_start, week_start
from journal_buddy.infra.errors import ValidationError
from journal_buddy.insights.aggregator import Insights, compute_insights
from journal_buddy.journal.contracts import PeriodType

if TYPE_CHECKING:
    from journal_buddy.agent.summary_generator import SummaryGenerator
    from journal_buddy.config.settings import InsightsSettings
    from journal_buddy.insights.patterns import PatternDetector, PatternReport
    from journal_buddy.journal.entry_store import EntryStore

logger = structlog.get_logger()


class InsightsPeriod(StrEnum):
    week = "week"
    month = "month"
    quarter = "quarter"

    @property
    def days(self) -> int:
        return {"week": 7, "month": 30, "quarter": 90}[self.value]


_SUMMARY_PERIODS: dict[str, PeriodType] = {
    "week": PeriodType.weekly,
    "month": PeriodType.monthly,
}


def _parse_period(value: str, allowed: tuple[str, ...]) -> str:
    if value not in allowed:
        raise ValidationError(f"period must be one of {', '.join(allowed)} (got {value!r})")
    return value


@dataclass(frozen=True)
class PeriodInsights:
    period_start: date
    period_end: date
    insights: Insights

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": {
                "start": self.period_start.isoformat(),
                "end": self.period_end.isoformat(),
            },
            **self.insights.to_dict(),
        }


class InsightsService:
    """Read-side analytics: aggregates, period summaries, pattern detection."""

    def __init__(
        self,
        entry_store: EntryStore,
        summary_generator: SummaryGenerator,
        pattern_detector: PatternDetector,
        settings: InsightsSettings,
    ) -> None:
        self._entries = entry_store
        self._summaries = summary_generator
        self._patterns = pattern_detector
        self._settings = settings

    async def get_insights(
        self,
        user_id: str,
        period: InsightsPeriod | str = InsightsPeriod.week,
        *,
        now: datetime | None = None,
    ) -> PeriodInsights:
        period = InsightsPeriod(_parse_period(str(period), tuple(InsightsPeriod)))
        now = now or datetime.now(UTC)
        # Rolling window, same as the context assembler's recent tier
        since = now - timedelta(days=period.days)

        entries = await self._entries.list_all_entries(user_id, since=since)
        # Streak spans all history, not just the window
        streak_dates = await self._entries.list_entry_dates(user_id)
        insights = compute_insights(
            entries,
            streak_dates=streak_dates,
            today=now.date(),
            k=self._settings.top_k,
            threshold=self._settings.trend_threshold,
        )
        logger.info(
            "insights_computed",
            user_id=user_id,
            period=period.value,
            entry_count=insights.entry_count,
        )
        return PeriodInsights(period_start=since.date(), period_end=now.date(), insights=insights)

    async def get_period_summary(
        self, user_id: str, period: str = "week", *, today: date | None = None
    ) -> SummaryResult:
        period_type = _SUMMARY_PERIODS[_parse_period(period, tuple(_SUMMARY_PERIODS))]
        today = today or datetime.now(UTC).date()
        start = week_start(today) if period_type == PeriodType.weekly else month_start(today)
        return await self._summaries.get_or_generate_summary(user_id, start, period_type)

    async def detect_patterns(
        self, user_id: str, *, now: datetime | None = None
    ) -> PatternReport | None:
        """Patterns over the recent window. None when there are too few entries."""
        now = now or datetime.now(UTC)
        since = now - timedelta(days=self._settings.pattern_window_days)
        entries = await self._entries.list_all_entries(user_id, since=since)
        if len(entries) < self._settings.pattern_min_entries:
            logger.info(
                "patterns_skipped_insufficient_entries",
                user_id=user_id,
                entries=len(entries),
                required=self._settings.pattern_min_entries,
            )
            return None
        return await self._patterns.detect(entries)
