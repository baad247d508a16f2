"""Summary generator: cache-first weekly/monthly narratives.

A stored summary is returned as-is and the completion service is never
called for it. Otherwise the period's entries are summarized once and
written back through the atomic upsert.
"""

from __future__ import annotations

import calendar
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import TYPE_CHECKING

import structlog

from journal_buddy.infra.errors import ValidationError
from journal_buddy.journal.contracts import Entry, PeriodType, Summary

if TYPE_CHECKING:
    from journal_buddy.agent.completion import CompletionService
    from journal_buddy.config.settings import CompletionSettings
    from journal_buddy.journal.entry_store import EntryStore
    from journal_buddy.journal.summary_store import SummaryStore

logger = structlog.get_logger()

SUMMARY_SYSTEM_PROMPT = (
    "You are a journal companion. Write thoughtful period summaries that capture "
    "the emotional arc of the writer's {period}."
)

_SUMMARY_PROMPT = """\
Write a {period_label} reflection for this journal.

## {heading}
{entries}

## Guidelines
Write a brief ({paragraphs} paragraph) reflection that:
1. Captures the overall texture of the {period}: the emotional arc, not a list of events
2. Notes any patterns or threads that ran through multiple entries
3. Highlights one moment or insight that stood out
4. Ends with a gentle observation or question looking forward

## Tone
- Warm but not saccharine
- Specific, referencing things they actually wrote
- Concise: a thoughtful note, not an essay
- No therapy-speak or productivity framing

## Format
No headers or bullet points. Just flowing paragraphs."""

_PERIOD_WORDING: dict[PeriodType, dict[str, str]] = {
    PeriodType.weekly: {
        "period": "week",
        "period_label": "weekly",
        "heading": "This Week's Entries",
        "paragraphs": "3-4",
    },
    PeriodType.monthly: {
        "period": "month",
        "period_label": "monthly",
        "heading": "This Month's Entries",
        "paragraphs": "4-5",
    },
}


def week_start(d: date) -> date:
    """Monday of the week containing d."""
    return d - timedelta(days=d.weekday())


def month_start(d: date) -> date:
    return d.replace(day=1)


def period_end(start: date, period_type: PeriodType) -> date:
    """Inclusive last day of the period beginning at start."""
    if period_type == PeriodType.weekly:
        return start + timedelta(days=6)
    last_day = calendar.monthrange(start.year, start.month)[1]
    return start.replace(day=last_day)


def validate_period_start(period_start: date, period_type: PeriodType) -> None:
    if period_type == PeriodType.weekly and period_start.weekday() != 0:
        raise ValidationError(
            f"weekly period_start must be a Monday (got {period_start.isoformat()})"
        )
    if period_type == PeriodType.monthly and period_start.day != 1:
        raise ValidationError(
            f"monthly period_start must be the 1st of a month (got {period_start.isoformat()})"
        )


def format_entries(entries: Sequence[Entry]) -> str:
    blocks = [
        f"**{e.created_at.astimezone(UTC).date().isoformat()}** "
        f"({e.mood.value if e.mood else 'no mood'})\n{e.content}"
        for e in entries
    ]
    return "\n\n---\n\n".join(blocks)


@dataclass(frozen=True)
class SummaryResult:
    summary: Summary | None
    generated: bool


class SummaryGenerator:
    def __init__(
        self,
        entry_store: EntryStore,
        summary_store: SummaryStore,
        completion: CompletionService,
        settings: CompletionSettings,
    ) -> None:
        self._entries = entry_store
        self._summaries = summary_store
        self._completion = completion
        self._settings = settings

    async def get_or_generate_summary(
        self, user_id: str, period_start: date, period_type: PeriodType
    ) -> SummaryResult:
        """Return the cached summary, or generate and store it.

        Returns SummaryResult(None, False) for a period with no entries.
        CompletionError propagates; nothing is persisted on failure.
        """
        period_type = PeriodType(period_type)
        validate_period_start(period_start, period_type)

        cached = await self._summaries.get_summary(user_id, period_start, period_type)
        if cached is not None:
            logger.debug(
                "summary_cache_hit",
                user_id=user_id,
                period_start=period_start.isoformat(),
                period_type=period_type.value,
            )
            return SummaryResult(cached, generated=False)

        end = period_end(period_start, period_type)
        entries = await self._entries.list_all_entries(
            user_id,
            since=datetime.combine(period_start, time.min, tzinfo=UTC),
            until=datetime.combine(end + timedelta(days=1), time.min, tzinfo=UTC),
        )
        if not entries:
            logger.info(
                "summary_skipped_no_entries",
                user_id=user_id,
                period_start=period_start.isoformat(),
                period_type=period_type.value,
            )
            return SummaryResult(None, generated=False)

        # Oldest-first reads as a narrative
        entries.reverse()
        text = await self._generate(entries, period_type)

        summary = Summary(
            user_id=user_id,
            period_start=period_start,
            period_end=end,
            period_type=period_type,
            summary=text,
            entry_count=len(entries),
        )
        await self._summaries.upsert_summary(summary)
        logger.info(
            "summary_generated",
            user_id=user_id,
            period_start=period_start.isoformat(),
            period_type=period_type.value,
            entry_count=len(entries),
        )
        return SummaryResult(summary, generated=True)

    async def _generate(self, entries: Sequence[Entry], period_type: PeriodType) -> str:
        wording = _PERIOD_WORDING[period_type]
        prompt = _SUMMARY_PROMPT.format(entries=format_entries(entries), **wording)
        system_prompt = SUMMARY_SYSTEM_PROMPT.format(period=wording["period"])
        text = await self._completion.complete(
            system_prompt,
            [{"role": "user", "content": prompt}],
            max_tokens=self._settings.summary_max_tokens,
        )
        return text.strip()
