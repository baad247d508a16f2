"""Tests for SummaryGenerator: cache-first, no-entries, failure, period helpers."""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from journal_buddy.agent.summary_generator import (
    SummaryGenerator,
    month_start,
    period_end,
    week_start,
)
from journal_buddy.config.settings import CompletionSettings
from journal_buddy.infra.errors import CompletionTimeoutError, ValidationError
from journal_buddy.journal.contracts import PeriodType


@pytest.fixture()
def generator(entry_store, summary_store, completion) -> SummaryGenerator:
    return SummaryGenerator(entry_store, summary_store, completion, CompletionSettings())


class TestPeriodHelpers:
    def test_week_start_is_monday(self) -> None:
        assert week_start(date(2025, 1, 15)) == date(2025, 1, 13)  # Wednesday
        assert week_start(date(2025, 1, 13)) == date(2025, 1, 13)
        assert week_start(date(2025, 1, 19)) == date(2025, 1, 13)  # Sunday

    def test_month_start(self) -> None:
        assert month_start(date(2025, 2, 28)) == date(2025, 2, 1)

    def test_period_end_inclusive(self) -> None:
        assert period_end(date(2025, 1, 13), PeriodType.weekly) == date(2025, 1, 19)
        assert period_end(date(2024, 2, 1), PeriodType.monthly) == date(2024, 2, 29)
        assert period_end(date(2025, 12, 1), PeriodType.monthly) == date(2025, 12, 31)


class TestGetOrGenerate:
    @pytest.mark.asyncio()
    async def test_cached_summary_returned_without_completion(
        self, generator, summary_store, completion, make_summary
    ) -> None:
        cached = make_summary("Byte-identical text.")
        summary_store.get_summary.return_value = cached

        result = await generator.get_or_generate_summary("u1", date(2025, 1, 1), PeriodType.monthly)

        assert result.generated is False
        assert result.summary is cached
        assert result.summary.summary == "Byte-identical text."
        completion.complete.assert_not_awaited()
        summary_store.upsert_summary.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_no_entries_persists_nothing(
        self, generator, summary_store, completion
    ) -> None:
        result = await generator.get_or_generate_summary("u1", date(2025, 1, 13), PeriodType.weekly)

        assert result.summary is None
        assert result.generated is False
        completion.complete.assert_not_awaited()
        summary_store.upsert_summary.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_generates_and_upserts(
        self, generator, entry_store, summary_store, completion, make_entry
    ) -> None:
        entry_store.list_all_entries.return_value = [
            make_entry("second", entry_id="e2", created_at=datetime(2025, 1, 15, tzinfo=UTC)),
            make_entry("first", entry_id="e1", created_at=datetime(2025, 1, 13, tzinfo=UTC)),
        ]
        completion.complete.return_value = "  A week of two halves.  "

        result = await generator.get_or_generate_summary("u1", date(2025, 1, 13), PeriodType.weekly)

        assert result.generated is True
        assert result.summary.summary == "A week of two halves."
        assert result.summary.period_end == date(2025, 1, 19)
        assert result.summary.entry_count == 2
        summary_store.upsert_summary.assert_awaited_once_with(result.summary)
        completion.complete.assert_awaited_once()

        kwargs = entry_store.list_all_entries.await_args.kwargs
        assert kwargs["since"] == datetime(2025, 1, 13, tzinfo=UTC)
        assert kwargs["until"] == datetime(2025, 1, 20, tzinfo=UTC)

        # Entries are presented oldest-first
        prompt = completion.complete.await_args.args[1][0]["content"]
        assert prompt.index("first") < prompt.index("second")
        assert "This Week's Entries" in prompt

    @pytest.mark.asyncio()
    async def test_completion_failure_persists_nothing(
        self, generator, entry_store, summary_store, completion, make_entry
    ) -> None:
        entry_store.list_all_entries.return_value = [make_entry()]
        completion.complete.side_effect = CompletionTimeoutError()

        with pytest.raises(CompletionTimeoutError):
            await generator.get_or_generate_summary("u1", date(2025, 1, 1), PeriodType.monthly)
        summary_store.upsert_summary.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_second_call_hits_cache(
        self, generator, entry_store, summary_store, completion, make_entry
    ) -> None:
        entry_store.list_all_entries.return_value = [make_entry()]
        stored = {}

        async def upsert(summary):
            stored["s"] = summary
            summary_store.get_summary.return_value = summary
            return summary

        summary_store.upsert_summary.side_effect = upsert

        first = await generator.get_or_generate_summary("u1", date(2025, 1, 1), PeriodType.monthly)
        second = await generator.get_or_generate_summary("u1", date(2025, 1, 1), PeriodType.monthly)

        assert first.generated is True
        assert second.generated is False
        assert second.summary.summary == first.summary.summary
        assert completion.complete.await_count == 1

    @pytest.mark.asyncio()
    @pytest.mark.parametrize(
        ("start", "period_type"),
        [(date(2025, 1, 15), PeriodType.weekly), (date(2025, 1, 2), PeriodType.monthly)],
    )
    async def test_misaligned_period_start_rejected(
        self, generator, start, period_type
    ) -> None:
        with pytest.raises(ValidationError):
            await generator.get_or_generate_summary("u1", start, period_type)
