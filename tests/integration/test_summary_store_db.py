"""Integration tests for SummaryStore upsert semantics."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import date

import pytest
import pytest_asyncio

from journal_buddy.journal.contracts import PeriodType, Summary
from journal_buddy.journal.summary_store import SummaryStore

pytestmark = pytest.mark.integration

MARCH = Summary(
    user_id="u1",
    period_start=date(2025, 3, 1),
    period_end=date(2025, 3, 31),
    period_type=PeriodType.monthly,
    summary="A busy month.",
    entry_count=12,
)


@pytest_asyncio.fixture
async def summary_store(db_session_factory) -> SummaryStore:
    return SummaryStore(db_session_factory)


class TestUpsert:
    async def test_insert_then_replace(self, summary_store: SummaryStore) -> None:
        await summary_store.upsert_summary(MARCH)
        await summary_store.upsert_summary(replace(MARCH, summary="Revised.", entry_count=13))

        loaded = await summary_store.get_summary("u1", date(2025, 3, 1), PeriodType.monthly)
        assert loaded.summary == "Revised."
        assert loaded.entry_count == 13

    async def test_concurrent_upserts_leave_one_row(self, summary_store: SummaryStore) -> None:
        await asyncio.gather(
            summary_store.upsert_summary(replace(MARCH, summary="first")),
            summary_store.upsert_summary(replace(MARCH, summary="second")),
        )
        loaded = await summary_store.get_summary("u1", date(2025, 3, 1), PeriodType.monthly)
        assert loaded.summary in {"first", "second"}

    async def test_weekly_and_monthly_are_distinct(self, summary_store: SummaryStore) -> None:
        await summary_store.upsert_summary(MARCH)
        weekly = replace(
            MARCH, period_type=PeriodType.weekly, period_end=date(2025, 3, 7), summary="week"
        )
        await summary_store.upsert_summary(weekly)

        monthly = await summary_store.get_summary("u1", date(2025, 3, 1), PeriodType.monthly)
        assert monthly.summary == "A busy month."


class TestLatest:
    async def test_latest_by_period_start(self, summary_store: SummaryStore) -> None:
        await summary_store.upsert_summary(MARCH)
        await summary_store.upsert_summary(
            replace(MARCH, period_start=date(2025, 1, 1), period_end=date(2025, 1, 31))
        )
        latest = await summary_store.get_latest_summary("u1")
        assert latest.period_start == date(2025, 3, 1)

    async def test_none_when_empty(self, summary_store: SummaryStore) -> None:
        assert await summary_store.get_latest_summary("nobody") is None
