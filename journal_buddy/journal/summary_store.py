"""Summary store: one cached narrative per (user, period_start, period_type)."""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert

from journal_buddy.journal.contracts import PeriodType, Summary
from journal_buddy.journal.models import SummaryRecord
from journal_buddy.session.database import store_session

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = structlog.get_logger()


def _to_summary(record: SummaryRecord) -> Summary:
    return Summary(
        user_id=record.user_id,
        period_start=record.period_start,
        period_end=record.period_end,
        period_type=PeriodType(record.period_type),
        summary=record.summary,
        entry_count=record.entry_count,
    )


class SummaryStore:
    """PostgreSQL-backed summary cache."""

    def __init__(self, db_session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._db = db_session_factory

    async def get_summary(
        self, user_id: str, period_start: date, period_type: PeriodType
    ) -> Summary | None:
        stmt = select(SummaryRecord).where(
            SummaryRecord.user_id == user_id,
            SummaryRecord.period_start == period_start,
            SummaryRecord.period_type == PeriodType(period_type).value,
        )
        async with store_session(self._db, "summary_store.get_summary") as db:
            result = await db.execute(stmt)
            record = result.scalar_one_or_none()
        return _to_summary(record) if record is not None else None

    async def get_latest_summary(
        self, user_id: str, period_type: PeriodType = PeriodType.monthly
    ) -> Summary | None:
        """Most recent summary of the given type by period_start, or None."""
        stmt = (
            select(SummaryRecord)
            .where(
                SummaryRecord.user_id == user_id,
                SummaryRecord.period_type == PeriodType(period_type).value,
            )
            .order_by(SummaryRecord.period_start.desc())
            .limit(1)
        )
        async with store_session(self._db, "summary_store.get_latest_summary") as db:
            result = await db.execute(stmt)
            record = result.scalar_one_or_none()
        return _to_summary(record) if record is not None else None

    async def upsert_summary(self, summary: Summary) -> Summary:
        """Insert or replace atomically. Concurrent writers: last one wins, no error."""
        stmt = pg_insert(SummaryRecord).values(
            user_id=summary.user_id,
            period_start=summary.period_start,
            period_end=summary.period_end,
            period_type=summary.period_type.value,
            summary=summary.summary,
            entry_count=summary.entry_count,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "period_start", "period_type"],
            set_={
                "period_end": stmt.excluded.period_end,
                "summary": stmt.excluded.summary,
                "entry_count": stmt.excluded.entry_count,
                "updated_at": func.now(),
            },
        )
        async with store_session(self._db, "summary_store.upsert_summary") as db:
            await db.execute(stmt)
            await db.commit()

        logger.info(
            "summary_upserted",
            user_id=summary.user_id,
            period_start=summary.period_start.isoformat(),
            period_type=summary.period_type.value,
            entry_count=summary.entry_count,
        )
        return summary
