"""SQLAlchemy models for the journal subsystem.

Includes:
- EntryRecord: journal entries with soft-delete marker
- SummaryRecord: cached weekly/monthly narratives, one per (user, period_start, period_type)
"""

from __future__ import annotations

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY

from journal_buddy.constants import DB_SCHEMA
from journal_buddy.session.models import Base, new_id


class EntryRecord(Base):
    """Journal entries.

    word_count is derived from content on every write. Rows with deleted_at
    set are invisible to all reads.
    """

    __tablename__ = "entries"
    __table_args__ = (
        Index("idx_entries_user_created", "user_id", "created_at"),
        {"schema": DB_SCHEMA},
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False)
    content = Column(Text, nullable=False)
    word_count = Column(Integer, nullable=False, default=0)
    mood = Column(String(8), nullable=True)  # good | okay | rough
    energy = Column(Integer, nullable=True)  # 1..5
    tags = Column(ARRAY(Text), nullable=False, default=list)
    reflection = Column(Text, nullable=True)
    themes = Column(ARRAY(Text), nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)


class SummaryRecord(Base):
    """Per-period narrative summaries. Written only through an atomic upsert."""

    __tablename__ = "summaries"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "period_start", "period_type", name="uq_summaries_user_period"
        ),
        {"schema": DB_SCHEMA},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    period_type = Column(String(8), nullable=False)  # weekly | monthly
    summary = Column(Text, nullable=False)
    entry_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
