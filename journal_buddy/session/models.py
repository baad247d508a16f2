"""SQLAlchemy 2.0 async models for conversation persistence."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from journal_buddy.constants import DB_SCHEMA


class Base(DeclarativeBase):
    pass


def new_id() -> str:
    return str(uuid.uuid4())


class ConversationRecord(Base):
    __tablename__ = "conversations"
    __table_args__ = {"schema": DB_SCHEMA}

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    # Relation only: the conversation does not own the entry
    entry_id: Mapped[str | None] = mapped_column(String(36), nullable=True, default=None)
    session_type: Mapped[str] = mapped_column(String(32), default="freeform")
    next_seq: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )
    messages: Mapped[list[MessageRecord]] = relationship(
        back_populates="conversation",
        order_by="MessageRecord.seq",
        cascade="all, delete-orphan",
    )


class MessageRecord(Base):
    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("conversation_id", "seq", name="uq_messages_conversation_seq"),
        {"schema": DB_SCHEMA},
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    conversation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey(f"{DB_SCHEMA}.conversations.id"), index=True
    )
    seq: Mapped[int] = mapped_column(Integer)
    role: Mapped[str] = mapped_column(String(16))
    content: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    conversation: Mapped[ConversationRecord] = relationship(back_populates="messages")
