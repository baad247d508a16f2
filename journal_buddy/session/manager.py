from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal

import structlog
from sqlalchemy import func, select, update

from journal_buddy.infra.errors import NotFoundError, ValidationError
from journal_buddy.journal.contracts import ChatMessage, Conversation, SessionType
from journal_buddy.session.database import store_session
from journal_buddy.session.models import ConversationRecord, MessageRecord

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = structlog.get_logger()

Role = Literal["user", "assistant"]
ROLES: frozenset[str] = frozenset({"user", "assistant"})


def _to_conversation(record: ConversationRecord, message_count: int = 0) -> Conversation:
    return Conversation(
        id=record.id,
        user_id=record.user_id,
        session_type=SessionType(record.session_type),
        created_at=record.created_at,
        updated_at=record.updated_at,
        entry_id=record.entry_id,
        message_count=message_count,
    )


def _to_message(record: MessageRecord) -> ChatMessage:
    return ChatMessage(
        id=record.id,
        conversation_id=record.conversation_id,
        seq=record.seq,
        role=record.role,
        content=record.content,
        created_at=record.created_at,
    )


class ConversationManager:
    """Conversation and message storage backed by PostgreSQL.

    No in-process cache: every read goes to the database, so history always
    reflects writes from other workers.
    """

    def __init__(self, db_session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._db = db_session_factory

    async def create_conversation(
        self,
        user_id: str,
        *,
        session_type: SessionType = SessionType.freeform,
        entry_id: str | None = None,
    ) -> Conversation:
        record = ConversationRecord(
            user_id=user_id,
            session_type=SessionType(session_type).value,
            entry_id=entry_id,
            next_seq=0,
        )
        async with store_session(self._db, "conversations.create") as db:
            db.add(record)
            await db.commit()
            await db.refresh(record)

        logger.info(
            "conversation_created",
            user_id=user_id,
            conversation_id=record.id,
            session_type=record.session_type,
        )
        return _to_conversation(record)

    async def get_conversation(self, user_id: str, conversation_id: str) -> Conversation:
        """Load a live conversation. Raises NotFoundError if missing or deleted."""
        async with store_session(self._db, "conversations.get") as db:
            record = await self._get_live(db, user_id, conversation_id)
            if record is None:
                raise NotFoundError(f"Conversation {conversation_id} not found")
            count = await self._count_messages(db, conversation_id)
        return _to_conversation(record, count)

    async def list_conversations(self, user_id: str, *, limit: int = 20) -> list[Conversation]:
        """Live conversations, most recently active first, with message counts."""
        msg_count = (
            select(func.count(MessageRecord.id))
            .where(MessageRecord.conversation_id == ConversationRecord.id)
            .correlate(ConversationRecord)
            .scalar_subquery()
        )
        stmt = (
            select(ConversationRecord, msg_count.label("message_count"))
            .where(
                ConversationRecord.user_id == user_id,
                ConversationRecord.deleted_at.is_(None),
            )
            .order_by(ConversationRecord.updated_at.desc())
            .limit(limit)
        )
        async with store_session(self._db, "conversations.list") as db:
            result = await db.execute(stmt)
            rows = result.all()
        return [_to_conversation(record, count) for record, count in rows]

    async def soft_delete_conversation(self, user_id: str, conversation_id: str) -> bool:
        stmt = (
            update(ConversationRecord)
            .where(
                ConversationRecord.id == conversation_id,
                ConversationRecord.user_id == user_id,
                ConversationRecord.deleted_at.is_(None),
            )
            .values(deleted_at=func.now())
            .returning(ConversationRecord.id)
        )
        async with store_session(self._db, "conversations.soft_delete") as db:
            result = await db.execute(stmt)
            deleted = result.scalar_one_or_none() is not None
            await db.commit()

        if deleted:
            logger.info(
                "conversation_soft_deleted", user_id=user_id, conversation_id=conversation_id
            )
        return deleted

    async def append_message(self, conversation_id: str, role: Role, content: str) -> ChatMessage:
        """Persist one message with an atomically allocated seq.

        The seq comes from an UPDATE ... RETURNING on the conversation row, in
        the same transaction as the insert. The row lock serializes concurrent
        appends to one conversation, so seq order equals commit order.
        """
        if role not in ROLES:
            raise ValidationError(f"role must be 'user' or 'assistant' (got {role!r})")

        alloc = (
            update(ConversationRecord)
            .where(
                ConversationRecord.id == conversation_id,
                ConversationRecord.deleted_at.is_(None),
            )
            .values(next_seq=ConversationRecord.next_seq + 1, updated_at=func.now())
            .returning(ConversationRecord.next_seq - 1)
        )
        async with store_session(self._db, "conversations.append_message") as db:
            result = await db.execute(alloc)
            seq = result.scalar_one_or_none()
            if seq is None:
                raise NotFoundError(f"Conversation {conversation_id} not found")

            record = MessageRecord(
                conversation_id=conversation_id,
                seq=seq,
                role=role,
                content=content,
            )
            db.add(record)
            await db.commit()
            await db.refresh(record)

        logger.debug(
            "message_appended", conversation_id=conversation_id, seq=seq, role=role
        )
        return _to_message(record)

    async def get_messages(self, conversation_id: str) -> list[ChatMessage]:
        """All messages of a conversation, ordered by seq."""
        stmt = (
            select(MessageRecord)
            .where(MessageRecord.conversation_id == conversation_id)
            .order_by(MessageRecord.seq)
        )
        async with store_session(self._db, "conversations.get_messages") as db:
            result = await db.execute(stmt)
            records = result.scalars().all()
        return [_to_message(r) for r in records]

    async def get_history(self, conversation_id: str) -> list[dict[str, Any]]:
        """Ordered history in chat-completion format: [{role, content}, ...]."""
        messages = await self.get_messages(conversation_id)
        return [{"role": m.role, "content": m.content} for m in messages]

    async def touch(self, conversation_id: str) -> None:
        stmt = (
            update(ConversationRecord)
            .where(ConversationRecord.id == conversation_id)
            .values(updated_at=func.now())
        )
        async with store_session(self._db, "conversations.touch") as db:
            await db.execute(stmt)
            await db.commit()

    @staticmethod
    async def _get_live(
        db: AsyncSession, user_id: str, conversation_id: str
    ) -> ConversationRecord | None:
        stmt = select(ConversationRecord).where(
            ConversationRecord.id == conversation_id,
            ConversationRecord.user_id == user_id,
            ConversationRecord.deleted_at.is_(None),
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def _count_messages(db: AsyncSession, conversation_id: str) -> int:
        stmt = select(func.count(MessageRecord.id)).where(
            MessageRecord.conversation_id == conversation_id
        )
        result = await db.execute(stmt)
        return result.scalar_one()
