"""Companion chat turn: persist → assemble → prompt → budget → complete → persist."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from journal_buddy.agent.summary_generator import month_start
from journal_buddy.infra.errors import NotFoundError, ValidationError
from journal_buddy.journal.contracts import PeriodType, SessionState, SessionType

if TYPE_CHECKING:
    from journal_buddy.agent.completion import CompletionService
    from journal_buddy.agent.context import ContextAssembler
    from journal_buddy.agent.prompt_builder import PromptBuilder
    from journal_buddy.agent.summary_generator import SummaryGenerator
    from journal_buddy.agent.token_budget import BudgetTracker
    from journal_buddy.config.settings import CompletionSettings, ContextSettings
    from journal_buddy.journal.entry_store import EntryStore
    from journal_buddy.session.manager import ConversationManager

logger = structlog.get_logger()


@dataclass(frozen=True)
class ChatReply:
    conversation_id: str
    response: str

    def to_dict(self) -> dict[str, str]:
        return {"conversation_id": self.conversation_id, "response": self.response}


class CompanionService:
    """Runs one chat turn against the journal companion.

    The user message is persisted before anything can fail, so history
    always shows what was sent. The assistant message is persisted only
    after a successful completion.
    """

    def __init__(
        self,
        conversations: ConversationManager,
        entry_store: EntryStore,
        context_assembler: ContextAssembler,
        prompt_builder: PromptBuilder,
        completion: CompletionService,
        budget_tracker: BudgetTracker,
        settings: ContextSettings,
        completion_settings: CompletionSettings | None = None,
        summary_generator: SummaryGenerator | None = None,
    ) -> None:
        self._conversations = conversations
        self._entries = entry_store
        self._assembler = context_assembler
        self._prompts = prompt_builder
        self._completion = completion
        self._budget = budget_tracker
        self._settings = settings
        self._completion_settings = completion_settings
        self._summaries = summary_generator
        self._background: set[asyncio.Task[None]] = set()

    async def send_message(
        self,
        user_id: str,
        content: str,
        *,
        conversation_id: str | None = None,
        entry_id: str | None = None,
        session_type: SessionType | None = None,
        now: datetime | None = None,
    ) -> ChatReply:
        if not content or not content.strip():
            raise ValidationError("Message content must be a non-empty string")

        # 1. Resolve conversation (and the entry it is scoped to)
        current_entry_text: str | None = None
        if conversation_id is not None:
            # A continued conversation keeps its own entry; a deleted entry drops the layer
            conversation = await self._conversations.get_conversation(user_id, conversation_id)
            entry_id = conversation.entry_id
            session_type = conversation.session_type
            if entry_id is not None:
                entry = await self._entries.get_entry(user_id, entry_id)
                if entry is None:
                    logger.info(
                        "conversation_entry_missing",
                        conversation_id=conversation_id,
                        entry_id=entry_id,
                    )
                else:
                    current_entry_text = entry.content
        else:
            if entry_id is not None:
                entry = await self._entries.get_entry(user_id, entry_id)
                if entry is None:
                    raise NotFoundError(f"Entry {entry_id} not found")
                current_entry_text = entry.content
                session_type = SessionType.entry_reflection
            else:
                session_type = SessionType(session_type or SessionType.freeform)
            conversation = await self._conversations.create_conversation(
                user_id, session_type=session_type, entry_id=entry_id
            )
        conv_id = conversation.id

        # 2. Persist the user message first
        await self._conversations.append_message(conv_id, "user", content)

        # 3. Full ordered history, including the message just written
        history = await self._conversations.get_history(conv_id)

        # 4. Context + prompt
        payload = await self._assembler.assemble(user_id, current_entry_text, now=now)
        state = SessionState(
            session_type=session_type, conversation_id=conv_id, entry_id=entry_id
        )
        system_prompt = self._prompts.build(payload, state)

        # 5. Budget
        history = self._budget.fit_history(system_prompt, history)

        # 6. Complete (raises on failure; no assistant message is stored)
        max_tokens = (
            self._completion_settings.chat_max_tokens if self._completion_settings else None
        )
        response = await self._completion.complete(
            system_prompt, history, max_tokens=max_tokens
        )

        # 7. Persist reply
        await self._conversations.append_message(conv_id, "assistant", response)
        await self._conversations.touch(conv_id)
        logger.info(
            "chat_turn_completed",
            user_id=user_id,
            conversation_id=conv_id,
            session_type=session_type.value,
            history_messages=len(history),
        )

        # 8. Long-term tier empty: backfill last month's summary without waiting
        if not payload.long_term_summary and self._settings.backfill_monthly_summary:
            self._schedule_backfill(user_id, now or datetime.now(UTC))

        return ChatReply(conversation_id=conv_id, response=response)

    def _schedule_backfill(self, user_id: str, now: datetime) -> None:
        if self._summaries is None:
            return
        previous_month = month_start(month_start(now.date()) - timedelta(days=1))
        task = asyncio.create_task(self._backfill(user_id, previous_month))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _backfill(self, user_id: str, period_start: date) -> None:
        try:
            result = await self._summaries.get_or_generate_summary(  # type: ignore[union-attr]
                user_id, period_start, PeriodType.monthly
            )
        except Exception:
            logger.exception(
                "summary_backfill_failed",
                user_id=user_id,
                period_start=period_start.isoformat(),
            )
            return
        logger.info(
            "summary_backfill_done",
            user_id=user_id,
            period_start=period_start.isoformat(),
            generated=result.generated,
        )

    async def aclose(self) -> None:
        """Wait for in-flight backfill tasks (called on shutdown)."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
