"""Tests for CompanionService chat turns."""

from __future__ import annotations

import asyncio
from datetime import UTC, date, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from journal_buddy.agent.companion import CompanionService
from journal_buddy.agent.context import ContextPayload
from journal_buddy.agent.prompt_builder import PromptBuilder
from journal_buddy.agent.summary_generator import SummaryResult
from journal_buddy.agent.token_budget import BudgetTracker
from journal_buddy.config.settings import ContextSettings
from journal_buddy.infra.errors import (
    CompletionTimeoutError,
    ContextUnavailableError,
    NotFoundError,
    ValidationError,
)
from journal_buddy.journal.contracts import Conversation, PeriodType, SessionType

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


def _conversation(
    conv_id: str = "c1",
    *,
    session_type: SessionType = SessionType.freeform,
    entry_id: str | None = None,
) -> Conversation:
    return Conversation(
        id=conv_id,
        user_id="u1",
        session_type=session_type,
        created_at=NOW,
        updated_at=NOW,
        entry_id=entry_id,
    )


@pytest.fixture()
def conversations() -> MagicMock:
    history: list[dict[str, str]] = []
    manager = MagicMock()

    async def create(user_id, *, session_type, entry_id=None):
        return _conversation(session_type=session_type, entry_id=entry_id)

    async def append(conversation_id, role, content):
        history.append({"role": role, "content": content})
        return MagicMock(seq=len(history) - 1)

    manager.create_conversation = AsyncMock(side_effect=create)
    manager.get_conversation = AsyncMock(return_value=_conversation())
    manager.append_message = AsyncMock(side_effect=append)
    manager.get_history = AsyncMock(side_effect=lambda conv_id: list(history))
    manager.touch = AsyncMock()
    manager.history = history
    return manager


@pytest.fixture()
def assembler() -> MagicMock:
    mock = MagicMock()
    mock.assemble = AsyncMock(return_value=ContextPayload(long_term_summary="Known history."))
    return mock


@pytest.fixture()
def summary_generator() -> MagicMock:
    gen = MagicMock()
    gen.get_or_generate_summary = AsyncMock(return_value=SummaryResult(None, False))
    return gen


def _service(
    conversations,
    entry_store,
    assembler,
    completion,
    summary_generator=None,
    *,
    settings: ContextSettings | None = None,
) -> CompanionService:
    settings = settings or ContextSettings()
    return CompanionService(
        conversations,
        entry_store,
        assembler,
        PromptBuilder(),
        completion,
        BudgetTracker(settings, "local-journal-model"),
        settings,
        summary_generator=summary_generator,
    )


class TestSendMessage:
    @pytest.mark.asyncio()
    async def test_new_freeform_conversation(
        self, conversations, entry_store, assembler, completion
    ) -> None:
        service = _service(conversations, entry_store, assembler, completion)

        reply = await service.send_message("u1", "Rough week.", now=NOW)

        assert reply.conversation_id == "c1"
        assert reply.response == "A thoughtful reply."
        conversations.create_conversation.assert_awaited_once_with(
            "u1", session_type=SessionType.freeform, entry_id=None
        )
        assert conversations.history == [
            {"role": "user", "content": "Rough week."},
            {"role": "assistant", "content": "A thoughtful reply."},
        ]
        conversations.touch.assert_awaited_once_with("c1")

    @pytest.mark.asyncio()
    async def test_history_sent_includes_new_user_message(
        self, conversations, entry_store, assembler, completion
    ) -> None:
        conversations.history.extend(
            [{"role": "user", "content": "earlier"}, {"role": "assistant", "content": "reply"}]
        )
        service = _service(conversations, entry_store, assembler, completion)

        await service.send_message("u1", "and now?", conversation_id="c1", now=NOW)

        system_prompt, history = completion.complete.await_args.args
        assert system_prompt.startswith("You are a journal companion")
        assert history[-1] == {"role": "user", "content": "and now?"}
        assert [m["content"] for m in history] == ["earlier", "reply", "and now?"]

    @pytest.mark.asyncio()
    async def test_entry_scoped_conversation(
        self, conversations, entry_store, assembler, completion, make_entry
    ) -> None:
        entry_store.get_entry.return_value = make_entry("I quit today.", entry_id="e9")
        service = _service(conversations, entry_store, assembler, completion)

        await service.send_message("u1", "Was it right?", entry_id="e9", now=NOW)

        conversations.create_conversation.assert_awaited_once_with(
            "u1", session_type=SessionType.entry_reflection, entry_id="e9"
        )
        assembler.assemble.assert_awaited_once_with("u1", "I quit today.", now=NOW)

    @pytest.mark.asyncio()
    async def test_unknown_entry_raises_not_found(
        self, conversations, entry_store, assembler, completion
    ) -> None:
        service = _service(conversations, entry_store, assembler, completion)
        with pytest.raises(NotFoundError):
            await service.send_message("u1", "hi", entry_id="missing", now=NOW)
        conversations.create_conversation.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_unknown_conversation_raises_not_found(
        self, conversations, entry_store, assembler, completion
    ) -> None:
        conversations.get_conversation.side_effect = NotFoundError("nope")
        service = _service(conversations, entry_store, assembler, completion)
        with pytest.raises(NotFoundError):
            await service.send_message("u1", "hi", conversation_id="ghost", now=NOW)
        conversations.append_message.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_continued_conversation_survives_deleted_entry(
        self, conversations, entry_store, assembler, completion
    ) -> None:
        conversations.get_conversation.return_value = _conversation(
            session_type=SessionType.entry_reflection, entry_id="gone"
        )
        service = _service(conversations, entry_store, assembler, completion)

        reply = await service.send_message("u1", "still here?", conversation_id="c1", now=NOW)

        assert reply.response == "A thoughtful reply."
        assembler.assemble.assert_awaited_once_with("u1", None, now=NOW)
        conversations.create_conversation.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_continued_conversation_ignores_request_entry(
        self, conversations, entry_store, assembler, completion, make_entry
    ) -> None:
        entry_store.get_entry.return_value = make_entry("Unrelated entry.", entry_id="e5")
        service = _service(conversations, entry_store, assembler, completion)

        await service.send_message(
            "u1", "back again", conversation_id="c1", entry_id="e5", now=NOW
        )

        entry_store.get_entry.assert_not_awaited()
        assembler.assemble.assert_awaited_once_with("u1", None, now=NOW)
        system_prompt = completion.complete.await_args.args[0]
        assert "## Current Entry Being Discussed" not in system_prompt

    @pytest.mark.asyncio()
    async def test_blank_message_rejected(
        self, conversations, entry_store, assembler, completion
    ) -> None:
        service = _service(conversations, entry_store, assembler, completion)
        with pytest.raises(ValidationError):
            await service.send_message("u1", "   ", now=NOW)


class TestFailures:
    @pytest.mark.asyncio()
    async def test_timeout_persists_no_assistant_message(
        self, conversations, entry_store, assembler, completion
    ) -> None:
        completion.complete.side_effect = CompletionTimeoutError()
        service = _service(conversations, entry_store, assembler, completion)

        with pytest.raises(CompletionTimeoutError):
            await service.send_message("u1", "hello?", now=NOW)

        assert conversations.history == [{"role": "user", "content": "hello?"}]
        conversations.touch.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_context_unavailable_propagates(
        self, conversations, entry_store, assembler, completion
    ) -> None:
        assembler.assemble.side_effect = ContextUnavailableError("db down")
        service = _service(conversations, entry_store, assembler, completion)

        with pytest.raises(ContextUnavailableError):
            await service.send_message("u1", "hello?", now=NOW)
        completion.complete.assert_not_awaited()


class TestBackfill:
    @pytest.mark.asyncio()
    async def test_empty_long_term_schedules_previous_month(
        self, conversations, entry_store, assembler, completion, summary_generator
    ) -> None:
        assembler.assemble.return_value = ContextPayload()
        service = _service(conversations, entry_store, assembler, completion, summary_generator)

        await service.send_message("u1", "hi", now=NOW)
        await service.aclose()

        summary_generator.get_or_generate_summary.assert_awaited_once_with(
            "u1", date(2025, 2, 1), PeriodType.monthly
        )

    @pytest.mark.asyncio()
    async def test_backfill_failure_does_not_fail_turn(
        self, conversations, entry_store, assembler, completion, summary_generator
    ) -> None:
        assembler.assemble.return_value = ContextPayload()
        summary_generator.get_or_generate_summary.side_effect = CompletionTimeoutError()
        service = _service(conversations, entry_store, assembler, completion, summary_generator)

        reply = await service.send_message("u1", "hi", now=NOW)
        await service.aclose()

        assert reply.response == "A thoughtful reply."

    @pytest.mark.asyncio()
    async def test_no_backfill_when_summary_present(
        self, conversations, entry_store, assembler, completion, summary_generator
    ) -> None:
        service = _service(conversations, entry_store, assembler, completion, summary_generator)
        await service.send_message("u1", "hi", now=NOW)
        await asyncio.sleep(0)
        summary_generator.get_or_generate_summary.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_backfill_disabled_by_setting(
        self, conversations, entry_store, assembler, completion, summary_generator
    ) -> None:
        assembler.assemble.return_value = ContextPayload()
        service = _service(
            conversations,
            entry_store,
            assembler,
            completion,
            summary_generator,
            settings=ContextSettings(backfill_monthly_summary=False),
        )
        await service.send_message("u1", "hi", now=NOW)
        await service.aclose()
        summary_generator.get_or_generate_summary.assert_not_awaited()
