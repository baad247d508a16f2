"""HTTP routes. Thin transport: parse, delegate to services, serialize."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Header, Query, Request, Response, status

from journal_buddy.gateway.protocol import (
    ChatRequest,
    CreateEntryRequest,
    ReflectRequest,
    UpdateEntryRequest,
)
from journal_buddy.infra.errors import NotFoundError
from journal_buddy.journal.contracts import EntryFilters, Mood

entries_router = APIRouter(prefix="/api/entries", tags=["entries"])
chat_router = APIRouter(prefix="/api/chat", tags=["chat"])
insights_router = APIRouter(prefix="/api", tags=["insights"])


def _user_id(request: Request, x_user_id: str | None) -> str:
    # No auth: the header identifies the user, with a configured fallback
    return x_user_id or request.app.state.settings.gateway.default_user_id


UserHeader = Annotated[str | None, Header(alias="X-User-Id")]


# ── Entries ──


@entries_router.get("")
async def list_entries(
    request: Request,
    x_user_id: UserHeader = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
    mood: Mood | None = None,
    tag: str | None = None,
    start_date: Annotated[datetime | None, Query(alias="startDate")] = None,
    end_date: Annotated[datetime | None, Query(alias="endDate")] = None,
) -> dict[str, Any]:
    filters = EntryFilters(
        since=start_date, until=end_date, mood=mood, tag=tag, limit=limit, offset=offset
    )
    entries = await request.app.state.journal_service.list_entries(
        _user_id(request, x_user_id), filters
    )
    return {"entries": [e.to_dict() for e in entries], "count": len(entries)}


@entries_router.post("", status_code=status.HTTP_201_CREATED)
async def create_entry(
    body: CreateEntryRequest, request: Request, x_user_id: UserHeader = None
) -> dict[str, Any]:
    entry = await request.app.state.journal_service.create_entry(
        _user_id(request, x_user_id),
        body.content,
        mood=body.mood,
        energy=body.energy,
        tags=body.tags,
        generate_reflection=body.generate_reflection,
        style=body.style,
    )
    return entry.to_dict()


@entries_router.get("/{entry_id}")
async def get_entry(
    entry_id: str, request: Request, x_user_id: UserHeader = None
) -> dict[str, Any]:
    entry = await request.app.state.journal_service.get_entry(
        _user_id(request, x_user_id), entry_id
    )
    return entry.to_dict()


@entries_router.patch("/{entry_id}")
async def update_entry(
    entry_id: str, body: UpdateEntryRequest, request: Request, x_user_id: UserHeader = None
) -> dict[str, Any]:
    entry = await request.app.state.journal_service.update_entry(
        _user_id(request, x_user_id), entry_id, body.model_dump(exclude_unset=True)
    )
    return entry.to_dict()


@entries_router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_entry(entry_id: str, request: Request, x_user_id: UserHeader = None) -> Response:
    await request.app.state.journal_service.delete_entry(_user_id(request, x_user_id), entry_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@entries_router.post("/{entry_id}/reflect")
async def reflect_on_entry(
    entry_id: str,
    request: Request,
    body: ReflectRequest | None = None,
    x_user_id: UserHeader = None,
) -> dict[str, Any]:
    style = body.style if body is not None else ReflectRequest().style
    entry = await request.app.state.journal_service.reflect(
        _user_id(request, x_user_id), entry_id, style
    )
    return {"reflection": entry.reflection, "entry": entry.to_dict()}


# ── Chat ──


@chat_router.post("")
async def send_message(
    body: ChatRequest, request: Request, x_user_id: UserHeader = None
) -> dict[str, Any]:
    reply = await request.app.state.companion.send_message(
        _user_id(request, x_user_id),
        body.message,
        conversation_id=body.conversation_id,
        entry_id=body.entry_id,
        session_type=body.session_type,
    )
    return reply.to_dict()


@chat_router.get("/conversations")
async def list_conversations(
    request: Request,
    x_user_id: UserHeader = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> dict[str, Any]:
    conversations = await request.app.state.conversation_manager.list_conversations(
        _user_id(request, x_user_id), limit=limit
    )
    return {
        "conversations": [c.to_dict() for c in conversations],
        "count": len(conversations),
    }


@chat_router.get("/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: str, request: Request, x_user_id: UserHeader = None
) -> dict[str, Any]:
    manager = request.app.state.conversation_manager
    conversation = await manager.get_conversation(_user_id(request, x_user_id), conversation_id)
    messages = await manager.get_messages(conversation_id)
    return {**conversation.to_dict(), "messages": [m.to_dict() for m in messages]}


@chat_router.delete(
    "/conversations/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def delete_conversation(
    conversation_id: str, request: Request, x_user_id: UserHeader = None
) -> Response:
    deleted = await request.app.state.conversation_manager.soft_delete_conversation(
        _user_id(request, x_user_id), conversation_id
    )
    if not deleted:
        raise NotFoundError(f"Conversation {conversation_id} not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Insights & context ──


@insights_router.get("/insights")
async def get_insights(
    request: Request, x_user_id: UserHeader = None, period: str = "week"
) -> dict[str, Any]:
    result = await request.app.state.insights_service.get_insights(
        _user_id(request, x_user_id), period
    )
    return result.to_dict()


@insights_router.get("/insights/summary")
async def get_summary(
    request: Request, x_user_id: UserHeader = None, period: str = "week"
) -> dict[str, Any]:
    result = await request.app.state.insights_service.get_period_summary(
        _user_id(request, x_user_id), period
    )
    if result.summary is None:
        return {"summary": None, "generated": False, "message": "No entries for this period"}
    return {**result.summary.to_dict(), "generated": result.generated}


@insights_router.get("/insights/patterns")
async def get_patterns(request: Request, x_user_id: UserHeader = None) -> dict[str, Any]:
    report = await request.app.state.insights_service.detect_patterns(
        _user_id(request, x_user_id)
    )
    if report is None:
        return {"patterns": None, "message": "Need more entries to detect patterns"}
    return {"patterns": report.to_dict()}


@insights_router.get("/context")
async def get_context(request: Request, x_user_id: UserHeader = None) -> dict[str, Any]:
    payload = await request.app.state.context_assembler.assemble(_user_id(request, x_user_id))
    return payload.to_dict()
