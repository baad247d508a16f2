from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from journal_buddy.agent.companion import CompanionService
from journal_buddy.agent.completion import CompletionService
from journal_buddy.agent.context import ContextAssembler
from journal_buddy.agent.model_client import OpenAICompatModelClient
from journal_buddy.agent.prompt_builder import PromptBuilder
from journal_buddy.agent.reflection import ReflectionGenerator
from journal_buddy.agent.summary_generator import SummaryGenerator
from journal_buddy.agent.token_budget import BudgetTracker
from journal_buddy.config.settings import GatewaySettings, get_settings
from journal_buddy.gateway.protocol import ErrorResponse
from journal_buddy.gateway.routes import chat_router, entries_router, insights_router
from journal_buddy.infra.errors import JournalBuddyError
from journal_buddy.infra.logging import setup_logging
from journal_buddy.insights.patterns import PatternDetector
from journal_buddy.insights.service import InsightsService
from journal_buddy.journal.entry_store import EntryStore
from journal_buddy.journal.service import JournalService
from journal_buddy.journal.summary_store import SummaryStore
from journal_buddy.session.database import create_db_engine, ensure_schema, make_session_factory
from journal_buddy.session.manager import ConversationManager

logger = structlog.get_logger()

ERROR_STATUS: dict[str, int] = {
    "VALIDATION_ERROR": 422,
    "NOT_FOUND": 404,
    "STORE_UNAVAILABLE": 503,
    "CONTEXT_UNAVAILABLE": 503,
    "COMPLETION_ERROR": 502,
    "COMPLETION_TIMEOUT": 504,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize shared state on startup."""
    settings = get_settings()
    setup_logging(json_output=settings.log_json, log_level=settings.log_level)

    # DB is mandatory; startup fails if DB/schema unavailable.
    engine = await create_db_engine(settings.database)
    await ensure_schema(engine, settings.database.schema_)
    db_session_factory = make_session_factory(engine)
    logger.info("db_connected")

    entry_store = EntryStore(db_session_factory)
    summary_store = SummaryStore(db_session_factory)
    conversations = ConversationManager(db_session_factory)

    model_client = OpenAICompatModelClient(
        api_key=settings.openai.api_key,
        base_url=settings.openai.base_url,
        max_retries=settings.completion.max_retries,
    )
    completion = CompletionService(model_client, settings.openai.model, settings.completion)

    assembler = ContextAssembler(
        entry_store, summary_store, settings.context, settings.insights
    )
    summary_generator = SummaryGenerator(
        entry_store, summary_store, completion, settings.completion
    )
    reflections = ReflectionGenerator(
        entry_store, completion, settings.completion, settings.insights
    )
    companion = CompanionService(
        conversations,
        entry_store,
        assembler,
        PromptBuilder(),
        completion,
        BudgetTracker(settings.context, settings.openai.model),
        settings.context,
        completion_settings=settings.completion,
        summary_generator=summary_generator,
    )

    app.state.settings = settings
    app.state.conversation_manager = conversations
    app.state.context_assembler = assembler
    app.state.journal_service = JournalService(entry_store, reflections)
    app.state.companion = companion
    app.state.insights_service = InsightsService(
        entry_store,
        summary_generator,
        PatternDetector(completion, settings.completion),
        settings.insights,
    )
    logger.info(
        "gateway_started",
        host=settings.gateway.host,
        port=settings.gateway.port,
        model=settings.openai.model,
    )

    yield

    # Cleanup
    await companion.aclose()
    await engine.dispose()
    logger.info("db_engine_disposed")


def create_app(gateway_settings: GatewaySettings | None = None) -> FastAPI:
    gateway_settings = gateway_settings or GatewaySettings()
    app = FastAPI(title="JournalBuddy", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=gateway_settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(JournalBuddyError)
    async def _journal_buddy_error(request: Request, exc: JournalBuddyError) -> JSONResponse:
        status_code = ERROR_STATUS.get(exc.code, 500)
        if status_code >= 500:
            logger.warning("request_error", code=exc.code, error=str(exc), path=request.url.path)
        else:
            logger.info("request_rejected", code=exc.code, error=str(exc), path=request.url.path)
        body = ErrorResponse(code=exc.code, message=str(exc))
        return JSONResponse(status_code=status_code, content=body.model_dump())

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}

    app.include_router(entries_router)
    app.include_router(chat_router)
    app.include_router(insights_router)
    return app


app = create_app()
