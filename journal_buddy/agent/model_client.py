"""Chat-completion client for any OpenAI-compatible endpoint."""

from __future__ import annotations

import asyncio
import random
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    RateLimitError,
)

from journal_buddy.infra.errors import CompletionError

logger = structlog.get_logger()

T = TypeVar("T")

# Transient provider failures worth another attempt
TRANSIENT_ERRORS = (APIConnectionError, APITimeoutError, RateLimitError)


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Exponential delay for the given 0-based attempt, plus up to 0.5s jitter."""
    return base_delay * (2**attempt) + random.uniform(0, 0.5)


class ModelClient(ABC):
    """One chat completion in, one non-empty reply out."""

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str: ...


class OpenAICompatModelClient(ModelClient):
    """ModelClient over the OpenAI SDK.

    Transient errors are retried with exponential backoff up to
    ``max_retries`` times. Other API errors, an empty choice list and blank
    content all surface as CompletionError.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        *,
        max_retries: int = 3,
        base_delay: float = 1.0,
    ) -> None:
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        self._max_retries = max_retries
        self._base_delay = base_delay

    async def _with_backoff(self, call: Callable[[], Awaitable[T]], *, model: str) -> T:
        attempts = self._max_retries + 1
        for attempt in range(attempts):
            try:
                return await call()
            except TRANSIENT_ERRORS as e:
                if attempt + 1 == attempts:
                    raise CompletionError(
                        f"Completion failed after {attempts} attempts: {e}"
                    ) from e
                delay = backoff_delay(attempt, self._base_delay)
                logger.warning(
                    "completion_retry",
                    model=model,
                    attempt=attempt + 1,
                    max_retries=self._max_retries,
                    delay=round(delay, 2),
                    error=str(e),
                )
                await asyncio.sleep(delay)
            except APIStatusError as e:
                raise CompletionError(
                    f"Completion API error: {e.status_code} {e.message}"
                ) from e
        raise CompletionError("Retry loop exhausted")  # pragma: no cover

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        options = {
            key: value
            for key, value in (("temperature", temperature), ("max_tokens", max_tokens))
            if value is not None
        }
        logger.debug("chat_request", model=model, message_count=len(messages), **options)

        response = await self._with_backoff(
            lambda: self._client.chat.completions.create(
                model=model, messages=messages, **options
            ),
            model=model,
        )
        if not response.choices:
            raise CompletionError("Empty choices from provider")
        content = response.choices[0].message.content
        if not content or not content.strip():
            raise CompletionError("Empty content from provider")
        logger.debug("chat_response", model=model, chars=len(content))
        return content
