"""Completion service boundary: one bounded call per request."""

from __future__ import annotations

import asyncio
import json
import re
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import structlog

from journal_buddy.infra.errors import (
    CompletionError,
    CompletionTimeoutError,
    ValidationError,
)

if TYPE_CHECKING:
    from journal_buddy.agent.model_client import ModelClient
    from journal_buddy.config.settings import CompletionSettings

logger = structlog.get_logger()

_HISTORY_ROLES = frozenset({"user", "assistant"})

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


def parse_json_reply(raw: str) -> Any:
    """Decode a JSON reply, tolerating a Markdown code fence. None when malformed."""
    try:
        return json.loads(_FENCE_RE.sub("", raw.strip()))
    except json.JSONDecodeError:
        return None


class CompletionService:
    """Wraps a ModelClient with a timeout and input validation.

    Every failure surfaces as CompletionError (CompletionTimeoutError on expiry).
    Callers decide whether a failure is fatal; this layer never retries on timeout.
    """

    def __init__(
        self, model_client: ModelClient, model: str, settings: CompletionSettings
    ) -> None:
        self._client = model_client
        self._model = model
        self._settings = settings

    async def complete(
        self,
        system_prompt: str,
        history: Sequence[dict[str, Any]],
        *,
        max_tokens: int | None = None,
        timeout_s: float | None = None,
    ) -> str:
        for i, msg in enumerate(history):
            if msg.get("role") not in _HISTORY_ROLES:
                raise ValidationError(
                    f"history[{i}].role must be 'user' or 'assistant' (got {msg.get('role')!r})"
                )

        messages = [{"role": "system", "content": system_prompt}]
        messages.extend({"role": m["role"], "content": m["content"]} for m in history)
        timeout = timeout_s if timeout_s is not None else self._settings.timeout_s

        try:
            return await asyncio.wait_for(
                self._client.chat(
                    messages,
                    self._model,
                    temperature=self._settings.temperature,
                    max_tokens=max_tokens or self._settings.chat_max_tokens,
                ),
                timeout=timeout,
            )
        except TimeoutError as e:
            logger.warning("completion_timeout", model=self._model, timeout_s=timeout)
            raise CompletionTimeoutError(
                f"Completion timed out after {timeout}s"
            ) from e
        except CompletionError:
            raise
        except Exception as e:
            logger.exception("completion_failed", model=self._model)
            raise CompletionError(f"Completion failed: {e}") from e
