from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

import structlog
import tiktoken

if TYPE_CHECKING:
    from journal_buddy.config.settings import ContextSettings

logger = structlog.get_logger()

# Chat-format framing: each message carries a small header, each request a reply primer.
_MSG_OVERHEAD_TOKENS = 4
_REPLY_PRIMING_TOKENS = 3
_CHARS_PER_TOKEN = 4

TokenizerMode = Literal["exact", "estimate"]


def _encoding_for(model: str) -> tiktoken.Encoding | None:
    try:
        return tiktoken.encoding_for_model(model)
    except KeyError:
        logger.warning("tokenizer_fallback", model=model, mode="estimate")
        return None


class TokenCounter:
    """Counts prompt tokens for one model.

    Models tiktoken knows are counted exactly; anything else (local or
    non-OpenAI endpoints) is estimated at four characters per token.
    """

    def __init__(self, model: str) -> None:
        self._model = model
        self._encoding = _encoding_for(model)

    @property
    def tokenizer_mode(self) -> TokenizerMode:
        return "exact" if self._encoding is not None else "estimate"

    def count_text(self, text: str) -> int:
        if not text:
            return 0
        if self._encoding is None:
            return math.ceil(len(text) / _CHARS_PER_TOKEN)
        return len(self._encoding.encode(text))

    def count_messages(self, messages: Sequence[dict[str, Any]]) -> int:
        """Tokens for a chat request: framing plus role and content of every message."""
        return _REPLY_PRIMING_TOKENS + sum(
            _MSG_OVERHEAD_TOKENS
            + self.count_text(str(msg.get("role") or ""))
            + self.count_text(str(msg.get("content") or ""))
            for msg in messages
        )


@dataclass(frozen=True)
class BudgetStatus:
    status: Literal["ok", "over"]
    current_tokens: int
    usable_budget: int
    tokenizer_mode: TokenizerMode


class BudgetTracker:
    """Keeps a prompt (system + history) inside the model's usable input budget."""

    def __init__(self, settings: ContextSettings, model: str) -> None:
        self._counter = TokenCounter(model)
        self._usable_budget = (
            settings.context_limit
            - settings.reserved_output_tokens
            - settings.safety_margin_tokens
        )

    @property
    def counter(self) -> TokenCounter:
        return self._counter

    @property
    def usable_budget(self) -> int:
        return self._usable_budget

    def check(self, current_tokens: int) -> BudgetStatus:
        return BudgetStatus(
            status="over" if current_tokens > self._usable_budget else "ok",
            current_tokens=current_tokens,
            usable_budget=self._usable_budget,
            tokenizer_mode=self._counter.tokenizer_mode,
        )

    def count_prompt(self, system_prompt: str, history: Sequence[dict[str, Any]]) -> int:
        return self._counter.count_messages(
            [{"role": "system", "content": system_prompt}, *history]
        )

    def fit_history(
        self, system_prompt: str, history: Sequence[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Drop the oldest messages until the prompt fits.

        The newest message (the user turn being answered) is never dropped,
        even if the prompt is still over budget with it alone.
        """
        fitted = list(history)
        status = self.check(self.count_prompt(system_prompt, fitted))
        dropped = 0
        while status.status == "over" and len(fitted) > 1:
            fitted.pop(0)
            dropped += 1
            status = self.check(self.count_prompt(system_prompt, fitted))

        if dropped:
            logger.info(
                "history_trimmed",
                dropped=dropped,
                kept=len(fitted),
                tokens=status.current_tokens,
                usable_budget=status.usable_budget,
                tokenizer_mode=status.tokenizer_mode,
            )
        if status.status == "over":
            logger.warning(
                "prompt_over_budget",
                tokens=status.current_tokens,
                usable_budget=status.usable_budget,
            )
        return fitted
