"""Pattern detection over a window of entries (single completion call, JSON out)."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC
from typing import TYPE_CHECKING, Any

import structlog

from journal_buddy.agent.completion import parse_json_reply
from journal_buddy.journal.contracts import Entry

if TYPE_CHECKING:
    from journal_buddy.agent.completion import CompletionService
    from journal_buddy.config.settings import CompletionSettings

logger = structlog.get_logger()

UNDETECTED = "Unable to detect patterns"

PATTERN_SYSTEM_PROMPT = (
    "You are analyzing journal entries for patterns. Return only valid JSON, no explanation."
)

_PATTERN_PROMPT = """\
Analyze these journal entries and extract patterns.

## Entries
{entries}

## Extract:

1. **Recurring themes**: topics or concerns that appear multiple times
   Format: {{"theme": string, "frequency": number, "sentiment": "positive" | "negative" | "neutral"}}

2. **Emotional patterns**: how mood tends to shift (e.g. "starts week strong, dips mid-week")

3. **Unresolved threads**: things mentioned but not fully explored or resolved

4. **Contradictions**: places where stated beliefs or values conflict with actions

5. **Growth indicators**: signs of progress, insight, or positive change

Return as JSON only, no explanation:
{{
  "themes": [...],
  "emotionalPattern": "...",
  "unresolvedThreads": [...],
  "contradictions": [...],
  "growthIndicators": [...]
}}"""

_SENTIMENTS = frozenset({"positive", "negative", "neutral"})


@dataclass(frozen=True)
class ThemePattern:
    theme: str
    frequency: int
    sentiment: str


@dataclass(frozen=True)
class PatternReport:
    themes: list[ThemePattern] = field(default_factory=list)
    emotional_pattern: str = UNDETECTED
    unresolved_threads: list[str] = field(default_factory=list)
    contradictions: list[str] = field(default_factory=list)
    growth_indicators: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "themes": [
                {"theme": t.theme, "frequency": t.frequency, "sentiment": t.sentiment}
                for t in self.themes
            ],
            "emotionalPattern": self.emotional_pattern,
            "unresolvedThreads": list(self.unresolved_threads),
            "contradictions": list(self.contradictions),
            "growthIndicators": list(self.growth_indicators),
        }


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str) and v.strip()]


def _theme(item: Any) -> ThemePattern | None:
    if not isinstance(item, dict) or not isinstance(item.get("theme"), str):
        return None
    frequency = item.get("frequency", 0)
    if isinstance(frequency, bool) or not isinstance(frequency, int | float):
        frequency = 0
    sentiment = item.get("sentiment")
    return ThemePattern(
        theme=item["theme"],
        frequency=int(frequency),
        sentiment=sentiment if sentiment in _SENTIMENTS else "neutral",
    )


def parse_pattern_report(raw: str) -> PatternReport:
    """Parse model output. Malformed JSON yields the empty report."""
    data = parse_json_reply(raw)
    if not isinstance(data, dict):
        return PatternReport()

    emotional = data.get("emotionalPattern")
    return PatternReport(
        themes=[t for t in map(_theme, data.get("themes") or []) if t is not None],
        emotional_pattern=emotional if isinstance(emotional, str) and emotional else UNDETECTED,
        unresolved_threads=_str_list(data.get("unresolvedThreads")),
        contradictions=_str_list(data.get("contradictions")),
        growth_indicators=_str_list(data.get("growthIndicators")),
    )


def format_pattern_entries(entries: Sequence[Entry]) -> str:
    blocks = [
        f"**{e.created_at.astimezone(UTC).date().isoformat()}** "
        f"({e.mood.value if e.mood else 'no mood'}) [{', '.join(e.tags)}]\n{e.content}"
        for e in entries
    ]
    return "\n\n---\n\n".join(blocks)


class PatternDetector:
    def __init__(self, completion: CompletionService, settings: CompletionSettings) -> None:
        self._completion = completion
        self._settings = settings

    async def detect(self, entries: Sequence[Entry]) -> PatternReport:
        prompt = _PATTERN_PROMPT.format(entries=format_pattern_entries(entries))
        raw = await self._completion.complete(
            PATTERN_SYSTEM_PROMPT,
            [{"role": "user", "content": prompt}],
            max_tokens=self._settings.patterns_max_tokens,
        )
        report = parse_pattern_report(raw)
        if report.emotional_pattern == UNDETECTED and not report.themes:
            logger.warning("patterns_unparseable", entries=len(entries), raw=raw[:200])
        else:
            logger.info("patterns_detected", entries=len(entries), themes=len(report.themes))
        return report
