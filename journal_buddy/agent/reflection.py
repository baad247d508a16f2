"""Per-entry reflection and theme extraction."""

from __future__ import annotations

from datetime import UTC
from typing import TYPE_CHECKING

import structlog

from journal_buddy.agent.completion import parse_json_reply
from journal_buddy.journal.contracts import Entry, EntryFilters, ReflectionStyle

if TYPE_CHECKING:
    from journal_buddy.agent.completion import CompletionService
    from journal_buddy.config.settings import CompletionSettings, InsightsSettings
    from journal_buddy.journal.entry_store import EntryStore

logger = structlog.get_logger()

MAX_THEMES = 5
CONTEXT_SNIPPET_CHARS = 200

REFLECTION_SYSTEM_PROMPT = (
    "You are a journal companion. Generate brief, thoughtful reflections on the "
    "writer's entries. Be direct, avoid therapy-speak, and don't be preachy."
)

STYLE_INSTRUCTIONS: dict[ReflectionStyle, str] = {
    ReflectionStyle.brief: (
        "Keep it to 2-3 sentences maximum. One observation or one question, not both."
    ),
    ReflectionStyle.deep: (
        "You can be more thorough: 3-4 sentences exploring patterns or tensions."
    ),
    ReflectionStyle.questioning: (
        "Focus on asking a single, thought-provoking question based on what you noticed."
    ),
}

_REFLECTION_PROMPT = """\
Generate a reflection on this journal entry.

## Guidelines
- Acknowledge the core emotion or experience first
- Notice one interesting thing (a pattern, tension, contradiction, or insight)
- {style_instruction}
- Don't be preachy or prescriptive
- Match the writer's tone: if they're being dry, you can be dry

## Entry
{content}

## Mood
{mood}

## Recent Context
{recent_context}"""

THEME_SYSTEM_PROMPT = (
    "You label journal entries with themes. Return only a JSON array of strings."
)

_THEME_PROMPT = """\
List up to {max_themes} short themes (1-3 words each, lowercase) that this journal
entry is about, most relevant first. Return ONLY a JSON array, e.g. ["work", "sleep"].

## Entry
{content}"""


def parse_themes(raw: str) -> tuple[str, ...]:
    """Parse a JSON array of theme labels. Returns () on malformed output."""
    data = parse_json_reply(raw)
    if not isinstance(data, list):
        return ()
    themes: dict[str, None] = {}
    for item in data:
        if isinstance(item, str) and item.strip():
            themes.setdefault(item.strip().lower(), None)
    return tuple(themes)[:MAX_THEMES]


class ReflectionGenerator:
    def __init__(
        self,
        entry_store: EntryStore,
        completion: CompletionService,
        settings: CompletionSettings,
        insights_settings: InsightsSettings | None = None,
    ) -> None:
        self._entries = entry_store
        self._completion = completion
        self._settings = settings
        self._context_entries = (
            insights_settings.reflection_context_entries if insights_settings else 5
        )

    async def generate_reflection(
        self,
        user_id: str,
        entry: Entry,
        style: ReflectionStyle = ReflectionStyle.brief,
    ) -> str:
        style = ReflectionStyle(style)
        recent = await self._entries.list_entries(
            user_id, EntryFilters(limit=self._context_entries + 1)
        )
        others = [e for e in recent if e.id != entry.id][: self._context_entries]
        recent_context = "\n".join(
            f"{e.created_at.astimezone(UTC).date().isoformat()} "
            f"({e.mood.value if e.mood else 'no mood'}): "
            f"{e.content[:CONTEXT_SNIPPET_CHARS]}..."
            for e in others
        )

        prompt = _REFLECTION_PROMPT.format(
            style_instruction=STYLE_INSTRUCTIONS[style],
            content=entry.content,
            mood=entry.mood.value if entry.mood else "Not specified",
            recent_context=recent_context or "No recent entries",
        )
        text = await self._completion.complete(
            REFLECTION_SYSTEM_PROMPT,
            [{"role": "user", "content": prompt}],
            max_tokens=self._settings.reflection_max_tokens,
        )
        logger.info(
            "reflection_generated", user_id=user_id, entry_id=entry.id, style=style.value
        )
        return text.strip()

    async def extract_themes(self, entry: Entry) -> tuple[str, ...]:
        prompt = _THEME_PROMPT.format(max_themes=MAX_THEMES, content=entry.content)
        raw = await self._completion.complete(
            THEME_SYSTEM_PROMPT,
            [{"role": "user", "content": prompt}],
            max_tokens=self._settings.theme_max_tokens,
        )
        themes = parse_themes(raw)
        if not themes:
            logger.warning("themes_unparseable", entry_id=entry.id, raw=raw[:200])
        return themes
