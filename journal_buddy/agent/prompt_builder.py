from __future__ import annotations

from typing import TYPE_CHECKING

from journal_buddy.journal.contracts import SessionState, SessionType

if TYPE_CHECKING:
    from journal_buddy.agent.context import ContextPayload

PERSONA_PROMPT = """\
You are a journal companion: a thoughtful presence who reads alongside the
writer, notices patterns, and engages when they want to think out loud.

## Your Core Purpose

You're not here to fix things or optimise anyone's life. You're here to help
the writer make sense of what's in their head: turn the noise into something
they can look at and understand. Sometimes that means asking a question.
Sometimes it means reflecting back what you hear.

## How You Show Up

### Active Listening Over Advice
Your default mode is curiosity, not solution-finding. Acknowledge what they
are actually saying, reflect back the emotional texture as well as the facts,
and ask questions that deepen exploration rather than steer toward answers.

### Pattern Recognition
You have access to their journal history. Use it. Reference specific entries,
notice when themes repeat, and track how their language changes over time.

### Match Their Energy
If they're venting, validate. If they're celebrating, celebrate with them.
If energy is low, keep responses short.

### Directness Over Comfort
Don't hedge with "it might be worth considering...". Just say the thing.

### One Thread at a Time
Pick the most interesting thread and pull it. Let them guide where it goes.

## Communication Style

- Dry humour welcome
- Concise by default; expand only if asked
- Specific over general: reference things they actually wrote
- One question at a time
- No therapy-speak ("processing", "holding space", etc.)"""

SECTION_SEPARATOR = "\n\n---\n\n"

_SESSION_DESCRIPTIONS: dict[SessionType, str] = {
    SessionType.freeform: "Open conversation. Follow the writer's lead.",
    SessionType.entry_reflection: (
        "Reflecting on a specific entry (shown under Current Entry Being Discussed). "
        "Stay anchored to it unless they move on."
    ),
    SessionType.weekly_review: (
        "Weekly review. Help them look back over the past week as a whole."
    ),
}


class PromptBuilder:
    """Assembles the companion system prompt.

    Layers (empty layers are omitted):
    1. Persona (always present)
    2. Session
    3. Recent Entries (Last N Days, the assembler window)
    4. Mood Pattern
    5. Recurring Themes
    6. Long-Term Context
    7. Current Entry Being Discussed (always last)

    Pure: output depends only on the payload and session state.
    """

    def build(self, payload: ContextPayload, session_state: SessionState) -> str:
        layers = [
            PERSONA_PROMPT,
            self._layer_session(session_state),
            self._layer_recent_entries(payload),
            self._layer_mood_pattern(payload),
            self._layer_recurring_themes(payload),
            self._layer_long_term(payload),
            self._layer_current_entry(payload),
        ]
        return SECTION_SEPARATOR.join(layer for layer in layers if layer)

    def _layer_session(self, state: SessionState) -> str:
        return f"## Session\n\n{_SESSION_DESCRIPTIONS[state.session_type]}"

    def _layer_recent_entries(self, payload: ContextPayload) -> str:
        if not payload.recent_entries:
            return ""
        blocks = []
        for e in payload.recent_entries:
            mood = e.mood.value if e.mood else "no mood logged"
            block = f"**{e.date}** ({mood})\n{e.content}"
            if e.themes:
                block += f"\nThemes: {', '.join(e.themes)}"
            blocks.append(block)
        heading = f"## Recent Entries (Last {payload.window_days} Days)"
        return heading + "\n\n" + "\n\n".join(blocks)

    def _layer_mood_pattern(self, payload: ContextPayload) -> str:
        if not payload.recent_entries:
            return ""
        return f"## Mood Pattern\n\n{payload.mood_trend.description}"

    def _layer_recurring_themes(self, payload: ContextPayload) -> str:
        if not payload.recurring_themes:
            return ""
        return f"## Recurring Themes\n\n{', '.join(payload.recurring_themes)}"

    def _layer_long_term(self, payload: ContextPayload) -> str:
        if not payload.long_term_summary:
            return ""
        return f"## Long-Term Context\n\n{payload.long_term_summary}"

    def _layer_current_entry(self, payload: ContextPayload) -> str:
        if not payload.current_entry:
            return ""
        return f"## Current Entry Being Discussed\n\n{payload.current_entry}"
