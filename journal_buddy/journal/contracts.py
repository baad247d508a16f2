"""Journal-side shared contract types.

Stores map ORM records into these frozen DTOs at the boundary; everything
above the store layer (aggregator, context assembly, prompts) sees only these.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from typing import Any

from journal_buddy.infra.errors import ValidationError

MAX_TAGS = 20
MAX_TAG_LENGTH = 50


class Mood(StrEnum):
    good = "good"
    okay = "okay"
    rough = "rough"


class PeriodType(StrEnum):
    weekly = "weekly"
    monthly = "monthly"


class SessionType(StrEnum):
    freeform = "freeform"
    entry_reflection = "entry_reflection"
    weekly_review = "weekly_review"


class ReflectionStyle(StrEnum):
    brief = "brief"
    deep = "deep"
    questioning = "questioning"


@dataclass(frozen=True)
class Entry:
    id: str
    user_id: str
    content: str
    created_at: datetime
    updated_at: datetime
    mood: Mood | None = None
    energy: int | None = None
    tags: tuple[str, ...] = ()
    reflection: str | None = None
    themes: tuple[str, ...] = ()
    word_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "mood": self.mood.value if self.mood else None,
            "energy": self.energy,
            "tags": list(self.tags),
            "reflection": self.reflection,
            "themes": list(self.themes),
            "word_count": self.word_count,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class Summary:
    user_id: str
    period_start: date
    period_end: date
    period_type: PeriodType
    summary: str
    entry_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "period_type": self.period_type.value,
            "summary": self.summary,
            "entry_count": self.entry_count,
        }


@dataclass(frozen=True)
class EntryFilters:
    """Filtered retrieval for list_entries. `until` is exclusive."""

    since: datetime | None = None
    until: datetime | None = None
    mood: Mood | None = None
    tag: str | None = None
    limit: int = 20
    offset: int = 0


@dataclass(frozen=True)
class Conversation:
    id: str
    user_id: str
    session_type: SessionType
    created_at: datetime
    updated_at: datetime
    entry_id: str | None = None
    message_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "entry_id": self.entry_id,
            "session_type": self.session_type.value,
            "message_count": self.message_count,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class ChatMessage:
    id: str
    conversation_id: str
    seq: int
    role: str
    content: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class SessionState:
    """Explicit per-turn session state handed to the prompt builder."""

    session_type: SessionType = SessionType.freeform
    conversation_id: str | None = None
    entry_id: str | None = None


# ---------------------------------------------------------------------------
# Validation helpers (fail fast before anything reaches a store)
# ---------------------------------------------------------------------------


def validate_content(content: str) -> str:
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("Entry content must be a non-empty string")
    return content


def coerce_mood(value: Mood | str | None) -> Mood | None:
    if value is None:
        return None
    try:
        return Mood(value)
    except ValueError as e:
        allowed = ", ".join(m.value for m in Mood)
        raise ValidationError(f"mood must be one of {allowed} (got {value!r})") from e


def validate_energy(value: int | str | None) -> int | None:
    if value is None:
        return None
    # Accept the legacy string form ("1".."5") the client sends
    if isinstance(value, str) and value.isdigit():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int) or not (1 <= value <= 5):
        raise ValidationError(f"energy must be an integer from 1 to 5 (got {value!r})")
    return value


def normalize_tags(tags: Iterable[str] | None) -> tuple[str, ...]:
    """Strip, drop empties, dedupe in first-seen order."""
    if tags is None:
        return ()
    seen: dict[str, None] = {}
    for tag in tags:
        if not isinstance(tag, str):
            raise ValidationError(f"tags must be strings (got {type(tag).__name__})")
        cleaned = tag.strip()
        if not cleaned:
            continue
        if len(cleaned) > MAX_TAG_LENGTH:
            raise ValidationError(
                f"tag {cleaned[:20]!r}... exceeds {MAX_TAG_LENGTH} characters"
            )
        seen.setdefault(cleaned, None)
    if len(seen) > MAX_TAGS:
        raise ValidationError(f"at most {MAX_TAGS} tags allowed (got {len(seen)})")
    return tuple(seen)


def count_words(content: str) -> int:
    return len(content.split())
