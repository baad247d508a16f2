"""Theme/mood aggregation over entry sequences.

Pure functions, no I/O. Every function takes entries ordered newest-first
(the order the entry store returns them).
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any

from journal_buddy.journal.contracts import Entry, Mood

MOOD_WEIGHTS: dict[Mood, int] = {Mood.good: 1, Mood.okay: 0, Mood.rough: -1}
DEFAULT_TREND_THRESHOLD = 0.1


class MoodTrend(StrEnum):
    up = "up"
    down = "down"
    stable = "stable"
    insufficient_data = "insufficient_data"

    @property
    def description(self) -> str:
        return _TREND_DESCRIPTIONS[self]


_TREND_DESCRIPTIONS: dict[MoodTrend, str] = {
    MoodTrend.up: "Mood has been improving recently.",
    MoodTrend.down: "Mood has been lower recently.",
    MoodTrend.stable: "Mood has been fairly stable.",
    MoodTrend.insufficient_data: "Not enough entries to identify a mood trend yet.",
}


@dataclass(frozen=True)
class MoodDistribution:
    good: int = 0
    okay: int = 0
    rough: int = 0

    @property
    def total(self) -> int:
        return self.good + self.okay + self.rough

    def to_dict(self) -> dict[str, int]:
        return {"good": self.good, "okay": self.okay, "rough": self.rough}


@dataclass(frozen=True)
class TagCount:
    tag: str
    count: int


@dataclass(frozen=True)
class Insights:
    mood_distribution: MoodDistribution
    mood_trend: MoodTrend
    top_tags: list[TagCount] = field(default_factory=list)
    top_themes: list[str] = field(default_factory=list)
    streak: int = 0
    entry_count: int = 0
    total_words: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "mood_distribution": self.mood_distribution.to_dict(),
            "mood_trend": self.mood_trend.value,
            "top_tags": [{"tag": t.tag, "count": t.count} for t in self.top_tags],
            "top_themes": list(self.top_themes),
            "streak": self.streak,
            "entry_count": self.entry_count,
            "total_words": self.total_words,
        }


def mood_distribution(entries: Iterable[Entry]) -> MoodDistribution:
    counts = Counter(e.mood for e in entries if e.mood is not None)
    return MoodDistribution(
        good=counts[Mood.good], okay=counts[Mood.okay], rough=counts[Mood.rough]
    )


def _half_average(half: Sequence[Entry]) -> float:
    # Entries without a mood add 0 but still count toward the denominator
    total = sum(MOOD_WEIGHTS[e.mood] for e in half if e.mood is not None)
    return total / max(len(half), 1)


def mood_trend(
    entries: Sequence[Entry], *, threshold: float = DEFAULT_TREND_THRESHOLD
) -> MoodTrend:
    """Compare the newer half of the window to the older half."""
    if len(entries) < 2:
        return MoodTrend.insufficient_data

    midpoint = len(entries) // 2
    newer = _half_average(entries[:midpoint])
    older = _half_average(entries[midpoint:])

    if newer > older + threshold:
        return MoodTrend.up
    if newer < older - threshold:
        return MoodTrend.down
    return MoodTrend.stable


def _ranked(values: Iterable[str]) -> list[tuple[str, int]]:
    # Counter preserves first-seen order and sorted() is stable, so ties keep it
    counts = Counter(values)
    return sorted(counts.items(), key=lambda item: item[1], reverse=True)


def top_tags(entries: Iterable[Entry], k: int = 5) -> list[TagCount]:
    ranked = _ranked(tag for e in entries for tag in e.tags)
    return [TagCount(tag, count) for tag, count in ranked[:k]]


def top_themes(entries: Iterable[Entry], k: int = 5) -> list[str]:
    ranked = _ranked(theme for e in entries for theme in e.themes)
    return [theme for theme, _ in ranked[:k]]


def recurring_themes(entries: Iterable[Entry], min_count: int = 2, k: int = 5) -> list[str]:
    ranked = _ranked(theme for e in entries for theme in e.themes)
    return [theme for theme, count in ranked if count >= min_count][:k]


def streak(dates_descending: Iterable[date], *, today: date | None = None) -> int:
    """Consecutive-day journaling streak ending today (or yesterday).

    A gap of 0 or 1 day from the last counted day continues the streak, so a
    streak still counts when the most recent entry was yesterday.
    """
    current = today or datetime.now(UTC).date()
    count = 0
    last_seen: date | None = None
    for d in dates_descending:
        if d == last_seen:
            continue
        if not 0 <= (current - d).days <= 1:
            break
        count += 1
        current = d
        last_seen = d
    return count


def compute_insights(
    entries: Sequence[Entry],
    *,
    streak_dates: Iterable[date] | None = None,
    today: date | None = None,
    k: int = 5,
    threshold: float = DEFAULT_TREND_THRESHOLD,
) -> Insights:
    """Aggregate a newest-first entry window into an Insights record."""
    if streak_dates is None:
        streak_dates = sorted({e.created_at.date() for e in entries}, reverse=True)
    return Insights(
        mood_distribution=mood_distribution(entries),
        mood_trend=mood_trend(entries, threshold=threshold),
        top_tags=top_tags(entries, k),
        top_themes=top_themes(entries, k),
        streak=streak(streak_dates, today=today),
        entry_count=len(entries),
        total_words=sum(e.word_count for e in entries),
    )
