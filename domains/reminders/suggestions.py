"""Usage patterns - what a user's stored reminders say about their habits.

Looks over the record store and reports:
- common lead times for one-time reminders
- frequent words in reminder text
- category mix
- how many reminders repeat, and how
- completion rate (completed vs still live)
- time-of-day spread

The patterns feed a ranked list of suggestions, and past completed reminders
are offered back when new text looks like one of them. Cancelled records are
ignored throughout.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from logger import logger
from . import config
from .models import (
    DailySchedule,
    OneTimeSchedule,
    ReminderRecord,
    ReminderState,
    WeeklySchedule,
)
from .store import RecordStore

STOPWORDS = {"the", "to", "and", "a", "in", "is", "it", "with", "for", "as", "of", "on", "at", "by"}

# (name, first hour, end hour); anything outside is night
DAY_PERIODS = [
    ("morning", 6, 12),
    ("afternoon", 12, 17),
    ("evening", 17, 21),
]

COMMON_DELAY_LIMIT = 5
FREQUENT_WORD_LIMIT = 10
RECURRING_SUGGESTION_PERCENT = 20.0
SIMILARITY_THRESHOLD = 0.3
SIMILAR_LIMIT = 3
ANALYSIS_TTL = timedelta(hours=1)

_WORD_SPLIT_RE = re.compile(r"\W+")


@dataclass
class Share:
    """A counted value and its share of all analysed reminders."""
    value: Any
    count: int
    percentage: float


@dataclass
class RecurringPattern:
    total: int = 0
    percentage: float = 0.0
    kinds: list[Share] = field(default_factory=list)


@dataclass
class CompletionRate:
    total: int = 0
    completed: int = 0
    active: int = 0
    rate: float = 0.0


@dataclass
class UsagePatterns:
    """Snapshot of a user's reminder habits."""
    analysed_at: datetime
    record_count: int = 0
    common_delays: list[Share] = field(default_factory=list)
    frequent_words: list[Share] = field(default_factory=list)
    categories: list[Share] = field(default_factory=list)
    recurring: RecurringPattern = field(default_factory=RecurringPattern)
    completion: CompletionRate = field(default_factory=CompletionRate)
    time_of_day: list[Share] = field(default_factory=list)

    def to_dict(self) -> dict:
        def shares(items):
            return [{"value": s.value, "count": s.count, "percentage": s.percentage} for s in items]

        return {
            "analysed_at": self.analysed_at.isoformat(),
            "record_count": self.record_count,
            "common_delays": shares(self.common_delays),
            "frequent_words": shares(self.frequent_words),
            "categories": shares(self.categories),
            "recurring": {
                "total": self.recurring.total,
                "percentage": self.recurring.percentage,
                "kinds": shares(self.recurring.kinds),
            },
            "completion": {
                "total": self.completion.total,
                "completed": self.completion.completed,
                "active": self.completion.active,
                "rate": self.completion.rate,
            },
            "time_of_day": shares(self.time_of_day),
        }


@dataclass
class Suggestion:
    type: str
    title: str
    description: str
    value: Any
    confidence: float


@dataclass
class SimilarReminder:
    record: ReminderRecord
    similarity: float


def _percent(count: int, total: int) -> float:
    return round(count / total * 100, 1) if total else 0.0


def _ranked(counts: Counter, total: int, limit: Optional[int] = None) -> list[Share]:
    return [Share(value, count, _percent(count, total)) for value, count in counts.most_common(limit)]


def _words(text: str) -> list[str]:
    return [w for w in _WORD_SPLIT_RE.split((text or "").lower()) if len(w) > 2]


def format_delay(seconds: int) -> str:
    if seconds < 60:
        return f"{seconds} seconds"
    if seconds < 3600:
        return f"{seconds // 60} minutes"
    if seconds < 86400:
        return f"{seconds // 3600} hours"
    return f"{seconds // 86400} days"


def fire_hour(record: ReminderRecord) -> Optional[int]:
    """Local hour the reminder is set for, if it has a wall-clock time."""
    schedule = record.schedule
    if isinstance(schedule, (DailySchedule, WeeklySchedule)):
        return schedule.hour
    if isinstance(schedule, OneTimeSchedule) and schedule.instant is not None:
        return schedule.instant.astimezone(config.TIMEZONE).hour
    return None


def day_period(hour: int) -> str:
    for name, start, end in DAY_PERIODS:
        if start <= hour < end:
            return name
    return "night"


# =============================================================================
# PATTERNS
# =============================================================================

def analyze_common_delays(records: list[ReminderRecord]) -> list[Share]:
    """Most used lead times (seconds) on one-time reminders, top five."""
    counts = Counter(
        r.schedule.delay_seconds for r in records if isinstance(r.schedule, OneTimeSchedule)
    )
    return _ranked(counts, len(records), COMMON_DELAY_LIMIT)


def analyze_frequent_words(records: list[ReminderRecord]) -> list[Share]:
    counts = Counter()
    for record in records:
        counts.update(w for w in _words(record.text) if w not in STOPWORDS)
    return _ranked(counts, len(records), FREQUENT_WORD_LIMIT)


def analyze_categories(records: list[ReminderRecord]) -> list[Share]:
    return _ranked(Counter(r.category.value for r in records), len(records))


def analyze_recurring(records: list[ReminderRecord]) -> RecurringPattern:
    recurring = [r for r in records if r.is_recurring]
    kinds = Counter(r.kind.value for r in recurring)
    return RecurringPattern(
        total=len(recurring),
        percentage=_percent(len(recurring), len(records)),
        kinds=_ranked(kinds, len(recurring)),
    )


def analyze_completion(records: list[ReminderRecord]) -> CompletionRate:
    """Completed records against those still live (active or snoozed)."""
    completed = sum(1 for r in records if r.state == ReminderState.COMPLETED)
    active = sum(1 for r in records if not r.is_terminal)
    total = completed + active
    return CompletionRate(total=total, completed=completed, active=active,
                          rate=_percent(completed, total))


def analyze_time_of_day(records: list[ReminderRecord]) -> list[Share]:
    """Every period in day order, including empty ones."""
    counts = Counter()
    for record in records:
        hour = fire_hour(record)
        if hour is not None:
            counts[day_period(hour)] += 1
    periods = [name for name, _, _ in DAY_PERIODS] + ["night"]
    return [Share(p, counts[p], _percent(counts[p], len(records))) for p in periods]


def analyze_patterns(records: list[ReminderRecord], now: datetime = None) -> UsagePatterns:
    now = now or datetime.now(config.TIMEZONE)
    records = [r for r in records if r.state != ReminderState.CANCELLED]

    return UsagePatterns(
        analysed_at=now,
        record_count=len(records),
        common_delays=analyze_common_delays(records),
        frequent_words=analyze_frequent_words(records),
        categories=analyze_categories(records),
        recurring=analyze_recurring(records),
        completion=analyze_completion(records),
        time_of_day=analyze_time_of_day(records),
    )


# =============================================================================
# SUGGESTIONS
# =============================================================================

def generate_suggestions(patterns: UsagePatterns) -> list[Suggestion]:
    """Turn patterns into suggestions, highest confidence first."""
    suggestions = []

    if patterns.common_delays:
        top = patterns.common_delays[0]
        suggestions.append(Suggestion(
            type="time",
            title="Suggested Time",
            description=f"You often set reminders for {format_delay(top.value)}",
            value=top.value,
            confidence=top.percentage,
        ))

    if patterns.categories:
        top = patterns.categories[0]
        suggestions.append(Suggestion(
            type="category",
            title="Preferred Category",
            description=f"{top.percentage}% of your reminders are {top.value}",
            value=top.value,
            confidence=top.percentage,
        ))

    if patterns.recurring.percentage > RECURRING_SUGGESTION_PERCENT:
        suggestions.append(Suggestion(
            type="recurring",
            title="Consider Making Recurring",
            description=f"{patterns.recurring.percentage}% of your reminders repeat",
            value=True,
            confidence=patterns.recurring.percentage,
        ))

    if patterns.frequent_words:
        top_words = patterns.frequent_words[:3]
        suggestions.append(Suggestion(
            type="words",
            title="Common Tasks",
            description=f"You often remind yourself about: {', '.join(w.value for w in top_words)}",
            value=[w.value for w in top_words],
            confidence=top_words[0].percentage,
        ))

    busiest = max(patterns.time_of_day, key=lambda s: s.count, default=None)
    if busiest is not None and busiest.count > 0:
        suggestions.append(Suggestion(
            type="time_of_day",
            title="Best Time of Day",
            description=f"You're most active with reminders in the {busiest.value}",
            value=busiest.value,
            confidence=busiest.percentage,
        ))

    suggestions.sort(key=lambda s: s.confidence, reverse=True)
    return suggestions


def find_similar_reminders(
    text: str,
    records: list[ReminderRecord],
    limit: int = SIMILAR_LIMIT,
) -> list[SimilarReminder]:
    """Records sharing enough words with `text`.

    Similarity is shared words over the longer word list. Only matches above
    0.3 are kept, best first.
    """
    input_words = _words(text)
    if not input_words:
        return []

    matches = []
    for record in records:
        record_words = _words(record.text)
        if not record_words:
            continue
        shared = sum(1 for w in input_words if w in record_words)
        similarity = shared / max(len(input_words), len(record_words))
        if similarity > SIMILARITY_THRESHOLD:
            matches.append(SimilarReminder(record, similarity))

    matches.sort(key=lambda m: m.similarity, reverse=True)
    return matches[:limit]


class PatternAnalyzer:
    """Cached pattern analysis over a record store.

    An analysis is reused for an hour, then recomputed on the next call.
    """

    def __init__(self, records: RecordStore):
        self.records = records
        self._patterns: Optional[UsagePatterns] = None

    @property
    def cached(self) -> Optional[UsagePatterns]:
        return self._patterns

    def is_stale(self, now: datetime = None) -> bool:
        if self._patterns is None:
            return True
        now = now or datetime.now(config.TIMEZONE)
        return now - self._patterns.analysed_at > ANALYSIS_TTL

    async def analyze(self, now: datetime = None, refresh: bool = False) -> UsagePatterns:
        now = now or datetime.now(config.TIMEZONE)
        if refresh or self.is_stale(now):
            self._patterns = analyze_patterns(await self.records.list(), now)
            logger.info(f"Analysed {self._patterns.record_count} reminders for usage patterns")
        return self._patterns

    async def suggestions(self, now: datetime = None) -> list[Suggestion]:
        return generate_suggestions(await self.analyze(now))

    async def suggestions_for_input(self, text: str) -> list[Suggestion]:
        """Past completed reminders that look like `text`."""
        completed = await self.records.list(ReminderState.COMPLETED)
        return [
            Suggestion(
                type="similar",
                title="Similar Reminder",
                description=f'You previously set: "{match.record.text}"',
                value=match.record,
                confidence=round(match.similarity * 100, 1),
            )
            for match in find_similar_reminders(text, completed)
        ]
