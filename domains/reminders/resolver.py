"""Time & intent resolver - pulls each reminder field out of free text.

Every extractor is independent and returns either Found(value, confidence)
or NOT_FOUND, so a missing field lowers the draft's confidence instead of
failing the whole parse. Rules are ordered (pattern, value) lists; the first
match wins.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Generic, Optional, TypeVar, Union

from logger import logger
from . import config
from .models import Category, Priority, Recurrence, RecurrenceKind
from .timeparse import DateResolver, RuleBasedDateResolver, TimeMatch

T = TypeVar("T")


@dataclass(frozen=True)
class Found(Generic[T]):
    value: T
    confidence: int


class _NotFound:
    """Sentinel for an extractor that matched nothing."""

    def __bool__(self):
        return False

    def __repr__(self):
        return "NOT_FOUND"


NOT_FOUND = _NotFound()

Resolution = Union[Found[T], _NotFound]


@dataclass(frozen=True)
class TimeResolution:
    """When the reminder should first fire."""
    seconds: int
    description: str
    instant: Optional[datetime] = None  # set only for calendar matches
    matched_text: str = ""
    clock: Optional[tuple[int, int]] = None  # (hour, minute) named in the text


def _words(*words: str) -> re.Pattern:
    return re.compile(r"\b(?:" + "|".join(words) + r")\b", re.IGNORECASE)


# =============================================================================
# ACTION
# =============================================================================

_ACTION_PATTERNS = [
    re.compile(r"\bremind\s+me\s+to\s+(.+)", re.IGNORECASE | re.DOTALL),
    re.compile(r"\bdon['’]?t\s+forget\s+to\s+(.+)", re.IGNORECASE | re.DOTALL),
    re.compile(r"\bremember\s+to\s+(.+)", re.IGNORECASE | re.DOTALL),
    re.compile(r"\bmake\s+sure\s+I\s+(.+)", re.IGNORECASE | re.DOTALL),
    re.compile(r"\breminder\s+to\s+(.+)", re.IGNORECASE | re.DOTALL),
    re.compile(r"(.+?)\s+reminder\b", re.IGNORECASE | re.DOTALL),
    re.compile(r"\bI\s+need\s+to\s+(.+)", re.IGNORECASE | re.DOTALL),
    re.compile(r"(.+)", re.DOTALL),
]

_TIME_WORDS = (
    r"morning|afternoon|evening|week|weekend|month|"
    r"monday|tuesday|wednesday|thursday|friday|saturday|sunday"
)
_TRAILING_TIME_RE = re.compile(
    r"\s+(?:(?:at|on|in|after|before|by|until)\s+"
    rf"|(?:today|tomorrow|tonight|(?:this|next)\s+(?:{_TIME_WORDS}))\b).*$",
    re.IGNORECASE | re.DOTALL,
)
_TRAILING_DURATION_RE = re.compile(
    r"\s+\d+\s*(?:min(?:ute)?s?|h(?:ours?|rs?)?|m)\s*$", re.IGNORECASE
)
_RECURRENCE_WORDS_RE = re.compile(
    r"\b(?:daily|weekly|every\s*day|every\s+week|each\s+day|each\s+week"
    rf"|every\s+(?:night|{_TIME_WORDS})s?)\b",
    re.IGNORECASE,
)


def clean_action(action: str) -> str:
    """Strip time phrases, recurrence words and stray punctuation."""
    action = _TRAILING_TIME_RE.sub("", action)
    action = _TRAILING_DURATION_RE.sub("", action)
    action = _RECURRENCE_WORDS_RE.sub("", action)
    action = re.sub(r"\s+", " ", action).strip()
    action = action.strip(".,;:!-–")
    action = re.sub(r"^to\s+", "", action, flags=re.IGNORECASE)
    return action.strip()


def resolve_action(text: str) -> Resolution[str]:
    """Find the task the user wants to be reminded about.

    "remind me to call mom at 7 PM" -> "call mom"
    "dentist reminder tomorrow"     -> "dentist"
    """
    for pattern in _ACTION_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        action = clean_action(match.group(1))
        if action:
            return Found(action, config.ACTION_CONFIDENCE)
    return NOT_FOUND


# =============================================================================
# TIME
# =============================================================================

_DEFAULT_DATE_RESOLVER = RuleBasedDateResolver()

# (pattern, seconds per unit, unit name, bare-integer range)
_FALLBACK_RULES = [
    (re.compile(r"\bin\s+(\d+)\s*minutes?\b", re.IGNORECASE), 60, "minute", None),
    (re.compile(r"\bin\s+(\d+)\s*hours?\b", re.IGNORECASE), 3600, "hour", None),
    (re.compile(r"\bin\s+(\d+)\s*days?\b", re.IGNORECASE), 86400, "day", None),
    (re.compile(r"\b(\d+)\s*minutes?\s+from\s+now\b", re.IGNORECASE), 60, "minute", None),
    (re.compile(r"\b(\d+)\s*hours?\s+from\s+now\b", re.IGNORECASE), 3600, "hour", None),
    (re.compile(r"\b(\d+)\s*min(?:ute)?s?\b", re.IGNORECASE), 60, "minute", None),
    (re.compile(r"\b(\d+)m\b", re.IGNORECASE), 60, "minute", None),
    (re.compile(r"\b(\d+)\s*h(?:ours?|rs?)?\b", re.IGNORECASE), 3600, "hour", None),
    # Voice input often yields a bare number of minutes
    (re.compile(r"^\s*(\d+)\s*$"), 60, "minute", (1, config.BARE_MINUTES_MAX)),
]

_CERTAIN_CONFIDENCE = 90
_UNCERTAIN_CONFIDENCE = 60
_FALLBACK_CONFIDENCE = 85
_BARE_NUMBER_CONFIDENCE = 70


def format_clock(moment: datetime) -> str:
    """7:00 PM style clock."""
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{moment.hour % 12 or 12}:{moment.minute:02d} {suffix}"


def describe_time(instant: datetime, seconds: int, now: datetime) -> str:
    """Human-readable description of when a reminder fires.

    Args:
        instant: Fire time
        seconds: Delay from now until instant
        now: Current time

    Returns:
        "in 30 minutes", "today at 7:00 PM", "tomorrow at 7:00 PM",
        "Friday at 9:00 AM" or "on Jan 20, 2027 at 9:00 AM"
    """
    clock = format_clock(instant)
    if seconds < 3600:
        minutes = seconds // 60
        return f"in {minutes} minute{'s' if minutes != 1 else ''}"
    if seconds < 86400 and instant.date() == now.date():
        return f"today at {clock}"
    if instant.date() == (now + timedelta(days=1)).date():
        return f"tomorrow at {clock}"
    if seconds < 604800:
        return f"{instant.strftime('%A')} at {clock}"
    return f"on {instant.strftime('%b')} {instant.day}, {instant.year} at {clock}"


def roll_forward(instant: datetime, now: datetime) -> datetime:
    """Move a past instant to its next future occurrence.

    Same calendar day moves forward 24h. An earlier day keeps only its clock
    time, applied to today, and moves to tomorrow if that has also passed.
    """
    if instant > now:
        return instant
    if instant.date() == now.date():
        return instant + timedelta(days=1)
    rolled = now.replace(
        hour=instant.hour, minute=instant.minute, second=instant.second, microsecond=0
    )
    if rolled <= now:
        rolled += timedelta(days=1)
    return rolled


def _from_match(match: TimeMatch, now: datetime) -> Found[TimeResolution]:
    instant = roll_forward(match.instant, now)
    seconds = max(config.MIN_TRIGGER_SECONDS, int((instant - now).total_seconds()))
    resolution = TimeResolution(
        seconds=seconds,
        description=describe_time(instant, seconds, now),
        instant=instant,
        matched_text=match.matched_text,
        clock=(instant.hour, instant.minute) if match.has_clock else None,
    )
    confidence = _CERTAIN_CONFIDENCE if match.is_certain else _UNCERTAIN_CONFIDENCE
    return Found(resolution, confidence)


def _from_fallback(text: str) -> Resolution[TimeResolution]:
    for pattern, multiplier, unit, bounds in _FALLBACK_RULES:
        match = pattern.search(text)
        if not match:
            continue
        value = int(match.group(1))
        if bounds and not bounds[0] <= value <= bounds[1]:
            continue

        seconds = max(config.MIN_TRIGGER_SECONDS, value * multiplier)
        resolution = TimeResolution(
            seconds=seconds,
            description=f"in {value} {unit}{'s' if value > 1 else ''}",
            matched_text=match.group(0).strip(),
        )
        confidence = _BARE_NUMBER_CONFIDENCE if bounds else _FALLBACK_CONFIDENCE
        return Found(resolution, confidence)
    return NOT_FOUND


def resolve_time(
    text: str,
    now: datetime,
    date_resolver: Optional[DateResolver] = None,
) -> Resolution[TimeResolution]:
    """Work out when the reminder should fire.

    Tries the date/time sub-resolver first, then a cascade of plain
    "N minutes" style patterns. Never raises; a sub-resolver failure counts
    as "no time found".
    """
    resolver = date_resolver or _DEFAULT_DATE_RESOLVER

    try:
        matches = resolver.parse(text, now)
    except Exception as e:
        logger.warning(f"Date resolver failed on {text!r}: {e}")
        matches = []

    try:
        if matches:
            return _from_match(matches[0], now)
        return _from_fallback(text)
    except (OverflowError, ValueError, TypeError) as e:
        logger.warning(f"Could not resolve time in {text!r}: {e}")
        return NOT_FOUND


# =============================================================================
# CATEGORY / PRIORITY
# =============================================================================

_CATEGORY_RULES = [
    (Category.WORK, _words(
        "work", "meeting", "presentation", "deadline", "office", "project",
        "email", "conference", "report", "client")),
    (Category.HEALTH, _words(
        "doctor", "appointment", "medicine", "medication", "pills?", "workout",
        "exercise", "checkup", "health", "gym", "dentist")),
    (Category.PERSONAL, _words(
        "birthday", "anniversary", "family", "friend", "personal", "home")),
    (Category.SHOPPING, _words(
        "buy", "shop", "shopping", "grocery", "groceries", "store", "market", "purchase")),
    (Category.FINANCE, _words(
        "pay", "bills?", "bank", "money", "payment", "tax(?:es)?", "rent")),
    (Category.TRAVEL, _words(
        "flight", "trip", "vacation", "travel", "airport", "hotel")),
    (Category.STUDY, _words(
        "study", "exam", "homework", "class", "school", "university", "learn")),
    (Category.SOCIAL, _words(
        "party", "dinner", "lunch", "meet", "hangout", "social")),
]

_PRIORITY_RULES = [
    (Priority.URGENT, _words("urgent", "asap", "important", "critical", r"high\s+priority")),
    (Priority.HIGH, _words("high", "soon", "quick(?:ly)?")),
    (Priority.LOW, _words("low", "later", "sometime")),
]


def detect_category(text: str) -> Resolution[Category]:
    for category, pattern in _CATEGORY_RULES:
        if pattern.search(text):
            return Found(category, 70)
    return NOT_FOUND


def detect_priority(text: str) -> Resolution[Priority]:
    for priority, pattern in _PRIORITY_RULES:
        if pattern.search(text):
            return Found(priority, 80)
    return NOT_FOUND


# =============================================================================
# RECURRENCE
# =============================================================================

_DAILY_RE = _words(r"daily", r"every\s*day", r"each\s+day", r"every\s+(?:morning|evening|night)")
_WEEKLY_RE = _words(
    r"weekly", r"every\s+week", r"each\s+week",
    r"every\s+(?:sun|mon|tues|wednes|thurs|fri|satur)days?",
)

# 1=Sunday ... 7=Saturday
_WEEKDAY_RULES = [
    (1, _words("sundays?", "sun")),
    (2, _words("mondays?", "mon")),
    (3, _words("tuesdays?", "tues?")),
    (4, _words("wednesdays?", "wed")),
    (5, _words("thursdays?", "thu(?:rs)?")),
    (6, _words("fridays?", "fri")),
    (7, _words("saturdays?", "sat")),
]
_DEFAULT_WEEKDAY = 2


def detect_recurrence(
    text: str,
    clock: Optional[tuple[int, int]] = None,
) -> Resolution[Recurrence]:
    """Detect a daily or weekly pattern.

    Args:
        text: Raw input
        clock: (hour, minute) named in the text, used instead of 09:00

    Returns:
        Found(Recurrence) or NOT_FOUND
    """
    hour, minute = clock or (config.DEFAULT_RECURRING_HOUR, config.DEFAULT_RECURRING_MINUTE)

    if _DAILY_RE.search(text):
        return Found(Recurrence(RecurrenceKind.DAILY, hour=hour, minute=minute), 85)

    if _WEEKLY_RE.search(text):
        for weekday, pattern in _WEEKDAY_RULES:
            if pattern.search(text):
                return Found(
                    Recurrence(RecurrenceKind.WEEKLY, hour=hour, minute=minute, weekday=weekday),
                    90,
                )
        return Found(
            Recurrence(RecurrenceKind.WEEKLY, hour=hour, minute=minute, weekday=_DEFAULT_WEEKDAY),
            70,
        )

    return NOT_FOUND
