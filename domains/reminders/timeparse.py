"""Date/time extraction from free text.

Rule-based sub-resolver for the reminder parser. It looks for three
independent pieces anywhere in the text and combines them into one instant:

- a clock time: "7 PM", "at 8:30am", "19:30", "at 7", "noon", "this evening"
- a day: "today", "tomorrow", "next week", "friday", "jan 20", "2027-01-20"
- a relative offset: "in 30 minutes", "in an hour", "2 days from now"

Examples (reference Mon 1 Jan 2024 10:00):
- "call mom in 30 minutes"        -> 10:30 today, certain
- "take medicine at 7 PM"         -> 19:00 today, certain
- "dentist tomorrow"              -> 09:00 tomorrow, uncertain
- "submit report friday at 5pm"   -> Fri 5 Jan 17:00, certain

No roll-forward of past times happens here, except that a bare weekday
naming today moves to next week once its time has passed. The parser owns
the rest of the "must be in the future" policy.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Protocol

from dateutil import parser as dateutil_parser

from . import config


@dataclass(frozen=True)
class TimeMatch:
    """One instant recognised in the text."""
    instant: datetime
    is_certain: bool
    matched_text: str
    has_clock: bool = False


class DateResolver(Protocol):
    """Anything that can pull calendar instants out of free text."""

    def parse(self, text: str, reference: datetime) -> list[TimeMatch]:
        ...


_NUMBER_WORDS = {
    "a": 1, "an": 1, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10, "eleven": 11,
    "twelve": 12, "fifteen": 15, "twenty": 20, "thirty": 30, "forty": 40,
    "fifty": 50,
}

_UNIT_SECONDS = {
    "minute": 60, "min": 60,
    "hour": 3600, "hr": 3600,
    "day": 86400,
    "week": 604800,
}

_NUM = r"(\d+|" + "|".join(sorted(_NUMBER_WORDS, key=len, reverse=True)) + r")"
_UNIT = r"(minutes?|mins?|hours?|hrs?|days?|weeks?)"

_OFFSET_RE = re.compile(rf"\bin\s+{_NUM}\s*{_UNIT}\b", re.IGNORECASE)
_HALF_HOUR_RE = re.compile(r"\bin\s+half\s+an?\s+hour\b", re.IGNORECASE)
_FROM_NOW_RE = re.compile(rf"\b{_NUM}\s*{_UNIT}\s+from\s+now\b", re.IGNORECASE)

_CLOCK_MERIDIEM_RE = re.compile(
    r"\b(?:at\s+)?(\d{1,2})(?:[:.](\d{2}))?\s*([ap])\.?m\b\.?", re.IGNORECASE
)
_CLOCK_24_RE = re.compile(r"\b(?:at\s+)?([01]?\d|2[0-3]):([0-5]\d)\b")
_AT_HOUR_RE = re.compile(
    r"\bat\s+(\d{1,2})\b(?!\s*(?:minutes?|mins?|hours?|hrs?|days?|weeks?)\b)",
    re.IGNORECASE,
)
_NAMED_TIME_RE = re.compile(r"\b(noon|midday|midnight)\b", re.IGNORECASE)
_DAY_PART_RE = re.compile(
    r"\b(?:this\s+|in\s+the\s+)?(morning|afternoon|evening|tonight)\b", re.IGNORECASE
)

_RELATIVE_DAY_RE = re.compile(
    r"\b(day\s+after\s+tomorrow|tomorrow|today|next\s+week)\b", re.IGNORECASE
)
_WEEKDAY_RE = re.compile(
    r"\b(?:(next|this|on)\s+)?(monday|tuesday|wednesday|thursday|friday|saturday|sunday)s?\b",
    re.IGNORECASE,
)
_MONTHS = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|"
    r"aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
)
_DATE_RE = re.compile(
    rf"\b(?:\d{{4}}-\d{{1,2}}-\d{{1,2}}"
    rf"|\d{{1,2}}(?:st|nd|rd|th)?\s+(?:of\s+)?{_MONTHS}(?:,?\s+\d{{4}})?"
    rf"|{_MONTHS}\.?\s+\d{{1,2}}(?:st|nd|rd|th)?(?:,?\s+\d{{4}})?)\b",
    re.IGNORECASE,
)

_NAMED_TIMES = {"noon": (12, 0), "midday": (12, 0), "midnight": (0, 0)}
_DAY_PARTS = {"morning": (9, 0), "afternoon": (15, 0), "evening": (18, 0), "tonight": (20, 0)}
_WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


@dataclass(frozen=True)
class _Clock:
    hour: int
    minute: int
    certain: bool
    start: int
    text: str


@dataclass(frozen=True)
class _Day:
    day: date
    roll_week: bool  # bare weekday naming today: next week once the time has passed
    start: int
    text: str


@dataclass(frozen=True)
class _Offset:
    delta: timedelta
    start: int
    text: str


def _to_number(token: str) -> int:
    token = token.lower()
    if token.isdigit():
        return int(token)
    return _NUMBER_WORDS[token]


def _unit_seconds(unit: str) -> int:
    unit = unit.lower()
    if unit.endswith("s"):
        unit = unit[:-1]
    return _UNIT_SECONDS[unit]


def _to_24h(hour: int, minute: int, meridiem: Optional[str]) -> Optional[tuple[int, int]]:
    """Convert a 12-hour clock to 24-hour, or None if out of range."""
    if meridiem:
        if not 1 <= hour <= 12:
            return None
        if meridiem == "p" and hour < 12:
            hour += 12
        elif meridiem == "a" and hour == 12:
            hour = 0
    if hour > 23 or minute > 59:
        return None
    return hour, minute


class RuleBasedDateResolver:
    """Default DateResolver built from ordered regex rules."""

    default_hour = config.DEFAULT_RECURRING_HOUR

    def parse(self, text: str, reference: datetime) -> list[TimeMatch]:
        """Find at most one instant in `text`, relative to `reference`.

        Args:
            text: Free text, e.g. "remind me to take medicine at 7 PM"
            reference: Current time; the result carries its tzinfo

        Returns:
            List with one TimeMatch, or empty if nothing date-like was found
        """
        if not text:
            return []

        offset = self._find_offset(text)
        clock = self._find_clock(text)
        day = self._find_day(text, reference)

        if offset is None and clock is None and day is None:
            return []

        if day is not None:
            base = reference.replace(year=day.day.year, month=day.day.month, day=day.day.day)
        elif offset is not None:
            base = reference + offset.delta
        else:
            base = reference

        if clock is not None:
            instant = base.replace(hour=clock.hour, minute=clock.minute, second=0, microsecond=0)
            certain = clock.certain
        elif day is not None:
            instant = base.replace(hour=self.default_hour, minute=0, second=0, microsecond=0)
            certain = False
        else:
            instant = base
            certain = True

        if day is not None and day.roll_week and instant <= reference:
            instant += timedelta(days=7)

        pieces = sorted(
            (p for p in (offset, clock, day) if p is not None),
            key=lambda p: p.start,
        )
        matched = " ".join(p.text for p in pieces)

        return [TimeMatch(
            instant=instant,
            is_certain=certain,
            matched_text=matched,
            has_clock=clock is not None,
        )]

    def _find_offset(self, text: str) -> Optional[_Offset]:
        match = _HALF_HOUR_RE.search(text)
        if match:
            return _Offset(timedelta(minutes=30), match.start(), match.group(0))

        for pattern in (_OFFSET_RE, _FROM_NOW_RE):
            match = pattern.search(text)
            if match:
                seconds = _to_number(match.group(1)) * _unit_seconds(match.group(2))
                return _Offset(timedelta(seconds=seconds), match.start(), match.group(0))
        return None

    def _find_clock(self, text: str) -> Optional[_Clock]:
        match = _CLOCK_MERIDIEM_RE.search(text)
        if match:
            converted = _to_24h(
                int(match.group(1)), int(match.group(2) or 0), match.group(3).lower()
            )
            if converted:
                return _Clock(*converted, True, match.start(), match.group(0).strip())

        match = _CLOCK_24_RE.search(text)
        if match:
            return _Clock(int(match.group(1)), int(match.group(2)), True,
                          match.start(), match.group(0))

        match = _AT_HOUR_RE.search(text)
        if match:
            converted = _to_24h(int(match.group(1)), 0, None)
            if converted:
                return _Clock(*converted, True, match.start(), match.group(0))

        match = _NAMED_TIME_RE.search(text)
        if match:
            hour, minute = _NAMED_TIMES[match.group(1).lower()]
            return _Clock(hour, minute, True, match.start(), match.group(0))

        match = _DAY_PART_RE.search(text)
        if match:
            hour, minute = _DAY_PARTS[match.group(1).lower()]
            return _Clock(hour, minute, False, match.start(), match.group(0))

        return None

    def _find_day(self, text: str, reference: datetime) -> Optional[_Day]:
        today = reference.date()

        match = _RELATIVE_DAY_RE.search(text)
        if match:
            word = re.sub(r"\s+", " ", match.group(1).lower())
            days = {"today": 0, "tomorrow": 1, "day after tomorrow": 2, "next week": 7}[word]
            return _Day(today + timedelta(days=days), False, match.start(), match.group(0))

        match = _WEEKDAY_RE.search(text)
        if match:
            qualifier = (match.group(1) or "").lower()
            target = _WEEKDAYS.index(match.group(2).lower())
            days_ahead = (target - today.weekday()) % 7
            if days_ahead == 0 and qualifier == "next":
                days_ahead = 7
            roll_week = days_ahead == 0 and qualifier != "this"
            return _Day(today + timedelta(days=days_ahead), roll_week,
                        match.start(), match.group(0))

        match = _DATE_RE.search(text)
        if match:
            parsed = self._parse_calendar_date(match.group(0), today)
            if parsed is not None:
                return _Day(parsed, False, match.start(), match.group(0))

        return None

    @staticmethod
    def _parse_calendar_date(fragment: str, today: date) -> Optional[date]:
        """Parse "jan 20", "20th of January 2027", "2027-01-20" with dateutil.

        A date without a year that has already passed this year means next year.
        """
        cleaned = re.sub(r"(\d)(st|nd|rd|th)\b", r"\1", fragment, flags=re.IGNORECASE)
        cleaned = re.sub(r"\bof\b", " ", cleaned, flags=re.IGNORECASE)
        default = datetime(today.year, today.month, today.day)
        try:
            parsed = dateutil_parser.parse(cleaned, default=default).date()
        except (ValueError, OverflowError):
            return None

        if not re.search(r"\d{4}", fragment) and parsed < today:
            try:
                parsed = parsed.replace(year=parsed.year + 1)
            except ValueError:  # 29 Feb
                return None
        return parsed
