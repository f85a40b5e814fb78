"""Reminder data models.

Drafts come out of the parser and are never persisted. Records are the
durable unit of scheduling truth and round-trip through JSON.

The schedule attached to a request or record is a tagged union: exactly one
of OneTimeSchedule, DailySchedule, WeeklySchedule or IntervalSchedule, each
carrying only the fields its kind needs.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional, Union

from dateutil.parser import parse as parse_datetime

from . import config
from .errors import InvalidRecurrence


class Category(Enum):
    """Reminder categories, in keyword-detection order."""
    WORK = "Work"
    HEALTH = "Health"
    PERSONAL = "Personal"
    SHOPPING = "Shopping"
    FINANCE = "Finance"
    TRAVEL = "Travel"
    STUDY = "Study"
    SOCIAL = "Social"


class Priority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class RecurrenceKind(Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


class ReminderKind(Enum):
    ONE_TIME = "one-time"
    DAILY = "daily"
    WEEKLY = "weekly"
    INTERVAL = "interval"


class ReminderState(Enum):
    """Record lifecycle states"""
    ACTIVE = "active"
    SNOOZED = "snoozed"
    COMPLETED = "completed"    # Terminal
    CANCELLED = "cancelled"    # Terminal


TERMINAL_STATES = frozenset({ReminderState.COMPLETED, ReminderState.CANCELLED})

# 1=Sunday ... 7=Saturday
WEEKDAY_NAMES = {
    1: "sunday", 2: "monday", 3: "tuesday", 4: "wednesday",
    5: "thursday", 6: "friday", 7: "saturday",
}


def check_clock(hour: int, minute: int) -> None:
    """Raise InvalidRecurrence unless hour is 0-23 and minute is 0-59."""
    if not 0 <= hour <= 23:
        raise InvalidRecurrence(f"Hour {hour} is out of range (0-23)")
    if not 0 <= minute <= 59:
        raise InvalidRecurrence(f"Minute {minute} is out of range (0-59)")


def check_weekday(weekday: int) -> None:
    """Raise InvalidRecurrence unless weekday is 1 (Sunday) to 7 (Saturday)."""
    if weekday not in WEEKDAY_NAMES:
        raise InvalidRecurrence(f"Weekday {weekday} is out of range (1-7)")


# =============================================================================
# SCHEDULES
# =============================================================================

@dataclass(frozen=True)
class OneTimeSchedule:
    """Fire once, at `instant` if known, else `delay_seconds` after scheduling."""
    instant: Optional[datetime] = None
    delay_seconds: int = config.MIN_TRIGGER_SECONDS

    kind: ClassVar[ReminderKind] = ReminderKind.ONE_TIME

    def __post_init__(self):
        if self.delay_seconds < config.MIN_TRIGGER_SECONDS:
            object.__setattr__(self, "delay_seconds", config.MIN_TRIGGER_SECONDS)


@dataclass(frozen=True)
class DailySchedule:
    hour: int
    minute: int = 0

    kind: ClassVar[ReminderKind] = ReminderKind.DAILY

    def __post_init__(self):
        check_clock(self.hour, self.minute)


@dataclass(frozen=True)
class WeeklySchedule:
    weekday: int  # 1=Sunday ... 7=Saturday
    hour: int
    minute: int = 0

    kind: ClassVar[ReminderKind] = ReminderKind.WEEKLY

    def __post_init__(self):
        check_weekday(self.weekday)
        check_clock(self.hour, self.minute)


@dataclass(frozen=True)
class IntervalSchedule:
    interval_seconds: int

    kind: ClassVar[ReminderKind] = ReminderKind.INTERVAL

    def __post_init__(self):
        if self.interval_seconds < config.MIN_TRIGGER_SECONDS:
            object.__setattr__(self, "interval_seconds", config.MIN_TRIGGER_SECONDS)


ScheduleParams = Union[OneTimeSchedule, DailySchedule, WeeklySchedule, IntervalSchedule]

RECURRING_KINDS = frozenset({ReminderKind.DAILY, ReminderKind.WEEKLY, ReminderKind.INTERVAL})


def _dt_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dt_from_str(value: Optional[str]) -> Optional[datetime]:
    return parse_datetime(value) if value else None


def schedule_to_dict(schedule: ScheduleParams) -> dict:
    """Convert a schedule to a JSON-serializable dict tagged with its kind."""
    data = {"kind": schedule.kind.value}
    if isinstance(schedule, OneTimeSchedule):
        data["instant"] = _dt_to_str(schedule.instant)
        data["delay_seconds"] = schedule.delay_seconds
    elif isinstance(schedule, DailySchedule):
        data["hour"] = schedule.hour
        data["minute"] = schedule.minute
    elif isinstance(schedule, WeeklySchedule):
        data["weekday"] = schedule.weekday
        data["hour"] = schedule.hour
        data["minute"] = schedule.minute
    elif isinstance(schedule, IntervalSchedule):
        data["interval_seconds"] = schedule.interval_seconds
    else:
        raise TypeError(f"Unknown schedule type: {type(schedule).__name__}")
    return data


def schedule_from_dict(data: dict) -> ScheduleParams:
    """Rebuild a schedule from its tagged dict."""
    kind = ReminderKind(data["kind"])
    if kind == ReminderKind.ONE_TIME:
        return OneTimeSchedule(
            instant=_dt_from_str(data.get("instant")),
            delay_seconds=data.get("delay_seconds", config.MIN_TRIGGER_SECONDS),
        )
    if kind == ReminderKind.DAILY:
        return DailySchedule(hour=data["hour"], minute=data.get("minute", 0))
    if kind == ReminderKind.WEEKLY:
        return WeeklySchedule(
            weekday=data["weekday"], hour=data["hour"], minute=data.get("minute", 0)
        )
    return IntervalSchedule(interval_seconds=data["interval_seconds"])


# =============================================================================
# DRAFTS
# =============================================================================

@dataclass(frozen=True)
class Recurrence:
    """Recurrence pattern detected in text.

    Not range-checked here: a user may edit the draft, and out-of-range
    values surface as validation warnings and then InvalidRecurrence on
    confirmation.
    """
    kind: RecurrenceKind
    hour: int = config.DEFAULT_RECURRING_HOUR
    minute: int = config.DEFAULT_RECURRING_MINUTE
    weekday: Optional[int] = None


@dataclass
class ParseDiagnostics:
    action_found: bool = False
    time_found: bool = False
    category_detected: bool = False
    priority_detected: bool = False
    recurring_detected: bool = False


@dataclass
class ReminderDraft:
    """Parser output, owned by the caller until confirmed."""
    original_text: str
    action_text: str
    trigger_seconds: int
    time_description: str
    category: Category
    priority: Priority
    confidence: int
    diagnostics: ParseDiagnostics
    trigger_instant: Optional[datetime] = None
    recurrence: Optional[Recurrence] = None
    note: str = ""

    @property
    def success(self) -> bool:
        return self.confidence > config.SUCCESS_THRESHOLD


@dataclass
class ValidationResult:
    """Non-fatal warnings about a draft. Validation never blocks confirmation."""
    warnings: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)


@dataclass
class ReminderRequest:
    """A confirmed reminder ready for the scheduling engine."""
    text: str
    schedule: ScheduleParams
    category: Category = Category.PERSONAL
    priority: Priority = Priority.MEDIUM

    @property
    def kind(self) -> ReminderKind:
        return self.schedule.kind


# =============================================================================
# RECORDS
# =============================================================================

@dataclass
class ReminderRecord:
    """Durable tracking record for one user-visible reminder.

    Active and snoozed records always hold at least one live alarm id;
    completed and cancelled records hold none.
    """
    key: str
    text: str
    schedule: ScheduleParams
    created_at: datetime
    updated_at: datetime
    state: ReminderState = ReminderState.ACTIVE
    alarm_ids: set[str] = field(default_factory=set)
    category: Category = Category.PERSONAL
    priority: Priority = Priority.MEDIUM
    snooze_count: int = 0
    next_occurrence: Optional[datetime] = None
    strategy: Optional[str] = None

    @property
    def kind(self) -> ReminderKind:
        return self.schedule.kind

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def is_recurring(self) -> bool:
        return self.kind in RECURRING_KINDS

    def payload(self) -> dict:
        """Data handed to the alarm backend and back to the fire callback."""
        return {
            "key": self.key,
            "text": self.text,
            "kind": self.kind.value,
            "category": self.category.value,
            "priority": self.priority.value,
        }

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict"""
        return {
            "key": self.key,
            "text": self.text,
            "kind": self.kind.value,
            "schedule": schedule_to_dict(self.schedule),
            "state": self.state.value,
            "alarm_ids": sorted(self.alarm_ids),
            "category": self.category.value,
            "priority": self.priority.value,
            "snooze_count": self.snooze_count,
            "next_occurrence": _dt_to_str(self.next_occurrence),
            "strategy": self.strategy,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ReminderRecord":
        """Create ReminderRecord from dict"""
        return cls(
            key=data["key"],
            text=data["text"],
            schedule=schedule_from_dict(data["schedule"]),
            state=ReminderState(data["state"]),
            alarm_ids=set(data.get("alarm_ids", [])),
            category=Category(data.get("category", Category.PERSONAL.value)),
            priority=Priority(data.get("priority", Priority.MEDIUM.value)),
            snooze_count=data.get("snooze_count", 0),
            next_occurrence=_dt_from_str(data.get("next_occurrence")),
            strategy=data.get("strategy"),
            created_at=parse_datetime(data["created_at"]),
            updated_at=parse_datetime(data["updated_at"]),
        )


@dataclass
class SnoozeEntry:
    """Diagnostic history of one snooze (not part of the live schedule)."""
    key: str
    snooze_number: int
    delay_minutes: int
    snoozed_at: datetime
    wake_up_time: datetime
    alarm_id: str

    @property
    def entry_id(self) -> str:
        return f"{self.key}:{self.snooze_number}"

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "snooze_number": self.snooze_number,
            "delay_minutes": self.delay_minutes,
            "snoozed_at": self.snoozed_at.isoformat(),
            "wake_up_time": self.wake_up_time.isoformat(),
            "alarm_id": self.alarm_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SnoozeEntry":
        return cls(
            key=data["key"],
            snooze_number=data["snooze_number"],
            delay_minutes=data["delay_minutes"],
            snoozed_at=parse_datetime(data["snoozed_at"]),
            wake_up_time=parse_datetime(data["wake_up_time"]),
            alarm_id=data["alarm_id"],
        )


def record_to_dict(record: ReminderRecord) -> dict:
    return record.to_dict()


def record_from_dict(data: dict) -> ReminderRecord:
    return ReminderRecord.from_dict(data)


def serialize_record(record: ReminderRecord) -> bytes:
    """Encode a record for the key-value store."""
    return json.dumps(record_to_dict(record)).encode("utf-8")


def deserialize_record(raw: bytes) -> ReminderRecord:
    """Decode a record written by serialize_record."""
    return record_from_dict(json.loads(raw.decode("utf-8")))
