"""Reminders domain - natural language reminders with durable scheduling.

Text is parsed into a draft, confirmed into a request, scheduled onto an
alarm backend (APScheduler by default) and tracked as a record in a
key-value store.
"""

from .errors import (
    BackendUnavailable,
    InvalidRecurrence,
    ParseAmbiguous,
    RecordNotFound,
    ReminderError,
    SchedulingFailed,
)
from .models import (
    Category,
    DailySchedule,
    IntervalSchedule,
    OneTimeSchedule,
    Priority,
    Recurrence,
    RecurrenceKind,
    ReminderDraft,
    ReminderKind,
    ReminderRecord,
    ReminderRequest,
    ReminderState,
    SnoozeEntry,
    ValidationResult,
    WeeklySchedule,
    deserialize_record,
    serialize_record,
)
from .parser import (
    confirm_draft,
    get_input_suggestions,
    is_reminder_request,
    parse_reminder,
    validate_draft,
)
from .backends import APSchedulerBackend, AbsoluteTrigger, CalendarTrigger, DurationTrigger
from .scheduler import SchedulingEngine, compute_first_occurrence
from .store import MemoryStore, RecordStore, SnoozeLog, SQLiteStore, SupabaseStore
from .lifecycle import LifecycleManager
from .executor import execute_reminder
from .suggestions import (
    PatternAnalyzer,
    Suggestion,
    UsagePatterns,
    analyze_patterns,
    find_similar_reminders,
    generate_suggestions,
)
from .handler import ReminderService, build_reminder_service, handle_reminder_intent

__all__ = [
    "BackendUnavailable",
    "InvalidRecurrence",
    "ParseAmbiguous",
    "RecordNotFound",
    "ReminderError",
    "SchedulingFailed",
    "Category",
    "DailySchedule",
    "IntervalSchedule",
    "OneTimeSchedule",
    "Priority",
    "Recurrence",
    "RecurrenceKind",
    "ReminderDraft",
    "ReminderKind",
    "ReminderRecord",
    "ReminderRequest",
    "ReminderState",
    "SnoozeEntry",
    "ValidationResult",
    "WeeklySchedule",
    "deserialize_record",
    "serialize_record",
    "confirm_draft",
    "get_input_suggestions",
    "is_reminder_request",
    "parse_reminder",
    "validate_draft",
    "APSchedulerBackend",
    "AbsoluteTrigger",
    "CalendarTrigger",
    "DurationTrigger",
    "SchedulingEngine",
    "compute_first_occurrence",
    "MemoryStore",
    "RecordStore",
    "SnoozeLog",
    "SQLiteStore",
    "SupabaseStore",
    "LifecycleManager",
    "execute_reminder",
    "PatternAnalyzer",
    "Suggestion",
    "UsagePatterns",
    "analyze_patterns",
    "find_similar_reminders",
    "generate_suggestions",
    "ReminderService",
    "build_reminder_service",
    "handle_reminder_intent",
]
