"""Assemble reminder drafts from natural language and validate them.

Examples:
- "call mom in 30 minutes"
- "remind me to take medicine at 7 PM"
- "daily reminder to exercise at 8 AM"
- "weekly reminder to clean house on Sunday"
"""

import re
from datetime import datetime, timedelta
from typing import Optional

from logger import logger
from . import config
from .models import (
    Category,
    DailySchedule,
    OneTimeSchedule,
    ParseDiagnostics,
    Priority,
    RecurrenceKind,
    ReminderDraft,
    ReminderRequest,
    ValidationResult,
    WeeklySchedule,
    check_clock,
    check_weekday,
)
from .resolver import (
    Found,
    describe_time,
    detect_category,
    detect_priority,
    detect_recurrence,
    resolve_action,
    resolve_time,
)
from .timeparse import DateResolver


def parse_reminder(
    text: str,
    now: datetime = None,
    date_resolver: Optional[DateResolver] = None,
) -> ReminderDraft:
    """Parse a reminder from natural language.

    Never raises: anything unusable lowers the confidence instead.

    Args:
        text: Natural language reminder text
        now: Current time (defaults to now in the configured timezone)
        date_resolver: Date/time sub-resolver (defaults to the rule-based one)

    Returns:
        ReminderDraft with per-field diagnostics and a 0-100 confidence
    """
    now = now or datetime.now(config.TIMEZONE)
    text = text.strip() if isinstance(text, str) else ""

    try:
        return _assemble(text, now, date_resolver)
    except Exception as e:
        logger.error(f"Failed to parse reminder {text!r}: {e}")
        return _default_draft(text, now, note="Failed to parse - using defaults")


def _assemble(text: str, now: datetime, date_resolver: Optional[DateResolver]) -> ReminderDraft:
    diagnostics = ParseDiagnostics()
    confidence = 0

    # Step 1: action
    action = resolve_action(text)
    if isinstance(action, Found):
        action_text = action.value
        diagnostics.action_found = True
        confidence += config.ACTION_CONFIDENCE
    else:
        action_text = text
        if text:
            confidence += config.ACTION_FALLBACK_CONFIDENCE

    # Step 2: time
    time = resolve_time(text, now, date_resolver)
    if isinstance(time, Found):
        trigger_seconds = time.value.seconds
        trigger_instant = time.value.instant
        time_description = time.value.description
        clock = time.value.clock
        diagnostics.time_found = True
        confidence += config.TIME_CONFIDENCE
    else:
        trigger_seconds = config.DEFAULT_TRIGGER_SECONDS
        trigger_instant = None
        time_description = _default_description(now)
        clock = None
        confidence += config.TIME_DEFAULT_CONFIDENCE

    # Step 3: category
    category = Category.PERSONAL
    detected = detect_category(text)
    if isinstance(detected, Found):
        category = detected.value
        diagnostics.category_detected = True
        confidence += config.CATEGORY_CONFIDENCE

    # Step 4: priority
    priority = Priority.MEDIUM
    detected = detect_priority(text)
    if isinstance(detected, Found):
        priority = detected.value
        diagnostics.priority_detected = True
        confidence += config.PRIORITY_CONFIDENCE

    # Step 5: recurrence
    recurrence = None
    detected = detect_recurrence(text, clock)
    if isinstance(detected, Found):
        recurrence = detected.value
        diagnostics.recurring_detected = True
        confidence += config.RECURRENCE_CONFIDENCE

    draft = ReminderDraft(
        original_text=text,
        action_text=action_text,
        trigger_seconds=trigger_seconds,
        time_description=time_description,
        category=category,
        priority=priority,
        confidence=min(confidence, 100),
        diagnostics=diagnostics,
        trigger_instant=trigger_instant,
        recurrence=recurrence,
    )
    draft.note = build_parsing_note(diagnostics)

    logger.debug(f"Parsed {text!r} with confidence {draft.confidence}%")
    return draft


def _default_description(now: datetime) -> str:
    seconds = config.DEFAULT_TRIGGER_SECONDS
    return describe_time(now + timedelta(seconds=seconds), seconds, now)


def _default_draft(text: str, now: datetime, note: str) -> ReminderDraft:
    return ReminderDraft(
        original_text=text,
        action_text=text,
        trigger_seconds=config.DEFAULT_TRIGGER_SECONDS,
        time_description=_default_description(now),
        category=Category.PERSONAL,
        priority=Priority.MEDIUM,
        confidence=0,
        diagnostics=ParseDiagnostics(),
        note=note,
    )


def build_parsing_note(diagnostics: ParseDiagnostics) -> str:
    """Short summary of what the parser understood, for display."""
    notes = []
    if diagnostics.action_found:
        notes.append("✓ Action detected")
    if diagnostics.time_found:
        notes.append("✓ Time parsed")
    else:
        notes.append("⚠ Using default time (5 min)")
    if diagnostics.category_detected:
        notes.append("✓ Category auto-detected")
    if diagnostics.priority_detected:
        notes.append("✓ Priority detected")
    if diagnostics.recurring_detected:
        notes.append("✓ Recurring pattern found")
    return f"Smart parsed: {', '.join(notes)}"


def validate_draft(draft: ReminderDraft, now: datetime = None) -> ValidationResult:
    """Collect non-fatal warnings about a draft.

    Validation only annotates; it never blocks confirmation.
    """
    now = now or datetime.now(config.TIMEZONE)
    result = ValidationResult()

    if draft.confidence < config.LOW_CONFIDENCE_THRESHOLD:
        result.warnings.append("Low confidence in parsing - please review the reminder details")

    if draft.trigger_instant is not None and _is_past(draft.trigger_instant, now):
        result.warnings.append("Scheduled time appears to be in the past")
        result.suggestions.append('Consider using "tomorrow" or a specific future date')

    if draft.trigger_seconds > config.FAR_FUTURE_SECONDS:
        result.warnings.append("Reminder is scheduled very far in the future")
        result.suggestions.append("Consider setting a nearer reminder or using recurring reminders")

    if draft.trigger_seconds < config.MIN_TRIGGER_SECONDS:
        result.warnings.append("Reminder time is very soon (less than 1 minute)")
        result.suggestions.append("Consider setting a reminder for at least 1 minute from now")

    if len(draft.action_text.strip()) < config.MIN_ACTION_LENGTH:
        result.warnings.append("Reminder text is very short")
        result.suggestions.append("Try being more specific about what you want to be reminded of")

    recurrence = draft.recurrence
    if recurrence is not None:
        if not (0 <= recurrence.hour <= 23 and 0 <= recurrence.minute <= 59):
            result.warnings.append(f"Invalid time for {recurrence.kind.value} reminder")
            result.suggestions.append("Please use a valid time format (0-23 hours, 0-59 minutes)")
        if (recurrence.kind == RecurrenceKind.WEEKLY and recurrence.weekday is not None
                and not 1 <= recurrence.weekday <= 7):
            result.warnings.append("Invalid weekday for weekly reminder")
            result.suggestions.append("Use a weekday from Sunday (1) to Saturday (7)")

    return result


def _is_past(instant: datetime, now: datetime) -> bool:
    try:
        return instant < now
    except TypeError:
        # naive vs aware: treat the naive one as wall-clock time in now's zone
        return instant.replace(tzinfo=now.tzinfo) < now


def confirm_draft(draft: ReminderDraft, now: datetime = None) -> ReminderRequest:
    """Turn a (possibly user-edited) draft into a schedulable request.

    Args:
        draft: Parsed draft
        now: Current time; a one-time instant that has passed by now is
            dropped in favour of the relative delay

    Returns:
        ReminderRequest for the scheduling engine

    Raises:
        InvalidRecurrence: hour, minute or weekday out of range
    """
    now = now or datetime.now(config.TIMEZONE)
    recurrence = draft.recurrence
    text = draft.action_text.strip() or draft.original_text

    if recurrence is None:
        instant = draft.trigger_instant
        if instant is not None and _is_past(instant, now):
            logger.warning(f"Draft instant {instant.isoformat()} has passed, using relative delay")
            instant = None
        schedule = OneTimeSchedule(instant=instant, delay_seconds=draft.trigger_seconds)
    elif recurrence.kind == RecurrenceKind.DAILY:
        check_clock(recurrence.hour, recurrence.minute)
        schedule = DailySchedule(hour=recurrence.hour, minute=recurrence.minute)
    else:
        weekday = recurrence.weekday if recurrence.weekday is not None else 2
        check_weekday(weekday)
        check_clock(recurrence.hour, recurrence.minute)
        schedule = WeeklySchedule(weekday=weekday, hour=recurrence.hour, minute=recurrence.minute)

    return ReminderRequest(
        text=text,
        schedule=schedule,
        category=draft.category,
        priority=draft.priority,
    )


def get_input_suggestions() -> list[str]:
    """Example phrases the parser understands, for an input box."""
    return [
        "Remind me to call mom at 7 PM",
        "Take medicine in 30 minutes",
        "Daily reminder to exercise at 8 AM",
        "Meeting with John tomorrow at 2 PM",
        "Buy groceries this evening",
        "Pay bills by Friday",
        "Doctor appointment next Tuesday at 10 AM",
        "Weekly reminder to clean house on Sunday",
        "Urgent: Submit report today",
    ]


def is_reminder_request(text: str) -> bool:
    """Quick check if text looks like a reminder request.

    Args:
        text: Message text to check

    Returns:
        True if likely a reminder request
    """
    text_lower = (text or "").lower()

    # Strong indicators
    if any(kw in text_lower for kw in ("remind me", "reminder", "don't forget", "remember to")):
        return True

    # Time + day, or a relative offset
    has_time = bool(re.search(r"\d{1,2}(?::\d{2})?\s*(?:am|pm)\b|\b\d{1,2}:\d{2}\b", text_lower))
    has_day = bool(re.search(
        r"\b(tomorrow|today|tonight|monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b",
        text_lower,
    ))
    has_offset = bool(re.search(r"\bin\s+\d+\s*(?:minutes?|mins?|hours?|days?)\b", text_lower))

    return (has_time and has_day) or has_offset
