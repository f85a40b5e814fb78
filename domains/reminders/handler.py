"""Reminder intent handler and service wiring."""

import re
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from logger import logger
from . import config
from .backends import APSchedulerBackend
from .errors import InvalidRecurrence, ReminderError
from .executor import Notifier, execute_reminder
from .lifecycle import LifecycleManager
from .models import (
    DailySchedule,
    IntervalSchedule,
    OneTimeSchedule,
    ReminderDraft,
    ReminderRecord,
    ReminderState,
    ScheduleParams,
    ValidationResult,
    WEEKDAY_NAMES,
    WeeklySchedule,
)
from .parser import confirm_draft, is_reminder_request, parse_reminder, validate_draft
from .scheduler import SchedulingEngine
from .store import KeyValueStore, RecordStore, SnoozeLog, SQLiteStore
from .suggestions import PatternAnalyzer, Suggestion
from .timeparse import DateResolver

LAST_MAINTENANCE_KEY = "last_maintenance"

LIST_COMMANDS = ["list reminders", "show reminders", "my reminders", "reminders"]
INSIGHT_COMMANDS = ["reminder insights", "reminder suggestions", "reminder habits"]
_SNOOZE_COMMAND_RE = re.compile(r"^snooze reminder\s+(\S+)(?:\s+(\d+))?", re.IGNORECASE)


class ReminderService:
    """Explicitly wired reminder components for one host process."""

    def __init__(
        self,
        engine: SchedulingEngine,
        lifecycle: LifecycleManager,
        kv: KeyValueStore,
        date_resolver: Optional[DateResolver] = None,
    ):
        self.engine = engine
        self.lifecycle = lifecycle
        self.kv = kv
        self.date_resolver = date_resolver
        self.patterns = PatternAnalyzer(lifecycle.records)

    async def insights(self, now: datetime = None) -> list[Suggestion]:
        """Suggestions drawn from the user's reminder history."""
        return await self.patterns.suggestions(now)

    async def similar_to(self, text: str) -> list[Suggestion]:
        """Completed reminders that look like `text`."""
        return await self.patterns.suggestions_for_input(text)

    def preview(self, text: str, now: datetime = None) -> tuple[ReminderDraft, ValidationResult]:
        """Parse text and validate the draft, without scheduling anything."""
        now = now or datetime.now(config.TIMEZONE)
        draft = parse_reminder(text, now, self.date_resolver)
        return draft, validate_draft(draft, now)

    async def confirm(self, draft: ReminderDraft, now: datetime = None) -> ReminderRecord:
        """Schedule a draft the user accepted.

        Raises:
            InvalidRecurrence, SchedulingFailed, BackendUnavailable
        """
        now = now or datetime.now(config.TIMEZONE)
        request = confirm_draft(draft, now)
        return await self.engine.schedule(request, now)

    async def run_daily_maintenance(self, now: datetime = None) -> bool:
        """Sweep snooze history and renew recurring reminders, once per day.

        Returns:
            True if the sweep ran, False if it already ran today
        """
        now = now or datetime.now(config.TIMEZONE)
        today = now.date().isoformat()

        last_run = await self.kv.get(config.META_NAMESPACE, LAST_MAINTENANCE_KEY)
        if last_run is not None and last_run.decode("utf-8") == today:
            logger.debug(f"Reminder maintenance already ran on {today}")
            return False

        cleaned = await self.lifecycle.cleanup_expired(now)
        renewed = await self.lifecycle.renew_due(now)
        await self.kv.set(config.META_NAMESPACE, LAST_MAINTENANCE_KEY, today.encode("utf-8"))

        logger.info(f"Reminder maintenance done: {cleaned} snoozes cleaned, {renewed} renewed")
        return True

    def start_maintenance_job(self, scheduler: AsyncIOScheduler, hour: int = 3):
        """Run the daily maintenance sweep from the host's scheduler.

        Args:
            scheduler: APScheduler instance
            hour: Local hour to run at
        """
        scheduler.add_job(
            self.run_daily_maintenance,
            trigger=CronTrigger(hour=hour, minute=0, timezone=config.TIMEZONE),
            id="reminder_maintenance",
            name="Reminder maintenance",
            replace_existing=True,
        )
        logger.info(f"Started reminder maintenance (daily at {hour:02d}:00)")


def build_reminder_service(
    scheduler: AsyncIOScheduler,
    notify: Optional[Notifier] = None,
    db_path: str = None,
    kv: Optional[KeyValueStore] = None,
) -> ReminderService:
    """Wire the default stack: SQLite store, APScheduler backend, engine, lifecycle.

    Args:
        scheduler: APScheduler instance owned by the host
        notify: Host coroutine called with the payload when a reminder fires
        db_path: SQLite file (defaults to BLINK_REMINDERS_DB)
        kv: Use this store instead of SQLite (e.g. SupabaseStore)

    Returns:
        ReminderService
    """
    kv = kv or SQLiteStore(db_path)

    async def on_fire(payload: dict):
        await execute_reminder(payload, notify)
        await lifecycle.on_alarm_fired(payload)

    records = RecordStore(kv)
    backend = APSchedulerBackend(scheduler, on_fire)
    engine = SchedulingEngine(backend, records, on_fire=on_fire)
    lifecycle = LifecycleManager(engine, records, SnoozeLog(kv))
    return ReminderService(engine, lifecycle, kv)


def describe_schedule(schedule: ScheduleParams) -> str:
    """Short recurrence description for chat replies."""
    if isinstance(schedule, DailySchedule):
        return f"every day at {schedule.hour:02d}:{schedule.minute:02d}"
    if isinstance(schedule, WeeklySchedule):
        day = WEEKDAY_NAMES[schedule.weekday].capitalize()
        return f"every {day} at {schedule.hour:02d}:{schedule.minute:02d}"
    if isinstance(schedule, IntervalSchedule):
        return f"every {schedule.interval_seconds // 60} min"
    return "once"


def short_id(key: str) -> str:
    return key.removeprefix("remind_")[:8]


async def handle_reminder_intent(
    content: str,
    service: ReminderService,
    now: datetime = None,
) -> str | None:
    """Handle reminder-related requests.

    Args:
        content: Message content
        service: Wired reminder service
        now: Current time (defaults to now in the configured timezone)

    Returns:
        Response string if handled, None if not a reminder request
    """
    content_lower = content.lower().strip()

    # List reminders
    if content_lower in LIST_COMMANDS:
        return await _list_reminders(service)

    # Usage insights
    if content_lower in INSIGHT_COMMANDS:
        return await _describe_insights(service, now)

    # Cancel reminder
    if content_lower.startswith("cancel reminder"):
        parts = content.split()
        if len(parts) < 3:
            return "Which one? Use `list reminders` to see your reminders."
        return await _cancel_reminder(service, parts[-1], now)

    # Snooze reminder
    match = _SNOOZE_COMMAND_RE.match(content.strip())
    if match:
        minutes = int(match.group(2)) if match.group(2) else config.DEFAULT_SNOOZE_MINUTES
        return await _snooze_reminder(service, match.group(1), minutes, now)

    # Check if it looks like a reminder request
    if not is_reminder_request(content):
        return None

    draft, validation = service.preview(content, now)
    if not draft.success:
        return (
            f"I couldn't work out that reminder ({draft.confidence}% confidence). "
            "Try something like \"remind me to call mom at 7 PM\"."
        )

    try:
        record = await service.confirm(draft, now)
    except InvalidRecurrence as e:
        return f"That recurring time doesn't work: {e}"
    except ReminderError as e:
        logger.error(f"Failed to add reminder: {e}")
        return f"Failed to set reminder: {e}. Please try again."

    if record.is_recurring:
        when = describe_schedule(record.schedule)
    else:
        when = draft.time_description

    lines = [f"**Reminder set {when}**", "", f"> {record.text}"]
    for warning in validation.warnings:
        lines.append(f"⚠ {warning}")
    for similar in await service.similar_to(record.text):
        lines.append(f"💡 {similar.description}")
    return "\n".join(lines)


async def _describe_insights(service: ReminderService, now: datetime = None) -> str:
    """Summarise reminder habits as chat text."""
    suggestions = await service.insights(now)
    if not suggestions:
        return "Not enough reminder history for insights yet."

    lines = ["**Your reminder habits:**\n"]
    for s in suggestions:
        lines.append(f"- **{s.title}** - {s.description}")
    return "\n".join(lines)


async def _find_record(service: ReminderService, partial: str) -> Optional[ReminderRecord]:
    """Find a live record by key prefix or suffix."""
    for record in await service.lifecycle.list_records():
        if record.is_terminal:
            continue
        if short_id(record.key).startswith(partial) or record.key.startswith(partial) \
                or record.key.endswith(partial):
            return record
    return None


async def _list_reminders(service: ReminderService) -> str:
    """List live reminders, soonest first."""
    records = [r for r in await service.lifecycle.list_records() if not r.is_terminal]

    if not records:
        return "No active reminders."

    def next_fire(record: ReminderRecord) -> Optional[datetime]:
        if isinstance(record.schedule, OneTimeSchedule):
            return record.schedule.instant
        return record.next_occurrence

    def sort_key(record: ReminderRecord):
        fire_at = next_fire(record)
        return (fire_at is None, fire_at.timestamp() if fire_at else 0.0)

    records.sort(key=sort_key)

    lines = ["**Your reminders:**\n"]
    for r in records:
        fire_at = next_fire(r)
        when = fire_at.astimezone(config.TIMEZONE).strftime("%a %d %b %H:%M") if fire_at else "pending"
        status = " (snoozed)" if r.state == ReminderState.SNOOZED else ""
        repeat = f" [{describe_schedule(r.schedule)}]" if r.is_recurring else ""
        lines.append(f"- {when} - {r.text}{repeat}{status}")
        lines.append(f"  `cancel reminder {short_id(r.key)}`")

    return "\n".join(lines)


async def _cancel_reminder(service: ReminderService, partial: str, now: datetime = None) -> str:
    """Cancel a reminder by partial ID."""
    record = await _find_record(service, partial)
    if record is None:
        return "Reminder not found. Use `list reminders` to see your reminders."

    await service.lifecycle.cancel(record.key, now)
    return f"Cancelled reminder: {record.text}"


async def _snooze_reminder(service: ReminderService, partial: str, minutes: int, now: datetime = None) -> str:
    """Snooze a reminder by partial ID."""
    record = await _find_record(service, partial)
    if record is None:
        return "Reminder not found. Use `list reminders` to see your reminders."

    try:
        await service.lifecycle.snooze(record.key, minutes, now)
    except ReminderError as e:
        logger.error(f"Failed to snooze reminder {record.key}: {e}")
        return f"Failed to snooze reminder: {e}. Please try again."
    return f"Snoozed for {minutes} min: {record.text}"
