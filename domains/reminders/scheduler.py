"""Scheduling engine - turns confirmed reminders into live alarms and records."""

import math
import uuid
from datetime import datetime, timedelta
from typing import Iterable, Optional

from logger import logger
from . import config
from .backends import AlarmBackend, AlarmInfo, FireCallback
from .errors import BackendUnavailable, SchedulingFailed
from .models import (
    DailySchedule,
    IntervalSchedule,
    OneTimeSchedule,
    ReminderRecord,
    ReminderRequest,
    ReminderState,
    ScheduleParams,
    WeeklySchedule,
)
from .store import RecordStore
from .strategies import (
    CalendarStrategy,
    DurationStrategy,
    FirePlan,
    SoftwareTimers,
    StrategyUnsupported,
    TimerStrategy,
)

DAY_SECONDS = 86400
WEEK_SECONDS = 7 * DAY_SECONDS


def new_record_key() -> str:
    return f"remind_{uuid.uuid4().hex}"


def compute_first_occurrence(schedule: ScheduleParams, now: datetime) -> datetime:
    """Next time a schedule fires.

    Daily and weekly results are always strictly after `now`.

    Args:
        schedule: Schedule to evaluate
        now: Current time; the result carries its tzinfo

    Returns:
        First fire time
    """
    if isinstance(schedule, DailySchedule):
        candidate = now.replace(hour=schedule.hour, minute=schedule.minute, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    if isinstance(schedule, WeeklySchedule):
        # 1=Sunday ... 7=Saturday onto Python's 0=Monday ... 6=Sunday
        target = (schedule.weekday - 2) % 7
        days_ahead = (target - now.weekday()) % 7
        candidate = (now + timedelta(days=days_ahead)).replace(
            hour=schedule.hour, minute=schedule.minute, second=0, microsecond=0
        )
        if candidate <= now:
            candidate += timedelta(days=7)
        return candidate

    if isinstance(schedule, IntervalSchedule):
        return now + timedelta(seconds=schedule.interval_seconds)

    if schedule.instant is not None:
        return schedule.instant
    return now + timedelta(seconds=schedule.delay_seconds)


def build_fire_plan(schedule: ScheduleParams, now: datetime) -> FirePlan:
    first_fire = compute_first_occurrence(schedule, now)
    delay = max(1, math.ceil((first_fire - now).total_seconds()))

    if isinstance(schedule, DailySchedule):
        period = DAY_SECONDS
    elif isinstance(schedule, WeeklySchedule):
        period = WEEK_SECONDS
    elif isinstance(schedule, IntervalSchedule):
        period = schedule.interval_seconds
    else:
        period = None

    return FirePlan(schedule=schedule, first_fire=first_fire, delay_seconds=delay,
                    period_seconds=period)


def default_strategies(backend: AlarmBackend, timers: SoftwareTimers) -> list:
    strategies = [CalendarStrategy(backend), DurationStrategy(backend)]
    if config.SOFTWARE_TIMER_FALLBACK:
        strategies.append(TimerStrategy(timers))
    return strategies


class SchedulingEngine:
    """Registers alarms through ordered strategies and persists new records.

    Args:
        backend: Alarm backend
        records: Record repository
        strategies: Registration strategies in order (defaults to calendar,
            duration, then software timers if enabled)
        on_fire: Callback for software timers
    """

    def __init__(
        self,
        backend: AlarmBackend,
        records: RecordStore,
        strategies: Optional[list] = None,
        on_fire: Optional[FireCallback] = None,
    ):
        self.backend = backend
        self.records = records
        self.timers = SoftwareTimers(on_fire)
        self.strategies = strategies if strategies is not None else default_strategies(
            backend, self.timers
        )

    async def register(self, plan: FirePlan, payload: dict) -> tuple[str, str]:
        """Register one alarm using the first strategy that succeeds.

        Returns:
            (alarm_id, strategy_name)

        Raises:
            BackendUnavailable: every attempted strategy reported the backend down
            SchedulingFailed: all strategies exhausted
        """
        key = payload.get("key")
        failures = []

        for strategy in self.strategies:
            try:
                alarm_id = await strategy.register(plan, payload)
            except StrategyUnsupported as e:
                logger.debug(f"Strategy {strategy.name} skipped for {key}: {e}")
                continue
            except Exception as e:
                logger.warning(f"Strategy {strategy.name} failed for {key}: {e}")
                failures.append(e)
                continue

            if alarm_id:
                return alarm_id, strategy.name

            logger.warning(f"Strategy {strategy.name} returned no alarm id for {key}")
            failures.append(SchedulingFailed(f"{strategy.name} returned no alarm id"))

        if failures and all(isinstance(e, BackendUnavailable) for e in failures):
            raise BackendUnavailable(f"Alarm backend unavailable for {key}: {failures[-1]}")
        raise SchedulingFailed(f"All scheduling strategies failed for {key}")

    async def schedule(self, request: ReminderRequest, now: datetime = None) -> ReminderRecord:
        """Register alarms for a request and persist a new active record.

        Args:
            request: Confirmed reminder
            now: Current time (defaults to now in the configured timezone)

        Returns:
            The saved record

        Raises:
            SchedulingFailed: one-time instant already passed, or no strategy worked
            BackendUnavailable
        """
        now = now or datetime.now(config.TIMEZONE)
        plan = build_fire_plan(request.schedule, now)

        schedule = request.schedule
        if isinstance(schedule, OneTimeSchedule):
            if plan.first_fire <= now:
                raise SchedulingFailed(
                    f"One-time reminder '{request.text}' is in the past "
                    f"({plan.first_fire.isoformat()})"
                )
            # pin the absolute fire time so the record survives restarts
            schedule = OneTimeSchedule(instant=plan.first_fire, delay_seconds=schedule.delay_seconds)

        record = ReminderRecord(
            key=new_record_key(),
            text=request.text,
            schedule=schedule,
            created_at=now,
            updated_at=now,
            category=request.category,
            priority=request.priority,
        )

        alarm_id, strategy = await self.register(plan, record.payload())
        record.alarm_ids = {alarm_id}
        record.strategy = strategy
        if record.is_recurring:
            record.next_occurrence = plan.first_fire

        try:
            await self.records.save(record)
        except Exception as e:
            logger.error(f"Failed to persist reminder {record.key}, releasing alarm: {e}")
            await self.release_alarms([alarm_id])
            raise

        logger.info(
            f"Scheduled {record.kind.value} reminder {record.key} via {strategy}: "
            f"'{record.text}' first at {plan.first_fire.isoformat()}"
        )
        return record

    async def renew_if_due(self, record: ReminderRecord, now: datetime = None) -> Optional[ReminderRecord]:
        """Re-register a recurring record whose next occurrence has passed.

        A snoozed recurring record goes back to active once its snooze
        wake-up has passed. The caller persists the returned record.

        Returns:
            The updated record, or None if nothing was due
        """
        now = now or datetime.now(config.TIMEZONE)
        if record.is_terminal or not record.is_recurring:
            return None
        if record.next_occurrence is not None and record.next_occurrence > now:
            return None

        plan = build_fire_plan(record.schedule, now)
        alarm_id, strategy = await self.register(plan, record.payload())

        old_ids = set(record.alarm_ids)
        record.alarm_ids = {alarm_id}
        record.strategy = strategy
        record.next_occurrence = plan.first_fire
        record.updated_at = now
        record.state = ReminderState.ACTIVE
        await self.release_alarms(old_ids)

        logger.info(f"Renewed {record.key}, next at {plan.first_fire.isoformat()}")
        return record

    async def release_alarms(self, alarm_ids: Iterable[str]) -> None:
        """Cancel alarms best-effort. Unknown ids are ignored."""
        for alarm_id in list(alarm_ids):
            if self.timers.owns(alarm_id):
                self.timers.cancel(alarm_id)
                continue
            try:
                await self.backend.cancel_alarm(alarm_id)
            except Exception as e:
                logger.warning(f"Failed to cancel alarm {alarm_id}: {e}")

    async def list_alarms(self) -> list[AlarmInfo]:
        """Backend alarms plus live software timers."""
        alarms = list(await self.backend.list_alarms())
        alarms.extend(AlarmInfo(alarm_id=t, trigger="software timer") for t in self.timers.live_ids())
        return alarms
