"""Alarm backends - the service that actually fires reminders.

The scheduling engine only talks to the AlarmBackend contract. The default
implementation drives an APScheduler AsyncIOScheduler owned by the host.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, Protocol, Union

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from logger import logger
from . import config
from .models import WEEKDAY_NAMES


@dataclass(frozen=True)
class AbsoluteTrigger:
    """Fire once at a wall-clock instant."""
    instant: datetime


@dataclass(frozen=True)
class DurationTrigger:
    """Fire after `seconds`, optionally repeating with that period.

    `start` is the first fire for a repeating trigger (defaults to now + seconds).
    """
    seconds: int
    repeats: bool = False
    start: Optional[datetime] = None


@dataclass(frozen=True)
class CalendarTrigger:
    """Fire at hour:minute, every day or on one weekday (1=Sunday ... 7=Saturday)."""
    hour: int
    minute: int
    weekday: Optional[int] = None
    repeats: bool = True


AlarmTrigger = Union[AbsoluteTrigger, DurationTrigger, CalendarTrigger]

FireCallback = Callable[[dict], Awaitable[None]]


@dataclass(frozen=True)
class AlarmInfo:
    alarm_id: str
    trigger: str
    next_fire: Optional[datetime] = None


class AlarmBackend(Protocol):
    """Contract every alarm backend fulfils."""

    async def register_alarm(self, trigger: AlarmTrigger, payload: dict) -> str:
        """Register an alarm and return its identifier. Raises on rejection."""
        ...

    async def cancel_alarm(self, alarm_id: str) -> None:
        """Remove an alarm. Unknown or already-fired ids are a no-op."""
        ...

    async def list_alarms(self) -> list[AlarmInfo]:
        ...


_CRON_DAYS = ["sun", "mon", "tue", "wed", "thu", "fri", "sat"]


def cron_day(weekday: int) -> str:
    """Map 1=Sunday ... 7=Saturday onto APScheduler's day_of_week names."""
    if weekday not in WEEKDAY_NAMES:
        raise ValueError(f"Weekday {weekday} is out of range (1-7)")
    return _CRON_DAYS[weekday - 1]


class APSchedulerBackend:
    """AlarmBackend on top of an APScheduler AsyncIOScheduler.

    Jobs call `on_fire(payload)` when they run. Job ids double as alarm ids.
    """

    def __init__(self, scheduler: AsyncIOScheduler, on_fire: FireCallback):
        self.scheduler = scheduler
        self.on_fire = on_fire

    def build_trigger(self, trigger: AlarmTrigger):
        """Translate an alarm trigger into an APScheduler trigger."""
        tz = config.TIMEZONE

        if isinstance(trigger, AbsoluteTrigger):
            return DateTrigger(run_date=trigger.instant)

        if isinstance(trigger, DurationTrigger):
            now = datetime.now(tz)
            if trigger.repeats:
                start = trigger.start or now + timedelta(seconds=trigger.seconds)
                return IntervalTrigger(seconds=trigger.seconds, start_date=start, timezone=tz)
            return DateTrigger(run_date=now + timedelta(seconds=trigger.seconds))

        if isinstance(trigger, CalendarTrigger):
            day_of_week = cron_day(trigger.weekday) if trigger.weekday is not None else None
            cron = CronTrigger(
                hour=trigger.hour,
                minute=trigger.minute,
                day_of_week=day_of_week,
                timezone=tz,
            )
            if trigger.repeats:
                return cron
            next_fire = cron.get_next_fire_time(None, datetime.now(tz))
            return DateTrigger(run_date=next_fire)

        raise TypeError(f"Unknown trigger type: {type(trigger).__name__}")

    async def register_alarm(self, trigger: AlarmTrigger, payload: dict) -> str:
        alarm_id = f"alarm_{uuid.uuid4().hex}"
        job = self.scheduler.add_job(
            self.on_fire,
            trigger=self.build_trigger(trigger),
            args=[payload],
            id=alarm_id,
            name=f"reminder:{payload.get('text', '')[:30]}",
            replace_existing=True,
        )
        logger.debug(f"Registered alarm {job.id} for {payload.get('key')}")
        return job.id

    async def cancel_alarm(self, alarm_id: str) -> None:
        try:
            self.scheduler.remove_job(alarm_id)
            logger.debug(f"Removed alarm {alarm_id}")
        except JobLookupError:
            logger.debug(f"Alarm {alarm_id} already gone")

    async def list_alarms(self) -> list[AlarmInfo]:
        return [
            AlarmInfo(
                alarm_id=job.id,
                trigger=str(job.trigger),
                next_fire=getattr(job, "next_run_time", None),
            )
            for job in self.scheduler.get_jobs()
            if job.id.startswith("alarm_")
        ]
