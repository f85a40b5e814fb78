"""Alarm registration strategies, tried in order by the scheduling engine.

1. CalendarStrategy - absolute instant or calendar trigger (most precise)
2. DurationStrategy - relative delay or repeating interval
3. TimerStrategy    - in-process asyncio timers, for when the backend is unusable
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from logger import logger
from .backends import (
    AbsoluteTrigger,
    AlarmBackend,
    CalendarTrigger,
    DurationTrigger,
    FireCallback,
)
from .models import (
    DailySchedule,
    IntervalSchedule,
    OneTimeSchedule,
    ScheduleParams,
    WeeklySchedule,
)


class StrategyUnsupported(Exception):
    """The strategy cannot express this schedule; try the next one."""
    pass


@dataclass(frozen=True)
class FirePlan:
    """Concrete fire parameters computed from a schedule."""
    schedule: ScheduleParams
    first_fire: datetime
    delay_seconds: int  # now -> first_fire
    period_seconds: Optional[int] = None  # None for one-time


class CalendarStrategy:
    name = "calendar"

    def __init__(self, backend: AlarmBackend):
        self.backend = backend

    async def register(self, plan: FirePlan, payload: dict) -> str:
        schedule = plan.schedule
        if isinstance(schedule, OneTimeSchedule):
            trigger = AbsoluteTrigger(instant=plan.first_fire)
        elif isinstance(schedule, DailySchedule):
            trigger = CalendarTrigger(hour=schedule.hour, minute=schedule.minute)
        elif isinstance(schedule, WeeklySchedule):
            trigger = CalendarTrigger(
                hour=schedule.hour, minute=schedule.minute, weekday=schedule.weekday
            )
        else:
            raise StrategyUnsupported(f"No calendar trigger for {schedule.kind.value}")
        return await self.backend.register_alarm(trigger, payload)


class DurationStrategy:
    name = "duration"

    def __init__(self, backend: AlarmBackend):
        self.backend = backend

    async def register(self, plan: FirePlan, payload: dict) -> str:
        if plan.period_seconds:
            trigger = DurationTrigger(
                seconds=plan.period_seconds, repeats=True, start=plan.first_fire
            )
        else:
            trigger = DurationTrigger(seconds=plan.delay_seconds, repeats=False)
        return await self.backend.register_alarm(trigger, payload)


class SoftwareTimers:
    """In-process timers on the running asyncio loop.

    Timers do not survive a restart; the daily renewal sweep moves recurring
    reminders back onto the backend.
    """

    prefix = "timer_"

    def __init__(self, on_fire: Optional[FireCallback] = None):
        self.on_fire = on_fire
        self._handles: dict[str, asyncio.TimerHandle] = {}

    def start(self, delay_seconds: int, payload: dict, period_seconds: Optional[int] = None) -> str:
        """Arm a timer and return its id. Requires a running event loop."""
        loop = asyncio.get_running_loop()
        timer_id = f"{self.prefix}{uuid.uuid4().hex}"
        self._arm(loop, timer_id, delay_seconds, payload, period_seconds)
        return timer_id

    def _arm(self, loop, timer_id, delay, payload, period):
        self._handles[timer_id] = loop.call_later(
            delay, self._fire, loop, timer_id, payload, period
        )

    def _fire(self, loop, timer_id, payload, period):
        if period:
            self._arm(loop, timer_id, period, payload, period)
        else:
            self._handles.pop(timer_id, None)
        if self.on_fire is not None:
            loop.create_task(self._run_callback(timer_id, payload))

    async def _run_callback(self, timer_id: str, payload: dict):
        try:
            await self.on_fire(payload)
        except Exception as e:
            logger.error(f"Software timer {timer_id} callback failed: {e}")

    def owns(self, alarm_id: str) -> bool:
        return alarm_id.startswith(self.prefix)

    def cancel(self, timer_id: str) -> bool:
        handle = self._handles.pop(timer_id, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def live_ids(self) -> list[str]:
        return list(self._handles)


class TimerStrategy:
    name = "timer"

    def __init__(self, timers: SoftwareTimers):
        self.timers = timers

    async def register(self, plan: FirePlan, payload: dict) -> str:
        return self.timers.start(plan.delay_seconds, payload, plan.period_seconds)
