"""Tests for the scheduling engine and registration strategies."""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

import domains.reminders.config as config
from domains.reminders.backends import (
    AbsoluteTrigger,
    CalendarTrigger,
    DurationTrigger,
)
from domains.reminders.errors import BackendUnavailable, SchedulingFailed
from domains.reminders.models import (
    Category,
    DailySchedule,
    IntervalSchedule,
    OneTimeSchedule,
    ReminderRequest,
    ReminderState,
    WeeklySchedule,
)
from domains.reminders.scheduler import SchedulingEngine, compute_first_occurrence
from domains.reminders.strategies import CalendarStrategy, DurationStrategy, SoftwareTimers

from conftest import FakeAlarmBackend


def backend_only_engine(backend, records):
    return SchedulingEngine(
        backend, records, strategies=[CalendarStrategy(backend), DurationStrategy(backend)]
    )


class TestComputeFirstOccurrence:

    def test_daily_later_today(self, now):
        assert compute_first_occurrence(DailySchedule(hour=18), now) == now.replace(hour=18)

    def test_daily_already_passed(self, now):
        assert compute_first_occurrence(DailySchedule(hour=8), now) == now.replace(hour=8) + timedelta(days=1)

    def test_daily_exactly_now_is_tomorrow(self, now):
        assert compute_first_occurrence(DailySchedule(hour=10), now) == now + timedelta(days=1)

    def test_weekly_other_day(self, now):
        # now is Monday; 1 = Sunday
        first = compute_first_occurrence(WeeklySchedule(weekday=1, hour=9), now)
        assert first == datetime(2024, 1, 7, 9, 0, tzinfo=config.TIMEZONE)

    def test_weekly_same_day_passed(self, now):
        first = compute_first_occurrence(WeeklySchedule(weekday=2, hour=9), now)
        assert first == datetime(2024, 1, 8, 9, 0, tzinfo=config.TIMEZONE)

    def test_weekly_same_day_later(self, now):
        first = compute_first_occurrence(WeeklySchedule(weekday=2, hour=11), now)
        assert first == datetime(2024, 1, 1, 11, 0, tzinfo=config.TIMEZONE)

    def test_recurring_always_strictly_after_now(self, now):
        for hour in range(24):
            for minute in (0, 30):
                moment = now.replace(hour=hour, minute=minute)
                assert compute_first_occurrence(DailySchedule(hour=10), moment) > moment
                for weekday in range(1, 8):
                    schedule = WeeklySchedule(weekday=weekday, hour=10)
                    assert compute_first_occurrence(schedule, moment) > moment

    def test_interval(self, now):
        assert compute_first_occurrence(IntervalSchedule(interval_seconds=600), now) == now + timedelta(minutes=10)

    def test_one_time_prefers_instant(self, now):
        instant = now + timedelta(hours=3)
        assert compute_first_occurrence(OneTimeSchedule(instant=instant, delay_seconds=60), now) == instant
        assert compute_first_occurrence(OneTimeSchedule(delay_seconds=120), now) == now + timedelta(minutes=2)


class TestSchedule:

    @pytest.mark.asyncio
    async def test_one_time_uses_calendar_strategy(self, engine, backend, records, now):
        request = ReminderRequest(text="call mom", schedule=OneTimeSchedule(delay_seconds=1800))

        record = await engine.schedule(request, now)

        assert record.key.startswith("remind_")
        assert record.state == ReminderState.ACTIVE
        assert record.strategy == "calendar"
        assert len(record.alarm_ids) == 1
        alarm_id = next(iter(record.alarm_ids))
        trigger, payload = backend.alarms[alarm_id]
        assert trigger == AbsoluteTrigger(instant=now + timedelta(minutes=30))
        assert payload["key"] == record.key
        assert record.schedule.instant == now + timedelta(minutes=30)
        assert record.next_occurrence is None
        assert await records.get(record.key) == record

    @pytest.mark.asyncio
    async def test_daily_gets_calendar_trigger_and_next_occurrence(self, engine, backend, now):
        request = ReminderRequest(
            text="exercise", schedule=DailySchedule(hour=8), category=Category.HEALTH
        )

        record = await engine.schedule(request, now)

        trigger, _ = backend.alarms[next(iter(record.alarm_ids))]
        assert trigger == CalendarTrigger(hour=8, minute=0, weekday=None, repeats=True)
        assert record.next_occurrence == datetime(2024, 1, 2, 8, 0, tzinfo=config.TIMEZONE)
        assert record.category == Category.HEALTH

    @pytest.mark.asyncio
    async def test_falls_back_to_duration_strategy(self, records, now):
        backend = FakeAlarmBackend(fail_on=(AbsoluteTrigger, CalendarTrigger))
        engine = backend_only_engine(backend, records)

        record = await engine.schedule(
            ReminderRequest(text="call mom", schedule=OneTimeSchedule(delay_seconds=1800)), now
        )

        assert record.strategy == "duration"
        assert record.alarm_ids == set(backend.alarms)
        trigger, _ = backend.alarms[next(iter(record.alarm_ids))]
        assert trigger == DurationTrigger(seconds=1800, repeats=False)

    @pytest.mark.asyncio
    async def test_interval_skips_calendar(self, engine, backend, now):
        record = await engine.schedule(
            ReminderRequest(text="drink water", schedule=IntervalSchedule(interval_seconds=3600)), now
        )

        trigger, _ = backend.alarms[next(iter(record.alarm_ids))]
        assert record.strategy == "duration"
        assert trigger == DurationTrigger(seconds=3600, repeats=True, start=now + timedelta(hours=1))

    @pytest.mark.asyncio
    async def test_all_strategies_fail(self, records, now):
        backend = FakeAlarmBackend(fail_on=(AbsoluteTrigger, CalendarTrigger, DurationTrigger))
        engine = backend_only_engine(backend, records)

        with pytest.raises(SchedulingFailed):
            await engine.schedule(ReminderRequest(text="x", schedule=OneTimeSchedule()), now)

        assert await records.list() == []

    @pytest.mark.asyncio
    async def test_backend_unavailable_propagates(self, records, now):
        backend = FakeAlarmBackend(
            fail_on=(AbsoluteTrigger, CalendarTrigger, DurationTrigger), error=BackendUnavailable
        )
        engine = backend_only_engine(backend, records)

        with pytest.raises(BackendUnavailable):
            await engine.schedule(ReminderRequest(text="x", schedule=OneTimeSchedule()), now)

    @pytest.mark.asyncio
    async def test_software_timer_is_last_resort(self, records, now, monkeypatch):
        monkeypatch.setattr(config, "SOFTWARE_TIMER_FALLBACK", True)
        backend = FakeAlarmBackend(fail_on=(AbsoluteTrigger, CalendarTrigger, DurationTrigger))
        engine = SchedulingEngine(backend, records)

        record = await engine.schedule(
            ReminderRequest(text="x", schedule=OneTimeSchedule(delay_seconds=600)), now
        )

        alarm_id = next(iter(record.alarm_ids))
        assert record.strategy == "timer"
        assert alarm_id.startswith("timer_")
        assert alarm_id in [a.alarm_id for a in await engine.list_alarms()]

        await engine.release_alarms(record.alarm_ids)
        assert engine.timers.live_ids() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("offset", [timedelta(minutes=-5), timedelta(0)])
    async def test_past_instant_is_rejected(self, engine, backend, records, now, offset):
        request = ReminderRequest(text="x", schedule=OneTimeSchedule(instant=now + offset))

        with pytest.raises(SchedulingFailed, match="in the past"):
            await engine.schedule(request, now)

        assert backend.alarms == {}
        assert await records.list() == []

    @pytest.mark.asyncio
    async def test_failed_save_releases_alarm(self, engine, backend, records, now):
        records.save = AsyncMock(side_effect=BackendUnavailable("disk gone"))

        with pytest.raises(BackendUnavailable):
            await engine.schedule(ReminderRequest(text="x", schedule=OneTimeSchedule()), now)

        assert backend.alarms == {}
        assert len(backend.cancelled) == 1


class TestRenewIfDue:

    @pytest.mark.asyncio
    async def test_renews_when_next_occurrence_passed(self, engine, backend, now):
        record = await engine.schedule(
            ReminderRequest(text="exercise", schedule=DailySchedule(hour=8)), now
        )
        old_ids = set(record.alarm_ids)
        later = now + timedelta(days=2)

        renewed = await engine.renew_if_due(record, later)

        assert renewed is not None
        assert renewed.alarm_ids.isdisjoint(old_ids)
        assert len(renewed.alarm_ids) == 1
        assert renewed.next_occurrence == datetime(2024, 1, 4, 8, 0, tzinfo=config.TIMEZONE)
        assert set(backend.cancelled) == old_ids

    @pytest.mark.asyncio
    async def test_not_due_yet(self, engine, now):
        record = await engine.schedule(
            ReminderRequest(text="exercise", schedule=DailySchedule(hour=8)), now
        )

        assert await engine.renew_if_due(record, now) is None

    @pytest.mark.asyncio
    async def test_one_time_and_terminal_records_are_ignored(self, engine, now):
        one_time = await engine.schedule(ReminderRequest(text="x", schedule=OneTimeSchedule()), now)
        daily = await engine.schedule(ReminderRequest(text="y", schedule=DailySchedule(hour=8)), now)
        daily.state = ReminderState.CANCELLED

        later = now + timedelta(days=3)
        assert await engine.renew_if_due(one_time, later) is None
        assert await engine.renew_if_due(daily, later) is None


class TestSoftwareTimers:

    @pytest.mark.asyncio
    async def test_one_shot_fires_once(self):
        on_fire = AsyncMock()
        timers = SoftwareTimers(on_fire)

        timers.start(0, {"key": "remind_x"})
        await asyncio.sleep(0.05)

        on_fire.assert_awaited_once_with({"key": "remind_x"})
        assert timers.live_ids() == []

    @pytest.mark.asyncio
    async def test_periodic_rearms_until_cancelled(self):
        on_fire = AsyncMock()
        timers = SoftwareTimers(on_fire)

        timer_id = timers.start(0.01, {"key": "remind_x"}, period_seconds=0.01)
        await asyncio.sleep(0.1)

        assert on_fire.await_count >= 2
        assert timers.cancel(timer_id) is True
        assert timers.cancel(timer_id) is False

    @pytest.mark.asyncio
    async def test_callback_errors_are_contained(self):
        timers = SoftwareTimers(AsyncMock(side_effect=RuntimeError("boom")))

        timers.start(0, {"key": "remind_x"})
        await asyncio.sleep(0.05)

        assert timers.live_ids() == []
