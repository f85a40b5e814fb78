"""Tests for reminder models and the record codec."""

import json
from datetime import datetime, timedelta

import pytest

from domains.reminders.config import TIMEZONE
from domains.reminders.errors import InvalidRecurrence
from domains.reminders.models import (
    Category,
    DailySchedule,
    IntervalSchedule,
    OneTimeSchedule,
    ParseDiagnostics,
    Priority,
    ReminderDraft,
    ReminderKind,
    ReminderRecord,
    ReminderState,
    SnoozeEntry,
    WeeklySchedule,
    deserialize_record,
    schedule_from_dict,
    schedule_to_dict,
    serialize_record,
)


def make_record(schedule, now, **kwargs):
    defaults = dict(
        key="remind_abc123",
        text="water plants",
        schedule=schedule,
        created_at=now,
        updated_at=now,
        alarm_ids={"alarm_2", "alarm_1"},
        category=Category.HEALTH,
        priority=Priority.HIGH,
    )
    defaults.update(kwargs)
    return ReminderRecord(**defaults)


class TestSchedules:

    def test_one_time_delay_floored(self):
        assert OneTimeSchedule(delay_seconds=5).delay_seconds == 60

    def test_interval_floored(self):
        assert IntervalSchedule(interval_seconds=10).interval_seconds == 60

    @pytest.mark.parametrize("hour,minute", [(24, 0), (-1, 0), (8, 60)])
    def test_daily_rejects_bad_clock(self, hour, minute):
        with pytest.raises(InvalidRecurrence):
            DailySchedule(hour=hour, minute=minute)

    @pytest.mark.parametrize("weekday", [0, 8])
    def test_weekly_rejects_bad_weekday(self, weekday):
        with pytest.raises(InvalidRecurrence):
            WeeklySchedule(weekday=weekday, hour=9)

    def test_invalid_recurrence_is_value_error(self):
        with pytest.raises(ValueError):
            DailySchedule(hour=30)

    def test_kind_tags(self):
        assert OneTimeSchedule().kind == ReminderKind.ONE_TIME
        assert DailySchedule(hour=8).kind == ReminderKind.DAILY
        assert WeeklySchedule(weekday=2, hour=8).kind == ReminderKind.WEEKLY
        assert IntervalSchedule(interval_seconds=600).kind == ReminderKind.INTERVAL

    def test_schedule_dict_is_tagged(self):
        data = schedule_to_dict(WeeklySchedule(weekday=6, hour=17, minute=30))

        assert data == {"kind": "weekly", "weekday": 6, "hour": 17, "minute": 30}
        assert schedule_from_dict(data) == WeeklySchedule(weekday=6, hour=17, minute=30)


class TestReminderRecord:

    @pytest.mark.parametrize("schedule", [
        OneTimeSchedule(instant=datetime(2024, 1, 1, 10, 30, tzinfo=TIMEZONE), delay_seconds=1800),
        DailySchedule(hour=8, minute=15),
        WeeklySchedule(weekday=1, hour=9),
        IntervalSchedule(interval_seconds=900),
    ])
    def test_serialize_round_trip(self, schedule, now):
        record = make_record(
            schedule,
            now,
            state=ReminderState.SNOOZED,
            snooze_count=3,
            next_occurrence=now + timedelta(days=1),
            strategy="duration",
            updated_at=now + timedelta(minutes=5),
        )

        assert deserialize_record(serialize_record(record)) == record

    def test_serialized_form_is_plain_json(self, now):
        record = make_record(DailySchedule(hour=8), now)
        data = json.loads(serialize_record(record))

        assert data["alarm_ids"] == ["alarm_1", "alarm_2"]
        assert data["kind"] == "daily"
        assert data["schedule"] == {"kind": "daily", "hour": 8, "minute": 0}
        assert data["state"] == "active"
        assert data["created_at"] == now.isoformat()

    def test_properties(self, now):
        one_time = make_record(OneTimeSchedule(), now)
        daily = make_record(DailySchedule(hour=8), now, state=ReminderState.CANCELLED)

        assert one_time.is_recurring is False
        assert one_time.is_terminal is False
        assert daily.is_recurring is True
        assert daily.is_terminal is True

    def test_payload(self, now):
        payload = make_record(DailySchedule(hour=8), now).payload()

        assert payload == {
            "key": "remind_abc123",
            "text": "water plants",
            "kind": "daily",
            "category": "Health",
            "priority": "high",
        }


class TestDraftAndSnooze:

    def _draft(self, confidence):
        return ReminderDraft(
            original_text="x",
            action_text="x",
            trigger_seconds=300,
            time_description="in 5 minutes",
            category=Category.PERSONAL,
            priority=Priority.MEDIUM,
            confidence=confidence,
            diagnostics=ParseDiagnostics(),
        )

    def test_success_threshold(self):
        assert self._draft(40).success is False
        assert self._draft(41).success is True

    def test_snooze_entry_round_trip(self, now):
        entry = SnoozeEntry(
            key="remind_abc",
            snooze_number=2,
            delay_minutes=10,
            snoozed_at=now,
            wake_up_time=now + timedelta(minutes=10),
            alarm_id="alarm_9",
        )

        assert entry.entry_id == "remind_abc:2"
        assert SnoozeEntry.from_dict(entry.to_dict()) == entry
