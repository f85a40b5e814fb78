"""Pytest configuration and fixtures."""

import os
import sys
import tempfile
from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest

# Keep log files out of the working tree
os.environ.setdefault("BLINK_DATA_DIR", tempfile.mkdtemp(prefix="blink_test_"))

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from domains.reminders.backends import AlarmInfo
from domains.reminders.config import TIMEZONE
from domains.reminders.lifecycle import LifecycleManager
from domains.reminders.scheduler import SchedulingEngine
from domains.reminders.store import MemoryStore, RecordStore, SnoozeLog
from domains.reminders.strategies import CalendarStrategy, DurationStrategy


class FakeAlarmBackend:
    """In-memory alarm backend that can reject chosen trigger types."""

    def __init__(self, fail_on=(), error=RuntimeError):
        self.alarms = {}
        self.cancelled = []
        self.fail_on = tuple(fail_on)
        self.error = error
        self._counter = 0

    async def register_alarm(self, trigger, payload):
        if self.fail_on and isinstance(trigger, self.fail_on):
            raise self.error(f"{type(trigger).__name__} rejected")
        self._counter += 1
        alarm_id = f"fake_{self._counter}"
        self.alarms[alarm_id] = (trigger, payload)
        return alarm_id

    async def cancel_alarm(self, alarm_id):
        self.cancelled.append(alarm_id)
        self.alarms.pop(alarm_id, None)

    async def list_alarms(self):
        return [AlarmInfo(alarm_id=a, trigger=type(t).__name__) for a, (t, _) in self.alarms.items()]


@pytest.fixture
def now():
    """Monday 1 Jan 2024, 10:00 local."""
    return datetime(2024, 1, 1, 10, 0, tzinfo=TIMEZONE)


@pytest.fixture
def kv():
    return MemoryStore()


@pytest.fixture
def records(kv):
    return RecordStore(kv)


@pytest.fixture
def snoozes(kv):
    return SnoozeLog(kv)


@pytest.fixture
def backend():
    return FakeAlarmBackend()


@pytest.fixture
def engine(backend, records):
    """Engine without the software-timer fallback, so failures surface."""
    return SchedulingEngine(
        backend,
        records,
        strategies=[CalendarStrategy(backend), DurationStrategy(backend)],
    )


@pytest.fixture
def lifecycle(engine, records, snoozes):
    return LifecycleManager(engine, records, snoozes)


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx client."""
    with patch('httpx.AsyncClient') as mock:
        client = AsyncMock()
        mock.return_value.__aenter__.return_value = client
        yield client
