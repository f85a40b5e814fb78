"""Tests for the key-value stores and the record/snooze repositories."""

import asyncio
import gc
import threading
from datetime import timedelta
from unittest.mock import Mock

import httpx
import pytest

from domains.reminders.errors import BackendUnavailable, RecordNotFound
from domains.reminders.models import (
    DailySchedule,
    OneTimeSchedule,
    ReminderRecord,
    ReminderState,
    SnoozeEntry,
)
from domains.reminders.store import MemoryStore, RecordStore, SQLiteStore, SnoozeLog, SupabaseStore


def make_record(key, now, state=ReminderState.ACTIVE, schedule=None):
    return ReminderRecord(
        key=key,
        text=f"text for {key}",
        schedule=schedule or OneTimeSchedule(instant=now + timedelta(hours=1), delay_seconds=3600),
        created_at=now,
        updated_at=now,
        state=state,
        alarm_ids={"alarm_x"},
    )


@pytest.fixture
def sqlite_store(tmp_path):
    store = SQLiteStore(str(tmp_path / "reminders.db"))
    yield store
    store.close()


class TestMemoryStore:

    @pytest.mark.asyncio
    async def test_namespaces_are_separate(self):
        store = MemoryStore()
        await store.set("a", "k", b"1")
        await store.set("b", "k", b"2")

        assert await store.get("a", "k") == b"1"
        assert await store.get("b", "k") == b"2"
        assert await store.get("c", "k") is None

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self):
        store = MemoryStore()
        await store.delete("a", "missing")
        assert await store.list_keys("a") == []


class TestSQLiteStore:

    @pytest.mark.asyncio
    async def test_set_get_upsert(self, sqlite_store):
        await sqlite_store.set("reminders", "k1", b"first")
        await sqlite_store.set("reminders", "k1", b"second")

        assert await sqlite_store.get("reminders", "k1") == b"second"
        assert await sqlite_store.list_keys("reminders") == ["k1"]

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path):
        path = str(tmp_path / "nested" / "reminders.db")
        first = SQLiteStore(path)
        await first.set("reminders", "b", b"2")
        await first.set("reminders", "a", b"1")
        first.close()

        second = SQLiteStore(path)
        try:
            assert await second.list_keys("reminders") == ["a", "b"]
            assert await second.get("reminders", "a") == b"1"
        finally:
            second.close()

    @pytest.mark.asyncio
    async def test_delete(self, sqlite_store):
        await sqlite_store.set("snoozes", "k", b"v")
        await sqlite_store.delete("snoozes", "k")

        assert await sqlite_store.get("snoozes", "k") is None

    @pytest.mark.asyncio
    async def test_unopenable_path_is_backend_unavailable(self, tmp_path):
        store = SQLiteStore(str(tmp_path))

        with pytest.raises(BackendUnavailable):
            await store.get("reminders", "k")

    @pytest.mark.asyncio
    async def test_queries_run_off_the_event_loop_thread(self, sqlite_store, monkeypatch):
        threads = []
        open_connection = sqlite_store._get_connection

        def tracking_connection():
            threads.append(threading.get_ident())
            return open_connection()

        monkeypatch.setattr(sqlite_store, "_get_connection", tracking_connection)

        await sqlite_store.set("reminders", "k", b"v")
        await sqlite_store.get("reminders", "k")
        await sqlite_store.list_keys("reminders")
        await sqlite_store.delete("reminders", "k")

        assert len(threads) == 4
        assert threading.get_ident() not in threads

    @pytest.mark.asyncio
    async def test_concurrent_writes(self, sqlite_store):
        await asyncio.gather(*(
            sqlite_store.set("reminders", f"k{i:02d}", str(i).encode()) for i in range(20)
        ))

        assert await sqlite_store.list_keys("reminders") == [f"k{i:02d}" for i in range(20)]


class TestSupabaseStore:

    @pytest.fixture
    def store(self):
        return SupabaseStore(url="https://example.supabase.co", key="test-key", table="reminder_kv")

    @pytest.mark.asyncio
    async def test_get_decodes_base64(self, store, mock_httpx_client):
        mock_httpx_client.request.return_value = Mock(json=Mock(return_value=[{"value": "aGVsbG8="}]))

        assert await store.get("reminders", "k1") == b"hello"

        args, kwargs = mock_httpx_client.request.call_args
        assert args == ("GET", "https://example.supabase.co/rest/v1/reminder_kv")
        assert kwargs["params"]["key"] == "eq.k1"
        assert kwargs["headers"]["apikey"] == "test-key"

    @pytest.mark.asyncio
    async def test_get_missing(self, store, mock_httpx_client):
        mock_httpx_client.request.return_value = Mock(json=Mock(return_value=[]))

        assert await store.get("reminders", "k1") is None

    @pytest.mark.asyncio
    async def test_set_upserts(self, store, mock_httpx_client):
        mock_httpx_client.request.return_value = Mock()

        await store.set("reminders", "k1", b"hello")

        args, kwargs = mock_httpx_client.request.call_args
        assert args[0] == "POST"
        assert kwargs["params"] == {"on_conflict": "namespace,key"}
        assert kwargs["json"] == {"namespace": "reminders", "key": "k1", "value": "aGVsbG8="}
        assert "resolution=merge-duplicates" in kwargs["headers"]["Prefer"]

    @pytest.mark.asyncio
    async def test_list_keys(self, store, mock_httpx_client):
        mock_httpx_client.request.return_value = Mock(json=Mock(return_value=[{"key": "a"}, {"key": "b"}]))

        assert await store.list_keys("reminders") == ["a", "b"]

    @pytest.mark.asyncio
    async def test_http_error_is_backend_unavailable(self, store, mock_httpx_client):
        mock_httpx_client.request.side_effect = httpx.ConnectError("refused")

        with pytest.raises(BackendUnavailable):
            await store.get("reminders", "k1")

    @pytest.mark.asyncio
    async def test_unconfigured(self, store):
        store.url = None

        with pytest.raises(BackendUnavailable):
            await store.list_keys("reminders")


class TestRecordStore:

    @pytest.mark.asyncio
    async def test_save_and_get(self, records, now):
        record = make_record("remind_1", now)
        await records.save(record)

        assert await records.get("remind_1") == record

    @pytest.mark.asyncio
    async def test_require_missing(self, records):
        with pytest.raises(RecordNotFound) as exc_info:
            await records.require("remind_missing")

        assert exc_info.value.key == "remind_missing"

    @pytest.mark.asyncio
    async def test_list_filters_and_skips_corrupt(self, records, kv, now):
        await records.save(make_record("remind_1", now))
        await records.save(make_record("remind_2", now, state=ReminderState.CANCELLED))
        await records.save(make_record("remind_3", now, schedule=DailySchedule(hour=8)))
        await kv.set(records.namespace, "remind_bad", b"{not json")

        assert {r.key for r in await records.list()} == {"remind_1", "remind_2", "remind_3"}
        assert {r.key for r in await records.list(ReminderState.ACTIVE)} == {"remind_1", "remind_3"}

    @pytest.mark.asyncio
    async def test_lock_is_per_key(self, records):
        assert records.lock("a") is records.lock("a")
        assert records.lock("a") is not records.lock("b")

    @pytest.mark.asyncio
    async def test_idle_locks_are_dropped(self, records):
        for i in range(50):
            async with records.lock(f"remind_{i}"):
                pass
        gc.collect()

        assert len(records._locks) == 0

    @pytest.mark.asyncio
    async def test_lock_is_shared_while_held(self, records):
        held = records.lock("remind_1")
        async with held:
            gc.collect()
            assert records.lock("remind_1") is held
            assert records.lock("remind_1").locked()

    @pytest.mark.asyncio
    async def test_works_over_sqlite(self, sqlite_store, now):
        records = RecordStore(sqlite_store)
        record = make_record("remind_1", now, schedule=DailySchedule(hour=7, minute=45))
        await records.save(record)
        await records.delete("remind_unknown")

        assert await records.list() == [record]


class TestSnoozeLog:

    @pytest.mark.asyncio
    async def test_add_list_delete(self, snoozes, now):
        entry = SnoozeEntry(
            key="remind_1",
            snooze_number=1,
            delay_minutes=10,
            snoozed_at=now,
            wake_up_time=now + timedelta(minutes=10),
            alarm_id="alarm_1",
        )
        await snoozes.add(entry)

        assert await snoozes.list() == [entry]

        await snoozes.delete(entry.entry_id)
        assert await snoozes.list() == []
