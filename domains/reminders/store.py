"""Key-value persistence for reminder records and snooze history.

Three interchangeable KeyValueStore backends:
- MemoryStore   - in-process dict (tests, throwaway sessions)
- SQLiteStore   - local SQLite file in WAL mode (default)
- SupabaseStore - Supabase PostgREST table over httpx

RecordStore and SnoozeLog sit on top and handle (de)serialisation.
"""

import asyncio
import base64
import json
import sqlite3
import threading
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Protocol

import httpx

from config import SUPABASE_KEY, SUPABASE_KV_TABLE, SUPABASE_URL
from logger import logger
from . import config
from .errors import BackendUnavailable, RecordNotFound
from .models import (
    ReminderRecord,
    ReminderState,
    SnoozeEntry,
    deserialize_record,
    serialize_record,
)


class KeyValueStore(Protocol):
    """Durable bytes store, scoped by namespace."""

    async def get(self, namespace: str, key: str) -> Optional[bytes]:
        ...

    async def set(self, namespace: str, key: str, value: bytes) -> None:
        ...

    async def delete(self, namespace: str, key: str) -> None:
        ...

    async def list_keys(self, namespace: str) -> list[str]:
        ...


class MemoryStore:
    """Dict-backed store. Nothing survives the process."""

    def __init__(self):
        self._data: dict[str, dict[str, bytes]] = {}

    async def get(self, namespace: str, key: str) -> Optional[bytes]:
        return self._data.get(namespace, {}).get(key)

    async def set(self, namespace: str, key: str, value: bytes) -> None:
        self._data.setdefault(namespace, {})[key] = bytes(value)

    async def delete(self, namespace: str, key: str) -> None:
        self._data.get(namespace, {}).pop(key, None)

    async def list_keys(self, namespace: str) -> list[str]:
        return sorted(self._data.get(namespace, {}))


class SQLiteStore:
    """Local SQLite store with WAL mode for concurrent readers.

    Queries run on worker threads via asyncio.to_thread so the event loop is
    never blocked on disk. One shared connection, serialised by `_lock`.
    """

    def __init__(self, db_path: str = None):
        self.db_path = db_path or config.REMINDERS_DB
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection with WAL mode."""
        if self._connection is not None:
            return self._connection

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=10.0)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        self._init_schema(conn)

        self._connection = conn
        logger.info(f"Reminder store initialized: {self.db_path}")
        return conn

    @staticmethod
    def _init_schema(conn: sqlite3.Connection) -> None:
        """Create tables if they don't exist."""
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS kv (
                namespace TEXT NOT NULL,
                key TEXT NOT NULL,
                value BLOB NOT NULL,
                PRIMARY KEY (namespace, key)
            );
        """)
        conn.commit()

    @contextmanager
    def _transaction(self):
        """Context manager for database transactions."""
        with self._lock:
            try:
                conn = self._get_connection()
            except sqlite3.Error as e:
                raise BackendUnavailable(f"Cannot open reminder store {self.db_path}: {e}") from e
            try:
                yield conn
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise BackendUnavailable(f"Reminder store error: {e}") from e
            except Exception:
                conn.rollback()
                raise

    async def get(self, namespace: str, key: str) -> Optional[bytes]:
        def fetch():
            with self._transaction() as conn:
                return conn.execute(
                    "SELECT value FROM kv WHERE namespace = ? AND key = ?", (namespace, key)
                ).fetchone()

        row = await asyncio.to_thread(fetch)
        return bytes(row[0]) if row else None

    async def set(self, namespace: str, key: str, value: bytes) -> None:
        def upsert():
            with self._transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO kv (namespace, key, value) VALUES (?, ?, ?)
                    ON CONFLICT (namespace, key) DO UPDATE SET value = excluded.value
                    """,
                    (namespace, key, sqlite3.Binary(value)),
                )

        await asyncio.to_thread(upsert)

    async def delete(self, namespace: str, key: str) -> None:
        def remove():
            with self._transaction() as conn:
                conn.execute("DELETE FROM kv WHERE namespace = ? AND key = ?", (namespace, key))

        await asyncio.to_thread(remove)

    async def list_keys(self, namespace: str) -> list[str]:
        def fetch_keys():
            with self._transaction() as conn:
                return conn.execute(
                    "SELECT key FROM kv WHERE namespace = ? ORDER BY key", (namespace,)
                ).fetchall()

        rows = await asyncio.to_thread(fetch_keys)
        return [row[0] for row in rows]

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None


class SupabaseStore:
    """Store rows in a Supabase table (namespace, key, value) via PostgREST.

    Values are base64 text so arbitrary bytes survive the JSON API.
    """

    def __init__(self, url: str = None, key: str = None, table: str = None):
        self.url = url or SUPABASE_URL
        self.key = key or SUPABASE_KEY
        self.table = table or SUPABASE_KV_TABLE

    def _headers(self, prefer: str = "return=minimal") -> dict:
        """Get headers for Supabase API calls."""
        return {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Content-Type": "application/json",
            "Prefer": prefer,
        }

    @property
    def _endpoint(self) -> str:
        return f"{self.url}/rest/v1/{self.table}"

    async def _request(self, method: str, params: dict, json_body=None, prefer: str = "return=minimal"):
        if not self.url or not self.key:
            raise BackendUnavailable("Supabase not configured")
        try:
            async with httpx.AsyncClient() as client:
                response = await client.request(
                    method,
                    self._endpoint,
                    headers=self._headers(prefer),
                    params=params,
                    json=json_body,
                    timeout=10,
                )
                response.raise_for_status()
                return response
        except httpx.HTTPError as e:
            logger.error(f"Supabase {method} on {self.table} failed: {e}")
            raise BackendUnavailable(f"Supabase request failed: {e}") from e

    async def get(self, namespace: str, key: str) -> Optional[bytes]:
        response = await self._request("GET", {
            "namespace": f"eq.{namespace}",
            "key": f"eq.{key}",
            "select": "value",
        })
        rows = response.json()
        if not rows:
            return None
        return base64.b64decode(rows[0]["value"])

    async def set(self, namespace: str, key: str, value: bytes) -> None:
        await self._request(
            "POST",
            {"on_conflict": "namespace,key"},
            json_body={
                "namespace": namespace,
                "key": key,
                "value": base64.b64encode(value).decode("ascii"),
            },
            prefer="resolution=merge-duplicates,return=minimal",
        )

    async def delete(self, namespace: str, key: str) -> None:
        await self._request("DELETE", {
            "namespace": f"eq.{namespace}",
            "key": f"eq.{key}",
        })

    async def list_keys(self, namespace: str) -> list[str]:
        response = await self._request("GET", {
            "namespace": f"eq.{namespace}",
            "select": "key",
            "order": "key.asc",
        })
        return [row["key"] for row in response.json()]


class RecordStore:
    """Reminder records, one JSON document per key.

    `lock(key)` gives the per-key mutex that makes lifecycle read-modify-write
    atomic within this process. A lock lives only while someone holds or
    waits on it, so the map stays as small as the set of busy keys.
    """

    def __init__(self, kv: KeyValueStore, namespace: str = config.RECORDS_NAMESPACE):
        self.kv = kv
        self.namespace = namespace
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def get(self, key: str) -> Optional[ReminderRecord]:
        raw = await self.kv.get(self.namespace, key)
        if raw is None:
            return None
        return deserialize_record(raw)

    async def require(self, key: str) -> ReminderRecord:
        record = await self.get(key)
        if record is None:
            raise RecordNotFound(key)
        return record

    async def save(self, record: ReminderRecord) -> None:
        await self.kv.set(self.namespace, record.key, serialize_record(record))

    async def delete(self, key: str) -> None:
        await self.kv.delete(self.namespace, key)

    async def list(self, state: Optional[ReminderState] = None) -> list[ReminderRecord]:
        """All decodable records, optionally filtered by state."""
        records = []
        for key in await self.kv.list_keys(self.namespace):
            raw = await self.kv.get(self.namespace, key)
            if raw is None:
                continue
            try:
                record = deserialize_record(raw)
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping unreadable reminder record {key}: {e}")
                continue
            if state is None or record.state == state:
                records.append(record)
        return records


class SnoozeLog:
    """Snooze history entries. Diagnostic only, swept after a day."""

    def __init__(self, kv: KeyValueStore, namespace: str = config.SNOOZES_NAMESPACE):
        self.kv = kv
        self.namespace = namespace

    async def add(self, entry: SnoozeEntry) -> None:
        await self.kv.set(self.namespace, entry.entry_id, json.dumps(entry.to_dict()).encode("utf-8"))

    async def delete(self, entry_id: str) -> None:
        await self.kv.delete(self.namespace, entry_id)

    async def list(self) -> list[SnoozeEntry]:
        entries = []
        for entry_id in await self.kv.list_keys(self.namespace):
            raw = await self.kv.get(self.namespace, entry_id)
            if raw is None:
                continue
            try:
                entries.append(SnoozeEntry.from_dict(json.loads(raw.decode("utf-8"))))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping unreadable snooze entry {entry_id}: {e}")
        return entries
