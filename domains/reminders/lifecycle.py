"""Lifecycle manager - owns reminder records after they are scheduled.

State machine:
    active -> snoozed -> active (snooze alarm fires, or renewal) ...
    active|snoozed -> completed | cancelled   (terminal)

Every operation takes the record's per-key lock, so a read-modify-write on
one key is atomic. Unknown keys and terminal records short-circuit without
raising, which makes cancel/complete/snooze safe to call twice.
"""

from collections import Counter
from datetime import datetime, timedelta
from typing import Optional

from logger import logger
from . import config
from .errors import RecordNotFound, ReminderError
from .models import (
    OneTimeSchedule,
    ReminderKind,
    ReminderRecord,
    ReminderState,
    SnoozeEntry,
)
from .scheduler import SchedulingEngine, build_fire_plan
from .store import RecordStore, SnoozeLog

SNOOZE_ACTIONS = {
    "snooze_5": 5,
    "snooze_10": 10,
    "snooze_15": 15,
    "snooze_30": 30,
    "snooze_60": 60,
}


class LifecycleManager:
    """Cancel, complete, snooze and renew reminder records."""

    def __init__(self, engine: SchedulingEngine, records: RecordStore, snoozes: SnoozeLog):
        self.engine = engine
        self.records = records
        self.snoozes = snoozes

        self._actions = {name: self._snooze_action(minutes) for name, minutes in SNOOZE_ACTIONS.items()}
        self._actions.update({
            "dismiss": self.dismiss,
            "complete": self.complete,
            "cancel": self.cancel,
        })

    async def _load(self, key: str) -> Optional[ReminderRecord]:
        try:
            return await self.records.require(key)
        except RecordNotFound:
            logger.warning(f"Reminder {key} not found")
            return None

    # -------------------------------------------------------------------------
    # Terminal transitions
    # -------------------------------------------------------------------------

    async def cancel(self, key: str, now: datetime = None) -> Optional[ReminderRecord]:
        """Remove all alarms and mark the record cancelled."""
        return await self._finish(key, ReminderState.CANCELLED, now)

    async def complete(self, key: str, now: datetime = None) -> Optional[ReminderRecord]:
        """Remove all alarms and mark the record completed."""
        return await self._finish(key, ReminderState.COMPLETED, now)

    async def _finish(self, key: str, state: ReminderState, now: datetime = None) -> Optional[ReminderRecord]:
        now = now or datetime.now(config.TIMEZONE)
        async with self.records.lock(key):
            record = await self._load(key)
            if record is None:
                return None
            if record.is_terminal:
                logger.debug(f"Reminder {key} already {record.state.value}")
                return record

            await self.engine.release_alarms(record.alarm_ids)
            record.alarm_ids = set()
            record.state = state
            record.updated_at = now
            await self.records.save(record)

            logger.info(f"Reminder {key} {state.value}: '{record.text}'")
            return record

    async def dismiss(self, key: str, now: datetime = None) -> Optional[ReminderRecord]:
        """User dismissed a fired alarm.

        One-time reminders are done. Recurring reminders keep running.
        """
        record = await self.records.get(key)
        if record is not None and record.is_recurring:
            logger.info(f"Dismissed occurrence of recurring reminder {key}")
            return record
        return await self.complete(key, now)

    # -------------------------------------------------------------------------
    # Snooze
    # -------------------------------------------------------------------------

    async def snooze(
        self,
        key: str,
        delay_minutes: int = config.DEFAULT_SNOOZE_MINUTES,
        now: datetime = None,
    ) -> Optional[ReminderRecord]:
        """Replace the record's alarms with a single one-shot alarm.

        The new alarm is registered before the old ones are released, so a
        registration failure leaves the record untouched.

        Args:
            key: Record key
            delay_minutes: Minutes until the reminder fires again
            now: Current time (defaults to now in the configured timezone)

        Returns:
            The updated record, the unchanged terminal record, or None if unknown

        Raises:
            SchedulingFailed, BackendUnavailable
        """
        now = now or datetime.now(config.TIMEZONE)
        delay_seconds = max(config.MIN_TRIGGER_SECONDS, int(delay_minutes) * 60)

        async with self.records.lock(key):
            record = await self._load(key)
            if record is None:
                return None
            if record.is_terminal:
                logger.debug(f"Not snoozing {key}: already {record.state.value}")
                return record

            plan = build_fire_plan(OneTimeSchedule(delay_seconds=delay_seconds), now)
            alarm_id, strategy = await self.engine.register(plan, record.payload())

            old_ids = set(record.alarm_ids)
            record.alarm_ids = {alarm_id}
            record.state = ReminderState.SNOOZED
            record.snooze_count += 1
            record.strategy = strategy
            record.updated_at = now
            if record.kind == ReminderKind.ONE_TIME:
                record.schedule = OneTimeSchedule(instant=plan.first_fire, delay_seconds=delay_seconds)
            else:
                # on_alarm_fired restores the recurring alarm at wake-up
                record.next_occurrence = plan.first_fire

            try:
                await self.records.save(record)
            except Exception as e:
                logger.error(f"Failed to save snoozed reminder {key}: {e}")
                await self.engine.release_alarms([alarm_id])
                raise

            await self.engine.release_alarms(old_ids)

            entry = SnoozeEntry(
                key=key,
                snooze_number=record.snooze_count,
                delay_minutes=delay_seconds // 60,
                snoozed_at=now,
                wake_up_time=plan.first_fire,
                alarm_id=alarm_id,
            )
            try:
                await self.snoozes.add(entry)
            except Exception as e:
                logger.warning(f"Failed to record snooze history for {key}: {e}")

            logger.info(
                f"Snoozed {key} for {delay_seconds // 60} min "
                f"(snooze #{record.snooze_count}, wakes {plan.first_fire.isoformat()})"
            )
            return record

    def _snooze_action(self, minutes: int):
        async def action(key: str, now: datetime = None):
            return await self.snooze(key, minutes, now)
        return action

    async def on_alarm_fired(self, payload: dict, now: datetime = None) -> Optional[ReminderRecord]:
        """Follow-up after any alarm fires.

        A snoozed recurring record has only its snooze alarm left, so when
        that fires the recurring alarm goes straight back on. Waiting for the
        daily sweep would lose occurrences whenever the wake-up falls after it.

        Returns:
            The renewed record, or None if nothing changed
        """
        key = payload.get("key")
        if not key:
            return None
        now = now or datetime.now(config.TIMEZONE)

        async with self.records.lock(key):
            record = await self.records.get(key)
            if record is None or record.state != ReminderState.SNOOZED or not record.is_recurring:
                return None

            # the wake-up has happened even if the clock reads slightly early
            record.next_occurrence = None
            try:
                renewed = await self.engine.renew_if_due(record, now)
                await self.records.save(renewed)
            except ReminderError as e:
                logger.error(f"Failed to restore snoozed reminder {key}: {e}")
                return None

            logger.info(f"Snooze over for {key}, recurring alarm restored")
            return renewed

    # -------------------------------------------------------------------------
    # Inbound notification actions
    # -------------------------------------------------------------------------

    async def handle_backend_action(self, key: str, action: str, now: datetime = None):
        """Dispatch a notification action button to the matching operation.

        Unknown actions are logged and ignored.
        """
        handler = self._actions.get(action)
        if handler is None:
            logger.warning(f"Ignoring unknown reminder action '{action}' for {key}")
            return None
        logger.info(f"Reminder action '{action}' for {key}")
        return await handler(key, now)

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Optional[ReminderRecord]:
        return await self.records.get(key)

    async def list_records(self, state: Optional[ReminderState] = None) -> list[ReminderRecord]:
        return await self.records.list(state)

    async def delete(self, key: str) -> bool:
        """Release alarms and remove the record entirely."""
        async with self.records.lock(key):
            record = await self._load(key)
            if record is None:
                return False
            await self.engine.release_alarms(record.alarm_ids)
            await self.records.delete(key)
            logger.info(f"Deleted reminder {key}")
            return True

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    async def cleanup_expired(self, now: datetime = None) -> int:
        """Drop snooze history whose wake-up time is over a day old.

        Returns:
            Number of entries removed
        """
        now = now or datetime.now(config.TIMEZONE)
        cutoff = now - timedelta(hours=config.SNOOZE_RETENTION_HOURS)
        removed = 0

        for entry in await self.snoozes.list():
            if entry.wake_up_time < cutoff:
                await self.snoozes.delete(entry.entry_id)
                removed += 1

        if removed:
            logger.info(f"Cleaned up {removed} expired snooze entries")
        return removed

    async def renew_due(self, now: datetime = None) -> int:
        """Renew every recurring record whose next occurrence has passed.

        Returns:
            Number of records renewed
        """
        now = now or datetime.now(config.TIMEZONE)
        renewed = 0

        for candidate in await self.records.list():
            if not candidate.is_recurring or candidate.is_terminal:
                continue
            async with self.records.lock(candidate.key):
                record = await self.records.get(candidate.key)
                if record is None:
                    continue
                try:
                    updated = await self.engine.renew_if_due(record, now)
                    if updated is not None:
                        await self.records.save(updated)
                        renewed += 1
                except ReminderError as e:
                    logger.error(f"Failed to renew reminder {record.key}: {e}")

        if renewed:
            logger.info(f"Renewed {renewed} recurring reminder(s)")
        return renewed

    async def stats(self) -> dict:
        """Counts by state, live alarms, snooze history and active records by kind."""
        records = await self.records.list()
        by_state = Counter(r.state for r in records)
        by_kind = Counter(r.kind.value for r in records if r.state == ReminderState.ACTIVE)

        try:
            live_alarms = len(await self.engine.list_alarms())
        except Exception as e:
            logger.warning(f"Could not list live alarms: {e}")
            live_alarms = 0

        return {
            "active": by_state[ReminderState.ACTIVE],
            "snoozed": by_state[ReminderState.SNOOZED],
            "completed": by_state[ReminderState.COMPLETED],
            "cancelled": by_state[ReminderState.CANCELLED],
            "live_alarms": live_alarms,
            "snooze_history": len(await self.snoozes.list()),
            "by_kind": {kind.value: by_kind[kind.value] for kind in ReminderKind},
        }
