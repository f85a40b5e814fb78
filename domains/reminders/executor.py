"""Fire reminders by handing them to the host's notifier."""

from typing import Awaitable, Callable, Optional

from logger import logger

Notifier = Callable[[dict], Awaitable[None]]


async def execute_reminder(payload: dict, notify: Optional[Notifier] = None):
    """Fire a reminder - forward its payload to the host.

    This function is called by the alarm backend when the reminder time arrives.
    Failures inside `notify` are logged, never raised back into the scheduler.

    Args:
        payload: Record payload (key, text, kind, category, priority)
        notify: Host coroutine that shows the notification
    """
    key = payload.get("key")
    logger.info(f"Fired reminder {key}: {payload.get('text')}")

    if notify is None:
        logger.warning(f"No notifier configured, reminder {key} only logged")
        return

    try:
        await notify(payload)
    except Exception as e:
        logger.error(f"Failed to deliver reminder {key}: {e}")
