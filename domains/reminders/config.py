"""Reminders domain configuration - parsing thresholds and scheduling knobs."""

import os
from zoneinfo import ZoneInfo

from config import DATA_DIR

# Wall clock used when callers don't pass `now`
TIMEZONE = ZoneInfo(os.environ.get("BLINK_TIMEZONE", "Europe/London"))

# Local record store
REMINDERS_DB = os.environ.get("BLINK_REMINDERS_DB", str(DATA_DIR / "reminders.db"))

# Store namespaces
RECORDS_NAMESPACE = "reminders"
SNOOZES_NAMESPACE = "snoozes"
META_NAMESPACE = "meta"

# Trigger bounds (seconds)
MIN_TRIGGER_SECONDS = 60
DEFAULT_TRIGGER_SECONDS = 300  # 5 minutes when no time is found
FAR_FUTURE_SECONDS = 31536000  # ~1 year
BARE_MINUTES_MAX = 480  # "45" on its own means 45 minutes, up to 8 hours

# Default clock for recurring reminders without an explicit time
DEFAULT_RECURRING_HOUR = 9
DEFAULT_RECURRING_MINUTE = 0

# Confidence contributions (each capped independently)
ACTION_CONFIDENCE = 30
ACTION_FALLBACK_CONFIDENCE = 10
TIME_CONFIDENCE = 40
TIME_DEFAULT_CONFIDENCE = 5
CATEGORY_CONFIDENCE = 15
PRIORITY_CONFIDENCE = 10
RECURRENCE_CONFIDENCE = 15

SUCCESS_THRESHOLD = 40  # draft.success = confidence > this
LOW_CONFIDENCE_THRESHOLD = 50  # below this the user should review
MIN_ACTION_LENGTH = 3

# Snoozing
DEFAULT_SNOOZE_MINUTES = int(os.environ.get("BLINK_DEFAULT_SNOOZE_MINUTES", 10))
SNOOZE_RETENTION_HOURS = int(os.environ.get("BLINK_SNOOZE_RETENTION_HOURS", 24))

# Last-resort in-process timers when the alarm backend refuses everything
SOFTWARE_TIMER_FALLBACK = os.environ.get(
    "BLINK_SOFTWARE_TIMER_FALLBACK", "true"
).strip().lower() in ("1", "true", "yes", "on")
