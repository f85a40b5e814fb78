"""Error kinds raised by the reminder core."""


class ReminderError(Exception):
    """Base exception for reminder errors"""
    pass


class ParseAmbiguous(ReminderError):
    """Nothing usable found in the text.

    The parser never raises this - it degrades confidence instead. It exists
    so callers can turn an unsuccessful draft into an exception if they want.
    """
    pass


class SchedulingFailed(ReminderError):
    """Every alarm registration strategy was exhausted."""
    pass


class BackendUnavailable(ReminderError):
    """The alarm backend or the storage collaborator could not be reached."""
    pass


class RecordNotFound(ReminderError):
    """Lifecycle operation on an unknown key."""

    def __init__(self, key: str):
        super().__init__(f"Reminder {key} not found")
        self.key = key


class InvalidRecurrence(ReminderError, ValueError):
    """Hour, minute or weekday out of range."""
    pass
