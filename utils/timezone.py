"""UTC-everywhere time handling."""

from datetime import datetime, timezone


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def epoch_millis() -> int:
    """Current time as integer milliseconds since the Unix epoch."""
    return int(now_utc().timestamp() * 1000)
