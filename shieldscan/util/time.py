"""Timestamp and duration utilities."""

from datetime import datetime, timezone
from typing import Optional


def now_utc() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def iso_now() -> str:
    """ISO-8601 UTC timestamp used on results and evidence."""
    return now_utc().isoformat()


def timestamp_str(dt: Optional[datetime] = None) -> str:
    """Format timestamp for filenames.

    Returns: YYYYMMDD_HHMMSS format (filesystem-safe)
    """
    if dt is None:
        dt = now_utc()
    return dt.strftime("%Y%m%d_%H%M%S")


def duration_ms(start: datetime, end: Optional[datetime] = None) -> float:
    """Calculate duration in milliseconds between two timestamps.

    If end is None, uses current time.
    """
    if end is None:
        end = now_utc()
    delta = end - start
    return delta.total_seconds() * 1000
