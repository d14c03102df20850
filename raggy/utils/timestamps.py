"""
Timestamp helpers.

SQLite hands back naive datetimes for timezone-aware columns, PostgreSQL
hands back aware ones; everything compared in Python goes through
ensure_utc first.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def next_after(previous: Optional[datetime]) -> datetime:
    """
    Current time, bumped past ``previous`` when the clock has not moved.

    Used for message timestamps so two writes in the same conversation
    never share a creation time.
    """
    now = utcnow()
    previous = ensure_utc(previous)
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now
