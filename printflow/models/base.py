"""
Column helpers shared by every model module.

SQLite hands timezone-aware columns back as naive datetimes, so any
arithmetic on stored timestamps goes through ``as_utc`` first.
"""

import uuid
from datetime import datetime, timezone


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to a naive datetime read back from the database."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def elapsed_seconds(start: datetime, end: datetime | None = None) -> int:
    """Whole seconds between ``start`` and ``end`` (default: now), never negative."""
    end = as_utc(end) if end is not None else _utcnow()
    return max(0, int((end - as_utc(start)).total_seconds()))


def iso(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value else None
