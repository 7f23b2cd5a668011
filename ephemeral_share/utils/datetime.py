"""Datetime utilities.

Timestamps are stored as naive UTC in the database so that SQLite and
PostgreSQL compare them the same way. They become aware only at the API edge.
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as a naive UTC datetime, the storage convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def ensure_aware(dt: datetime | None) -> datetime | None:
    """
    Convert naive datetime to aware UTC datetime.

    Naive datetimes coming from the database represent UTC time.

    Examples:
        >>> naive_dt = datetime(2025, 1, 1, 12, 0)
        >>> ensure_aware(naive_dt).tzinfo
        datetime.timezone.utc
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt
