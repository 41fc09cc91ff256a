"""
UTC helpers for watchlist timestamps (added_date, watched_date, cache stamps).
"""
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalise a stored timestamp to aware UTC.

    SQLite drops tzinfo on DateTime(timezone=True) columns, so naive values
    are taken to be UTC already.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_iso_utc(dt: Optional[datetime]) -> str:
    """ISO-8601 in UTC, or "" for a missing timestamp."""
    normalised = ensure_utc(dt)
    return normalised.isoformat() if normalised is not None else ""
