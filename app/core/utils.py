"""General utility functions."""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """Convert datetime to UTC timezone."""
    if dt.tzinfo is None:
        # SQLite drops tzinfo; stored values are always UTC
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def isoformat_or_none(dt):
    """ISO-8601 UTC string for API payloads, or None."""
    if dt is None:
        return None
    return to_utc(dt).isoformat()


def percentage(numerator: int, denominator: int) -> float:
    """Percentage rounded to one decimal; 0 when there is nothing to divide by."""
    if denominator <= 0:
        return 0.0
    return round(numerator / denominator * 100, 1)
