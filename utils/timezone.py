"""UTC-everywhere time handling for conversion timestamps and age checks."""

from datetime import datetime, timedelta, timezone


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 datetime string to UTC datetime.

    Raises ValueError if string has no timezone info.
    """
    dt = datetime.fromisoformat(iso_string)
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot parse naive datetime string. "
            "Include timezone offset (e.g., 'Z' or '+00:00')."
        )
    return to_utc(dt)


def days_since(dt: datetime, now: datetime | None = None) -> float:
    """Fractional days elapsed since dt (negative if dt is in the future)."""
    now = now or now_utc()
    return (now - to_utc(dt)).total_seconds() / 86400


def within_days(dt: datetime | None, days: int, now: datetime | None = None) -> bool:
    """True if dt falls inside the trailing window of the given number of days."""
    if dt is None:
        return False
    now = now or now_utc()
    return to_utc(dt) > now - timedelta(days=days)

