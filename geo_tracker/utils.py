from datetime import datetime
import pytz

from geo_tracker.config import LOCAL_TIMEZONE

LOCAL_TZ = pytz.timezone(LOCAL_TIMEZONE)


def to_local(dt: datetime) -> datetime:
    """Convert a naive or aware datetime to the local timezone.
    If naive, assume it's already local time.
    """
    if dt.tzinfo is None:
        return LOCAL_TZ.localize(dt)
    return dt.astimezone(LOCAL_TZ)


def to_utc(dt: datetime) -> datetime:
    """Normalize a datetime to UTC. Naive values are treated as local time."""
    return to_local(dt).astimezone(pytz.UTC)


def to_utc_iso(dt: datetime) -> str:
    """ISO-8601 string of the datetime in UTC, with a trailing Z."""
    return to_utc(dt).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_iso(text: str) -> datetime:
    """Parse an ISO-8601 timestamp into a local-timezone aware datetime.
    Strings without an offset are read as UTC.
    """
    value = text.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = pytz.UTC.localize(dt)
    return dt.astimezone(LOCAL_TZ)


def from_naive_utc(dt: datetime) -> datetime:
    """Convert a naive UTC datetime, as read back from the database, to local time."""
    if dt.tzinfo is None:
        dt = pytz.UTC.localize(dt)
    return dt.astimezone(LOCAL_TZ)
