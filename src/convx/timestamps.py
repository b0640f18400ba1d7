"""Timestamp normalization.

Conversation logs mix ISO 8601 strings, epoch milliseconds and records with
no timestamp at all. Everything is normalized to timezone-aware UTC datetimes.
"""

from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

ONE_MILLISECOND = timedelta(milliseconds=1)

# Epoch values above this are treated as milliseconds, below as seconds.
# 1e11 ms is March 1973, 1e11 s is the year 5138.
_MILLIS_THRESHOLD = 100_000_000_000

# Instants within a day of the datetime limits cannot be shifted into every
# local timezone, so they are treated as unparseable.
_EARLIEST = datetime.min.replace(tzinfo=timezone.utc) + timedelta(days=1)
_LATEST = datetime.max.replace(tzinfo=timezone.utc) - timedelta(days=1)


def _from_epoch(value: float) -> datetime | None:
    seconds = value / 1000 if abs(value) >= _MILLIS_THRESHOLD else value
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _ensure_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _within_range(dt: datetime | None) -> datetime | None:
    """Normalize to UTC, rejecting instants too close to the datetime limits."""
    if dt is None:
        return None
    try:
        aware = _ensure_aware(dt)
    except (OverflowError, ValueError):
        return None
    if not _EARLIEST <= aware <= _LATEST:
        return None
    return aware


def _parse_iso(text: str) -> datetime | None:
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _parse_general(text: str) -> datetime | None:
    # RFC 2822 style ("Tue, 14 Jan 2025 10:00:00 GMT")
    try:
        return parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        pass

    # Numeric strings ("1736848800000")
    try:
        return _from_epoch(float(text))
    except ValueError:
        pass

    # Common log formats
    for fmt in ("%Y/%m/%d %H:%M:%S", "%Y-%m-%d %H:%M:%S.%f", "%d/%m/%Y %H:%M:%S"):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def try_parse_timestamp(value: object) -> datetime | None:
    """Parse a timestamp value without any fallback.

    Accepts datetimes, epoch numbers (seconds or milliseconds) and strings.

    Returns:
        Timezone-aware UTC datetime, or None if the value is unusable
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return _within_range(value)

    if isinstance(value, (int, float)):
        return _within_range(_from_epoch(value))

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        return _within_range(_parse_iso(text) or _parse_general(text))

    return None


def parse_timestamp(value: object, fallback: datetime | None = None) -> datetime:
    """Normalize a timestamp, never raising.

    Tries structured parsing, then general-purpose parsing, then the
    supplied fallback (normally the file mtime), then the current time.

    Args:
        value: Raw timestamp value from a log record
        fallback: Instant to use when the value cannot be parsed

    Returns:
        Timezone-aware UTC datetime
    """
    dt = try_parse_timestamp(value)
    if dt is not None:
        return dt
    if fallback is not None:
        return _ensure_aware(fallback)
    return datetime.now(timezone.utc)


def to_epoch_millis(dt: datetime) -> int:
    """Convert a datetime to integer epoch milliseconds."""
    return (_ensure_aware(dt) - _EPOCH) // ONE_MILLISECOND


def from_mtime(st_mtime: float) -> datetime:
    """Convert a stat() mtime to a UTC datetime."""
    return datetime.fromtimestamp(st_mtime, tz=timezone.utc)


def _local(dt: datetime) -> datetime:
    try:
        return dt.astimezone()
    except (OverflowError, OSError, ValueError):
        return dt


def format_date_key(dt: datetime) -> str:
    """Format the local calendar date of an instant as YYYY-MM-DD.

    Instants that cannot be shifted into the local timezone use their own
    (normally UTC) date.
    """
    return _local(dt).date().isoformat()


def format_time(dt: datetime) -> str:
    """Format the local time of day as HH:MM."""
    return _local(dt).strftime("%H:%M")
