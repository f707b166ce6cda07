"""
Date and timestamp parsing for ledger records.

Two kinds of time values flow through the cash book:
- ``createdAt`` timestamps, which order records for reconciliation
- conceptual business dates (``date``, ``lastBalancedDate``), which are
  display-only
"""
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

from dateutil import parser as dateutil_parser

from config import DATE_FORMATS, DISPLAY_DATE_FORMAT

# Ordering default for records with a missing or malformed timestamp
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# "2024-01-05", "2024-01-05T10:00:00Z", "2024-01-05 00:00:00"
YEAR_FIRST_PATTERN = re.compile(r"^\d{4}-\d{1,2}-\d{1,2}")

TimeValue = Union[str, datetime, date, int, float, None]


def parse_timestamp(value: TimeValue) -> Optional[datetime]:
    """
    Parse a timestamp into a timezone-aware UTC datetime.

    Accepts ISO-8601 strings (including a trailing ``Z``), datetime/date
    objects and epoch milliseconds. Naive values are taken to be UTC.

    Returns:
        An aware datetime, or None if the value cannot be parsed
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    value_str = str(value).strip()
    if not value_str:
        return None

    try:
        return as_utc(datetime.fromisoformat(value_str.replace("Z", "+00:00")))
    except ValueError:
        pass

    try:
        return as_utc(dateutil_parser.isoparse(value_str))
    except (ValueError, OverflowError):
        pass

    parsed_date = parse_date(value_str)
    if parsed_date is not None:
        return datetime.combine(parsed_date, time.min, tzinfo=timezone.utc)
    return None


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_date(value: TimeValue) -> Optional[date]:
    """
    Parse a conceptual date from various formats into a date object.

    Args:
        value: A string that might be a date, or a datetime/date object

    Returns:
        A date object if parsing succeeds, None otherwise
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return as_utc(value).date()
    if isinstance(value, date):
        return value

    value_str = " ".join(str(value).split())
    if not value_str:
        return None

    # API payloads and Excel cells carry full timestamps even for conceptual dates
    if YEAR_FIRST_PATTERN.match(value_str):
        stamp = None
        try:
            stamp = datetime.fromisoformat(value_str.replace("Z", "+00:00"))
        except ValueError:
            pass
        if stamp is not None:
            return as_utc(stamp).date()

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value_str, fmt).date()
        except ValueError:
            continue

    try:
        year_first = bool(YEAR_FIRST_PATTERN.match(value_str))
        return dateutil_parser.parse(
            value_str, dayfirst=not year_first, yearfirst=year_first
        ).date()
    except (ValueError, OverflowError):
        return None


def start_of_day(value: date) -> datetime:
    """Normalize a date to 00:00:00.000 UTC."""
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def end_of_day(value: date) -> datetime:
    """Normalize a date to 23:59:59.999999 UTC."""
    return datetime.combine(value, time.max, tzinfo=timezone.utc)


def next_day(value: date) -> date:
    return value + timedelta(days=1)


def format_date(dt: Optional[date], fmt: str = DISPLAY_DATE_FORMAT) -> str:
    """
    Format a date object as a string.

    Args:
        dt: Date object to format
        fmt: Output format string (default: DD-MMM-YYYY)

    Returns:
        Formatted date string, or empty string if date is None
    """
    if dt is None:
        return ""
    return dt.strftime(fmt)
