"""
UTC Calendar Utilities

All month arithmetic in the dues and bill engines goes through here.

DESIGN DECISION: Everything is anchored to UTC calendar days.
A stored "2025-09-01" must mean the same day no matter where the
process runs, so we never convert through local time.

Month comparisons use "YYYY-MM" strings. They order correctly as plain
strings only because both parts are zero-padded.
"""

from datetime import date, datetime, time, timezone
from typing import Iterator, Optional, Union

from dateutil.relativedelta import relativedelta


DateLike = Union[date, datetime, str]


def utc_now() -> datetime:
    """Current instant, timezone-aware UTC."""
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """Current calendar day in UTC. This is the system clock for status derivation."""
    return utc_now().date()


def _as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def parse_date_utc(value: Optional[DateLike]) -> Optional[date]:
    """
    Parse a date-ish value into a UTC calendar date.

    Accepts date, datetime (converted to UTC first) or an ISO string.
    Only the "YYYY-MM-DD" prefix of a string is considered.

    Returns None for empty or unparseable input instead of raising.
    """
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return _as_date(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def month_key(value: Union[date, datetime]) -> str:
    """Return the "YYYY-MM" key for a date."""
    d = _as_date(value)
    return f"{d.year:04d}-{d.month:02d}"


def first_of_month_utc(value: Union[date, datetime]) -> date:
    """First calendar day of the month containing value."""
    return _as_date(value).replace(day=1)


def add_months_utc(value: Union[date, datetime], months: int) -> date:
    """
    Shift a date by whole calendar months.

    The day is kept when possible and clamped to the last day of the
    target month otherwise (Jan 31 + 1 month = Feb 28/29).
    """
    return _as_date(value) + relativedelta(months=months)


def in_interval(
    value: Union[date, datetime],
    start: Union[date, datetime],
    end: Optional[Union[date, datetime]],
) -> bool:
    """
    Inclusive interval membership on calendar days.

    end=None means the interval is still open. A non-null end covers the
    whole of that day.
    """
    day = _as_date(value)
    if day < _as_date(start):
        return False
    if end is None:
        return True
    return day <= _as_date(end)


def iter_month_starts(
    start: Union[date, datetime],
    stop: Union[date, datetime],
    inclusive: bool = True,
) -> Iterator[date]:
    """
    Yield the first day of every month from start's month to stop's month.

    With inclusive=False the month containing stop is not yielded.
    """
    current = first_of_month_utc(start)
    last = first_of_month_utc(stop)
    while current < last or (inclusive and current == last):
        yield current
        current = add_months_utc(current, 1)


def noon_utc(value: Union[date, datetime]) -> datetime:
    """
    Turn a calendar date into a ledger instant at 12:00 UTC.

    Noon keeps the day stable when the instant is rendered in any
    timezone between UTC-11 and UTC+11.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    return datetime.combine(value, time(12, 0), tzinfo=timezone.utc)


def is_month_key(value: str) -> bool:
    """Check a "YYYY-MM" key is well formed."""
    if len(value) != 7 or value[4] != "-":
        return False
    year, month = value[:4], value[5:]
    return year.isdigit() and month.isdigit() and 1 <= int(month) <= 12


def ensure_utc(value: Union[date, datetime]) -> datetime:
    """
    Normalize a ledger instant to an aware UTC datetime.

    Plain dates become noon UTC, naive datetimes are taken as UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return noon_utc(value)
