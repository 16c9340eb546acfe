"""Timestamp parsing, calendar iteration, and weekend-aware duration helpers."""

from __future__ import annotations

import re
from collections.abc import Iterator
from datetime import date, datetime, timedelta

import pandas as pd
import pytz

from .config import HOURS_PER_DAY, TIMEZONE, WEEKEND_DAYS, WORK_HOURS_PER_DAY
from .errors import MalformedTimestampError


def resolve_tz(tz=None):
    """Return a tzinfo for ``tz`` (name, tzinfo, or None for the configured default)."""
    if tz is None:
        return pytz.timezone(TIMEZONE)
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def normalize_to_tz(value, tz=None) -> pd.Timestamp | None:
    """Normalize a timestamp value to a specific timezone.

    Naive values are interpreted as UTC.

    Parameters
    ----------
    value : datetime-like or None
        Raw timestamp value (string, datetime, or None).
    tz : timezone or str, optional
        Target timezone for conversion; defaults to ``TIMEZONE``.

    Returns
    -------
    pd.Timestamp or None
        Timezone-aware timestamp, or None if conversion fails.
    """
    if value is None or value == "":
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        # Non-scalar input is never a timestamp
        return None
    try:
        ts = pd.to_datetime(value, utc=True, errors="coerce")
    except (TypeError, ValueError):
        return None
    if ts is None or pd.isna(ts):
        return None
    return ts.tz_convert(resolve_tz(tz))


def parse_timestamp(value, tz=None, *, context: str | None = None) -> pd.Timestamp:
    """Like :func:`normalize_to_tz` but raises ``MalformedTimestampError`` on failure."""
    ts = normalize_to_tz(value, tz)
    if ts is None:
        raise MalformedTimestampError(value, context)
    return ts


_DATE_ONLY = re.compile(r"\d{4}-\d{2}-\d{2}")


def is_date_only(value) -> bool:
    """True for a ``date`` or an ISO ``YYYY-MM-DD`` string without a time part."""
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    return isinstance(value, str) and _DATE_ONLY.fullmatch(value.strip()) is not None


def _local_midnight(day: date, tz) -> pd.Timestamp:
    return pd.Timestamp(day).tz_localize(resolve_tz(tz), ambiguous=True, nonexistent="shift_forward")


def parse_window_bound(value, tz=None, *, end: bool = False, context: str | None = None) -> pd.Timestamp:
    """Parse an inclusive window bound.

    Date-only bounds are read as calendar days in ``tz``: a start bound is
    that day's midnight, an end bound its last nanosecond, so the whole day
    is inside the window. Other values parse as :func:`parse_timestamp`.

    >>> parse_window_bound("2024-03-31", end=True)
    Timestamp('2024-03-31 23:59:59.999999999+0000', tz='UTC')
    """
    if not is_date_only(value):
        return parse_timestamp(value, tz, context=context)
    day = as_date(value, tz)
    if end:
        return _local_midnight(day + timedelta(days=1), tz) - pd.Timedelta(1, unit="ns")
    return _local_midnight(day, tz)


def today_in(tz=None) -> date:
    """Current calendar date in ``tz`` (default: the configured time zone)."""
    return pd.Timestamp.now(tz=resolve_tz(tz)).date()


def as_date(value, tz=None) -> date:
    """Coerce a date, datetime, or ISO string into a calendar date."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(resolve_tz(tz)).date()
        return value.date()
    if isinstance(value, date):
        return value
    ts = pd.to_datetime(value, errors="coerce")
    if ts is None or pd.isna(ts):
        raise MalformedTimestampError(value, "date bound")
    if ts.tzinfo is not None:
        ts = ts.tz_convert(resolve_tz(tz))
    return ts.date()


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every calendar day from ``start`` through ``end`` inclusive."""
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def hours_between(start: pd.Timestamp, end: pd.Timestamp) -> float:
    return round((end - start).total_seconds() / 3600.0, 2)


def weekend_days_between(start: datetime, end: datetime) -> int:
    """Count Saturdays and Sundays stepping one day at a time from ``start`` to ``end``."""
    count = 0
    current = start
    while current <= end:
        if current.weekday() in WEEKEND_DAYS:
            count += 1
        current += timedelta(days=1)
    return count


def working_hours_between(start: pd.Timestamp, end: pd.Timestamp) -> float:
    """Elapsed hours with 24h subtracted for every weekend day crossed."""
    hours = hours_between(start, end) - weekend_days_between(start, end) * HOURS_PER_DAY
    return round(max(hours, 0.0), 2)


def work_hours(hours: int) -> int:
    """Convert elapsed hours into working hours (8h counted per 24h)."""
    full_days, remainder = divmod(int(hours), HOURS_PER_DAY)
    return full_days * WORK_HOURS_PER_DAY + min(remainder, WORK_HOURS_PER_DAY)


def hours_to_days_string(hours: int) -> str:
    """Render elapsed hours as working days, e.g. ``"2d 3hrs"``.

    >>> hours_to_days_string(51)
    '2d 3hrs'
    >>> hours_to_days_string(0)
    '0'
    """
    working = work_hours(hours)
    days, remaining = divmod(working, WORK_HOURS_PER_DAY)
    if days == 0 and remaining == 0:
        return "0"
    if remaining == 0:
        return f"{days}d"
    return f"{days}d {remaining}hrs"
