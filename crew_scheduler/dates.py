from __future__ import annotations

import calendar
import datetime
import re
from typing import List

WEEKDAY_TOKENS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

_MONTH_ISO = re.compile(r"^(?P<year>\d{4})-(?P<month>\d{1,2})(?:-(?P<day>\d{1,2}))?$")
_MONTH_COMPACT = re.compile(r"^(?P<year>\d{4})(?P<month>\d{2})(?P<day>\d{2})?$")
_MDY = re.compile(r"^(?P<month>\d{1,2})/(?P<day>\d{1,2})/(?P<year>\d{4})$")
_CLOCK = re.compile(r"^(?P<hour>\d{1,2}):(?P<minute>\d{2})$")


class InvalidDateError(ValueError):
    """Raised when a date or month key cannot be parsed."""


def parse_date(value) -> datetime.date:
    """Return a date from a date, datetime, ``YYYY-MM-DD`` or ``MM/DD/YYYY`` value."""
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if not isinstance(value, str):
        raise InvalidDateError(f"Invalid date {value!r}.")
    text = value.strip()
    try:
        return datetime.date.fromisoformat(text)
    except ValueError:
        pass
    match = _MDY.match(text)
    if match:
        try:
            return datetime.date(int(match["year"]), int(match["month"]), int(match["day"]))
        except ValueError:
            pass
    raise InvalidDateError(f"Invalid date {value!r}; expected YYYY-MM-DD.")


def parse_month(value) -> str:
    """Normalize a month key to ``YYYY-MM``.

    Accepts ``YYYY-M``, ``YYYY-MM``, ``YYYY-MM-DD``, ``YYYYMM`` and ``YYYYMMDD``
    as well as date objects.
    """
    if isinstance(value, (datetime.date, datetime.datetime)):
        return f"{value.year:04d}-{value.month:02d}"
    if not isinstance(value, str):
        raise InvalidDateError(f"Invalid month {value!r}.")
    text = value.strip()
    match = _MONTH_ISO.match(text) or _MONTH_COMPACT.match(text)
    if not match:
        raise InvalidDateError(f"Invalid month {value!r}; expected YYYY-MM.")
    year = int(match["year"])
    month = int(match["month"])
    if not 1 <= month <= 12:
        raise InvalidDateError(f"Invalid month {value!r}; month must be 01-12.")
    return f"{year:04d}-{month:02d}"


def month_bounds(month: str) -> tuple[datetime.date, datetime.date]:
    key = parse_month(month)
    year, month_number = (int(part) for part in key.split("-"))
    last_day = calendar.monthrange(year, month_number)[1]
    return datetime.date(year, month_number, 1), datetime.date(year, month_number, last_day)


def is_weekend(day: datetime.date) -> bool:
    return day.weekday() >= 5


def weekdays_between(start: datetime.date, end: datetime.date) -> List[datetime.date]:
    """Every Monday-Friday date in ``[start, end]``."""
    if end < start:
        raise ValueError("End date must not be before start date.")
    days = []
    current = start
    while current <= end:
        if not is_weekend(current):
            days.append(current)
        current += datetime.timedelta(days=1)
    return days


def weekdays_in_month(month: str) -> List[datetime.date]:
    first, last = month_bounds(month)
    return weekdays_between(first, last)


def parse_clock(value: str) -> int:
    """Return minutes after midnight for an ``HH:MM`` label."""
    match = _CLOCK.match((value or "").strip())
    if not match:
        raise ValueError(f"Invalid time {value!r}; expected HH:MM.")
    hour = int(match["hour"])
    minute = int(match["minute"])
    if hour > 24 or minute > 59 or (hour == 24 and minute):
        raise ValueError(f"Invalid time {value!r}.")
    return hour * 60 + minute


def format_clock(minutes: int) -> str:
    hours, mins = divmod(int(minutes), 60)
    return f"{hours:02d}:{mins:02d}"


def day_start(day: datetime.date) -> datetime.datetime:
    return datetime.datetime.combine(day, datetime.time())
