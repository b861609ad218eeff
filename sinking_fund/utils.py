"""Utility functions for the sinking fund engine.

This module provides date helpers (normalising timestamps to days, adding
months with end-of-month clamping, counting whole months) and the parsing
helpers used when reading user input.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
import calendar
from typing import Union

DateLike = Union[date, datetime]


def start_of_day(value: DateLike) -> date:
    """Normalise a ``date`` or ``datetime`` to a plain ``date``.

    Timezone-aware datetimes are converted to UTC first so that the day
    matches the UTC-midnight convention used throughout the engine.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def add_days(dt: date, days: int) -> date:
    return dt + timedelta(days=days)


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def clamp_day(year: int, month: int, day: int) -> date:
    """Return ``day`` of the given month, clamped to the month's last day."""
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def months_between(start: date, end: date) -> int:
    """Number of calendar month boundaries from ``start`` to ``end``."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def parse_date(value: str) -> date:
    """Parse an ISO date string (``YYYY-MM-DD``) into a ``date``.

    Datetime strings such as ``2025-03-01T00:00:00Z`` are accepted and
    truncated to their date part.

    Raises
    ------
    ValueError
        If the string is not a valid date.
    """
    try:
        return date.fromisoformat(value.strip()[:10])
    except Exception as exc:
        raise ValueError(f"Invalid date string: {value}") from exc


def amount_from_str(value: str) -> float:
    """Convert a numeric string into a float amount.

    The function strips any commas and currency signs and accepts ``k``
    shorthand (``"1.5k"`` is 1500). It raises ``ValueError`` if conversion
    fails.
    """
    cleaned = value.strip().lower().replace(",", "").lstrip("$")
    factor = 1.0
    if cleaned.endswith("k"):
        factor = 1_000.0
        cleaned = cleaned[:-1]
    try:
        return float(cleaned) * factor
    except ValueError as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc
