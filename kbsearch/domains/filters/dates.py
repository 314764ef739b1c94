"""
Date Helpers - Parse absolute, relative and ranged date expressions.

Accepted forms:
- ``2024-01-31`` or any ISO-8601 string
- ``last 7 days``, ``last 2 weeks``, ``last 1 month``, ``last 3 years``
- ``2024-01-01 to 2024-12-31``
"""

from __future__ import annotations

import calendar
import re
from datetime import datetime, timedelta

from kbsearch.config.errors import InvalidDateError

from .models import DateRange

__all__ = [
    "parse_date",
    "parse_relative_date",
    "parse_date_range",
    "is_relative_date",
    "is_date_range",
]

_ISO_DAY = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_RELATIVE = re.compile(r"^\s*last\s+(\d+)\s+(day|week|month|year)s?\s*$", re.IGNORECASE)
_RANGE_SEPARATOR = re.compile(r"\s+to\s+", re.IGNORECASE)


def parse_date(text: str) -> datetime:
    """
    Parse a strict ``YYYY-MM-DD`` date or an ISO-8601 timestamp.

    Raises:
        InvalidDateError: Neither form matches
    """
    value = text.strip()
    match = _ISO_DAY.match(value)
    if match:
        year, month, day = (int(part) for part in match.groups())
        try:
            return datetime(year, month, day)
        except ValueError as e:
            raise InvalidDateError(
                f"Invalid date: {text}", {"value": text, "reason": str(e)}
            ) from e

    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise InvalidDateError(
            f"Invalid date format: {text}. Use ISO 8601 (e.g., 2024-01-01)",
            {"value": text},
        ) from e


def parse_relative_date(text: str, now: datetime | None = None) -> datetime:
    """
    Parse ``last N {day|week|month|year}(s)`` into the moment N units before now.

    Month and year steps are calendar steps, clamped to the last day of the
    target month (``last 1 month`` from March 31 is February 28/29).
    """
    match = _RELATIVE.match(text)
    if not match:
        raise InvalidDateError(f"Unknown relative date format: {text}", {"value": text})

    amount = int(match.group(1))
    unit = match.group(2).lower()
    now = now or datetime.now()

    if unit == "day":
        return now - timedelta(days=amount)
    if unit == "week":
        return now - timedelta(weeks=amount)
    if unit == "month":
        return _shift_months(now, -amount)
    return _shift_months(now, -12 * amount)


def parse_date_range(text: str) -> DateRange:
    """
    Parse ``"<date> to <date>"`` into an ordered range.

    Raises:
        InvalidDateError: Separator missing, a bound fails to parse, or start > end
    """
    parts = _RANGE_SEPARATOR.split(text.strip())
    if len(parts) != 2 or not all(parts):
        raise InvalidDateError(
            'Invalid date range format. Use "YYYY-MM-DD to YYYY-MM-DD"',
            {"value": text},
        )

    start = parse_date(parts[0])
    end = parse_date(parts[1])
    if start > end:
        raise InvalidDateError(
            "Date range start is after its end",
            {"value": text, "start": start.isoformat(), "end": end.isoformat()},
        )
    return DateRange(start=start, end=end)


def is_relative_date(text: str) -> bool:
    return bool(_RELATIVE.match(text))


def is_date_range(text: str) -> bool:
    return len(_RANGE_SEPARATOR.split(text.strip())) == 2


def _shift_months(moment: datetime, months: int) -> datetime:
    """Move by whole calendar months, clamping the day."""
    index = moment.year * 12 + (moment.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)
