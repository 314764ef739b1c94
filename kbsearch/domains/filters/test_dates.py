"""Tests for date helpers."""

from datetime import datetime

import pytest

from kbsearch.config.errors import InvalidDateError

from .dates import parse_date, parse_date_range, parse_relative_date


def test_parse_iso_day() -> None:
    """Test strict YYYY-MM-DD parsing."""
    assert parse_date("2024-01-15") == datetime(2024, 1, 15)


def test_parse_iso_timestamp() -> None:
    """Test generic ISO-8601 fallback."""
    assert parse_date("2024-01-15T08:30:00") == datetime(2024, 1, 15, 8, 30)


@pytest.mark.parametrize("value", ["not a date", "2024-13-45", "", "15/01/2024"])
def test_parse_invalid_date(value: str) -> None:
    """Test invalid dates raise InvalidDateError."""
    with pytest.raises(InvalidDateError):
        parse_date(value)


def test_parse_relative_days_and_weeks() -> None:
    """Test day and week offsets."""
    now = datetime(2024, 3, 31, 12, 0)
    assert parse_relative_date("last 7 days", now=now) == datetime(2024, 3, 24, 12, 0)
    assert parse_relative_date("last 1 day", now=now) == datetime(2024, 3, 30, 12, 0)
    assert parse_relative_date("LAST 2 weeks", now=now) == datetime(2024, 3, 17, 12, 0)


def test_parse_relative_months_clamp() -> None:
    """Test month steps clamp to the end of shorter months."""
    now = datetime(2024, 3, 31)
    assert parse_relative_date("last 1 month", now=now) == datetime(2024, 2, 29)
    assert parse_relative_date("last 3 months", now=now) == datetime(2023, 12, 31)


def test_parse_relative_years() -> None:
    """Test year steps, including leap day."""
    assert parse_relative_date("last 1 year", now=datetime(2024, 2, 29)) == datetime(2023, 2, 28)


def test_parse_relative_defaults_to_now() -> None:
    """Test relative parsing without an explicit now."""
    result = parse_relative_date("last 30 days")
    assert (datetime.now() - result).days == 30


def test_parse_relative_invalid() -> None:
    """Test unknown relative formats."""
    with pytest.raises(InvalidDateError):
        parse_relative_date("next 3 days")
    with pytest.raises(InvalidDateError):
        parse_relative_date("last few weeks")


def test_parse_date_range() -> None:
    """Test ordered range parsing."""
    date_range = parse_date_range("2024-01-01 to 2024-12-31")
    assert date_range.start == datetime(2024, 1, 1)
    assert date_range.end == datetime(2024, 12, 31)


def test_parse_date_range_case_insensitive_separator() -> None:
    """Test the separator is matched case-insensitively."""
    date_range = parse_date_range("2024-01-01 TO 2024-02-01")
    assert date_range.end == datetime(2024, 2, 1)


@pytest.mark.parametrize(
    "value",
    ["2024-01-01", "2024-01-01 - 2024-02-01", "2024-01-01 to nope", "2024-05-01 to 2024-01-01"],
)
def test_parse_date_range_invalid(value: str) -> None:
    """Test missing separator, bad bounds and reversed ranges."""
    with pytest.raises(InvalidDateError):
        parse_date_range(value)
