"""
Month bucketing for the rental report.

`extract_month_key` is the only place the "YYYY-MM" rule lives. The incremental
aggregator and the batch aggregator both call it, so the two paths cannot
bucket a rental differently.
"""

from __future__ import annotations

from datetime import date, datetime

from rental_report.errors import InvalidInputError

MONTH_KEY_PATTERN = r"^\d{4}-\d{2}$"


def extract_month_key(value: date | datetime | None) -> str:
    """
    Map a point in time to its calendar month key.

    The year and month are read from the value as given; timezone-aware
    datetimes are not converted first.

    Raises
    ------
    InvalidInputError
        If `value` is None or not a date/datetime.
    """
    if value is None:
        raise InvalidInputError("Cannot derive a month key from a missing rental date")
    if not isinstance(value, date):
        raise InvalidInputError(
            f"Cannot derive a month key from {type(value).__name__} value {value!r}"
        )
    return f"{value.year:04d}-{value.month:02d}"


__all__ = ["MONTH_KEY_PATTERN", "extract_month_key"]
