"""Utility functions shared by the rent ledger and the calculators.

This module provides helpers for parsing user input into Python data types and
for handling dates: ISO dates, year-month strings normalized to the first day
of the month, month arithmetic with day clamping, and cent rounding of money
values using commercial rounding.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, getcontext
from typing import Optional, Union

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

CENT = Decimal("0.01")

DateLike = Union[date, str, None]
Number = Union[Decimal, int, float, str]


def parse_year_month(ym: str) -> date:
    """Parse a YYYY-MM string into a ``date`` object (first day of month).

    Parameters
    ----------
    ym: str
        A string in the form ``"YYYY-MM"``. The day component, if present,
        will be ignored.

    Returns
    -------
    date
        A date object representing the first day of the specified month.

    Raises
    ------
    ValueError
        If the string is not a valid year-month.
    """
    try:
        parts = ym.split("-")
        if len(parts) < 2:
            raise ValueError
        year = int(parts[0])
        month = int(parts[1])
        return date(year, month, 1)
    except Exception as exc:
        raise ValueError(f"Invalid year-month string: {ym}") from exc


def parse_iso_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` string. A trailing time component is ignored."""
    try:
        return date.fromisoformat(value.strip()[:10])
    except Exception as exc:
        raise ValueError(f"Invalid date string: {value}") from exc


def coerce_date(value: DateLike) -> Optional[date]:
    """Return ``value`` as a ``date``; ``None`` and empty strings yield ``None``."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid date: {value!r}")
    if not value.strip():
        return None
    return parse_iso_date(value)


def coerce_month(value: DateLike) -> Optional[date]:
    """Return ``value`` normalized to the first day of its month."""
    if value is None:
        return None
    if isinstance(value, date):
        return first_of_month(value)
    if not isinstance(value, str):
        raise ValueError(f"Invalid month: {value!r}")
    if not value.strip():
        return None
    return parse_year_month(value)


def first_of_month(dt: date) -> date:
    return date(dt.year, dt.month, 1)


def last_of_month(dt: date) -> date:
    return date(dt.year, dt.month, calendar.monthrange(dt.year, dt.month)[1])


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def decimal_from_str(value: str) -> Decimal:
    """Convert a numeric string into a ``Decimal``.

    The function strips any commas and handles both integer and float-like
    strings. It raises ``ValueError`` if conversion fails.
    """
    try:
        cleaned = value.strip().replace(",", "")
        result = Decimal(cleaned)
    except (InvalidOperation, AttributeError) as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value}")
    return result


def to_decimal(value: Number) -> Decimal:
    """Convert ints, floats, strings or decimals into a ``Decimal``.

    Floats go through ``str`` so that ``850.5`` becomes ``Decimal("850.5")``
    rather than its binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid numeric value: {value}")
    if isinstance(value, (int, float)):
        return decimal_from_str(str(value))
    return decimal_from_str(value)


def quantize_money(value: Decimal) -> Decimal:
    """Round to the cent, halves away from zero."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_month(dt: Optional[date]) -> Optional[str]:
    return dt.strftime("%Y-%m") if dt else None
