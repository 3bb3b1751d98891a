"""Utility functions for the mortgage schedule engine.

This module provides helpers for parsing user input into Python data types,
for calendar-month arithmetic and for rounding money. Dates are handled with
Python's ``datetime`` and ``calendar`` modules; money is always ``Decimal``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
import calendar
from typing import Union

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

TWO_PLACES = Decimal("0.01")


def parse_year_month(ym: str) -> date:
    """Parse a YYYY-MM string into a ``date`` object (first day of month).

    Raises
    ------
    ValueError
        If the string is not a valid year-month.
    """
    parts = ym.strip().split("-")
    if len(parts) != 2:
        raise ValueError(f"Invalid year-month string: {ym}")
    try:
        return date(int(parts[0]), int(parts[1]), 1)
    except ValueError as exc:
        raise ValueError(f"Invalid year-month string: {ym}") from exc


def parse_date(value: Union[str, date]) -> date:
    """Parse a date given as ``YYYY-MM-DD``, ``YYYY-MM`` or ``DD/MM/YYYY``.

    ``date`` instances are returned unchanged. Year-month strings resolve to
    the first day of the month.
    """
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if "/" in text:
        parts = text.split("/")
        if len(parts) != 3:
            raise ValueError(f"Invalid date string: {value}")
        try:
            day, month, year = (int(p) for p in parts)
            return date(year, month, day)
        except ValueError as exc:
            raise ValueError(f"Invalid date string: {value}") from exc
    if text.count("-") == 1:
        return parse_year_month(text)
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"Invalid date string: {value}") from exc


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def months_between(start: date, end: date) -> int:
    """Whole calendar months from ``start``'s month to ``end``'s month."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def decimal_from_str(value: Union[str, int, float, Decimal]) -> Decimal:
    """Convert a numeric value into a ``Decimal``.

    Strings may carry thousands separators. Floats go through ``str`` so that
    ``0.1`` becomes ``Decimal("0.1")`` rather than its binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid numeric value: {value}")
    try:
        cleaned = str(value).strip().replace(",", "")
        result = Decimal(cleaned)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value}")
    return result


def round_money(value: Decimal) -> Decimal:
    """Round a money amount to cents, half-up."""
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
