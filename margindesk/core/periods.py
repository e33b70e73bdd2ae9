"""Calendar month helpers shared by services."""

from __future__ import annotations

import calendar
import re
from datetime import date, timedelta

from fastapi import HTTPException, status

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


def parse_month(value: str | None, *, field: str = "month") -> date:
    """Parse ``YYYY-MM`` into the first day of that month."""

    if not value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{field} parameter is required (format: YYYY-MM)",
        )
    match = _MONTH_RE.match(value.strip())
    if match is None or not 1 <= int(match.group(2)) <= 12:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid month format. Use YYYY-MM",
        )
    return date(int(match.group(1)), int(match.group(2)), 1)


def month_start(value: date) -> date:
    return date(value.year, value.month, 1)


def month_end(value: date) -> date:
    return date(value.year, value.month, calendar.monthrange(value.year, value.month)[1])


def month_bounds(value: date) -> tuple[date, date]:
    return month_start(value), month_end(value)


def add_months(value: date, months: int) -> date:
    index = value.year * 12 + (value.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def month_sequence(start_month: date, end_month: date) -> list[date]:
    current = month_start(start_month)
    end = month_start(end_month)
    months: list[date] = []
    while current <= end:
        months.append(current)
        current = add_months(current, 1)
    return months


def format_month(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def business_days(start: date, end: date) -> int:
    """Count Monday to Friday dates in the inclusive range."""

    count = 0
    current = start
    while current <= end:
        if current.weekday() < 5:
            count += 1
        current += timedelta(days=1)
    return count
