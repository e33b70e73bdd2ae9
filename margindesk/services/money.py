"""Decimal helpers for money, hours and percentages."""

from __future__ import annotations

from decimal import Decimal

ZERO = Decimal("0.00")
Q2 = Decimal("0.01")
HUNDRED = Decimal("100")


def q2(value: Decimal | int | float | str) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(Q2)



def percent_of(part: Decimal, whole: Decimal) -> Decimal:
    """``part / whole * 100`` rounded to cents, zero when ``whole`` is zero."""

    if whole == ZERO:
        return ZERO
    return (part * HUNDRED / whole).quantize(Q2)


def money_str(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return str(q2(value))
