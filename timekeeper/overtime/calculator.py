from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
MINUTES_PER_HOUR = Decimal(60)


def _to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # Floats go through str() so 0.1 stays Decimal("0.1")
    return Decimal(str(value))


def round_currency(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def elapsed_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants, floored at zero."""
    seconds = (end - start).total_seconds()
    return max(int(seconds // 60), 0)


def elapsed_hours(start: datetime, end: datetime) -> Decimal:
    return Decimal(elapsed_minutes(start, end)) / MINUTES_PER_HOUR


def hourly_rate(base_salary: Number, hours_per_day: Number, days_per_month: Number) -> Decimal:
    return _to_decimal(base_salary) / _to_decimal(days_per_month) / _to_decimal(hours_per_day)


def compute_amount(
    actual_hours: Number,
    ot_rate: Number,
    base_salary: Optional[Number],
    hours_per_day: Number,
    days_per_month: Number,
) -> Optional[Decimal]:
    """OT pay for a completed session, or ``None`` when salary is not configured.

    A missing, zero or negative base salary yields no amount rather than an
    error.
    """
    if base_salary is None:
        return None
    salary = _to_decimal(base_salary)
    if salary <= 0:
        return None
    hourly = hourly_rate(salary, hours_per_day, days_per_month)
    return round_currency(_to_decimal(actual_hours) * hourly * _to_decimal(ot_rate))
