from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Mapping, Optional

from .options import HOLIDAY, WEEKEND, WORKDAY, OTOptions


@dataclass(frozen=True)
class RateInfo:
    ot_type: str
    multiplier: Decimal
    holiday_name: Optional[str] = None


def classify_day(day: date, options: OTOptions, holidays: Mapping[date, str]) -> str:
    # Holidays take priority over the working-days calendar
    if day in holidays:
        return HOLIDAY
    if day.isoweekday() not in options.working_days:
        return WEEKEND
    return WORKDAY


def resolve_rate(day: date, options: OTOptions, holidays: Mapping[date, str]) -> RateInfo:
    ot_type = classify_day(day, options, holidays)
    return RateInfo(
        ot_type=ot_type,
        multiplier=options.rate_for(ot_type),
        holiday_name=holidays.get(day) if ot_type == HOLIDAY else None,
    )
