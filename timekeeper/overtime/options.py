"""Typed view over the ``system_settings`` key/value pairs used by overtime.

Every value is stored as a string. Parsing never fails: a missing, blank or
unparseable value falls back to the documented default.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Tuple

WORKDAY = "workday"
WEEKEND = "weekend"
HOLIDAY = "holiday"
DAY_TYPES = (WORKDAY, WEEKEND, HOLIDAY)

RATE_TIERS = ("1x", "1.5x", "2x")

DEFAULTS: Dict[str, str] = {
    "ot_require_approval": "true",
    "ot_auto_approve": "false",
    "ot_min_hours": "1",
    "ot_max_hours": "8",
    "ot_start_after_work_end": "true",
    "ot_early_start_buffer": "15",
    "ot_require_before_photo": "true",
    "ot_require_after_photo": "true",
    "max_ot_per_day": "4",
    "max_ot_per_week": "20",
    "max_ot_per_month": "60",
    "default_ot_rate_1x": "1.0",
    "default_ot_rate_1_5x": "1.5",
    "default_ot_rate_2x": "2.0",
    "ot_rate_workday": "1.5x",
    "ot_rate_weekend": "1.5x",
    "ot_rate_holiday": "2x",
    "work_hours_per_day": "8",
    "days_per_month": "26",
    "work_end_time": "17:30",
    "working_days": "1,2,3,4,5",
    "ot_notify_on_request": "true",
    "ot_notify_on_approval": "true",
    "ot_notify_on_start": "true",
    "ot_notify_on_end": "true",
}


def _default_true(value: Optional[str]) -> bool:
    return (value or "").strip().lower() != "false"


def _default_false(value: Optional[str]) -> bool:
    return (value or "").strip().lower() == "true"


def _as_float(value: Optional[str], default: float, *, minimum: float = 0.0) -> float:
    try:
        parsed = float((value or "").strip())
    except ValueError:
        return default
    if not math.isfinite(parsed) or parsed < minimum:
        return default
    return parsed


def _as_decimal(value: Optional[str], default: Decimal, *, positive: bool = True) -> Decimal:
    try:
        parsed = Decimal((value or "").strip())
    except InvalidOperation:
        return default
    if not parsed.is_finite() or (positive and parsed <= 0):
        return default
    return parsed


def _as_time(value: Optional[str], default: time) -> time:
    try:
        hours, minutes = (value or "").strip().split(":")[:2]
        return time(int(hours), int(minutes))
    except ValueError:
        return default


def _as_weekdays(value: Optional[str], default: Tuple[int, ...]) -> Tuple[int, ...]:
    days = []
    for chunk in (value or "").split(","):
        chunk = chunk.strip()
        if chunk.isdigit() and 1 <= int(chunk) <= 7:
            days.append(int(chunk))
    return tuple(sorted(set(days))) or default


@dataclass(frozen=True)
class OTOptions:
    require_approval: bool = True
    auto_approve: bool = False
    min_hours: float = 1.0
    max_hours: float = 8.0
    start_after_work_end: bool = True
    early_start_buffer_minutes: int = 15
    require_before_photo: bool = True
    require_after_photo: bool = True
    max_per_day: float = 4.0
    max_per_week: float = 20.0
    max_per_month: float = 60.0
    rate_tiers: Dict[str, Decimal] = field(
        default_factory=lambda: {"1x": Decimal("1.0"), "1.5x": Decimal("1.5"), "2x": Decimal("2.0")}
    )
    day_type_rates: Dict[str, str] = field(
        default_factory=lambda: {WORKDAY: "1.5x", WEEKEND: "1.5x", HOLIDAY: "2x"}
    )
    hours_per_day: Decimal = Decimal("8")
    days_per_month: Decimal = Decimal("26")
    work_end_time: time = time(17, 30)
    working_days: Tuple[int, ...] = (1, 2, 3, 4, 5)
    notify_on_request: bool = True
    notify_on_approval: bool = True
    notify_on_start: bool = True
    notify_on_end: bool = True

    @classmethod
    def from_mapping(cls, values: Mapping[str, str]) -> "OTOptions":
        base = cls()

        def raw(key: str) -> Optional[str]:
            return values.get(key)

        tiers = {
            "1x": _as_decimal(raw("default_ot_rate_1x"), base.rate_tiers["1x"]),
            "1.5x": _as_decimal(raw("default_ot_rate_1_5x"), base.rate_tiers["1.5x"]),
            "2x": _as_decimal(raw("default_ot_rate_2x"), base.rate_tiers["2x"]),
        }
        day_rates = {}
        for day_type in DAY_TYPES:
            configured = (raw(f"ot_rate_{day_type}") or "").strip()
            day_rates[day_type] = configured or base.day_type_rates[day_type]

        hours_per_day = raw("work_hours_per_day")
        if hours_per_day is None:
            hours_per_day = raw("hours_per_day")

        buffer = _as_float(raw("ot_early_start_buffer"), float(base.early_start_buffer_minutes))

        return cls(
            require_approval=_default_true(raw("ot_require_approval")),
            auto_approve=_default_false(raw("ot_auto_approve")),
            min_hours=_as_float(raw("ot_min_hours"), base.min_hours),
            max_hours=_as_float(raw("ot_max_hours"), base.max_hours, minimum=1e-9),
            start_after_work_end=_default_true(raw("ot_start_after_work_end")),
            early_start_buffer_minutes=int(buffer),
            require_before_photo=_default_true(raw("ot_require_before_photo")),
            require_after_photo=_default_true(raw("ot_require_after_photo")),
            max_per_day=_as_float(raw("max_ot_per_day"), base.max_per_day),
            max_per_week=_as_float(raw("max_ot_per_week"), base.max_per_week),
            max_per_month=_as_float(raw("max_ot_per_month"), base.max_per_month),
            rate_tiers=tiers,
            day_type_rates=day_rates,
            hours_per_day=_as_decimal(hours_per_day, base.hours_per_day),
            days_per_month=_as_decimal(raw("days_per_month"), base.days_per_month),
            work_end_time=_as_time(raw("work_end_time"), base.work_end_time),
            working_days=_as_weekdays(raw("working_days"), base.working_days),
            notify_on_request=_default_true(raw("ot_notify_on_request")),
            notify_on_approval=_default_true(raw("ot_notify_on_approval")),
            notify_on_start=_default_true(raw("ot_notify_on_start")),
            notify_on_end=_default_true(raw("ot_notify_on_end")),
        )

    def rate_for(self, day_type: str) -> Decimal:
        """Multiplier for a day type.

        The per-day-type setting holds either a tier name (``1x``, ``1.5x``,
        ``2x``) pointing at a ``default_ot_rate_*`` value, or a literal number.
        """
        configured = self.day_type_rates.get(day_type, "").strip().lower()
        if configured in self.rate_tiers:
            return self.rate_tiers[configured]
        fallback_tier = "2x" if day_type == HOLIDAY else "1.5x"
        return _as_decimal(configured, self.rate_tiers[fallback_tier])

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["work_end_time"] = self.work_end_time.strftime("%H:%M")
        data["working_days"] = list(self.working_days)
        data["rate_tiers"] = {tier: float(value) for tier, value in self.rate_tiers.items()}
        data["hours_per_day"] = float(self.hours_per_day)
        data["days_per_month"] = float(self.days_per_month)
        data["resolved_rates"] = {day_type: float(self.rate_for(day_type)) for day_type in DAY_TYPES}
        return data
