"""Request-time rules for OT submissions.

Hard rules raise :class:`RequestValidationError` with the violated rule code.
Hour ceilings are soft: exceeding them produces warnings and the request is
still admitted, so heavy workloads are surfaced rather than silently blocked.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from timekeeper.core.errors import RequestValidationError

from .options import OTOptions
from .state import OPEN, OTStatus


@dataclass(frozen=True)
class RequestWindow:
    request_date: date
    start: datetime
    end: datetime
    reason: str

    @property
    def hours(self) -> float:
        return (self.end - self.start).total_seconds() / 3600


@dataclass(frozen=True)
class LoggedOT:
    """Hours an existing request contributes to the employee's OT totals."""

    request_date: date
    status: str
    hours: float


@dataclass(frozen=True)
class CapWarning:
    code: str
    period: str
    limit: float
    total: float


@dataclass
class ValidationOutcome:
    window: RequestWindow
    warnings: List[CapWarning] = field(default_factory=list)


def week_bounds(anchor: date) -> Tuple[date, date]:
    start = anchor - timedelta(days=anchor.weekday())
    end = start + timedelta(days=6)
    return start, end


def month_bounds(anchor: date) -> Tuple[date, date]:
    start = anchor.replace(day=1)
    next_month = (start + timedelta(days=32)).replace(day=1)
    return start, next_month - timedelta(days=1)


def history_bounds(anchor: date) -> Tuple[date, date]:
    """Smallest date range covering the anchor's ISO week and calendar month."""
    week_start, week_end = week_bounds(anchor)
    month_start, month_end = month_bounds(anchor)
    return min(week_start, month_start), max(week_end, month_end)


def _check_hard_rules(
    window: RequestWindow,
    history: List[LoggedOT],
    options: OTOptions,
    today: date,
    work_end: Optional[datetime],
) -> None:
    if not window.reason.strip():
        raise RequestValidationError("reason_required")
    if window.end <= window.start:
        raise RequestValidationError("invalid_window")
    if window.request_date < today:
        raise RequestValidationError("past_date")

    hours = window.hours
    if hours < options.min_hours:
        raise RequestValidationError(
            "duration_below_minimum",
            f"OT must be at least {options.min_hours:g} hour(s), requested {hours:.2f}",
        )
    if hours > options.max_hours:
        raise RequestValidationError(
            "duration_above_maximum",
            f"OT may not exceed {options.max_hours:g} hour(s), requested {hours:.2f}",
        )

    if options.start_after_work_end and work_end is not None:
        earliest = work_end - timedelta(minutes=options.early_start_buffer_minutes)
        if window.start < earliest:
            raise RequestValidationError(
                "start_before_work_end",
                f"OT may not start before {earliest:%H:%M}",
            )

    open_statuses = {status.value for status in OPEN}
    if any(item.request_date == window.request_date and item.status in open_statuses for item in history):
        raise RequestValidationError("duplicate_request")


def _cap_warnings(window: RequestWindow, history: List[LoggedOT], options: OTOptions) -> List[CapWarning]:
    week_start, week_end = week_bounds(window.request_date)
    month_start, month_end = month_bounds(window.request_date)
    periods = [
        ("day", "daily_cap_exceeded", options.max_per_day, window.request_date, window.request_date),
        ("week", "weekly_cap_exceeded", options.max_per_week, week_start, week_end),
        ("month", "monthly_cap_exceeded", options.max_per_month, month_start, month_end),
    ]
    ignored = {OTStatus.REJECTED.value, OTStatus.CANCELLED.value}

    warnings: List[CapWarning] = []
    for period, code, limit, start, end in periods:
        if limit <= 0:
            continue
        logged = sum(
            item.hours for item in history if start <= item.request_date <= end and item.status not in ignored
        )
        total = round(logged + window.hours, 2)
        if total > limit:
            warnings.append(CapWarning(code=code, period=period, limit=limit, total=total))
    return warnings


def validate_request(
    window: RequestWindow,
    history: Iterable[LoggedOT],
    options: OTOptions,
    *,
    today: date,
    work_end: Optional[datetime] = None,
) -> ValidationOutcome:
    """Check a proposed OT window against the configured rules.

    ``work_end`` is the employee's scheduled end of work on the request date,
    or ``None`` when the date has no schedule (weekends and holidays), in which
    case the start-after-work-end rule does not apply.
    """
    items = list(history)
    _check_hard_rules(window, items, options, today, work_end)
    return ValidationOutcome(window=window, warnings=_cap_warnings(window, items, options))
