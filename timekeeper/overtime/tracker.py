"""OT request lifecycle: request, decide, start, end.

Each transition is a conditional UPDATE guarded by the state it expects and
the row version it read, so two concurrent Start (or End) calls cannot both
succeed. Side effects are written to the outbox in the same transaction and
delivered after commit by :mod:`timekeeper.overtime.dispatch`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from timekeeper.core.errors import (
    AlreadyCompleted,
    AlreadyStarted,
    ConcurrentModification,
    InvalidTransition,
    NotApproved,
    NotStarted,
    OvertimeError,
    RequestNotFound,
    RequestValidationError,
)
from timekeeper.core.logging import get_logger
from timekeeper.core.observability import get_meter, get_tracer
from timekeeper.models.employee import Employee
from timekeeper.models.ot_request import OTRequest
from timekeeper.models.side_effect_event import SideEffectEvent

from .calculator import compute_amount, elapsed_hours, round_currency
from .dispatch import enqueue_gamification, enqueue_notification
from .holidays import holidays_between
from .notifications import OT_APPROVED, OT_END, OT_REJECTED, OT_REQUESTED, OT_START
from .options import WORKDAY, OTOptions
from .rates import RateInfo, classify_day, resolve_rate
from .state import OTStatus
from .validation import CapWarning, LoggedOT, RequestWindow, history_bounds, validate_request

logger = get_logger(__name__)
tracer = get_tracer(__name__)
transitions_counter = get_meter(__name__).create_counter(
    "ot_transitions", description="OT request state transitions"
)


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float


@dataclass
class TransitionResult:
    record: OTRequest
    event_ids: List[int] = field(default_factory=list)
    warnings: List[CapWarning] = field(default_factory=list)


def _window_hours(start: Optional[datetime], end: Optional[datetime]) -> float:
    if start is None or end is None:
        return 0.0
    return max((end - start).total_seconds() / 3600, 0.0)


def logged_hours(record: OTRequest) -> float:
    """Hours a record counts toward the employee's OT totals."""
    if record.status == OTStatus.COMPLETED.value:
        return float(record.actual_hours or 0)
    if record.status in (OTStatus.APPROVED.value, OTStatus.IN_PROGRESS.value):
        return _window_hours(
            record.approved_start or record.requested_start, record.approved_end or record.requested_end
        )
    if record.status == OTStatus.PENDING.value:
        return _window_hours(record.requested_start, record.requested_end)
    return 0.0


class OvertimeTracker:
    def __init__(
        self,
        session: Session,
        options: OTOptions,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.session = session
        self.options = options
        self.clock = clock

    # Queries

    def get(self, request_id: int) -> OTRequest:
        record = self.session.query(OTRequest).filter(OTRequest.id == request_id).one_or_none()
        if record is None:
            raise RequestNotFound()
        return record

    def list_requests(
        self,
        *,
        employee_id: Optional[int] = None,
        status: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[OTRequest]:
        query = self.session.query(OTRequest)
        if employee_id is not None:
            query = query.filter(OTRequest.employee_id == employee_id)
        if status:
            query = query.filter(OTRequest.status == OTStatus(status).value)
        if date_from:
            query = query.filter(OTRequest.request_date >= date_from)
        if date_to:
            query = query.filter(OTRequest.request_date <= date_to)
        return query.order_by(OTRequest.request_date.desc(), OTRequest.id.desc()).all()

    def active_for(self, employee_id: int, day: Optional[date] = None) -> Optional[OTRequest]:
        query = self.session.query(OTRequest).filter(
            OTRequest.employee_id == employee_id,
            OTRequest.status == OTStatus.IN_PROGRESS.value,
        )
        if day is not None:
            query = query.filter(OTRequest.request_date == day)
        return query.order_by(OTRequest.actual_start.desc()).first()

    def ready_to_start(self, employee_id: int, day: Optional[date] = None) -> List[OTRequest]:
        target = day or self.clock().date()
        return (
            self.session.query(OTRequest)
            .filter(
                OTRequest.employee_id == employee_id,
                OTRequest.request_date == target,
                OTRequest.status == OTStatus.APPROVED.value,
                OTRequest.actual_start.is_(None),
            )
            .order_by(OTRequest.requested_start.asc())
            .all()
        )

    def preview_rate(self, day: date) -> RateInfo:
        """Rate the given day would get if started now; nothing is persisted."""
        return resolve_rate(day, self.options, holidays_between(self.session, day, day))

    # Transitions

    def create(
        self,
        *,
        employee_id: int,
        requested_start: datetime,
        requested_end: datetime,
        reason: str,
        request_date: Optional[date] = None,
    ) -> TransitionResult:
        with tracer.start_as_current_span("ot.create") as span:
            span.set_attribute("ot.employee_id", employee_id)
            employee = self._employee(employee_id)
            window = RequestWindow(
                request_date=request_date or requested_start.date(),
                start=requested_start,
                end=requested_end,
                reason=reason or "",
            )

            holidays = holidays_between(self.session, window.request_date, window.request_date)
            work_end = None
            if classify_day(window.request_date, self.options, holidays) == WORKDAY:
                work_end = datetime.combine(
                    window.request_date, employee.work_end_time or self.options.work_end_time
                )

            outcome = validate_request(
                window,
                self._history(employee_id, window.request_date),
                self.options,
                today=self.clock().date(),
                work_end=work_end,
            )

            record = OTRequest(
                employee_id=employee_id,
                request_date=window.request_date,
                requested_start=requested_start,
                requested_end=requested_end,
                reason=window.reason.strip(),
                status=OTStatus.PENDING.value,
                version=1,
            )
            self.session.add(record)
            self.session.flush()

            events = []
            if self.options.notify_on_request:
                events.append(
                    enqueue_notification(
                        self.session,
                        record,
                        OT_REQUESTED,
                        self._payload(
                            employee,
                            record,
                            time=_time_range(requested_start, requested_end),
                            reason=record.reason,
                        ),
                    )
                )
            self.session.commit()

            transitions_counter.add(1, {"transition": "create"})
            logger.info(
                "ot_request_created",
                ot_request_id=record.id,
                employee_id=employee_id,
                request_date=str(record.request_date),
                warnings=[warning.code for warning in outcome.warnings],
            )
            return TransitionResult(record, _event_ids(events), outcome.warnings)

    def approve(
        self,
        request_id: int,
        approver_id: int,
        *,
        approved_start: Optional[datetime] = None,
        approved_end: Optional[datetime] = None,
        note: Optional[str] = None,
    ) -> TransitionResult:
        with tracer.start_as_current_span("ot.approve") as span:
            span.set_attribute("ot.request_id", request_id)
            record = self.get(request_id)
            self._require_pending(record, "approved")

            start = approved_start or record.requested_start
            end = approved_end or record.requested_end
            if end <= start:
                raise RequestValidationError("invalid_window")

            now = self.clock()
            self._guarded_update(
                record,
                [OTRequest.status == OTStatus.PENDING.value],
                {
                    "status": OTStatus.APPROVED.value,
                    "approved_start": start,
                    "approved_end": end,
                    "approved_by": approver_id,
                    "approved_at": now,
                    "decision_note": note,
                },
                lambda current: InvalidTransition(f"OT request is already {current.status}"),
            )

            events = []
            if self.options.notify_on_approval:
                events.append(
                    enqueue_notification(
                        self.session,
                        record,
                        OT_APPROVED,
                        self._payload(self._employee_or_none(record.employee_id), record, time=_time_range(start, end)),
                    )
                )
            self.session.commit()

            transitions_counter.add(1, {"transition": "approve"})
            logger.info("ot_request_approved", ot_request_id=request_id, approver_id=approver_id)
            return TransitionResult(record, _event_ids(events))

    def reject(self, request_id: int, approver_id: int, *, note: Optional[str] = None) -> TransitionResult:
        with tracer.start_as_current_span("ot.reject") as span:
            span.set_attribute("ot.request_id", request_id)
            record = self.get(request_id)
            self._require_pending(record, "rejected")

            self._guarded_update(
                record,
                [OTRequest.status == OTStatus.PENDING.value],
                {
                    "status": OTStatus.REJECTED.value,
                    "rejected_by": approver_id,
                    "rejected_at": self.clock(),
                    "decision_note": note,
                },
                lambda current: InvalidTransition(f"OT request is already {current.status}"),
            )

            events = []
            if self.options.notify_on_approval:
                events.append(
                    enqueue_notification(
                        self.session,
                        record,
                        OT_REJECTED,
                        self._payload(
                            self._employee_or_none(record.employee_id),
                            record,
                            time=_time_range(record.requested_start, record.requested_end),
                        ),
                    )
                )
            self.session.commit()

            transitions_counter.add(1, {"transition": "reject"})
            logger.info("ot_request_rejected", ot_request_id=request_id, approver_id=approver_id)
            return TransitionResult(record, _event_ids(events))

    def cancel(self, request_id: int, actor_id: int) -> TransitionResult:
        with tracer.start_as_current_span("ot.cancel") as span:
            span.set_attribute("ot.request_id", request_id)
            record = self.get(request_id)
            cancellable = (OTStatus.PENDING.value, OTStatus.APPROVED.value)
            if record.status not in cancellable or record.actual_start is not None:
                raise InvalidTransition(f"OT request is {record.status} and can no longer be cancelled")

            self._guarded_update(
                record,
                [OTRequest.status.in_(cancellable), OTRequest.actual_start.is_(None)],
                {"status": OTStatus.CANCELLED.value, "cancelled_by": actor_id, "cancelled_at": self.clock()},
                lambda current: InvalidTransition(f"OT request is {current.status} and can no longer be cancelled"),
            )
            self.session.commit()

            transitions_counter.add(1, {"transition": "cancel"})
            logger.info("ot_request_cancelled", ot_request_id=request_id, actor_id=actor_id)
            return TransitionResult(record)

    def start(
        self, request_id: int, *, photo_url: Optional[str], location: Optional[GeoPoint]
    ) -> TransitionResult:
        with tracer.start_as_current_span("ot.start") as span:
            span.set_attribute("ot.request_id", request_id)
            record = self.get(request_id)
            if record.actual_start is not None:
                raise AlreadyStarted()

            status = OTStatus(record.status)
            if status in (OTStatus.REJECTED, OTStatus.CANCELLED):
                raise NotApproved(f"OT request was {status.value}")
            implicit_approval = status == OTStatus.PENDING
            if implicit_approval and self.options.require_approval and not self.options.auto_approve:
                raise NotApproved()

            now = self.clock()
            if record.request_date > now.date():
                raise RequestValidationError("ot_date_not_reached")
            photo = _require_photo(photo_url, self.options.require_before_photo)
            point = _require_location(location)

            rate = self.preview_rate(record.request_date)
            values: Dict[str, Any] = {
                "status": OTStatus.IN_PROGRESS.value,
                "actual_start": now,
                "before_photo_url": photo,
                "start_lat": point.lat,
                "start_lng": point.lng,
                "ot_rate": rate.multiplier,
                "ot_type": rate.ot_type,
            }
            if implicit_approval:
                values.update(
                    approved_start=record.requested_start,
                    approved_end=record.requested_end,
                    approved_at=now,
                )

            self._guarded_update(
                record,
                [OTRequest.actual_start.is_(None), OTRequest.status == status.value],
                values,
                lambda current: AlreadyStarted() if current.actual_start is not None else ConcurrentModification(),
            )

            events = []
            if self.options.notify_on_start:
                events.append(
                    enqueue_notification(
                        self.session,
                        record,
                        OT_START,
                        self._payload(
                            self._employee_or_none(record.employee_id),
                            record,
                            time=now.strftime("%H:%M"),
                            gps={"lat": point.lat, "lng": point.lng},
                            otType=rate.ot_type,
                            holidayName=rate.holiday_name,
                        ),
                    )
                )
            self.session.commit()

            transitions_counter.add(1, {"transition": "start"})
            logger.info(
                "ot_started",
                ot_request_id=request_id,
                employee_id=record.employee_id,
                ot_type=rate.ot_type,
                ot_rate=str(rate.multiplier),
                implicit_approval=implicit_approval,
            )
            return TransitionResult(record, _event_ids(events))

    def end(
        self, request_id: int, *, photo_url: Optional[str], location: Optional[GeoPoint]
    ) -> TransitionResult:
        with tracer.start_as_current_span("ot.end") as span:
            span.set_attribute("ot.request_id", request_id)
            record = self.get(request_id)
            if record.actual_end is not None:
                raise AlreadyCompleted()
            if record.actual_start is None:
                raise NotStarted()

            photo = _require_photo(photo_url, self.options.require_after_photo)
            point = _require_location(location)

            now = self.clock()
            actual_start = record.actual_start
            actual_end = max(now, actual_start)
            # Time worked past the approved window is not compensated
            window_end = record.approved_end or record.requested_end
            effective_end = min(actual_end, window_end)
            hours = elapsed_hours(actual_start, effective_end)

            ot_rate = record.ot_rate
            if ot_rate is None:
                ot_rate = self.options.rate_tiers["1.5x"]
                logger.warning("ot_rate_missing_at_end", ot_request_id=request_id, fallback=str(ot_rate))

            employee = self._employee_or_none(record.employee_id)
            base_salary = employee.base_salary if employee is not None else None
            amount = compute_amount(
                hours, ot_rate, base_salary, self.options.hours_per_day, self.options.days_per_month
            )
            actual_hours = round_currency(hours)

            self._guarded_update(
                record,
                [
                    OTRequest.actual_end.is_(None),
                    OTRequest.actual_start.isnot(None),
                    OTRequest.status == OTStatus.IN_PROGRESS.value,
                ],
                {
                    "status": OTStatus.COMPLETED.value,
                    "actual_end": actual_end,
                    "effective_end": effective_end,
                    "after_photo_url": photo,
                    "end_lat": point.lat,
                    "end_lng": point.lng,
                    "actual_hours": actual_hours,
                    "amount": amount,
                },
                lambda current: AlreadyCompleted() if current.actual_end is not None else ConcurrentModification(),
            )

            events = []
            if self.options.notify_on_end:
                events.append(
                    enqueue_notification(
                        self.session,
                        record,
                        OT_END,
                        self._payload(
                            employee,
                            record,
                            time=now.strftime("%H:%M"),
                            hours=float(actual_hours),
                            amount=float(amount) if amount is not None else None,
                            gps={"lat": point.lat, "lng": point.lng},
                        ),
                    )
                )
            events.append(enqueue_gamification(self.session, record))
            self.session.commit()

            transitions_counter.add(1, {"transition": "end"})
            logger.info(
                "ot_completed",
                ot_request_id=request_id,
                employee_id=record.employee_id,
                actual_hours=str(actual_hours),
                amount=str(amount) if amount is not None else None,
                capped=effective_end < actual_end,
            )
            return TransitionResult(record, _event_ids(events))

    # Internals

    def _employee(self, employee_id: int) -> Employee:
        employee = self._employee_or_none(employee_id)
        if employee is None:
            raise RequestValidationError("employee_not_found")
        return employee

    def _employee_or_none(self, employee_id: int) -> Optional[Employee]:
        return self.session.query(Employee).filter(Employee.id == employee_id).one_or_none()

    def _history(self, employee_id: int, anchor: date) -> List[LoggedOT]:
        start, end = history_bounds(anchor)
        rows = (
            self.session.query(OTRequest)
            .filter(
                OTRequest.employee_id == employee_id,
                OTRequest.request_date >= start,
                OTRequest.request_date <= end,
            )
            .all()
        )
        return [LoggedOT(request_date=row.request_date, status=row.status, hours=logged_hours(row)) for row in rows]

    @staticmethod
    def _require_pending(record: OTRequest, verb: str) -> None:
        if record.status != OTStatus.PENDING.value:
            raise InvalidTransition(f"OT request is {record.status} and can no longer be {verb}")

    def _guarded_update(
        self,
        record: OTRequest,
        guards: Sequence[Any],
        values: Dict[str, Any],
        on_conflict: Callable[[OTRequest], OvertimeError],
    ) -> None:
        seen_version = record.version
        updated = (
            self.session.query(OTRequest)
            .filter(OTRequest.id == record.id, OTRequest.version == seen_version, *guards)
            .update({**values, "version": seen_version + 1}, synchronize_session=False)
        )
        if updated == 1:
            return
        self.session.rollback()
        current = self.get(record.id)
        self.session.refresh(current)
        logger.warning("ot_transition_conflict", ot_request_id=record.id, seen_version=seen_version)
        raise on_conflict(current)

    @staticmethod
    def _payload(employee: Optional[Employee], record: OTRequest, **extra: Any) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "employeeName": employee.name if employee is not None else f"Employee #{record.employee_id}",
            "date": record.request_date.isoformat(),
        }
        payload.update({key: value for key, value in extra.items() if value is not None})
        return payload


def _time_range(start: datetime, end: datetime) -> str:
    return f"{start:%H:%M} - {end:%H:%M}"


def _event_ids(events: Sequence[SideEffectEvent]) -> List[int]:
    return [event.id for event in events]


def _require_photo(photo_url: Optional[str], required: bool) -> Optional[str]:
    photo = (photo_url or "").strip() or None
    if required and photo is None:
        raise RequestValidationError("photo_required")
    return photo


def _require_location(location: Optional[GeoPoint]) -> GeoPoint:
    # GPS is mandatory for both Start and End; there is no setting to waive it
    if location is None:
        raise RequestValidationError("location_required")
    if not (-90 <= location.lat <= 90 and -180 <= location.lng <= 180):
        raise RequestValidationError("invalid_location")
    return location
