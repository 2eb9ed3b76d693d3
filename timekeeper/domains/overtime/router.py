from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel, field_validator

from timekeeper.api.deps import get_dispatcher, get_tracker
from timekeeper.core.errors import OvertimeError
from timekeeper.core.logging import bind_ot_context, get_logger
from timekeeper.models.ot_request import OTRequest
from timekeeper.overtime.dispatch import SideEffectDispatcher
from timekeeper.overtime.tracker import GeoPoint, OvertimeTracker, TransitionResult

router = APIRouter(prefix="/overtime", tags=["overtime"])
logger = get_logger(__name__)

StatusName = Literal["pending", "approved", "in_progress", "completed", "rejected", "cancelled"]


def _local_naive(value: Optional[datetime]) -> Optional[datetime]:
    # Records store local wall-clock time without an offset
    if value is not None and value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


class OTRequestCreate(BaseModel):
    employee_id: int
    requested_start: datetime
    requested_end: datetime
    reason: str = ""
    request_date: date | None = None

    @field_validator("requested_start", "requested_end")
    @classmethod
    def strip_offset(cls, value: datetime) -> datetime:
        return _local_naive(value)


class ApproveRequest(BaseModel):
    approver_id: int
    approved_start: datetime | None = None
    approved_end: datetime | None = None
    note: str | None = None

    @field_validator("approved_start", "approved_end")
    @classmethod
    def strip_offset(cls, value: datetime | None) -> datetime | None:
        return _local_naive(value)


class RejectRequest(BaseModel):
    approver_id: int
    note: str | None = None


class CancelRequest(BaseModel):
    actor_id: int


class LocationIn(BaseModel):
    lat: float
    lng: float


class CaptureRequest(BaseModel):
    photo_url: str | None = None
    location: LocationIn | None = None

    def geo_point(self) -> GeoPoint | None:
        if self.location is None:
            return None
        return GeoPoint(lat=self.location.lat, lng=self.location.lng)


class OTRequestOut(BaseModel):
    id: int
    employee_id: int
    request_date: date
    status: StatusName
    reason: str
    requested_start: datetime
    requested_end: datetime
    approved_start: datetime | None = None
    approved_end: datetime | None = None
    approved_by: int | None = None
    approved_at: datetime | None = None
    rejected_by: int | None = None
    rejected_at: datetime | None = None
    decision_note: str | None = None
    actual_start: datetime | None = None
    actual_end: datetime | None = None
    effective_end: datetime | None = None
    before_photo_url: str | None = None
    after_photo_url: str | None = None
    start_location: LocationIn | None = None
    end_location: LocationIn | None = None
    ot_rate: float | None = None
    ot_type: str | None = None
    actual_hours: float | None = None
    amount: float | None = None
    version: int


class CapWarningOut(BaseModel):
    code: str
    period: str
    limit: float
    total: float


class OTRequestCreated(BaseModel):
    request: OTRequestOut
    warnings: list[CapWarningOut]


class RateOut(BaseModel):
    day: date
    ot_type: str
    multiplier: float
    holiday_name: str | None = None


class ReplayOut(BaseModel):
    sent: list[int]
    skipped: list[int]
    failed: list[int]


def _optional_float(value) -> float | None:
    return float(value) if value is not None else None


def _location(lat: float | None, lng: float | None) -> LocationIn | None:
    if lat is None or lng is None:
        return None
    return LocationIn(lat=lat, lng=lng)


def _serialize(row: OTRequest) -> OTRequestOut:
    return OTRequestOut(
        id=row.id,
        employee_id=row.employee_id,
        request_date=row.request_date,
        status=row.status,
        reason=row.reason,
        requested_start=row.requested_start,
        requested_end=row.requested_end,
        approved_start=row.approved_start,
        approved_end=row.approved_end,
        approved_by=row.approved_by,
        approved_at=row.approved_at,
        rejected_by=row.rejected_by,
        rejected_at=row.rejected_at,
        decision_note=row.decision_note,
        actual_start=row.actual_start,
        actual_end=row.actual_end,
        effective_end=row.effective_end,
        before_photo_url=row.before_photo_url,
        after_photo_url=row.after_photo_url,
        start_location=_location(row.start_lat, row.start_lng),
        end_location=_location(row.end_lat, row.end_lng),
        ot_rate=_optional_float(row.ot_rate),
        ot_type=row.ot_type,
        actual_hours=_optional_float(row.actual_hours),
        amount=_optional_float(row.amount),
        version=row.version,
    )


def _http_error(exc: OvertimeError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.as_detail())


def _schedule(background_tasks: BackgroundTasks, dispatcher: SideEffectDispatcher, result: TransitionResult) -> None:
    # Runs after the response is sent; the committed transition does not wait on it
    if result.event_ids:
        background_tasks.add_task(dispatcher.dispatch, result.event_ids)


@router.get("", response_model=list[OTRequestOut])
def list_requests(
    employee_id: int | None = None,
    status: StatusName | None = None,
    date_from: date | None = Query(default=None, alias="from"),
    date_to: date | None = Query(default=None, alias="to"),
    tracker: OvertimeTracker = Depends(get_tracker),
) -> list[OTRequestOut]:
    rows = tracker.list_requests(employee_id=employee_id, status=status, date_from=date_from, date_to=date_to)
    return [_serialize(row) for row in rows]


@router.post("", response_model=OTRequestCreated, status_code=201)
def create_request(
    payload: OTRequestCreate,
    background_tasks: BackgroundTasks,
    tracker: OvertimeTracker = Depends(get_tracker),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
) -> OTRequestCreated:
    bind_ot_context(employee_id=payload.employee_id)
    try:
        result = tracker.create(
            employee_id=payload.employee_id,
            requested_start=payload.requested_start,
            requested_end=payload.requested_end,
            reason=payload.reason,
            request_date=payload.request_date,
        )
    except OvertimeError as exc:
        logger.info("ot_request_refused", code=exc.code)
        raise _http_error(exc) from exc

    _schedule(background_tasks, dispatcher, result)
    return OTRequestCreated(
        request=_serialize(result.record),
        warnings=[
            CapWarningOut(code=w.code, period=w.period, limit=w.limit, total=w.total) for w in result.warnings
        ],
    )


@router.get("/active", response_model=OTRequestOut | None)
def active_request(
    employee_id: int,
    day: date | None = None,
    tracker: OvertimeTracker = Depends(get_tracker),
) -> OTRequestOut | None:
    row = tracker.active_for(employee_id, day)
    return _serialize(row) if row is not None else None


@router.get("/ready", response_model=list[OTRequestOut])
def ready_requests(
    employee_id: int,
    day: date | None = None,
    tracker: OvertimeTracker = Depends(get_tracker),
) -> list[OTRequestOut]:
    return [_serialize(row) for row in tracker.ready_to_start(employee_id, day)]


@router.get("/rate", response_model=RateOut)
def rate_preview(day: date = Query(alias="date"), tracker: OvertimeTracker = Depends(get_tracker)) -> RateOut:
    info = tracker.preview_rate(day)
    return RateOut(day=day, ot_type=info.ot_type, multiplier=float(info.multiplier), holiday_name=info.holiday_name)


@router.post("/outbox/replay", response_model=ReplayOut)
def replay_outbox(limit: int = 100, dispatcher: SideEffectDispatcher = Depends(get_dispatcher)) -> ReplayOut:
    return ReplayOut(**dispatcher.replay(limit=limit).as_dict())


@router.get("/{request_id}", response_model=OTRequestOut)
def get_request(request_id: int, tracker: OvertimeTracker = Depends(get_tracker)) -> OTRequestOut:
    try:
        return _serialize(tracker.get(request_id))
    except OvertimeError as exc:
        raise _http_error(exc) from exc


@router.post("/{request_id}/approve", response_model=OTRequestOut)
def approve_request(
    request_id: int,
    payload: ApproveRequest,
    background_tasks: BackgroundTasks,
    tracker: OvertimeTracker = Depends(get_tracker),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
) -> OTRequestOut:
    bind_ot_context(ot_request_id=request_id, approver_id=payload.approver_id)
    try:
        result = tracker.approve(
            request_id,
            payload.approver_id,
            approved_start=payload.approved_start,
            approved_end=payload.approved_end,
            note=payload.note,
        )
    except OvertimeError as exc:
        raise _http_error(exc) from exc
    _schedule(background_tasks, dispatcher, result)
    return _serialize(result.record)


@router.post("/{request_id}/reject", response_model=OTRequestOut)
def reject_request(
    request_id: int,
    payload: RejectRequest,
    background_tasks: BackgroundTasks,
    tracker: OvertimeTracker = Depends(get_tracker),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
) -> OTRequestOut:
    bind_ot_context(ot_request_id=request_id, approver_id=payload.approver_id)
    try:
        result = tracker.reject(request_id, payload.approver_id, note=payload.note)
    except OvertimeError as exc:
        raise _http_error(exc) from exc
    _schedule(background_tasks, dispatcher, result)
    return _serialize(result.record)


@router.post("/{request_id}/cancel", response_model=OTRequestOut)
def cancel_request(
    request_id: int,
    payload: CancelRequest,
    tracker: OvertimeTracker = Depends(get_tracker),
) -> OTRequestOut:
    bind_ot_context(ot_request_id=request_id)
    try:
        result = tracker.cancel(request_id, payload.actor_id)
    except OvertimeError as exc:
        raise _http_error(exc) from exc
    return _serialize(result.record)


@router.post("/{request_id}/start", response_model=OTRequestOut)
def start_overtime(
    request_id: int,
    payload: CaptureRequest,
    background_tasks: BackgroundTasks,
    tracker: OvertimeTracker = Depends(get_tracker),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
) -> OTRequestOut:
    bind_ot_context(ot_request_id=request_id)
    try:
        result = tracker.start(request_id, photo_url=payload.photo_url, location=payload.geo_point())
    except OvertimeError as exc:
        logger.info("ot_start_refused", code=exc.code)
        raise _http_error(exc) from exc
    _schedule(background_tasks, dispatcher, result)
    return _serialize(result.record)


@router.post("/{request_id}/end", response_model=OTRequestOut)
def end_overtime(
    request_id: int,
    payload: CaptureRequest,
    background_tasks: BackgroundTasks,
    tracker: OvertimeTracker = Depends(get_tracker),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
) -> OTRequestOut:
    bind_ot_context(ot_request_id=request_id)
    try:
        result = tracker.end(request_id, photo_url=payload.photo_url, location=payload.geo_point())
    except OvertimeError as exc:
        logger.info("ot_end_refused", code=exc.code)
        raise _http_error(exc) from exc
    _schedule(background_tasks, dispatcher, result)
    return _serialize(result.record)
