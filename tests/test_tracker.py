from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal

import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from timekeeper.core.errors import (
    AlreadyCompleted,
    AlreadyStarted,
    ConcurrentModification,
    InvalidTransition,
    NotApproved,
    NotStarted,
    RequestNotFound,
    RequestValidationError,
)
from timekeeper.models import Employee, OTRequest, SideEffectEvent
from timekeeper.overtime.options import OTOptions
from timekeeper.overtime.state import OTStatus, can_transition
from timekeeper.overtime.tracker import GeoPoint, OvertimeTracker, logged_hours

from conftest import TestingSessionLocal

OFFICE = GeoPoint(lat=13.7563, lng=100.5018)


def at(hour: int, minute: int = 0, day: int = 19) -> datetime:
    return datetime(2026, 10, day, hour, minute)


def submit(tracker, employee, start=(18, 0), end=(20, 0), day=19, reason="Month-end close"):
    return tracker.create(
        employee_id=employee.id,
        requested_start=at(*start, day=day),
        requested_end=at(*end, day=day),
        reason=reason,
    ).record


def start(tracker, record, photo="https://cdn.example.com/before.jpg", location=OFFICE):
    return tracker.start(record.id, photo_url=photo, location=location).record


def end(tracker, record, photo="https://cdn.example.com/after.jpg", location=OFFICE):
    return tracker.end(record.id, photo_url=photo, location=location).record


def test_create_persists_pending_request_and_outbox_row(make_tracker, employee, db):
    result = make_tracker().create(
        employee_id=employee.id,
        requested_start=at(18),
        requested_end=at(20),
        reason="  Month-end close ",
    )

    record = result.record
    assert record.status == "pending"
    assert record.request_date == date(2026, 10, 19)
    assert record.reason == "Month-end close"
    assert record.version == 1
    assert result.warnings == []

    events = db.query(SideEffectEvent).all()
    assert [event.id for event in events] == result.event_ids
    assert events[0].event_type == "ot_requested"
    assert events[0].payload["time"] == "18:00 - 20:00"
    assert events[0].payload["employeeName"] == "Ada Lovelace"


def test_create_rejects_half_hour_before_persisting(make_tracker, employee, db):
    with pytest.raises(RequestValidationError) as excinfo:
        submit(make_tracker(), employee, start=(18, 0), end=(18, 30))

    assert excinfo.value.code == "duration_below_minimum"
    assert db.query(OTRequest).count() == 0
    assert db.query(SideEffectEvent).count() == 0


def test_create_unknown_employee(make_tracker):
    with pytest.raises(RequestValidationError) as excinfo:
        make_tracker().create(employee_id=999, requested_start=at(18), requested_end=at(20), reason="x")

    assert excinfo.value.code == "employee_not_found"


def test_employee_schedule_overrides_company_work_end(make_tracker, db):
    late_shift = Employee(name="Grace Hopper", base_salary=32000, work_end_time=time(19, 0))
    db.add(late_shift)
    db.commit()

    with pytest.raises(RequestValidationError) as excinfo:
        submit(make_tracker(), late_shift, start=(18, 0), end=(20, 0))

    assert excinfo.value.code == "start_before_work_end"


def test_weekend_request_may_start_during_the_day(make_tracker, employee):
    record = submit(make_tracker(), employee, start=(9, 0), end=(13, 0), day=24)

    assert record.status == "pending"


def test_holiday_request_skips_work_end_rule(make_tracker, employee, add_holiday):
    add_holiday(date(2026, 10, 23), "Chulalongkorn Day")

    record = submit(make_tracker(), employee, start=(9, 0), end=(13, 0), day=23)

    assert record.request_date == date(2026, 10, 23)


def test_second_open_request_on_same_date_is_duplicate(make_tracker, employee):
    tracker = make_tracker()
    submit(tracker, employee)

    with pytest.raises(RequestValidationError) as excinfo:
        submit(tracker, employee, start=(20, 0), end=(21, 0))

    assert excinfo.value.code == "duplicate_request"


def test_rejected_request_frees_the_date(make_tracker, employee):
    tracker = make_tracker()
    first = submit(tracker, employee)
    tracker.reject(first.id, approver_id=7, note="Budget frozen")

    second = submit(tracker, employee)

    assert second.id != first.id
    assert first.rejected_by == 7
    assert first.approved_by is None


def test_full_lifecycle_computes_amount(make_tracker, employee, clock):
    tracker = make_tracker()
    record = submit(tracker, employee)
    tracker.approve(record.id, approver_id=7)

    clock.set(18, 0)
    record = start(tracker, record)
    assert record.status == "in_progress"
    assert record.ot_type == "workday"
    assert record.ot_rate == Decimal("1.5")

    clock.set(19, 30)
    record = end(tracker, record)

    assert record.status == "completed"
    assert record.actual_hours == Decimal("1.50")
    # 26000 / 26 / 8 = 125 per hour at 1.5x
    assert record.amount == Decimal("281.25")
    assert record.effective_end == at(19, 30)
    assert record.version == 4


def test_end_is_capped_at_approved_end(make_tracker, employee, clock):
    tracker = make_tracker()
    record = submit(tracker, employee)
    tracker.approve(record.id, approver_id=7, approved_start=at(18), approved_end=at(19))

    clock.set(18, 0)
    start(tracker, record)
    clock.set(21, 0)
    record = end(tracker, record)

    assert record.actual_end == at(21)
    assert record.effective_end == at(19)
    assert record.actual_hours == Decimal("1.00")
    assert record.amount == Decimal("187.50")


def test_approve_with_inverted_override_is_rejected(make_tracker, employee):
    tracker = make_tracker()
    record = submit(tracker, employee)

    with pytest.raises(RequestValidationError) as excinfo:
        tracker.approve(record.id, approver_id=7, approved_start=at(20), approved_end=at(19))

    assert excinfo.value.code == "invalid_window"
    assert tracker.get(record.id).status == "pending"


def test_decisions_only_apply_to_pending_requests(make_tracker, employee):
    tracker = make_tracker()
    record = submit(tracker, employee)
    tracker.approve(record.id, approver_id=7)

    with pytest.raises(InvalidTransition):
        tracker.approve(record.id, approver_id=8)
    with pytest.raises(InvalidTransition):
        tracker.reject(record.id, approver_id=8)


def test_start_requires_approval_by_default(make_tracker, employee):
    tracker = make_tracker()
    record = submit(tracker, employee)

    with pytest.raises(NotApproved):
        start(tracker, record)

    assert tracker.get(record.id).actual_start is None


def test_rejected_request_cannot_start(make_tracker, employee):
    tracker = make_tracker(OTOptions(require_approval=False))
    record = submit(tracker, employee)
    tracker.reject(record.id, approver_id=7)

    with pytest.raises(NotApproved):
        start(tracker, record)


def test_start_without_required_approval_is_implicit_approval(make_tracker, employee, clock):
    tracker = make_tracker(OTOptions(require_approval=False))
    record = submit(tracker, employee)

    clock.set(18, 5)
    record = start(tracker, record)

    assert record.status == "in_progress"
    assert record.approved_start == at(18)
    assert record.approved_end == at(20)
    assert record.approved_by is None
    assert record.approved_at == at(18, 5)


def test_auto_approve_also_allows_pending_start(make_tracker, employee, clock):
    tracker = make_tracker(OTOptions(auto_approve=True))
    record = submit(tracker, employee)

    clock.set(18, 0)

    assert start(tracker, record).status == "in_progress"


def test_start_twice_is_already_started(make_tracker, employee, clock):
    tracker = make_tracker()
    record = submit(tracker, employee)
    tracker.approve(record.id, approver_id=7)
    clock.set(18, 0)
    start(tracker, record)

    clock.set(18, 10)
    with pytest.raises(AlreadyStarted):
        start(tracker, record)

    assert tracker.get(record.id).actual_start == at(18)


def test_concurrent_start_only_one_wins(make_tracker, employee, clock, db):
    tracker = make_tracker()
    record = submit(tracker, employee)
    tracker.approve(record.id, approver_id=7)
    clock.set(18, 0)

    other_session = TestingSessionLocal()
    try:
        racer = OvertimeTracker(other_session, OTOptions(), clock)
        racer.get(record.id)

        start(tracker, record)
        with pytest.raises(AlreadyStarted):
            racer.start(record.id, photo_url="https://cdn.example.com/b.jpg", location=OFFICE)
    finally:
        other_session.close()

    assert tracker.get(record.id).version == 3


def test_concurrent_end_only_one_wins(make_tracker, employee, clock):
    tracker = make_tracker()
    record = submit(tracker, employee)
    tracker.approve(record.id, approver_id=7)
    clock.set(18, 0)
    start(tracker, record)
    clock.set(20, 0)

    other_session = TestingSessionLocal()
    try:
        racer = OvertimeTracker(other_session, OTOptions(), clock)
        racer.get(record.id)

        record = end(tracker, record)
        snapshot = (record.actual_end, record.actual_hours, record.amount, record.version)

        clock.set(20, 45)
        with pytest.raises(AlreadyCompleted):
            racer.end(record.id, photo_url="https://cdn.example.com/a.jpg", location=OFFICE)
    finally:
        other_session.close()

    tracker.session.expire_all()
    record = tracker.get(record.id)
    assert (record.actual_end, record.actual_hours, record.amount, record.version) == snapshot
    assert record.amount == Decimal("375.00")


def test_concurrent_decisions_only_one_wins(make_tracker, employee):
    tracker = make_tracker()
    record = submit(tracker, employee)

    other_session = TestingSessionLocal()
    try:
        racer = OvertimeTracker(other_session, OTOptions(), tracker.clock)
        racer.get(record.id)

        tracker.reject(record.id, approver_id=7, note="Budget frozen")
        with pytest.raises(InvalidTransition):
            racer.approve(record.id, approver_id=8)
    finally:
        other_session.close()

    tracker.session.expire_all()
    record = tracker.get(record.id)
    assert record.status == "rejected"
    assert record.rejected_by == 7
    assert record.approved_by is None
    assert record.version == 2


def test_stale_version_with_guard_still_holding_is_concurrent_modification(make_tracker, employee, clock, db):
    tracker = make_tracker()
    record = submit(tracker, employee)
    tracker.approve(record.id, approver_id=7)
    clock.set(18, 0)

    other_session = TestingSessionLocal()
    try:
        racer = OvertimeTracker(other_session, OTOptions(), clock)
        stale = racer.get(record.id)  # noqa: F841 - keep the stale row in the identity map

        db.query(OTRequest).filter(OTRequest.id == record.id).update(
            {"version": OTRequest.version + 1}, synchronize_session=False
        )
        db.commit()

        with pytest.raises(ConcurrentModification):
            racer.start(record.id, photo_url="https://cdn.example.com/b.jpg", location=OFFICE)
    finally:
        other_session.close()

    db.expire_all()
    record = tracker.get(record.id)
    assert record.status == "approved"
    assert record.actual_start is None
    assert record.version == 3


def test_start_before_the_ot_date(make_tracker, employee):
    tracker = make_tracker()
    record = submit(tracker, employee, day=20)
    tracker.approve(record.id, approver_id=7)

    with pytest.raises(RequestValidationError) as excinfo:
        start(tracker, record)

    assert excinfo.value.code == "ot_date_not_reached"


def test_start_requires_photo_and_location(make_tracker, employee, clock):
    tracker = make_tracker()
    record = submit(tracker, employee)
    tracker.approve(record.id, approver_id=7)
    clock.set(18, 0)

    with pytest.raises(RequestValidationError) as excinfo:
        start(tracker, record, photo="  ")
    assert excinfo.value.code == "photo_required"

    with pytest.raises(RequestValidationError) as excinfo:
        start(tracker, record, location=None)
    assert excinfo.value.code == "location_required"

    with pytest.raises(RequestValidationError) as excinfo:
        start(tracker, record, location=GeoPoint(lat=91.0, lng=100.0))
    assert excinfo.value.code == "invalid_location"

    assert tracker.get(record.id).status == "approved"


def test_photo_may_be_optional_but_location_is_not(make_tracker, employee, clock):
    tracker = make_tracker(OTOptions(require_before_photo=False))
    record = submit(tracker, employee)
    tracker.approve(record.id, approver_id=7)
    clock.set(18, 0)

    record = start(tracker, record, photo=None)

    assert record.before_photo_url is None
    assert record.start_lat == OFFICE.lat


def test_end_before_start(make_tracker, employee):
    tracker = make_tracker()
    record = submit(tracker, employee)
    tracker.approve(record.id, approver_id=7)

    with pytest.raises(NotStarted):
        end(tracker, record)


def test_end_twice_leaves_record_unchanged(make_tracker, employee, clock, db):
    tracker = make_tracker()
    record = submit(tracker, employee)
    tracker.approve(record.id, approver_id=7)
    clock.set(18, 0)
    start(tracker, record)
    clock.set(19, 30)
    record = end(tracker, record)
    snapshot = (record.actual_end, record.actual_hours, record.amount, record.version)
    events_before = db.query(SideEffectEvent).count()

    clock.set(20, 30)
    with pytest.raises(AlreadyCompleted):
        end(tracker, record)

    record = tracker.get(record.id)
    assert (record.actual_end, record.actual_hours, record.amount, record.version) == snapshot
    assert db.query(SideEffectEvent).count() == events_before


def test_rate_is_frozen_at_start(make_tracker, employee, clock):
    tracker = make_tracker()
    record = submit(tracker, employee)
    tracker.approve(record.id, approver_id=7)
    clock.set(18, 0)
    start(tracker, record)

    repriced = make_tracker(OTOptions.from_mapping({"ot_rate_workday": "2x"}))
    clock.set(20, 0)
    record = end(repriced, record)

    assert record.ot_rate == Decimal("1.5")
    assert record.amount == Decimal("375.00")


def test_holiday_rate_and_notification(make_tracker, employee, clock, add_holiday, db):
    add_holiday(date(2026, 10, 19), "Company Anniversary", type_="company")
    tracker = make_tracker()
    record = submit(tracker, employee, start=(9, 0), end=(10, 30))
    tracker.approve(record.id, approver_id=7)

    clock.set(9, 0)
    start(tracker, record)
    clock.set(10, 30)
    record = end(tracker, record)

    assert record.ot_type == "holiday"
    assert record.amount == Decimal("375.00")

    start_event = db.query(SideEffectEvent).filter(SideEffectEvent.event_type == "ot_start").one()
    assert start_event.payload["holidayName"] == "Company Anniversary"
    assert start_event.payload["gps"] == {"lat": OFFICE.lat, "lng": OFFICE.lng}


def test_missing_salary_completes_without_amount(make_tracker, db, clock):
    contractor = Employee(name="Alan Turing", base_salary=None)
    db.add(contractor)
    db.commit()
    tracker = make_tracker()
    record = submit(tracker, contractor)
    tracker.approve(record.id, approver_id=7)
    clock.set(18, 0)
    start(tracker, record)
    clock.set(19, 0)

    record = end(tracker, record)

    assert record.status == "completed"
    assert record.actual_hours == Decimal("1.00")
    assert record.amount is None


def test_completion_queues_gamification_even_when_notifications_are_off(make_tracker, employee, clock, db):
    options = OTOptions(notify_on_request=False, notify_on_approval=False, notify_on_start=False, notify_on_end=False)
    tracker = make_tracker(options)
    record = submit(tracker, employee)
    tracker.approve(record.id, approver_id=7)
    clock.set(18, 0)
    start(tracker, record)
    clock.set(19, 0)
    result = tracker.end(record.id, photo_url="after.jpg", location=OFFICE)

    events = db.query(SideEffectEvent).all()
    assert len(events) == 1
    assert events[0].kind == "gamification"
    assert events[0].payload == {"employeeId": employee.id, "otRequestId": record.id}
    assert result.event_ids == [events[0].id]


def test_cancel_before_start_only(make_tracker, employee, clock):
    tracker = make_tracker()
    record = submit(tracker, employee)
    tracker.approve(record.id, approver_id=7)

    cancelled = tracker.cancel(record.id, actor_id=employee.id).record
    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_by == employee.id

    second = submit(tracker, employee)
    tracker.approve(second.id, approver_id=7)
    clock.set(18, 0)
    start(tracker, second)
    with pytest.raises(InvalidTransition):
        tracker.cancel(second.id, actor_id=employee.id)


def test_queries(make_tracker, employee, clock):
    tracker = make_tracker()
    today = submit(tracker, employee)
    tomorrow = submit(tracker, employee, day=20)
    tracker.approve(today.id, approver_id=7)

    assert [row.id for row in tracker.list_requests(employee_id=employee.id)] == [tomorrow.id, today.id]
    assert [row.id for row in tracker.list_requests(status="pending")] == [tomorrow.id]
    assert [row.id for row in tracker.list_requests(date_from=date(2026, 10, 20))] == [tomorrow.id]
    assert [row.id for row in tracker.ready_to_start(employee.id)] == [today.id]
    assert tracker.active_for(employee.id) is None

    clock.set(18, 0)
    start(tracker, today)

    assert tracker.active_for(employee.id).id == today.id
    assert tracker.ready_to_start(employee.id) == []


def test_unknown_request_is_not_found(make_tracker):
    with pytest.raises(RequestNotFound):
        make_tracker().get(404)


def test_logged_hours_follow_the_status(make_tracker, employee):
    tracker = make_tracker()
    record = submit(tracker, employee, start=(18, 0), end=(21, 0))
    assert logged_hours(record) == 3.0

    tracker.approve(record.id, approver_id=7, approved_end=at(20))
    assert logged_hours(tracker.get(record.id)) == 2.0

    tracker.cancel(record.id, actor_id=employee.id)
    assert logged_hours(tracker.get(record.id)) == 0.0


def test_transition_table():
    assert can_transition("pending", OTStatus.IN_PROGRESS)
    assert can_transition(OTStatus.IN_PROGRESS, "completed")
    assert not can_transition("completed", "in_progress")
    assert not can_transition("approved", "rejected")


def test_cancel_is_traced_like_other_transitions(make_tracker, employee):
    exporter = InMemorySpanExporter()
    trace.get_tracer_provider().add_span_processor(SimpleSpanProcessor(exporter))
    tracker = make_tracker()
    record = submit(tracker, employee)

    tracker.cancel(record.id, actor_id=employee.id)

    names = [span.name for span in exporter.get_finished_spans()]
    assert names == ["ot.create", "ot.cancel"]
    cancel_span = exporter.get_finished_spans()[-1]
    assert cancel_span.attributes["ot.request_id"] == record.id
    exporter.shutdown()
