from __future__ import annotations

import json
from datetime import datetime, timedelta

import httpx
import pytest

from timekeeper.models import OTRequest, SideEffectEvent
from timekeeper.overtime.dispatch import SideEffectDispatcher
from timekeeper.overtime.notifications import LineNotifier, WebhookGamificationTrigger, format_message
from timekeeper.overtime.tracker import GeoPoint

from conftest import RecordingGamification, RecordingNotifier, TestingSessionLocal

OFFICE = GeoPoint(lat=13.7563, lng=100.5018)


class BrokenNotifier:
    def send(self, event_type, payload):
        raise httpx.ConnectError("LINE unreachable")


def complete_request(make_tracker, employee, clock):
    tracker = make_tracker()
    record = tracker.create(
        employee_id=employee.id,
        requested_start=clock().replace(hour=18),
        requested_end=clock().replace(hour=20),
        reason="Month-end close",
    ).record
    tracker.approve(record.id, approver_id=7)
    clock.set(18, 0)
    tracker.start(record.id, photo_url="before.jpg", location=OFFICE)
    clock.set(20, 0)
    result = tracker.end(record.id, photo_url="after.jpg", location=OFFICE)
    return result


def test_dispatch_delivers_and_marks_events(make_tracker, employee, clock, dispatcher, notifier, gamification, db):
    result = complete_request(make_tracker, employee, clock)

    report = dispatcher.dispatch(result.event_ids)

    assert sorted(report.sent) == sorted(result.event_ids)
    assert notifier.sent[0][0] == "ot_end"
    assert notifier.sent[0][1]["amount"] == 375.0
    assert gamification.calls == [(employee.id, result.record.id)]

    db.expire_all()
    statuses = {event.id: event.status for event in db.query(SideEffectEvent).all()}
    assert all(statuses[event_id] == "sent" for event_id in result.event_ids)
    # Stamped with local wall-clock time like every other OT timestamp
    for event in db.query(SideEffectEvent).filter(SideEffectEvent.id.in_(result.event_ids)):
        assert abs(event.dispatched_at - datetime.now()) < timedelta(minutes=5)


def test_notification_failure_does_not_affect_transition_or_gamification(make_tracker, employee, clock, db):
    result = complete_request(make_tracker, employee, clock)
    gamification = RecordingGamification()
    dispatcher = SideEffectDispatcher(TestingSessionLocal, BrokenNotifier(), gamification)

    report = dispatcher.dispatch(result.event_ids)

    assert len(report.failed) == 1
    assert len(report.sent) == 1
    assert gamification.calls == [(employee.id, result.record.id)]

    db.expire_all()
    failed = db.query(SideEffectEvent).filter(SideEffectEvent.id == report.failed[0]).one()
    assert failed.status == "failed"
    assert failed.attempts == 1
    assert "LINE unreachable" in failed.last_error
    assert db.query(OTRequest).filter(OTRequest.id == result.record.id).one().status == "completed"


def test_replay_retries_pending_and_failed_events(make_tracker, employee, clock, db):
    result = complete_request(make_tracker, employee, clock)
    SideEffectDispatcher(TestingSessionLocal, BrokenNotifier(), RecordingGamification()).dispatch(result.event_ids)

    notifier = RecordingNotifier()
    replayed = SideEffectDispatcher(TestingSessionLocal, notifier, RecordingGamification()).replay()

    # create/approve/start were never dispatched; the end notification had failed
    assert len(replayed.sent) == 4
    assert [event_type for event_type, _ in notifier.sent] == ["ot_requested", "ot_approved", "ot_start", "ot_end"]

    db.expire_all()
    assert db.query(SideEffectEvent).filter(SideEffectEvent.status != "sent").count() == 0
    ot_end = db.query(SideEffectEvent).filter(SideEffectEvent.event_type == "ot_end").one()
    assert ot_end.attempts == 2


def test_dispatch_ignores_already_sent_events(make_tracker, employee, clock, dispatcher, notifier):
    result = complete_request(make_tracker, employee, clock)
    dispatcher.dispatch(result.event_ids)

    second = dispatcher.dispatch(result.event_ids)

    assert second.as_dict() == {"sent": [], "skipped": [], "failed": []}
    assert len(notifier.sent) == 1


def test_line_notifier_posts_push_message():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    notifier = LineNotifier("token-123", "U-manager", client=client)

    delivered = notifier.send("ot_requested", {"employeeName": "Ada", "date": "2026-10-19", "time": "18:00 - 20:00"})

    assert delivered is True
    assert captured["url"] == "https://api.line.me/v2/bot/message/push"
    assert captured["auth"] == "Bearer token-123"
    assert captured["body"]["to"] == "U-manager"
    assert captured["body"]["messages"][0]["type"] == "text"
    assert "Employee: Ada" in captured["body"]["messages"][0]["text"]


def test_line_notifier_raises_on_http_error():
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    notifier = LineNotifier("token-123", "U-manager", client=client)

    with pytest.raises(httpx.HTTPStatusError):
        notifier.send("ot_start", {})


def test_unconfigured_delivery_is_skipped():
    assert LineNotifier(None, None).send("ot_start", {}) is False
    assert WebhookGamificationTrigger(None).trigger(1, 2) is False


def test_gamification_webhook_body():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(204)

    trigger = WebhookGamificationTrigger(
        "https://points.example.com/hooks/ot", client=httpx.Client(transport=httpx.MockTransport(handler))
    )

    assert trigger.trigger(3, 42) is True
    assert bodies == [{"event": "ot_completed", "employeeId": 3, "otRequestId": 42}]


def test_format_message_for_end_event():
    text = format_message(
        "ot_end",
        {"employeeName": "Ada", "time": "20:00", "hours": 2.0, "amount": 375.0, "gps": {"lat": 13.7563, "lng": 100.5018}},
    )

    assert "Total OT: 2.00 hours" in text
    assert "Amount: 375.00" in text
    assert "Location: 13.756300, 100.501800" in text
