"""Outbox for OT side effects.

Transitions write :class:`SideEffectEvent` rows inside their own transaction.
Delivery happens afterwards, from a fresh session, and can never fail or roll
back the transition that produced the event. Undelivered rows stay
``pending``/``failed`` until :meth:`SideEffectDispatcher.replay` picks them up.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Sequence

from sqlalchemy.orm import Session, sessionmaker

from timekeeper.core.config import settings
from timekeeper.core.logging import get_logger
from timekeeper.core.monitoring import report_exception
from timekeeper.db.session import SessionLocal, session_scope
from timekeeper.models.ot_request import OTRequest
from timekeeper.models.side_effect_event import SideEffectEvent

from .notifications import GamificationTrigger, LineNotifier, Notifier, WebhookGamificationTrigger

logger = get_logger(__name__)

NOTIFICATION = "notification"
GAMIFICATION = "gamification"

PENDING = "pending"
SENT = "sent"
SKIPPED = "skipped"
FAILED = "failed"

REPLAYABLE = (PENDING, FAILED)


def enqueue_notification(
    session: Session, record: OTRequest, event_type: str, payload: Dict[str, Any]
) -> SideEffectEvent:
    event = SideEffectEvent(
        ot_request_id=record.id,
        kind=NOTIFICATION,
        event_type=event_type,
        payload={"type": event_type, **payload},
        status=PENDING,
    )
    session.add(event)
    return event


def enqueue_gamification(session: Session, record: OTRequest) -> SideEffectEvent:
    event = SideEffectEvent(
        ot_request_id=record.id,
        kind=GAMIFICATION,
        event_type="ot_completed",
        payload={"employeeId": record.employee_id, "otRequestId": record.id},
        status=PENDING,
    )
    session.add(event)
    return event


@dataclass
class DispatchReport:
    sent: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)

    def as_dict(self) -> Dict[str, List[int]]:
        return {"sent": self.sent, "skipped": self.skipped, "failed": self.failed}


class SideEffectDispatcher:
    def __init__(
        self,
        session_factory: sessionmaker,
        notifier: Notifier,
        gamification: GamificationTrigger,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.session_factory = session_factory
        self.notifier = notifier
        self.gamification = gamification
        self.clock = clock

    def dispatch(self, event_ids: Sequence[int]) -> DispatchReport:
        """Deliver the given outbox rows. Never raises."""
        report = DispatchReport()
        if not event_ids:
            return report
        try:
            with session_scope(self.session_factory) as db:
                events = (
                    db.query(SideEffectEvent)
                    .filter(SideEffectEvent.id.in_(list(event_ids)), SideEffectEvent.status.in_(REPLAYABLE))
                    .order_by(SideEffectEvent.id.asc())
                    .all()
                )
                for event in events:
                    self._deliver(event, report)
        except Exception as exc:
            logger.error("side_effect_dispatch_aborted", event_ids=list(event_ids), error=str(exc), exc_info=True)
            report_exception(exc)
        return report

    def replay(self, limit: int = 100) -> DispatchReport:
        """Retry outbox rows left behind by a crash or a failed delivery."""
        try:
            with session_scope(self.session_factory) as db:
                ids = [
                    event_id
                    for (event_id,) in db.query(SideEffectEvent.id)
                    .filter(SideEffectEvent.status.in_(REPLAYABLE))
                    .order_by(SideEffectEvent.id.asc())
                    .limit(limit)
                    .all()
                ]
        except Exception as exc:
            logger.error("side_effect_replay_aborted", error=str(exc), exc_info=True)
            report_exception(exc)
            return DispatchReport()
        logger.info("side_effect_replay", count=len(ids))
        return self.dispatch(ids)

    def _deliver(self, event: SideEffectEvent, report: DispatchReport) -> None:
        event.attempts = (event.attempts or 0) + 1
        try:
            if event.kind == GAMIFICATION:
                delivered = self.gamification.trigger(
                    int(event.payload["employeeId"]), int(event.payload["otRequestId"])
                )
            else:
                delivered = self.notifier.send(event.event_type, dict(event.payload))
        except Exception as exc:
            event.status = FAILED
            event.last_error = str(exc)[:1000]
            report.failed.append(event.id)
            logger.warning(
                "side_effect_failed",
                event_id=event.id,
                kind=event.kind,
                event_type=event.event_type,
                ot_request_id=event.ot_request_id,
                error=str(exc),
            )
            report_exception(exc)
            return

        event.status = SENT if delivered else SKIPPED
        event.last_error = None
        event.dispatched_at = self.clock()
        (report.sent if delivered else report.skipped).append(event.id)


def build_dispatcher(session_factory: sessionmaker = SessionLocal) -> SideEffectDispatcher:
    notifier = LineNotifier(
        access_token=settings.line_channel_access_token,
        to=settings.line_to,
        push_url=settings.line_push_url,
        timeout=settings.http_timeout_seconds,
    )
    gamification = WebhookGamificationTrigger(
        settings.gamification_webhook_url, timeout=settings.http_timeout_seconds
    )
    return SideEffectDispatcher(session_factory, notifier, gamification)
