from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

import httpx

from timekeeper.core.logging import get_logger

logger = get_logger(__name__)

OT_REQUESTED = "ot_requested"
OT_APPROVED = "ot_approved"
OT_REJECTED = "ot_rejected"
OT_START = "ot_start"
OT_END = "ot_end"


class Notifier(Protocol):
    def send(self, event_type: str, payload: Dict[str, Any]) -> bool:
        """Deliver one event. Returns False when delivery was skipped."""


class GamificationTrigger(Protocol):
    def trigger(self, employee_id: int, ot_request_id: int) -> bool:
        """Award completion credit. Returns False when skipped."""


def _location_line(payload: Dict[str, Any]) -> str:
    gps = payload.get("gps")
    if not gps:
        return "Location: unknown"
    return f"Location: {gps['lat']:.6f}, {gps['lng']:.6f}"


def format_message(event_type: str, payload: Dict[str, Any]) -> str:
    name = payload.get("employeeName") or "Unknown employee"
    day = payload.get("date") or "-"
    at = payload.get("time") or "-"

    if event_type == OT_REQUESTED:
        lines = [
            "New OT request",
            f"Employee: {name}",
            f"Date: {day}",
            f"Time: {at}",
            f"Reason: {payload.get('reason') or '-'}",
        ]
    elif event_type in (OT_APPROVED, OT_REJECTED):
        approved = event_type == OT_APPROVED
        lines = [
            "OT request update",
            f"Employee: {name}",
            f"Date: {day}",
            f"Time: {at}",
            f"Status: {'approved' if approved else 'rejected'}",
        ]
        if approved:
            lines.append("OT may be worked within the approved time.")
        else:
            lines.append("Contact your supervisor for the reason.")
    elif event_type == OT_START:
        lines = ["OT started", f"Employee: {name}", f"Start time: {at}", _location_line(payload)]
    elif event_type == OT_END:
        hours = payload.get("hours")
        amount = payload.get("amount")
        lines = [
            "OT finished",
            f"Employee: {name}",
            f"End time: {at}",
            f"Total OT: {hours:.2f} hours" if hours is not None else "Total OT: unknown",
        ]
        if amount is not None:
            lines.append(f"Amount: {amount:,.2f}")
        lines.append(_location_line(payload))
    else:
        lines = [f"OT event {event_type}", f"Employee: {name}", f"Date: {day}"]
    return "\n".join(lines)


class LineNotifier:
    """Pushes OT events as text messages through the LINE Messaging API."""

    def __init__(
        self,
        access_token: Optional[str],
        to: Optional[str],
        push_url: str = "https://api.line.me/v2/bot/message/push",
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._access_token = access_token
        self._to = to
        self._push_url = push_url
        self._timeout = timeout
        self._client = client

    def send(self, event_type: str, payload: Dict[str, Any]) -> bool:
        if not self._access_token or not self._to:
            logger.info("line_notification_skipped", event_type=event_type, reason="not_configured")
            return False

        body = {"to": self._to, "messages": [{"type": "text", "text": format_message(event_type, payload)}]}
        headers = {"Authorization": f"Bearer {self._access_token}"}

        if self._client is not None:
            resp = self._client.post(self._push_url, json=body, headers=headers, timeout=self._timeout)
            resp.raise_for_status()
        else:
            with httpx.Client() as client:
                resp = client.post(self._push_url, json=body, headers=headers, timeout=self._timeout)
                resp.raise_for_status()
        logger.info("line_notification_sent", event_type=event_type)
        return True


class WebhookGamificationTrigger:
    """Notifies the points service that an OT session was completed."""

    def __init__(self, url: Optional[str], timeout: float = 10.0, client: httpx.Client | None = None) -> None:
        self._url = url
        self._timeout = timeout
        self._client = client

    def trigger(self, employee_id: int, ot_request_id: int) -> bool:
        if not self._url:
            logger.info("gamification_skipped", ot_request_id=ot_request_id, reason="not_configured")
            return False

        body = {"event": "ot_completed", "employeeId": employee_id, "otRequestId": ot_request_id}
        if self._client is not None:
            resp = self._client.post(self._url, json=body, timeout=self._timeout)
            resp.raise_for_status()
        else:
            with httpx.Client() as client:
                resp = client.post(self._url, json=body, timeout=self._timeout)
                resp.raise_for_status()
        logger.info("gamification_triggered", employee_id=employee_id, ot_request_id=ot_request_id)
        return True
