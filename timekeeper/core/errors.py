"""Error taxonomy for the overtime workflow.

Validation errors are caller-correctable and carry a rule code. State errors
mean a transition was retried or raced and must not be treated as transient.
Computation degradations and side-effect failures never surface here.
"""

from __future__ import annotations


class OvertimeError(Exception):
    code = "overtime_error"
    status_code = 400
    default_message = "Overtime operation failed"

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        super().__init__(self.message)

    def as_detail(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class RequestValidationError(OvertimeError):
    code = "validation_error"
    status_code = 422
    default_message = "Request is invalid"

    def __init__(self, code: str, message: str | None = None) -> None:
        super().__init__(message or VALIDATION_MESSAGES.get(code), code=code)


class RequestNotFound(OvertimeError):
    code = "not_found"
    status_code = 404
    default_message = "OT request not found"


class StateError(OvertimeError):
    code = "invalid_state"
    status_code = 409
    default_message = "OT request is not in a state that allows this action"


class NotApproved(StateError):
    code = "not_approved"
    default_message = "OT request has not been approved"


class AlreadyStarted(StateError):
    code = "already_started"
    default_message = "OT has already been started"


class NotStarted(StateError):
    code = "not_started"
    default_message = "OT has not been started"


class AlreadyCompleted(StateError):
    code = "already_completed"
    default_message = "OT has already been completed"


class InvalidTransition(StateError):
    code = "invalid_transition"


class ConcurrentModification(StateError):
    code = "concurrent_modification"
    default_message = "OT request was modified by another operation, reload and retry"


VALIDATION_MESSAGES = {
    "reason_required": "A reason is required for an OT request",
    "invalid_window": "OT end time must be after its start time",
    "past_date": "OT cannot be requested for a past date",
    "duration_below_minimum": "OT duration is below the configured minimum",
    "duration_above_maximum": "OT duration is above the configured maximum",
    "start_before_work_end": "OT must start after the scheduled end of work",
    "duplicate_request": "An OT request already exists for this date",
    "employee_not_found": "Employee not found",
    "ot_date_not_reached": "The OT date has not been reached yet",
    "photo_required": "A photo must be captured before continuing",
    "location_required": "GPS location unavailable, enable location services and refresh",
    "invalid_location": "GPS coordinates are out of range",
}
