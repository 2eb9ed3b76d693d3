from .calculator import compute_amount, elapsed_hours
from .options import OTOptions
from .rates import RateInfo, classify_day, resolve_rate
from .state import OTStatus
from .tracker import GeoPoint, OvertimeTracker, TransitionResult
from .validation import CapWarning, LoggedOT, RequestWindow, validate_request

__all__ = [
    "CapWarning",
    "GeoPoint",
    "LoggedOT",
    "OTOptions",
    "OTStatus",
    "OvertimeTracker",
    "RateInfo",
    "RequestWindow",
    "TransitionResult",
    "classify_day",
    "compute_amount",
    "elapsed_hours",
    "resolve_rate",
    "validate_request",
]
