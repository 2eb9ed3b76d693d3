from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet


class OTStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


TRANSITIONS: Dict[OTStatus, FrozenSet[OTStatus]] = {
    # pending -> in_progress only through implicit approval at start
    OTStatus.PENDING: frozenset(
        {OTStatus.APPROVED, OTStatus.REJECTED, OTStatus.CANCELLED, OTStatus.IN_PROGRESS}
    ),
    OTStatus.APPROVED: frozenset({OTStatus.IN_PROGRESS, OTStatus.CANCELLED}),
    OTStatus.IN_PROGRESS: frozenset({OTStatus.COMPLETED}),
    OTStatus.COMPLETED: frozenset(),
    OTStatus.REJECTED: frozenset(),
    OTStatus.CANCELLED: frozenset(),
}

TERMINAL = frozenset(status for status, targets in TRANSITIONS.items() if not targets)

# Statuses that still occupy the employee's OT calendar
OPEN = frozenset({OTStatus.PENDING, OTStatus.APPROVED, OTStatus.IN_PROGRESS})


def can_transition(current: OTStatus | str, target: OTStatus | str) -> bool:
    return OTStatus(target) in TRANSITIONS[OTStatus(current)]
