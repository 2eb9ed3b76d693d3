from __future__ import annotations

from datetime import date
from typing import Dict

from sqlalchemy.orm import Session

from timekeeper.models.holiday import Holiday

# Branch-scoped holidays are resolved by the branch subsystem, not here
COMPANY_WIDE_TYPES = ("public", "company")


def holidays_between(session: Session, start: date, end: date) -> Dict[date, str]:
    rows = (
        session.query(Holiday.date, Holiday.name)
        .filter(
            Holiday.date >= start,
            Holiday.date <= end,
            Holiday.is_active.is_(True),
            Holiday.type.in_(COMPANY_WIDE_TYPES),
        )
        .order_by(Holiday.date.asc(), Holiday.id.asc())
        .all()
    )
    found: Dict[date, str] = {}
    for day, name in rows:
        found.setdefault(day, name)
    return found
