from datetime import datetime
from functools import lru_cache
from typing import Callable

from fastapi import Depends
from sqlalchemy.orm import Session

from timekeeper.db.session import get_session
from timekeeper.overtime.dispatch import SideEffectDispatcher, build_dispatcher
from timekeeper.overtime.options import OTOptions
from timekeeper.overtime.settings_store import SettingsStore
from timekeeper.overtime.tracker import OvertimeTracker


def get_clock() -> Callable[[], datetime]:
    return datetime.now


def get_ot_options(db: Session = Depends(get_session)) -> OTOptions:
    # Read per request so admin changes apply to the next operation
    return SettingsStore(db).ot_options()


def get_tracker(
    db: Session = Depends(get_session),
    options: OTOptions = Depends(get_ot_options),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> OvertimeTracker:
    return OvertimeTracker(db, options, clock)


@lru_cache
def get_dispatcher() -> SideEffectDispatcher:
    return build_dispatcher()
