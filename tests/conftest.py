from __future__ import annotations

from datetime import datetime, time, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from timekeeper.api.deps import get_clock, get_dispatcher
from timekeeper.db.session import Base, get_session
from timekeeper.main import app
from timekeeper.models import Employee, Holiday, SystemSetting
from timekeeper.overtime.dispatch import SideEffectDispatcher
from timekeeper.overtime.options import OTOptions
from timekeeper.overtime.tracker import OvertimeTracker

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Monday
MONDAY = datetime(2026, 10, 19, 10, 0)


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, hour: int, minute: int = 0, *, days: int = 0) -> None:
        base = MONDAY.date() + timedelta(days=days)
        self.now = datetime.combine(base, time(hour, minute))


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, dict]] = []

    def send(self, event_type, payload):
        self.sent.append((event_type, payload))
        return True


class RecordingGamification:
    def __init__(self) -> None:
        self.calls: list[tuple[int, int]] = []

    def trigger(self, employee_id, ot_request_id):
        self.calls.append((employee_id, ot_request_id))
        return True


def override_get_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FrozenClock(MONDAY)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def gamification():
    return RecordingGamification()


@pytest.fixture
def dispatcher(notifier, gamification):
    return SideEffectDispatcher(TestingSessionLocal, notifier, gamification)


@pytest.fixture
def client(clock, dispatcher):
    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def employee(db):
    row = Employee(name="Ada Lovelace", base_salary=26000)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@pytest.fixture
def make_tracker(db, clock):
    def factory(options: OTOptions | None = None) -> OvertimeTracker:
        return OvertimeTracker(db, options or OTOptions(), clock)

    return factory


@pytest.fixture
def put_settings(db):
    def write(**pairs: str) -> None:
        for key, value in pairs.items():
            row = db.query(SystemSetting).filter(SystemSetting.setting_key == key).one_or_none()
            if row is None:
                db.add(SystemSetting(setting_key=key, setting_value=value))
            else:
                row.setting_value = value
        db.commit()

    return write


@pytest.fixture
def add_holiday(db):
    def write(day, name, type_="public", is_active=True) -> Holiday:
        row = Holiday(date=day, name=name, type=type_, is_active=is_active)
        db.add(row)
        db.commit()
        return row

    return write
