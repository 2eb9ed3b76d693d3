from datetime import date, time

from sqlalchemy.orm import Session

from timekeeper.models import Employee, Holiday, SystemSetting
from timekeeper.overtime.options import DEFAULTS


def seed(session: Session, year: int | None = None) -> None:
    """Load demo employees, holidays and the default overtime settings."""
    year = year or date.today().year

    session.add_all(
        [
            Employee(name="Ada Lovelace", base_salary=26000, work_end_time=time(17, 30)),
            Employee(name="Grace Hopper", base_salary=32000, work_end_time=time(18, 0)),
            Employee(name="Alan Turing", base_salary=None),
        ]
    )
    session.add_all(
        [
            Holiday(date=date(year, 1, 1), name="New Year's Day", type="public"),
            Holiday(date=date(year, 4, 13), name="Songkran Festival", type="public"),
            Holiday(date=date(year, 12, 31), name="New Year's Eve", type="company"),
        ]
    )

    existing = {key for (key,) in session.query(SystemSetting.setting_key).all()}
    session.add_all(
        SystemSetting(setting_key=key, setting_value=value)
        for key, value in DEFAULTS.items()
        if key not in existing
    )
    session.commit()
