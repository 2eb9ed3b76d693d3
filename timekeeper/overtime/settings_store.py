from __future__ import annotations

from typing import Dict

from sqlalchemy.orm import Session

from timekeeper.models.system_setting import SystemSetting

from .options import OTOptions


class SettingsStore:
    """Reads ``system_settings`` rows; writes belong to the settings subsystem."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def load(self) -> Dict[str, str]:
        rows = self.session.query(SystemSetting.setting_key, SystemSetting.setting_value).all()
        return {key: value for key, value in rows}

    def ot_options(self) -> OTOptions:
        return OTOptions.from_mapping(self.load())
