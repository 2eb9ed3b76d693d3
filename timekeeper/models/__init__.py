from .employee import Employee
from .holiday import Holiday
from .ot_request import OTRequest
from .side_effect_event import SideEffectEvent
from .system_setting import SystemSetting

__all__ = ["Employee", "Holiday", "OTRequest", "SideEffectEvent", "SystemSetting"]
