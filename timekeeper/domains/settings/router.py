from typing import Any

from fastapi import APIRouter, Depends

from timekeeper.api.deps import get_ot_options
from timekeeper.overtime.options import OTOptions

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/overtime")
def overtime_options(options: OTOptions = Depends(get_ot_options)) -> dict[str, Any]:
    return options.as_dict()
