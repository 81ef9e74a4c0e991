from fastapi import APIRouter, Depends

from eduscan import config
from eduscan.services.attendance import AttendanceController, get_controller

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/config/scanner")
async def scanner_config(controller: AttendanceController = Depends(get_controller)):
    return {
        **controller.scanner_state(),
        "store_backend": config.STORE_BACKEND,
        "message_policy": config.MESSAGE_POLICY,
        "text_generation_enabled": controller.dispatcher.generator is not None,
        "time_format": config.TIME_FORMAT,
        "date_format": config.DATE_FORMAT,
    }
