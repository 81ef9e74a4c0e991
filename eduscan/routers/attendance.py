from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException

from eduscan.config import DATE_FORMAT
from eduscan.errors import InvalidTransitionError, ScannerBusyError, StudentNotFoundError
from eduscan.services.attendance import AttendanceController, get_controller

router = APIRouter()


def _validate_date(value: str) -> str:
    try:
        datetime.strptime(value, DATE_FORMAT)
    except ValueError:
        raise HTTPException(status_code=400, detail="Date must be YYYY-MM-DD.")
    return value


def _record_row(record, controller: AttendanceController) -> dict:
    student = controller.directory.lookup(record.student_id)
    return {
        **record.model_dump(),
        "name": student.name if student else None,
        "grade": student.grade if student else None,
    }


@router.get("/attendance")
async def attendance(date: str | None = None, controller: AttendanceController = Depends(get_controller)):
    if date:
        _validate_date(date)
    return [_record_row(r, controller) for r in controller.list_records(date)]


@router.get("/attendance/summary")
async def summary(controller: AttendanceController = Depends(get_controller)):
    return controller.summary()


@router.post("/attendance/close-day")
async def close_day(controller: AttendanceController = Depends(get_controller)):
    try:
        return await controller.close_day()
    except ScannerBusyError as e:
        raise HTTPException(status_code=409, detail=e.message)


@router.post("/attendance/reset")
async def reset_day(controller: AttendanceController = Depends(get_controller)):
    count = controller.reset_day()
    return {"ok": True, "records_reset": count}


@router.post("/attendance/{student_id}/resend")
async def resend(student_id: str, controller: AttendanceController = Depends(get_controller)):
    try:
        event = await controller.resend(student_id)
    except StudentNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=e.message)
    return event.model_dump(mode="json")


@router.post("/attendance/{student_id}/justify")
async def justify(student_id: str, controller: AttendanceController = Depends(get_controller)):
    try:
        record = controller.justify(student_id)
    except StudentNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=e.message)
    return record.model_dump()


@router.get("/notifications")
async def notifications(controller: AttendanceController = Depends(get_controller)):
    return [e.model_dump(mode="json") for e in controller.recent_notifications()]
