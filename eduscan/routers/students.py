from fastapi import APIRouter, Depends, HTTPException

from eduscan.errors import DuplicateStudentError, StudentNotFoundError
from eduscan.models import UNKNOWN, Student, StudentCreate
from eduscan.services.attendance import AttendanceController, get_controller

router = APIRouter()


@router.get("/students")
async def students(controller: AttendanceController = Depends(get_controller)):
    return [s.model_dump() for s in controller.directory.all()]


@router.post("/students")
async def create_student(payload: StudentCreate, controller: AttendanceController = Depends(get_controller)):
    student_id = payload.id.strip()
    name = payload.name.strip()
    if not student_id or not name:
        raise HTTPException(status_code=400, detail="Student id and name are required.")

    student = Student(
        id=student_id,
        name=name,
        grade=(payload.grade or "").strip() or UNKNOWN,
        guardian_name=(payload.guardian_name or "").strip() or UNKNOWN,
        guardian_contact=(payload.guardian_contact or "").strip(),
    )
    try:
        record = controller.enroll_student(student)
    except DuplicateStudentError as e:
        raise HTTPException(status_code=409, detail=e.message)
    return {**student.model_dump(), "status": record.status}


@router.delete("/students/{student_id}")
async def delete_student(student_id: str, controller: AttendanceController = Depends(get_controller)):
    try:
        days = controller.delete_student(student_id)
    except StudentNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return {"ok": True, "student_id": student_id, "ledgers_updated": days}
