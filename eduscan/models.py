"""
Durable records (Student, AttendanceRecord) and the ephemeral notification event.
"""
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

UNKNOWN = "unknown"

AttendanceStatus = Literal["Pending", "Present", "Absent"]
TransitionKind = Literal["Present", "Absent"]
DeliveryOutcome = Literal["handed_off", "no_contact", "failed", "skipped"]


class Student(BaseModel):
    id: str = Field(..., min_length=1, description="Stable identifier, e.g. national ID")
    name: str
    grade: str = UNKNOWN
    guardian_name: str = UNKNOWN
    guardian_contact: str = ""


class AttendanceRecord(BaseModel):
    student_id: str
    date: str  # YYYY-MM-DD
    time: str | None = None  # HH:MM, set only while Present
    status: AttendanceStatus = "Pending"
    notification_sent: bool = False
    generated_message: str | None = None
    justification_received: bool = False


def new_pending_record(student_id: str, date: str) -> AttendanceRecord:
    return AttendanceRecord(student_id=student_id, date=date)


class NotificationEvent(BaseModel):
    student_id: str
    kind: TransitionKind
    message: str
    delivery: DeliveryOutcome = "skipped"
    link: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)


class StudentCreate(BaseModel):
    id: str
    name: str
    grade: str | None = None
    guardian_name: str | None = None
    guardian_contact: str | None = None


class ScanRequest(BaseModel):
    payload: str


# Demo directory used on first start (and for local development).
DEMO_STUDENTS: list[Student] = [
    Student(
        id="STU001",
        name="Ana García",
        grade="5to Secundaria - A",
        guardian_name="Carlos García",
        guardian_contact="+51 987654321",
    ),
    Student(
        id="STU002",
        name="Luis Pérez",
        grade="4to Primaria - B",
        guardian_name="Marta Pérez",
        guardian_contact="+51 912345678",
    ),
]
