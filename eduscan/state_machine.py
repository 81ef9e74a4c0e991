"""
Attendance state machine.

    Pending --scan------> Present   (terminal for the day)
    Pending --day close-> Absent    (terminal for the day)

Both transitions set ``notification_sent`` and leave ``generated_message``
empty; the controller fills it in once the composed message settles.
"""
from typing import Literal

from eduscan.models import AttendanceRecord

Transition = Literal[
    "CHECK_IN_SET",
    "ABSENCE_MARKED",
    "ALREADY_PRESENT",
    "ALREADY_ABSENT",
    "UNCHANGED",
]


def apply_scan(record: AttendanceRecord, observed_time: str) -> Transition:
    if record.status == "Present":
        return "ALREADY_PRESENT"
    if record.status == "Absent":
        return "ALREADY_ABSENT"

    record.status = "Present"
    record.time = observed_time
    record.notification_sent = True
    record.generated_message = None
    return "CHECK_IN_SET"


def apply_day_close(record: AttendanceRecord) -> Transition:
    if record.status != "Pending":
        return "UNCHANGED"

    record.status = "Absent"
    record.time = None
    record.notification_sent = True
    record.generated_message = None
    return "ABSENCE_MARKED"


def reset_record(record: AttendanceRecord) -> None:
    record.status = "Pending"
    record.time = None
    record.notification_sent = False
    record.generated_message = None
    record.justification_received = False


def check_invariants(record: AttendanceRecord) -> bool:
    """True when the record satisfies the ledger invariants."""
    if record.notification_sent != (record.status != "Pending"):
        return False
    if (record.time is not None) != (record.status == "Present"):
        return False
    if record.justification_received and record.status != "Absent":
        return False
    return True
