"""
Attendance controller.

Owns the student directory, today's ledger, the dedup guard and the
notification dispatcher, and is the only code that mutates them. Everything
runs on the event loop; the processing gate is the only mutual exclusion.
"""
import logging
from collections import deque
from datetime import datetime
from typing import Any, Callable, Literal, TypedDict

from fastapi import Request

from database.db import KeyValueStore
from database.directory import StudentDirectory
from database.ledger import AttendanceLedger, load_ledger_records, remove_student_from_all_ledgers
from eduscan.config import DATE_FORMAT, TIME_FORMAT
from eduscan.dedup import ScanDedupGuard
from eduscan.errors import InvalidTransitionError, ScannerBusyError, StudentNotFoundError
from eduscan.models import (
    UNKNOWN,
    AttendanceRecord,
    AttendanceStatus,
    DeliveryOutcome,
    NotificationEvent,
    Student,
)
from eduscan.notifier import NotificationDispatcher
from eduscan.payload import parse_payload
from eduscan.state_machine import apply_day_close, apply_scan, reset_record

logger = logging.getLogger(__name__)


DecisionCode = Literal[
    "CHECK_IN_SET",
    "AUTO_ENROLLED",
    "ALREADY_PRESENT",
    "ALREADY_ABSENT",
    "DUPLICATE_IGNORED",
    "SCANNER_BUSY",
    "QR_NOT_RECOGNIZED",
    "UNKNOWN_IDENTITY",
]

Listener = Callable[[str, dict[str, Any]], None]


class ScanResult(TypedDict):
    accepted: bool
    decision_code: DecisionCode
    message: str
    notify: bool
    student_id: str | None
    name: str | None
    date: str
    time: str | None
    status: AttendanceStatus | None
    generated_message: str | None
    delivery: DeliveryOutcome | None
    link: str | None
    warnings: list[str]
    retry_after_ms: int | None


class DayCloseResult(TypedDict):
    date: str
    absent_marked: int
    student_ids: list[str]
    delivered: int


def _build_scan_result(
    *,
    decision_code: DecisionCode,
    message: str,
    date: str,
    accepted: bool = False,
    notify: bool = True,
    student: Student | None = None,
    student_id: str | None = None,
    record: AttendanceRecord | None = None,
    delivery: DeliveryOutcome | None = None,
    link: str | None = None,
    warnings: list[str] | None = None,
    retry_after_ms: int | None = None,
) -> ScanResult:
    return {
        "accepted": accepted,
        "decision_code": decision_code,
        "message": message,
        "notify": notify,
        "student_id": student.id if student else student_id,
        "name": student.name if student else None,
        "date": date,
        "time": record.time if record else None,
        "status": record.status if record else None,
        "generated_message": record.generated_message if record else None,
        "delivery": delivery,
        "link": link,
        "warnings": warnings or [],
        "retry_after_ms": retry_after_ms,
    }


def _epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


class AttendanceController:
    def __init__(
        self,
        store: KeyValueStore,
        dispatcher: NotificationDispatcher,
        *,
        namespace: str = "attendance",
        directory_key: str = "students_v2",
        cooldown_ms: int = 4500,
        reopen_delay_ms: int = 2000,
        auto_deliver_present: bool = True,
        auto_deliver_absences: bool = False,
        notification_buffer_size: int = 100,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.namespace = namespace
        self.directory = StudentDirectory(store, directory_key)
        self.guard = ScanDedupGuard(cooldown_ms)
        self.reopen_delay_ms = max(0, int(reopen_delay_ms))
        self.auto_deliver_present = auto_deliver_present
        self.auto_deliver_absences = auto_deliver_absences
        self.clock = clock

        self._ledger: AttendanceLedger | None = None
        self._events: deque[NotificationEvent] = deque(maxlen=notification_buffer_size)
        self._listeners: list[Listener] = []
        self._processing = False
        self._reopen_at_ms = 0

    # -----------------------------
    # Observers
    # -----------------------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, event: str, payload: dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception:
                logger.exception("Change listener failed for event %s", event)

    def _push_event(self, event: NotificationEvent) -> None:
        self._events.appendleft(event)
        self._emit("notification", event.model_dump(mode="json"))

    # -----------------------------
    # Day ledger
    # -----------------------------
    def today(self) -> str:
        return self.clock().strftime(DATE_FORMAT)

    def ledger_for(self, date: str) -> AttendanceLedger:
        if self._ledger is None or self._ledger.date != date:
            self._ledger = AttendanceLedger.open(
                self.store,
                date,
                self.directory.ids(),
                namespace=self.namespace,
            )
        return self._ledger

    def ledger(self) -> AttendanceLedger:
        return self.ledger_for(self.today())

    def list_records(self, date: str | None = None) -> list[AttendanceRecord]:
        today = self.today()
        if not date or date == today:
            return self.ledger_for(today).records()
        return load_ledger_records(self.store, self.namespace, date) or []

    def summary(self) -> dict[str, Any]:
        records = self.ledger().records()
        return {
            "date": self.today(),
            "total": len(records),
            "present": sum(1 for r in records if r.status == "Present"),
            "absent": sum(1 for r in records if r.status == "Absent"),
            "pending": sum(1 for r in records if r.status == "Pending"),
            "justified": sum(1 for r in records if r.justification_received),
        }

    def recent_notifications(self) -> list[NotificationEvent]:
        return list(self._events)

    # -----------------------------
    # Processing gate
    # -----------------------------
    def scanner_open(self, now_ms: int | None = None) -> bool:
        if now_ms is None:
            now_ms = _epoch_ms(self.clock())
        return not self._processing and now_ms >= self._reopen_at_ms

    def scanner_state(self) -> dict[str, Any]:
        return {
            "open": self.scanner_open(),
            "processing": self._processing,
            "cooldown_ms": self.guard.cooldown_ms,
            "reopen_delay_ms": self.reopen_delay_ms,
            "auto_deliver_present": self.auto_deliver_present,
            "auto_deliver_absences": self.auto_deliver_absences,
        }

    # -----------------------------
    # Scans
    # -----------------------------
    async def handle_scan(self, raw: str | None) -> ScanResult:
        now = self.clock()
        now_ms = _epoch_ms(now)
        date = now.strftime(DATE_FORMAT)

        if not self.scanner_open(now_ms):
            return _build_scan_result(
                decision_code="SCANNER_BUSY",
                message="Scanner is processing the previous code.",
                date=date,
                notify=False,
            )

        self._processing = True
        transitioned = False
        try:
            result = await self._process_scan(raw, now, now_ms)
            transitioned = result["accepted"]
            return result
        finally:
            self._processing = False
            if transitioned:
                # Keep the scanner closed briefly so the badge can leave the frame.
                self._reopen_at_ms = _epoch_ms(self.clock()) + self.reopen_delay_ms

    async def _process_scan(self, raw: str | None, now: datetime, now_ms: int) -> ScanResult:
        date = now.strftime(DATE_FORMAT)
        parsed = parse_payload(raw)
        if parsed is None:
            return _build_scan_result(
                decision_code="QR_NOT_RECOGNIZED",
                message="Código QR no reconocido",
                date=date,
            )

        identity = parsed.id
        if not self.guard.should_accept(identity, now_ms):
            return _build_scan_result(
                decision_code="DUPLICATE_IGNORED",
                message="Duplicate scan ignored.",
                date=date,
                notify=False,
                student_id=identity,
                retry_after_ms=self.guard.retry_after_ms(identity, now_ms),
            )

        ledger = self.ledger_for(date)
        student = self.directory.lookup(identity)
        auto_enrolled = False
        if student is None:
            if not parsed.name:
                logger.info("Scan for unknown identity %s without enrollment data", identity)
                return _build_scan_result(
                    decision_code="UNKNOWN_IDENTITY",
                    message=f"Identidad no reconocida: {identity}",
                    date=date,
                    student_id=identity,
                )
            student = Student(
                id=identity,
                name=parsed.name,
                grade=parsed.grade or UNKNOWN,
                guardian_name=parsed.guardian or UNKNOWN,
                guardian_contact=parsed.contact or UNKNOWN,
            )
            self.directory.enroll(student)
            auto_enrolled = True
            self._emit("student_enrolled", student.model_dump())

        record = ledger.get(identity) or ledger.add_pending(identity)
        observed_time = now.strftime(TIME_FORMAT)
        transition = apply_scan(record, observed_time)

        if transition == "ALREADY_PRESENT":
            return _build_scan_result(
                decision_code="ALREADY_PRESENT",
                message=f"{student.name} ya está registrado",
                date=date,
                student=student,
                record=record,
            )
        if transition == "ALREADY_ABSENT":
            return _build_scan_result(
                decision_code="ALREADY_ABSENT",
                message=f"{student.name} ya fue marcado ausente hoy",
                date=date,
                student=student,
                record=record,
            )

        ledger.save()
        logger.info("Check-in recorded for %s at %s", identity, observed_time)
        self._emit("record_changed", record.model_dump())

        message = await self.dispatcher.compose(student, "Present", observed_time)

        if record.status == "Present" and record.generated_message is None:
            record.generated_message = message
            ledger.save()
            self._emit("record_changed", record.model_dump())

        event = self.dispatcher.dispatch(
            student,
            "Present",
            message,
            deliver=self.auto_deliver_present,
            created_at=self.clock(),
        )
        self._push_event(event)

        warnings = []
        if event.delivery == "no_contact":
            warnings.append("Sin contacto registrado; el mensaje no fue enviado.")

        return _build_scan_result(
            decision_code="AUTO_ENROLLED" if auto_enrolled else "CHECK_IN_SET",
            message=f"REPORTE ENVIADO: {message}",
            date=date,
            accepted=True,
            student=student,
            record=record,
            delivery=event.delivery,
            link=event.link,
            warnings=warnings,
        )

    # -----------------------------
    # Day close
    # -----------------------------
    async def close_day(self) -> DayCloseResult:
        date = self.today()
        ledger = self.ledger_for(date)
        pending_ids = [r.student_id for r in ledger.pending()]
        if not pending_ids:
            return {"date": date, "absent_marked": 0, "student_ids": [], "delivered": 0}

        if self._processing:
            raise ScannerBusyError()

        self._processing = True
        marked: list[str] = []
        delivered = 0
        try:
            for student_id in pending_ids:
                record = ledger.get(student_id)
                if record is None or record.status != "Pending":
                    continue
                student = self.directory.lookup(student_id)
                if student is None:
                    ledger.remove(student_id)
                    ledger.save()
                    logger.warning("Dropped dangling ledger record for %s", student_id)
                    continue

                apply_day_close(record)
                ledger.save()
                marked.append(student_id)
                self._emit("record_changed", record.model_dump())

                message = await self.dispatcher.compose(student, "Absent")
                if record.status == "Absent" and record.generated_message is None:
                    record.generated_message = message
                    ledger.save()
                    self._emit("record_changed", record.model_dump())

                event = self.dispatcher.dispatch(
                    student,
                    "Absent",
                    message,
                    deliver=self.auto_deliver_absences,
                    created_at=self.clock(),
                )
                if event.delivery == "handed_off":
                    delivered += 1
                self._push_event(event)
        finally:
            self._processing = False

        logger.info("Day %s closed: %d absences marked", date, len(marked))
        return {"date": date, "absent_marked": len(marked), "student_ids": marked, "delivered": delivered}

    async def resend(self, student_id: str) -> NotificationEvent:
        student = self.directory.lookup(student_id)
        if student is None:
            raise StudentNotFoundError(student_id)
        ledger = self.ledger()
        record = ledger.get(student_id)
        if record is None or record.status == "Pending":
            raise InvalidTransitionError(
                "Nothing to re-send for a pending record.",
                student_id=student_id,
                status=record.status if record else "Pending",
            )

        kind = "Present" if record.status == "Present" else "Absent"
        if record.generated_message is None:
            event = await self.dispatcher.notify(
                student, kind, record.time, deliver=True, created_at=self.clock()
            )
            if record.generated_message is None:
                record.generated_message = event.message
                ledger.save()
                self._emit("record_changed", record.model_dump())
        else:
            event = self.dispatcher.dispatch(
                student, kind, record.generated_message, deliver=True, created_at=self.clock()
            )
        self._push_event(event)
        return event

    # -----------------------------
    # Operator actions
    # -----------------------------
    def justify(self, student_id: str) -> AttendanceRecord:
        if self.directory.lookup(student_id) is None:
            raise StudentNotFoundError(student_id)
        ledger = self.ledger()
        record = ledger.get(student_id)
        if record is None or record.status != "Absent":
            raise InvalidTransitionError(
                "Only absences can be justified.",
                student_id=student_id,
                status=record.status if record else "Pending",
            )
        if not record.justification_received:
            record.justification_received = True
            ledger.save()
            self._emit("record_changed", record.model_dump())
        return record

    def reset_day(self) -> int:
        ledger = self.ledger()
        for record in ledger.records():
            reset_record(record)
        ledger.save()
        self.guard.reset()
        self._reopen_at_ms = 0
        self._emit("ledger_reset", {"date": ledger.date})
        logger.info("Ledger %s reset (%d records)", ledger.key, len(ledger))
        return len(ledger)

    def enroll_student(self, student: Student) -> AttendanceRecord:
        self.directory.enroll(student)
        ledger = self.ledger()
        record = ledger.add_pending(student.id)
        ledger.save()
        self._emit("student_enrolled", student.model_dump())
        return record

    def seed_students(self, students: list[Student]) -> int:
        added = self.directory.seed(students)
        if added:
            ledger = self.ledger()
            for student in students:
                ledger.add_pending(student.id)
            ledger.save()
        return added

    def delete_student(self, student_id: str) -> int:
        if not self.directory.remove(student_id):
            raise StudentNotFoundError(student_id)
        days = remove_student_from_all_ledgers(self.store, self.namespace, student_id)
        # The stored copy is already updated; only drop the cached record.
        if self._ledger is not None:
            self._ledger.remove(student_id)
        self._emit("student_removed", {"student_id": student_id})
        logger.info("Student %s removed from directory and %d day ledgers", student_id, days)
        return days


def get_controller(request: Request) -> AttendanceController:
    """FastAPI dependency; the controller is built at startup."""
    return request.app.state.controller
