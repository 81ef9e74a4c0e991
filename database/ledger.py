import logging

from database.db import KeyValueStore
from eduscan.models import AttendanceRecord, new_pending_record

logger = logging.getLogger(__name__)


def ledger_key(namespace: str, date: str) -> str:
    return f"{namespace}_{date}"


class AttendanceLedger:
    """
    All attendance records of one calendar day, keyed by student id.

    Persisted as a JSON array under ``<namespace>_<YYYY-MM-DD>``; iteration
    order is insertion order, which is also the day-close order.
    """

    def __init__(self, store: KeyValueStore, date: str, *, namespace: str = "attendance"):
        self.store = store
        self.date = date
        self.namespace = namespace
        self._records: dict[str, AttendanceRecord] = {}

    @property
    def key(self) -> str:
        return ledger_key(self.namespace, self.date)

    @classmethod
    def open(
        cls,
        store: KeyValueStore,
        date: str,
        student_ids: list[str],
        *,
        namespace: str = "attendance",
    ) -> "AttendanceLedger":
        """
        Load the day's ledger, or initialize it with one Pending record per
        enrolled student. Loaded ledgers are reconciled against the directory:
        newly enrolled students get a Pending record and dangling records are
        dropped.
        """
        ledger = cls(store, date, namespace=namespace)
        rows = store.get(ledger.key)
        if rows is None:
            for student_id in student_ids:
                ledger._records[student_id] = new_pending_record(student_id, date)
            ledger.save()
            logger.info("Initialized ledger %s with %d pending records", ledger.key, len(student_ids))
            return ledger

        for row in rows:
            record = AttendanceRecord.model_validate(row)
            ledger._records[record.student_id] = record

        enrolled = set(student_ids)
        dangling = [sid for sid in ledger._records if sid not in enrolled]
        for sid in dangling:
            del ledger._records[sid]
        missing = [sid for sid in student_ids if sid not in ledger._records]
        for sid in missing:
            ledger._records[sid] = new_pending_record(sid, date)

        if dangling or missing:
            logger.info(
                "Reconciled ledger %s: %d dangling removed, %d pending added",
                ledger.key,
                len(dangling),
                len(missing),
            )
            ledger.save()
        return ledger

    def save(self) -> None:
        self.store.set(self.key, [r.model_dump() for r in self._records.values()])

    def records(self) -> list[AttendanceRecord]:
        return list(self._records.values())

    def get(self, student_id: str) -> AttendanceRecord | None:
        return self._records.get(student_id)

    def pending(self) -> list[AttendanceRecord]:
        return [r for r in self._records.values() if r.status == "Pending"]

    def add_pending(self, student_id: str) -> AttendanceRecord:
        record = self._records.get(student_id)
        if record is None:
            record = new_pending_record(student_id, self.date)
            self._records[student_id] = record
        return record

    def remove(self, student_id: str) -> bool:
        return self._records.pop(student_id, None) is not None

    def __len__(self) -> int:
        return len(self._records)


def load_ledger_records(store: KeyValueStore, namespace: str, date: str) -> list[AttendanceRecord] | None:
    rows = store.get(ledger_key(namespace, date))
    if rows is None:
        return None
    return [AttendanceRecord.model_validate(row) for row in rows]


def remove_student_from_all_ledgers(store: KeyValueStore, namespace: str, student_id: str) -> int:
    """Cascade a directory delete across every stored day. Returns days touched."""
    touched = 0
    for key in store.keys(prefix=f"{namespace}_"):
        rows = store.get(key, [])
        kept = [row for row in rows if row.get("student_id") != student_id]
        if len(kept) != len(rows):
            store.set(key, kept)
            touched += 1
    return touched
