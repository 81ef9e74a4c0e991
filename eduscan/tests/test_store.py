import pytest

from database.db import MemoryStore, SqliteStore, open_store
from database.directory import StudentDirectory
from database.ledger import (
    AttendanceLedger,
    ledger_key,
    load_ledger_records,
    remove_student_from_all_ledgers,
)
from eduscan.errors import DuplicateStudentError
from eduscan.models import Student


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryStore()
    return SqliteStore(tmp_path / "eduscan_test.db")


def test_values_round_trip_as_json(store):
    assert store.get("missing") is None
    assert store.get("missing", []) == []

    store.set("students_v2", [{"id": "STU001", "name": "Ana García"}])
    assert store.get("students_v2") == [{"id": "STU001", "name": "Ana García"}]

    store.set("students_v2", [])
    assert store.get("students_v2") == []


def test_keys_match_prefix_literally(store):
    store.set("attendance_2026-03-01", [])
    store.set("attendance_2026-03-02", [])
    store.set("attendanceX2026", [])
    store.set("students_v2", [])

    assert store.keys(prefix="attendance_") == ["attendance_2026-03-01", "attendance_2026-03-02"]
    assert len(store.keys()) == 4
    assert store.delete("students_v2")
    assert not store.delete("students_v2")


def test_sqlite_store_persists_across_instances(tmp_path):
    path = tmp_path / "nested" / "eduscan.db"
    SqliteStore(path).set("k", {"a": 1})
    assert SqliteStore(path).get("k") == {"a": 1}


def test_open_store_selects_backend(tmp_path):
    assert isinstance(open_store("memory", tmp_path / "x.db"), MemoryStore)
    assert isinstance(open_store("sqlite", tmp_path / "x.db"), SqliteStore)


def test_directory_enroll_lookup_remove(store):
    directory = StudentDirectory(store)
    directory.enroll(Student(id="STU001", name="Ana García"))
    assert "STU001" in directory
    assert directory.lookup("STU001").name == "Ana García"

    with pytest.raises(DuplicateStudentError):
        directory.enroll(Student(id="STU001", name="Otra"))

    reloaded = StudentDirectory(store)
    assert reloaded.ids() == ["STU001"]

    assert reloaded.remove("STU001")
    assert not reloaded.remove("STU001")
    assert StudentDirectory(store).all() == []


def test_directory_seed_only_adds_missing(store):
    directory = StudentDirectory(store)
    directory.enroll(Student(id="STU001", name="Ana García"))
    added = directory.seed([Student(id="STU001", name="X"), Student(id="STU002", name="Luis Pérez")])
    assert added == 1
    assert directory.lookup("STU001").name == "Ana García"
    assert len(directory) == 2


def test_ledger_initializes_pending_records(store):
    ledger = AttendanceLedger.open(store, "2026-03-02", ["STU001", "STU002"])
    assert [r.student_id for r in ledger.pending()] == ["STU001", "STU002"]
    assert ledger.key == "attendance_2026-03-02"
    assert len(store.get(ledger.key)) == 2


def test_ledger_reconciles_with_directory(store):
    ledger = AttendanceLedger.open(store, "2026-03-02", ["STU001", "STU002"])
    record = ledger.get("STU001")
    record.status = "Present"
    record.time = "07:45"
    record.notification_sent = True
    ledger.save()

    reopened = AttendanceLedger.open(store, "2026-03-02", ["STU001", "STU003"])
    assert [r.student_id for r in reopened.records()] == ["STU001", "STU003"]
    assert reopened.get("STU001").status == "Present"
    assert reopened.get("STU003").status == "Pending"
    assert [r["student_id"] for r in store.get("attendance_2026-03-02")] == ["STU001", "STU003"]


def test_namespace_is_part_of_the_key(store):
    AttendanceLedger.open(store, "2026-03-02", ["STU001"], namespace="school_a")
    assert store.keys(prefix="school_a_") == ["school_a_2026-03-02"]
    assert ledger_key("school_a", "2026-03-02") == "school_a_2026-03-02"
    assert load_ledger_records(store, "attendance", "2026-03-02") is None


def test_remove_student_cascades_across_days(store):
    AttendanceLedger.open(store, "2026-03-01", ["STU001", "STU002"])
    AttendanceLedger.open(store, "2026-03-02", ["STU001", "STU002"])
    AttendanceLedger.open(store, "2026-03-03", ["STU002"])

    touched = remove_student_from_all_ledgers(store, "attendance", "STU001")
    assert touched == 2
    for date in ("2026-03-01", "2026-03-02", "2026-03-03"):
        records = load_ledger_records(store, "attendance", date)
        assert [r.student_id for r in records] == ["STU002"]


def test_directory_round_trip_keeps_every_field(store):
    originals = [
        Student(
            id="STU001",
            name="Ana García",
            grade="5to Secundaria - A",
            guardian_name="Carlos García",
            guardian_contact="+51 987654321",
        ),
        Student(id="74859632", name="JUAN PEREZ", guardian_contact="987654321"),
    ]
    directory = StudentDirectory(store)
    for student in originals:
        directory.enroll(student)

    assert StudentDirectory(store).all() == originals


def test_ledger_round_trip_keeps_every_field(store):
    ledger = AttendanceLedger.open(store, "2026-03-02", ["STU001", "STU002", "STU003"])
    present = ledger.get("STU001")
    present.status = "Present"
    present.time = "07:45"
    present.notification_sent = True
    present.generated_message = "Hola Carlos García, le informamos que Ana García ingresó a las 07:45."
    absent = ledger.get("STU002")
    absent.status = "Absent"
    absent.notification_sent = True
    absent.generated_message = "Hola Marta Pérez, le informamos que Luis Pérez no se ha presentado hoy."
    absent.justification_received = True
    ledger.save()
    originals = [r.model_copy() for r in ledger.records()]

    reopened = AttendanceLedger.open(store, "2026-03-02", ["STU001", "STU002", "STU003"])
    assert reopened.records() == originals
    assert load_ledger_records(store, "attendance", "2026-03-02") == originals
