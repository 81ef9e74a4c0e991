import logging

from database.db import KeyValueStore
from eduscan.errors import DuplicateStudentError
from eduscan.models import Student

logger = logging.getLogger(__name__)


class StudentDirectory:
    """
    Identity -> Student mapping, persisted as one JSON array under ``key``.

    The whole collection is loaded once and flushed on every mutation.
    """

    def __init__(self, store: KeyValueStore, key: str = "students_v2"):
        self.store = store
        self.key = key
        self._students: dict[str, Student] = {}
        self.load()

    def load(self) -> None:
        rows = self.store.get(self.key, [])
        self._students = {}
        for row in rows:
            student = Student.model_validate(row)
            self._students[student.id] = student
        logger.debug("Loaded %d students from %s", len(self._students), self.key)

    def _flush(self) -> None:
        self.store.set(self.key, [s.model_dump() for s in self._students.values()])

    def lookup(self, student_id: str) -> Student | None:
        return self._students.get(student_id)

    def all(self) -> list[Student]:
        return list(self._students.values())

    def ids(self) -> list[str]:
        return list(self._students)

    def __len__(self) -> int:
        return len(self._students)

    def __contains__(self, student_id: object) -> bool:
        return student_id in self._students

    def enroll(self, student: Student) -> None:
        if student.id in self._students:
            raise DuplicateStudentError(student.id)
        self._students[student.id] = student
        self._flush()
        logger.info("Enrolled student %s (%s)", student.id, student.name)

    def remove(self, student_id: str) -> bool:
        if self._students.pop(student_id, None) is None:
            return False
        self._flush()
        logger.info("Removed student %s", student_id)
        return True

    def seed(self, students: list[Student]) -> int:
        added = 0
        for student in students:
            if student.id in self._students:
                continue
            self._students[student.id] = student
            added += 1
        if added:
            self._flush()
            logger.info("Seeded %d students", added)
        return added
