"""
Exceptions raised by the attendance core.

Expected scan outcomes (duplicates, unknown codes, repeat check-ins) are
reported as decision codes, not exceptions. These cover contract violations
the caller has to handle explicitly.
"""


class EduScanError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, code: str = "INTERNAL_ERROR", details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class StudentNotFoundError(EduScanError):
    """Raised when an operation targets an identity that is not enrolled."""

    def __init__(self, student_id: str):
        super().__init__(
            f"Student {student_id!r} is not enrolled.",
            code="STUDENT_NOT_FOUND",
            details={"student_id": student_id},
        )
        self.student_id = student_id


class DuplicateStudentError(EduScanError):
    """Raised when enrolling an identity that already exists."""

    def __init__(self, student_id: str):
        super().__init__(
            f"Student {student_id!r} is already enrolled.",
            code="DUPLICATE_STUDENT",
            details={"student_id": student_id},
        )
        self.student_id = student_id


class InvalidTransitionError(EduScanError):
    """Raised when an operator action does not fit the record's current status."""

    def __init__(self, message: str, *, student_id: str, status: str):
        super().__init__(
            message,
            code="INVALID_TRANSITION",
            details={"student_id": student_id, "status": status},
        )
        self.student_id = student_id
        self.status = status


class ScannerBusyError(EduScanError):
    """Raised when a bulk operation is requested while a scan is being processed."""

    def __init__(self, message: str = "Scanner is processing; retry shortly."):
        super().__init__(message, code="SCANNER_BUSY")


class TextGenerationError(EduScanError):
    """Raised by text generators; always absorbed by the dispatcher."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, code="TEXT_GENERATION_ERROR", details=details)
