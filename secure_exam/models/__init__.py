from secure_exam.models.orm import (
    AuditLog,
    AuditStatus,
    ExamSession,
    Question,
    Response,
    SessionQuestion,
    SessionStatus,
    Student,
    Violation,
)

__all__ = [
    "AuditLog",
    "AuditStatus",
    "ExamSession",
    "Question",
    "Response",
    "SessionQuestion",
    "SessionStatus",
    "Student",
    "Violation",
]
