import enum
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    BigInteger, Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text,
    UniqueConstraint, func,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from secure_exam.core.database import Base

# SQLite only autoincrements INTEGER primary keys.
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


class SessionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    TERMINATED = "TERMINATED"


class AuditStatus(str, enum.Enum):
    CONNECTED = "CONNECTED"
    STARTED_TEST = "STARTED_TEST"
    SUBMITTED = "SUBMITTED"
    KICKED_OUT = "KICKED_OUT"


# ========== Roster & Question Bank ==========

class Student(Base):
    __tablename__ = "students"

    student_identifier: Mapped[str] = mapped_column(String(64), primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    degree: Mapped[Optional[str]] = mapped_column(String(120))
    course: Mapped[Optional[str]] = mapped_column(String(120))
    has_attempted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Question(Base):
    __tablename__ = "questions"
    __table_args__ = (
        Index("idx_questions_active", "is_active"),
        Index("idx_questions_group", "question_group_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    option_a: Mapped[Optional[str]] = mapped_column(Text)
    option_b: Mapped[Optional[str]] = mapped_column(Text)
    option_c: Mapped[Optional[str]] = mapped_column(Text)
    option_d: Mapped[Optional[str]] = mapped_column(Text)
    correct_option: Mapped[Optional[str]] = mapped_column(String(16))
    allows_multiple: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(String(500))
    question_group_id: Mapped[Optional[str]] = mapped_column(String(64))
    is_group_header: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    group_order: Mapped[Optional[int]] = mapped_column(Integer)


# ========== Delivery Models ==========

class ExamSession(Base):
    __tablename__ = "sessions"
    __table_args__ = (
        Index("idx_sessions_status", "status"),
        # One attempt per identity, even if the roster flag were bypassed.
        UniqueConstraint("student_identifier", name="uq_sessions_student"),
    )

    session_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    student_identifier: Mapped[str] = mapped_column(
        String(64), ForeignKey("students.student_identifier"), nullable=False
    )
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    degree: Mapped[str] = mapped_column(String(120), default="")
    course: Mapped[str] = mapped_column(String(120), default="")
    status: Mapped[SessionStatus] = mapped_column(
        SQLEnum(SessionStatus, native_enum=False, length=16),
        nullable=False,
        default=SessionStatus.ACTIVE,
    )
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    score: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2))
    violation_reason: Mapped[Optional[str]] = mapped_column(Text)

    # Relationships
    questions: Mapped[List["SessionQuestion"]] = relationship(
        back_populates="session", cascade="all, delete-orphan", order_by="SessionQuestion.position"
    )
    responses: Mapped[List["Response"]] = relationship(
        back_populates="session", cascade="all, delete-orphan"
    )
    violations: Mapped[List["Violation"]] = relationship(
        back_populates="session", cascade="all, delete-orphan"
    )


class SessionQuestion(Base):
    __tablename__ = "session_questions"
    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_session_question"),
        UniqueConstraint("session_id", "position", name="uq_session_question_position"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sessions.session_id", ondelete="CASCADE"), nullable=False
    )
    question_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("questions.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    sequence: Mapped[Optional[int]] = mapped_column(Integer)

    session: Mapped["ExamSession"] = relationship(back_populates="questions")
    question: Mapped["Question"] = relationship()


class Response(Base):
    __tablename__ = "responses"
    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_response"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sessions.session_id", ondelete="CASCADE"), nullable=False
    )
    question_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("questions.id"), nullable=False)
    selected_option: Mapped[Optional[str]] = mapped_column(Text)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    partial_score: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 4))

    session: Mapped["ExamSession"] = relationship(back_populates="responses")


class Violation(Base):
    __tablename__ = "violations"
    __table_args__ = (
        Index("idx_violations_session", "session_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sessions.session_id", ondelete="CASCADE"), nullable=False
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    session: Mapped["ExamSession"] = relationship(back_populates="violations")


# ========== Audit ==========

class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("idx_al_session", "session_id"),
        Index("idx_al_logged", "logged_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    session_id: Mapped[str] = mapped_column(String(36), nullable=False)
    student_identifier: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[AuditStatus] = mapped_column(
        SQLEnum(AuditStatus, native_enum=False, length=16), nullable=False
    )
    score: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2))
    violation_reason: Mapped[Optional[str]] = mapped_column(Text)
    logged_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
