"""
Session lifecycle: login, question delivery, submission and violations.

Every state-changing operation runs in one transaction that starts by locking
the roster row and/or the session row, so concurrent requests touching the
same identity or session are serialized. Status only ever moves from ACTIVE
to one terminal value.
"""
import logging
import random
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from secure_exam.core.clock import Clock, as_utc, utcnow
from secure_exam.core.config import Settings
from secure_exam.core.errors import (
    SESSION_NOT_FOUND, AuthenticationError, InfrastructureError, NotFoundError, ValidationError,
)
from secure_exam.core.registry import ActiveSessionRegistry
from secure_exam.models.orm import (
    AuditStatus, ExamSession, Question, Response, SessionQuestion, SessionStatus, Student, Violation,
)
from secure_exam.services.audit import has_event, record_event
from secure_exam.services.randomizer import build_assignment
from secure_exam.services.scoring import Selection, score_answer, to_decimal, total_score

logger = logging.getLogger(__name__)

SESSION_EXPIRED_REASON = "Session expired"
MAX_REASON_LENGTH = 500

PASSWORD_REQUIRED = "Exam Password Required. Please enter the exam password to proceed."
PASSWORD_INCORRECT = "Incorrect Exam Password. The password you entered is incorrect. Please check and try again."
STUDENT_ID_REQUIRED = "College ID Required. Please enter your College ID to proceed."
STUDENT_UNKNOWN = (
    "Incorrect College ID. The provided College ID is not registered in the system. "
    "Please verify your College ID and try again."
)
NAME_MISMATCH = (
    "Name and College ID do not match our records. "
    "Please enter the exact name registered for this College ID."
)
ALREADY_USED = (
    "College ID Already Used. This College ID has already been used to attempt the exam. "
    "Each student can only attempt the exam once."
)
QUESTION_BANK_EMPTY = "Question Bank Empty. No questions are available in the system. Please contact support."
SESSION_NOT_ACTIVE = "Session Not Active. This exam session is no longer active. Please contact support."
SESSION_EXPIRED = "Session Expired. Your exam session has expired. Please contact support."
SESSION_CLOSED = "Session Already Closed. This exam session has already been closed. Please contact support."
TIME_ELAPSED = "Session Time Elapsed. Your exam time has expired. The session has been closed."
NO_ANSWERS = "No Answers Provided. Please provide answers to submit the exam."
NO_VALID_ANSWERS = "No Valid Answers. No valid answers were submitted. Please provide answers to the questions."
REASON_REQUIRED = "Violation Reason Required. A violation reason must be provided."


@dataclass
class SubmittedAnswer:
    question_id: Optional[int]
    selected_option: Selection


@dataclass
class SubmissionResult:
    total_questions: int
    score: Decimal


def normalize_name(value: Optional[str]) -> str:
    return " ".join((value or "").split()).casefold()


class SessionService:
    def __init__(
        self,
        db: Session,
        settings: Settings,
        registry: Optional[ActiveSessionRegistry] = None,
        clock: Clock = utcnow,
        rng: Optional[random.Random] = None,
    ):
        self.db = db
        self.settings = settings
        self.registry = registry or ActiveSessionRegistry()
        self.clock = clock
        self.rng = rng

    # ------------------------------------------------------------------ login

    def _ensure_exam_password(self, exam_password: Optional[str]) -> None:
        if not exam_password:
            raise AuthenticationError(PASSWORD_REQUIRED)
        if exam_password != self.settings.EXAM_PASSWORD.get_secret_value():
            raise AuthenticationError(PASSWORD_INCORRECT)

    def create_session(
        self,
        name: Optional[str],
        degree: Optional[str],
        course: Optional[str],
        student_id: Optional[str],
        exam_password: Optional[str],
    ) -> dict:
        self._ensure_exam_password(exam_password)
        student_id = (student_id or "").strip()
        if not student_id:
            raise ValidationError(STUDENT_ID_REQUIRED)

        duration = self.settings.SESSION_DURATION_MINUTES
        try:
            with self.db.begin():
                student = self.db.scalar(
                    select(Student)
                    .where(Student.student_identifier == student_id, Student.is_active.is_(True))
                    .with_for_update()
                    .execution_options(populate_existing=True)
                )
                if student is None:
                    raise AuthenticationError(STUDENT_UNKNOWN)

                provided_name = normalize_name(name)
                if not provided_name or provided_name != normalize_name(student.full_name):
                    raise AuthenticationError(NAME_MISMATCH)

                if student.has_attempted:
                    raise AuthenticationError(ALREADY_USED)

                questions = self.db.scalars(select(Question).where(Question.is_active.is_(True))).all()
                assignment = build_assignment(questions, self.rng)
                question_count = sum(1 for item in assignment if not item.is_group_header)
                if not question_count:
                    raise InfrastructureError(QUESTION_BANK_EMPTY)

                now = self.clock()
                session = ExamSession(
                    session_id=str(uuid4()),
                    student_identifier=student.student_identifier,
                    student_name=(name or "").strip() or student.full_name,
                    degree=(degree or "").strip() or student.degree or "",
                    course=(course or "").strip() or student.course or "",
                    status=SessionStatus.ACTIVE,
                    started_at=now,
                    expires_at=now + timedelta(minutes=duration),
                )
                session.questions = [
                    SessionQuestion(question_id=item.question_id, position=item.position, sequence=item.sequence)
                    for item in assignment
                ]
                self.db.add(session)
                student.has_attempted = True
                record_event(self.db, session.session_id, student.student_identifier, AuditStatus.CONNECTED, now)
        except IntegrityError as exc:
            logger.warning("Concurrent session creation rejected for %s", student_id)
            raise AuthenticationError(ALREADY_USED) from exc

        self.registry.connected(session.session_id, session.student_identifier)
        logger.info("Session %s created for %s (%d questions)", session.session_id, student_id, question_count)
        return {
            "session_id": session.session_id,
            "student_name": session.student_name,
            "student_id": session.student_identifier,
            "degree": session.degree,
            "course": session.course,
            "expires_at": session.expires_at,
            "duration_minutes": duration,
            "question_count": question_count,
        }

    # -------------------------------------------------------------- questions

    def _is_expired(self, session: ExamSession) -> bool:
        expires_at = as_utc(session.expires_at)
        return expires_at is not None and expires_at <= self.clock()

    def get_questions(self, session_id: str) -> List[dict]:
        first_fetch = False
        with self.db.begin():
            session = self.db.get(ExamSession, session_id, populate_existing=True)
            if session is None:
                raise NotFoundError(SESSION_NOT_FOUND)
            if session.status != SessionStatus.ACTIVE:
                raise ValidationError(SESSION_NOT_ACTIVE)

            expired = self._is_expired(session)
            if not expired:
                rows = self.db.execute(
                    select(SessionQuestion.sequence, Question)
                    .join(Question, Question.id == SessionQuestion.question_id)
                    .where(SessionQuestion.session_id == session_id)
                    .order_by(SessionQuestion.position)
                ).all()
                questions = [_public_question(question, sequence) for sequence, question in rows]
                if not has_event(self.db, session_id, AuditStatus.STARTED_TEST):
                    first_fetch = True
                    record_event(
                        self.db, session_id, session.student_identifier, AuditStatus.STARTED_TEST, self.clock()
                    )

        if expired:
            self.report_violation(session_id, SESSION_EXPIRED_REASON)
            raise ValidationError(SESSION_EXPIRED)
        if first_fetch:
            self.registry.started(session_id)
        return questions

    # ------------------------------------------------------------- submission

    def _lock_session(self, session_id: str) -> ExamSession:
        session = self.db.scalar(
            select(ExamSession)
            .where(ExamSession.session_id == session_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if session is None:
            raise NotFoundError(SESSION_NOT_FOUND)
        return session

    def _terminate(self, session: ExamSession, reason: str) -> None:
        now = self.clock()
        session.status = SessionStatus.TERMINATED
        session.violation_reason = reason
        session.ended_at = now
        record_event(
            self.db, session.session_id, session.student_identifier, AuditStatus.KICKED_OUT, now,
            score=session.score, violation_reason=reason,
        )

    def submit(self, session_id: str, answers: Optional[Iterable[SubmittedAnswer]]) -> SubmissionResult:
        answers = list(answers or [])
        if not answers:
            raise ValidationError(NO_ANSWERS)

        with self.db.begin():
            session = self._lock_session(session_id)
            if session.status != SessionStatus.ACTIVE:
                raise ValidationError(SESSION_CLOSED)

            expired = self._is_expired(session)
            if expired:
                self.db.add(Violation(session_id=session_id, reason=SESSION_EXPIRED_REASON, recorded_at=self.clock()))
                self._terminate(session, SESSION_EXPIRED_REASON)
            else:
                result = self._score_and_complete(session, answers)

        self.registry.closed(session_id)
        if expired:
            logger.info("Session %s submitted after expiry; terminated", session_id)
            raise ValidationError(TIME_ELAPSED)
        return result

    def _score_and_complete(self, session: ExamSession, answers: List[SubmittedAnswer]) -> SubmissionResult:
        rows = self.db.execute(
            select(Question.id, Question.correct_option, Question.allows_multiple)
            .join(SessionQuestion, SessionQuestion.question_id == Question.id)
            .where(SessionQuestion.session_id == session.session_id, Question.is_group_header.is_(False))
        ).all()
        answerable = {row.id: row for row in rows}

        # Foreign or stale ids are dropped; the last answer for a question wins.
        latest: Dict[int, Selection] = {}
        for answer in answers:
            if answer.question_id in answerable:
                latest[answer.question_id] = answer.selected_option
        if not latest:
            raise ValidationError(NO_VALID_ANSWERS)

        scored = [
            score_answer(qid, selection, answerable[qid].correct_option, answerable[qid].allows_multiple)
            for qid, selection in latest.items()
        ]
        score = total_score(scored)

        self.db.execute(delete(Response).where(Response.session_id == session.session_id))
        self.db.add_all([
            Response(
                session_id=session.session_id,
                question_id=item.question_id,
                selected_option=item.selected_option,
                is_correct=item.is_correct,
                partial_score=to_decimal(item.partial_score, "0.0001") if item.partial_score is not None else None,
            )
            for item in scored
        ])

        now = self.clock()
        session.status = SessionStatus.COMPLETED
        session.score = score
        session.ended_at = now
        record_event(self.db, session.session_id, session.student_identifier, AuditStatus.SUBMITTED, now, score=score)
        logger.info("Session %s completed: %d answers scored", session.session_id, len(scored))
        return SubmissionResult(total_questions=len(answerable), score=score)

    # ------------------------------------------------------------- violations

    def report_violation(self, session_id: str, reason: Optional[str]) -> dict:
        reason = (reason or "").strip()[:MAX_REASON_LENGTH]
        if not reason:
            raise ValidationError(REASON_REQUIRED)

        with self.db.begin():
            session = self._lock_session(session_id)
            self.db.add(Violation(session_id=session_id, reason=reason, recorded_at=self.clock()))
            terminated_now = session.status == SessionStatus.ACTIVE
            if terminated_now:
                self._terminate(session, reason)
            status = session.status

        if terminated_now:
            self.registry.closed(session_id)
            logger.warning("Session %s terminated: %s", session_id, reason)
        else:
            logger.info("Violation recorded for closed session %s: %s", session_id, reason)
        return {"status": status.value}

    # ----------------------------------------------------------------- status

    def get_status(self, session_id: str) -> dict:
        with self.db.begin():
            session = self.db.get(ExamSession, session_id, populate_existing=True)
        if session is None:
            raise NotFoundError(SESSION_NOT_FOUND)
        return {
            "session_id": session.session_id,
            "student_name": session.student_name,
            "student_id": session.student_identifier,
            "status": session.status.value,
            "score": float(session.score) if session.score is not None else None,
            "started_at": as_utc(session.started_at),
            "expires_at": as_utc(session.expires_at),
            "ended_at": as_utc(session.ended_at),
            "violation_reason": session.violation_reason,
        }


def _public_question(question: Question, sequence: Optional[int]) -> dict:
    return {
        "id": question.id,
        "prompt": question.prompt,
        "option_a": question.option_a,
        "option_b": question.option_b,
        "option_c": question.option_c,
        "option_d": question.option_d,
        "image_url": question.image_url,
        "question_group_id": question.question_group_id,
        "is_group_header": question.is_group_header,
        "group_order": question.group_order,
        "allows_multiple": question.allows_multiple,
        "sequence": sequence,
    }
