"""
Candidate-side exam flow.

The controller walks one candidate through LOGIN -> INSTRUCTIONS ->
IN_PROGRESS -> SUBMITTED, or into LOCKED on the first integrity signal.
Everything a phase needs (reading countdown, exam countdown, integrity
listeners, unload guard) is acquired on a per-phase ``ExitStack`` and
released when the phase is left.

Each phase change bumps ``generation``; an awaited result that comes back
after the phase moved on is dropped.
"""
import asyncio
import logging
from contextlib import ExitStack
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union

from pydantic import TypeAdapter

from secure_exam.client.api import ClientError, ExamApiClient
from secure_exam.client.config import ClientSettings
from secure_exam.client.events import BrowserDocument, BrowserEvent, BrowserWindow, listening
from secure_exam.client.monitor import TIME_ELAPSED, IntegrityMonitor
from secure_exam.client.timers import ExamCountdown, ReadingCountdown, format_clock
from secure_exam.core.clock import Clock, utcnow

logger = logging.getLogger(__name__)

_datetime = TypeAdapter(datetime)

Answer = Union[str, List[str]]


class Phase(str, Enum):
    LOGIN = "LOGIN"
    INSTRUCTIONS = "INSTRUCTIONS"
    IN_PROGRESS = "IN_PROGRESS"
    LOCKED = "LOCKED"
    SUBMITTED = "SUBMITTED"


@dataclass
class SessionInfo:
    session_id: str
    student_name: str
    student_id: str
    degree: str
    course: str
    expires_at: datetime
    duration_minutes: int
    question_count: int

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "SessionInfo":
        return cls(
            session_id=data["sessionId"],
            student_name=data["studentName"],
            student_id=data["studentId"],
            degree=data.get("degree") or "",
            course=data.get("course") or "",
            expires_at=_datetime.validate_python(data["expiresAt"]),
            duration_minutes=data["durationMinutes"],
            question_count=data.get("questionCount", 0),
        )


class ExamController:
    def __init__(
        self,
        api: ExamApiClient,
        document: BrowserDocument,
        window: BrowserWindow,
        settings: Optional[ClientSettings] = None,
        clock: Clock = utcnow,
    ):
        self.api = api
        self.document = document
        self.window = window
        self.settings = settings or api.settings
        self.clock = clock
        self.monitor = IntegrityMonitor(document, window, self._on_violation)

        self._scope = ExitStack()
        self._background: Set[asyncio.Task] = set()
        self.generation = 0
        self._clear_state()

    def _clear_state(self) -> None:
        self.phase = Phase.LOGIN
        self.session: Optional[SessionInfo] = None
        self.questions: List[Dict[str, Any]] = []
        self.answers: Dict[int, Answer] = {}
        self.result: Optional[Dict[str, Any]] = None
        self.violation_reason = ""
        self.feedback = ""
        self.loading = False
        self.time_left: Optional[float] = None
        self.reading_left = self.settings.READING_TIME_SECONDS

    # -- phase handling -------------------------------------------------

    def _enter(self, phase: Phase) -> None:
        self._scope.close()
        self._scope = ExitStack()
        self.generation += 1
        self.phase = phase
        logger.info("Exam phase -> %s", phase.value)

        if phase is Phase.INSTRUCTIONS:
            self.reading_left = self.settings.READING_TIME_SECONDS
            reading = ReadingCountdown(
                self.settings.READING_TIME_SECONDS,
                on_tick=self._on_reading_tick,
                on_done=self._on_reading_done,
                interval=self.settings.TICK_SECONDS,
            )
            self._scope.callback(reading.cancel)
            reading.start()
        elif phase is Phase.IN_PROGRESS:
            self._scope.enter_context(self.monitor.armed())
            self._scope.enter_context(listening([(self.window, "beforeunload", self._guard_unload)]))
            countdown = ExamCountdown(
                self.session.expires_at,
                on_tick=self._on_exam_tick,
                on_expire=self._on_time_up,
                clock=self.clock,
                interval=self.settings.TICK_SECONDS,
                submit_lead=self.settings.AUTO_SUBMIT_LEAD_SECONDS,
            )
            self._scope.callback(countdown.cancel)
            countdown.start()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for violation reports and auto-submits still in flight."""
        while self._background:
            await asyncio.gather(*list(self._background))

    def reset(self) -> None:
        self._scope.close()
        self._scope = ExitStack()
        self.generation += 1
        self._clear_state()

    # -- timers -----------------------------------------------------------

    def _on_reading_tick(self, left: int) -> None:
        self.reading_left = left

    def _on_reading_done(self) -> None:
        self.reading_left = 0

    def _on_exam_tick(self, remaining: float) -> None:
        self.time_left = remaining

    def _on_time_up(self) -> None:
        self._spawn(self._handle_time_up())

    @property
    def can_begin(self) -> bool:
        return self.phase is Phase.INSTRUCTIONS and self.reading_left <= 0

    @property
    def clock_display(self) -> str:
        return format_clock(self.time_left)

    @property
    def reading_display(self) -> str:
        return format_clock(self.reading_left)

    @property
    def answered_count(self) -> int:
        return len(self.answers)

    # -- candidate actions ------------------------------------------------

    async def login(
        self,
        name: str,
        student_id: str,
        exam_password: str,
        degree: str = "",
        course: str = "",
    ) -> bool:
        if self.phase is not Phase.LOGIN:
            return False
        token = self.generation
        self.feedback = ""
        self.loading = True
        try:
            data = await self.api.login(name, student_id, exam_password, degree=degree, course=course)
            session = SessionInfo.from_payload(data)
            questions = await self.api.fetch_questions(session.session_id)
        except ClientError as exc:
            if token == self.generation:
                self.feedback = exc.message
            return False
        finally:
            self.loading = False

        if token != self.generation:
            return False
        self.session = session
        self.questions = questions
        self._enter(Phase.INSTRUCTIONS)
        return True

    def begin_exam(self) -> bool:
        if not self.can_begin:
            return False
        if not self.document.request_fullscreen():
            logger.warning("Fullscreen rejected")
        self._enter(Phase.IN_PROGRESS)
        return True

    def _question(self, question_id: int) -> Optional[Dict[str, Any]]:
        for question in self.questions:
            if question.get("id") == question_id:
                return question
        return None

    def answer(self, question_id: int, option: str) -> None:
        if self.phase is not Phase.IN_PROGRESS:
            return
        question = self._question(question_id)
        if question is None or question.get("isGroupHeader"):
            return
        if not question.get("allowsMultiple"):
            self.answers[question_id] = option
            return

        current = self.answers.get(question_id)
        selected = list(current) if isinstance(current, list) else []
        if option in selected:
            selected.remove(option)
        else:
            selected.append(option)
        if selected:
            self.answers[question_id] = sorted(selected)
        else:
            self.answers.pop(question_id, None)

    async def submit(self) -> bool:
        if self.phase is not Phase.IN_PROGRESS:
            return False
        token = self.generation
        self.feedback = ""
        self.loading = True
        try:
            result = await self.api.submit(self.session.session_id, self.answers)
        except ClientError as exc:
            if token == self.generation:
                self.feedback = exc.message
            return False
        finally:
            self.loading = False
        return self._finish(token, result)

    def _finish(self, token: int, result: Dict[str, Any]) -> bool:
        if token != self.generation:
            logger.info("Ignoring submission result for a phase that already ended")
            return False
        self.result = result
        self._enter(Phase.SUBMITTED)
        self.document.exit_fullscreen()
        return True

    async def _handle_time_up(self) -> None:
        if self.phase is not Phase.IN_PROGRESS:
            return
        token = self.generation
        try:
            result = await self.api.submit(self.session.session_id, self.answers)
        except ClientError as exc:
            logger.warning("Auto-submit failed: %s", exc.message)
            if token == self.generation:
                self._on_violation(TIME_ELAPSED)
            return
        self._finish(token, result)

    # -- integrity --------------------------------------------------------

    def _guard_unload(self, event: BrowserEvent) -> None:
        event.prevent_default()
        event.return_value = ""

    def _on_violation(self, reason: str) -> None:
        if self.session is None or self.phase is not Phase.IN_PROGRESS:
            return
        self.violation_reason = reason
        self._enter(Phase.LOCKED)
        self.document.exit_fullscreen()
        self._spawn(self._report_violation(self.session.session_id, reason))

    async def _report_violation(self, session_id: str, reason: str) -> None:
        try:
            await self.api.report_violation(session_id, reason)
        except ClientError as exc:
            logger.error("Violation logging failed: %s", exc.message)
