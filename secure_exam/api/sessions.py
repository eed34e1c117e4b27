from datetime import datetime
from typing import Generic, List, Optional, TypeVar, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from secure_exam.api.deps import get_session_service
from secure_exam.services.sessions import SessionService, SubmittedAnswer

router = APIRouter()

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: T


class LoginRequest(CamelModel):
    name: Optional[str] = None
    degree: Optional[str] = None
    course: Optional[str] = None
    student_id: Optional[str] = None
    exam_password: Optional[str] = None


class LoginData(CamelModel):
    session_id: str
    student_name: str
    student_id: str
    degree: str
    course: str
    expires_at: datetime
    duration_minutes: int
    question_count: int


class QuestionOut(CamelModel):
    id: int
    prompt: str
    option_a: Optional[str] = None
    option_b: Optional[str] = None
    option_c: Optional[str] = None
    option_d: Optional[str] = None
    image_url: Optional[str] = None
    question_group_id: Optional[str] = None
    is_group_header: bool
    group_order: Optional[int] = None
    allows_multiple: bool
    sequence: Optional[int] = None


class AnswerIn(CamelModel):
    question_id: Union[int, str, None] = None
    selected_option: Union[str, List[str], None] = None


class SubmitRequest(CamelModel):
    answers: Optional[List[AnswerIn]] = None


class SubmitData(CamelModel):
    total_questions: int


class ViolationRequest(CamelModel):
    reason: Optional[str] = None


class ViolationData(CamelModel):
    status: str


class StatusData(CamelModel):
    session_id: str
    student_name: str
    student_id: str
    status: str
    score: Optional[float] = None
    started_at: datetime
    expires_at: datetime
    ended_at: Optional[datetime] = None
    violation_reason: Optional[str] = None


def _as_question_id(value: Union[int, str, None]) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@router.post("/login", response_model=Envelope[LoginData])
def login(payload: LoginRequest, service: SessionService = Depends(get_session_service)):
    session = service.create_session(
        name=payload.name,
        degree=payload.degree,
        course=payload.course,
        student_id=payload.student_id,
        exam_password=payload.exam_password,
    )
    return Envelope(data=LoginData(**session))


@router.get("/{session_id}/questions", response_model=Envelope[List[QuestionOut]])
def fetch_questions(session_id: str, service: SessionService = Depends(get_session_service)):
    questions = service.get_questions(session_id)
    return Envelope(data=[QuestionOut(**q) for q in questions])


@router.post("/{session_id}/submit", response_model=Envelope[SubmitData])
def submit(session_id: str, payload: SubmitRequest, service: SessionService = Depends(get_session_service)):
    answers = [
        SubmittedAnswer(question_id=_as_question_id(a.question_id), selected_option=a.selected_option)
        for a in payload.answers or []
    ]
    result = service.submit(session_id, answers)
    # The score stays server-side.
    return Envelope(data=SubmitData(total_questions=result.total_questions))


@router.post("/{session_id}/violation", response_model=Envelope[ViolationData])
def violation(session_id: str, payload: ViolationRequest, service: SessionService = Depends(get_session_service)):
    result = service.report_violation(session_id, payload.reason)
    return Envelope(data=ViolationData(**result))


@router.get("/{session_id}/status", response_model=Envelope[StatusData])
def status(session_id: str, service: SessionService = Depends(get_session_service)):
    return Envelope(data=StatusData(**service.get_status(session_id)))
