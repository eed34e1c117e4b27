from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from secure_exam.api.deps import get_registry
from secure_exam.core.registry import ActiveSessionRegistry

router = APIRouter()


class ActiveSessionRow(BaseModel):
    session_id: str
    student_id: str
    status: str


class ActiveSessions(BaseModel):
    count: int
    sessions: List[ActiveSessionRow]


@router.get("/active-sessions", response_model=ActiveSessions)
def active_sessions(registry: ActiveSessionRegistry = Depends(get_registry)):
    rows = [ActiveSessionRow(session_id=s.session_id, student_id=s.student_id, status=s.status)
            for s in registry.snapshot()]
    return ActiveSessions(count=len(rows), sessions=rows)
