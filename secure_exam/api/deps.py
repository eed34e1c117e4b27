from fastapi import Depends, Request
from sqlalchemy.orm import Session

from secure_exam.core.clock import Clock
from secure_exam.core.config import Settings
from secure_exam.core.database import get_db
from secure_exam.core.registry import ActiveSessionRegistry
from secure_exam.services.sessions import SessionService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> ActiveSessionRegistry:
    return request.app.state.registry


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_session_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    registry: ActiveSessionRegistry = Depends(get_registry),
    clock: Clock = Depends(get_clock),
) -> SessionService:
    return SessionService(db, settings, registry, clock=clock)
