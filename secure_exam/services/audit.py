import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from secure_exam.models.orm import AuditLog, AuditStatus

logger = logging.getLogger("secure_exam.audit")


def record_event(
    db: Session,
    session_id: str,
    student_id: str,
    status: AuditStatus,
    at: datetime,
    score: Optional[Decimal] = None,
    violation_reason: Optional[str] = None,
) -> None:
    """Append one lifecycle transition to the audit trail in the caller's transaction."""
    db.add(AuditLog(
        session_id=session_id,
        student_identifier=student_id,
        status=status,
        score=score,
        violation_reason=violation_reason,
        logged_at=at,
    ))
    logger.info("%s %s %s %s %s", session_id, student_id, status.value, violation_reason or "", at.isoformat())


def has_event(db: Session, session_id: str, status: AuditStatus) -> bool:
    return db.scalar(
        select(exists().where(AuditLog.session_id == session_id, AuditLog.status == status))
    )
