"""
Domain error taxonomy shared by the service layer and the HTTP boundary.
"""
from fastapi import status


class ExamError(Exception):
    """Base class for every error the exam core raises on purpose."""

    kind = "exam_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"success": False, "message": self.message, "kind": self.kind}


class AuthenticationError(ExamError):
    """Bad exam password, unknown identity, name mismatch or identity already used."""

    kind = "authentication_error"
    status_code = status.HTTP_401_UNAUTHORIZED


class ValidationError(ExamError):
    """Missing field, empty answer set, session not active or expired."""

    kind = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(ExamError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class InfrastructureError(ExamError):
    """Store unavailable, lock timeout or transaction conflict. Retryable."""

    kind = "infrastructure_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


SESSION_NOT_FOUND = "Session Not Found. The exam session could not be found. Please log in again."
STORE_UNAVAILABLE = "Service Unavailable. The exam service could not complete the request. Please try again."
