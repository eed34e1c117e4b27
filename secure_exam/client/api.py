"""
HTTP client for the exam session API.

Domain failures come back as ``ApiError`` carrying the server's message and
kind. Anything below that (no response, connection refused, a body that is
not the JSON envelope) becomes ``ConnectivityError`` so callers can tell the
two apart. Only idempotent reads are retried.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from secure_exam.client.config import ClientSettings, get_client_settings

logger = logging.getLogger(__name__)

CONNECTION_ERROR = "Connection Error. Cannot connect to the server. Please ensure the backend is running."
INVALID_RESPONSE = "Server Error. The server returned an invalid response. Please try again."


class ClientError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConnectivityError(ClientError):
    pass


class ApiError(ClientError):
    def __init__(self, message: str, status_code: int, kind: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.kind = kind


class ExamApiClient:
    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = settings or get_client_settings()
        self.settings = settings
        self._client = httpx.AsyncClient(
            base_url=settings.EXAM_API_BASE_URL,
            timeout=settings.EXAM_API_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ExamApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, json: Optional[dict] = None, fallback: str = "") -> Any:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise ConnectivityError(CONNECTION_ERROR) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise ConnectivityError(INVALID_RESPONSE) from exc
        if not isinstance(payload, dict):
            raise ConnectivityError(INVALID_RESPONSE)

        if response.is_error or not payload.get("success"):
            raise ApiError(payload.get("message") or fallback, response.status_code, payload.get("kind"))
        return payload.get("data")

    async def _read(self, path: str, fallback: str) -> Any:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(ConnectivityError),
            stop=stop_after_attempt(self.settings.EXAM_API_READ_RETRIES),
            wait=wait_exponential(multiplier=0.2, max=2),
            reraise=True,
        ):
            with attempt:
                return await self._request("GET", path, fallback=fallback)

    async def login(
        self,
        name: str,
        student_id: str,
        exam_password: str,
        degree: str = "",
        course: str = "",
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/api/session/login",
            json={
                "name": name,
                "degree": degree,
                "course": course,
                "studentId": student_id,
                "examPassword": exam_password,
            },
            fallback="Session Error. Unable to start exam session. Please check your credentials and try again.",
        )

    async def fetch_questions(self, session_id: str) -> List[Dict[str, Any]]:
        return await self._read(
            f"/api/session/{session_id}/questions",
            "Question Loading Error. Unable to load exam questions. Please try again or contact support.",
        )

    async def submit(
        self,
        session_id: str,
        answers: Dict[int, Union[str, Sequence[str]]],
    ) -> Dict[str, Any]:
        body = {
            "answers": [
                {"questionId": qid, "selectedOption": option if isinstance(option, str) else list(option)}
                for qid, option in answers.items()
            ]
        }
        return await self._request(
            "POST",
            f"/api/session/{session_id}/submit",
            json=body,
            fallback="Submission Error. Unable to submit your exam. Please try again.",
        )

    async def report_violation(self, session_id: str, reason: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/api/session/{session_id}/violation",
            json={"reason": reason},
            fallback="Violation logging failed.",
        )

    async def status(self, session_id: str) -> Dict[str, Any]:
        return await self._read(f"/api/session/{session_id}/status", "Unable to read session status.")
