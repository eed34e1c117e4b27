import json
import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger("secure_exam.requests")


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with its origin, status and duration."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        origin = request.headers.get("origin", "none")

        if request.method == "POST" and request.url.path.endswith("/login"):
            # Field names only; the body carries the exam password.
            body = await request.body()
            try:
                keys = sorted(json.loads(body or b"{}").keys())
            except (ValueError, AttributeError):
                keys = []
            logger.info("Login request body keys: %s", keys)

        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s - Origin: %s - %s (%.1f ms)",
            request.method, request.url.path, origin, response.status_code, elapsed_ms,
        )
        return response
