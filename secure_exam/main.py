"""
Main FastAPI application entry point.
"""
from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from secure_exam.api.admin import router as admin_router
from secure_exam.api.sessions import router as sessions_router
from secure_exam.core.clock import Clock, utcnow
from secure_exam.core.config import Settings, get_settings
from secure_exam.core.database import create_db_engine, create_session_factory, init_db
from secure_exam.core.errors import STORE_UNAVAILABLE, ExamError, InfrastructureError
from secure_exam.core.logging import configure_logging
from secure_exam.core.registry import ActiveSessionRegistry
from secure_exam.middleware.logging import LoggingMiddleware
from secure_exam.models.orm import Student

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    """
    logger.info("Starting %s...", app.state.settings.APP_NAME)
    init_db(app.state.engine)
    logger.info("=== Audit Logging Active ===")

    yield

    logger.info("Shutting down; %d sessions still active", app.state.registry.count())
    app.state.registry.clear()
    app.state.engine.dispose()
    logger.info("Shutdown complete")


def _envelope(status_code: int, message: str, kind: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "kind": kind},
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ExamError)
    async def exam_error_handler(request: Request, exc: ExamError):
        if isinstance(exc, InfrastructureError):
            logger.error("Infrastructure error on %s: %s", request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _envelope(status.HTTP_400_BAD_REQUEST, "Invalid request body.", "validation_error")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _envelope(exc.status_code, str(exc.detail), "http_error")

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error("Database error on %s: %s", request.url.path, exc, exc_info=True)
        return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, STORE_UNAVAILABLE, InfrastructureError.kind)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception: %s", exc, exc_info=True)
        return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "Unexpected server error", "internal_error")


def create_app(settings: Optional[Settings] = None, clock: Clock = utcnow) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        description=settings.APP_DESCRIPTION,
        version=settings.APP_VERSION,
        docs_url=settings.DOCS_URL if not settings.is_production() else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = create_db_engine(settings)
    app.state.session_factory = create_session_factory(app.state.engine)
    app.state.registry = ActiveSessionRegistry()
    app.state.clock = clock

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS or ["*"],
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS and bool(settings.CORS_ORIGINS),
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_middleware(LoggingMiddleware)
    register_exception_handlers(app)

    @app.get("/health", tags=["Health"])
    def health_check():
        return {"status": "ok"}

    @app.get("/health/ready", tags=["Health"])
    def readiness_check():
        """Database round-trip check."""
        try:
            with app.state.session_factory() as db:
                student_count = db.scalar(select(func.count()).select_from(Student))
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "not_ready", "db": "unavailable"},
            )
        return {"status": "ok", "db": "connected", "student_count": student_count}

    app.include_router(sessions_router, prefix=f"{settings.API_PREFIX}/session", tags=["session"])
    app.include_router(admin_router, prefix=f"{settings.API_PREFIX}/admin", tags=["admin"])
    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "secure_exam.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
        workers=settings.WORKERS if not settings.RELOAD else 1,
        log_level=settings.LOG_LEVEL.lower(),
        access_log=True,
    )
