import logging
from typing import Iterator

from fastapi import Request
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from secure_exam.core.config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def create_db_engine(settings: Settings) -> Engine:
    """Build the engine so every transaction can take row locks with a bounded wait."""
    if settings.is_sqlite():
        engine = create_engine(
            settings.DATABASE_URL,
            echo=settings.DATABASE_ECHO,
            connect_args={
                "check_same_thread": False,
                "timeout": settings.DATABASE_LOCK_TIMEOUT_MS / 1000,
            },
        )
        _serialize_sqlite_writers(engine)
        return engine
    return create_engine(
        settings.DATABASE_URL,
        echo=settings.DATABASE_ECHO,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_timeout=settings.DATABASE_POOL_TIMEOUT,
        pool_pre_ping=True,
        connect_args={"options": f"-c lock_timeout={settings.DATABASE_LOCK_TIMEOUT_MS}"},
    )


def _serialize_sqlite_writers(engine: Engine) -> None:
    # SQLite has no SELECT ... FOR UPDATE; taking the database write lock at
    # BEGIN gives the same one-writer-at-a-time guarantee.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create tables if they don't exist."""
    Base.metadata.create_all(engine)
    logger.info("Database schema ready")


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
