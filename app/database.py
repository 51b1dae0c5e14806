import logging
import sqlite3
import threading
import uuid
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config.loader import get_database_url, get_pool_settings, get_sqlite_settings

logger = logging.getLogger("database")

DATABASE_URL = get_database_url()
IS_SQLITE = DATABASE_URL.startswith("sqlite")
SQLITE_SETTINGS = get_sqlite_settings()


def _sqlite_file(database_url: str):
    """Path of a file-backed SQLite URL, or None for memory/server databases."""
    if not database_url.startswith("sqlite"):
        return None
    database = make_url(database_url).database
    if not database or database == ":memory:":
        return None
    path = Path(database)
    return path if path.is_absolute() else Path.cwd() / path


def _build_engine(database_url: str) -> Engine:
    if not database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            pool_pre_ping=True,
            pool_use_lifo=True,
            **get_pool_settings(),
        )

    connect_args = {
        "check_same_thread": False,
        "timeout": max(1, SQLITE_SETTINGS["busy_timeout_ms"] / 1000),
    }
    db_file = _sqlite_file(database_url)
    if db_file is None:
        # Every session must share one connection or the in-memory schema vanishes.
        return create_engine(database_url, connect_args=connect_args, poolclass=StaticPool)
    db_file.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, connect_args=connect_args)


engine = _build_engine(DATABASE_URL)


@event.listens_for(Engine, "connect")
def _apply_sqlite_pragmas(dbapi_connection, _connection_record) -> None:
    # Registered on Engine so per-test engines get foreign keys too.
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute(f"PRAGMA journal_mode={SQLITE_SETTINGS['journal_mode']}")
        cursor.execute(f"PRAGMA synchronous={SQLITE_SETTINGS['synchronous']}")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_SETTINGS['busy_timeout_ms']}")
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


_WRITE_LOCK = threading.RLock()


class QueuedSession(Session):
    """SQLite session that lets one writer at a time flush and commit.

    Lock waits beyond the busy timeout surface as OperationalError; the
    caller rolls back.
    """

    def flush(self, objects=None) -> None:
        with _WRITE_LOCK:
            return super().flush(objects)

    def commit(self) -> None:
        with _WRITE_LOCK:
            return super().commit()


SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    class_=QueuedSession if IS_SQLITE else Session,
)

Base = declarative_base()


def get_db():
    """Request-scoped session; the service layer decides when to commit."""
    session_id = uuid.uuid4().hex[:8]
    logger.debug("[db:%s] open", session_id)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        logger.debug("[db:%s] closed", session_id)
