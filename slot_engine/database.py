"""
SQLite engine and session lifecycle for the local reservation store.

One engine per process, created on first use from SLOT_ENGINE_DB_FILE.
Foreign keys are switched on for every connection so a student slot can
never point at an occurrence that does not exist.
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from slot_engine import db_models  # noqa: F401
from slot_engine.config import get_config

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def database_url(db_file: Optional[str] = None) -> str:
    return f"sqlite:///{db_file or get_config().db_file}"


def get_engine(db_file: Optional[str] = None) -> Engine:
    """
    Get the process-wide engine, creating it on first call.

    Worker threads of the availability scan share it, hence
    check_same_thread is off; each thread still uses its own Session.
    """
    global _engine
    if _engine is None:
        url = database_url(db_file)
        _engine = create_engine(url, echo=False, connect_args={"check_same_thread": False})
        event.listen(_engine, "connect", _enable_foreign_keys)
        logger.info(f"Reservation store opened: {url}")
    return _engine


def init_database() -> None:
    """Create the occurrence, subscription and student slot tables if missing"""
    SQLModel.metadata.create_all(get_engine())
    logger.debug("Reservation store tables ensured")


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """
    Session scoped to one unit of work.

    Commits when the block exits normally and rolls back when it raises;
    the repository error still propagates to the caller.

    Usage:
        with get_session() as session:
            BookingRepository(session).cancel(slot_id, student_id)
    """
    session = Session(get_engine())
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def close_database() -> None:
    """Dispose the engine; the next get_engine() call opens a fresh one"""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None
        logger.info("Reservation store closed")
