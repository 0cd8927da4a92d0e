"""
Database engine, session factory and storage error translation
"""

import functools
import logging

from sqlalchemy import create_engine
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker

from guestbook.core.config import settings
from guestbook.core.exceptions import StorageUnavailable

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str):
    """Create an engine; SQLite needs cross-thread access and a busy timeout"""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={
                "check_same_thread": False,
                "timeout": settings.SQLITE_BUSY_TIMEOUT,
            },
            pool_pre_ping=True,
        )
    return create_engine(database_url, pool_pre_ping=True)


engine = create_db_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """FastAPI dependency yielding one session per request"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def guard_storage(func):
    """Translate driver-level failures into the retryable StorageUnavailable kind.

    Business-rule errors pass through untouched; only connection loss, lock
    timeouts and similar operational faults are converted.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (OperationalError, InterfaceError) as exc:
            db = kwargs.get("db")
            if db is not None:
                db.rollback()
            logger.error(f"Storage failure in {func.__qualname__}: {exc}", exc_info=True)
            raise StorageUnavailable() from exc
    return wrapper
