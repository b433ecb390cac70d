"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine from
`settings.DATABASE_URL` (a local SQLite file under `backend/` by default)
and provides small helpers used by the application, scripts and tests.
"""

import logging

from sqlalchemy import inspect
from sqlmodel import Session, SQLModel, create_engine

from .config import settings
from . import models  # noqa: F401  (registers tables on SQLModel.metadata)

logger = logging.getLogger("studyplanner.database")

_connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(settings.DATABASE_URL, echo=False, connect_args=_connect_args)

# Columns added after the first release; older database files lack them.
_COURSE_BACKFILL_COLUMNS = {
    "abbreviation": "VARCHAR",
    "status": "VARCHAR(8) NOT NULL DEFAULT 'ENROLLED'",
}


def create_db_and_tables():
    """Create database tables using SQLModel metadata.

    Intended for local development and small deployments; tables are
    created if missing and older `course` tables are back-filled with
    any columns they lack.
    """
    SQLModel.metadata.create_all(engine)
    _ensure_course_columns()


def _ensure_course_columns():
    """Add missing `course` columns for database files created by older builds."""
    existing = {col["name"] for col in inspect(engine).get_columns("course")}
    missing = [name for name in _COURSE_BACKFILL_COLUMNS if name not in existing]
    if not missing:
        return
    with engine.begin() as conn:
        for name in missing:
            logger.info("adding missing column course.%s", name)
            conn.exec_driver_sql(f"ALTER TABLE course ADD COLUMN {name} {_COURSE_BACKFILL_COLUMNS[name]}")


def reset_db():
    """Drop and recreate every table. Used by tests."""
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes.
    """
    with Session(engine) as session:
        yield session
