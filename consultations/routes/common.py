from contextlib import contextmanager
from functools import lru_cache

from fastapi import Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from consultations.auth.dependencies import get_db
from consultations.database import SessionLocal, ensure_appointment_schema, ensure_availability_schema
from consultations.notifications import Notifier, build_notifier
from consultations.scheduling.engine import SchedulingEngine
from consultations.scheduling.errors import SchedulingError, ValidationFailed
from consultations.scheduling.reminders import ReminderSweeper
from consultations.scheduling.slots import parse_clock_time

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@contextmanager
def translate_errors(db: Session | None = None):
    """Turn scheduling and database errors into HTTP errors for the caller."""
    try:
        yield
    except SchedulingError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    except SQLAlchemyError as exc:
        if db is not None:
            db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@lru_cache
def get_notifier() -> Notifier:
    return build_notifier()


def get_engine(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> SchedulingEngine:
    return SchedulingEngine(db, notifier)


def get_reminder_sweeper(notifier: Notifier = Depends(get_notifier)) -> ReminderSweeper:
    return ReminderSweeper(SessionLocal, notifier)


def parse_time_field(value):
    """Pydantic `before` hook accepting `HH:MM` strings for time fields."""
    if isinstance(value, str):
        try:
            return parse_clock_time(value)
        except ValidationFailed as exc:
            raise ValueError(exc.message) from exc
    return value
