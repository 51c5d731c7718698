from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from consultations.core import config

engine = create_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_availability_schema_checked = False
_appointment_schema_checked = False

LIVE_SLOT_INDEX_SQL = (
    "CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_live_slot "
    "ON appointments(provider_id, date, start_time) "
    "WHERE status IN ('requested', 'confirmed')"
)


def ensure_availability_schema() -> None:
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        inspector = inspect(engine)

        if 'availability_slots' not in inspector.get_table_names():
            _availability_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('availability_slots')}
        migration_steps = [
            ('max_bookings', 'ALTER TABLE availability_slots ADD COLUMN max_bookings INTEGER DEFAULT 1'),
            ('created_at', 'ALTER TABLE availability_slots ADD COLUMN created_at TIMESTAMP'),
            ('updated_at', 'ALTER TABLE availability_slots ADD COLUMN updated_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_availability_provider_slot '
                    'ON availability_slots(provider_id, date, start_time)'
                )
            )

        _availability_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('notes', 'ALTER TABLE appointments ADD COLUMN notes VARCHAR'),
            ('outcome_notes', 'ALTER TABLE appointments ADD COLUMN outcome_notes VARCHAR'),
            ('reminder_sent', 'ALTER TABLE appointments ADD COLUMN reminder_sent BOOLEAN DEFAULT FALSE'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(text(LIVE_SLOT_INDEX_SQL))
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_appointments_reminder_due '
                    'ON appointments(date, status, reminder_sent)'
                )
            )

        _appointment_schema_checked = True
