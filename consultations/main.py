import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from consultations.core import config
from consultations.database import Base, SessionLocal, engine, ensure_appointment_schema, ensure_availability_schema
from consultations.models import appointment, availability, user  # noqa: F401
from consultations.routes import appointment_routes, auth_routes, availability_routes
from consultations.routes.common import get_notifier
from consultations.scheduling.clock import SystemClock
from consultations.scheduling.reminders import ReminderSweeper, seconds_until
from consultations.tasks import RepeatingTask

logger = logging.getLogger(__name__)


def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


def build_background_tasks() -> list[RepeatingTask]:
    clock = SystemClock()
    tasks = []

    if config.REMINDERS_ENABLED:
        sweeper = ReminderSweeper(SessionLocal, get_notifier(), clock)
        tasks.append(
            RepeatingTask(
                'appointment-reminders',
                sweeper.run,
                lambda: seconds_until(clock.now(), config.REMINDER_HOUR, config.REMINDER_MINUTE),
            )
        )

    codes = auth_routes.get_verification_store()
    tasks.append(
        RepeatingTask(
            'verification-code-expiry',
            codes.sweep_expired,
            lambda: config.VERIFICATION_SWEEP_SECONDS,
        )
    )
    return tasks


@asynccontextmanager
async def lifespan(app: FastAPI):
    config.validate_runtime_config()
    initialize_database()

    app.state.background_tasks = build_background_tasks()
    for task in app.state.background_tasks:
        task.start()

    yield

    for task in app.state.background_tasks:
        await task.stop()


app = FastAPI(title='Consultations API', lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.get('/')
def root():
    return {'status': 'Consultations API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(availability_routes.router, prefix='/availability')
