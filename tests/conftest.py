import os
from datetime import datetime
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('REMINDERS_ENABLED', 'false')

from consultations.database import Base  # noqa: E402
from consultations.models import appointment, availability  # noqa: E402,F401
from consultations.models.user import ROLE_ADMIN, ROLE_PROVIDER, ROLE_REQUESTER, User  # noqa: E402
from consultations.scheduling.clock import FrozenClock  # noqa: E402
from consultations.scheduling.engine import SchedulingEngine  # noqa: E402
from consultations.scheduling.errors import DeliveryFailed  # noqa: E402
from consultations.scheduling.identity import Identity  # noqa: E402
from consultations.scheduling.slots import DefaultGrid  # noqa: E402

# Monday 2 March 2026, 08:00 local.
NOW = datetime(2026, 3, 2, 8, 0)


class RecordingNotifier:
    def __init__(self):
        self.sent: list[tuple[str, str, str]] = []
        self.failing: set[str] = set()

    def notify(self, recipient: str, subject: str, body: str) -> None:
        if recipient in self.failing:
            raise DeliveryFailed(f'Mailbox {recipient} unavailable')
        self.sent.append((recipient, subject, body))

    def recipients(self) -> list[str]:
        return [recipient for recipient, _, _ in self.sent]


def add_user(db, email: str, role: str, name: str = '', is_active: bool = True) -> Identity:
    user = User(email=email, name=name, hashed_password='', role=role, is_active=is_active)
    db.add(user)
    db.commit()
    db.refresh(user)
    return Identity.from_user(user)


@pytest.fixture
def session_factory():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def people(db) -> SimpleNamespace:
    return SimpleNamespace(
        requester=add_user(db, 'ana@example.com', ROLE_REQUESTER, name='Ana'),
        other_requester=add_user(db, 'ben@example.com', ROLE_REQUESTER, name='Ben'),
        provider=add_user(db, 'dr.cruz@example.com', ROLE_PROVIDER, name='Dr. Cruz'),
        other_provider=add_user(db, 'dr.diaz@example.com', ROLE_PROVIDER, name='Dr. Diaz'),
        admin=add_user(db, 'admin@example.com', ROLE_ADMIN, name='Admin'),
    )


@pytest.fixture
def scheduling(db, notifier, clock) -> SchedulingEngine:
    return SchedulingEngine(db, notifier, clock=clock, default_grid=DefaultGrid(), lead_minutes=0)
