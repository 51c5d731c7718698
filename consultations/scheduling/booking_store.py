"""Persistence for appointments.

Two live appointments never share a start time: the `uq_appointments_live_slot`
partial unique index enforces it and `insert` relies on it rather than on a
prior lookup. Overlap between different start times is checked by the engine
against `occupied_slots`.
"""

from datetime import date, datetime, time, timedelta

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from consultations.models.appointment import LIVE_STATUSES, STATUS_CONFIRMED, Appointment
from consultations.scheduling.errors import SlotUnavailable
from consultations.scheduling.slots import Slot


class BookingStore:
    def __init__(self, db: Session):
        self.db = db

    def insert(self, appointment: Appointment) -> Appointment:
        """Insert a live appointment or fail with SlotUnavailable if the slot is held."""
        self.db.add(appointment)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise SlotUnavailable('This time is already booked.') from exc

        self.db.refresh(appointment)
        return appointment

    def get(self, appointment_id: int) -> Appointment | None:
        return self.db.query(Appointment).filter(Appointment.id == appointment_id).first()

    def transition(
        self,
        appointment_id: int,
        from_statuses: tuple[str, ...],
        to_status: str,
        now: datetime,
        **values,
    ) -> bool:
        """Move an appointment to `to_status` only if it is still in one of `from_statuses`."""
        updated = self.db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.status.in_(from_statuses),
        ).update(
            {Appointment.status: to_status, Appointment.updated_at: now, **_columns(values)},
            synchronize_session=False,
        )
        self.db.commit()
        return updated == 1

    def update_fields(self, appointment: Appointment, now: datetime, **values) -> Appointment:
        for field, value in values.items():
            setattr(appointment, field, value)
        appointment.updated_at = now
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    def occupied_slots(self, provider_id: int, day: date) -> list[Slot]:
        """Intervals held by live appointments; one running past midnight is capped at the end of the day."""
        rows = self.db.query(Appointment.start_time, Appointment.duration_minutes).filter(
            Appointment.provider_id == provider_id,
            Appointment.date == day,
            Appointment.status.in_(LIVE_STATUSES),
        ).order_by(Appointment.start_time.asc()).all()

        occupied = []
        for start_time, duration_minutes in rows:
            starts_at = datetime.combine(day, start_time)
            ends_at = starts_at + timedelta(minutes=duration_minutes)
            end_time = ends_at.time() if ends_at.date() == day else time.max
            occupied.append(Slot(start=start_time, end=end_time))
        return occupied

    def history_query(self, participant_id: int | None, status: str | None = None) -> Query:
        query = self.db.query(Appointment)
        if participant_id is not None:
            query = query.filter(
                or_(Appointment.requester_id == participant_id, Appointment.provider_id == participant_id)
            )
        if status:
            query = query.filter(Appointment.status == status)
        return query.order_by(Appointment.date.desc(), Appointment.start_time.desc(), Appointment.id.desc())

    def provider_query(self, provider_id: int, day: date | None = None, status: str | None = None) -> Query:
        query = self.db.query(Appointment).filter(Appointment.provider_id == provider_id)
        if day is not None:
            query = query.filter(Appointment.date == day)
        if status:
            query = query.filter(Appointment.status == status)
        return query.order_by(Appointment.date.asc(), Appointment.start_time.asc(), Appointment.id.asc())

    def count_for_provider(self, provider_id: int, status: str | None = None, day: date | None = None) -> int:
        query = self.db.query(Appointment).filter(Appointment.provider_id == provider_id)
        if status:
            query = query.filter(Appointment.status == status)
        if day is not None:
            query = query.filter(Appointment.date == day)
        return query.count()

    def due_for_reminder(self, target_date: date) -> list[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.date == target_date,
            Appointment.status == STATUS_CONFIRMED,
            Appointment.reminder_sent.is_(False),
        ).order_by(Appointment.start_time.asc(), Appointment.id.asc()).all()

    def mark_reminded(self, appointment_id: int, now: datetime) -> bool:
        updated = self.db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.reminder_sent.is_(False),
        ).update(
            {Appointment.reminder_sent: True, Appointment.updated_at: now},
            synchronize_session=False,
        )
        self.db.commit()
        return updated == 1


def paginate(query: Query, page: int, page_size: int) -> tuple[list, int]:
    total = query.order_by(None).count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()
    return items, total


def _columns(values: dict) -> dict:
    return {getattr(Appointment, field): value for field, value in values.items()}
