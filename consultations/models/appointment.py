"""Appointment model definitions."""

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String, Time, text
from consultations.database import Base

STATUS_REQUESTED = "requested"
STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"
STATUS_COMPLETED = "completed"
STATUSES = (STATUS_REQUESTED, STATUS_CONFIRMED, STATUS_CANCELLED, STATUS_COMPLETED)
LIVE_STATUSES = (STATUS_REQUESTED, STATUS_CONFIRMED)
TERMINAL_STATUSES = (STATUS_CANCELLED, STATUS_COMPLETED)
DECISION_STATUSES = (STATUS_CONFIRMED, STATUS_CANCELLED)

_LIVE_STATUS_PREDICATE = text("status IN ('requested', 'confirmed')")


class Appointment(Base):
    """Represents a consultation booked by a requester with a provider."""
    __tablename__ = "appointments"
    __table_args__ = (
        # At most one live booking per provider slot; enforced by the database at insert time.
        Index(
            "uq_appointments_live_slot",
            "provider_id",
            "date",
            "start_time",
            unique=True,
            sqlite_where=_LIVE_STATUS_PREDICATE,
            postgresql_where=_LIVE_STATUS_PREDICATE,
        ),
        Index("idx_appointments_reminder_due", "date", "status", "reminder_sent"),
    )

    id = Column(Integer, primary_key=True)
    requester_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=30)
    status = Column(String, nullable=False, default=STATUS_REQUESTED)
    reason = Column(String, nullable=False)
    notes = Column(String)
    outcome_notes = Column(String)
    reminder_sent = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)
