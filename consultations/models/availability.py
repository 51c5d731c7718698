"""Availability model definitions."""

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, Time, UniqueConstraint
from consultations.database import Base


class AvailabilitySlot(Base):
    """Represents a bookable slot declared by a provider."""
    __tablename__ = "availability_slots"
    __table_args__ = (
        UniqueConstraint("provider_id", "date", "start_time", name="uq_availability_provider_slot"),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=30)
    is_available = Column(Boolean, nullable=False, default=True)
    max_bookings = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)
