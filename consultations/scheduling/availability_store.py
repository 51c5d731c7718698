"""Persistence for provider-declared availability slots."""

from datetime import date, datetime

from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from consultations.models.availability import AvailabilitySlot
from consultations.scheduling.slots import Slot

_UPSERT_INSERTS = {
    'postgresql': postgresql_insert,
    'sqlite': sqlite_insert,
}


class AvailabilityStore:
    def __init__(self, db: Session):
        self.db = db

    def upsert_slots(self, provider_id: int, day: date, slots: list[Slot], now: datetime) -> list[AvailabilitySlot]:
        """Declare slots, updating any that already exist for the same start time."""
        if not slots:
            return []

        insert = _UPSERT_INSERTS.get(self.db.get_bind().dialect.name)
        if insert is None:
            self._merge_slots(provider_id, day, slots, now)
        else:
            rows = [
                {
                    'provider_id': provider_id,
                    'date': day,
                    'start_time': slot.start,
                    'end_time': slot.end,
                    'duration_minutes': slot.duration_minutes,
                    'is_available': True,
                    'max_bookings': 1,
                    'created_at': now,
                    'updated_at': now,
                }
                for slot in slots
            ]
            statement = insert(AvailabilitySlot).values(rows)
            statement = statement.on_conflict_do_update(
                index_elements=['provider_id', 'date', 'start_time'],
                set_={
                    'end_time': statement.excluded.end_time,
                    'duration_minutes': statement.excluded.duration_minutes,
                    'is_available': True,
                    'updated_at': statement.excluded.updated_at,
                },
            )
            self.db.execute(statement)
        self.db.commit()

        starts = [slot.start for slot in slots]
        return self.db.query(AvailabilitySlot).filter(
            AvailabilitySlot.provider_id == provider_id,
            AvailabilitySlot.date == day,
            AvailabilitySlot.start_time.in_(starts),
        ).order_by(AvailabilitySlot.start_time.asc()).all()

    def _merge_slots(self, provider_id: int, day: date, slots: list[Slot], now: datetime) -> None:
        existing = {
            row.start_time: row
            for row in self.db.query(AvailabilitySlot).filter(
                AvailabilitySlot.provider_id == provider_id,
                AvailabilitySlot.date == day,
            )
        }
        for slot in slots:
            row = existing.get(slot.start)
            if row is None:
                row = AvailabilitySlot(provider_id=provider_id, date=day, start_time=slot.start, created_at=now)
                self.db.add(row)
            row.end_time = slot.end
            row.duration_minutes = slot.duration_minutes
            row.is_available = True
            row.updated_at = now

    def for_provider_day(self, provider_id: int, day: date) -> list[AvailabilitySlot]:
        return self.db.query(AvailabilitySlot).filter(
            AvailabilitySlot.provider_id == provider_id,
            AvailabilitySlot.date == day,
        ).order_by(AvailabilitySlot.start_time.asc()).all()

    def list_for_provider(self, provider_id: int, day: date | None = None) -> list[AvailabilitySlot]:
        query = self.db.query(AvailabilitySlot).filter(AvailabilitySlot.provider_id == provider_id)
        if day is not None:
            query = query.filter(AvailabilitySlot.date == day)
        return query.order_by(AvailabilitySlot.date.asc(), AvailabilitySlot.start_time.asc()).all()

    def get_owned(self, provider_id: int, slot_id: int) -> AvailabilitySlot | None:
        return self.db.query(AvailabilitySlot).filter(
            AvailabilitySlot.id == slot_id,
            AvailabilitySlot.provider_id == provider_id,
        ).first()

    def set_available(self, slot: AvailabilitySlot, is_available: bool, now: datetime) -> AvailabilitySlot:
        slot.is_available = is_available
        slot.updated_at = now
        self.db.commit()
        self.db.refresh(slot)
        return slot

    def delete(self, slot: AvailabilitySlot) -> None:
        self.db.delete(slot)
        self.db.commit()
