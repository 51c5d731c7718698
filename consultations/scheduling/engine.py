"""
Scheduling engine

Orchestrates booking creation, status transitions, notes, queries and
provider availability. Every operation takes the caller's Identity and
raises a SchedulingError subclass before mutating anything it refuses.

Notifications are best-effort: a DeliveryFailed from the notifier is
logged and the already-committed transition stands.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from sqlalchemy.orm import Session

from consultations.core import config
from consultations.models.appointment import (
    DECISION_STATUSES,
    LIVE_STATUSES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_REQUESTED,
    STATUSES,
    TERMINAL_STATUSES,
    Appointment,
)
from consultations.models.availability import AvailabilitySlot
from consultations.notifications import Notifier
from consultations.scheduling.availability_store import AvailabilityStore
from consultations.scheduling.booking_store import BookingStore, paginate
from consultations.scheduling.clock import Clock, SystemClock
from consultations.scheduling.errors import (
    DeliveryFailed,
    Forbidden,
    InvalidTemporal,
    InvalidTransition,
    NotFound,
    SlotUnavailable,
    ValidationFailed,
)
from consultations.scheduling.identity import Identity, IdentityDirectory, UserDirectory
from consultations.scheduling.slots import DefaultGrid, Slot, format_clock_time, generate_slots, parse_clock_time

logger = logging.getLogger(__name__)


@dataclass
class Page:
    items: list
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0


@dataclass
class ProviderDashboard:
    page: Page
    stats: dict = field(default_factory=dict)


@dataclass
class ProviderAvailability:
    provider_id: int
    date: date
    available_slots: list[time]
    total_custom_slots: int

    @property
    def total_available(self) -> int:
        return len(self.available_slots)


class SchedulingEngine:
    def __init__(
        self,
        db: Session,
        notifier: Notifier,
        clock: Clock | None = None,
        identities: IdentityDirectory | None = None,
        default_grid: DefaultGrid | None = None,
        lead_minutes: int | None = None,
    ):
        self.db = db
        self.bookings = BookingStore(db)
        self.availability = AvailabilityStore(db)
        self.identities = identities or UserDirectory(db)
        self.notifier = notifier
        self.clock = clock or SystemClock()
        self.default_grid = default_grid or DefaultGrid.from_config()
        self.lead_minutes = config.BOOKING_LEAD_MINUTES if lead_minutes is None else lead_minutes

    # Bookings

    def create_booking(
        self,
        caller: Identity,
        provider_id: int,
        day: date,
        start_time: time | str,
        reason: str,
        duration_minutes: int | None = None,
        notes: str | None = None,
    ) -> Appointment:
        reason = (reason or '').strip()
        if not reason:
            raise ValidationFailed('A reason for the appointment is required.')

        provider = self._resolve_provider(provider_id)
        if provider.id == caller.id:
            raise ValidationFailed('Providers cannot book appointments with themselves.')

        start_time = parse_clock_time(start_time)
        now = self.clock.now()
        if datetime.combine(day, start_time) <= now + timedelta(minutes=self.lead_minutes):
            raise InvalidTemporal('Appointments must be scheduled in the future.')

        slot = self._bookable_slot(provider.id, day, start_time)
        if duration_minutes is not None and duration_minutes != slot.duration_minutes:
            raise ValidationFailed(f'This slot lasts {slot.duration_minutes} minutes.')

        appointment = self.bookings.insert(
            Appointment(
                requester_id=caller.id,
                provider_id=provider.id,
                date=day,
                start_time=start_time,
                duration_minutes=slot.duration_minutes,
                status=STATUS_REQUESTED,
                reason=reason,
                notes=notes,
                reminder_sent=False,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info('Appointment %s requested with provider %s on %s at %s', appointment.id, provider.id, day, start_time)

        self._notify(
            provider.contact_address,
            'New appointment request',
            f'You have a new appointment request from {caller.name or caller.contact_address} '
            f'on {_describe(appointment)}.\n\nReason: {reason}',
        )
        return appointment

    def decide_booking(self, caller: Identity, appointment_id: int, decision: str) -> Appointment:
        if decision not in DECISION_STATUSES:
            raise ValidationFailed("Decision must be 'confirmed' or 'cancelled'.")

        appointment = self._get_appointment(appointment_id)
        if appointment.provider_id != caller.id:
            raise Forbidden('Only the provider of this appointment can confirm or reject it.')

        if not self.bookings.transition(appointment.id, (STATUS_REQUESTED,), decision, self.clock.now()):
            raise InvalidTransition('Only requested appointments can be confirmed or rejected.')

        outcome = 'confirmed' if decision == STATUS_CONFIRMED else 'declined'
        self._notify_user(
            appointment.requester_id,
            f'Appointment {outcome}',
            f'Your appointment on {_describe(appointment)} was {outcome} by '
            f'{caller.name or caller.contact_address}.',
        )
        return appointment

    def cancel_booking(self, caller: Identity, appointment_id: int) -> Appointment:
        appointment = self._get_appointment(appointment_id)
        is_requester = appointment.requester_id == caller.id
        if not is_requester and appointment.provider_id != caller.id:
            raise Forbidden('Only the requester or the provider can cancel this appointment.')

        if _starts_at(appointment) <= self.clock.now():
            raise InvalidTemporal('Appointments that have already started cannot be cancelled.')

        if not self.bookings.transition(appointment.id, LIVE_STATUSES, STATUS_CANCELLED, self.clock.now()):
            raise InvalidTransition('This appointment is no longer active.')

        counterparty_id = appointment.provider_id if is_requester else appointment.requester_id
        cancelled_by = 'the requester' if is_requester else 'the provider'
        self._notify_user(
            counterparty_id,
            'Appointment cancelled',
            f'The appointment on {_describe(appointment)} was cancelled by {cancelled_by}.',
        )
        return appointment

    def complete_booking(self, caller: Identity, appointment_id: int, outcome_notes: str | None = None) -> Appointment:
        appointment = self._get_appointment(appointment_id)
        if appointment.provider_id != caller.id:
            raise Forbidden('Only the provider of this appointment can mark it completed.')

        values = {'outcome_notes': outcome_notes} if outcome_notes is not None else {}
        if not self.bookings.transition(
            appointment.id, (STATUS_CONFIRMED,), STATUS_COMPLETED, self.clock.now(), **values
        ):
            raise InvalidTransition('Only confirmed appointments can be completed.')
        return appointment

    def update_booking_notes(
        self,
        caller: Identity,
        appointment_id: int,
        notes: str | None = None,
        outcome_notes: str | None = None,
    ) -> Appointment:
        appointment = self._get_appointment(appointment_id)
        is_provider = appointment.provider_id == caller.id
        if not is_provider and appointment.requester_id != caller.id:
            raise Forbidden('Only the requester or the provider can update this appointment.')
        if outcome_notes is not None and not is_provider:
            raise Forbidden('Only the provider can record outcome notes.')
        if appointment.status in TERMINAL_STATUSES:
            raise InvalidTransition('Closed appointments cannot be edited.')

        values = {}
        if notes is not None:
            values['notes'] = notes
        if outcome_notes is not None:
            values['outcome_notes'] = outcome_notes
        if not values:
            return appointment

        return self.bookings.update_fields(appointment, self.clock.now(), **values)

    def get_booking(self, caller: Identity, appointment_id: int) -> Appointment:
        appointment = self._get_appointment(appointment_id)
        if caller.id not in (appointment.requester_id, appointment.provider_id) and not caller.is_admin:
            raise Forbidden('You are not allowed to view this appointment.')
        return appointment

    def list_bookings(
        self,
        caller: Identity,
        status: str | None = None,
        page: int = 1,
        page_size: int = config.DEFAULT_PAGE_SIZE,
    ) -> Page:
        _check_status_filter(status)
        _check_page(page, page_size)

        participant_id = None if caller.is_admin else caller.id
        items, total = paginate(self.bookings.history_query(participant_id, status), page, page_size)
        return Page(items=items, total=total, page=page, page_size=page_size)

    def provider_dashboard(
        self,
        caller: Identity,
        day: date | None = None,
        status: str | None = None,
        page: int = 1,
        page_size: int = config.DEFAULT_PAGE_SIZE,
    ) -> ProviderDashboard:
        self._require_provider(caller)
        _check_status_filter(status)
        _check_page(page, page_size)

        items, total = paginate(self.bookings.provider_query(caller.id, day, status), page, page_size)
        stats = {
            'today_confirmed': self.bookings.count_for_provider(
                caller.id, STATUS_CONFIRMED, day=self.clock.now().date()
            ),
            'pending': self.bookings.count_for_provider(caller.id, STATUS_REQUESTED),
            'confirmed': self.bookings.count_for_provider(caller.id, STATUS_CONFIRMED),
            'total': self.bookings.count_for_provider(caller.id),
        }
        return ProviderDashboard(page=Page(items=items, total=total, page=page, page_size=page_size), stats=stats)

    # Availability

    def get_provider_availability(self, provider_id: int, day: date) -> ProviderAvailability:
        """Open start times for a provider on a day.

        Declared slots replace the default grid entirely for that day, even
        when every declared slot has been switched off.
        A start is open only while its slot overlaps no live appointment.
        """
        provider = self._resolve_provider(provider_id)
        declared = self.availability.for_provider_day(provider.id, day)
        if declared:
            candidates = [Slot(start=slot.start_time, end=slot.end_time) for slot in declared if slot.is_available]
        else:
            candidates = self.default_grid.slots(day)

        occupied = self.bookings.occupied_slots(provider.id, day)
        now = self.clock.now()
        open_starts = [
            candidate.start for candidate in candidates
            if datetime.combine(day, candidate.start) > now and not _overlapping(candidate, occupied)
        ]
        return ProviderAvailability(
            provider_id=provider.id,
            date=day,
            available_slots=open_starts,
            total_custom_slots=len(declared),
        )

    def declare_availability(
        self,
        caller: Identity,
        day: date,
        window_start: time | str,
        window_end: time | str,
        duration_minutes: int = 30,
    ) -> list[AvailabilitySlot]:
        self._require_provider(caller)
        now = self.clock.now()
        if day < now.date():
            raise InvalidTemporal('Availability cannot be declared for past dates.')

        slots = generate_slots(day, parse_clock_time(window_start), parse_clock_time(window_end), duration_minutes)
        self._check_declarable(caller.id, day, slots)
        declared = self.availability.upsert_slots(caller.id, day, slots, now)
        logger.info('Provider %s declared %s slots on %s', caller.id, len(declared), day)
        return declared

    def list_own_availability(self, caller: Identity, day: date | None = None) -> list[AvailabilitySlot]:
        self._require_provider(caller)
        return self.availability.list_for_provider(caller.id, day)

    def set_slot_availability(self, caller: Identity, slot_id: int, is_available: bool) -> AvailabilitySlot:
        self._require_provider(caller)
        slot = self._get_owned_slot(caller, slot_id)
        return self.availability.set_available(slot, is_available, self.clock.now())

    def delete_availability_slot(self, caller: Identity, slot_id: int) -> None:
        self._require_provider(caller)
        slot = self._get_owned_slot(caller, slot_id)
        self.availability.delete(slot)

    # Helpers

    def _bookable_slot(self, provider_id: int, day: date, start_time: time) -> Slot:
        declared = self.availability.for_provider_day(provider_id, day)
        if declared:
            for slot in declared:
                if slot.start_time == start_time and slot.is_available:
                    return self._unoccupied(provider_id, day, Slot(start=slot.start_time, end=slot.end_time))
            raise SlotUnavailable('The provider does not offer this time.')

        for slot in self.default_grid.slots(day):
            if slot.start == start_time:
                return self._unoccupied(provider_id, day, slot)
        raise SlotUnavailable('The provider does not offer this time.')

    def _unoccupied(self, provider_id: int, day: date, slot: Slot) -> Slot:
        if _overlapping(slot, self.bookings.occupied_slots(provider_id, day)):
            raise SlotUnavailable('This time is already booked.')
        return slot

    def _check_declarable(self, provider_id: int, day: date, slots: list[Slot]) -> None:
        """Refuse slots that would overlap another declared slot or a live appointment.

        A slot with the same start as a declared one updates that row in place,
        and a slot matching a live appointment exactly is already taken by it.
        """
        declared = [
            Slot(start=row.start_time, end=row.end_time)
            for row in self.availability.for_provider_day(provider_id, day)
        ]
        occupied = self.bookings.occupied_slots(provider_id, day)
        for slot in slots:
            clash = _overlapping(slot, [other for other in declared if other.start != slot.start])
            if clash is not None:
                raise ValidationFailed(f'Slot {_span(slot)} overlaps the declared slot {_span(clash)}.')
            clash = _overlapping(slot, [booked for booked in occupied if booked != slot])
            if clash is not None:
                raise ValidationFailed(f'Slot {_span(slot)} overlaps an appointment booked for {_span(clash)}.')

    def _get_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.bookings.get(appointment_id)
        if appointment is None:
            raise NotFound('Appointment not found.')
        return appointment

    def _get_owned_slot(self, caller: Identity, slot_id: int) -> AvailabilitySlot:
        slot = self.availability.get_owned(caller.id, slot_id)
        if slot is None:
            raise NotFound('Availability slot not found.')
        return slot

    def _resolve_provider(self, provider_id: int) -> Identity:
        try:
            provider = self.identities.resolve(provider_id)
        except NotFound as exc:
            raise NotFound('Provider not found.') from exc
        if not provider.is_provider:
            raise NotFound('Provider not found.')
        return provider

    @staticmethod
    def _require_provider(caller: Identity) -> None:
        if not caller.is_provider:
            raise Forbidden('Only providers can manage availability and the provider dashboard.')

    def _notify_user(self, user_id: int, subject: str, body: str) -> None:
        try:
            recipient = self.identities.resolve(user_id)
        except NotFound:
            logger.warning('Skipping notification %r: user %s no longer exists', subject, user_id)
            return
        self._notify(recipient.contact_address, subject, body)

    def _notify(self, recipient: str, subject: str, body: str) -> None:
        try:
            self.notifier.notify(recipient, subject, body)
        except DeliveryFailed:
            logger.warning('Notification %r to %s failed', subject, recipient, exc_info=True)


def _starts_at(appointment: Appointment) -> datetime:
    return datetime.combine(appointment.date, appointment.start_time)


def _describe(appointment: Appointment) -> str:
    return f'{appointment.date.isoformat()} at {format_clock_time(appointment.start_time)}'


def _span(slot: Slot) -> str:
    return f'{format_clock_time(slot.start)}-{format_clock_time(slot.end)}'


def _overlapping(slot: Slot, others: list[Slot]) -> Slot | None:
    return next((other for other in others if slot.overlaps(other)), None)


def _check_status_filter(status: str | None) -> None:
    if status and status not in STATUSES:
        raise ValidationFailed(f"Unknown status {status!r}.")


def _check_page(page: int, page_size: int) -> None:
    if page < 1:
        raise ValidationFailed('Page numbers start at 1.')
    if page_size < 1 or page_size > config.MAX_PAGE_SIZE:
        raise ValidationFailed(f'Page size must be between 1 and {config.MAX_PAGE_SIZE}.')
