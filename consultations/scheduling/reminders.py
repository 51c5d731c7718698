"""
Appointment reminders

One sweep reminds every requester whose confirmed appointment is
tomorrow. Each appointment is marked only after its notification was
delivered and is committed on its own, so a failure on one appointment
never blocks or undoes the others.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from consultations.models.appointment import Appointment
from consultations.notifications import Notifier
from consultations.scheduling.booking_store import BookingStore
from consultations.scheduling.clock import Clock, SystemClock
from consultations.scheduling.errors import DeliveryFailed, NotFound
from consultations.scheduling.identity import UserDirectory
from consultations.scheduling.slots import format_clock_time

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    selected: int = 0
    sent: int = 0
    failed: int = 0


class ReminderSweeper:
    def __init__(self, session_factory: Callable[[], Session], notifier: Notifier, clock: Clock | None = None):
        self.session_factory = session_factory
        self.notifier = notifier
        self.clock = clock or SystemClock()

    def run(self) -> SweepResult:
        """Send tomorrow's reminders. Shared by the daily task and the manual trigger."""
        target_date = self.clock.now().date() + timedelta(days=1)
        result = SweepResult()

        db = self.session_factory()
        try:
            bookings = BookingStore(db)
            users = UserDirectory(db)

            due = bookings.due_for_reminder(target_date)
            result.selected = len(due)

            for appointment in due:
                appointment_id = appointment.id
                try:
                    if self._remind(bookings, users, appointment):
                        result.sent += 1
                except NotFound:
                    logger.warning('Skipping reminder for appointment %s: participant missing', appointment_id)
                    result.failed += 1
                except DeliveryFailed:
                    logger.warning('Reminder for appointment %s was not delivered', appointment_id, exc_info=True)
                    result.failed += 1
                except SQLAlchemyError:
                    db.rollback()
                    logger.exception('Reminder for appointment %s could not be recorded', appointment_id)
                    result.failed += 1
        finally:
            db.close()

        logger.info(
            'Reminder sweep for %s: %s selected, %s sent, %s failed',
            target_date, result.selected, result.sent, result.failed,
        )
        return result

    def _remind(self, bookings: BookingStore, users: UserDirectory, appointment: Appointment) -> bool:
        """Notify the requester, then mark the appointment. False if another sweep marked it first."""
        requester = users.resolve(appointment.requester_id)
        provider = users.resolve(appointment.provider_id)
        self.notifier.notify(
            requester.contact_address,
            'Appointment reminder',
            f'Hello {requester.name or requester.contact_address},\n\n'
            f'This is a reminder of your appointment tomorrow ({appointment.date.isoformat()}) '
            f'at {format_clock_time(appointment.start_time)} with '
            f'{provider.name or provider.contact_address}.\n\n'
            f'Reason: {appointment.reason}',
        )
        return bookings.mark_reminded(appointment.id, self.clock.now())


def seconds_until(now: datetime, hour: int, minute: int = 0) -> float:
    """Seconds from `now` until the next occurrence of hour:minute local time."""
    next_run = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if next_run <= now:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()
