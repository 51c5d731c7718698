"""
Slot generation

Turns a working window into discrete, back-to-back slots. A trailing
slot that would run past the end of the window is dropped, never
shortened.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from consultations.core import config
from consultations.scheduling.errors import InvalidTemporal, ValidationFailed

CLOCK_TIME_FORMAT = '%H:%M'


@dataclass(frozen=True)
class Slot:
    start: time
    end: time

    @property
    def duration_minutes(self) -> int:
        delta = datetime.combine(date.min, self.end) - datetime.combine(date.min, self.start)
        return int(delta.total_seconds() // 60)

    def overlaps(self, other: 'Slot') -> bool:
        """Half-open intervals: a slot ending at 10:00 does not overlap one starting at 10:00."""
        return self.start < other.end and other.start < self.end


@dataclass(frozen=True)
class DefaultGrid:
    start: time = time(9, 0)
    end: time = time(17, 0)
    duration_minutes: int = 30

    @classmethod
    def from_config(cls) -> 'DefaultGrid':
        return cls(
            start=parse_clock_time(config.DEFAULT_WINDOW_START),
            end=parse_clock_time(config.DEFAULT_WINDOW_END),
            duration_minutes=config.DEFAULT_SLOT_MINUTES,
        )

    def slots(self, day: date) -> list[Slot]:
        return generate_slots(day, self.start, self.end, self.duration_minutes)


def parse_clock_time(value: str | time) -> time:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    try:
        return datetime.strptime(value.strip(), CLOCK_TIME_FORMAT).time()
    except (AttributeError, ValueError) as exc:
        raise ValidationFailed(f'Invalid time {value!r}; expected HH:MM.') from exc


def format_clock_time(value: time) -> str:
    return value.strftime(CLOCK_TIME_FORMAT)


def generate_slots(day: date, window_start: time, window_end: time, duration_minutes: int) -> list[Slot]:
    """
    Generate the ordered slots of a single day's window.

    Args:
        day: calendar date the window belongs to
        window_start: first slot start
        window_end: no slot may end after this time
        duration_minutes: length of every slot and step between starts

    Raises:
        InvalidTemporal: window_end is not after window_start
        ValidationFailed: duration_minutes is not positive
    """
    if duration_minutes <= 0:
        raise ValidationFailed('Slot duration must be a positive number of minutes.')
    if window_end <= window_start:
        raise InvalidTemporal('The window end must be after its start.')

    step = timedelta(minutes=duration_minutes)
    current = datetime.combine(day, window_start)
    end = datetime.combine(day, window_end)

    slots: list[Slot] = []
    while current + step <= end:
        slot_end = current + step
        slots.append(Slot(start=current.time(), end=slot_end.time()))
        current = slot_end

    return slots
