"""Time sources for the scheduling engine."""

from datetime import datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Local wall clock of the deployment."""

    def now(self) -> datetime:
        return datetime.now().replace(microsecond=0)


class FrozenClock:
    """Clock pinned to a fixed instant; tests move it with `advance`."""

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)
