"""
Verification codes

Short-lived, single-use codes keyed by an address. Entries carry their
own expiry; `sweep_expired` drops stale ones and is run periodically by
the application.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock

from consultations.scheduling.clock import Clock, SystemClock


@dataclass(frozen=True)
class VerificationEntry:
    code: str
    expires_at: datetime


def generate_code() -> str:
    return f"{secrets.randbelow(900000) + 100000}"


class VerificationCodeStore:
    def __init__(self, ttl_minutes: int = 10, clock: Clock | None = None):
        self.ttl = timedelta(minutes=ttl_minutes)
        self.clock = clock or SystemClock()
        self._entries: dict[str, VerificationEntry] = {}
        self._lock = Lock()

    def put(self, key: str, code: str) -> VerificationEntry:
        entry = VerificationEntry(code=code, expires_at=self.clock.now() + self.ttl)
        with self._lock:
            self._entries[_normalize(key)] = entry
        return entry

    def get(self, key: str) -> VerificationEntry | None:
        key = _normalize(key)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.expires_at <= self.clock.now():
                del self._entries[key]
                return None
            return entry

    def consume(self, key: str, code: str) -> bool:
        """Return True and forget the entry if `code` matches an unexpired entry."""
        key = _normalize(key)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry.expires_at <= self.clock.now():
                del self._entries[key]
                return False
            if not secrets.compare_digest(entry.code, code.strip()):
                return False
            del self._entries[key]
            return True

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(_normalize(key), None)

    def sweep_expired(self) -> int:
        now = self.clock.now()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def _normalize(key: str) -> str:
    return key.strip().lower()
