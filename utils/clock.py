"""Time helpers: ISO-8601 parsing/formatting and the ingest clock."""

import threading
from datetime import datetime, timezone
from typing import Callable, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalize aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 string (``Z`` suffix allowed). Returns None if unparseable."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def isoformat(value: datetime) -> str:
    """Format like JavaScript's ``toISOString``: ``2024-01-01T12:00:00.000Z``."""
    return ensure_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class MonotonicClock:
    """Wall clock that never goes backwards.

    Ingest timestamps must be non-decreasing in insertion order even if the
    system clock is stepped back (NTP adjustments). Equal values are allowed.
    """

    def __init__(self, source: Callable[[], datetime] = utcnow):
        self._source = source
        self._last: Optional[datetime] = None
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            current = ensure_utc(self._source())
            if self._last is not None and current < self._last:
                current = self._last
            self._last = current
            return current

    def __call__(self) -> datetime:
        return self.now()
