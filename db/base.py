from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from errors import ValidationError
from models.visitor import VisitorEvent

# Dotted paths usable with count_distinct and count_by
FIELD_PATHS = (
    "id",
    "ip",
    "session.sessionId",
    "location.country",
    "device.type",
    "device.browser",
    "device.os",
)


def check_field_path(field_path: str) -> str:
    if field_path not in FIELD_PATHS:
        raise ValidationError(
            f"Cannot count by {field_path!r}; expected one of {', '.join(FIELD_PATHS)}"
        )
    return field_path


def event_field(event: VisitorEvent, field_path: str) -> Any:
    """Read a dotted wire-format field (e.g. ``session.sessionId``) from an event."""
    return _lookup(event.to_document(), field_path)


def _lookup(doc: Any, field_path: str) -> Any:
    value = doc
    for part in field_path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


class EventStore(ABC):
    """Base class for visitor event storage backends.

    Stores are append-only: events are never updated or deleted through this
    interface (retention is a backend configuration concern).
    """

    name: str = "base"

    async def connect(self) -> bool:
        """Open the backend. Returns True when it is usable."""
        return True

    async def close(self) -> None:
        """Release backend resources."""

    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the backend is currently usable for reads and writes."""

    async def ping(self) -> bool:
        return self.is_connected()

    @abstractmethod
    async def insert(self, event: VisitorEvent) -> None:
        """Append an event.

        Raises:
            StorageUnavailable: backend unreachable.
            StorageError: any other write failure.
        """

    @abstractmethod
    def scan_range(self, start: datetime, end: datetime) -> AsyncIterator[VisitorEvent]:
        """Yield events with ``start <= timestamp <= end``, unordered, single pass."""

    @abstractmethod
    async def count_distinct(self, field_path: str, start: datetime, end: datetime) -> int:
        """Count distinct values of a dotted field over ``[start, end]``."""

    async def count_by(self, field_path: str, start: datetime, end: datetime) -> Dict[Any, int]:
        """Number of events per value of a dotted field over ``[start, end]``.

        Keys appear in first-seen order. Backends with a native grouping
        operation should override this fold.
        """
        check_field_path(field_path)
        counts: Dict[Any, int] = {}
        async for event in self.scan_range(start, end):
            value = event_field(event, field_path)
            counts[value] = counts.get(value, 0) + 1
        return counts

    @abstractmethod
    async def recent(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 1000,
    ) -> List[VisitorEvent]:
        """Return up to ``limit`` events, newest first, optionally bounded by time."""

    @abstractmethod
    async def count(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> int:
        """Count events, optionally bounded by time."""
