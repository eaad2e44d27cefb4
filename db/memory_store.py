"""Embedded, process-local event store."""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, List, Optional

from db.base import EventStore, check_field_path, event_field
from models.visitor import VisitorEvent
from utils.clock import ensure_utc, utcnow

logger = logging.getLogger(__name__)


def _in_range(event: VisitorEvent, start: Optional[datetime], end: Optional[datetime]) -> bool:
    if start is not None and event.timestamp < ensure_utc(start):
        return False
    if end is not None and event.timestamp > ensure_utc(end):
        return False
    return True


class MemoryEventStore(EventStore):
    """Keeps events in a Python list. Suitable for tests and single-process demos.

    Events are appended in ingest order, so the list is sorted by timestamp.
    """

    name = "memory"

    def __init__(self, retention_days: int = 0, clock: Callable[[], datetime] = utcnow):
        self._events: List[VisitorEvent] = []
        self._lock = asyncio.Lock()
        self._retention = timedelta(days=retention_days) if retention_days > 0 else None
        self._clock = clock
        self._connected = False

    async def connect(self) -> bool:
        self._connected = True
        logger.info("Using in-memory event store")
        return True

    async def close(self) -> None:
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected

    async def insert(self, event: VisitorEvent) -> None:
        async with self._lock:
            self._events.append(event)
            if self._retention is not None:
                self._prune()

    def _prune(self) -> None:
        cutoff = self._clock() - self._retention
        keep_from = 0
        while keep_from < len(self._events) and self._events[keep_from].timestamp < cutoff:
            keep_from += 1
        if keep_from:
            del self._events[:keep_from]
            logger.debug(f"Pruned {keep_from} events older than {cutoff.isoformat()}")

    async def scan_range(self, start: datetime, end: datetime) -> AsyncIterator[VisitorEvent]:
        # Iterate a snapshot so concurrent inserts don't affect the scan
        for event in list(self._events):
            if _in_range(event, start, end):
                yield event

    async def count_distinct(self, field_path: str, start: datetime, end: datetime) -> int:
        check_field_path(field_path)
        values = set()
        async for event in self.scan_range(start, end):
            values.add(event_field(event, field_path))
        return len(values)

    async def recent(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 1000,
    ) -> List[VisitorEvent]:
        matching = [e for e in reversed(self._events) if _in_range(e, start, end)]
        return matching[:limit]

    async def count(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> int:
        return sum(1 for e in list(self._events) if _in_range(e, start, end))

    def __len__(self) -> int:
        return len(self._events)
