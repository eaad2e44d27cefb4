"""Degraded-mode store used when no database is configured or reachable."""

from datetime import datetime
from typing import AsyncIterator, List, Optional

from db.base import EventStore, check_field_path
from models.visitor import VisitorEvent


class NullEventStore(EventStore):
    """Accepts and discards writes; every query is empty."""

    name = "none"

    def is_connected(self) -> bool:
        return False

    async def insert(self, event: VisitorEvent) -> None:
        return None

    async def scan_range(self, start: datetime, end: datetime) -> AsyncIterator[VisitorEvent]:
        return
        yield

    async def count_distinct(self, field_path: str, start: datetime, end: datetime) -> int:
        check_field_path(field_path)
        return 0

    async def recent(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 1000,
    ) -> List[VisitorEvent]:
        return []

    async def count(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> int:
        return 0
