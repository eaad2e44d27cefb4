"""Aggregate statistics computed from raw visitor events."""

import logging
from datetime import datetime, timedelta, tzinfo
from typing import Any, AsyncIterable, Dict, List, Optional

from db.base import EventStore
from models.stats import AggregateStats
from models.visitor import VisitorEvent
from utils.clock import ensure_utc, utcnow
from utils.timerange import TimeWindow

logger = logging.getLogger(__name__)

TOP_COUNTRIES = 10
TOP_BROWSERS = 5
TOP_PAGES = 10
REAL_TIME_WINDOW = timedelta(minutes=5)


def top_n(counts: Dict[str, int], label: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Sort counters by count descending; ties keep first-seen order."""
    # sorted() is stable and dicts preserve insertion order
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    if limit is not None:
        ranked = ranked[:limit]
    return [{label: key, "count": count} for key, count in ranked]


class StatsAccumulator:
    """Single-pass fold over events for one window."""

    def __init__(self, tz: tzinfo):
        self.tz = tz
        self.total = 0
        self.visitor_ids = set()
        self.session_ids = set()
        self.duration_sum = 0.0
        self.page_views_sum = 0.0
        self.single_page_views = 0
        self.countries: Dict[str, int] = {}
        self.devices: Dict[str, int] = {}
        self.browsers: Dict[str, int] = {}
        self.pages: Dict[str, int] = {}
        self.hours = [0] * 24

    def add(self, event: VisitorEvent) -> None:
        self.total += 1
        self.visitor_ids.add(event.id)
        self.session_ids.add(event.session.session_id)
        self.duration_sum += event.session.duration
        self.page_views_sum += event.session.page_views
        if event.session.page_views == 1:
            self.single_page_views += 1

        country = event.location.country or "Unknown"
        self.countries[country] = self.countries.get(country, 0) + 1
        self.devices[event.device.type] = self.devices.get(event.device.type, 0) + 1
        self.browsers[event.device.browser] = self.browsers.get(event.device.browser, 0) + 1
        if event.session.entry_page:
            self.pages[event.session.entry_page] = self.pages.get(event.session.entry_page, 0) + 1

        self.hours[event.timestamp.astimezone(self.tz).hour] += 1

    def result(self, window: TimeWindow, real_time_visitors: int) -> AggregateStats:
        stats = AggregateStats.empty(window.start, window.end)
        stats.real_time_visitors = real_time_visitors
        stats.hourly_visits = [{"hour": hour, "count": count} for hour, count in enumerate(self.hours)]
        if self.total == 0:
            return stats

        stats.total_visitors = self.total
        stats.unique_visitors = len(self.visitor_ids)
        stats.total_sessions = len(self.session_ids)
        stats.average_session_duration = self.duration_sum / self.total
        stats.average_page_views = self.page_views_sum / self.total
        stats.bounce_rate = self.single_page_views / self.total * 100
        stats.top_countries = top_n(self.countries, "country", TOP_COUNTRIES)
        stats.top_pages = top_n(self.pages, "page", TOP_PAGES)
        stats.device_types = top_n(self.devices, "type")
        stats.browsers = top_n(self.browsers, "browser", TOP_BROWSERS)
        return stats


async def fold(events: AsyncIterable[VisitorEvent], tz: tzinfo) -> StatsAccumulator:
    acc = StatsAccumulator(tz)
    async for event in events:
        acc.add(event)
    return acc


async def count_real_time(store: EventStore, now: datetime) -> int:
    """Events whose client reported activity within the last five minutes of ``now``.

    Activity stamped after ``now`` (client clock ahead) is not counted.
    """
    cutoff = now - REAL_TIME_WINDOW
    active = 0
    async for event in store.scan_range(cutoff, now):
        last_active = event.engagement.last_active_at
        if last_active is not None and cutoff < last_active <= now:
            active += 1
    return active


async def compute_stats(
    store: EventStore,
    window: TimeWindow,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> AggregateStats:
    """Compute AggregateStats for ``window``.

    ``realTimeVisitors`` is always measured against ``now`` rather than the
    window end.
    """
    now = ensure_utc(now or utcnow())
    tz = tz or now.tzinfo

    acc = await fold(store.scan_range(window.start, window.end), tz)
    real_time = await count_real_time(store, now)

    logger.debug(f"Computed stats over {acc.total} events ({window.start} - {window.end})")
    return acc.result(window, real_time)
