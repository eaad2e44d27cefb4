"""Resolution of stats query windows."""

from datetime import datetime, timedelta
from typing import NamedTuple, Optional

from errors import ValidationError
from utils.clock import ensure_utc, parse_datetime

TIME_RANGES = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}

DEFAULT_TIME_RANGE = "24h"


class TimeWindow(NamedTuple):
    start: datetime
    end: datetime


def parse_date_param(value: Optional[str], name: str) -> Optional[datetime]:
    """Parse an ISO-8601 query parameter, raising ValidationError when malformed."""
    if value is None or value == "":
        return None
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValidationError(f"'{name}' must be an ISO-8601 date")
    return parsed


def resolve_window(
    now: datetime,
    time_range: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> TimeWindow:
    """Resolve a named range or an explicit date pair to ``[start, end]``.

    Explicit dates win over ``time_range``. With only ``end_date`` the window
    spans the preceding 24 hours; with only ``start_date`` it runs to ``now``.
    """
    now = ensure_utc(now)
    start = parse_date_param(start_date, "startDate")
    end = parse_date_param(end_date, "endDate")

    key = time_range or DEFAULT_TIME_RANGE
    duration = TIME_RANGES.get(key)
    if duration is None:
        raise ValidationError(
            f"Unknown timeRange {key!r}; expected one of {', '.join(TIME_RANGES)}"
        )

    if start is None and end is None:
        return TimeWindow(now - duration, now)

    if end is None:
        end = now
    if start is None:
        start = end - TIME_RANGES[DEFAULT_TIME_RANGE]
    if start > end:
        raise ValidationError("'startDate' must not be after 'endDate'")
    return TimeWindow(start, end)
