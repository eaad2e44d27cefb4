"""Aggregate statistics returned by the stats endpoint."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from dataclasses_json import LetterCase, config, dataclass_json

from utils.clock import isoformat, utcnow


def _encode_optional_datetime(value: Optional[datetime]) -> Optional[str]:
    return isoformat(value) if value is not None else None


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class AggregateStats:
    """Derived view over ``[start_date, end_date]``; recomputed per query, never stored."""
    total_visitors: int = 0
    unique_visitors: int = 0
    total_sessions: int = 0
    average_session_duration: float = 0
    average_page_views: float = 0
    bounce_rate: float = 0
    top_countries: List[Dict[str, Any]] = field(default_factory=list)
    top_pages: List[Dict[str, Any]] = field(default_factory=list)
    device_types: List[Dict[str, Any]] = field(default_factory=list)
    browsers: List[Dict[str, Any]] = field(default_factory=list)
    hourly_visits: List[Dict[str, int]] = field(
        default_factory=lambda: [{"hour": hour, "count": 0} for hour in range(24)]
    )
    real_time_visitors: int = 0
    start_date: Optional[datetime] = field(
        default=None, metadata=config(encoder=_encode_optional_datetime)
    )
    end_date: Optional[datetime] = field(
        default=None, metadata=config(encoder=_encode_optional_datetime)
    )
    generated_at: datetime = field(default_factory=utcnow, metadata=config(encoder=isoformat))
    warning: Optional[str] = None

    @classmethod
    def empty(cls, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
              warning: Optional[str] = None) -> "AggregateStats":
        """Zeroed aggregates, used for empty windows and unavailable storage."""
        return cls(start_date=start_date, end_date=end_date, warning=warning)

    def to_response(self) -> Dict[str, Any]:
        data = self.to_dict()
        if data.get("warning") is None:
            data.pop("warning", None)
        return data
