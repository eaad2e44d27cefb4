from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from dataclasses_json import LetterCase, config, dataclass_json

from utils.clock import ensure_utc, isoformat, parse_datetime, utcnow

DEVICE_TYPES = ("mobile", "tablet", "desktop", "unknown")


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class Location:
    """Geo-IP data resolved client-side; trusted as received."""
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    timezone: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    isp: Optional[str] = None
    org: Optional[str] = None
    # "as" is a keyword
    asn: Optional[str] = field(default=None, metadata=config(field_name="as"))

    def to_document(self) -> Dict[str, Any]:
        return {
            "country": self.country,
            "region": self.region,
            "city": self.city,
            "timezone": self.timezone,
            "lat": self.lat,
            "lon": self.lon,
            "isp": self.isp,
            "org": self.org,
            "as": self.asn,
        }

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]) -> "Location":
        doc = doc or {}
        return cls(
            country=doc.get("country"),
            region=doc.get("region"),
            city=doc.get("city"),
            timezone=doc.get("timezone"),
            lat=doc.get("lat"),
            lon=doc.get("lon"),
            isp=doc.get("isp"),
            org=doc.get("org"),
            asn=doc.get("as"),
        )


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class Device:
    type: str = "unknown"  # mobile | tablet | desktop | unknown
    os: str = "Unknown"
    browser: str = "Unknown"
    screen_resolution: str = ""

    def to_document(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "os": self.os,
            "browser": self.browser,
            "screenResolution": self.screen_resolution,
        }

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]) -> "Device":
        doc = doc or {}
        return cls(
            type=doc.get("type", "unknown"),
            os=doc.get("os", "Unknown"),
            browser=doc.get("browser", "Unknown"),
            screen_resolution=doc.get("screenResolution", ""),
        )


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class Session:
    session_id: str = ""
    is_new_session: bool = False
    duration: float = 0  # ms
    page_views: int = 1
    referrer: Optional[str] = None
    entry_page: str = ""
    exit_page: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "isNewSession": self.is_new_session,
            "duration": self.duration,
            "pageViews": self.page_views,
            "referrer": self.referrer,
            "entryPage": self.entry_page,
            "exitPage": self.exit_page,
        }

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]) -> "Session":
        doc = doc or {}
        return cls(
            session_id=doc.get("sessionId", ""),
            is_new_session=doc.get("isNewSession", False),
            duration=doc.get("duration", 0),
            page_views=doc.get("pageViews", 1),
            referrer=doc.get("referrer"),
            entry_page=doc.get("entryPage", ""),
            exit_page=doc.get("exitPage"),
        )


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class Engagement:
    time_on_site: float = 0  # ms
    scroll_depth: float = 0  # percent, 0-100
    click_count: int = 0
    tab_switches: int = 0
    last_active_time: str = ""  # ISO-8601 as sent by the client

    @property
    def last_active_at(self) -> Optional[datetime]:
        return parse_datetime(self.last_active_time)

    def to_document(self) -> Dict[str, Any]:
        return {
            "timeOnSite": self.time_on_site,
            "scrollDepth": self.scroll_depth,
            "clickCount": self.click_count,
            "tabSwitches": self.tab_switches,
            "lastActiveTime": self.last_active_time,
        }

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]) -> "Engagement":
        doc = doc or {}
        return cls(
            time_on_site=doc.get("timeOnSite", 0),
            scroll_depth=doc.get("scrollDepth", 0),
            click_count=doc.get("clickCount", 0),
            tab_switches=doc.get("tabSwitches", 0),
            last_active_time=doc.get("lastActiveTime", ""),
        )


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class TechnicalData:
    language: str = ""
    color_depth: int = 0
    pixel_ratio: float = 0
    cookies_enabled: bool = False
    java_script_enabled: bool = True
    connection_speed: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        return {
            "language": self.language,
            "colorDepth": self.color_depth,
            "pixelRatio": self.pixel_ratio,
            "cookiesEnabled": self.cookies_enabled,
            "javaScriptEnabled": self.java_script_enabled,
            "connectionSpeed": self.connection_speed,
        }

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]) -> "TechnicalData":
        doc = doc or {}
        return cls(
            language=doc.get("language", ""),
            color_depth=doc.get("colorDepth", 0),
            pixel_ratio=doc.get("pixelRatio", 0),
            cookies_enabled=doc.get("cookiesEnabled", False),
            java_script_enabled=doc.get("javaScriptEnabled", True),
            connection_speed=doc.get("connectionSpeed"),
        )


@dataclass_json(letter_case=LetterCase.CAMEL)
@dataclass
class VisitorEvent:
    """One page-visit/session snapshot sent by the client tracker.

    ``timestamp`` is always assigned by the server at ingest.
    """
    id: str
    timestamp: datetime = field(
        default_factory=utcnow,
        metadata=config(encoder=isoformat, decoder=parse_datetime),
    )
    ip: Optional[str] = None
    user_agent: str = ""
    location: Location = field(default_factory=Location)
    device: Device = field(default_factory=Device)
    session: Session = field(default_factory=Session)
    engagement: Engagement = field(default_factory=Engagement)
    technical_data: TechnicalData = field(default_factory=TechnicalData)

    def to_document(self) -> Dict[str, Any]:
        """Convert to a MongoDB document (wire field names, native datetime)."""
        return {
            "id": self.id,
            "timestamp": ensure_utc(self.timestamp),
            "ip": self.ip,
            "userAgent": self.user_agent,
            "location": self.location.to_document(),
            "device": self.device.to_document(),
            "session": self.session.to_document(),
            "engagement": self.engagement.to_document(),
            "technicalData": self.technical_data.to_document(),
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "VisitorEvent":
        """Create a VisitorEvent from a MongoDB document."""
        timestamp = doc.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = parse_datetime(timestamp)
        return cls(
            id=doc.get("id", ""),
            timestamp=ensure_utc(timestamp) if timestamp else utcnow(),
            ip=doc.get("ip"),
            user_agent=doc.get("userAgent", ""),
            location=Location.from_document(doc.get("location")),
            device=Device.from_document(doc.get("device")),
            session=Session.from_document(doc.get("session")),
            engagement=Engagement.from_document(doc.get("engagement")),
            technical_data=TechnicalData.from_document(doc.get("technicalData")),
        )
