"""Wire schema of the payload sent by the client tracker."""

from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StrictStr, field_validator, model_validator
from pydantic.alias_generators import to_camel

from models.visitor import Device, Engagement, Location, Session, TechnicalData, VisitorEvent

# Largest integer BSON can store
INT64_MAX = 2**63 - 1


def _not_bool(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("must be a number, not a boolean")
    return value


def _number_to_text(value: Any) -> Any:
    # Geo services send some fields (zip codes, AS numbers) as numbers
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


Text = Annotated[str, BeforeValidator(_number_to_text)]
Number = Annotated[float, BeforeValidator(_not_bool), Field(allow_inf_nan=False)]
Counter = Annotated[int, BeforeValidator(_not_bool), Field(le=INT64_MAX)]


class WireModel(BaseModel):
    """camelCase keys; explicit nulls fall back to field defaults."""

    model_config = ConfigDict(alias_generator=to_camel, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


class LocationPayload(WireModel):
    country: Optional[Text] = None
    region: Optional[Text] = None
    city: Optional[Text] = None
    timezone: Optional[Text] = None
    lat: Optional[Number] = None
    lon: Optional[Number] = None
    isp: Optional[Text] = None
    org: Optional[Text] = None
    asn: Optional[Text] = Field(None, alias="as")

    def to_record(self) -> Location:
        return Location(**self.model_dump())


class DevicePayload(WireModel):
    type: Literal["mobile", "tablet", "desktop", "unknown"] = "unknown"
    os: Text = "Unknown"
    browser: Text = "Unknown"
    screen_resolution: Text = ""

    @field_validator("type", mode="before")
    @classmethod
    def _lowercase_type(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    @field_validator("os", "browser")
    @classmethod
    def _unknown_if_blank(cls, value: str) -> str:
        return value or "Unknown"

    def to_record(self) -> Device:
        return Device(**self.model_dump())


class SessionPayload(WireModel):
    session_id: Text = ""
    is_new_session: bool = False
    duration: Number = 0
    page_views: Counter = 1
    referrer: Optional[Text] = None
    entry_page: Text = ""
    exit_page: Optional[Text] = None

    @field_validator("duration")
    @classmethod
    def _non_negative(cls, value: float) -> float:
        return max(value, 0)

    @field_validator("page_views")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        # The tracker reports 0 before its first navigation is recorded
        return max(value, 1)

    def to_record(self) -> Session:
        return Session(**self.model_dump())


class EngagementPayload(WireModel):
    time_on_site: Number = 0
    scroll_depth: Number = 0
    click_count: Counter = 0
    tab_switches: Counter = 0
    last_active_time: Text = ""

    @field_validator("time_on_site", "click_count", "tab_switches")
    @classmethod
    def _non_negative(cls, value):
        return max(value, 0)

    @field_validator("scroll_depth")
    @classmethod
    def _percent(cls, value: float) -> float:
        return min(max(value, 0), 100)

    def to_record(self) -> Engagement:
        return Engagement(**self.model_dump())


class TechnicalDataPayload(WireModel):
    language: Text = ""
    color_depth: Counter = 0
    pixel_ratio: Number = 0
    cookies_enabled: bool = False
    java_script_enabled: bool = True
    connection_speed: Optional[Text] = None

    def to_record(self) -> TechnicalData:
        return TechnicalData(**self.model_dump())


class VisitorPayload(WireModel):
    """One tracker snapshot as received.

    Client-sent ``timestamp`` and ``ip`` are not part of the schema; the
    server assigns both at ingest.
    """

    id: StrictStr
    user_agent: Text = ""
    location: LocationPayload = Field(default_factory=LocationPayload)
    device: DevicePayload = Field(default_factory=DevicePayload)
    session: SessionPayload = Field(default_factory=SessionPayload)
    engagement: EngagementPayload = Field(default_factory=EngagementPayload)
    technical_data: TechnicalDataPayload = Field(default_factory=TechnicalDataPayload)

    @field_validator("id")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must be a non-empty string")
        return value

    def to_event(self) -> VisitorEvent:
        return VisitorEvent(
            id=self.id,
            user_agent=self.user_agent,
            location=self.location.to_record(),
            device=self.device.to_record(),
            session=self.session.to_record(),
            engagement=self.engagement.to_record(),
            technical_data=self.technical_data.to_record(),
        )
