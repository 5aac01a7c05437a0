"""Domain models for the live result ticker and chat.

- LotteryResult: the single immutable snapshot shown to every client
- ResultUpdate: producer payload using the legacy ``1200``/``430`` keys
- Identity: a verified chat user attached to a subscriber
- ChatMessage: a stored and broadcast chat line
- ChatEvent: the ``{"type", "data"}`` envelope sent on chat channels
- InboundFrame: tagged union of frames a WebSocket client may send
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Annotated, Any, Literal, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

STAMP_FORMAT = "%H:%M:%S %d/%m/%Y"
VALUE_PLACEHOLDER = "--"
RESULT_PLACEHOLDER = "---"

# Myanmar Standard Time, used when the tz database is unavailable.
_MMT = timezone(timedelta(hours=6, minutes=30), name="MMT")


def resolve_zone(name: str = "Asia/Yangon") -> tzinfo:
    """Return the named zone, falling back to a fixed UTC+06:30 offset."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return _MMT


def local_now(zone: tzinfo | None = None) -> datetime:
    return datetime.now(zone or resolve_zone())


def format_stamp(moment: datetime) -> str:
    """Render a timestamp the way the ticker displays it: ``HH:MM:SS DD/MM/YYYY``."""
    return moment.strftime(STAMP_FORMAT)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EventType(str, Enum):
    MESSAGE = "message"
    ONLINE = "online"
    USER_JOINED = "user_joined"
    USER_LEFT = "user_left"
    CONNECTED = "connected"
    PONG = "pong"
    HEARTBEAT = "heartbeat"
    BANNED = "banned"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Result snapshot
# ---------------------------------------------------------------------------


class LotteryResult(BaseModel):
    """Current draw state. Replaced wholesale on every producer update."""

    model_config = ConfigDict(frozen=True)

    draw_date: str = ""
    live_number: str = VALUE_PLACEHOLDER
    service_status: str = "Off"
    noon_set: str = VALUE_PLACEHOLDER
    noon_value: str = VALUE_PLACEHOLDER
    noon_result: str = RESULT_PLACEHOLDER
    evening_set: str = VALUE_PLACEHOLDER
    evening_value: str = VALUE_PLACEHOLDER
    evening_result: str = RESULT_PLACEHOLDER
    morning_modern: str = RESULT_PLACEHOLDER
    morning_internet: str = RESULT_PLACEHOLDER
    afternoon_modern: str = RESULT_PLACEHOLDER
    afternoon_internet: str = RESULT_PLACEHOLDER
    last_update: str = ""

    @classmethod
    def initial(cls, zone: tzinfo | None = None) -> LotteryResult:
        """Placeholder snapshot stamped with the process start time."""
        return cls(last_update=format_stamp(local_now(zone)))


class LiveView(LotteryResult):
    """Snapshot plus the viewer count computed at encode time."""

    active_viewers: int = 0


def _or(value: str, placeholder: str) -> str:
    return value if value else placeholder


class ResultUpdate(BaseModel):
    """Producer payload. Every key is optional; only strings are accepted."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", strict=True)

    date: str = ""
    live: str = ""
    status: str = ""
    noon_set: str = Field(default="", alias="1200set")
    noon_value: str = Field(default="", alias="1200value")
    noon_result: str = Field(default="", alias="1200")
    evening_set: str = Field(default="", alias="430set")
    evening_value: str = Field(default="", alias="430value")
    evening_result: str = Field(default="", alias="430")
    morning_modern: str = Field(default="", alias="930modern")
    morning_internet: str = Field(default="", alias="930internet")
    afternoon_modern: str = Field(default="", alias="200modern")
    afternoon_internet: str = Field(default="", alias="200internet")
    updatetime: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        # JSON null reads as a missing field; other non-strings stay rejected.
        return "" if v is None else v

    def to_result(self) -> LotteryResult:
        """Build the display snapshot, substituting placeholders for empty fields."""
        return LotteryResult(
            draw_date=self.date,
            live_number=_or(self.live, VALUE_PLACEHOLDER),
            service_status=self.status,
            noon_set=_or(self.noon_set, VALUE_PLACEHOLDER),
            noon_value=_or(self.noon_value, VALUE_PLACEHOLDER),
            noon_result=_or(self.noon_result, RESULT_PLACEHOLDER),
            evening_set=_or(self.evening_set, VALUE_PLACEHOLDER),
            evening_value=_or(self.evening_value, VALUE_PLACEHOLDER),
            evening_result=_or(self.evening_result, RESULT_PLACEHOLDER),
            morning_modern=_or(self.morning_modern, VALUE_PLACEHOLDER),
            morning_internet=_or(self.morning_internet, VALUE_PLACEHOLDER),
            afternoon_modern=_or(self.afternoon_modern, VALUE_PLACEHOLDER),
            afternoon_internet=_or(self.afternoon_internet, VALUE_PLACEHOLDER),
            last_update=self.updatetime,
        )


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class Identity(BaseModel):
    """A verified chat user."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    username: str = ""
    photo_url: str = ""
    email: str = Field(default="", exclude=True)


class ChatMessage(BaseModel):
    id: int
    user_id: str
    username: str
    photo_url: str = ""
    message: str
    created_at: datetime


class ChatEvent(BaseModel):
    """Envelope for everything pushed on a chat channel."""

    type: EventType
    data: Any = None

    def encode(self) -> str:
        return self.model_dump_json()


def chat_event(event_type: EventType, data: Any = None) -> str:
    """Encode a chat event once so the same string can be shared by every recipient."""
    return ChatEvent(type=event_type, data=data).encode()


class SendMessageFrame(BaseModel):
    type: Literal["message"]
    message: str = ""


class PingFrame(BaseModel):
    type: Literal["ping"]


InboundFrame = Annotated[Union[SendMessageFrame, PingFrame], Field(discriminator="type")]

_inbound_adapter: TypeAdapter[SendMessageFrame | PingFrame] = TypeAdapter(InboundFrame)


def parse_inbound(raw: str | bytes) -> SendMessageFrame | PingFrame:
    """Parse a raw WebSocket frame. Raises ``pydantic.ValidationError`` on bad input."""
    return _inbound_adapter.validate_json(raw)
