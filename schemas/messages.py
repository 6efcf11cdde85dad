from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-05-01T12:00:00.000Z"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# Inbound (client -> server)

class JoinEvent(BaseModel):
    type: Literal["join"]
    roomId: Optional[str] = None
    username: Optional[str] = None


class MessageEvent(BaseModel):
    type: Literal["message"]
    content: Optional[str] = None


InboundEvent = Annotated[Union[JoinEvent, MessageEvent], Field(discriminator="type")]

inbound_adapter = TypeAdapter(InboundEvent)


def parse_inbound(raw: str) -> Union[JoinEvent, MessageEvent]:
    """Parse a raw frame into an inbound event. Raises pydantic.ValidationError on anything malformed."""
    return inbound_adapter.validate_json(raw)


# Outbound (server -> client)

class Member(BaseModel):
    username: str
    id: str


class JoinedNotice(BaseModel):
    type: Literal["joined"] = "joined"
    userId: str
    roomId: str
    timestamp: str = Field(default_factory=utc_timestamp)


class ErrorNotice(BaseModel):
    type: Literal["error"] = "error"
    message: str


class UserJoinedNotice(BaseModel):
    type: Literal["user-joined"] = "user-joined"
    username: str
    timestamp: str = Field(default_factory=utc_timestamp)
    users: List[Member]


class UserLeftNotice(BaseModel):
    type: Literal["user-left"] = "user-left"
    username: str
    timestamp: str = Field(default_factory=utc_timestamp)
    users: List[Member]


class ChatNotice(BaseModel):
    type: Literal["message"] = "message"
    content: str
    username: str
    userId: str
    timestamp: str = Field(default_factory=utc_timestamp)


OutboundNotice = Union[JoinedNotice, ErrorNotice, UserJoinedNotice, UserLeftNotice, ChatNotice]
