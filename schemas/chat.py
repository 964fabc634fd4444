from datetime import datetime
from typing import Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from constants import MESSAGE_KIND_TEXT


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# ---- State ----

class Session(CamelModel):
    session_id: str
    user_id: str
    display_name: str
    connected_at: datetime


class Room(CamelModel):
    room_id: str
    display_name: str
    is_group: bool = True
    # user_id -> display name at the time the member was added
    members: Dict[str, str] = Field(default_factory=dict)
    created_at: datetime


class Message(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    message_id: str
    room_id: str
    sender_user_id: str
    sender_display_name: str
    content: str
    kind: str = MESSAGE_KIND_TEXT
    sent_at: datetime
    sequence: int


class RoomSummary(Room):
    last_message: Optional[Message] = None
    message_count: int = 0


class HealthResponse(CamelModel):
    status: str
    current_timestamp: datetime
    active_session_count: int
    room_count: int


# ---- Inbound events ----

class InboundEnvelope(BaseModel):
    event: str
    data: Union[dict, str, None] = None


class RegisterEvent(CamelModel):
    user_id: Optional[str] = None
    display_name: Optional[str] = None


class JoinChatEvent(CamelModel):
    room_id: str


class SendMessageEvent(CamelModel):
    room_id: str
    content: Optional[str] = ""
    kind: Optional[str] = None

    @field_validator("content", mode="before")
    @classmethod
    def null_content_is_empty(cls, value):
        return "" if value is None else value


class TypingEvent(CamelModel):
    room_id: str


# ---- Outbound payloads ----

class PresenceNotice(CamelModel):
    user: Session
    message: str


class TypingSignal(CamelModel):
    user_id: str
    display_name: str
    room_id: str


class StopTypingSignal(CamelModel):
    user_id: str
    room_id: str
