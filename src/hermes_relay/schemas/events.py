# src/hermes_relay/schemas/events.py
"""Realtime wire protocol.

Every frame is a JSON object ``{"event": <name>, "data": <payload>}``.
Inbound frames are validated against a closed union of client events at the
transport boundary; components only ever see the typed models below.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from hermes_relay.core.errors import InvalidEventError
from hermes_relay.models import MessageKind

ChatId = Annotated[str, Field(min_length=1, max_length=64)]


class WireModel(BaseModel):
    """Base model using camelCase on the wire and snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-ready camelCase representation."""
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Client -> server
# ---------------------------------------------------------------------------


class SendMessagePayload(WireModel):
    """Body of a ``send_message`` event."""

    chat_id: ChatId
    ciphertext: str = Field(..., min_length=1, description="Client-encrypted message content")
    kind: MessageKind = MessageKind.TEXT
    reply_to_id: str | None = None


class MarkReadPayload(WireModel):
    """Body of a ``mark_read`` event."""

    chat_id: ChatId
    message_id: str = Field(..., min_length=1)


class JoinGroupEvent(BaseModel):
    event: Literal["join_group"]
    data: ChatId


class LeaveGroupEvent(BaseModel):
    event: Literal["leave_group"]
    data: ChatId


class SendMessageEvent(BaseModel):
    event: Literal["send_message"]
    data: SendMessagePayload


class TypingStartEvent(BaseModel):
    event: Literal["typing_start"]
    data: ChatId


class TypingStopEvent(BaseModel):
    event: Literal["typing_stop"]
    data: ChatId


class MarkReadEvent(BaseModel):
    event: Literal["mark_read"]
    data: MarkReadPayload


class SetPublicKeyEvent(BaseModel):
    event: Literal["set_public_key"]
    data: str = Field(..., min_length=1)


ClientEvent = Annotated[
    Union[
        JoinGroupEvent,
        LeaveGroupEvent,
        SendMessageEvent,
        TypingStartEvent,
        TypingStopEvent,
        MarkReadEvent,
        SetPublicKeyEvent,
    ],
    Field(discriminator="event"),
]

CLIENT_EVENT_TYPES: tuple[type[BaseModel], ...] = (
    JoinGroupEvent,
    LeaveGroupEvent,
    SendMessageEvent,
    TypingStartEvent,
    TypingStopEvent,
    MarkReadEvent,
    SetPublicKeyEvent,
)

_client_event_adapter: TypeAdapter[ClientEvent] = TypeAdapter(ClientEvent)


def parse_client_event(raw: Any) -> ClientEvent:
    """Validate a decoded inbound frame.

    Raises:
        InvalidEventError: If the frame is not one of the known client events
            or its payload does not validate.
    """
    try:
        return _client_event_adapter.validate_python(raw)
    except ValidationError as err:
        raise InvalidEventError() from err


# ---------------------------------------------------------------------------
# Server -> client
# ---------------------------------------------------------------------------


class SenderProjection(WireModel):
    """Denormalized sender attached to broadcast messages."""

    id: str
    name: str
    email: str
    avatar: str | None = None


class ReplySender(WireModel):
    name: str


class ReplyPreview(WireModel):
    """Short view of the message being replied to."""

    id: str
    ciphertext: str
    sender: ReplySender


class NewMessage(WireModel):
    """Persisted message plus denormalized sender and reply preview."""

    id: str
    chat_id: str
    sender_id: str
    ciphertext: str
    kind: MessageKind
    reply_to_id: str | None = None
    is_edited: bool = False
    edited_at: datetime | None = None
    deleted_at: datetime | None = None
    created_at: datetime
    sender: SenderProjection
    reply_to: ReplyPreview | None = None


class UserTyping(WireModel):
    account_id: str
    display_name: str
    is_typing: bool


class MessageRead(WireModel):
    message_id: str
    account_id: str
    display_name: str


class ErrorPayload(WireModel):
    message: str


def server_frame(event: str, payload: WireModel | None = None) -> dict[str, Any]:
    """Build an outbound frame for ``event``."""
    return {"event": event, "data": payload.to_wire() if payload is not None else None}
