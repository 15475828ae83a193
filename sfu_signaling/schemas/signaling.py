"""Data contracts for the signaling WebSocket protocol."""
from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SignalingEvent(str, Enum):
    """Inbound request names."""

    JOIN_ROOM = "join-room"
    CREATE_TRANSPORT = "create-transport"
    CONNECT_TRANSPORT = "connect-transport"
    PRODUCE = "produce"
    CONSUME = "consume"
    LEAVE_ROOM = "leave-room"


EVENT_ALIASES: dict[str, SignalingEvent] = {
    "create-web-rtc-transport": SignalingEvent.CREATE_TRANSPORT,
}


def resolve_event(name: str) -> SignalingEvent | None:
    """Map a client event name, including legacy aliases, to a request type."""

    if name in EVENT_ALIASES:
        return EVENT_ALIASES[name]
    try:
        return SignalingEvent(name)
    except ValueError:
        return None


class Notification(str, Enum):
    """Outbound, fire-and-forget event names."""

    CONNECTED = "connected"
    ERROR = "error"
    RTP_CAPABILITIES = "rtp-capabilities"
    NEW_PRODUCER = "new-producer"
    PEER_DISCONNECTED = "peer-disconnected"


class ErrorCode(str, Enum):
    INVALID_MEETING_ID = "INVALID_MEETING_ID"
    INVALID_USER_ID = "INVALID_USER_ID"
    INVALID_USER_NAME = "INVALID_USER_NAME"
    INVALID_TRANSPORT_ID = "INVALID_TRANSPORT_ID"
    INVALID_PRODUCER_ID = "INVALID_PRODUCER_ID"
    INVALID_KIND = "INVALID_KIND"
    INVALID_DTLS_PARAMETERS = "INVALID_DTLS_PARAMETERS"
    INVALID_RTP_PARAMETERS = "INVALID_RTP_PARAMETERS"

    JOIN_ROOM_ERROR = "JOIN_ROOM_ERROR"
    RTP_CAPABILITIES_ERROR = "RTP_CAPABILITIES_ERROR"
    CREATE_TRANSPORT_ERROR = "CREATE_TRANSPORT_ERROR"
    CONNECT_TRANSPORT_ERROR = "CONNECT_TRANSPORT_ERROR"
    PRODUCE_ERROR = "PRODUCE_ERROR"
    CONSUME_ERROR = "CONSUME_ERROR"

    INVALID_MESSAGE = "INVALID_MESSAGE"
    UNKNOWN_EVENT = "UNKNOWN_EVENT"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SignalingEnvelope(CamelModel):
    """Frame sent by clients: ``{"event": ..., "ackId": ..., "data": {...}}``."""

    event: str = Field(..., min_length=1, description="Request name")
    ack_id: int | str | None = Field(default=None, description="Echoed on the reply frame")
    data: dict[str, Any] | None = Field(default=None, description="Request payload")


class ErrorMessage(CamelModel):
    type: Literal["error"] = "error"
    code: ErrorCode
    message: str


class ExistingProducer(CamelModel):
    peer_id: str
    user_id: str
    user_name: str
    producers: list[Any] = Field(default_factory=list)


class JoinRoomReply(CamelModel):
    existing_producers: list[ExistingProducer] = Field(default_factory=list)
    rtp_capabilities: dict[str, Any] = Field(default_factory=dict)


class NewProducerEvent(CamelModel):
    producer_id: str
    peer_id: str
    kind: Literal["audio", "video"]
    user_id: str
    user_name: str


class PeerDisconnectedEvent(CamelModel):
    peer_id: str


def build_frame(event: str, data: Any, ack_id: int | str | None = None) -> dict[str, Any]:
    """Wrap a payload in the outbound frame layout."""

    frame: dict[str, Any] = {"event": event, "data": data}
    if ack_id is not None:
        frame["ackId"] = ack_id
    return frame
