"""
WebSocket wire protocol for WatchParty.

Every frame is a JSON object ``{"type": str, "payload": object, "timestamp": ms}``.
Client frames are decoded once into one of the pydantic models below; the
server builds its own frames with :func:`envelope`.
"""

import json
import time
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

# Client -> server
JOIN_ROOM = "join_room"
SYNC = "sync"
PLAYBACK_CONTROL = "playback_control"
WEBRTC_SIGNAL = "webrtc_signal"
VOICE_OFFER = "voice_offer"
VOICE_ANSWER = "voice_answer"
VOICE_ICE = "voice_ice"
CHAT = "chat"

# Server -> client
JOINED_ROOM = "joined_room"
USER_JOIN = "user_join"
USER_DISCONNECT = "user_disconnect"
MESSAGE_HISTORY = "message_history"
ERROR = "error"

CLIENT_MESSAGE_TYPES = frozenset({
    JOIN_ROOM, SYNC, PLAYBACK_CONTROL, WEBRTC_SIGNAL,
    VOICE_OFFER, VOICE_ANSWER, VOICE_ICE, CHAT,
})

# Error strings surfaced to clients
ERR_ROOM_NOT_FOUND = "Room not found"
ERR_ROOM_FULL = "Room is full"
ERR_SLOT_TAKEN = "Slot already taken"
ERR_INVALID_FORMAT = "Invalid message format"
ERR_TOO_LARGE = "Message too large"


class ProtocolError(Exception):
    """Raised when an inbound frame cannot be decoded."""


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JoinRoomPayload(_Payload):
    room_code: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    username: str = Field(min_length=1)
    is_host: bool = False

    @field_validator('room_code', 'user_id', 'username', mode='before')
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class SyncPayload(_Payload):
    current_time: float
    is_playing: bool
    video_id: Optional[str] = None


class PlaybackControlPayload(_Payload):
    action: Literal["play", "pause", "seek", "video_change"]
    current_time: Optional[float] = None
    video_id: Optional[str] = None


class WebRTCSignalPayload(_Payload):
    type: str = Field(min_length=1)
    data: Any

    @field_validator('data')
    @classmethod
    def _non_empty(cls, value: Any) -> Any:
        if not value:
            raise ValueError("signal data must not be empty")
        return value


class ChatPayload(_Payload):
    content: str = Field(min_length=1)
    message_type: Literal["text", "emoji", "image", "system"] = "text"


class _Envelope(BaseModel):
    timestamp: Optional[float] = None


class JoinRoomMessage(_Envelope):
    type: Literal["join_room"]
    payload: JoinRoomPayload


class SyncMessage(_Envelope):
    type: Literal["sync"]
    payload: SyncPayload


class PlaybackControlMessage(_Envelope):
    type: Literal["playback_control"]
    payload: PlaybackControlPayload


class WebRTCSignalMessage(_Envelope):
    type: Literal["webrtc_signal"]
    payload: WebRTCSignalPayload


class VoiceSignalMessage(_Envelope):
    """Legacy voice signaling; payload is opaque and relayed as-is."""
    type: Literal["voice_offer", "voice_answer", "voice_ice"]
    payload: Dict[str, Any] = Field(default_factory=dict)


class ChatMessageIn(_Envelope):
    type: Literal["chat"]
    payload: ChatPayload


ClientMessage = Annotated[
    Union[
        JoinRoomMessage,
        SyncMessage,
        PlaybackControlMessage,
        WebRTCSignalMessage,
        VoiceSignalMessage,
        ChatMessageIn,
    ],
    Field(discriminator="type"),
]

_client_message_adapter = TypeAdapter(ClientMessage)


def parse_frame(text: str) -> Dict[str, Any]:
    """Parse raw frame text into a JSON object with a string ``type``."""
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"frame is not valid JSON: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        raise ProtocolError("frame must be an object with a string 'type'")
    return data


def decode_message(data: Dict[str, Any]) -> ClientMessage:
    """Validate a parsed frame against the schema for its ``type``."""
    try:
        return _client_message_adapter.validate_python(data)
    except ValidationError as e:
        raise ProtocolError(f"invalid {data.get('type')} payload: {e.error_count()} error(s)") from e


def now_ms() -> int:
    return int(time.time() * 1000)


def envelope(message_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Build an outbound frame."""
    return {
        "type": message_type,
        "payload": payload,
        "timestamp": now_ms(),
    }


def error_message(message: str) -> Dict[str, Any]:
    return envelope(ERROR, {"message": message})
