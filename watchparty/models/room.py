"""
Room and chat message models for WatchParty.
"""

import random
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Room:
    """Represents a two-seat watch room and its last known playback state."""
    code: str
    host_id: Optional[str] = None
    guest_id: Optional[str] = None
    current_video_id: Optional[str] = None
    current_time: float = 0.0
    is_playing: bool = False
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        """Convert room to dictionary for JSON serialization."""
        return {
            'code': self.code,
            'hostId': self.host_id,
            'guestId': self.guest_id,
            'currentVideoId': self.current_video_id,
            'currentTime': self.current_time,
            'isPlaying': self.is_playing,
            'createdAt': self.created_at.isoformat(),
        }


@dataclass
class ChatMessage:
    """Represents a persisted chat message in a room."""
    id: int
    room_code: str
    user_id: str
    username: str
    content: str
    type: str = "text"  # text, emoji, image, system
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'roomCode': self.room_code,
            'userId': self.user_id,
            'username': self.username,
            'content': self.content,
            'type': self.type,
            'createdAt': self.created_at.isoformat(),
        }


def generate_room_code(length: int = 6) -> str:
    """Generate a room code of uppercase base-36 characters."""
    return ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))


def generate_user_id(length: int = 13) -> str:
    """Generate an opaque lowercase base-36 user id."""
    return ''.join(random.choices(string.ascii_lowercase + string.digits, k=length))
