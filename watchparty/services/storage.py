"""
Room and message storage for WatchParty.

``Storage`` is the contract the protocol handler depends on. Every method is a
coroutine so a durable backend can be dropped in; ``MemStorage`` keeps
everything in process memory and loses it on restart.
"""

import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, List, Optional

from ..models.room import ChatMessage, Room

logger = logging.getLogger("watchparty.services.storage")

ROOM_UPDATE_FIELDS = frozenset({
    'host_id', 'guest_id', 'current_video_id', 'current_time', 'is_playing',
})


class ConflictError(Exception):
    """Raised when creating a room whose code is already taken."""


class Storage(ABC):
    """Abstract persistence of rooms and their chat messages."""

    @abstractmethod
    async def create_room(self, room: Room) -> Room:
        """Insert a room keyed by its code. Raises ConflictError if the code exists."""

    @abstractmethod
    async def get_room_by_code(self, code: str) -> Optional[Room]:
        ...

    @abstractmethod
    async def update_room(self, code: str, /, **fields) -> Optional[Room]:
        """Merge ``fields`` into the room. Returns None if the room does not exist."""

    @abstractmethod
    async def delete_room(self, code: str) -> bool:
        """Remove a room and its messages. Returns whether the room existed."""

    @abstractmethod
    async def create_message(self, room_code: str, user_id: str, username: str,
                             content: str, message_type: str = "text") -> ChatMessage:
        """Append a message to the room's log and assign it a new id."""

    @abstractmethod
    async def get_messages_by_room(self, code: str, limit: int = 50) -> List[ChatMessage]:
        """Return the most recent ``limit`` messages, oldest first."""

    @abstractmethod
    async def add_user_to_room(self, code: str, user_id: str, is_host: bool) -> Optional[Room]:
        """Set the host or guest slot. Does not check the slot was empty."""


class MemStorage(Storage):
    """In-memory storage. No await happens inside a call, so each call is atomic on the event loop."""

    def __init__(self):
        self._rooms: Dict[str, Room] = {}
        self._messages: Dict[str, List[ChatMessage]] = {}
        self._message_ids = itertools.count(1)
        logger.info("🗄️ MemStorage initialized")

    async def create_room(self, room: Room) -> Room:
        if room.code in self._rooms:
            raise ConflictError(f"Room {room.code} already exists")

        self._rooms[room.code] = replace(room)
        self._messages[room.code] = []
        logger.info(f"🏠 Room {room.code} created")
        return replace(room)

    async def get_room_by_code(self, code: str) -> Optional[Room]:
        room = self._rooms.get(code)
        return replace(room) if room else None

    async def update_room(self, code: str, /, **fields) -> Optional[Room]:
        unknown = set(fields) - ROOM_UPDATE_FIELDS
        if unknown:
            raise ValueError(f"Unknown room fields: {sorted(unknown)}")

        room = self._rooms.get(code)
        if not room:
            return None

        updated = replace(room, **fields)
        self._rooms[code] = updated
        return replace(updated)

    async def delete_room(self, code: str) -> bool:
        deleted = self._rooms.pop(code, None) is not None
        self._messages.pop(code, None)
        if deleted:
            logger.info(f"🗑️ Room {code} deleted")
        return deleted

    async def create_message(self, room_code: str, user_id: str, username: str,
                             content: str, message_type: str = "text") -> ChatMessage:
        message = ChatMessage(
            id=next(self._message_ids),
            room_code=room_code,
            user_id=user_id,
            username=username,
            content=content,
            type=message_type,
        )
        self._messages.setdefault(room_code, []).append(message)
        logger.debug(f"💬 Message {message.id} stored in room {room_code}")
        return replace(message)

    async def get_messages_by_room(self, code: str, limit: int = 50) -> List[ChatMessage]:
        if limit <= 0:
            return []
        messages = self._messages.get(code, [])
        return [replace(message) for message in messages[-limit:]]

    async def add_user_to_room(self, code: str, user_id: str, is_host: bool) -> Optional[Room]:
        slot = 'host_id' if is_host else 'guest_id'
        return await self.update_room(code, **{slot: user_id})
