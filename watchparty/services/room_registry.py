"""
Live connection registry for WatchParty.

Tracks which WebSockets are joined to which room, enforces the two-seat
capacity and provides room-scoped broadcast.
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from fastapi import WebSocket
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from ..config import ROOM_CAPACITY
from ..models.room import Room
from .storage import Storage

logger = logging.getLogger("watchparty.services.room_registry")

CLOSE_REPLACED = 4000


class RoomFullError(Exception):
    """Raised when a room already holds its maximum number of distinct users."""


class SlotTakenError(Exception):
    """Raised when the requested host/guest slot belongs to another live user."""


class ConnectionState(str, Enum):
    UNJOINED = "unjoined"
    JOINED = "joined"
    CLOSED = "closed"


class Connection:
    """One client WebSocket and the identity it joined with."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.state = ConnectionState.UNJOINED
        self.room_code: Optional[str] = None
        self.user_id: Optional[str] = None
        self.username: Optional[str] = None
        self.is_host = False
        self.join_rejected = False

    @property
    def is_joined(self) -> bool:
        return self.state == ConnectionState.JOINED

    @property
    def is_open(self) -> bool:
        return (
            self.state != ConnectionState.CLOSED
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def identity(self) -> Dict[str, Any]:
        return {
            'userId': self.user_id,
            'username': self.username,
            'isHost': self.is_host,
        }

    async def send(self, message: Union[Dict[str, Any], str]) -> bool:
        """Send a frame if the socket is open. Returns whether it was written."""
        if not self.is_open:
            return False

        text = message if isinstance(message, str) else json.dumps(message)
        try:
            await self.websocket.send_text(text)
            return True
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.debug(f"📭 Failed to send to {self.user_id}: {e}")
            return False

    async def close(self, code: int = 1000) -> None:
        self.state = ConnectionState.CLOSED
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self.websocket.close(code=code)
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.debug(f"Socket for {self.user_id} already closed: {e}")

    def __repr__(self) -> str:
        return f"<Connection {self.user_id}@{self.room_code} {self.state.value}>"


class RoomRegistry:
    """Manages the live connection set of every room."""

    def __init__(self, storage: Storage, capacity: int = ROOM_CAPACITY):
        self._storage = storage
        self._capacity = capacity
        self._rooms: Dict[str, List[Connection]] = {}
        logger.info("🏢 RoomRegistry initialized")

    def members(self, room_code: str) -> List[Connection]:
        return list(self._rooms.get(room_code, []))

    def user_ids(self, room_code: str) -> List[str]:
        seen = []
        for connection in self._rooms.get(room_code, []):
            if connection.user_id not in seen:
                seen.append(connection.user_id)
        return seen

    def connected_users(self, room_code: str) -> List[Dict[str, Any]]:
        return [connection.identity() for connection in self._rooms.get(room_code, [])]

    def check_capacity(self, room_code: str, user_id: str) -> None:
        """Raise RoomFullError unless ``user_id`` may take a seat in the room."""
        present = self.user_ids(room_code)
        if user_id not in present and len(present) >= self._capacity:
            raise RoomFullError(f"Room {room_code} is full ({self._capacity} users)")

    def check_slot(self, room: Room, user_id: str, is_host: bool) -> None:
        """Raise SlotTakenError if another live user holds the requested slot."""
        holder = room.host_id if is_host else room.guest_id
        if holder and holder != user_id and holder in self.user_ids(room.code):
            slot = "host" if is_host else "guest"
            raise SlotTakenError(f"The {slot} slot of room {room.code} belongs to {holder}")

    def register(self, room_code: str, connection: Connection) -> List[Connection]:
        """Add a joined connection to its room.

        A previous connection of the same user is dropped from the room and
        returned so the caller can close it.
        """
        self.check_capacity(room_code, connection.user_id)

        connections = self._rooms.setdefault(room_code, [])
        replaced = [c for c in connections if c.user_id == connection.user_id and c is not connection]
        for stale in replaced:
            connections.remove(stale)
            stale.state = ConnectionState.CLOSED
            logger.info(f"🔄 Replacing stale connection of {stale.user_id} in room {room_code}")

        if connection not in connections:
            connections.append(connection)
        connection.room_code = room_code
        connection.state = ConnectionState.JOINED

        logger.info(f"👤 {connection.username} ({connection.user_id}) registered in room {room_code} "
                    f"(connections: {len(connections)})")
        return replaced

    async def unregister(self, connection: Connection) -> bool:
        """Remove a connection. Deletes the room everywhere once it is empty.

        Returns False if the connection was not a member of any room.
        """
        room_code = connection.room_code
        connection.state = ConnectionState.CLOSED
        connections = self._rooms.get(room_code) if room_code else None
        if not connections or connection not in connections:
            return False

        connections.remove(connection)
        logger.info(f"👋 {connection.username} ({connection.user_id}) left room {room_code}")

        if not connections:
            del self._rooms[room_code]
            await self._storage.delete_room(room_code)
            logger.info(f"🧹 Room {room_code} is empty and was removed")
        return True

    async def broadcast(self, room_code: str, message: Dict[str, Any],
                        exclude: Optional[Connection] = None) -> int:
        """Send a frame to every open connection in the room except ``exclude``.

        Returns the number of connections written to.
        """
        text = json.dumps(message)
        delivered = 0
        for connection in self.members(room_code):
            if connection is exclude:
                continue
            if await connection.send(text):
                delivered += 1
        return delivered

    def get_stats(self) -> Dict[str, Any]:
        return {
            'total_rooms': len(self._rooms),
            'total_connections': sum(len(c) for c in self._rooms.values()),
            'rooms': {code: len(connections) for code, connections in self._rooms.items()},
        }

    async def close_all(self, code: int = 1001) -> int:
        """Close every live connection and forget all rooms. Returns the number closed."""
        closed = 0
        for room_code in list(self._rooms):
            for connection in self._rooms.pop(room_code):
                await connection.close(code)
                closed += 1
        return closed
