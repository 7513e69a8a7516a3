"""
WebSocket event handlers for WatchParty.

One ``WebSocketEventHandler`` serves every connection. Each connection moves
``unjoined -> joined -> closed``; until it has joined, everything except
``join_room`` is ignored.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Union

from fastapi import WebSocket
from fastapi.websockets import WebSocketDisconnect

from ..config import MAX_MESSAGE_BYTES, MESSAGE_HISTORY_LIMIT, WS_IDLE_TIMEOUT
from ..models import protocol
from ..models.room import Room
from ..services.room_registry import (
    CLOSE_REPLACED,
    Connection,
    RoomFullError,
    RoomRegistry,
    SlotTakenError,
)
from ..services.storage import ConflictError, Storage

logger = logging.getLogger("watchparty.handlers.websocket_events")

CLOSE_IDLE = 4001


class WebSocketEventHandler:
    """Dispatches WebSocket frames for all rooms."""

    def __init__(self, storage: Storage, registry: RoomRegistry,
                 idle_timeout: Optional[float] = None,
                 max_message_bytes: int = MAX_MESSAGE_BYTES,
                 history_limit: int = MESSAGE_HISTORY_LIMIT):
        self.storage = storage
        self.registry = registry
        self.idle_timeout = WS_IDLE_TIMEOUT if idle_timeout is None else idle_timeout
        self.max_message_bytes = max_message_bytes
        self.history_limit = history_limit
        self._handlers = {
            protocol.SYNC: self.handle_sync,
            protocol.PLAYBACK_CONTROL: self.handle_playback_control,
            protocol.WEBRTC_SIGNAL: self.handle_signal,
            protocol.VOICE_OFFER: self.handle_signal,
            protocol.VOICE_ANSWER: self.handle_signal,
            protocol.VOICE_ICE: self.handle_signal,
            protocol.CHAT: self.handle_chat,
        }
        logger.info("🔌 WebSocket event handlers registered")

    async def serve(self, websocket: WebSocket) -> None:
        """Run one connection until the socket closes."""
        await websocket.accept()
        connection = Connection(websocket)
        logger.info("🔗 Client connected")

        try:
            while True:
                frame = await self._receive_frame(connection)
                if frame is None:
                    break
                await self.handle_frame(connection, frame)
        except WebSocketDisconnect:
            pass
        finally:
            await self.handle_disconnect(connection)

    async def _receive_frame(self, connection: Connection) -> Optional[Union[str, bytes]]:
        """Wait for the next data frame. Returns None when the connection should end."""
        try:
            if self.idle_timeout and self.idle_timeout > 0:
                message = await asyncio.wait_for(connection.websocket.receive(), timeout=self.idle_timeout)
            else:
                message = await connection.websocket.receive()
        except asyncio.TimeoutError:
            logger.info(f"⏰ Closing idle connection {connection!r} after {self.idle_timeout}s")
            await connection.close(CLOSE_IDLE)
            return None
        except RuntimeError:
            # receive() after the socket was closed from our side
            return None

        if message["type"] == "websocket.disconnect":
            return None
        if message.get("text") is not None:
            return message["text"]
        if message.get("bytes") is not None:
            return message["bytes"]
        return ""

    async def handle_frame(self, connection: Connection, frame: Union[str, bytes]) -> None:
        """Decode and dispatch one inbound frame. Never raises."""
        try:
            try:
                text = frame.decode("utf-8") if isinstance(frame, bytes) else frame
            except UnicodeDecodeError as e:
                logger.warning(f"⚠️ Frame from {connection!r} is not UTF-8: {e}")
                await connection.send(protocol.error_message(protocol.ERR_INVALID_FORMAT))
                return

            if len(text.encode("utf-8")) > self.max_message_bytes:
                logger.warning(f"📦 Oversized frame from {connection!r}")
                await connection.send(protocol.error_message(protocol.ERR_TOO_LARGE))
                return

            try:
                data = protocol.parse_frame(text)
            except protocol.ProtocolError as e:
                logger.warning(f"⚠️ Malformed frame from {connection!r}: {e}")
                await connection.send(protocol.error_message(protocol.ERR_INVALID_FORMAT))
                return

            message_type = data["type"]
            if message_type not in protocol.CLIENT_MESSAGE_TYPES:
                logger.debug(f"Ignoring unknown message type {message_type!r}")
                return

            if message_type == protocol.JOIN_ROOM:
                if connection.is_joined or connection.join_rejected:
                    logger.debug(f"Ignoring join_room from {connection!r} (rejected={connection.join_rejected})")
                    return
            elif not connection.is_joined:
                logger.debug(f"Ignoring {message_type} from unjoined connection")
                return

            try:
                message = protocol.decode_message(data)
            except protocol.ProtocolError as e:
                logger.warning(f"⚠️ Rejected {message_type} from {connection!r}: {e}")
                await connection.send(protocol.error_message(protocol.ERR_INVALID_FORMAT))
                return

            if message_type == protocol.JOIN_ROOM:
                await self.handle_join_room(connection, message)
            else:
                await self._handlers[message_type](connection, message, data)

        except Exception:
            logger.exception(f"❌ Error handling frame from {connection!r}")
            await connection.send(protocol.error_message(protocol.ERR_INVALID_FORMAT))

    async def _get_or_create_room(self, code: str, user_id: str, is_host: bool) -> Optional[Room]:
        room = await self.storage.get_room_by_code(code)
        if room or not is_host:
            return room

        try:
            return await self.storage.create_room(Room(code=code, host_id=user_id))
        except ConflictError:
            # Created by someone else while we were waiting on storage
            return await self.storage.get_room_by_code(code)

    async def handle_join_room(self, connection: Connection, message: protocol.JoinRoomMessage) -> None:
        """Handle a user joining (or re-joining) a room."""
        payload = message.payload
        room_code = payload.room_code

        room = await self._get_or_create_room(room_code, payload.user_id, payload.is_host)
        if not room:
            logger.warning(f"❌ Attempted to join non-existent room {room_code}")
            connection.join_rejected = True
            await connection.send(protocol.error_message(protocol.ERR_ROOM_NOT_FOUND))
            return

        try:
            self.registry.check_capacity(room_code, payload.user_id)
            self.registry.check_slot(room, payload.user_id, payload.is_host)
        except RoomFullError as e:
            logger.warning(f"🚫 {e}")
            connection.join_rejected = True
            await connection.send(protocol.error_message(protocol.ERR_ROOM_FULL))
            return
        except SlotTakenError as e:
            logger.warning(f"🚫 {e}")
            connection.join_rejected = True
            await connection.send(protocol.error_message(protocol.ERR_SLOT_TAKEN))
            return

        connection.user_id = payload.user_id
        connection.username = payload.username
        connection.is_host = payload.is_host
        replaced = self.registry.register(room_code, connection)
        for stale in replaced:
            await stale.close(CLOSE_REPLACED)

        room = await self.storage.add_user_to_room(room_code, payload.user_id, payload.is_host) or room

        await connection.send(protocol.envelope(protocol.JOINED_ROOM, {
            'room': room.to_dict(),
            'userId': payload.user_id,
            'isHost': payload.is_host,
            'connectedUsers': self.registry.connected_users(room_code),
        }))

        if room.current_video_id:
            logger.debug(f"🎬 Sending current video {room.current_video_id} to {payload.username}")
            await connection.send(protocol.envelope(protocol.PLAYBACK_CONTROL, {
                'action': 'video_change',
                'currentTime': room.current_time or 0,
                'videoId': room.current_video_id,
            }))

        await self.registry.broadcast(
            room_code,
            protocol.envelope(protocol.USER_JOIN, connection.identity()),
            exclude=connection,
        )

        history = await self.storage.get_messages_by_room(room_code, self.history_limit)
        await connection.send(protocol.envelope(protocol.MESSAGE_HISTORY, {
            'messages': [m.to_dict() for m in history],
        }))

        logger.info(f"✅ {payload.username} joined room {room_code} as "
                    f"{'host' if payload.is_host else 'guest'}")

    async def handle_sync(self, connection: Connection, message: protocol.SyncMessage,
                          raw: Dict[str, Any]) -> None:
        """Store the sender's playback position and relay it."""
        payload = message.payload
        updates = {
            'current_time': payload.current_time,
            'is_playing': payload.is_playing,
        }
        if payload.video_id is not None:
            updates['current_video_id'] = payload.video_id

        await self.storage.update_room(connection.room_code, **updates)
        await self.registry.broadcast(connection.room_code, raw, exclude=connection)
        logger.debug(f"🔁 Sync in room {connection.room_code}: {payload.current_time}s "
                     f"({'playing' if payload.is_playing else 'paused'})")

    async def handle_playback_control(self, connection: Connection,
                                      message: protocol.PlaybackControlMessage,
                                      raw: Dict[str, Any]) -> None:
        """Handle play, pause, seek and video change events."""
        payload = message.payload
        updates: Dict[str, Any] = {}

        if payload.action == 'play':
            updates['is_playing'] = True
        elif payload.action == 'pause':
            updates['is_playing'] = False
        elif payload.action == 'video_change':
            updates['is_playing'] = False
            updates['current_time'] = 0

        if payload.current_time is not None:
            updates['current_time'] = payload.current_time
        if payload.video_id:
            updates['current_video_id'] = payload.video_id

        if updates:
            await self.storage.update_room(connection.room_code, **updates)
        await self.registry.broadcast(connection.room_code, raw, exclude=connection)
        logger.info(f"🎮 {payload.action} by {connection.username} in room {connection.room_code}")

    async def handle_signal(self, connection: Connection, message: Any, raw: Dict[str, Any]) -> None:
        """Relay WebRTC signaling without looking inside it."""
        await self.registry.broadcast(connection.room_code, raw, exclude=connection)
        logger.debug(f"📡 Forwarded {raw['type']} in room {connection.room_code}")

    async def handle_chat(self, connection: Connection, message: protocol.ChatMessageIn,
                          raw: Dict[str, Any]) -> None:
        """Persist a chat message and send it to everyone, sender included."""
        payload = message.payload
        saved = await self.storage.create_message(
            room_code=connection.room_code,
            user_id=connection.user_id,
            username=connection.username,
            content=payload.content,
            message_type=payload.message_type,
        )

        await self.registry.broadcast(connection.room_code, protocol.envelope(protocol.CHAT, {
            'id': saved.id,
            'userId': saved.user_id,
            'username': saved.username,
            'content': saved.content,
            'messageType': saved.type,
            'createdAt': saved.created_at.isoformat(),
        }))
        logger.debug(f"💬 {connection.username} in room {connection.room_code}: {payload.message_type}")

    async def handle_disconnect(self, connection: Connection) -> None:
        """Tear down membership once the socket is gone."""
        room_code = connection.room_code
        was_member = await self.registry.unregister(connection)
        logger.info(f"🔗 Client {connection.user_id or 'unjoined'} disconnected")

        if was_member:
            await self.registry.broadcast(room_code, protocol.envelope(protocol.USER_DISCONNECT, {
                'userId': connection.user_id,
                'username': connection.username,
            }))
