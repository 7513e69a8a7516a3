import json

import pytest
from fastapi.websockets import WebSocketState

from watchparty.models.room import Room
from watchparty.services.room_registry import (
    Connection,
    ConnectionState,
    RoomFullError,
    RoomRegistry,
    SlotTakenError,
)


class FakeWebSocket:
    """Records frames instead of writing them to a socket."""

    def __init__(self):
        self.sent = []
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.close_code = None

    async def send_text(self, text):
        self.sent.append(json.loads(text))

    async def close(self, code=1000):
        self.application_state = WebSocketState.DISCONNECTED
        self.close_code = code


def make_connection(user_id, username=None, is_host=False):
    connection = Connection(FakeWebSocket())
    connection.user_id = user_id
    connection.username = username or user_id
    connection.is_host = is_host
    return connection


@pytest.fixture
def registry(storage):
    return RoomRegistry(storage)


def test_register_marks_connection_joined(registry):
    host = make_connection("host", is_host=True)

    assert registry.register("ABC123", host) == []

    assert host.state == ConnectionState.JOINED
    assert host.room_code == "ABC123"
    assert registry.connected_users("ABC123") == [
        {"userId": "host", "username": "host", "isHost": True},
    ]


def test_third_distinct_user_is_rejected(registry):
    registry.register("ABC123", make_connection("host", is_host=True))
    registry.register("ABC123", make_connection("guest"))

    with pytest.raises(RoomFullError):
        registry.register("ABC123", make_connection("third"))

    assert registry.user_ids("ABC123") == ["host", "guest"]


def test_rejoin_replaces_stale_connection(registry):
    registry.register("ABC123", make_connection("host", is_host=True))
    stale = make_connection("guest")
    registry.register("ABC123", stale)

    fresh = make_connection("guest")
    replaced = registry.register("ABC123", fresh)

    assert replaced == [stale]
    assert stale.state == ConnectionState.CLOSED
    assert registry.members("ABC123")[-1] is fresh
    assert len(registry.members("ABC123")) == 2


def test_check_slot_blocks_live_holder(registry):
    room = Room(code="ABC123", host_id="host")
    registry.register("ABC123", make_connection("host", is_host=True))

    with pytest.raises(SlotTakenError):
        registry.check_slot(room, "impostor", is_host=True)

    registry.check_slot(room, "host", is_host=True)
    registry.check_slot(room, "guest", is_host=False)


def test_check_slot_allows_reclaiming_absent_holder(registry):
    room = Room(code="ABC123", host_id="host", guest_id="old-guest")
    registry.register("ABC123", make_connection("host", is_host=True))

    registry.check_slot(room, "new-guest", is_host=False)


@pytest.mark.asyncio
async def test_broadcast_skips_excluded_and_closed(registry):
    host = make_connection("host", is_host=True)
    guest = make_connection("guest")
    registry.register("ABC123", host)
    registry.register("ABC123", guest)

    delivered = await registry.broadcast("ABC123", {"type": "sync"}, exclude=host)
    assert delivered == 1
    assert host.websocket.sent == []
    assert guest.websocket.sent == [{"type": "sync"}]

    guest.websocket.client_state = WebSocketState.DISCONNECTED
    delivered = await registry.broadcast("ABC123", {"type": "chat"})
    assert delivered == 1
    assert host.websocket.sent == [{"type": "chat"}]
    assert len(guest.websocket.sent) == 1


@pytest.mark.asyncio
async def test_broadcast_to_unknown_room(registry):
    assert await registry.broadcast("NOPE00", {"type": "sync"}) == 0


@pytest.mark.asyncio
async def test_unregister_last_connection_deletes_room(registry, storage):
    await storage.create_room(Room(code="ABC123", host_id="host"))
    await storage.create_message("ABC123", "host", "host", "hi")
    host = make_connection("host", is_host=True)
    guest = make_connection("guest")
    registry.register("ABC123", host)
    registry.register("ABC123", guest)

    assert await registry.unregister(guest) is True
    assert await storage.get_room_by_code("ABC123") is not None

    assert await registry.unregister(host) is True
    assert registry.members("ABC123") == []
    assert await storage.get_room_by_code("ABC123") is None
    assert await storage.get_messages_by_room("ABC123") == []


@pytest.mark.asyncio
async def test_unregister_non_member(registry):
    assert await registry.unregister(make_connection("ghost")) is False


@pytest.mark.asyncio
async def test_close_all(registry):
    host = make_connection("host", is_host=True)
    registry.register("ABC123", host)
    registry.register("XYZ789", make_connection("other"))

    assert registry.get_stats() == {
        "total_rooms": 2,
        "total_connections": 2,
        "rooms": {"ABC123": 1, "XYZ789": 1},
    }

    assert await registry.close_all() == 2
    assert host.websocket.close_code == 1001
    assert registry.get_stats()["total_rooms"] == 0
