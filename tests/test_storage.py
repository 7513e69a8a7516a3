import pytest

from watchparty.models.room import Room
from watchparty.services.storage import ConflictError


@pytest.mark.asyncio
async def test_create_room_defaults(storage):
    room = await storage.create_room(Room(code="ABC123", host_id="host"))

    assert room.code == "ABC123"
    assert room.host_id == "host"
    assert room.guest_id is None
    assert room.current_video_id is None
    assert room.current_time == 0
    assert room.is_playing is False
    assert room.created_at is not None


@pytest.mark.asyncio
async def test_create_room_conflict(storage):
    await storage.create_room(Room(code="ABC123", host_id="host"))

    with pytest.raises(ConflictError):
        await storage.create_room(Room(code="ABC123", host_id="intruder"))

    room = await storage.get_room_by_code("ABC123")
    assert room.host_id == "host"


@pytest.mark.asyncio
async def test_get_missing_room(storage):
    assert await storage.get_room_by_code("NOPE00") is None


@pytest.mark.asyncio
async def test_lookup_is_case_sensitive(storage):
    await storage.create_room(Room(code="ABC123"))

    assert await storage.get_room_by_code("abc123") is None


@pytest.mark.asyncio
async def test_update_room_merges_fields(storage):
    await storage.create_room(Room(code="ABC123", host_id="host"))

    room = await storage.update_room("ABC123", current_time=42.5, is_playing=True)

    assert room.current_time == 42.5
    assert room.is_playing is True
    assert room.host_id == "host"
    assert room.current_video_id is None


@pytest.mark.asyncio
async def test_update_room_does_not_validate_semantics(storage):
    await storage.create_room(Room(code="ABC123"))

    room = await storage.update_room("ABC123", current_time=-5)

    assert room.current_time == -5


@pytest.mark.asyncio
async def test_update_missing_room(storage):
    assert await storage.update_room("NOPE00", is_playing=True) is None


@pytest.mark.asyncio
async def test_update_unknown_field(storage):
    await storage.create_room(Room(code="ABC123"))

    with pytest.raises(ValueError):
        await storage.update_room("ABC123", code="OTHER1")
    with pytest.raises(ValueError):
        await storage.update_room("ABC123", created_at=None)

    assert await storage.get_room_by_code("ABC123") is not None
    assert await storage.get_room_by_code("OTHER1") is None


@pytest.mark.asyncio
async def test_returned_rooms_are_snapshots(storage):
    await storage.create_room(Room(code="ABC123"))

    room = await storage.get_room_by_code("ABC123")
    room.is_playing = True

    assert (await storage.get_room_by_code("ABC123")).is_playing is False


@pytest.mark.asyncio
async def test_delete_room_removes_messages(storage):
    await storage.create_room(Room(code="ABC123"))
    await storage.create_message("ABC123", "u1", "Alice", "hello")

    assert await storage.delete_room("ABC123") is True
    assert await storage.get_room_by_code("ABC123") is None
    assert await storage.get_messages_by_room("ABC123") == []
    assert await storage.delete_room("ABC123") is False


@pytest.mark.asyncio
async def test_message_ids_increase_across_rooms(storage):
    await storage.create_room(Room(code="ROOM01"))
    await storage.create_room(Room(code="ROOM02"))

    first = await storage.create_message("ROOM01", "u1", "Alice", "a")
    second = await storage.create_message("ROOM02", "u2", "Bob", "b", message_type="emoji")
    third = await storage.create_message("ROOM01", "u1", "Alice", "c")

    assert first.id < second.id < third.id
    assert second.type == "emoji"
    assert first.type == "text"


@pytest.mark.asyncio
async def test_recent_messages_window(storage):
    await storage.create_room(Room(code="ABC123"))
    for i in range(25):
        await storage.create_message("ABC123", "u1", "Alice", f"message {i}")

    messages = await storage.get_messages_by_room("ABC123", 20)

    assert [m.content for m in messages] == [f"message {i}" for i in range(5, 25)]


@pytest.mark.asyncio
async def test_messages_default_limit(storage):
    await storage.create_room(Room(code="ABC123"))
    for i in range(60):
        await storage.create_message("ABC123", "u1", "Alice", str(i))

    messages = await storage.get_messages_by_room("ABC123")

    assert len(messages) == 50
    assert messages[0].content == "10"


@pytest.mark.asyncio
async def test_add_user_to_room_slots(storage):
    await storage.create_room(Room(code="ABC123", host_id="host"))

    room = await storage.add_user_to_room("ABC123", "guest", is_host=False)
    assert room.host_id == "host"
    assert room.guest_id == "guest"

    # Slots are overwritten without checks
    room = await storage.add_user_to_room("ABC123", "new-host", is_host=True)
    assert room.host_id == "new-host"

    assert await storage.add_user_to_room("NOPE00", "guest", is_host=False) is None
