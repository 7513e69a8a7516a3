"""
    REST endpoints for room creation and lookup
"""

import logging

from fastapi import APIRouter, HTTPException, Request

from ..config import ROOM_CODE_LENGTH, USER_ID_LENGTH
from ..models.room import Room, generate_room_code, generate_user_id
from ..services.storage import ConflictError, Storage

logger = logging.getLogger("watchparty.api.rooms")

router = APIRouter(prefix="/api/rooms", tags=["rooms"])

MAX_CODE_ATTEMPTS = 10


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


async def _create_unique_room(storage: Storage, host_id: str) -> Room:
    """Create a room under a fresh code, retrying on collisions."""
    for _ in range(MAX_CODE_ATTEMPTS):
        code = generate_room_code(ROOM_CODE_LENGTH)
        if await storage.get_room_by_code(code):
            continue
        try:
            return await storage.create_room(Room(code=code, host_id=host_id))
        except ConflictError:
            continue
    raise ConflictError("Could not allocate a unique room code")


@router.post("")
async def create_room(request: Request):
    """Create an empty room and issue the host's user id"""
    storage = get_storage(request)
    user_id = generate_user_id(USER_ID_LENGTH)

    try:
        room = await _create_unique_room(storage, user_id)
    except ConflictError as e:
        logger.error(f" Error creating room: {e}")
        raise HTTPException(status_code=500, detail="Failed to create room")

    logger.info(f"🏠 Room {room.code} created over REST for host {user_id}")
    return {"room": room.to_dict(), "userId": user_id}


@router.get("/{code}")
async def get_room(code: str, request: Request):
    """Look up a room and issue a fresh user id; the seat is only taken on join"""
    room = await get_storage(request).get_room_by_code(code)

    if not room:
        logger.warning(f"❌ API request for non-existent room: {code}")
        raise HTTPException(status_code=404, detail="Room not found")

    return {"room": room.to_dict(), "userId": generate_user_id(USER_ID_LENGTH)}
