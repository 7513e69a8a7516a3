import asyncio
import os
import time

os.environ.setdefault("LOG_FILE", "")

import pytest
from fastapi.testclient import TestClient

from watchparty.main import create_app
from watchparty.services.storage import MemStorage


def run(coro):
    """Run a storage coroutine from a synchronous test."""
    return asyncio.run(coro)


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def join_frame(room_code, user_id, username, is_host=False):
    return {
        "type": "join_room",
        "payload": {
            "roomCode": room_code,
            "userId": user_id,
            "username": username,
            "isHost": is_host,
        },
        "timestamp": int(time.time() * 1000),
    }


def join(ws, room_code, user_id, username, is_host=False):
    """Join a room and read every frame up to and including message_history."""
    ws.send_json(join_frame(room_code, user_id, username, is_host))
    frames = []
    while True:
        frame = ws.receive_json()
        frames.append(frame)
        if frame["type"] in ("message_history", "error"):
            return frames


@pytest.fixture
def storage():
    return MemStorage()


@pytest.fixture
def app(storage):
    return create_app(storage=storage)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
