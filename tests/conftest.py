import asyncio
import json

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from app import create_app
from backend import Connection, RoomRegistry
from broadcast import Broadcaster


class FakeWebSocket:
    """Stand-in for a server-side WebSocket that records every frame sent to it."""

    def __init__(self, open=True, fail=False, delay=None, first_delay=None):
        state = WebSocketState.CONNECTED if open else WebSocketState.DISCONNECTED
        self.client_state = state
        self.application_state = state
        self.fail = fail
        self.delay = delay
        self.first_delay = first_delay
        self.sent = []

    async def send_text(self, text):
        if self.first_delay and not self.sent:
            await asyncio.sleep(self.first_delay)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("connection reset")
        self.sent.append(text)

    def messages(self):
        return [json.loads(text) for text in self.sent]

    def types(self):
        return [message["type"] for message in self.messages()]


@pytest.fixture
def make_socket():
    return FakeWebSocket


@pytest.fixture
def registry():
    return RoomRegistry()


@pytest.fixture
def broadcaster(registry):
    return Broadcaster(registry, send_timeout=0.2)


@pytest.fixture
def make_connection():
    """Factory for joined-style connections backed by fake sockets."""
    def _make(username="alice", room_id="lobby", **socket_kwargs):
        return Connection(FakeWebSocket(**socket_kwargs), username=username, room_id=room_id)
    return _make


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client(app):
    # One portal for every request and socket so all sessions share the app's event loop
    with TestClient(app) as test_client:
        yield test_client
