import asyncio
import json
import uuid
from typing import Dict, List, Tuple

from starlette.websockets import WebSocket, WebSocketState

from constants import SEND_TIMEOUT_SECONDS
from logging_config import get_logger

logger = get_logger(__name__)


def new_connection_id() -> str:
    return uuid.uuid4().hex


def is_open(websocket: WebSocket) -> bool:
    return (
        websocket.application_state == WebSocketState.CONNECTED
        and websocket.client_state == WebSocketState.CONNECTED
    )


async def send_text(websocket: WebSocket, text: str, timeout: float = SEND_TIMEOUT_SECONDS) -> bool:
    """Send one frame to a socket. Returns False instead of raising when the frame was not delivered."""
    if not is_open(websocket):
        return False
    try:
        await asyncio.wait_for(websocket.send_text(text), timeout=timeout)
        return True
    except asyncio.TimeoutError:
        logger.debug(f"Send timed out after {timeout}s")
        return False
    except Exception as e:
        logger.debug(f"Send failed: {e}")
        return False


async def send_payload(websocket: WebSocket, payload: dict, timeout: float = SEND_TIMEOUT_SECONDS) -> bool:
    return await send_text(websocket, json.dumps(payload), timeout=timeout)


class Connection:
    """A joined client: assigned id, display name, room and the socket used to reach it.

    Frames to one connection go out one at a time, in the order they were
    issued. Holders of send_lock (the join confirmation) write with
    send_unlocked() and delay every other send until they release it.
    """

    def __init__(self, websocket: WebSocket, username: str, room_id: str):
        self.id = new_connection_id()
        self.username = username
        self.room_id = room_id
        self.websocket = websocket
        self.send_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return is_open(self.websocket)

    async def send(self, text: str, timeout: float = SEND_TIMEOUT_SECONDS) -> bool:
        async with self.send_lock:
            return await self.send_unlocked(text, timeout=timeout)

    async def send_unlocked(self, text: str, timeout: float = SEND_TIMEOUT_SECONDS) -> bool:
        return await send_text(self.websocket, text, timeout=timeout)

    def as_member(self) -> dict:
        return {"username": self.username, "id": self.id}

    def __repr__(self) -> str:
        return f"Connection(id={self.id!r}, username={self.username!r}, room_id={self.room_id!r})"


class RoomRegistry:
    """In-process map of room id -> members.

    A room exists exactly while it has members: join() creates it and leave()
    deletes it when the last member goes. Every read and write goes through one
    asyncio.Lock so join/leave/snapshot on the same room are linearized.
    """

    def __init__(self):
        # Format: {room_id: {connection_id: Connection}}, inner dicts keep join order
        self._rooms: Dict[str, Dict[str, Connection]] = {}
        self._lock = asyncio.Lock()
        logger.info("Initializing RoomRegistry")

    async def join(self, room_id: str, connection: Connection) -> Tuple[Connection, ...]:
        """Add a connection to a room, creating the room if needed. Returns the members after the join."""
        async with self._lock:
            members = self._rooms.get(room_id)
            if members is None:
                members = self._rooms[room_id] = {}
                logger.info(f"Room {room_id} created")
            if connection.id in members:
                logger.debug(f"Connection {connection.id} already in room {room_id}")
            else:
                members[connection.id] = connection
                logger.debug(f"Connection {connection.id} added to room {room_id} ({len(members)} members)")
            return tuple(members.values())

    async def leave(self, room_id: str, connection: Connection) -> Tuple[Connection, ...]:
        """Remove a connection from a room, dropping the room once empty. Returns the remaining members."""
        async with self._lock:
            members = self._rooms.get(room_id)
            if members is None:
                return ()
            if members.pop(connection.id, None) is not None:
                logger.debug(f"Connection {connection.id} removed from room {room_id}")
            if not members:
                del self._rooms[room_id]
                logger.info(f"Room {room_id} is empty, removed")
                return ()
            return tuple(members.values())

    async def members_of(self, room_id: str) -> Tuple[Connection, ...]:
        async with self._lock:
            return tuple(self._rooms.get(room_id, {}).values())

    async def active_users(self, room_id: str) -> List[dict]:
        """The {username, id} list clients see for a room."""
        return [member.as_member() for member in await self.members_of(room_id)]

    async def snapshot(self) -> Dict[str, int]:
        """Room id -> member count for every live room."""
        async with self._lock:
            return {room_id: len(members) for room_id, members in self._rooms.items()}

    def count(self, room_id: str) -> int:
        return len(self._rooms.get(room_id, {}))

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

