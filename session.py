"""Per-connection state machine driving the room registry and broadcaster.

States move UNJOINED -> JOINED -> CLOSED and never back. Each inbound frame is
parsed into a typed event and routed by (state, event type); pairs with no
handler are invalid-state events and are ignored.
"""

import asyncio
import json
from enum import Enum
from typing import Optional

from pydantic import ValidationError
from starlette.websockets import WebSocket

from backend import Connection, RoomRegistry, send_payload
from broadcast import Broadcaster
from logging_config import get_logger
from schemas.messages import (
    ChatNotice,
    ErrorNotice,
    JoinedNotice,
    JoinEvent,
    MessageEvent,
    OutboundNotice,
    UserJoinedNotice,
    UserLeftNotice,
    parse_inbound,
)

logger = get_logger(__name__)

ROOM_ID_REQUIRED = "Room ID is required"
USERNAME_REQUIRED = "Username is required"
CONTENT_REQUIRED = "Message content is required"
PROCESSING_FAILED = "Failed to process your message"

# Departures still running after their connection task went away
_departures = set()


class SessionState(str, Enum):
    UNJOINED = "unjoined"
    JOINED = "joined"
    CLOSED = "closed"


class Session:
    def __init__(self, websocket: WebSocket, registry: RoomRegistry, broadcaster: Broadcaster):
        self.websocket = websocket
        self.registry = registry
        self.broadcaster = broadcaster
        self.state = SessionState.UNJOINED
        self.connection: Optional[Connection] = None

        self._handlers = {
            (SessionState.UNJOINED, "join"): self._on_join,
            (SessionState.JOINED, "message"): self._on_message,
        }

    @property
    def room_id(self) -> Optional[str]:
        return self.connection.room_id if self.connection else None

    async def handle(self, raw: str) -> None:
        """Process one inbound frame."""
        if self.state is SessionState.CLOSED:
            return

        try:
            event = parse_inbound(raw)
        except ValidationError as e:
            logger.debug(f"Malformed payload from {self._label()}: {e.error_count()} validation error(s)")
            await self._reply(ErrorNotice(message=PROCESSING_FAILED))
            return

        handler = self._handlers.get((self.state, event.type))
        if handler is None:
            logger.debug(f"Ignoring {event.type!r} from {self._label()} in state {self.state.value}")
            return
        await handler(event)

    async def close(self) -> None:
        """Leave the room (if joined) and announce the departure. Safe to call more than once."""
        if self.state is SessionState.CLOSED:
            return
        previous, self.state = self.state, SessionState.CLOSED

        if previous is not SessionState.JOINED:
            logger.debug("Unjoined connection closed")
            return

        # The connection's own task may be cancelled while closing; the departure must still complete
        task = asyncio.ensure_future(self._depart(self.connection))
        _departures.add(task)
        task.add_done_callback(_departures.discard)
        await asyncio.shield(task)

    async def _depart(self, connection: Connection) -> None:
        remaining = await self.registry.leave(connection.room_id, connection)
        logger.info(f"User {connection.id} ({connection.username}) left room {connection.room_id}")
        if not remaining:
            return

        notice = UserLeftNotice(
            username=connection.username,
            users=[member.as_member() for member in remaining],
        )
        await self.broadcaster.broadcast(connection.room_id, notice.model_dump())

    async def _on_join(self, event: JoinEvent) -> None:
        if not event.roomId:
            await self._reply(ErrorNotice(message=ROOM_ID_REQUIRED))
            return
        if not event.username:
            await self._reply(ErrorNotice(message=USERNAME_REQUIRED))
            return

        connection = Connection(self.websocket, username=event.username, room_id=event.roomId)
        joined = JoinedNotice(userId=connection.id, roomId=connection.room_id)
        # Broadcasts that see the new member wait on send_lock, so "joined" is its first frame
        async with connection.send_lock:
            members = await self.registry.join(connection.room_id, connection)
            self.connection = connection
            self.state = SessionState.JOINED
            logger.info(f"User {connection.id} ({connection.username}) joined room {connection.room_id} ({len(members)} members)")
            await connection.send_unlocked(json.dumps(joined.model_dump()), timeout=self.broadcaster.send_timeout)

        notice = UserJoinedNotice(
            username=connection.username,
            users=[member.as_member() for member in members],
        )
        await self.broadcaster.broadcast(connection.room_id, notice.model_dump())

    async def _on_message(self, event: MessageEvent) -> None:
        if not event.content:
            await self._reply(ErrorNotice(message=CONTENT_REQUIRED))
            return

        connection = self.connection
        logger.debug(f"Message from {connection.id} in room {connection.room_id} ({len(event.content)} chars)")
        notice = ChatNotice(
            content=event.content,
            username=connection.username,
            userId=connection.id,
        )
        await self.broadcaster.broadcast(connection.room_id, notice.model_dump())

    async def _reply(self, notice: OutboundNotice) -> bool:
        if self.connection is not None:
            return await self.connection.send(json.dumps(notice.model_dump()), timeout=self.broadcaster.send_timeout)
        return await send_payload(self.websocket, notice.model_dump(), timeout=self.broadcaster.send_timeout)

    def _label(self) -> str:
        return f"connection {self.connection.id}" if self.connection else "unjoined connection"
