import asyncio
import json

from backend import RoomRegistry
from constants import SEND_TIMEOUT_SECONDS
from logging_config import get_logger

logger = get_logger(__name__)


class Broadcaster:
    """Fan-out of one message to every member of a room.

    Members are read from a registry snapshot, then each recipient is sent to
    concurrently and independently. A recipient that is closed, errors or
    exceeds the send timeout is skipped; nothing is raised to the caller.
    """

    def __init__(self, registry: RoomRegistry, send_timeout: float = SEND_TIMEOUT_SECONDS):
        self.registry = registry
        self.send_timeout = send_timeout

    async def broadcast(self, room_id: str, message: dict) -> int:
        """Send message to every current member of room_id. Returns how many recipients got it."""
        members = await self.registry.members_of(room_id)
        if not members:
            logger.debug(f"Broadcast to room {room_id} skipped, no members")
            return 0

        # Serialized once so every recipient gets the identical frame
        text = json.dumps(message)
        results = await asyncio.gather(
            *[member.send(text, timeout=self.send_timeout) for member in members],
            return_exceptions=True,
        )

        delivered = 0
        for member, result in zip(members, results):
            if result is True:
                delivered += 1
            else:
                logger.debug(f"Dropped {message.get('type', 'unknown')} for connection {member.id} in room {room_id}")

        logger.debug(f"Broadcasted {message.get('type', 'unknown')} to {delivered}/{len(members)} connections in room {room_id}")
        return delivered
