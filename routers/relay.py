from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from logging_config import get_logger
from session import Session

logger = get_logger(__name__)

relay_router = APIRouter(tags=["relay"])


async def receive_frame(websocket: WebSocket) -> str:
    """Next inbound frame as text. Binary frames are decoded as UTF-8."""
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(code=message.get("code", 1000), reason=message.get("reason"))
    text = message.get("text")
    if text is None:
        text = (message.get("bytes") or b"").decode("utf-8", errors="replace")
    return text


@relay_router.websocket("/")
@relay_router.websocket("/ws")
async def relay_endpoint(websocket: WebSocket):
    """Relay endpoint: one Session per socket, fed every inbound frame until the socket closes.

    Client protocol:
    - {"type": "join", "roomId": "...", "username": "..."}
    - {"type": "message", "content": "..."}
    """
    await websocket.accept()
    client = f"{websocket.client.host}:{websocket.client.port}" if websocket.client else "unknown"
    logger.info(f"WebSocket connection accepted from {client}")

    session = Session(websocket, websocket.app.state.registry, websocket.app.state.broadcaster)
    message_count = 0
    try:
        while True:
            data = await receive_frame(websocket)
            message_count += 1
            logger.debug(f"Received frame #{message_count} from {client}")
            await session.handle(data)
    except WebSocketDisconnect as e:
        logger.info(f"WebSocket disconnected from {client} (code={e.code}, room={session.room_id})")
    except Exception as e:
        logger.error(f"WebSocket error for {client} in room {session.room_id}: {e}", exc_info=True)
    finally:
        await session.close()
