from fastapi import APIRouter, HTTPException, Request
from schemas.rooms import RoomDetailsResponse, RoomListResponse, RoomSummary
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


@rooms_router.get("", response_model=RoomListResponse)
async def list_rooms(request: Request):
    """List every live room with its online user count."""
    registry = request.app.state.registry
    counts = await registry.snapshot()
    logger.debug(f"Room list request: {len(counts)} live rooms")
    return RoomListResponse(
        rooms=[RoomSummary(room_id=room_id, online_users_count=count) for room_id, count in counts.items()],
        count=len(counts),
    )


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, request: Request):
    """
    Get the members of a live room.

    Returns:
    - room_id: Room identifier
    - online_users_count: Current number of joined connections
    - users: {username, id} for every member, in join order

    Rooms only exist while they have members, so an empty or unknown room is a 404.
    """
    client_host = request.client.host if request.client else 'unknown'
    logger.info(f"Room details request for {room_id} from {client_host}")

    users = await request.app.state.registry.active_users(room_id)
    if not users:
        logger.warning(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    return RoomDetailsResponse(
        room_id=room_id,
        online_users_count=len(users),
        users=users,
    )
