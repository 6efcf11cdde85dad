from pydantic import BaseModel
from typing import List

from schemas.messages import Member


class RoomSummary(BaseModel):
    room_id: str
    online_users_count: int

class RoomListResponse(BaseModel):
    rooms: List[RoomSummary]
    count: int

class RoomDetailsResponse(BaseModel):
    room_id: str
    online_users_count: int
    users: List[Member]
