"""
Chat schemas: websocket event payloads and history responses.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, StrictInt, StrictStr


# --- Websocket payloads ---

class CreateRoomPayload(BaseModel):
    """Payload of the create-room event."""

    fromUserID: StrictInt = Field(..., ge=1)
    toUserID: StrictInt = Field(..., ge=1)

    class Config:
        extra = "forbid"


class SendMessagePayload(BaseModel):
    """Payload of the send event."""

    fromUserID: StrictInt = Field(..., ge=1)
    toUserID: StrictInt = Field(..., ge=1)
    message: StrictStr = Field(..., min_length=1)

    class Config:
        extra = "forbid"


# --- History ---

class MessageResponse(BaseModel):
    """Single stored message."""
    id: int
    chat_room_id: int = Field(..., serialization_alias="chatRoomID")
    from_user_id: int = Field(..., serialization_alias="fromUserID")
    to_user_id: Optional[int] = Field(None, serialization_alias="toUserID")
    content: str
    created_at: datetime = Field(..., serialization_alias="createdAt")

    class Config:
        from_attributes = True


class RoomResponse(BaseModel):
    """Room with its member ids."""
    id: int
    member_ids: List[int] = Field(..., serialization_alias="memberIDs")
    created_at: datetime = Field(..., serialization_alias="createdAt")

    class Config:
        from_attributes = True
