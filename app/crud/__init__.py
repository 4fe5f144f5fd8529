from app.crud.chat_room_crud import chat_room_crud
from app.crud.chat_room_membership_crud import chat_room_membership_crud
from app.crud.message_crud import message_crud

__all__ = [
    "chat_room_crud",
    "chat_room_membership_crud",
    "message_crud",
]
