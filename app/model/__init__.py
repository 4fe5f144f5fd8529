from app.model.chat_room import ChatRoom
from app.model.chat_room_membership import ChatRoomMembership
from app.model.message import Message

__all__ = ["ChatRoom", "ChatRoomMembership", "Message"]
