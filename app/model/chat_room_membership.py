"""
Chat room membership. Links a user id to a room.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.model.chat_room import utcnow


class ChatRoomMembership(Base):
    __tablename__ = "chat_room_memberships"
    __table_args__ = (UniqueConstraint("room_id", "user_id", name="uq_chat_room_memberships_room_user"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(Integer, ForeignKey("chat_rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    connected_to_socket = Column(String, nullable=True)  # written by the connection registry
    joined_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    room = relationship("ChatRoom", back_populates="members")
