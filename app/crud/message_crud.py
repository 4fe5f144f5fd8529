"""
Message CRUD.
"""
from typing import List
from sqlalchemy import delete, or_
from sqlalchemy.orm import Session

from app.model.message import Message
from app.crud.base import CRUDBase


class CRUDMessage(CRUDBase[Message, dict, dict]):
    def list_by_room(self, db: Session, *, room_id: int) -> List[Message]:
        """Messages in a room, oldest first."""
        return (
            db.query(self.model)
            .filter(self.model.chat_room_id == room_id)
            .order_by(self.model.created_at.asc(), self.model.id.asc())
            .all()
        )

    def delete_for_user(self, db: Session, *, user_id: int) -> int:
        """Messages sent or received by the user. Caller commits."""
        result = db.execute(
            delete(self.model).where(
                or_(self.model.from_user_id == user_id, self.model.to_user_id == user_id)
            )
        )
        return result.rowcount or 0


message_crud = CRUDMessage(Message)
