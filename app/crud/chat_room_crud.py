"""
Chat room CRUD.
"""
from typing import Iterable, List, Sequence
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.orm import Session

from app.model.chat_room import ChatRoom
from app.model.chat_room_membership import ChatRoomMembership
from app.model.message import Message
from app.crud.base import CRUDBase


def _pair_room_ids(user_a: int, user_b: int):
    """Rooms whose membership set is exactly {user_a, user_b}."""
    in_pair = case((ChatRoomMembership.user_id.in_([user_a, user_b]), 1), else_=0)
    return (
        select(ChatRoomMembership.room_id)
        .group_by(ChatRoomMembership.room_id)
        .having(func.count(ChatRoomMembership.id) == 2)
        .having(func.sum(in_pair) == 2)
    )


class CRUDChatRoom(CRUDBase[ChatRoom, dict, dict]):
    def list_for_pair(self, db: Session, *, user_a: int, user_b: int) -> List[ChatRoom]:
        """All rooms for the pair, lowest id first."""
        return (
            db.query(self.model)
            .filter(self.model.id.in_(_pair_room_ids(user_a, user_b)))
            .order_by(self.model.id.asc())
            .all()
        )

    def list_for_user(self, db: Session, *, user_id: int) -> List[ChatRoom]:
        subq = select(ChatRoomMembership.room_id).where(ChatRoomMembership.user_id == user_id)
        return (
            db.query(self.model)
            .filter(self.model.id.in_(subq))
            .order_by(self.model.id.asc())
            .all()
        )

    def create_empty(self, db: Session) -> ChatRoom:
        """Insert a room row without committing, so its id is known."""
        return self.create_from_dict(db, obj_in={}, commit=False)

    def merge_into(self, db: Session, *, canonical_id: int, duplicate_ids: Sequence[int]) -> int:
        """Move messages off duplicate rooms, then delete them. Caller commits."""
        if not duplicate_ids:
            return 0
        db.execute(
            update(Message)
            .where(Message.chat_room_id.in_(duplicate_ids))
            .values(chat_room_id=canonical_id)
        )
        db.execute(delete(ChatRoomMembership).where(ChatRoomMembership.room_id.in_(duplicate_ids)))
        result = db.execute(delete(self.model).where(self.model.id.in_(duplicate_ids)))
        return result.rowcount or 0

    def delete_empty(self, db: Session, *, room_ids: Iterable[int]) -> int:
        """Delete rooms from room_ids that no longer have members. Caller commits."""
        room_ids = list(room_ids)
        if not room_ids:
            return 0
        still_used = select(ChatRoomMembership.room_id).where(ChatRoomMembership.room_id.in_(room_ids))
        used = set(db.execute(still_used).scalars())
        empty = [rid for rid in room_ids if rid not in used]
        if not empty:
            return 0
        db.execute(delete(Message).where(Message.chat_room_id.in_(empty)))
        result = db.execute(delete(self.model).where(self.model.id.in_(empty)))
        return result.rowcount or 0


chat_room_crud = CRUDChatRoom(ChatRoom)
