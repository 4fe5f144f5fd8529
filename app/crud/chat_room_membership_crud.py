"""
Chat room membership CRUD.
"""
from typing import Iterable, List
from sqlalchemy import delete, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from app.model.chat_room_membership import ChatRoomMembership
from app.core.exceptions import RoomCreationFailed
from app.crud.base import CRUDBase

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class CRUDChatRoomMembership(CRUDBase[ChatRoomMembership, dict, dict]):
    def add_members_skip_duplicates(self, db: Session, *, room_id: int, user_ids: Iterable[int]) -> None:
        """Insert memberships, silently skipping (room_id, user_id) pairs that already exist."""
        rows = [{"room_id": room_id, "user_id": uid} for uid in user_ids]
        if not rows:
            return
        insert = _INSERT_BY_DIALECT.get(db.get_bind().dialect.name)
        if insert is None:
            raise RoomCreationFailed(f"Unsupported database dialect: {db.get_bind().dialect.name}")
        stmt = insert(self.model).values(rows).on_conflict_do_nothing(
            index_elements=["room_id", "user_id"]
        )
        db.execute(stmt)

    def list_room_ids_for_user(self, db: Session, *, user_id: int) -> List[int]:
        return [rid for (rid,) in db.query(self.model.room_id).filter(self.model.user_id == user_id).all()]

    def set_socket_for_user(self, db: Session, *, user_id: int, socket_id: str) -> int:
        result = db.execute(
            update(self.model).where(self.model.user_id == user_id).values(connected_to_socket=socket_id)
        )
        db.commit()
        return result.rowcount or 0

    def clear_socket_for_user(self, db: Session, *, user_id: int, socket_id: str) -> int:
        """Clear the annotation only where it still points at socket_id."""
        result = db.execute(
            update(self.model)
            .where(self.model.user_id == user_id, self.model.connected_to_socket == socket_id)
            .values(connected_to_socket=None)
        )
        db.commit()
        return result.rowcount or 0

    def delete_for_user(self, db: Session, *, user_id: int) -> int:
        """Caller commits."""
        result = db.execute(delete(self.model).where(self.model.user_id == user_id))
        return result.rowcount or 0


chat_room_membership_crud = CRUDChatRoomMembership(ChatRoomMembership)
