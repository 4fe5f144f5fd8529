"""
Chat service - room resolution, message persistence and history.

Room resolution is find-then-create without a lock. Two callers racing on the
same pair may each create a room; the post-create reconciliation keeps the
lowest id as the canonical room and deletes the others, moving any messages
already written to them.
"""
from typing import List, Optional, Sequence
import logging

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    InvalidParticipants,
    NotFound,
    RoomCreationFailed,
    RoomResolutionFailed,
)
from app.crud import chat_room_crud, chat_room_membership_crud, message_crud
from app.model.chat_room import ChatRoom
from app.model.message import Message

logger = logging.getLogger(__name__)


def is_user_id(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


def validate_participants(user_a, user_b) -> None:
    """Both ids must be positive integers and distinct (no self-chat)."""
    if not is_user_id(user_a) or not is_user_id(user_b):
        raise InvalidParticipants("User ids must be positive integers.")
    if user_a == user_b:
        raise InvalidParticipants("A chat room needs two different users.")


class ChatService:
    """Chat operations against one tenant's database session."""

    def __init__(self, db: Session):
        self.db = db

    # --- Rooms ---

    def get_or_create_room_id(self, user_a: int, user_b: int) -> int:
        """Return the pair's unique room id, creating the room if needed."""
        validate_participants(user_a, user_b)

        rooms = chat_room_crud.list_for_pair(self.db, user_a=user_a, user_b=user_b)
        if rooms:
            return self._reconcile(rooms)

        self._create_room(user_a, user_b)

        rooms = chat_room_crud.list_for_pair(self.db, user_a=user_a, user_b=user_b)
        if not rooms:
            raise RoomResolutionFailed(f"No room could be established for users {user_a} and {user_b}.")
        return self._reconcile(rooms)

    def _create_room(self, user_a: int, user_b: int) -> int:
        try:
            room = chat_room_crud.create_empty(self.db)
            chat_room_membership_crud.add_members_skip_duplicates(
                self.db, room_id=room.id, user_ids=[user_a, user_b]
            )
            self.db.commit()
        except (OperationalError, InterfaceError):
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to create chat room")
            raise RoomCreationFailed(f"Room creation failed: {e.__class__.__name__}") from e
        logger.info("Created chat room %s", room.id)
        return room.id

    def _reconcile(self, rooms: Sequence[ChatRoom]) -> int:
        canonical, duplicates = rooms[0], rooms[1:]
        if duplicates:
            duplicate_ids = [r.id for r in duplicates]
            try:
                deleted = chat_room_crud.merge_into(
                    self.db, canonical_id=canonical.id, duplicate_ids=duplicate_ids
                )
                self.db.commit()
            except (OperationalError, InterfaceError):
                self.db.rollback()
                raise
            except SQLAlchemyError:
                self.db.rollback()
                logger.exception("Could not remove duplicate rooms %s", duplicate_ids)
            else:
                logger.warning(
                    "Reconciled duplicate rooms %s into room %s (%d deleted)",
                    duplicate_ids, canonical.id, deleted,
                )
        return canonical.id

    def get_room(self, room_id: int) -> Optional[ChatRoom]:
        return chat_room_crud.get(self.db, room_id)

    def list_rooms_for_user(self, user_id: int) -> List[ChatRoom]:
        return chat_room_crud.list_for_user(self.db, user_id=user_id)

    # --- Messages ---

    def create_message(
        self, room_id: int, from_user_id: int, to_user_id: Optional[int], content: str
    ) -> Message:
        return message_crud.create_from_dict(
            self.db,
            obj_in={
                "chat_room_id": room_id,
                "from_user_id": from_user_id,
                "to_user_id": to_user_id,
                "content": content,
            },
        )

    def send_message(self, room_id: int, from_user_id: int, to_user_id: int, content: str) -> Message:
        """
        Store a message in the pair's room.

        room_id comes from an earlier resolution and may have been reconciled
        away since. The insert then fails its foreign key and is retried once
        in the freshly resolved room.
        """
        try:
            return self.create_message(room_id, from_user_id, to_user_id, content)
        except IntegrityError:
            self.db.rollback()
            logger.warning("Room %s vanished before the message was stored; resolving again", room_id)
        room_id = self.get_or_create_room_id(from_user_id, to_user_id)
        return self.create_message(room_id, from_user_id, to_user_id, content)

    def get_chat_history(self, room_id: int) -> List[Message]:
        """All messages of a room, oldest first. NotFound if the room does not exist."""
        if self.get_room(room_id) is None:
            raise NotFound("Room")
        return message_crud.list_by_room(self.db, room_id=room_id)

    # --- Connection annotations ---

    def mark_user_connected(self, user_id: int, socket_id: str) -> int:
        return chat_room_membership_crud.set_socket_for_user(self.db, user_id=user_id, socket_id=socket_id)

    def mark_user_disconnected(self, user_id: int, socket_id: str) -> int:
        return chat_room_membership_crud.clear_socket_for_user(self.db, user_id=user_id, socket_id=socket_id)

    # --- User removal ---

    def purge_user(self, user_id: int) -> dict:
        """Delete a removed user's memberships and messages, and rooms left empty."""
        room_ids = chat_room_membership_crud.list_room_ids_for_user(self.db, user_id=user_id)
        try:
            messages = message_crud.delete_for_user(self.db, user_id=user_id)
            memberships = chat_room_membership_crud.delete_for_user(self.db, user_id=user_id)
            rooms = chat_room_crud.delete_empty(self.db, room_ids=room_ids)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        logger.info(
            "Purged chat data for user %s: %d messages, %d memberships, %d rooms",
            user_id, messages, memberships, rooms,
        )
        return {"messages": messages, "memberships": memberships, "rooms": rooms}
