"""
Chat event protocol: create-room and send.

Each event is validated, executed and answered with exactly one ack frame.
Errors never escape a handler; they become error acks. Database work runs in
the threadpool so other sockets keep being served while it is pending.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi import WebSocket
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from app.chat.connection_manager import ConnectionManager, general_channel, room_channel
from app.chat.connection_registry import ConnectionRegistry
from app.core.database import TenantDatabases
from app.core.exceptions import ChatError, InvalidParticipants
from app.model.message import Message
from app.schema.chat import CreateRoomPayload, SendMessagePayload
from app.service.chat_service import ChatService

logger = logging.getLogger(__name__)

EVENT_CONNECTED = "connected"
EVENT_CREATE_ROOM = "create-room"
EVENT_SEND = "send"
EVENT_ROOM_CREATED = "room-created"
EVENT_ROOM_INVITED = "room-invited"
EVENT_RECEIVED_MESSAGE = "received-message"

SEND_OK = "Message sent successfully!"


class ChatConnection:
    """One live socket: its id, tenant and (once known) user."""

    def __init__(self, socket_id: str, tenant_id: str, user_id: Optional[int] = None):
        self.socket_id = socket_id
        self.tenant_id = tenant_id
        self.user_id = user_id

    def __repr__(self) -> str:
        return f"<ChatConnection {self.socket_id} tenant={self.tenant_id} user={self.user_id}>"


def ack_ok(ack_id: Any, data: Any) -> Dict[str, Any]:
    return {"event": "ack", "ack": ack_id, "ok": True, "data": data}


def ack_error(ack_id: Any, code: str, message: str) -> Dict[str, Any]:
    return {"event": "ack", "ack": ack_id, "ok": False, "code": code, "message": message}


def _validation_code(error: ValidationError) -> str:
    fields = {err["loc"][0] for err in error.errors() if err.get("loc")}
    if fields and fields <= {"fromUserID", "toUserID"}:
        return InvalidParticipants.__name__
    return "INVALID_PAYLOAD"


def _validation_message(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "payload"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


class ChatProtocol:
    """Handles chat events for connections of every tenant."""

    def __init__(
        self,
        databases: TenantDatabases,
        registry: ConnectionRegistry,
        manager: ConnectionManager,
    ):
        self.databases = databases
        self.registry = registry
        self.manager = manager
        self._handlers: Dict[str, Callable[[ChatConnection, Any], Awaitable[Any]]] = {
            EVENT_CREATE_ROOM: self.create_room,
            EVENT_SEND: self.send,
        }

    # --- Connection lifecycle ---

    async def connect(self, conn: ChatConnection, websocket: WebSocket) -> None:
        await self.manager.attach(conn.socket_id, websocket)
        await self.manager.subscribe(conn.socket_id, general_channel(conn.tenant_id))
        if conn.user_id is not None:
            await self._bind_user(conn, conn.user_id)
        await self.manager.send_to_socket(
            conn.socket_id,
            {
                "event": EVENT_CONNECTED,
                "payload": {"socketID": conn.socket_id, "tenantID": conn.tenant_id, "userID": conn.user_id},
            },
        )
        logger.info("Socket %s connected (tenant %s, user %s)", conn.socket_id, conn.tenant_id, conn.user_id)

    async def disconnect(self, conn: ChatConnection) -> None:
        owner = self.registry.on_disconnect(conn.socket_id)
        await self.manager.detach(conn.socket_id)
        if owner is not None:
            await self._annotate(conn.tenant_id, owner.user_id, conn.socket_id, connected=False)
        logger.info("Socket %s disconnected (tenant %s, user %s)", conn.socket_id, conn.tenant_id, conn.user_id)

    async def _bind_user(self, conn: ChatConnection, user_id: int) -> None:
        conn.user_id = user_id
        self.registry.on_connect(user_id, conn.socket_id, conn.tenant_id)
        await self._annotate(conn.tenant_id, user_id, conn.socket_id, connected=True)

    async def _annotate(self, tenant_id: str, user_id: int, socket_id: str, connected: bool) -> None:
        """Record or clear the live socket on the user's memberships. Best effort."""
        try:
            await run_in_threadpool(self._annotate_sync, tenant_id, user_id, socket_id, connected)
        except (ChatError, SQLAlchemyError) as e:
            logger.warning("Could not update socket annotation for user %s@%s: %s", user_id, tenant_id, e)

    def _annotate_sync(self, tenant_id: str, user_id: int, socket_id: str, connected: bool) -> int:
        with self.databases.session(tenant_id) as db:
            service = ChatService(db)
            if connected:
                return service.mark_user_connected(user_id, socket_id)
            return service.mark_user_disconnected(user_id, socket_id)

    # --- Dispatch ---

    async def handle_frame(self, conn: ChatConnection, frame: Any) -> Dict[str, Any]:
        """Run one client frame and return its ack frame."""
        if not isinstance(frame, dict):
            return ack_error(None, "INVALID_FRAME", "Frame must be a JSON object.")
        ack_id = frame.get("ack")
        event = frame.get("event")
        handler = self._handlers.get(event)
        if handler is None:
            return ack_error(ack_id, "UNKNOWN_EVENT", f"Expected event: {EVENT_CREATE_ROOM} or {EVENT_SEND}.")
        try:
            data = await handler(conn, frame.get("payload"))
        except ValidationError as e:
            return ack_error(ack_id, _validation_code(e), _validation_message(e))
        except ChatError as e:
            logger.warning("%s failed on socket %s: %s", event, conn.socket_id, e)
            return ack_error(ack_id, e.code, e.message)
        except Exception:
            logger.exception("Unexpected error handling %s on socket %s", event, conn.socket_id)
            return ack_error(ack_id, "INTERNAL_ERROR", "Internal server error.")
        return ack_ok(ack_id, data)

    # --- Events ---

    async def create_room(self, conn: ChatConnection, payload: Any) -> Dict[str, int]:
        body = CreateRoomPayload.model_validate(payload if payload is not None else {})
        await self._check_sender(conn, body.fromUserID, body.toUserID)
        room_id = await self.resolve_room(conn.tenant_id, body.fromUserID, body.toUserID)

        await self.manager.subscribe(conn.socket_id, room_channel(conn.tenant_id, room_id))
        await self.manager.send_to_socket(
            conn.socket_id, {"event": EVENT_ROOM_CREATED, "payload": {"roomID": room_id}}
        )
        await self._invite_counterpart(conn, room_id, body.fromUserID, body.toUserID)
        return {"roomID": room_id}

    async def send(self, conn: ChatConnection, payload: Any) -> str:
        body = SendMessagePayload.model_validate(payload if payload is not None else {})
        await self._check_sender(conn, body.fromUserID, body.toUserID)
        room_id = await self.resolve_room(conn.tenant_id, body.fromUserID, body.toUserID)
        room_id = await run_in_threadpool(
            self._persist_message, conn.tenant_id, room_id, body.fromUserID, body.toUserID, body.message
        )

        channel = room_channel(conn.tenant_id, room_id)
        await self.manager.subscribe(conn.socket_id, channel)
        await self._invite_counterpart(conn, room_id, body.fromUserID, body.toUserID)
        await self.manager.broadcast(
            channel,
            EVENT_RECEIVED_MESSAGE,
            {"fromUserID": body.fromUserID, "toUserID": body.toUserID, "message": body.message},
            room_id=room_id,
            exclude_socket_id=conn.socket_id,
        )
        return SEND_OK

    async def _check_sender(self, conn: ChatConnection, from_user_id: int, to_user_id: int) -> None:
        if from_user_id == to_user_id:
            raise InvalidParticipants("A chat room needs two different users.")
        if conn.user_id is None:
            await self._bind_user(conn, from_user_id)
        elif conn.user_id != from_user_id:
            raise InvalidParticipants("fromUserID does not match the connected user.")

    async def _invite_counterpart(self, conn: ChatConnection, room_id: int, from_user_id: int, to_user_id: int) -> None:
        socket_id = self.registry.lookup(conn.tenant_id, to_user_id)
        if socket_id is None or socket_id == conn.socket_id:
            return
        channel = room_channel(conn.tenant_id, room_id)
        if self.manager.is_subscribed(socket_id, channel):
            return
        if await self.manager.subscribe(socket_id, channel):
            await self.manager.send_to_socket(
                socket_id,
                {"event": EVENT_ROOM_INVITED, "payload": {"roomID": room_id, "fromUserID": from_user_id}},
            )

    # --- Persistence ---

    async def resolve_room(self, tenant_id: str, user_a: int, user_b: int) -> int:
        return await run_in_threadpool(self.resolve_room_sync, tenant_id, user_a, user_b)

    def resolve_room_sync(self, tenant_id: str, user_a: int, user_b: int) -> int:
        with self.databases.session(tenant_id) as db:
            return ChatService(db).get_or_create_room_id(user_a, user_b)

    def _persist_message(self, tenant_id: str, room_id: int, from_user_id: int, to_user_id: int, content: str) -> int:
        """Returns the id of the room the message landed in."""
        with self.databases.session(tenant_id) as db:
            return ChatService(db).send_message(room_id, from_user_id, to_user_id, content).chat_room_id

    def get_chat_history(self, tenant_id: str, room_id: int) -> List[Message]:
        with self.databases.session(tenant_id) as db:
            return ChatService(db).get_chat_history(room_id)
