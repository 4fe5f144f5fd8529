"""
Chat API: read-only history (REST) and the realtime WebSocket.
"""
import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from app.chat.transport import ChatTransport
from app.core.database import get_tenant_db
from app.core.dependencies import validate_tenant_session
from app.schema.chat import MessageResponse, RoomResponse
from app.service.chat_service import ChatService, is_user_id

router = APIRouter()
logger = logging.getLogger(__name__)

WS_MISSING_TENANT = 4400
WS_UNKNOWN_TENANT = 4404
WS_INVALID_USER = 4422


# --- REST ---

@router.get("/{tenant_id}/chat/history/{room_id}", response_model=List[MessageResponse])
async def get_chat_history(
    tenant_id: str,
    room_id: int,
    current_user: Dict[str, Any] = Depends(validate_tenant_session),
    db: Session = Depends(get_tenant_db),
):
    """All messages of a room, oldest first."""
    messages = ChatService(db).get_chat_history(room_id)
    return [MessageResponse.model_validate(m) for m in messages]


@router.get("/{tenant_id}/chat/rooms", response_model=List[RoomResponse])
async def list_my_rooms(
    tenant_id: str,
    current_user: Dict[str, Any] = Depends(validate_tenant_session),
    db: Session = Depends(get_tenant_db),
):
    """Rooms the current user belongs to."""
    user_id = int(current_user["user_id"])
    rooms = ChatService(db).list_rooms_for_user(user_id)
    return [RoomResponse.model_validate(r) for r in rooms]


# --- WebSocket ---

def _parse_user_id(raw: Optional[str]) -> Optional[int]:
    """None when absent; raises ValueError when present but not a positive integer."""
    if raw is None or raw == "":
        return None
    value = int(raw)
    if not is_user_id(value):
        raise ValueError(raw)
    return value


@router.websocket("/chat/ws")
async def websocket_chat(websocket: WebSocket):
    """
    Realtime chat. Handshake: ?tenantID=<tenant>[&userID=<id>].
    Frames: {"event": "create-room"|"send", "ack": <any>, "payload": {...}}.
    """
    transport: ChatTransport = websocket.app.state.chat_transport
    tenant_id = websocket.query_params.get("tenantID")
    await websocket.accept()
    if not tenant_id:
        await websocket.close(code=WS_MISSING_TENANT, reason="tenantID query parameter is required")
        return
    if not transport.databases.has_tenant(tenant_id):
        logger.warning("Rejected websocket for unknown tenant %r", tenant_id)
        await websocket.close(code=WS_UNKNOWN_TENANT, reason="UnknownTenant")
        return
    try:
        user_id = _parse_user_id(websocket.query_params.get("userID"))
    except ValueError:
        await websocket.close(code=WS_INVALID_USER, reason="userID must be a positive integer")
        return

    protocol = transport.protocol
    conn = transport.new_connection(tenant_id, user_id)
    await protocol.connect(conn, websocket)
    try:
        while True:
            data = await websocket.receive_text()
            try:
                frame = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_text(
                    json.dumps({"event": "error", "code": "INVALID_JSON", "message": "Frame must be valid JSON."})
                )
                continue
            ack = await protocol.handle_frame(conn, frame)
            await websocket.send_text(json.dumps(ack, default=str))
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning("WebSocket %s closed: %s", conn.socket_id, e)
    finally:
        await protocol.disconnect(conn)
