"""
In-memory channel manager for chat WebSockets: attach sockets, subscribe them
to channels, send to one socket or broadcast to a channel.
"""
import asyncio
import json
import logging
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


def room_channel(tenant_id: str, room_id: int) -> str:
    return f"{tenant_id}:room_{room_id}"


def general_channel(tenant_id: str) -> str:
    return f"{tenant_id}:general"


class ConnectionManager:
    """Tracks live WebSockets by socket id and their channel subscriptions."""

    def __init__(self) -> None:
        self._sockets: Dict[str, WebSocket] = {}
        # channel -> socket ids
        self._channels: Dict[str, Set[str]] = {}
        # socket id -> channels
        self._subscriptions: Dict[str, Set[str]] = {}
        self._lock = asyncio.Lock()

    async def attach(self, socket_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._sockets[socket_id] = websocket
            self._subscriptions.setdefault(socket_id, set())

    async def detach(self, socket_id: str) -> None:
        """Forget the socket and drop all its subscriptions."""
        async with self._lock:
            self._sockets.pop(socket_id, None)
            for channel in self._subscriptions.pop(socket_id, set()):
                self._discard(channel, socket_id)
        logger.debug("Detached socket %s", socket_id)

    def _discard(self, channel: str, socket_id: str) -> None:
        members = self._channels.get(channel)
        if members is None:
            return
        members.discard(socket_id)
        if not members:
            del self._channels[channel]

    async def subscribe(self, socket_id: str, channel: str) -> bool:
        """Returns False if the socket is not attached."""
        async with self._lock:
            if socket_id not in self._sockets:
                return False
            self._channels.setdefault(channel, set()).add(socket_id)
            self._subscriptions[socket_id].add(channel)
        logger.debug("Subscribed socket %s to %s", socket_id, channel)
        return True

    def is_subscribed(self, socket_id: str, channel: str) -> bool:
        return socket_id in self._channels.get(channel, ())

    async def send_to_socket(self, socket_id: str, frame: Dict[str, Any]) -> bool:
        """Send one JSON frame. Returns False if the socket is gone or the send failed."""
        websocket = self._sockets.get(socket_id)
        if websocket is None:
            return False
        try:
            await websocket.send_text(json.dumps(frame, default=str))
        except Exception as e:
            logger.warning("Send to socket %s failed: %s", socket_id, e)
            await self.detach(socket_id)
            return False
        return True

    async def broadcast(
        self,
        channel: str,
        event: str,
        payload: Any,
        room_id: Optional[int] = None,
        exclude_socket_id: Optional[str] = None,
    ) -> int:
        """Send an event to every subscriber of channel except exclude_socket_id. Returns deliveries."""
        frame: Dict[str, Any] = {"event": event, "payload": payload}
        if room_id is not None:
            frame["room_id"] = room_id
        async with self._lock:
            targets = set(self._channels.get(channel) or [])
        sent = 0
        for socket_id in targets:
            if socket_id == exclude_socket_id:
                continue
            if await self.send_to_socket(socket_id, frame):
                sent += 1
        return sent
