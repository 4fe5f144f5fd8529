"""
Connection registry: which live socket belongs to which user, per tenant.

Process memory only. Last connect wins for a user; a disconnect only removes
the entry if it still points at the disconnecting socket.
"""
import logging
import threading
from typing import Dict, NamedTuple, Optional, Tuple

logger = logging.getLogger(__name__)


class SocketOwner(NamedTuple):
    tenant_id: str
    user_id: int


class ConnectionRegistry:
    """(tenant, user) <-> socket id mapping. Safe to call from worker threads."""

    def __init__(self) -> None:
        self._by_user: Dict[Tuple[str, int], str] = {}
        self._by_socket: Dict[str, SocketOwner] = {}
        self._lock = threading.Lock()

    def on_connect(self, user_id: int, socket_id: str, tenant_id: str) -> Optional[str]:
        """Record the association. Returns the superseded socket id, if any."""
        key = (tenant_id, user_id)
        with self._lock:
            previous = self._by_user.get(key)
            if previous is not None and previous != socket_id:
                self._by_socket.pop(previous, None)
            old_owner = self._by_socket.get(socket_id)
            if old_owner is not None and old_owner != SocketOwner(tenant_id, user_id):
                if self._by_user.get((old_owner.tenant_id, old_owner.user_id)) == socket_id:
                    del self._by_user[(old_owner.tenant_id, old_owner.user_id)]
            self._by_user[key] = socket_id
            self._by_socket[socket_id] = SocketOwner(tenant_id, user_id)
        if previous is not None and previous != socket_id:
            logger.info("User %s@%s reconnected: socket %s supersedes %s", user_id, tenant_id, socket_id, previous)
            return previous
        logger.debug("User %s@%s connected on socket %s", user_id, tenant_id, socket_id)
        return None

    def on_disconnect(self, socket_id: str) -> Optional[SocketOwner]:
        """Drop the socket. No-op for unknown or already removed sockets."""
        with self._lock:
            owner = self._by_socket.pop(socket_id, None)
            if owner is None:
                return None
            key = (owner.tenant_id, owner.user_id)
            if self._by_user.get(key) == socket_id:
                del self._by_user[key]
        logger.debug("Socket %s of user %s@%s disconnected", socket_id, owner.user_id, owner.tenant_id)
        return owner

    def lookup(self, tenant_id: str, user_id: int) -> Optional[str]:
        """Live socket id for the user, or None when offline."""
        return self._by_user.get((tenant_id, user_id))

    def __len__(self) -> int:
        return len(self._by_user)
