"""
Chat transport bootstrap: owns the connection registry and channel manager
and wires them to the event protocol.
"""
import uuid
from typing import Optional

from app.chat.connection_manager import ConnectionManager
from app.chat.connection_registry import ConnectionRegistry
from app.chat.protocol import ChatConnection, ChatProtocol
from app.core.database import TenantDatabases


class ChatTransport:
    """One per process. Tests build their own with isolated state."""

    def __init__(self, databases: TenantDatabases):
        self.databases = databases
        self.registry = ConnectionRegistry()
        self.manager = ConnectionManager()
        self.protocol = ChatProtocol(databases, self.registry, self.manager)

    def new_connection(self, tenant_id: str, user_id: Optional[int] = None) -> ChatConnection:
        return ChatConnection(uuid.uuid4().hex, tenant_id, user_id)
