from app.chat.connection_manager import ConnectionManager
from app.chat.connection_registry import ConnectionRegistry
from app.chat.protocol import ChatConnection, ChatProtocol
from app.chat.transport import ChatTransport

__all__ = [
    "ConnectionManager",
    "ConnectionRegistry",
    "ChatConnection",
    "ChatProtocol",
    "ChatTransport",
]
