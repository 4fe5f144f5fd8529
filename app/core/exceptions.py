"""
Application exceptions.

HTTP errors carry a {"code", "message"} detail. Chat errors are plain
exceptions: the websocket layer turns them into error acks and the HTTP layer
maps them to status codes in main.py.
"""
from fastapi import HTTPException, status


class AppHTTPException(HTTPException):
    """Base HTTP error with a machine-readable code."""

    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(status_code=status_code, detail={"code": code, "message": message})


class NotFound(AppHTTPException):
    def __init__(self, resource: str = "Resource"):
        super().__init__(status.HTTP_404_NOT_FOUND, "NOT_FOUND", f"{resource} not found.")


class NotAuthenticated(AppHTTPException):
    def __init__(self):
        super().__init__(status.HTTP_401_UNAUTHORIZED, "NOT_AUTHENTICATED", "Authentication required.")


class SessionExpired(AppHTTPException):
    def __init__(self):
        super().__init__(status.HTTP_401_UNAUTHORIZED, "SESSION_EXPIRED", "Session expired. Please log in again.")


class Forbidden(AppHTTPException):
    def __init__(self, message: str = "Access denied."):
        super().__init__(status.HTTP_403_FORBIDDEN, "FORBIDDEN", message)


# --- Chat ---

class ChatError(Exception):
    """Base for chat subsystem errors. `code` is stable and sent to clients."""

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    @property
    def code(self) -> str:
        return self.__class__.__name__


class UnknownTenant(ChatError):
    def __init__(self, tenant_id: str):
        super().__init__(f"Unknown tenant: {tenant_id!r}")
        self.tenant_id = tenant_id


class InvalidParticipants(ChatError):
    pass


class RoomCreationFailed(ChatError):
    pass


class RoomResolutionFailed(ChatError):
    pass


class PersistenceUnavailable(ChatError):
    pass


class TenantConfigError(RuntimeError):
    """Tenant configuration missing or malformed. Fatal at startup."""
