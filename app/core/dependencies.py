"""
FastAPI dependencies for route protection.
"""
from fastapi import Request, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.core.exceptions import Forbidden, NotAuthenticated, SessionExpired
from typing import Dict, Any

# Security scheme for OpenAPI docs
bearer_scheme = HTTPBearer(
    scheme_name="Bearer",
    description="Session token issued at login",
    auto_error=False,
)


async def validate_session(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)
) -> Dict[str, Any]:
    """
    Validates the session loaded by SessionMiddleware.

    Returns:
        Session dict with user_id and tenant_id

    Raises:
        NotAuthenticated: No token provided
        SessionExpired: Token not found in Redis
    """
    if not request.state.token:
        raise NotAuthenticated()

    if not request.state.session:
        raise SessionExpired()

    return request.state.session


async def validate_tenant_session(
    tenant_id: str,
    current_user: Dict[str, Any] = Depends(validate_session),
) -> Dict[str, Any]:
    """Session must belong to the tenant named in the path."""
    if str(current_user.get("tenant_id")) != tenant_id:
        raise Forbidden("Session does not belong to this tenant.")
    return current_user
