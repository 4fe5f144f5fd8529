"""
Session Middleware - loads the Redis session for each HTTP request.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from typing import Callable
from app.session import extract_token, get_session


class SessionMiddleware(BaseHTTPMiddleware):
    """Puts the session behind the Authorization bearer token on request.state."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.session = {}
        request.state.token = None

        token = extract_token(request.headers.get("authorization"))
        if token:
            request.state.token = token
            request.state.session = get_session(token) or {}

        return await call_next(request)
