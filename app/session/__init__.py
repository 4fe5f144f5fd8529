from .session_layer import (
    init_redis,
    close_redis,
    set_redis_client,
    get_session,
    extract_token,
)

__all__ = [
    "init_redis",
    "close_redis",
    "set_redis_client",
    "get_session",
    "extract_token",
]
