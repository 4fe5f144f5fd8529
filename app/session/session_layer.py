"""
Session layer - Redis-backed bearer token lookup.

Sessions are written by the auth service; this subsystem only reads them.
A session holds at least user_id and tenant_id.
"""
from typing import Optional, Dict, Any
import logging
import json
import redis

logger = logging.getLogger(__name__)

_redis_pool: Optional[redis.ConnectionPool] = None
_redis_client: Optional[redis.Redis] = None

SESSION_KEY_PREFIX = "session:"


def init_redis(host: str, port: int, db: int) -> None:
    """Initialize the Redis connection pool. Call once at app startup."""
    global _redis_pool, _redis_client
    _redis_pool = redis.ConnectionPool(
        host=host,
        port=port,
        db=db,
        decode_responses=True,
        max_connections=10
    )
    _redis_client = redis.Redis(connection_pool=_redis_pool)
    logger.info(f"Redis initialized: {host}:{port}/{db}")


def close_redis() -> None:
    global _redis_pool, _redis_client
    if _redis_pool is not None:
        _redis_pool.disconnect()
    _redis_pool = None
    _redis_client = None


def set_redis_client(client: Optional[redis.Redis]) -> None:
    """Swap the client (tests, alternative wiring)."""
    global _redis_client
    _redis_client = client


def _get_redis_client() -> redis.Redis:
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


def get_session(token: str) -> Optional[Dict[str, Any]]:
    """Session data for a token, or None if unknown or expired."""
    data = _get_redis_client().get(f"{SESSION_KEY_PREFIX}{token}")
    if not data:
        return None
    return json.loads(data)


def extract_token(auth_header: Optional[str]) -> Optional[str]:
    """Bearer token from an Authorization header."""
    if not auth_header:
        return None
    parts = auth_header.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]
