"""
redis_client.py

Async Redis access for the statistics cache, the inbound limiter and the
metrics counters.

redis.asyncio connections are bound to the event loop that opened them, so
one client is kept per running loop. The TestClient and the uvicorn worker
each get their own.
"""
import asyncio
import logging
import threading
from typing import Dict, Tuple

from redis import asyncio as aioredis
from redis.asyncio.connection import ConnectionPool as AsyncConnectionPool

from movie_watchlist.core.config import settings

logger = logging.getLogger(__name__)

_clients: Dict[Tuple[str, int], aioredis.Redis] = {}


def _scope() -> Tuple[str, int]:
    try:
        return ("loop", id(asyncio.get_running_loop()))
    except RuntimeError:
        return ("thread", threading.get_ident())


def get_redis() -> aioredis.Redis:
    """Redis client for the current event loop, created on first use."""
    scope = _scope()
    client = _clients.get(scope)
    if client is None:
        pool = AsyncConnectionPool.from_url(
            settings.redis_url,
            decode_responses=True,
            max_connections=50,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
        )
        client = aioredis.Redis(connection_pool=pool)
        _clients[scope] = client
    return client


async def close_redis() -> None:
    """Release the current loop's client and its pool."""
    client = _clients.pop(_scope(), None)
    if client is None:
        return
    try:
        await client.aclose(close_connection_pool=True)
    except Exception as e:
        logger.warning(f"Error closing Redis client: {e}")
