"""
rate_limit.py

Generic retry-with-exponential-backoff executor, plus a Redis-based sliding
window limiter guarding the catalog-facing API endpoints.

execute_with_retry retries ANY exception raised by the operation. The TMDB
client's own backoff is narrower and only retries 429 responses; see
TmdbClient._get.
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from movie_watchlist.core.config import settings
from movie_watchlist.core.redis_client import get_redis

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[Any]]


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay_ms: int = 1000,
    label: Optional[str] = None,
    sleep: SleepFn = asyncio.sleep,
) -> T:
    """Run `operation`, retrying on any exception with delays of base, 2*base, 4*base...

    The last exception is re-raised once `max_attempts` calls have failed.
    Cancellation during a backoff sleep propagates immediately.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    name = label or "Unknown"

    for attempt in range(max_attempts):
        try:
            return await operation()
        except Exception as e:
            if attempt == max_attempts - 1:
                logger.error(f"Operation {name} failed after {max_attempts} attempts: {e}")
                raise
            delay_ms = base_delay_ms * (2 ** attempt)
            logger.warning(
                f"Operation {name} failed, attempt {attempt + 1}/{max_attempts}. Retrying in {delay_ms}ms: {e}"
            )
            await sleep(delay_ms / 1000.0)

    raise RuntimeError("Retry loop exited without a result")


class RateLimitExceeded(Exception):
    """Exception raised when an inbound client exceeds its request quota."""

    def __init__(self, message: str, service: str = None, client_id: str = None, status: Dict = None):
        super().__init__(message)
        self.service = service
        self.client_id = client_id
        self.status = status or {}

    @property
    def retry_after_seconds(self) -> int:
        reset_time = self.status.get("reset_time")
        if not reset_time:
            return 1
        return max(1, int(reset_time - time.time()))


class AsyncLimiter:
    """Redis-based rate limiter with sliding window."""

    def __init__(self, service: str, client_id: str = "global", limit: Optional[int] = None, window: Optional[int] = None, redis=None):
        self.service = service
        self.client_id = client_id
        self.redis = redis or get_redis()
        self.limit = limit or settings.api_rate_limit
        self.window = window or settings.api_rate_window_seconds

    @property
    def key(self) -> str:
        return f"rate_limit:{self.service}:{self.client_id}"

    async def acquire(self) -> bool:
        """Attempt to acquire a token. Returns True if allowed, False if rate limited."""
        now = time.time()

        pipe = self.redis.pipeline()
        # Remove expired entries
        pipe.zremrangebyscore(self.key, 0, now - self.window)
        # Add current request; member must be unique per call
        pipe.zadd(self.key, {f"{now:.6f}": now})
        pipe.zcard(self.key)
        pipe.expire(self.key, self.window)

        results = await pipe.execute()
        current_count = results[2]

        if current_count > self.limit:
            logger.warning(f"Rate limit exceeded for {self.service} (client: {self.client_id}): {current_count}/{self.limit}")
            return False
        return True

    async def get_status(self) -> Dict[str, Any]:
        """Get current quota status."""
        now = time.time()
        current_count = await self.redis.zcard(self.key)
        oldest = await self.redis.zrange(self.key, 0, 0, withscores=True)
        window_start = oldest[0][1] if oldest else now

        return {
            "service": self.service,
            "client_id": self.client_id,
            "limit": self.limit,
            "remaining": max(0, self.limit - current_count),
            "reset_time": window_start + self.window,
            "current_count": current_count,
        }


async def check_rate_limit(client_id: str, service: str) -> None:
    """Check the inbound quota and raise RateLimitExceeded when it is spent.

    Redis being unavailable never blocks a request.
    """
    limiter = AsyncLimiter(service, client_id)
    try:
        allowed = await limiter.acquire()
        if allowed:
            return
        status = await limiter.get_status()
    except Exception as e:
        logger.warning(f"Rate limiter unavailable for {service}, allowing request: {e}")
        return
    raise RateLimitExceeded(
        f"Rate limit exceeded for {service}",
        service=service,
        client_id=client_id,
        status=status,
    )
