from __future__ import annotations
import logging
from typing import Dict

from movie_watchlist.core.redis_client import get_redis

logger = logging.getLogger(__name__)

COUNTERS_KEY = "metrics:counters"


async def increment(name: str, amount: int = 1) -> None:
    r = get_redis()
    try:
        await r.hincrby(COUNTERS_KEY, name, amount)
    except Exception as e:
        # Counters are best-effort; never fail a request over them
        logger.debug(f"Metric increment failed for {name}: {e}")


async def counters_snapshot() -> Dict[str, int]:
    r = get_redis()
    out: Dict[str, int] = {}
    try:
        data = await r.hgetall(COUNTERS_KEY)
        for k, v in (data or {}).items():
            key = k.decode("utf-8") if isinstance(k, bytes) else str(k)
            try:
                out[key] = int(v)
            except (TypeError, ValueError):
                out[key] = 0
    except Exception as e:
        logger.debug(f"Metric snapshot failed: {e}")
    return out
