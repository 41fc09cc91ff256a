"""
dependencies.py

FastAPI dependencies shared by the movie and watchlist routers.
"""
import logging
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from movie_watchlist.core.database import get_db
from movie_watchlist.core.redis_client import get_redis
from movie_watchlist.services.rate_limit import check_rate_limit
from movie_watchlist.services.tmdb_client import TmdbClient
from movie_watchlist.services.watchlist_service import StatisticsCache, WatchlistService
from movie_watchlist.services.watchlist_store import MovieRepository, WatchlistStore

logger = logging.getLogger(__name__)

CATALOG_SERVICE = "catalog_api"

_tmdb_client: Optional[TmdbClient] = None


def get_tmdb_client() -> TmdbClient:
    """Process-wide TMDB client (one pooled httpx connection set)."""
    global _tmdb_client
    if _tmdb_client is None:
        _tmdb_client = TmdbClient()
    return _tmdb_client


async def close_tmdb_client() -> None:
    global _tmdb_client
    if _tmdb_client is not None:
        await _tmdb_client.aclose()
        _tmdb_client = None


def get_statistics_cache() -> StatisticsCache:
    return StatisticsCache(get_redis())


def get_watchlist_service(
    db: Session = Depends(get_db),
    tmdb: TmdbClient = Depends(get_tmdb_client),
    stats_cache: StatisticsCache = Depends(get_statistics_cache),
) -> WatchlistService:
    return WatchlistService(WatchlistStore(db), MovieRepository(db), tmdb, stats_cache=stats_cache)


def client_identifier(request: Request) -> str:
    # IP address plus User-Agent, matching how quota is tracked per caller
    ip = request.client.host if request.client else "unknown"
    user_agent = request.headers.get("user-agent", "unknown")
    return f"{ip}:{user_agent}"


async def enforce_catalog_rate_limit(request: Request) -> None:
    await check_rate_limit(client_identifier(request), CATALOG_SERVICE)
