"""
watchlist_service.py

Watchlist use cases: add/update/remove entries, filtered views, statistics
(cached in Redis, invalidated on every change) and recommendations.

TMDB detail lookups made while adding a movie go through the generic
execute_with_retry policy, which retries any failure. The TmdbClient's own
429-only backoff runs inside each of those attempts.
"""
import logging
from typing import Any, Awaitable, Callable, List, Optional

from movie_watchlist.core.config import settings
from movie_watchlist.models import Movie, WatchlistItem, WatchStatus
from movie_watchlist.schemas import WatchlistStatistics
from movie_watchlist.services import aggregation
from movie_watchlist.services.errors import ConflictError, InvalidArgumentError, NotFoundError
from movie_watchlist.services.rate_limit import execute_with_retry
from movie_watchlist.services.tmdb_client import TmdbClient
from movie_watchlist.services.watchlist_store import MovieRepository, WatchlistStore

logger = logging.getLogger(__name__)

DETAILS_MAX_ATTEMPTS = 3
DETAILS_BASE_DELAY_MS = 1000


class StatisticsCache:
    """Per-user statistics snapshot in Redis. Cache failures never fail a request."""

    def __init__(self, redis, ttl_seconds: Optional[int] = None):
        self.redis = redis
        self.ttl_seconds = ttl_seconds or settings.stats_cache_ttl_seconds

    @staticmethod
    def key(user_id: int) -> str:
        return f"stats:user:{user_id}"

    async def get(self, user_id: int) -> Optional[WatchlistStatistics]:
        try:
            raw = await self.redis.get(self.key(user_id))
        except Exception as e:
            logger.warning(f"Statistics cache read failed for user {user_id}: {e}")
            return None
        if not raw:
            return None
        try:
            return WatchlistStatistics.model_validate_json(raw)
        except ValueError as e:
            logger.warning(f"Discarding unreadable statistics cache for user {user_id}: {e}")
            return None

    async def set(self, user_id: int, stats: WatchlistStatistics) -> None:
        try:
            await self.redis.set(self.key(user_id), stats.model_dump_json(), ex=self.ttl_seconds)
        except Exception as e:
            logger.warning(f"Statistics cache write failed for user {user_id}: {e}")

    async def invalidate(self, user_id: int) -> None:
        try:
            await self.redis.delete(self.key(user_id))
        except Exception as e:
            logger.warning(f"Statistics cache invalidation failed for user {user_id}: {e}")


class WatchlistService:
    def __init__(
        self,
        store: WatchlistStore,
        movies: MovieRepository,
        tmdb: TmdbClient,
        stats_cache: Optional[StatisticsCache] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.store = store
        self.movies = movies
        self.tmdb = tmdb
        self.stats_cache = stats_cache
        self._sleep = sleep

    async def _invalidate_statistics(self, user_id: int) -> None:
        if self.stats_cache is not None:
            await self.stats_cache.invalidate(user_id)

    async def _fetch_details(self, tmdb_id: int) -> Optional[Movie]:
        kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        return await execute_with_retry(
            lambda: self.tmdb.get_details(tmdb_id),
            max_attempts=DETAILS_MAX_ATTEMPTS,
            base_delay_ms=DETAILS_BASE_DELAY_MS,
            label="TMDB GetMovieDetails",
            **kwargs,
        )

    # Movie cache

    async def get_movie(self, tmdb_id: int) -> Movie:
        """Cached movie for a TMDB id, fetched and cached on first request."""
        movie = self.movies.get_by_tmdb_id(tmdb_id)
        if movie is not None:
            return movie
        fetched = await self._fetch_details(tmdb_id)
        if fetched is None:
            raise NotFoundError(f"Movie with TMDB ID {tmdb_id} not found")
        return self.movies.upsert(fetched)

    async def get_movie_details(self, tmdb_id: int) -> Movie:
        """Like get_movie, but a cached row without credits or videos is re-fetched and updated."""
        movie = self.movies.get_by_tmdb_id(tmdb_id)
        if movie is not None and movie.has_supplemental_data:
            return movie
        fetched = await self._fetch_details(tmdb_id)
        if fetched is None:
            raise NotFoundError(f"Movie with TMDB ID {tmdb_id} not found")
        if movie is not None:
            logger.info(f"Refreshing cached movie {tmdb_id} missing credits/videos")
        return self.movies.upsert(fetched)

    # Reads

    def get_watchlist(self, user_id: int) -> List[WatchlistItem]:
        return self.store.entries_for_user(user_id)

    def get_item(self, user_id: int, item_id: int) -> WatchlistItem:
        item = self.store.get_entry(user_id, item_id)
        if item is None:
            raise NotFoundError("Watchlist item not found")
        return item

    def get_by_status(self, user_id: int, status: WatchStatus) -> List[WatchlistItem]:
        return [e for e in self.store.entries_for_user(user_id) if e.status == status]

    def get_favorites(self, user_id: int) -> List[WatchlistItem]:
        return [e for e in self.store.entries_for_user(user_id) if e.is_favorite]

    def get_by_genre(self, user_id: int, genre: str) -> List[WatchlistItem]:
        items = [e for e in self.store.entries_for_user(user_id) if e.movie.has_genre(genre)]
        return sorted(items, key=lambda e: e.added_date, reverse=True)

    def get_by_year_range(self, user_id: int, start_year: int, end_year: int) -> List[WatchlistItem]:
        if start_year > end_year:
            raise InvalidArgumentError(f"start_year {start_year} is after end_year {end_year}")
        items = [
            e for e in self.store.entries_for_user(user_id)
            if start_year <= e.movie.release_date.year <= end_year
        ]
        return sorted(items, key=lambda e: e.movie.release_date, reverse=True)

    def get_by_rating_range(self, user_id: int, min_rating: float, max_rating: float) -> List[WatchlistItem]:
        if min_rating > max_rating:
            raise InvalidArgumentError(f"min_rating {min_rating} is above max_rating {max_rating}")
        items = [
            e for e in self.store.entries_for_user(user_id)
            if min_rating <= (e.movie.vote_average or 0.0) <= max_rating
        ]
        return sorted(items, key=lambda e: e.movie.vote_average or 0.0, reverse=True)

    async def get_statistics(self, user_id: int) -> WatchlistStatistics:
        if self.stats_cache is not None:
            cached = await self.stats_cache.get(user_id)
            if cached is not None:
                return cached

        stats = aggregation.compute_statistics(self.store.entries_for_user(user_id))
        if self.stats_cache is not None:
            await self.stats_cache.set(user_id, stats)
        return stats

    def get_recommendations(self, user_id: int, limit: int = 10) -> List[Movie]:
        entries = self.store.entries_for_user(user_id)
        return aggregation.recommend(entries, self.movies.all_cached_movies(), limit=limit)

    # Mutations

    async def add_to_watchlist(
        self,
        user_id: int,
        tmdb_id: int,
        status: WatchStatus = WatchStatus.PLANNED,
        notes: Optional[str] = None,
    ) -> WatchlistItem:
        """Add a movie by TMDB id, caching it locally first if needed."""
        if self.store.get_by_user_and_tmdb_id(user_id, tmdb_id) is not None:
            raise ConflictError("Movie is already in user's watchlist")

        movie = await self.get_movie(tmdb_id)
        self.store.ensure_user(user_id)
        item = WatchlistItem.create(user_id, movie, status=status, notes=notes)
        item = self.store.add(item)

        await self._invalidate_statistics(user_id)
        logger.info(f"User {user_id} added '{movie.title}' ({tmdb_id}) as {WatchStatus(status).value}")
        return item

    async def update_item(
        self,
        user_id: int,
        item_id: int,
        status: Optional[WatchStatus] = None,
        is_favorite: Optional[bool] = None,
        user_rating: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> WatchlistItem:
        item = self.get_item(user_id, item_id)

        # Validate before touching the entry so a bad rating changes nothing
        if user_rating is not None:
            try:
                item.set_rating(user_rating)
            except ValueError as e:
                raise InvalidArgumentError(str(e)) from e
        if status is not None:
            item.update_status(status)
        if is_favorite is not None and item.is_favorite != is_favorite:
            item.toggle_favorite()
        if notes is not None:
            item.update_notes(notes)

        item = self.store.save(item)
        await self._invalidate_statistics(user_id)
        return item

    async def remove_item(self, user_id: int, item_id: int) -> None:
        item = self.get_item(user_id, item_id)
        self.store.delete(item)
        await self._invalidate_statistics(user_id)
