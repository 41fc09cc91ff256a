"""
TMDB client for the movie watchlist.
- Async httpx client; the transport can be swapped for tests.
- Handles 429 with exponential backoff (429 only; other failures raise at once).
- Normalises TMDB payloads into cached-movie rows (not yet persisted).
- No in-module caching; results cached by caller.
"""
import asyncio
import datetime
import json
import logging
import random
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote, urlencode

import httpx

from movie_watchlist.core.config import settings
from movie_watchlist.core.metrics import increment
from movie_watchlist.models import MIN_RELEASE_DATE, Movie
from movie_watchlist.services.errors import ExternalServiceError, InvalidArgumentError, RateLimitError
from movie_watchlist.services.genre_index import GENRE_INDEX, GenreIndex

logger = logging.getLogger(__name__)

# Featured listings get_popular rotates through
FEATURED_ENDPOINTS = ("movie/popular", "movie/top_rated", "movie/now_playing")
FEATURED_MAX_PAGE = 3

DEFAULT_POSTER_SIZE = "w500"
DEFAULT_BACKDROP_SIZE = "w1280"


def parse_release_date(value: Any) -> datetime.date:
    """Parse a TMDB release date; anything missing or unparsable becomes MIN_RELEASE_DATE."""
    if not value or not isinstance(value, str):
        return MIN_RELEASE_DATE
    try:
        return datetime.date.fromisoformat(value.strip()[:10])
    except ValueError:
        return MIN_RELEASE_DATE


def _retry_after_seconds(response: httpx.Response) -> Optional[float]:
    raw = response.headers.get("Retry-After")
    if not raw:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        return None


class TmdbClient:
    """TMDB catalog client.

    Every call builds `{base}/{endpoint}?api_key={key}&{params}`. The client
    keeps no per-call state, so one instance can serve concurrent requests.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        image_base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        genre_index: GenreIndex = GENRE_INDEX,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        max_attempts: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
        counter: Callable[[str], Awaitable[None]] = increment,
    ):
        self.api_key = api_key if api_key is not None else settings.tmdb_api_key
        self.base_url = (base_url or settings.tmdb_base_url).rstrip("/")
        self.image_base_url = (image_base_url or settings.tmdb_image_base_url).rstrip("/")
        self.genre_index = genre_index
        self.max_attempts = max_attempts or settings.tmdb_max_attempts
        self.base_delay_ms = base_delay_ms if base_delay_ms is not None else settings.tmdb_base_delay_ms
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=settings.tmdb_timeout_seconds)
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._counter = counter

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "TmdbClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    # URL helpers

    def build_url(self, endpoint: str, **params: Any) -> str:
        query = {"api_key": self.api_key}
        query.update({k: v for k, v in params.items() if v is not None})
        return f"{self.base_url}/{endpoint.lstrip('/')}?{urlencode(query, quote_via=quote)}"

    def poster_url(self, path: Optional[str], size: str = DEFAULT_POSTER_SIZE) -> str:
        """Compose an image URL. No network call; an empty path yields base + size."""
        return f"{self.image_base_url}/{size}{path or ''}"

    def backdrop_url(self, path: Optional[str], size: str = DEFAULT_BACKDROP_SIZE) -> str:
        return self.poster_url(path, size)

    # Transport

    async def _get(self, endpoint: str, **params: Any) -> httpx.Response:
        """GET with the client's rate-limit backoff.

        Only 429 is retried (delays base, 2*base, 4*base...). After the last
        attempt a RateLimitError carries the server's Retry-After hint, or the
        next backoff delay when the server sent none.
        """
        url = self.build_url(endpoint, **params)
        for attempt in range(self.max_attempts):
            await self._counter("tmdb.requests")
            try:
                response = await self._client.get(url)
            except httpx.HTTPError as e:
                await self._counter("tmdb.errors")
                logger.error(f"TMDB request to {endpoint} failed: {e}")
                raise ExternalServiceError(None, str(e)) from e

            if response.status_code != 429:
                return response

            await self._counter("tmdb.rate_limited")
            delay_ms = self.base_delay_ms * (2 ** attempt)
            if attempt == self.max_attempts - 1:
                retry_after = _retry_after_seconds(response)
                if retry_after is None:
                    retry_after = delay_ms / 1000.0
                logger.error(f"TMDB rate limit persisted for {endpoint} after {self.max_attempts} attempts")
                raise RateLimitError(
                    f"TMDB rate limit exceeded for {endpoint}; retry after {retry_after:g}s",
                    retry_after_seconds=retry_after,
                )
            logger.warning(f"Rate limited on {endpoint}. Retrying in {delay_ms}ms... (Attempt {attempt + 1}/{self.max_attempts})")
            await self._sleep(delay_ms / 1000.0)

        raise RuntimeError("Backoff loop exited without a response")

    @staticmethod
    def _json_or_none(response: httpx.Response) -> Any:
        if not response.content or not response.content.strip():
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ExternalServiceError(response.status_code, f"Invalid JSON from TMDB: {e}") from e

    async def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        await self._counter("tmdb.errors")
        logger.error(f"TMDB API request failed with status {response.status_code}")
        raise ExternalServiceError(response.status_code, response.text)

    async def _get_movie_list(self, endpoint: str, **params: Any) -> List[Movie]:
        response = await self._get(endpoint, **params)
        await self._raise_for_status(response)
        payload = self._json_or_none(response) or {}
        return self.map_movies(payload.get("results") or [])

    # Catalog operations

    async def search(self, query: str, page: int = 1) -> List[Movie]:
        """Search movies by title, most-voted first. No match gives an empty list."""
        movies = await self._get_movie_list("search/movie", query=query, page=page)
        return sorted(movies, key=lambda m: m.vote_count, reverse=True)

    async def get_details(self, tmdb_id: int) -> Optional[Movie]:
        """Full movie details (with credits and videos in the same call).

        404 or an empty body means "not found" and returns None.
        """
        response = await self._get(f"movie/{tmdb_id}", append_to_response="credits,videos")
        if response.status_code == 404:
            logger.info(f"TMDB movie {tmdb_id} not found")
            return None
        await self._raise_for_status(response)

        payload = self._json_or_none(response)
        if not payload:
            return None

        movie = self.map_movie(payload)
        # Credits/videos are extras; a movie without them is still valid
        try:
            if payload.get("credits") is not None:
                movie.credits_json = json.dumps(payload["credits"])
            videos = payload.get("videos")
            if videos is not None:
                movie.videos_json = json.dumps(videos.get("results", []) if isinstance(videos, dict) else videos)
        except (TypeError, ValueError) as e:
            logger.warning(f"Failed to serialize credits/videos for movie {tmdb_id}: {e}")
        return movie

    async def get_popular(self, page: int = 1) -> List[Movie]:
        """A varied slice of featured movies.

        Picks one of popular / top-rated / now-playing and a page in [1, 3] at
        random, then shuffles the results so repeated calls do not show the
        same ordering. The `page` argument is accepted for API symmetry; the
        random page replaces it.
        """
        endpoint = FEATURED_ENDPOINTS[self._rng.randrange(len(FEATURED_ENDPOINTS))]
        random_page = self._rng.randint(1, FEATURED_MAX_PAGE)
        logger.debug(f"Featured movies from {endpoint} page {random_page} (requested page {page})")

        movies = await self._get_movie_list(endpoint, page=random_page)
        self._rng.shuffle(movies)
        return movies

    async def get_by_genre(self, genre_name: str, page: int = 1) -> List[Movie]:
        genre_id = self.genre_index.id_for(genre_name)
        if genre_id is None:
            raise InvalidArgumentError(
                f"Invalid genre: {genre_name}. Please use a valid genre name like 'comedy', 'action', 'drama', etc."
            )
        return await self._get_movie_list("discover/movie", with_genres=genre_id, page=page)

    # Mapping

    def map_movies(self, dtos: List[Dict[str, Any]]) -> List[Movie]:
        return [self.map_movie(dto) for dto in dtos if isinstance(dto, dict)]

    def map_movie(self, dto: Dict[str, Any]) -> Movie:
        """Map a TMDB movie payload (detail or list entry) to a Movie row."""
        if dto.get("genres"):
            genre_names = [g.get("name") for g in dto["genres"] if isinstance(g, dict) and g.get("name")]
        else:
            genre_names = self.genre_index.names_for(dto.get("genre_ids") or [])

        return Movie(
            tmdb_id=int(dto.get("id") or 0),
            title=dto.get("title") or "",
            overview=dto.get("overview") or "",
            poster_path=dto.get("poster_path") or "",
            backdrop_path=dto.get("backdrop_path"),
            release_date=parse_release_date(dto.get("release_date")),
            vote_average=float(dto.get("vote_average") or 0.0),
            vote_count=int(dto.get("vote_count") or 0),
            popularity=float(dto.get("popularity") or 0.0),
            genres=genre_names,
        )
