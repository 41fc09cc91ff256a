"""Builders for transient Movie / WatchlistItem rows used across the unit tests."""
import datetime

from movie_watchlist.models import Movie, WatchlistItem, WatchStatus

UTC = datetime.timezone.utc


def make_movie(movie_id, genres, vote_average=7.5, vote_count=2000, popularity=10.0,
               release_date=datetime.date(2010, 1, 1), tmdb_id=None, title=None):
    return Movie(
        id=movie_id,
        tmdb_id=tmdb_id if tmdb_id is not None else 1000 + movie_id,
        title=title or f"Movie {movie_id}",
        overview="",
        poster_path="",
        release_date=release_date,
        vote_average=vote_average,
        vote_count=vote_count,
        popularity=popularity,
        genres=genres,
    )


def make_entry(entry_id, movie, status=WatchStatus.PLANNED, rating=None, favorite=False,
               added_date=datetime.datetime(2026, 3, 1, tzinfo=UTC), user_id=1):
    return WatchlistItem(
        id=entry_id,
        user_id=user_id,
        movie=movie,
        movie_id=movie.id,
        status=status,
        is_favorite=favorite,
        user_rating=rating,
        added_date=added_date,
    )


class RecordingSleep:
    """Async stand-in for asyncio.sleep that only records the requested delays."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


async def no_metrics(name, amount=1):
    return None


class StubWatchlistStore:
    def __init__(self, items=None):
        self.items = list(items or [])
        self.users = set()
        self.saved = 0

    def ensure_user(self, user_id):
        self.users.add(user_id)

    def entries_for_user(self, user_id):
        return [i for i in self.items if i.user_id == user_id]

    def get_entry(self, user_id, entry_id):
        return next((i for i in self.items if i.user_id == user_id and i.id == entry_id), None)

    def get_by_user_and_tmdb_id(self, user_id, tmdb_id):
        return next((i for i in self.items if i.user_id == user_id and i.movie.tmdb_id == tmdb_id), None)

    def add(self, entry):
        entry.id = max((i.id for i in self.items), default=0) + 1
        self.items.append(entry)
        return entry

    def save(self, entry):
        self.saved += 1
        return entry

    def delete(self, entry):
        self.items.remove(entry)


class StubMovieRepository:
    def __init__(self, movies=None):
        self.movies = {m.tmdb_id: m for m in movies or []}

    def all_cached_movies(self):
        return list(self.movies.values())

    def get_by_tmdb_id(self, tmdb_id):
        return self.movies.get(tmdb_id)

    def upsert(self, movie):
        if movie.id is None:
            movie.id = len(self.movies) + 1
        self.movies[movie.tmdb_id] = movie
        return movie


class StubTmdb:
    """get_details answers from a script: each item is a Movie, None, or an exception to raise."""

    def __init__(self, *script):
        self.script = list(script)
        self.calls = []

    async def get_details(self, tmdb_id):
        self.calls.append(tmdb_id)
        result = self.script.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class FakeRedis:
    def __init__(self, broken=False):
        self.data = {}
        self.broken = broken

    def _check(self):
        if self.broken:
            raise ConnectionError("redis down")

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.data[key] = value

    async def delete(self, key):
        self._check()
        self.data.pop(key, None)


def catalog_movie(tmdb_id, title="Heat", genres=("Crime", "Thriller"), credits_json=None, videos_json=None):
    """An unsaved movie as the TMDB client would return it."""
    movie = make_movie(0, list(genres), tmdb_id=tmdb_id, title=title)
    movie.id = None
    movie.credits_json = credits_json
    movie.videos_json = videos_json
    return movie
