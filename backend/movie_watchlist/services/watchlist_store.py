"""
watchlist_store.py

Session-bound persistence for watchlist entries and the local movie cache.
"""
import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from movie_watchlist.models import Movie, User, WatchlistItem
from movie_watchlist.services.errors import ConflictError
from movie_watchlist.utils.timezone import utc_now

logger = logging.getLogger(__name__)


class WatchlistStore:
    def __init__(self, db: Session):
        self.db = db

    def ensure_user(self, user_id: int) -> User:
        """Single-user mode: make sure the owning user row exists."""
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is not None:
            return user
        try:
            user = User(id=user_id, username=f"user{user_id}")
            self.db.add(user)
            self.db.commit()
            return user
        except Exception as e:
            logger.error(f"Failed to create user {user_id}: {e}")
            self.db.rollback()
            raise

    def entries_for_user(self, user_id: int) -> List[WatchlistItem]:
        return (
            self.db.query(WatchlistItem)
            .filter(WatchlistItem.user_id == user_id)
            .order_by(WatchlistItem.added_date.desc(), WatchlistItem.id.desc())
            .all()
        )

    def get_entry(self, user_id: int, entry_id: int) -> Optional[WatchlistItem]:
        return (
            self.db.query(WatchlistItem)
            .filter(WatchlistItem.user_id == user_id, WatchlistItem.id == entry_id)
            .first()
        )

    def get_by_user_and_tmdb_id(self, user_id: int, tmdb_id: int) -> Optional[WatchlistItem]:
        return (
            self.db.query(WatchlistItem)
            .join(Movie, WatchlistItem.movie_id == Movie.id)
            .filter(WatchlistItem.user_id == user_id, Movie.tmdb_id == tmdb_id)
            .first()
        )

    def add(self, entry: WatchlistItem) -> WatchlistItem:
        try:
            self.db.add(entry)
            self.db.commit()
            self.db.refresh(entry)
            logger.info(f"Added movie {entry.movie_id} to watchlist of user {entry.user_id}")
            return entry
        except IntegrityError as e:
            # uq_watchlist_user_movie: a concurrent add of the same movie won
            self.db.rollback()
            logger.warning(f"Duplicate watchlist entry for user {entry.user_id}, movie {entry.movie_id}: {e}")
            raise ConflictError("Movie is already in user's watchlist") from e
        except Exception as e:
            logger.error(f"Failed to add watchlist entry: {e}")
            self.db.rollback()
            raise

    def save(self, entry: WatchlistItem) -> WatchlistItem:
        try:
            self.db.commit()
            self.db.refresh(entry)
            return entry
        except Exception as e:
            logger.error(f"Failed to update watchlist entry {entry.id}: {e}")
            self.db.rollback()
            raise

    def delete(self, entry: WatchlistItem) -> None:
        try:
            self.db.delete(entry)
            self.db.commit()
            logger.info(f"Removed watchlist entry {entry.id} for user {entry.user_id}")
        except Exception as e:
            logger.error(f"Failed to remove watchlist entry {entry.id}: {e}")
            self.db.rollback()
            raise


class MovieRepository:
    def __init__(self, db: Session):
        self.db = db

    def all_cached_movies(self) -> List[Movie]:
        return self.db.query(Movie).all()

    def get_by_tmdb_id(self, tmdb_id: int) -> Optional[Movie]:
        return self.db.query(Movie).filter(Movie.tmdb_id == tmdb_id).first()

    def upsert(self, movie: Movie) -> Movie:
        """Cache a movie, at most once per tmdb_id. An existing row gets the new field values."""
        existing = self.get_by_tmdb_id(movie.tmdb_id)
        try:
            if existing is None:
                self.db.add(movie)
                self.db.commit()
                self.db.refresh(movie)
                logger.info(f"Cached TMDB movie {movie.tmdb_id} as {movie.id}")
                return movie

            for field in (
                "title", "overview", "poster_path", "backdrop_path", "release_date",
                "vote_average", "vote_count", "popularity", "genres_json",
            ):
                setattr(existing, field, getattr(movie, field))
            if movie.credits_json is not None:
                existing.credits_json = movie.credits_json
            if movie.videos_json is not None:
                existing.videos_json = movie.videos_json
            existing.updated_at = utc_now()
            self.db.commit()
            self.db.refresh(existing)
            return existing
        except Exception as e:
            logger.error(f"Failed to cache TMDB movie {movie.tmdb_id}: {e}")
            self.db.rollback()
            raise
