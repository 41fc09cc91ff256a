"""
models.py

SQLAlchemy models for User, cached Movie and WatchlistItem.
"""
import datetime
import enum
import json
import logging
from typing import List, Optional

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, Date, Float, Text, UniqueConstraint, Index, Enum
from sqlalchemy.orm import declarative_base, relationship

from movie_watchlist.core.config import settings
from movie_watchlist.utils.timezone import utc_now

logger = logging.getLogger(__name__)

Base = declarative_base()

# Sentinel for a release date TMDB did not give us (or gave us garbage)
MIN_RELEASE_DATE = datetime.date.min

MIN_USER_RATING = 1
MAX_USER_RATING = 10


class WatchStatus(str, enum.Enum):
    PLANNED = "Planned"
    WATCHING = "Watching"
    WATCHED = "Watched"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    username = Column(String, unique=True, nullable=False)
    email = Column(String, unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    watchlist = relationship("WatchlistItem", back_populates="user", cascade="all, delete-orphan")


class Movie(Base):
    """A TMDB movie cached locally. One row per tmdb_id."""
    __tablename__ = "movies"
    id = Column(Integer, primary_key=True)
    tmdb_id = Column(Integer, nullable=False, unique=True, index=True)
    title = Column(String, nullable=False, default="")
    overview = Column(Text, nullable=False, default="")
    poster_path = Column(String, nullable=False, default="")
    backdrop_path = Column(String, nullable=True)
    release_date = Column(Date, nullable=False, default=MIN_RELEASE_DATE)
    vote_average = Column(Float, nullable=False, default=0.0)
    vote_count = Column(Integer, nullable=False, default=0)
    popularity = Column(Float, nullable=False, default=0.0)
    genres_json = Column("genres", Text, nullable=False, default="[]")  # JSON string
    credits_json = Column(Text, nullable=True)
    videos_json = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def genres(self) -> List[str]:
        try:
            return list(json.loads(self.genres_json or "[]"))
        except (TypeError, ValueError):
            logger.warning(f"Unreadable genres for movie {self.tmdb_id}: {self.genres_json!r}")
            return []

    @genres.setter
    def genres(self, value: Optional[List[str]]) -> None:
        self.genres_json = json.dumps(list(value or []))

    @property
    def release_year(self) -> Optional[int]:
        if self.release_date is None or self.release_date == MIN_RELEASE_DATE:
            return None
        return self.release_date.year

    def is_popular(self, min_vote_count: Optional[int] = None, min_rating: Optional[float] = None) -> bool:
        """Clears the catalog vote-count and rating floors (recommendation thresholds by default)."""
        min_vote_count = settings.recommendation_min_vote_count if min_vote_count is None else min_vote_count
        min_rating = settings.recommendation_min_tmdb_rating if min_rating is None else min_rating
        return (self.vote_count or 0) >= min_vote_count and (self.vote_average or 0.0) >= min_rating

    @property
    def has_supplemental_data(self) -> bool:
        """Credits and videos were cached by a detail fetch."""
        return bool((self.credits_json or "").strip()) and bool((self.videos_json or "").strip())

    def has_genre(self, genre: str) -> bool:
        return genre in self.genres

    def __repr__(self) -> str:
        return f"<Movie tmdb_id={self.tmdb_id} title={self.title!r}>"


class WatchlistItem(Base):
    __tablename__ = "watchlist_items"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    movie_id = Column(Integer, ForeignKey("movies.id"), nullable=False)
    status = Column(Enum(WatchStatus, native_enum=False, length=16), nullable=False, default=WatchStatus.PLANNED)
    is_favorite = Column(Boolean, nullable=False, default=False)
    user_rating = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    added_date = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    watched_date = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="watchlist")
    movie = relationship("Movie", lazy="joined")

    __table_args__ = (
        UniqueConstraint("user_id", "movie_id", name="uq_watchlist_user_movie"),
        Index("ix_watchlist_user_status", "user_id", "status"),
    )

    @classmethod
    def create(cls, user_id: int, movie: Movie, status: WatchStatus = WatchStatus.PLANNED,
               notes: Optional[str] = None, added_date: Optional[datetime.datetime] = None) -> "WatchlistItem":
        item = cls(
            user_id=user_id,
            movie=movie,
            movie_id=movie.id,
            status=WatchStatus.PLANNED,
            is_favorite=False,
            added_date=added_date or utc_now(),
        )
        if status != WatchStatus.PLANNED:
            item.update_status(status)
        if notes:
            item.update_notes(notes)
        return item

    def update_status(self, status: WatchStatus, when: Optional[datetime.datetime] = None) -> None:
        """Change status; the first move to Watched stamps watched_date, which is never cleared."""
        status = WatchStatus(status)
        if status == WatchStatus.WATCHED and self.watched_date is None:
            self.watched_date = when or utc_now()
        self.status = status

    def toggle_favorite(self) -> None:
        self.is_favorite = not self.is_favorite

    def set_rating(self, value: int) -> None:
        if value is None or not (MIN_USER_RATING <= int(value) <= MAX_USER_RATING):
            raise ValueError(f"Rating must be between {MIN_USER_RATING} and {MAX_USER_RATING}")
        self.user_rating = int(value)

    def update_notes(self, notes: Optional[str]) -> None:
        self.notes = notes
