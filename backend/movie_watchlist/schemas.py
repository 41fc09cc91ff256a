"""
schemas.py

Pydantic schemas for Movie, WatchlistItem, statistics and request payloads.
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Optional, Dict, List
import datetime
import json

from movie_watchlist.models import WatchStatus


class MovieSchema(BaseModel):
    id: Optional[int] = None
    tmdb_id: int
    title: str
    overview: str = ""
    poster_path: str = ""
    backdrop_path: Optional[str] = None
    release_date: datetime.date
    vote_average: float = 0.0
    vote_count: int = 0
    popularity: float = 0.0
    genres: List[str] = []
    model_config = ConfigDict(from_attributes=True)


# Served when a cached row has no (or unreadable) credits/videos
EMPTY_CREDITS_JSON = '{"cast": [], "crew": []}'
EMPTY_VIDEOS_JSON = "[]"


def _parse_json_or_default(value, default_json: str, expected: type):
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except ValueError:
            parsed = None
        if isinstance(parsed, expected):
            return parsed
    elif isinstance(value, expected):
        return value
    return json.loads(default_json)


class MovieDetailsSchema(MovieSchema):
    """Movie plus the credits and videos cached from the TMDB detail call."""
    credits_json: Dict[str, Any] = Field(default_factory=lambda: json.loads(EMPTY_CREDITS_JSON))
    videos_json: List[Any] = Field(default_factory=list)

    @field_validator("credits_json", mode="before")
    @classmethod
    def _parse_credits(cls, value):
        return _parse_json_or_default(value, EMPTY_CREDITS_JSON, dict)

    @field_validator("videos_json", mode="before")
    @classmethod
    def _parse_videos(cls, value):
        return _parse_json_or_default(value, EMPTY_VIDEOS_JSON, list)


class WatchlistItemSchema(BaseModel):
    id: int
    user_id: int
    movie_id: int
    status: WatchStatus
    is_favorite: bool
    user_rating: Optional[int] = None
    notes: Optional[str] = None
    added_date: datetime.datetime
    watched_date: Optional[datetime.datetime] = None
    movie: MovieSchema
    model_config = ConfigDict(from_attributes=True)


class WatchlistStatistics(BaseModel):
    total_movies: int = 0
    watched_movies: int = 0
    planned_movies: int = 0
    watching_movies: int = 0
    favorite_movies: int = 0
    movies_this_year: int = 0
    average_user_rating: float = 0.0
    average_tmdb_rating: float = 0.0
    most_watched_genre: str = ""
    genre_breakdown: Dict[str, int] = {}
    yearly_breakdown: Dict[int, int] = {}


# Payloads
class AddToWatchlistRequest(BaseModel):
    movie_id: int = Field(..., description="TMDB id of the movie to add")
    status: WatchStatus = WatchStatus.PLANNED
    notes: Optional[str] = Field(None, max_length=2000)
    user_id: int = 1


class UpdateWatchlistItemRequest(BaseModel):
    watchlist_item_id: int
    status: Optional[WatchStatus] = None
    is_favorite: Optional[bool] = None
    user_rating: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=2000)
    user_id: int = 1
