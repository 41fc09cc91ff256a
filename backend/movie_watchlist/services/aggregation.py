"""
aggregation.py

Per-user watchlist statistics and genre-based recommendations.

Pure computation over already-fetched collections: nothing here touches the
database, Redis or TMDB, and inputs are never mutated.

Genre ranking uses collections.Counter.most_common, which orders by count
descending and keeps ties in first-seen order. First-seen means the order
genres are met while walking the entries as given, and each movie's genres
in their listed order. Two genres tied on count therefore rank by whichever
appeared first in the input, never alphabetically.
"""
import datetime
import logging
from collections import Counter
from typing import Iterable, List, Optional, Sequence

from movie_watchlist.core.config import settings
from movie_watchlist.models import MIN_RELEASE_DATE, Movie, WatchlistItem, WatchStatus
from movie_watchlist.schemas import WatchlistStatistics
from movie_watchlist.utils.timezone import ensure_utc, utc_now

logger = logging.getLogger(__name__)


def _require_list(value, name: str) -> list:
    if value is None:
        raise TypeError(f"{name} must be a collection, not None")
    return list(value)


def _is_watched(entry: WatchlistItem) -> bool:
    return entry.status == WatchStatus.WATCHED


def genre_counts(entries: Iterable[WatchlistItem]) -> Counter:
    """Count genres across entries; a movie with 3 genres adds to 3 buckets."""
    counts: Counter = Counter()
    for entry in entries:
        counts.update(entry.movie.genres)
    return counts


def top_genres(
    entries: Sequence[WatchlistItem],
    count: Optional[int] = None,
    min_user_rating: Optional[int] = None,
) -> List[str]:
    """The user's favorite genres: most frequent among Watched entries rated >= min_user_rating."""
    entries = _require_list(entries, "entries")
    count = settings.recommendation_top_genres if count is None else count
    min_user_rating = settings.recommendation_high_user_rating if min_user_rating is None else min_user_rating

    liked = [
        e for e in entries
        if _is_watched(e) and e.user_rating is not None and e.user_rating >= min_user_rating
    ]
    return [genre for genre, _ in genre_counts(liked).most_common(count)]


def compute_statistics(entries: Sequence[WatchlistItem], today: Optional[datetime.date] = None) -> WatchlistStatistics:
    """Summarise a user's watchlist.

    Averages are 0.0 (never NaN) when there is nothing to average. Genre and
    yearly breakdowns only look at Watched entries; movies with an unknown
    release date are left out of the yearly breakdown.
    """
    entries = _require_list(entries, "entries")
    current_year = (today or utc_now().date()).year

    watched = [e for e in entries if _is_watched(e)]
    ratings = [e.user_rating for e in entries if e.user_rating is not None]
    added_this_year = 0
    for e in entries:
        added = ensure_utc(e.added_date)
        if added is not None and added.year == current_year:
            added_this_year += 1

    by_genre = genre_counts(watched)
    ranked = by_genre.most_common()

    yearly: Counter = Counter()
    for e in watched:
        release_date = e.movie.release_date
        if release_date is None or release_date == MIN_RELEASE_DATE:
            continue
        yearly[release_date.year] += 1

    return WatchlistStatistics(
        total_movies=len(entries),
        watched_movies=len(watched),
        planned_movies=sum(1 for e in entries if e.status == WatchStatus.PLANNED),
        watching_movies=sum(1 for e in entries if e.status == WatchStatus.WATCHING),
        favorite_movies=sum(1 for e in entries if e.is_favorite),
        movies_this_year=added_this_year,
        average_user_rating=sum(ratings) / len(ratings) if ratings else 0.0,
        average_tmdb_rating=sum(e.movie.vote_average or 0.0 for e in entries) / len(entries) if entries else 0.0,
        most_watched_genre=ranked[0][0] if ranked else "",
        genre_breakdown=dict(ranked),
        yearly_breakdown=dict(sorted(yearly.items())),
    )


def recommend(
    entries: Sequence[WatchlistItem],
    catalog: Sequence[Movie],
    limit: int = 10,
    min_tmdb_rating: Optional[float] = None,
    min_vote_count: Optional[int] = None,
) -> List[Movie]:
    """Rank cached movies that match the user's top genres.

    Candidates are not already on the watchlist, share a top genre, and clear
    the rating and vote-count floors. They are sorted by popularity, then
    TMDB rating, both descending. No liked genres means no recommendations:
    there is no fallback to generic popularity.
    """
    entries = _require_list(entries, "entries")
    catalog = _require_list(catalog, "catalog")

    favorite_genres = set(top_genres(entries))
    if not favorite_genres or limit <= 0:
        return []

    # A cached movie is unique per tmdb_id, so either key identifies it
    owned_ids = set()
    owned_tmdb_ids = set()
    for e in entries:
        movie_id = e.movie_id if e.movie_id is not None else e.movie.id
        if movie_id is not None:
            owned_ids.add(movie_id)
        owned_tmdb_ids.add(e.movie.tmdb_id)

    candidates = [
        m for m in catalog
        if not ((m.id is not None and m.id in owned_ids) or m.tmdb_id in owned_tmdb_ids)
        and any(g in favorite_genres for g in m.genres)
        and m.is_popular(min_vote_count, min_tmdb_rating)
    ]
    candidates.sort(key=lambda m: (m.popularity or 0.0, m.vote_average or 0.0), reverse=True)
    logger.debug(f"{len(candidates)} recommendation candidates for genres {sorted(favorite_genres)}")
    return candidates[:limit]
