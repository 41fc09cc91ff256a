"""
movies.py

API endpoints for browsing the TMDB catalog.
"""
from typing import Dict, List

from fastapi import APIRouter, Depends, Query

from movie_watchlist.api.dependencies import enforce_catalog_rate_limit, get_tmdb_client, get_watchlist_service
from movie_watchlist.schemas import MovieDetailsSchema, MovieSchema
from movie_watchlist.services.genre_index import GENRE_INDEX
from movie_watchlist.services.tmdb_client import DEFAULT_BACKDROP_SIZE, DEFAULT_POSTER_SIZE, TmdbClient
from movie_watchlist.services.watchlist_service import WatchlistService

import logging

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(enforce_catalog_rate_limit)])


@router.get("/search", response_model=List[MovieSchema])
async def search_movies(
    query: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    tmdb: TmdbClient = Depends(get_tmdb_client),
):
    """Search TMDB by title, most-voted first."""
    movies = await tmdb.search(query, page)
    logger.info(f"Search '{query}' page {page}: {len(movies)} results")
    return movies


@router.get("/popular", response_model=List[MovieSchema])
async def popular_movies(
    page: int = Query(1, ge=1),
    tmdb: TmdbClient = Depends(get_tmdb_client),
):
    """Featured movies from a random listing and page, shuffled."""
    return await tmdb.get_popular(page)


@router.get("/genres")
def list_genres() -> Dict[str, int]:
    return GENRE_INDEX.all_entries()


@router.get("/genre/{genre}", response_model=List[MovieSchema])
async def movies_by_genre(
    genre: str,
    page: int = Query(1, ge=1),
    tmdb: TmdbClient = Depends(get_tmdb_client),
):
    return await tmdb.get_by_genre(genre, page)


@router.get("/poster-url")
def poster_url(
    path: str = Query(""),
    size: str = Query(DEFAULT_POSTER_SIZE),
    tmdb: TmdbClient = Depends(get_tmdb_client),
):
    return {"url": tmdb.poster_url(path, size)}


@router.get("/backdrop-url")
def backdrop_url(
    path: str = Query(""),
    size: str = Query(DEFAULT_BACKDROP_SIZE),
    tmdb: TmdbClient = Depends(get_tmdb_client),
):
    return {"url": tmdb.backdrop_url(path, size)}


@router.get("/{tmdb_id}", response_model=MovieDetailsSchema)
async def movie_details(
    tmdb_id: int,
    service: WatchlistService = Depends(get_watchlist_service),
):
    """Movie details with credits and videos, from the local cache or fetched from TMDB."""
    return await service.get_movie_details(tmdb_id)
