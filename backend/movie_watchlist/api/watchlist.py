"""
watchlist.py

API endpoints for a user's watchlist: entries, filtered views, statistics
and recommendations.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from movie_watchlist.api.dependencies import get_watchlist_service
from movie_watchlist.models import WatchStatus
from movie_watchlist.schemas import (
    AddToWatchlistRequest,
    MovieSchema,
    UpdateWatchlistItemRequest,
    WatchlistItemSchema,
    WatchlistStatistics,
)
from movie_watchlist.services.watchlist_service import WatchlistService

import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=List[WatchlistItemSchema])
def get_watchlist(user_id: int = Query(1), service: WatchlistService = Depends(get_watchlist_service)):
    return service.get_watchlist(user_id)


@router.get("/status/{status}", response_model=List[WatchlistItemSchema])
def get_watchlist_by_status(
    status: WatchStatus,
    user_id: int = Query(1),
    service: WatchlistService = Depends(get_watchlist_service),
):
    return service.get_by_status(user_id, status)


@router.get("/favorites", response_model=List[WatchlistItemSchema])
def get_favorites(user_id: int = Query(1), service: WatchlistService = Depends(get_watchlist_service)):
    return service.get_favorites(user_id)


@router.get("/statistics", response_model=WatchlistStatistics)
async def get_statistics(user_id: int = Query(1), service: WatchlistService = Depends(get_watchlist_service)):
    return await service.get_statistics(user_id)


@router.get("/recommendations", response_model=List[MovieSchema])
def get_recommendations(
    limit: int = Query(10, ge=1, le=100),
    user_id: int = Query(1),
    service: WatchlistService = Depends(get_watchlist_service),
):
    """Cached movies matching the user's favorite genres (empty until something is watched and rated >= 4)."""
    return service.get_recommendations(user_id, limit)


@router.get("/genre/{genre}", response_model=List[WatchlistItemSchema])
def get_watchlist_by_genre(
    genre: str,
    user_id: int = Query(1),
    service: WatchlistService = Depends(get_watchlist_service),
):
    return service.get_by_genre(user_id, genre)


@router.get("/year-range", response_model=List[WatchlistItemSchema])
def get_watchlist_by_year_range(
    start_year: int = Query(..., ge=1),
    end_year: int = Query(..., ge=1),
    user_id: int = Query(1),
    service: WatchlistService = Depends(get_watchlist_service),
):
    return service.get_by_year_range(user_id, start_year, end_year)


@router.get("/rating-range", response_model=List[WatchlistItemSchema])
def get_watchlist_by_rating_range(
    min_rating: float = Query(0.0, ge=0.0, le=10.0),
    max_rating: float = Query(10.0, ge=0.0, le=10.0),
    user_id: int = Query(1),
    service: WatchlistService = Depends(get_watchlist_service),
):
    return service.get_by_rating_range(user_id, min_rating, max_rating)


@router.post("/add", response_model=WatchlistItemSchema, status_code=201)
async def add_to_watchlist(request: AddToWatchlistRequest, service: WatchlistService = Depends(get_watchlist_service)):
    return await service.add_to_watchlist(request.user_id, request.movie_id, request.status, request.notes)


@router.get("/item/{item_id}", response_model=WatchlistItemSchema)
def get_watchlist_item(item_id: int, user_id: int = Query(1), service: WatchlistService = Depends(get_watchlist_service)):
    return service.get_item(user_id, item_id)


@router.put("/item", response_model=WatchlistItemSchema)
async def update_watchlist_item(request: UpdateWatchlistItemRequest, service: WatchlistService = Depends(get_watchlist_service)):
    if all(
        value is None
        for value in (request.status, request.is_favorite, request.user_rating, request.notes)
    ):
        raise HTTPException(status_code=400, detail="Nothing to update")
    return await service.update_item(
        request.user_id,
        request.watchlist_item_id,
        status=request.status,
        is_favorite=request.is_favorite,
        user_rating=request.user_rating,
        notes=request.notes,
    )


@router.delete("/item/{item_id}", status_code=204)
async def remove_from_watchlist(item_id: int, user_id: int = Query(1), service: WatchlistService = Depends(get_watchlist_service)):
    await service.remove_item(user_id, item_id)
