from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from movie_watchlist.api import movies, watchlist
from movie_watchlist.api.dependencies import close_tmdb_client
from movie_watchlist.core.database import init_db
from movie_watchlist.core.metrics import counters_snapshot
from movie_watchlist.core.redis_client import close_redis
from movie_watchlist.services.errors import (
    ConflictError,
    ExternalServiceError,
    InvalidArgumentError,
    NotFoundError,
    RateLimitError,
    WatchlistError,
)
from movie_watchlist.services.rate_limit import RateLimitExceeded
from movie_watchlist.utils.logger import logger
from movie_watchlist.utils.timezone import format_iso_utc, utc_now


app = FastAPI(title="Movie Watchlist API", version="1.0.0")

app.add_middleware(GZipMiddleware, minimum_size=1000)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(movies.router, prefix="/api/movies", tags=["Movies"])
app.include_router(watchlist.router, prefix="/api/watchlist", tags=["Watchlist"])


def _error_response(status_code: int, code: str, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, "timestamp": format_iso_utc(utc_now())}},
        headers=headers,
    )


@app.exception_handler(WatchlistError)
async def watchlist_error_handler(request: Request, exc: WatchlistError):
    if isinstance(exc, InvalidArgumentError):
        return _error_response(400, exc.code, str(exc))
    if isinstance(exc, NotFoundError):
        return _error_response(404, exc.code, str(exc))
    if isinstance(exc, ConflictError):
        return _error_response(409, exc.code, str(exc))
    if isinstance(exc, RateLimitError):
        retry_after = max(1, int(round(exc.retry_after_seconds or 1)))
        return _error_response(
            429, exc.code,
            "The movie catalog is busy. Please try again shortly.",
            headers={"Retry-After": str(retry_after)},
        )
    if isinstance(exc, ExternalServiceError):
        logger.error(f"Upstream failure on {request.url.path}: {exc}")
        return _error_response(502, exc.code, "The movie catalog is unavailable. Please try again later.")
    logger.error(f"Unhandled watchlist error on {request.url.path}: {exc}")
    return _error_response(500, exc.code, "An unexpected error occurred")


@app.exception_handler(RateLimitExceeded)
async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    return _error_response(
        429, "RATE_LIMITED",
        "Rate limit exceeded. Please try again later.",
        headers={"Retry-After": str(exc.retry_after_seconds)},
    )


@app.on_event("startup")
async def startup_event():
    init_db()
    logger.info("Movie Watchlist API started")


@app.on_event("shutdown")
async def shutdown_event():
    await close_tmdb_client()
    await close_redis()


@app.get("/")
def root():
    return {"status": "Movie Watchlist API Running"}


@app.get("/health")
async def health_check():
    """Simple health check endpoint for load balancers/monitoring"""
    from fastapi import HTTPException
    from sqlalchemy import text
    from movie_watchlist.core.database import SessionLocal

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
        return {"status": "healthy", "timestamp": format_iso_utc(utc_now())}
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Service unhealthy: {str(e)}")


@app.get("/metrics")
async def metrics():
    """TMDB request, rate-limit and error counters."""
    return {"counters": await counters_snapshot()}
