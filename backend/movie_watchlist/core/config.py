import os
from pydantic_settings import BaseSettings


def _default_database_url() -> str:
    if os.getenv("DATABASE_URL"):
        return os.getenv("DATABASE_URL")
    if os.getenv("POSTGRES_HOST"):
        user = os.getenv("POSTGRES_USER", "watchlist")
        password = os.getenv("POSTGRES_PASSWORD", "watchlist")
        db = os.getenv("POSTGRES_DB", "watchlist")
        return f"postgresql+psycopg2://{user}:{password}@{os.getenv('POSTGRES_HOST')}:5432/{db}"
    return "sqlite:///./movie_watchlist.db"


class Settings(BaseSettings):
    database_url: str = _default_database_url()
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # TMDB catalog
    tmdb_api_key: str = os.getenv("TMDB_API_KEY", "")
    tmdb_base_url: str = os.getenv("TMDB_BASE_URL", "https://api.themoviedb.org/3")
    tmdb_image_base_url: str = os.getenv("TMDB_IMAGE_BASE_URL", "https://image.tmdb.org/t/p")
    tmdb_timeout_seconds: float = float(os.getenv("TMDB_TIMEOUT_SECONDS", "10"))
    # 429 backoff: attempts and first delay (doubles per attempt)
    tmdb_max_attempts: int = int(os.getenv("TMDB_MAX_ATTEMPTS", "3"))
    tmdb_base_delay_ms: int = int(os.getenv("TMDB_BASE_DELAY_MS", "1000"))

    # Statistics cache (seconds)
    stats_cache_ttl_seconds: int = int(os.getenv("STATS_CACHE_TTL_SECONDS", "3600"))

    # Inbound limiter for catalog-facing endpoints
    api_rate_limit: int = int(os.getenv("API_RATE_LIMIT", "60"))
    api_rate_window_seconds: int = int(os.getenv("API_RATE_WINDOW_SECONDS", "60"))

    # Recommendation thresholds
    recommendation_top_genres: int = int(os.getenv("RECOMMENDATION_TOP_GENRES", "3"))
    recommendation_min_tmdb_rating: float = float(os.getenv("RECOMMENDATION_MIN_TMDB_RATING", "7.0"))
    recommendation_min_vote_count: int = int(os.getenv("RECOMMENDATION_MIN_VOTE_COUNT", "1000"))
    recommendation_high_user_rating: int = int(os.getenv("RECOMMENDATION_HIGH_USER_RATING", "4"))

settings = Settings()
