"""
errors.py

Typed failures raised by the catalog client and the watchlist service.
A catalog miss is not an error: lookups return None for it.
"""
from typing import Optional


class WatchlistError(Exception):
    """Base exception for watchlist and catalog failures."""
    code = "WATCHLIST_ERROR"


class RateLimitError(WatchlistError):
    """Raised when TMDB keeps answering 429 after every backoff attempt."""
    code = "RATE_LIMITED"

    def __init__(self, message: str, retry_after_seconds: Optional[float] = None):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class ExternalServiceError(WatchlistError):
    """Raised immediately for any non-success, non-429 TMDB response.

    status_code is None when the request never got a response (connection
    error, timeout).
    """
    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, status_code: Optional[int], body: str = ""):
        if status_code is None:
            super().__init__(f"TMDB API request failed: {body}")
        else:
            super().__init__(f"TMDB API request failed with status {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class InvalidArgumentError(WatchlistError):
    """Raised for caller-supplied input that can be corrected (unknown genre, bad rating)."""
    code = "BAD_REQUEST"


class NotFoundError(WatchlistError):
    code = "NOT_FOUND"


class ConflictError(WatchlistError):
    code = "CONFLICT"
