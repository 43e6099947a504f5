"""
Error kinds surfaced at the HTTP boundary.

Each exception carries the HTTP status and a short machine-readable kind that
ends up in the JSON error body.
"""
from typing import Optional


class StreamCinemaError(Exception):
    """Base exception with HTTP status code and error kind."""

    status_code: int = 500
    error_kind: str = "internal"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_kind: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_kind is not None:
            self.error_kind = error_kind


class RateLimitExceeded(StreamCinemaError):
    """Client exhausted its quota for the current window."""

    status_code = 429
    error_kind = "rate_limited"

    def __init__(self, retry_after: int, category: Optional[str] = None):
        super().__init__("Too many requests")
        self.retry_after = retry_after
        self.category = category


class UpstreamFetchFailure(StreamCinemaError):
    """Network error or non-2xx answer from the metadata provider."""

    status_code = 502
    error_kind = "upstream_failure"


class UpstreamNotFound(StreamCinemaError):
    """Metadata provider answered 404."""

    status_code = 404
    error_kind = "not_found"


class InvalidInput(StreamCinemaError):
    """Malformed identifiers or parameters."""

    status_code = 400
    error_kind = "invalid_input"


class ConfigurationError(StreamCinemaError):
    """Required configuration (e.g. API key) is missing."""

    status_code = 503
    error_kind = "misconfigured"


class CacheFault(Exception):
    """Internal cache failure. Never leaves the cache module."""
