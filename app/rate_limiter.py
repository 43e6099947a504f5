"""Fixed-window rate limiting per endpoint category and client."""

import math
import logging
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from time import time
from typing import Callable, Dict, Optional, Tuple

from app.exceptions import RateLimitExceeded
from config.settings import settings

logger = logging.getLogger("rate_limiter")

# Sentinel bucket for clients we cannot identify
UNKNOWN_CLIENT = "unknown"


class RateLimitCategory(Enum):
    """Endpoint classes with their own quota."""
    SEARCH = "search"
    STREAMING = "streaming"
    METADATA = "metadata"


@dataclass(frozen=True)
class RateLimitConfig:
    """Quota of admitted requests per fixed window."""
    quota: int
    window_seconds: int


@dataclass
class RateLimitWindow:
    """Request count for one client in the current window."""
    count: int
    reset_at: float


def build_rate_limit_config() -> Dict[RateLimitCategory, RateLimitConfig]:
    """Category table from settings. Built once per registry."""
    window = settings.rate_limit_window_seconds
    return {
        RateLimitCategory.SEARCH: RateLimitConfig(settings.rate_limit_search, window),
        RateLimitCategory.STREAMING: RateLimitConfig(settings.rate_limit_streaming, window),
        RateLimitCategory.METADATA: RateLimitConfig(settings.rate_limit_metadata, window),
    }


class FixedWindowRateLimiter:
    """
    Fixed window rate limiter.

    The first request from a client opens a window of `window_seconds`; up to
    `quota` requests are admitted until the window's reset instant, after
    which the next request opens a fresh window. Bursts of up to 2x quota
    can straddle a window boundary.

    Thread-safe implementation.
    """

    def __init__(
        self,
        quota: int,
        window_seconds: int,
        name: str = "default",
        clock: Callable[[], float] = time,
    ):
        if quota < 1 or window_seconds <= 0:
            raise ValueError("quota and window_seconds must be positive")
        self.quota = quota
        self.window_seconds = window_seconds
        self.name = name
        self._clock = clock
        self._windows: Dict[str, RateLimitWindow] = {}
        self._lock = Lock()

    def check(self, client_id: str) -> Tuple[bool, Optional[int]]:
        """
        Count a request for the given client if it is allowed.

        Args:
            client_id: Unique identifier for the client (IP address or "unknown")

        Returns:
            Tuple of (allowed: bool, retry_after_seconds: Optional[int])
            If not allowed, retry_after_seconds indicates when to retry.
            Rejected requests are not counted.
        """
        now = self._clock()

        with self._lock:
            window = self._windows.get(client_id)

            if window is None or now >= window.reset_at:
                self._windows[client_id] = RateLimitWindow(
                    count=1,
                    reset_at=now + self.window_seconds,
                )
                return True, None

            if window.count < self.quota:
                window.count += 1
                return True, None

            retry_after = math.ceil(window.reset_at - now)
            return False, max(1, retry_after)

    def consume(self, client_id: str) -> None:
        """
        Count a request, raising when the client is over quota.

        Raises:
            RateLimitExceeded: carries the retry-after hint in seconds
        """
        allowed, retry_after = self.check(client_id)
        if not allowed:
            logger.info(
                f"Rate limit hit: {self.name} client={client_id} retry_after={retry_after}s"
            )
            raise RateLimitExceeded(retry_after=retry_after, category=self.name)

    def remaining(self, client_id: str) -> int:
        """
        Get the number of remaining requests for a client.

        Args:
            client_id: Unique identifier for the client

        Returns:
            Number of requests remaining in the current window
        """
        now = self._clock()

        with self._lock:
            window = self._windows.get(client_id)
            if window is None or now >= window.reset_at:
                return self.quota
            return max(0, self.quota - window.count)

    def reset(self, client_id: Optional[str] = None) -> None:
        """
        Reset the rate limit for one client, or for all clients.

        Useful for testing or admin override.
        """
        with self._lock:
            if client_id is None:
                self._windows.clear()
            elif client_id in self._windows:
                del self._windows[client_id]

    def cleanup(self, grace_seconds: float = 0) -> int:
        """
        Remove windows that ended more than `grace_seconds` ago.

        Returns the number of clients cleaned up.
        """
        now = self._clock()

        with self._lock:
            stale = [
                client_id
                for client_id, window in self._windows.items()
                if now >= window.reset_at + grace_seconds
            ]
            for client_id in stale:
                del self._windows[client_id]

        return len(stale)

    @property
    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._windows)


class RateLimiterRegistry:
    """One limiter per category, configured once at startup."""

    def __init__(
        self,
        config: Optional[Dict[RateLimitCategory, RateLimitConfig]] = None,
        clock: Callable[[], float] = time,
    ):
        config = config or build_rate_limit_config()
        self._limiters: Dict[RateLimitCategory, FixedWindowRateLimiter] = {
            category: FixedWindowRateLimiter(
                quota=cfg.quota,
                window_seconds=cfg.window_seconds,
                name=category.value,
                clock=clock,
            )
            for category, cfg in config.items()
        }

    def limiter(self, category: RateLimitCategory) -> FixedWindowRateLimiter:
        return self._limiters[category]

    def consume(self, category: RateLimitCategory, client_id: str) -> None:
        """Count a request in `category`; raises RateLimitExceeded when over quota."""
        self._limiters[category].consume(client_id)

    def reset(self) -> None:
        for limiter in self._limiters.values():
            limiter.reset()

    def cleanup(self) -> int:
        """Drop ended windows in every category."""
        cleaned = sum(limiter.cleanup() for limiter in self._limiters.values())
        if cleaned:
            logger.info(f"Dropped {cleaned} stale rate-limit windows")
        return cleaned

    def get_stats(self) -> Dict[str, Dict[str, int]]:
        return {
            category.value: {
                "quota": limiter.quota,
                "window_seconds": limiter.window_seconds,
                "tracked_clients": limiter.tracked_clients,
            }
            for category, limiter in self._limiters.items()
        }


def get_client_id(headers) -> str:
    """
    Resolve a per-client identifier from forwarding headers.

    Uses the first X-Forwarded-For hop, then X-Real-IP. Unresolvable clients
    all share the "unknown" bucket.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return UNKNOWN_CLIENT


# Global rate limiter registry
_registry: Optional[RateLimiterRegistry] = None


def get_rate_limiter_registry() -> RateLimiterRegistry:
    """Get the global rate limiter registry."""
    global _registry
    if _registry is None:
        _registry = RateLimiterRegistry()
    return _registry
