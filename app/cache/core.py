"""
Core cache data structures.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any


class DataCategory(Enum):
    """Categories of upstream data with different caching behaviors."""
    TRENDING = "trending"            # 30 minutes
    POPULAR = "popular"              # 1 hour
    GENRES = "genres"                # 24 hours
    MOVIE_DETAILS = "movie_details"  # 2 hours
    TV_DETAILS = "tv_details"        # 2 hours
    SEARCH = "search"                # 5 minutes
    STREAM_URLS = "stream_urls"      # never cached


@dataclass
class CacheEntry:
    """
    A cached value with its absolute expiry instant (epoch seconds).
    """
    key: str
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """An entry is dead from its expiry instant onwards."""
        return now >= self.expires_at

    def remaining_seconds(self, now: float) -> float:
        return max(0.0, self.expires_at - now)
