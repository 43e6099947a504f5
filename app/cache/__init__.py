"""
Expiring in-memory cache with per-category TTLs and an optional sweeper.
"""
from .core import CacheEntry, DataCategory
from .ttl_policies import (
    TTL_CONFIG,
    get_ttl_for_category,
    is_cacheable,
    cache_control_header,
)
from .manager import TTLCache, get_cache
from .sweeper import CacheSweeper

__all__ = [
    # Core types
    "CacheEntry",
    "DataCategory",
    # TTL policies
    "TTL_CONFIG",
    "get_ttl_for_category",
    "is_cacheable",
    "cache_control_header",
    # Cache
    "TTLCache",
    "get_cache",
    # Sweeping
    "CacheSweeper",
]
