"""
TTL configuration by data category.
"""
from typing import Dict

from .core import DataCategory


# TTL Configuration by category (in seconds)
TTL_CONFIG: Dict[DataCategory, int] = {
    DataCategory.TRENDING: 60 * 30,          # 30 minutes
    DataCategory.POPULAR: 60 * 60,           # 1 hour
    DataCategory.GENRES: 60 * 60 * 24,       # 24 hours
    DataCategory.MOVIE_DETAILS: 60 * 60 * 2, # 2 hours
    DataCategory.TV_DETAILS: 60 * 60 * 2,    # 2 hours
    DataCategory.SEARCH: 60 * 5,             # 5 minutes (light caching)
    DataCategory.STREAM_URLS: 0,             # No caching for streaming URLs
}


def get_ttl_for_category(category: DataCategory) -> int:
    """
    Get the cache lifetime for a data category.

    Args:
        category: The data category

    Returns:
        TTL in seconds; 0 means the category must not be cached
    """
    return TTL_CONFIG.get(category, TTL_CONFIG[DataCategory.POPULAR])


def is_cacheable(category: DataCategory) -> bool:
    """Whether responses of this category should be written to the cache."""
    return get_ttl_for_category(category) > 0


def cache_control_header(category: DataCategory) -> str:
    """
    Build the Cache-Control value sent to browsers/CDNs for a category.

    Cacheable data allows shared caches to serve it for the TTL and stale for
    twice that while revalidating; stream URLs are never stored.
    """
    ttl = get_ttl_for_category(category)
    if ttl <= 0:
        return "no-cache, no-store, must-revalidate"
    return f"public, s-maxage={ttl}, stale-while-revalidate={ttl * 2}"
