"""
In-process expiring key-value cache.

Entries carry their own absolute expiry. Reads re-check expiry and drop dead
entries (lazy eviction); `sweep()` purges everything expired in one pass and
is driven by the background sweeper when enabled.

No method raises: internal faults are logged and degrade to a miss (reads) or
a failed write, so a broken cache only ever means "fetch from source".
"""
import threading
import logging
import time
from typing import Any, Callable, Dict, Optional

from app.exceptions import CacheFault
from config.settings import settings

from .core import CacheEntry

logger = logging.getLogger("cache.manager")


class TTLCache:
    """
    Thread-safe TTL cache with lazy eviction.

    Generic over value type and policy-free: callers choose the TTL per write
    (see ttl_policies for the category table).
    """

    def __init__(
        self,
        default_ttl_seconds: int = 3600,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the cache.

        Args:
            default_ttl_seconds: TTL used when `set` is called without one
            enabled: When False every read misses and every write is refused
            clock: Source of "now" in epoch seconds (injectable for tests)
        """
        self._store: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self.default_ttl_seconds = default_ttl_seconds
        self.enabled = enabled

        self._stats = {
            "hits": 0,
            "misses": 0,
            "expired": 0,
            "swept": 0,
        }

    def get(self, key: str) -> Optional[Any]:
        """
        Return the cached value, or None on a miss.

        An expired entry is removed before reporting the miss.
        """
        if not self.enabled:
            return None
        try:
            self._check_key(key)
            now = self._clock()
            with self._lock:
                entry = self._store.get(key)
                if entry is None:
                    self._stats["misses"] += 1
                    return None
                if entry.is_expired(now):
                    del self._store[key]
                    self._stats["expired"] += 1
                    self._stats["misses"] += 1
                    logger.info(f"CACHE EXPIRED: {key}")
                    return None
                self._stats["hits"] += 1
            logger.debug(f"CACHE HIT: {key} [ttl_left={entry.remaining_seconds(now):.0f}s]")
            return entry.value
        except Exception as e:
            logger.error(f"Cache get error for {key!r}: {e}")
            return None

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """
        Store or overwrite a value.

        Args:
            key: Cache key
            value: Any value (never inspected)
            ttl_seconds: Lifetime in seconds; None uses the default. A value of
                zero or less stores an entry that is already expired.

        Returns:
            True if the value was stored
        """
        if not self.enabled:
            return False
        try:
            self._check_key(key)
            ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
            entry = CacheEntry(key=key, value=value, expires_at=self._clock() + ttl)
            with self._lock:
                self._store[key] = entry
            return True
        except Exception as e:
            logger.error(f"Cache set error for {key!r}: {e}")
            return False

    def delete(self, key: str) -> int:
        """
        Remove a single entry.

        Returns:
            1 if an entry was removed, else 0
        """
        try:
            with self._lock:
                if key in self._store:
                    del self._store[key]
                    return 1
            return 0
        except Exception as e:
            logger.error(f"Cache delete error for {key!r}: {e}")
            return 0

    def clear(self) -> int:
        """
        Clear all cache entries.

        Returns:
            Number of entries cleared
        """
        try:
            with self._lock:
                count = len(self._store)
                self._store.clear()
            logger.info(f"Cleared {count} cache entries")
            return count
        except Exception as e:
            logger.error(f"Cache clear error: {e}")
            return 0

    def sweep(self) -> int:
        """
        Purge every expired entry.

        Returns:
            Number of entries removed
        """
        try:
            now = self._clock()
            with self._lock:
                expired = [k for k, entry in self._store.items() if entry.is_expired(now)]
                for key in expired:
                    del self._store[key]
                self._stats["swept"] += len(expired)
            if expired:
                logger.info(f"Swept {len(expired)} expired cache entries")
            return len(expired)
        except Exception as e:
            logger.error(f"Cache sweep error: {e}")
            return 0

    def stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        `size` counts stored entries, which may include expired ones that
        have not been read or swept yet.
        """
        with self._lock:
            lookups = self._stats["hits"] + self._stats["misses"]
            hit_rate = (self._stats["hits"] / lookups * 100) if lookups > 0 else 0
            return {
                "size": len(self._store),
                "enabled": self.enabled,
                "hits": self._stats["hits"],
                "misses": self._stats["misses"],
                "expired": self._stats["expired"],
                "swept": self._stats["swept"],
                "hit_rate_percent": round(hit_rate, 1),
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    @staticmethod
    def _check_key(key: str) -> None:
        if not isinstance(key, str):
            raise CacheFault(f"cache keys must be strings, got {type(key).__name__}")


# Global cache instance
_cache: Optional[TTLCache] = None


def get_cache() -> TTLCache:
    """Get or create the global cache."""
    global _cache
    if _cache is None:
        _cache = TTLCache(
            default_ttl_seconds=settings.cache_default_ttl_seconds,
            enabled=settings.cache_enabled,
        )
    return _cache
