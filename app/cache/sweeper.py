"""
Periodic purge of expired state.

The cache is correct without this (reads re-check expiry); the sweeper only
bounds memory. It also runs any extra cleanup hooks registered with it, which
is how stale rate-limit windows get dropped.
"""
import threading
import logging
from typing import Callable, List, Optional

from .manager import TTLCache

logger = logging.getLogger("cache.sweeper")


class CacheSweeper:
    """
    Background daemon thread calling `cache.sweep()` every interval.

    Usage:
        sweeper = CacheSweeper(get_cache(), interval_seconds=600)
        sweeper.add_hook(get_rate_limiter_registry().cleanup)
        sweeper.start()
        ...
        sweeper.stop()
    """

    def __init__(self, cache: TTLCache, interval_seconds: float = 600):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.cache = cache
        self.interval_seconds = interval_seconds
        self._hooks: List[Callable[[], int]] = []
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def add_hook(self, hook: Callable[[], int]) -> None:
        """Run `hook` after each cache sweep. It returns a removed-item count."""
        self._hooks.append(hook)

    def run_once(self) -> int:
        """
        Sweep the cache and run hooks once.

        Returns:
            Total number of items removed
        """
        removed = self.cache.sweep()
        for hook in self._hooks:
            try:
                removed += hook()
            except Exception as e:
                logger.warning(f"Sweep hook {getattr(hook, '__name__', hook)} failed: {e}")
        return removed

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="cache-sweeper",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Cache sweeper started (every {self.interval_seconds}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
            logger.info("Cache sweeper stopped")

    def _run(self) -> None:
        # wait() returns True once stop() is called
        while not self._stop_event.wait(self.interval_seconds):
            self.run_once()
