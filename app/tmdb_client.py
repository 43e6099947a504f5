"""
TMDB API client - METADATA ONLY.
Never used for streaming URLs. Responses are cached per data category and
transient failures are retried with exponential backoff.
"""
import logging
import time
from typing import Any, Callable, Dict, Optional

import requests
from tenacity import (
    Retrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from app.cache import DataCategory, TTLCache, get_cache, get_ttl_for_category
from app.exceptions import ConfigurationError, UpstreamFetchFailure, UpstreamNotFound
from config.settings import settings

logger = logging.getLogger("tmdb_client")

TIME_WINDOWS = ("day", "week")
SEARCH_TYPES = ("multi", "movie", "tv")


class TransientUpstreamError(Exception):
    """Network failure or 5xx answer worth retrying."""


class TMDBClient:
    """
    Cached, retrying client for the TMDB v3 API.

    Usage:
        client = TMDBClient(api_key="...")
        trending = client.get_trending_movies("week")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        cache: Optional[TTLCache] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_multiplier: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            api_key: TMDB API key (defaults to settings)
            base_url: API root (defaults to settings)
            cache: Cache instance (defaults to the global cache)
            session: requests session, injectable for tests
            timeout: Per-request timeout in seconds
            max_attempts: Attempts per request before giving up
            backoff_multiplier: Wait before retry n is multiplier * 2^(n-1)s,
                i.e. 2s then 4s with the default multiplier of 2
            sleep: Backoff sleeper (injectable for tests)
        """
        self.api_key = api_key if api_key is not None else settings.tmdb_api_key
        self.base_url = (base_url or settings.tmdb_base_url).rstrip("/")
        self.cache = cache if cache is not None else get_cache()
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else settings.tmdb_timeout_seconds
        self.max_attempts = max_attempts or settings.tmdb_max_attempts
        self.backoff_multiplier = (
            backoff_multiplier if backoff_multiplier is not None
            else settings.tmdb_backoff_multiplier
        )
        self._sleep = sleep

    # ===== TRANSPORT =====

    def _request_once(self, endpoint: str, params: Dict[str, Any]) -> Any:
        """Single GET. Raises TransientUpstreamError for retryable failures."""
        url = f"{self.base_url}{endpoint}"
        query = {k: v for k, v in params.items() if v is not None}
        query["api_key"] = self.api_key

        try:
            response = self.session.get(url, params=query, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.warning(f"TMDB request to {endpoint} failed: {e}")
            raise TransientUpstreamError(str(e)) from e

        if response.status_code == 404:
            raise UpstreamNotFound(f"TMDB resource not found: {endpoint}")
        if response.status_code >= 500:
            logger.warning(f"TMDB {endpoint} answered {response.status_code}")
            raise TransientUpstreamError(f"TMDB API error: {response.status_code}")
        if not response.ok:
            raise UpstreamFetchFailure(
                f"TMDB API error: {response.status_code} {response.reason}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamFetchFailure(f"TMDB returned invalid JSON for {endpoint}") from e

    def _fetch(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET with retries on transient failures.

        Raises:
            ConfigurationError: no API key configured
            UpstreamNotFound: TMDB answered 404
            UpstreamFetchFailure: retries exhausted or non-retryable error
        """
        if not self.api_key:
            raise ConfigurationError("TMDB API key is not configured")

        params = params or {}
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_multiplier),
            retry=retry_if_exception_type(TransientUpstreamError),
            reraise=True,
            sleep=self._sleep,
        )
        try:
            for attempt in retrying:
                with attempt:
                    return self._request_once(endpoint, params)
        except TransientUpstreamError as e:
            logger.error(f"TMDB {endpoint} failed after {self.max_attempts} attempts: {e}")
            raise UpstreamFetchFailure(f"TMDB request failed: {e}") from e

    def _fetch_with_cache(
        self,
        endpoint: str,
        cache_key: str,
        category: DataCategory,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Serve from cache, or fetch and populate for cacheable categories."""
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        logger.info(f"CACHE MISS: {cache_key}")
        data = self._fetch(endpoint, params)

        ttl = get_ttl_for_category(category)
        if ttl > 0:
            self.cache.set(cache_key, data, ttl)
        return data

    # ===== LISTINGS =====

    def get_trending_movies(self, time_window: str = "week") -> Dict[str, Any]:
        return self._fetch_with_cache(
            f"/trending/movie/{time_window}",
            f"trending_movies_{time_window}",
            DataCategory.TRENDING,
        )

    def get_trending_tv(self, time_window: str = "week") -> Dict[str, Any]:
        return self._fetch_with_cache(
            f"/trending/tv/{time_window}",
            f"trending_tv_{time_window}",
            DataCategory.TRENDING,
        )

    def get_popular_movies(self, page: int = 1) -> Dict[str, Any]:
        return self._fetch_with_cache(
            "/movie/popular",
            f"popular_movies_{page}",
            DataCategory.POPULAR,
            {"page": page},
        )

    def get_popular_tv(self, page: int = 1) -> Dict[str, Any]:
        return self._fetch_with_cache(
            "/tv/popular",
            f"popular_tv_{page}",
            DataCategory.POPULAR,
            {"page": page},
        )

    def get_airing_today_tv(self, page: int = 1) -> Dict[str, Any]:
        return self._fetch_with_cache(
            "/tv/airing_today",
            f"airing_today_tv_{page}",
            DataCategory.TRENDING,
            {"page": page},
        )

    def get_on_the_air_tv(self, page: int = 1) -> Dict[str, Any]:
        return self._fetch_with_cache(
            "/tv/on_the_air",
            f"on_the_air_tv_{page}",
            DataCategory.TRENDING,
            {"page": page},
        )

    def discover_movies_by_genre(self, genre_id: int, page: int = 1) -> Dict[str, Any]:
        return self._fetch_with_cache(
            "/discover/movie",
            f"discover_movies_genre_{genre_id}_{page}",
            DataCategory.POPULAR,
            {"with_genres": genre_id, "page": page, "sort_by": "popularity.desc"},
        )

    def discover_tv_by_genre(self, genre_id: int, page: int = 1) -> Dict[str, Any]:
        return self._fetch_with_cache(
            "/discover/tv",
            f"discover_tv_genre_{genre_id}_{page}",
            DataCategory.POPULAR,
            {"with_genres": genre_id, "page": page, "sort_by": "popularity.desc"},
        )

    # ===== DETAILS =====

    def get_movie_details(self, movie_id: int) -> Dict[str, Any]:
        return self._fetch_with_cache(
            f"/movie/{movie_id}",
            f"movie_details_{movie_id}",
            DataCategory.MOVIE_DETAILS,
        )

    def get_movie_credits(self, movie_id: int) -> Dict[str, Any]:
        return self._fetch_with_cache(
            f"/movie/{movie_id}/credits",
            f"movie_credits_{movie_id}",
            DataCategory.MOVIE_DETAILS,
        )

    def get_tv_details(self, tv_id: int) -> Dict[str, Any]:
        return self._fetch_with_cache(
            f"/tv/{tv_id}",
            f"tv_details_{tv_id}",
            DataCategory.TV_DETAILS,
        )

    def get_tv_credits(self, tv_id: int) -> Dict[str, Any]:
        return self._fetch_with_cache(
            f"/tv/{tv_id}/credits",
            f"tv_credits_{tv_id}",
            DataCategory.TV_DETAILS,
        )

    def get_season_details(self, tv_id: int, season_number: int) -> Dict[str, Any]:
        return self._fetch_with_cache(
            f"/tv/{tv_id}/season/{season_number}",
            f"season_details_{tv_id}_{season_number}",
            DataCategory.TV_DETAILS,
        )

    # ===== GENRES =====

    def get_movie_genres(self) -> Dict[str, Any]:
        return self._fetch_with_cache("/genre/movie/list", "movie_genres", DataCategory.GENRES)

    def get_tv_genres(self) -> Dict[str, Any]:
        return self._fetch_with_cache("/genre/tv/list", "tv_genres", DataCategory.GENRES)

    # ===== SEARCH =====

    def search(self, query: str, search_type: str = "multi", page: int = 1) -> Dict[str, Any]:
        """
        Search movies, TV shows or both.

        Args:
            query: Free-text query (already validated as non-blank)
            search_type: "multi", "movie" or "tv"; unknown values fall back to multi
            page: Result page (1-based)
        """
        if search_type not in SEARCH_TYPES:
            search_type = "multi"
        return self._fetch_with_cache(
            f"/search/{search_type}",
            f"search_{search_type}_{query}_{page}",
            DataCategory.SEARCH,
            {"query": query, "page": page},
        )


# Global client instance
_client: Optional[TMDBClient] = None


def get_tmdb_client() -> TMDBClient:
    """Get or create the global TMDB client (FastAPI dependency)."""
    global _client
    if _client is None:
        _client = TMDBClient()
    return _client
