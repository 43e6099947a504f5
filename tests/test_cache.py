"""
Tests for the expiring cache, TTL policies and the sweeper.
"""
import pytest

from app.cache import (
    CacheSweeper,
    DataCategory,
    TTLCache,
    cache_control_header,
    get_ttl_for_category,
    is_cacheable,
)


# =============================================================================
# TTLCache
# =============================================================================

def test_get_returns_value_before_expiry(clock):
    """A value is readable right after set."""
    cache = TTLCache(clock=clock)
    cache.set("trending_movies_week", {"results": [1, 2]}, 1800)
    assert cache.get("trending_movies_week") == {"results": [1, 2]}


def test_get_after_expiry_is_a_miss_and_purges(clock):
    """Once the TTL has elapsed the entry reads as absent and is removed."""
    cache = TTLCache(clock=clock)
    cache.set("k", "v", 10)

    clock.advance(9)
    assert cache.get("k") == "v"

    clock.advance(2)
    assert cache.get("k") is None
    assert cache.stats()["size"] == 0


def test_genres_scenario(clock):
    """Day-long genre entry survives until its expiry instant."""
    cache = TTLCache(clock=clock)
    genres = {"movie": [{"id": 28, "name": "Action"}], "tv": []}
    cache.set("genres", genres, 86400)

    assert cache.get("genres") is genres

    clock.advance(86400)
    assert cache.get("genres") is None


def test_overwrite_replaces_value_and_expiry(clock):
    cache = TTLCache(clock=clock)
    cache.set("k", "v1", 10)
    clock.advance(8)
    cache.set("k", "v2", 10)

    assert cache.get("k") == "v2"
    clock.advance(8)
    # Still alive: the overwrite restarted the TTL
    assert cache.get("k") == "v2"


def test_delete_existing_and_missing_key(clock):
    cache = TTLCache(clock=clock)
    cache.set("k", "v")

    assert cache.delete("k") == 1
    assert cache.get("k") is None
    assert cache.delete("k") == 0


def test_true_miss_has_no_side_effect(clock):
    cache = TTLCache(clock=clock)
    cache.set("other", 1)
    assert cache.get("missing") is None
    assert cache.stats()["size"] == 1


def test_default_ttl_used_when_none_given(clock):
    cache = TTLCache(default_ttl_seconds=100, clock=clock)
    cache.set("k", "v")

    clock.advance(99)
    assert cache.get("k") == "v"
    clock.advance(1)
    assert cache.get("k") is None


def test_zero_ttl_is_never_served_later(clock):
    cache = TTLCache(clock=clock)
    cache.set("stream", "url", 0)
    clock.advance(0.001)
    assert cache.get("stream") is None


def test_clear_empties_everything(clock):
    cache = TTLCache(clock=clock)
    for i in range(5):
        cache.set(f"k{i}", i)

    assert cache.clear() == 5
    assert cache.stats()["size"] == 0


def test_stats_size_counts_unswept_expired_entries(clock):
    """Size is not guaranteed to reflect lazy eviction."""
    cache = TTLCache(clock=clock)
    cache.set("a", 1, 5)
    cache.set("b", 2, 50)
    clock.advance(10)

    assert cache.stats()["size"] == 2
    assert cache.sweep() == 1
    assert cache.stats()["size"] == 1


def test_stats_tracks_hits_and_misses(clock):
    cache = TTLCache(clock=clock)
    cache.set("a", 1)
    cache.get("a")
    cache.get("a")
    cache.get("nope")

    stats = cache.stats()
    assert stats["hits"] == 2
    assert stats["misses"] == 1
    assert stats["hit_rate_percent"] == 66.7


def test_internal_fault_degrades_to_miss(clock):
    """Bad keys never raise to the caller."""
    cache = TTLCache(clock=clock)
    assert cache.set(["not", "a", "string"], 1) is False
    assert cache.get({"bad": "key"}) is None


def test_broken_clock_degrades_to_miss():
    def broken_clock():
        raise RuntimeError("clock exploded")

    cache = TTLCache(clock=broken_clock)
    assert cache.set("k", "v") is False
    assert cache.get("k") is None
    assert cache.sweep() == 0


def test_disabled_cache_never_stores(clock):
    cache = TTLCache(enabled=False, clock=clock)
    assert cache.set("k", "v") is False
    assert cache.get("k") is None
    assert cache.stats()["size"] == 0


# =============================================================================
# TTL policies
# =============================================================================

def test_category_ttls():
    assert get_ttl_for_category(DataCategory.TRENDING) == 1800
    assert get_ttl_for_category(DataCategory.POPULAR) == 3600
    assert get_ttl_for_category(DataCategory.GENRES) == 86400
    assert get_ttl_for_category(DataCategory.MOVIE_DETAILS) == 7200
    assert get_ttl_for_category(DataCategory.TV_DETAILS) == 7200
    assert get_ttl_for_category(DataCategory.SEARCH) == 300
    assert get_ttl_for_category(DataCategory.STREAM_URLS) == 0


def test_stream_urls_are_not_cacheable():
    assert not is_cacheable(DataCategory.STREAM_URLS)
    assert is_cacheable(DataCategory.SEARCH)


def test_cache_control_header():
    assert cache_control_header(DataCategory.TRENDING) == (
        "public, s-maxage=1800, stale-while-revalidate=3600"
    )
    assert cache_control_header(DataCategory.STREAM_URLS) == (
        "no-cache, no-store, must-revalidate"
    )


# =============================================================================
# Sweeper
# =============================================================================

def test_sweeper_run_once_purges_expired(clock):
    cache = TTLCache(clock=clock)
    cache.set("short", 1, 5)
    cache.set("long", 2, 500)
    clock.advance(6)

    sweeper = CacheSweeper(cache, interval_seconds=600)
    assert sweeper.run_once() == 1
    assert len(cache) == 1
    assert cache.get("long") == 2


def test_sweeper_runs_hooks_and_survives_failures(clock):
    cache = TTLCache(clock=clock)
    sweeper = CacheSweeper(cache, interval_seconds=600)

    def failing_hook():
        raise RuntimeError("boom")

    sweeper.add_hook(failing_hook)
    sweeper.add_hook(lambda: 3)

    assert sweeper.run_once() == 3


def test_sweeper_start_and_stop(clock):
    sweeper = CacheSweeper(TTLCache(clock=clock), interval_seconds=600)
    sweeper.start()
    assert sweeper.is_running
    sweeper.stop()
    assert not sweeper.is_running


def test_sweeper_rejects_non_positive_interval(clock):
    with pytest.raises(ValueError):
        CacheSweeper(TTLCache(clock=clock), interval_seconds=0)
