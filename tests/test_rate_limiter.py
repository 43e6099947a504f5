"""
Tests for the fixed-window rate limiter and category registry.
"""
import pytest

from app.exceptions import RateLimitExceeded
from app.rate_limiter import (
    FixedWindowRateLimiter,
    RateLimitCategory,
    RateLimitConfig,
    RateLimiterRegistry,
    get_client_id,
)


def test_quota_admits_then_rejects(clock):
    """First 10 requests pass, the 11th is rejected with a retry hint."""
    limiter = FixedWindowRateLimiter(quota=10, window_seconds=60, clock=clock)

    for _ in range(10):
        assert limiter.check("client") == (True, None)

    allowed, retry_after = limiter.check("client")
    assert allowed is False
    assert 0 < retry_after <= 60


def test_scenario_small_window(clock):
    """quota=2, window=10s: two admitted, third rejected, admitted again after 10s."""
    limiter = FixedWindowRateLimiter(quota=2, window_seconds=10, clock=clock)

    limiter.consume("x")
    limiter.consume("x")
    with pytest.raises(RateLimitExceeded) as exc_info:
        limiter.consume("x")
    assert exc_info.value.retry_after <= 10

    clock.advance(10)
    limiter.consume("x")
    assert limiter.remaining("x") == 1


def test_retry_after_counts_down(clock):
    limiter = FixedWindowRateLimiter(quota=1, window_seconds=60, clock=clock)
    limiter.check("c")

    clock.advance(45.5)
    allowed, retry_after = limiter.check("c")
    assert not allowed
    assert retry_after == 15


def test_rejected_call_does_not_increment(clock):
    limiter = FixedWindowRateLimiter(quota=1, window_seconds=60, clock=clock)
    limiter.check("c")
    for _ in range(5):
        assert limiter.check("c")[0] is False
    assert limiter.remaining("c") == 0

    clock.advance(60)
    assert limiter.remaining("c") == 1


def test_window_reset_starts_fresh_count(clock):
    limiter = FixedWindowRateLimiter(quota=3, window_seconds=60, clock=clock)
    for _ in range(3):
        limiter.check("c")

    clock.advance(61)
    assert limiter.check("c") == (True, None)
    assert limiter.remaining("c") == 2


def test_window_is_fixed_not_sliding(clock):
    """Requests late in a window do not extend it."""
    limiter = FixedWindowRateLimiter(quota=2, window_seconds=60, clock=clock)
    limiter.check("c")
    clock.advance(59)
    limiter.check("c")
    assert limiter.check("c")[0] is False

    clock.advance(1)
    assert limiter.check("c")[0] is True


def test_per_identifier_isolation(clock):
    limiter = FixedWindowRateLimiter(quota=2, window_seconds=60, clock=clock)
    limiter.check("a")
    limiter.check("a")
    assert limiter.check("a")[0] is False

    assert limiter.check("b") == (True, None)


def test_reset_single_client_and_all(clock):
    limiter = FixedWindowRateLimiter(quota=1, window_seconds=60, clock=clock)
    limiter.check("a")
    limiter.check("b")

    limiter.reset("a")
    assert limiter.check("a")[0] is True
    assert limiter.check("b")[0] is False

    limiter.reset()
    assert limiter.tracked_clients == 0


def test_cleanup_drops_only_ended_windows(clock):
    limiter = FixedWindowRateLimiter(quota=5, window_seconds=60, clock=clock)
    limiter.check("old")
    clock.advance(30)
    limiter.check("new")
    clock.advance(31)

    assert limiter.cleanup() == 1
    assert limiter.tracked_clients == 1


def test_invalid_configuration():
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(quota=0, window_seconds=60)


# =============================================================================
# Registry
# =============================================================================

def test_registry_default_categories():
    registry = RateLimiterRegistry()
    assert registry.limiter(RateLimitCategory.SEARCH).quota == 10
    assert registry.limiter(RateLimitCategory.STREAMING).quota == 20
    assert registry.limiter(RateLimitCategory.METADATA).quota == 100
    assert registry.limiter(RateLimitCategory.SEARCH).window_seconds == 60


def test_registry_categories_are_independent(clock):
    registry = RateLimiterRegistry(
        config={
            RateLimitCategory.SEARCH: RateLimitConfig(quota=1, window_seconds=60),
            RateLimitCategory.METADATA: RateLimitConfig(quota=1, window_seconds=60),
        },
        clock=clock,
    )
    registry.consume(RateLimitCategory.SEARCH, "ip")
    with pytest.raises(RateLimitExceeded) as exc_info:
        registry.consume(RateLimitCategory.SEARCH, "ip")
    assert exc_info.value.category == "search"

    registry.consume(RateLimitCategory.METADATA, "ip")


def test_registry_cleanup_and_stats(clock):
    registry = RateLimiterRegistry(clock=clock)
    registry.consume(RateLimitCategory.SEARCH, "a")
    registry.consume(RateLimitCategory.METADATA, "b")

    stats = registry.get_stats()
    assert stats["search"]["tracked_clients"] == 1

    clock.advance(61)
    assert registry.cleanup() == 2


# =============================================================================
# Client identifier
# =============================================================================

def test_client_id_from_forwarded_for():
    headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1"}
    assert get_client_id(headers) == "203.0.113.7"


def test_client_id_from_real_ip():
    assert get_client_id({"x-real-ip": "198.51.100.2"}) == "198.51.100.2"


def test_client_id_falls_back_to_unknown():
    assert get_client_id({}) == "unknown"
    assert get_client_id({"x-forwarded-for": " "}) == "unknown"
