"""
Tests for the TMDB client: caching, retries and error mapping.
Upstream calls go through a mocked requests session.
"""
from unittest.mock import MagicMock

import pytest
import requests

from app.cache import TTLCache
from app.exceptions import ConfigurationError, UpstreamFetchFailure, UpstreamNotFound
from app.tmdb_client import TMDBClient


def make_response(status_code=200, payload=None, reason="OK"):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.reason = reason
    response.json.return_value = payload if payload is not None else {}
    return response


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def cache(clock):
    return TTLCache(clock=clock)


@pytest.fixture
def client(session, cache):
    return TMDBClient(
        api_key="test-key",
        base_url="https://api.example.test/3",
        cache=cache,
        session=session,
        timeout=5,
        max_attempts=3,
        backoff_multiplier=0,
    )


def test_request_carries_api_key_and_params(client, session):
    session.get.return_value = make_response(payload={"results": []})

    client.get_popular_movies(page=2)

    args, kwargs = session.get.call_args
    assert args[0] == "https://api.example.test/3/movie/popular"
    assert kwargs["params"] == {"page": 2, "api_key": "test-key"}
    assert kwargs["timeout"] == 5


def test_second_call_served_from_cache(client, session):
    session.get.return_value = make_response(payload={"results": [{"id": 1}]})

    first = client.get_trending_movies("week")
    second = client.get_trending_movies("week")

    assert first == second == {"results": [{"id": 1}]}
    assert session.get.call_count == 1


def test_cache_expires_by_category(client, session, clock):
    session.get.return_value = make_response(payload={"results": []})

    client.search("dune", "movie")
    clock.advance(301)
    client.search("dune", "movie")

    assert session.get.call_count == 2


def test_cache_keys_distinguish_parameters(client, session, cache):
    session.get.return_value = make_response(payload={"page": 1})

    client.get_popular_tv(page=1)
    client.get_popular_tv(page=2)

    assert session.get.call_count == 2
    assert cache.get("popular_tv_1") == {"page": 1}
    assert cache.get("popular_tv_2") == {"page": 1}


def test_unknown_search_type_falls_back_to_multi(client, session):
    session.get.return_value = make_response(payload={"results": []})

    client.search("alien", "person")

    assert session.get.call_args[0][0].endswith("/search/multi")


def test_retries_network_errors_then_succeeds(client, session):
    session.get.side_effect = [
        requests.ConnectionError("fetch failed"),
        requests.Timeout("slow"),
        make_response(payload={"genres": []}),
    ]

    assert client.get_movie_genres() == {"genres": []}
    assert session.get.call_count == 3


def test_gives_up_after_three_attempts(client, session, cache):
    session.get.side_effect = requests.ConnectionError("fetch failed")

    with pytest.raises(UpstreamFetchFailure):
        client.get_tv_details(1399)

    assert session.get.call_count == 3
    assert cache.get("tv_details_1399") is None


def test_server_errors_are_retried(client, session):
    session.get.side_effect = [
        make_response(status_code=503, reason="Service Unavailable"),
        make_response(payload={"id": 42}),
    ]

    assert client.get_movie_details(42) == {"id": 42}
    assert session.get.call_count == 2


def test_not_found_is_not_retried(client, session):
    session.get.return_value = make_response(status_code=404, reason="Not Found")

    with pytest.raises(UpstreamNotFound):
        client.get_movie_details(999999)

    assert session.get.call_count == 1


def test_client_errors_fail_immediately(client, session):
    session.get.return_value = make_response(status_code=401, reason="Unauthorized")

    with pytest.raises(UpstreamFetchFailure):
        client.get_movie_genres()

    assert session.get.call_count == 1


def test_missing_api_key_is_a_configuration_error(session, cache):
    client = TMDBClient(api_key="", cache=cache, session=session)

    with pytest.raises(ConfigurationError):
        client.get_trending_tv()

    session.get.assert_not_called()


def test_backoff_waits_two_then_four_seconds(session, cache):
    sleeps = []
    client = TMDBClient(
        api_key="test-key",
        cache=cache,
        session=session,
        max_attempts=3,
        sleep=sleeps.append,
    )
    session.get.side_effect = requests.ConnectionError("fetch failed")

    with pytest.raises(UpstreamFetchFailure):
        client.get_movie_genres()

    assert sleeps == [2, 4]
