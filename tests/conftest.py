"""
Shared fixtures: a controllable clock and fake upstream clients.
"""
import pytest

from app.progress import InMemoryKeyValueStore


class FakeClock:
    """Callable clock returning epoch seconds; advance() moves time forward."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTMDBClient:
    """Stands in for TMDBClient in route tests; records calls."""

    def __init__(self):
        self.calls = []
        self.raise_for = {}

    def _answer(self, name, *args):
        self.calls.append((name, args))
        if name in self.raise_for:
            raise self.raise_for[name]
        return {"source": name, "args": list(args), "results": [], "page": 1}

    def get_movie_genres(self):
        self.calls.append(("get_movie_genres", ()))
        return {"genres": [{"id": 28, "name": "Action"}]}

    def get_tv_genres(self):
        self.calls.append(("get_tv_genres", ()))
        return {"genres": [{"id": 18, "name": "Drama"}]}

    def get_trending_movies(self, time_window="week"):
        return self._answer("get_trending_movies", time_window)

    def get_trending_tv(self, time_window="week"):
        return self._answer("get_trending_tv", time_window)

    def get_popular_movies(self, page=1):
        return self._answer("get_popular_movies", page)

    def get_popular_tv(self, page=1):
        return self._answer("get_popular_tv", page)

    def get_airing_today_tv(self, page=1):
        return self._answer("get_airing_today_tv", page)

    def get_on_the_air_tv(self, page=1):
        return self._answer("get_on_the_air_tv", page)

    def discover_movies_by_genre(self, genre_id, page=1):
        return self._answer("discover_movies_by_genre", genre_id, page)

    def discover_tv_by_genre(self, genre_id, page=1):
        return self._answer("discover_tv_by_genre", genre_id, page)

    def get_movie_details(self, movie_id):
        self.calls.append(("get_movie_details", (movie_id,)))
        if "get_movie_details" in self.raise_for:
            raise self.raise_for["get_movie_details"]
        return {"id": movie_id, "title": "Dune"}

    def get_movie_credits(self, movie_id):
        self.calls.append(("get_movie_credits", (movie_id,)))
        return {
            "cast": [{"id": i, "name": f"Actor {i}"} for i in range(30)],
            "crew": [
                {"id": 100, "name": "Denis", "job": "Director"},
                {"id": 101, "name": "Grip", "job": "Key Grip"},
                {"id": 102, "name": "Eric", "job": "Writer"},
            ],
        }

    def get_tv_details(self, tv_id):
        self.calls.append(("get_tv_details", (tv_id,)))
        return {"id": tv_id, "name": "Severance"}

    def get_tv_credits(self, tv_id):
        self.calls.append(("get_tv_credits", (tv_id,)))
        return {
            "cast": [{"id": 1, "name": "Adam"}],
            "crew": [
                {"id": 200, "name": "Dan", "job": "Creator"},
                {"id": 201, "name": "Someone", "job": "Editor"},
            ],
        }

    def get_season_details(self, tv_id, season_number):
        return self._answer("get_season_details", tv_id, season_number)

    def search(self, query, search_type="multi", page=1):
        return self._answer("search", query, search_type, page)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_tmdb():
    return FakeTMDBClient()


@pytest.fixture
def memory_store():
    return InMemoryKeyValueStore()
