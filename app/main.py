"""
StreamCinema - Main FastAPI Application
Metadata proxied from TMDB (cached), streams embedded from VidLink (never cached)
"""
import json
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from html import escape
from typing import Optional

from fastapi import Depends, FastAPI, Header, Path, Query, Request, Response
from fastapi.responses import HTMLResponse

from app.cache import CacheSweeper, DataCategory, cache_control_header, get_cache
from app.errors import register_error_handlers
from app.exceptions import InvalidInput
from app.progress import (
    KeyValueStore,
    ProgressBridge,
    SQLAlchemyKeyValueStore,
    create_session_factory,
)
from app.rate_limiter import RateLimitCategory, get_client_id, get_rate_limiter_registry
from app.schemas import (
    ContinueWatchingResponse,
    ItemProgressResponse,
    ProgressEventRequest,
    ProgressEventResponse,
)
from app.tmdb_client import TIME_WINDOWS, TMDBClient, get_tmdb_client
from app.vidlink_client import VidLinkClient, get_vidlink_client
from config.settings import settings

# JSON lines in production, human-readable locally
if settings.is_production:
    logging.basicConfig(
        level=settings.log_level,
        format='{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}',
        stream=sys.stdout,
    )
else:
    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s: %(message)s")

logger = logging.getLogger("main")

# Version tracking
APP_VERSION = "v0.3.0"
APP_NAME = "StreamCinema"

# Crew jobs kept on detail pages
MOVIE_CREW_JOBS = {"Director", "Producer", "Executive Producer", "Writer"}
TV_CREW_JOBS = {"Creator", "Executive Producer", "Producer", "Director", "Writer"}
CAST_LIMIT = 20

_progress_store: Optional[KeyValueStore] = None


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Run the cache/limiter sweeper for the lifetime of the app."""
    if not settings.tmdb_api_key:
        logger.warning("TMDB_API_KEY is not set; metadata endpoints will answer 503")

    sweeper: Optional[CacheSweeper] = None
    if settings.cache_sweep_interval_seconds > 0:
        sweeper = CacheSweeper(get_cache(), settings.cache_sweep_interval_seconds)
        sweeper.add_hook(get_rate_limiter_registry().cleanup)
        sweeper.start()
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.stop()


app = FastAPI(
    title=APP_NAME,
    description="Movie and TV discovery backed by TMDB, playback via VidLink",
    version=APP_VERSION,
    lifespan=lifespan,
)

register_error_handlers(app)


# ===== DEPENDENCIES =====

def rate_limit(category: RateLimitCategory):
    """Dependency factory counting the request against `category`'s quota."""
    def dependency(request: Request) -> None:
        get_rate_limiter_registry().consume(category, get_client_id(request.headers))
    return dependency


def get_progress_store() -> KeyValueStore:
    """Process-wide progress store (SQLite by default)."""
    global _progress_store
    if _progress_store is None:
        _progress_store = SQLAlchemyKeyValueStore(
            create_session_factory(settings.progress_database_url)
        )
    return _progress_store


def get_progress_bridge(
    x_viewer_id: str = Header("default", min_length=1, max_length=64),
    store: KeyValueStore = Depends(get_progress_store),
) -> ProgressBridge:
    """Bridge bound to the calling viewer's namespace."""
    return ProgressBridge(
        store.for_namespace(x_viewer_id),
        allowed_origin=settings.player_origin,
        max_items=settings.continue_watching_max_items,
    )


def _cache_headers(response: Response, category: DataCategory) -> None:
    response.headers["Cache-Control"] = cache_control_header(category)


def _no_store_headers(response: Response) -> None:
    response.headers["Cache-Control"] = cache_control_header(DataCategory.STREAM_URLS)
    response.headers["Pragma"] = "no-cache"
    response.headers["Expires"] = "0"


# ===== SERVICE =====

@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "source": "tmdb", "tmdb_configured": bool(settings.tmdb_api_key)}


@app.get("/version")
def version_info():
    """Version information endpoint."""
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "full": f"{APP_NAME} {APP_VERSION}",
    }


@app.get("/cache/stats")
def cache_stats():
    """Get cache and rate limiter statistics."""
    return {
        "cache": get_cache().stats(),
        "rate_limits": get_rate_limiter_registry().get_stats(),
    }


@app.post("/cache/clear")
def cache_clear():
    """Administrative reset: drop every cached response."""
    return {"cleared": get_cache().clear()}


# ===== GENRES =====

@app.get("/api/genres", dependencies=[Depends(rate_limit(RateLimitCategory.METADATA))])
def get_genres(response: Response, tmdb: TMDBClient = Depends(get_tmdb_client)):
    """Movie and TV genre lists."""
    with ThreadPoolExecutor(max_workers=2) as executor:
        movie_future = executor.submit(tmdb.get_movie_genres)
        tv_future = executor.submit(tmdb.get_tv_genres)
        movie_genres = movie_future.result()
        tv_genres = tv_future.result()

    _cache_headers(response, DataCategory.GENRES)
    return {
        "movie": movie_genres.get("genres", []),
        "tv": tv_genres.get("genres", []),
    }


# ===== MOVIES =====

@app.get("/api/movies/trending", dependencies=[Depends(rate_limit(RateLimitCategory.METADATA))])
def get_trending_movies(
    response: Response,
    time_window: str = Query("week", alias="timeWindow", description="day or week"),
    tmdb: TMDBClient = Depends(get_tmdb_client),
):
    """Trending movies for the day or week."""
    if time_window not in TIME_WINDOWS:
        raise InvalidInput("timeWindow must be 'day' or 'week'")
    _cache_headers(response, DataCategory.TRENDING)
    return tmdb.get_trending_movies(time_window)


@app.get("/api/movies/popular", dependencies=[Depends(rate_limit(RateLimitCategory.METADATA))])
def get_popular_movies(
    response: Response,
    page: int = Query(1, ge=1, le=500),
    with_genres: Optional[int] = Query(None, ge=1, description="Filter by genre ID"),
    tmdb: TMDBClient = Depends(get_tmdb_client),
):
    """Popular movies, optionally narrowed to a genre."""
    _cache_headers(response, DataCategory.POPULAR)
    if with_genres:
        return tmdb.discover_movies_by_genre(with_genres, page)
    return tmdb.get_popular_movies(page)


@app.get("/api/movies/{movie_id}", dependencies=[Depends(rate_limit(RateLimitCategory.METADATA))])
def get_movie(
    response: Response,
    movie_id: int = Path(..., ge=1),
    tmdb: TMDBClient = Depends(get_tmdb_client),
):
    """Movie details with top-billed cast and key crew."""
    with ThreadPoolExecutor(max_workers=2) as executor:
        details_future = executor.submit(tmdb.get_movie_details, movie_id)
        credits_future = executor.submit(tmdb.get_movie_credits, movie_id)
        details = details_future.result()
        credits = credits_future.result()

    _cache_headers(response, DataCategory.MOVIE_DETAILS)
    return _with_credits(details, credits, MOVIE_CREW_JOBS)


# ===== TV =====

@app.get("/api/tv/trending", dependencies=[Depends(rate_limit(RateLimitCategory.METADATA))])
def get_trending_tv(
    response: Response,
    time_window: str = Query("week", alias="timeWindow", description="day or week"),
    tmdb: TMDBClient = Depends(get_tmdb_client),
):
    """Trending TV shows for the day or week."""
    if time_window not in TIME_WINDOWS:
        raise InvalidInput("timeWindow must be 'day' or 'week'")
    _cache_headers(response, DataCategory.TRENDING)
    return tmdb.get_trending_tv(time_window)


@app.get("/api/tv/popular", dependencies=[Depends(rate_limit(RateLimitCategory.METADATA))])
def get_popular_tv(
    response: Response,
    page: int = Query(1, ge=1, le=500),
    with_genres: Optional[int] = Query(None, ge=1, description="Filter by genre ID"),
    tmdb: TMDBClient = Depends(get_tmdb_client),
):
    """Popular TV shows, optionally narrowed to a genre."""
    _cache_headers(response, DataCategory.POPULAR)
    if with_genres:
        return tmdb.discover_tv_by_genre(with_genres, page)
    return tmdb.get_popular_tv(page)


@app.get("/api/tv/airing_today", dependencies=[Depends(rate_limit(RateLimitCategory.METADATA))])
def get_airing_today_tv(
    response: Response,
    page: int = Query(1, ge=1, le=500),
    tmdb: TMDBClient = Depends(get_tmdb_client),
):
    """TV shows with an episode airing today."""
    _cache_headers(response, DataCategory.TRENDING)
    return tmdb.get_airing_today_tv(page)


@app.get("/api/tv/on_the_air", dependencies=[Depends(rate_limit(RateLimitCategory.METADATA))])
def get_on_the_air_tv(
    response: Response,
    page: int = Query(1, ge=1, le=500),
    tmdb: TMDBClient = Depends(get_tmdb_client),
):
    """TV shows currently on the air."""
    _cache_headers(response, DataCategory.TRENDING)
    return tmdb.get_on_the_air_tv(page)


@app.get("/api/tv/{tv_id}", dependencies=[Depends(rate_limit(RateLimitCategory.METADATA))])
def get_tv_show(
    response: Response,
    tv_id: int = Path(..., ge=1),
    tmdb: TMDBClient = Depends(get_tmdb_client),
):
    """TV show details with top-billed cast and key crew."""
    with ThreadPoolExecutor(max_workers=2) as executor:
        details_future = executor.submit(tmdb.get_tv_details, tv_id)
        credits_future = executor.submit(tmdb.get_tv_credits, tv_id)
        details = details_future.result()
        credits = credits_future.result()

    _cache_headers(response, DataCategory.TV_DETAILS)
    return _with_credits(details, credits, TV_CREW_JOBS)


@app.get(
    "/api/tv/{tv_id}/season/{season_number}",
    dependencies=[Depends(rate_limit(RateLimitCategory.METADATA))],
)
def get_tv_season(
    response: Response,
    tv_id: int = Path(..., ge=1),
    season_number: int = Path(..., ge=0),
    tmdb: TMDBClient = Depends(get_tmdb_client),
):
    """Season details with episodes."""
    _cache_headers(response, DataCategory.TV_DETAILS)
    return tmdb.get_season_details(tv_id, season_number)


def _with_credits(details: dict, credits: dict, crew_jobs: set) -> dict:
    """Merge credits into details: top cast only, crew filtered by job."""
    result = dict(details)
    result["cast"] = (credits.get("cast") or [])[:CAST_LIMIT]
    result["crew"] = [
        member for member in (credits.get("crew") or [])
        if member.get("job") in crew_jobs
    ]
    return result


# ===== SEARCH =====

@app.get("/api/search", dependencies=[Depends(rate_limit(RateLimitCategory.SEARCH))])
def search(
    response: Response,
    q: Optional[str] = Query(None, max_length=200, description="Search query"),
    search_type: str = Query("multi", alias="type", description="multi, movie or tv"),
    page: int = Query(1, ge=1, le=500),
    tmdb: TMDBClient = Depends(get_tmdb_client),
):
    """
    Search across movies and TV shows.

    Example: /api/search?q=dune&type=movie
    """
    query = (q or "").strip()
    if not query:
        raise InvalidInput("Search query is required")

    _cache_headers(response, DataCategory.SEARCH)
    return tmdb.search(query, search_type, page)


# ===== STREAMING =====

@app.get(
    "/api/stream/movie/{tmdb_id}",
    dependencies=[Depends(rate_limit(RateLimitCategory.STREAMING))],
)
def stream_movie(
    response: Response,
    tmdb_id: int = Path(..., ge=1),
    vidlink: VidLinkClient = Depends(get_vidlink_client),
):
    """Embeddable stream for a movie. Never cached."""
    _no_store_headers(response)
    return vidlink.get_movie_stream_url(tmdb_id).to_dict()


@app.get(
    "/api/stream/tv/{tmdb_id}/{season}/{episode}",
    dependencies=[Depends(rate_limit(RateLimitCategory.STREAMING))],
)
def stream_tv_episode(
    response: Response,
    tmdb_id: int = Path(..., ge=1),
    season: int = Path(..., ge=0),
    episode: int = Path(..., ge=1),
    vidlink: VidLinkClient = Depends(get_vidlink_client),
):
    """Embeddable stream for a TV episode. Never cached."""
    _no_store_headers(response)
    return vidlink.get_tv_stream_url(tmdb_id, season, episode).to_dict()


# ===== WATCH PROGRESS =====

@app.post("/api/progress/events", response_model=ProgressEventResponse)
def relay_player_event(
    event: ProgressEventRequest,
    bridge: ProgressBridge = Depends(get_progress_bridge),
):
    """
    Receive a `message` event relayed from the watch page.

    Always answers 200; `accepted` is False when the event was ignored
    (untrusted origin, unknown or malformed payload).
    """
    context = event.context.to_context() if event.context else None
    record = bridge.handle_message(event.origin, event.message, context)
    return {
        "accepted": record is not None,
        "record": record.to_dict() if record else None,
    }


@app.get("/api/progress/continue-watching", response_model=ContinueWatchingResponse)
def continue_watching(
    limit: int = Query(10, ge=1, le=20),
    bridge: ProgressBridge = Depends(get_progress_bridge),
):
    """Items started but not finished, most recent first."""
    items = [record.to_dict() for record in bridge.get_continue_watching(limit)]
    return {"items": items, "count": len(items)}


@app.get("/api/progress/{content_id}", response_model=ItemProgressResponse)
def item_progress(
    content_id: str = Path(..., min_length=1, max_length=32),
    season: Optional[int] = Query(None, ge=0),
    episode: Optional[int] = Query(None, ge=0),
    bridge: ProgressBridge = Depends(get_progress_bridge),
):
    """Stored percent watched for one movie or episode (0 if unseen)."""
    return {
        "contentId": content_id,
        "season": season,
        "episode": episode,
        "progress": bridge.get_watch_progress(content_id, season, episode),
    }


# ===== PLAYER PAGES =====

PLAYER_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title} - {app_name}</title>
    <style>
        body {{ margin: 0; background: #000; }}
        .player {{ position: relative; width: 100%; aspect-ratio: 16 / 9; }}
        .player iframe {{ width: 100%; height: 100%; border: 0; }}
    </style>
</head>
<body>
    <div class="player">
        <iframe src="{embed_url}" title="Watch {title}" allowfullscreen
            allow="accelerometer; autoplay; clipboard-write; encrypted-media; gyroscope; picture-in-picture; web-share"
            referrerpolicy="strict-origin-when-cross-origin"></iframe>
    </div>
    <script>
        const context = {context_json};
        const playerOrigin = {player_origin_json};
        const viewerId = localStorage.getItem("streamcinema_viewer_id") || "default";
        window.addEventListener("message", (event) => {{
            if (event.origin !== playerOrigin) return;
            fetch("/api/progress/events", {{
                method: "POST",
                headers: {{"Content-Type": "application/json", "X-Viewer-Id": viewerId}},
                body: JSON.stringify({{origin: event.origin, message: event.data, context}}),
            }}).catch(() => {{}});
        }});
    </script>
</body>
</html>"""


def _script_json(value) -> str:
    # "</" must not appear raw inside the inline script
    return json.dumps(value).replace("</", "<\\/")


def _render_player(title: str, embed_url: str, context: dict) -> str:
    return PLAYER_PAGE.format(
        title=escape(title),
        app_name=APP_NAME,
        embed_url=escape(embed_url, quote=True),
        context_json=_script_json(context),
        player_origin_json=_script_json(settings.player_origin.rstrip("/")),
    )


@app.get(
    "/movie/{movie_id}/watch",
    response_class=HTMLResponse,
    dependencies=[Depends(rate_limit(RateLimitCategory.STREAMING))],
)
def watch_movie(
    movie_id: int = Path(..., ge=1),
    vidlink: VidLinkClient = Depends(get_vidlink_client),
):
    """Player page for a movie."""
    source = vidlink.get_movie_stream_url(movie_id)
    context = {"contentId": str(movie_id), "contentType": "movie"}
    return HTMLResponse(
        _render_player(f"Movie {movie_id}", source.embed_url, context),
        headers={"Cache-Control": cache_control_header(DataCategory.STREAM_URLS)},
    )


@app.get(
    "/tv/{tv_id}/watch",
    response_class=HTMLResponse,
    dependencies=[Depends(rate_limit(RateLimitCategory.STREAMING))],
)
def watch_tv_episode(
    tv_id: int = Path(..., ge=1),
    season: int = Query(1, ge=0),
    episode: int = Query(1, ge=1),
    vidlink: VidLinkClient = Depends(get_vidlink_client),
):
    """Player page for a TV episode."""
    source = vidlink.get_tv_stream_url(tv_id, season, episode)
    context = {
        "contentId": str(tv_id),
        "contentType": "tv",
        "season": season,
        "episode": episode,
    }
    return HTMLResponse(
        _render_player(f"TV {tv_id} S{season}E{episode}", source.embed_url, context),
        headers={"Cache-Control": cache_control_header(DataCategory.STREAM_URLS)},
    )
