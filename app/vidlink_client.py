"""
VidLink client - STREAMING ONLY.
Embed URLs are built deterministically from the TMDB (or MAL) id; nothing is
fetched and nothing is cached. Never used for metadata.
"""
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Union
from urllib.parse import urlencode, urlparse

from config.settings import settings

# Player theme shared by every embed
PLAYER_OPTIONS = {
    "primaryColor": "DC2626",
    "secondaryColor": "374151",
    "iconColor": "FFFFFF",
    "title": "true",
    "poster": "true",
    "autoplay": "false",
}


@dataclass
class StreamingSource:
    """Embeddable stream location."""
    url: str
    embed_url: str
    provider: str = "vidlink"
    quality: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON shape the player page expects."""
        result = asdict(self)
        result["embedUrl"] = result.pop("embed_url")
        if result["quality"] is None:
            del result["quality"]
        return result


class VidLinkClient:
    """Builds VidLink embed URLs for movies, TV episodes and anime."""

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = (base_url or settings.vidlink_base_url).rstrip("/")

    def _source(self, path: str, **extra: str) -> StreamingSource:
        url = f"{self.base_url}{path}"
        options = dict(PLAYER_OPTIONS, **extra)
        options["player"] = "default"
        return StreamingSource(url=url, embed_url=f"{url}?{urlencode(options)}")

    def get_movie_stream_url(self, tmdb_id: Union[int, str]) -> StreamingSource:
        return self._source(f"/movie/{tmdb_id}", nextbutton="false")

    def get_tv_stream_url(
        self,
        tmdb_id: Union[int, str],
        season: int,
        episode: int,
    ) -> StreamingSource:
        return self._source(f"/tv/{tmdb_id}/{season}/{episode}", nextbutton="true")

    def get_anime_stream_url(
        self,
        mal_id: Union[int, str],
        episode: int,
        sub_or_dub: str = "sub",
    ) -> StreamingSource:
        if sub_or_dub not in ("sub", "dub"):
            raise ValueError("sub_or_dub must be 'sub' or 'dub'")
        return self._source(f"/anime/{mal_id}/{episode}/{sub_or_dub}", fallback="true")

    def is_valid_stream_url(self, url: str) -> bool:
        """Basic check that a URL points at the configured VidLink host."""
        try:
            hostname = urlparse(url).hostname
        except ValueError:
            return False
        expected = urlparse(self.base_url).hostname
        return bool(hostname and expected) and (
            hostname == expected or hostname.endswith("." + expected)
        )


# Global client instance
_client: Optional[VidLinkClient] = None


def get_vidlink_client() -> VidLinkClient:
    """Get or create the global VidLink client."""
    global _client
    if _client is None:
        _client = VidLinkClient()
    return _client
