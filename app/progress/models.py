"""
Data models for watch progress tracking.

Records are persisted as JSON in the same camelCase shape the player page
reads back.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple


# Storage keys (one JSON document each)
WATCH_PROGRESS_KEY = "streamcinema_watch_progress"
CONTINUE_WATCHING_KEY = "streamcinema_continue_watching"
RAW_MEDIA_KEY = "vidLinkProgress"

MAX_CONTINUE_WATCHING = 20

# Continue-watching view shows items in [MIN, MAX) percent
MIN_VISIBLE_PROGRESS = 5
MAX_VISIBLE_PROGRESS = 95


class ContentType(Enum):
    MOVIE = "movie"
    TV = "tv"


@dataclass
class PlayerContext:
    """
    The item a player page was opened for.

    Player events are attributed to this item when present.
    """
    content_id: str
    content_type: ContentType
    season: Optional[int] = None
    episode: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlayerContext":
        """Create from dictionary. Raises ValueError/KeyError on bad input."""
        return cls(
            content_id=str(data.get("contentId", data.get("content_id"))),
            content_type=ContentType(data.get("contentType", data.get("content_type"))),
            season=optional_int(data.get("season")),
            episode=optional_int(data.get("episode")),
        )


@dataclass
class WatchProgressRecord:
    """
    Progress of one movie or one TV episode.

    Unique by content id for movies and by (content id, season, episode)
    for TV.
    """
    content_id: str
    content_type: ContentType
    progress: int  # Percentage (0-100)
    last_watched: int  # Epoch milliseconds
    season: Optional[int] = None
    episode: Optional[int] = None

    @property
    def identity(self) -> Tuple[str, Optional[int], Optional[int]]:
        return (self.content_id, self.season, self.episode)

    @property
    def storage_key(self) -> str:
        return progress_key(self.content_id, self.season, self.episode)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        result: Dict[str, Any] = {
            "contentId": self.content_id,
            "contentType": self.content_type.value,
            "progress": self.progress,
            "lastWatched": self.last_watched,
        }
        if self.season is not None:
            result["season"] = self.season
        if self.episode is not None:
            result["episode"] = self.episode
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WatchProgressRecord":
        """Create from dictionary."""
        return cls(
            content_id=str(data["contentId"]),
            content_type=ContentType(data["contentType"]),
            progress=int(data.get("progress", 0)),
            last_watched=int(data.get("lastWatched", 0)),
            season=optional_int(data.get("season")),
            episode=optional_int(data.get("episode")),
        )


def progress_key(content_id: str, season: Optional[int] = None, episode: Optional[int] = None) -> str:
    """Key into the progress map: "123" for movies, "123-s1e4" for episodes."""
    if season is not None and episode is not None:
        return f"{content_id}-s{season}e{episode}"
    return str(content_id)


def optional_int(value: Any) -> Optional[int]:
    """Parse ints that may arrive as numbers or numeric strings."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("boolean is not a valid number")
    return int(value)
