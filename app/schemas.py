"""
Pydantic schemas for API request/response models
"""
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field

from app.progress import ContentType, PlayerContext


# ===== PROGRESS SCHEMAS =====

class PlayerContextIn(BaseModel):
    """Item the player page was opened for"""
    contentId: str = Field(..., min_length=1, max_length=32)
    contentType: Literal["movie", "tv"]
    season: Optional[int] = Field(None, ge=0)
    episode: Optional[int] = Field(None, ge=0)

    def to_context(self) -> PlayerContext:
        return PlayerContext(
            content_id=self.contentId,
            content_type=ContentType(self.contentType),
            season=self.season,
            episode=self.episode,
        )


class ProgressEventRequest(BaseModel):
    """A player `message` event relayed by the watch page"""
    origin: Optional[str] = None
    message: Any = None
    context: Optional[PlayerContextIn] = None


class WatchProgressOut(BaseModel):
    """Stored progress for one movie or episode"""
    contentId: str
    contentType: Literal["movie", "tv"]
    progress: int
    lastWatched: int
    season: Optional[int] = None
    episode: Optional[int] = None


class ProgressEventResponse(BaseModel):
    """Whether the event changed stored progress"""
    accepted: bool
    record: Optional[WatchProgressOut] = None


class ContinueWatchingResponse(BaseModel):
    """Resumable items, most recent first"""
    items: List[WatchProgressOut]
    count: int


class ItemProgressResponse(BaseModel):
    """Progress lookup for a single item"""
    contentId: str
    season: Optional[int] = None
    episode: Optional[int] = None
    progress: int
