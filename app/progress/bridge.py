"""Watch-progress bridge between the embedded player and progress storage.

The player page relays `message` events posted by the VidLink iframe origin.
Only messages from the streaming provider's origin may touch stored state;
anything malformed is dropped without raising, so a bad event can never
break playback.
"""

import json
import logging
import math
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from .models import (
    CONTINUE_WATCHING_KEY,
    MAX_CONTINUE_WATCHING,
    MAX_VISIBLE_PROGRESS,
    MIN_VISIBLE_PROGRESS,
    RAW_MEDIA_KEY,
    WATCH_PROGRESS_KEY,
    ContentType,
    PlayerContext,
    WatchProgressRecord,
    optional_int,
    progress_key,
)
from .storage import KeyValueStore

logger = logging.getLogger("progress.bridge")

MEDIA_DATA = "MEDIA_DATA"
PLAYER_EVENT = "PLAYER_EVENT"
LEGACY_PROGRESS = "progress"

# Bridges are built per request over a shared store; writes go through this
_write_lock = threading.Lock()


def _now_ms() -> int:
    return int(time.time() * 1000)


def to_percent(watched: float, duration: float) -> int:
    """Whole percent watched, rounded half up and clamped to 0-100."""
    if duration <= 0 or watched < 0:
        raise ValueError("watched/duration out of range")
    return clamp_percent(100 * watched / duration)


def clamp_percent(value: float) -> int:
    """Round half up into 0-100. Non-finite values raise ValueError."""
    if not math.isfinite(value):
        raise ValueError(f"percent must be finite, got {value!r}")
    return int(min(100.0, max(0.0, float(value))) + 0.5)


class ProgressBridge:
    """
    Normalizes player messages into WatchProgressRecords and persists them.

    Usage:
        bridge = ProgressBridge(store, allowed_origin="https://vidlink.pro")
        bridge.handle_message(origin, message, context)
        bridge.get_continue_watching()
    """

    def __init__(
        self,
        store: KeyValueStore,
        allowed_origin: str,
        max_items: int = MAX_CONTINUE_WATCHING,
        clock_ms: Callable[[], int] = _now_ms,
    ):
        self.store = store
        self.allowed_origin = allowed_origin.rstrip("/")
        self.max_items = max_items
        self._clock_ms = clock_ms

    # ===== INBOUND EVENTS =====

    def handle_message(
        self,
        origin: Optional[str],
        message: Any,
        context: Optional[PlayerContext] = None,
    ) -> Optional[WatchProgressRecord]:
        """
        Process one relayed player message.

        Args:
            origin: Origin of the posted message, as the browser reported it
            message: The message payload (dict, or a JSON string for the
                legacy format)
            context: The item the player page was opened for

        Returns:
            The saved record, or None if the message was ignored
        """
        if not origin or origin.rstrip("/") != self.allowed_origin:
            logger.debug(f"Ignoring player message from untrusted origin {origin!r}")
            return None

        try:
            if isinstance(message, str):
                message = json.loads(message)
            if not isinstance(message, dict):
                return None

            message_type = message.get("type")
            if message_type == MEDIA_DATA:
                return self._handle_media_data(message.get("data"), context)
            if message_type == PLAYER_EVENT:
                return self._handle_player_event(message.get("data"), context)
            if message_type == LEGACY_PROGRESS:
                return self._handle_legacy_progress(message, context)
            return None
        except (ValueError, TypeError, KeyError, AttributeError, OverflowError) as e:
            logger.debug(f"Dropping malformed player message: {e}")
            return None

    def _handle_media_data(
        self,
        media: Any,
        context: Optional[PlayerContext],
    ) -> Optional[WatchProgressRecord]:
        if not isinstance(media, dict):
            return None

        progress = media["progress"]
        percent = to_percent(float(progress["watched"]), float(progress["duration"]))

        if context is None:
            context = self._context_from_media(media)
            if context is None:
                return None

        self._save_raw_media(media)
        return self.save_progress(
            context.content_id,
            context.content_type,
            percent,
            season=context.season,
            episode=context.episode,
        )

    def _handle_player_event(
        self,
        event: Any,
        context: Optional[PlayerContext],
    ) -> Optional[WatchProgressRecord]:
        if not isinstance(event, dict):
            return None

        event_type = event.get("event")
        if event_type != "ended":
            logger.debug(f"Player event: {event_type}")
            return None
        if context is None:
            return None

        # Finished: mark as fully watched
        return self.save_progress(
            context.content_id,
            context.content_type,
            100,
            season=context.season,
            episode=context.episode,
        )

    def _handle_legacy_progress(
        self,
        message: Dict[str, Any],
        context: Optional[PlayerContext],
    ) -> Optional[WatchProgressRecord]:
        value = message.get("progress")
        if context is None or isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return self.save_progress(
            context.content_id,
            context.content_type,
            clamp_percent(value),
            season=context.season,
            episode=context.episode,
        )

    @staticmethod
    def _context_from_media(media: Dict[str, Any]) -> Optional[PlayerContext]:
        if media.get("id") is None or media.get("type") is None:
            return None
        content_type = ContentType(media["type"])
        season = episode = None
        if content_type == ContentType.TV:
            season = optional_int(media.get("season", media.get("last_season_watched")))
            episode = optional_int(media.get("episode", media.get("last_episode_watched")))
        return PlayerContext(
            content_id=str(media["id"]),
            content_type=content_type,
            season=season,
            episode=episode,
        )

    def _save_raw_media(self, media: Dict[str, Any]) -> None:
        with _write_lock:
            raw = self._read_json(RAW_MEDIA_KEY, {})
            raw[str(media["id"])] = dict(media, last_updated=self._clock_ms())
            self._write_json(RAW_MEDIA_KEY, raw)

    # ===== STORAGE =====

    def save_progress(
        self,
        content_id: str,
        content_type: ContentType,
        progress: int,
        season: Optional[int] = None,
        episode: Optional[int] = None,
    ) -> WatchProgressRecord:
        """
        Upsert a record into the progress map and the continue-watching list.

        The touched record moves to the front of the list and the list is
        truncated to `max_items`.
        """
        record = WatchProgressRecord(
            content_id=str(content_id),
            content_type=content_type,
            progress=clamp_percent(progress),
            last_watched=self._clock_ms(),
            season=season,
            episode=episode,
        )

        # Both documents are read-modify-write; concurrent events must not interleave
        with _write_lock:
            progress_map = self._read_json(WATCH_PROGRESS_KEY, {})
            progress_map[record.storage_key] = record.to_dict()
            self._write_json(WATCH_PROGRESS_KEY, progress_map)

            items = [
                item for item in self._load_continue_watching()
                if item.identity != record.identity
            ]
            items.insert(0, record)
            self._write_json(
                CONTINUE_WATCHING_KEY,
                [item.to_dict() for item in items[: self.max_items]],
            )

        logger.debug(f"Saved progress {record.storage_key}: {record.progress}%")
        return record

    def get_watch_progress(
        self,
        content_id: str,
        season: Optional[int] = None,
        episode: Optional[int] = None,
    ) -> int:
        """Stored percent for an item, 0 if never watched."""
        progress_map = self._read_json(WATCH_PROGRESS_KEY, {})
        entry = progress_map.get(progress_key(str(content_id), season, episode))
        if not isinstance(entry, dict):
            return 0
        try:
            return int(entry.get("progress", 0))
        except (TypeError, ValueError):
            return 0

    def get_continue_watching(self, limit: int = 10) -> List[WatchProgressRecord]:
        """
        Records to offer for resuming, most recent first.

        Items under 5% or at/over 95% are hidden here but stay stored.
        """
        visible = [
            record for record in self._load_continue_watching()
            if MIN_VISIBLE_PROGRESS <= record.progress < MAX_VISIBLE_PROGRESS
        ]
        visible.sort(key=lambda record: record.last_watched, reverse=True)
        return visible[:limit]

    def _load_continue_watching(self) -> List[WatchProgressRecord]:
        records = []
        raw_items = self._read_json(CONTINUE_WATCHING_KEY, [])
        if not isinstance(raw_items, list):
            return records
        for raw in raw_items:
            try:
                records.append(WatchProgressRecord.from_dict(raw))
            except (KeyError, TypeError, ValueError):
                logger.debug(f"Skipping unreadable continue-watching item: {raw!r}")
        return records

    def _read_json(self, key: str, default: Any) -> Any:
        raw = self.store.get_item(key)
        if raw is None:
            return default
        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning(f"Stored {key} is not valid JSON, starting fresh")
            return default
        return value if isinstance(value, type(default)) else default

    def _write_json(self, key: str, value: Any) -> None:
        self.store.set_item(key, json.dumps(value))
