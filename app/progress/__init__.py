"""
Watch progress tracking fed by the embedded player.

Usage:
    from app.progress import ProgressBridge, InMemoryKeyValueStore

    bridge = ProgressBridge(InMemoryKeyValueStore(), allowed_origin="https://vidlink.pro")
    bridge.handle_message(origin, message, context)
"""
from .models import (
    ContentType,
    PlayerContext,
    WatchProgressRecord,
    progress_key,
)
from .storage import (
    KeyValueStore,
    InMemoryKeyValueStore,
    SQLAlchemyKeyValueStore,
    create_session_factory,
)
from .bridge import ProgressBridge

__all__ = [
    "ContentType",
    "PlayerContext",
    "WatchProgressRecord",
    "progress_key",
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "SQLAlchemyKeyValueStore",
    "create_session_factory",
    "ProgressBridge",
]
