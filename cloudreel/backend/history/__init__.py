"""Watch-progress persistence."""

from cloudreel.backend.history.models import (
    ProgressRecord,
    WatchHistory,
    clamp_progress,
    decode_history,
    encode_history,
)
from cloudreel.backend.history.store import WatchHistoryStore

__all__ = [
    "ProgressRecord",
    "WatchHistory",
    "WatchHistoryStore",
    "clamp_progress",
    "decode_history",
    "encode_history",
]
