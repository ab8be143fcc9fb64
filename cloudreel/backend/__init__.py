"""Backend public interfaces with lazy loading to avoid circular imports."""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING, Any

__all__ = [
    "Catalog",
    "MediaSession",
    "Notifier",
    "PlaybackCoordinator",
    "PlaybackState",
    "ProgressRecord",
    "TokenManager",
    "WatchHistoryStore",
    "build_catalog",
]

_MODULE_EXPORTS = {
    "media_session": {
        "MediaSession",
    },
    "auth": {
        "TokenManager",
    },
    "common.notifications": {
        "Notifier",
    },
    "history": {
        "ProgressRecord",
        "WatchHistoryStore",
    },
    "library": {
        "Catalog",
        "build_catalog",
    },
    "player": {
        "PlaybackCoordinator",
        "PlaybackState",
    },
}

if TYPE_CHECKING:  # pragma: no cover - for static analysis only
    from .auth import TokenManager
    from .common.notifications import Notifier
    from .history import ProgressRecord, WatchHistoryStore
    from .library import Catalog, build_catalog
    from .media_session import MediaSession
    from .player import PlaybackCoordinator, PlaybackState


def __getattr__(name: str) -> Any:
    for module_name, symbols in _MODULE_EXPORTS.items():
        if name in symbols:
            module = importlib.import_module(f"{__name__}.{module_name}")
            value = getattr(module, name)
            globals()[name] = value
            return value
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


def __dir__() -> list[str]:
    exported = set(__all__)
    for symbols in _MODULE_EXPORTS.values():
        exported.update(symbols)
    exported.update(globals().keys())
    return sorted(exported)
