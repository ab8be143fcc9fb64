from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple

from .library import (
    HistorySettings,
    LibrarySettings,
    PlaybackSettings,
    load_user_settings,
    write_user_settings,
)
from .paths import get_database_path, get_tokens_dir

_SETTINGS_LOCK = threading.Lock()
_SETTINGS_SINGLETON: Optional["Settings"] = None


@dataclass
class AuthSettings:
    app_key: Optional[str] = None
    app_secret: Optional[str] = None
    refresh_token: Optional[str] = None
    expiry_margin_seconds: int = 300

    @property
    def configured(self) -> bool:
        return bool(self.app_key and self.refresh_token)

    def as_dict(self) -> Dict[str, Any]:
        # Secrets are never echoed back.
        return {
            "app_key": self.app_key,
            "app_secret_set": bool(self.app_secret),
            "refresh_token_set": bool(self.refresh_token),
            "expiry_margin_seconds": self.expiry_margin_seconds,
        }


@dataclass
class Settings:
    app_name: str = "CloudReel"
    env: str = "development"
    log_level: str = "INFO"
    auth: AuthSettings = field(default_factory=AuthSettings)
    library: LibrarySettings = field(default_factory=LibrarySettings)
    history: HistorySettings = field(default_factory=HistorySettings)
    playback: PlaybackSettings = field(default_factory=PlaybackSettings)
    http_timeout: int = 20
    database_path: Optional[os.PathLike[str]] = None
    tokens_dir: Optional[os.PathLike[str]] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "app_name": self.app_name,
            "env": self.env,
            "log_level": self.log_level,
            "auth": self.auth.as_dict(),
            "library": self.library.as_dict(),
            "history": self.history.as_dict(),
            "playback": self.playback.as_dict(),
            "http_timeout": self.http_timeout,
            "database_path": str(self.database_path) if self.database_path else None,
            "tokens_dir": str(self.tokens_dir) if self.tokens_dir else None,
        }


def _float(raw: Any, default: float) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    return value if value >= 0 else default


def _int(raw: Any, default: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def _floats(raw: Any, default: Tuple[float, ...]) -> Tuple[float, ...]:
    if isinstance(raw, str):
        raw = [part for part in raw.split(",") if part.strip()]
    if not isinstance(raw, (list, tuple)):
        return default
    try:
        return tuple(max(0.0, float(v)) for v in raw)
    except (TypeError, ValueError):
        return default


def _section(user_cfg: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = user_cfg.get(key)
    return value if isinstance(value, Mapping) else {}


def _build_settings() -> Settings:
    user_cfg = load_user_settings()
    auth_cfg = _section(user_cfg, "auth")
    lib_cfg = _section(user_cfg, "library")
    hist_cfg = _section(user_cfg, "history")
    play_cfg = _section(user_cfg, "playback")

    auth = AuthSettings(
        app_key=os.getenv("CLOUDREEL_APP_KEY") or auth_cfg.get("app_key"),
        app_secret=os.getenv("CLOUDREEL_APP_SECRET") or auth_cfg.get("app_secret"),
        refresh_token=os.getenv("CLOUDREEL_REFRESH_TOKEN") or auth_cfg.get("refresh_token"),
        expiry_margin_seconds=_int(auth_cfg.get("expiry_margin_seconds"), 300),
    )

    defaults = LibrarySettings()
    extensions = lib_cfg.get("video_extensions")
    library = LibrarySettings(
        root=os.getenv("CLOUDREEL_LIBRARY_ROOT", lib_cfg.get("root", defaults.root)),
        movies_root=os.getenv("CLOUDREEL_MOVIES_ROOT", lib_cfg.get("movies_root", defaults.movies_root)),
        series_root=os.getenv("CLOUDREEL_SERIES_ROOT", lib_cfg.get("series_root", defaults.series_root)),
        video_extensions=tuple(extensions) if isinstance(extensions, (list, tuple)) else defaults.video_extensions,
        thumbnail_name=lib_cfg.get("thumbnail_name", defaults.thumbnail_name),
        description_name=lib_cfg.get("description_name", defaults.description_name),
        page_limit=_int(lib_cfg.get("page_limit"), defaults.page_limit),
    )

    hist_defaults = HistorySettings()
    history = HistorySettings(
        remote_path=hist_cfg.get("remote_path", hist_defaults.remote_path),
        local_key=hist_cfg.get("local_key", hist_defaults.local_key),
        flush_interval_seconds=_float(
            os.getenv("CLOUDREEL_FLUSH_INTERVAL") or hist_cfg.get("flush_interval_seconds"),
            hist_defaults.flush_interval_seconds,
        ),
        retry_backoff_seconds=_floats(hist_cfg.get("retry_backoff_seconds"), hist_defaults.retry_backoff_seconds),
    )

    play_defaults = PlaybackSettings()
    playback = PlaybackSettings(
        progress_interval_seconds=_float(
            play_cfg.get("progress_interval_seconds"), play_defaults.progress_interval_seconds
        ),
        resume_epsilon_seconds=_float(play_cfg.get("resume_epsilon_seconds"), play_defaults.resume_epsilon_seconds),
        completed_sentinel_seconds=_float(
            play_cfg.get("completed_sentinel_seconds"), play_defaults.completed_sentinel_seconds
        ),
    )

    return Settings(
        app_name=os.getenv("CLOUDREEL_APP_NAME", user_cfg.get("app_name", "CloudReel")),
        env=os.getenv("CLOUDREEL_ENV", user_cfg.get("env", "development")),
        log_level=os.getenv("CLOUDREEL_LOG_LEVEL", user_cfg.get("log_level", "INFO")).upper(),
        auth=auth,
        library=library,
        history=history,
        playback=playback,
        http_timeout=_int(os.getenv("CLOUDREEL_HTTP_TIMEOUT") or user_cfg.get("http_timeout"), 20),
        database_path=get_database_path(),
        tokens_dir=get_tokens_dir(),
    )


def get_settings(*, reload: bool = False) -> Settings:
    global _SETTINGS_SINGLETON
    with _SETTINGS_LOCK:
        if _SETTINGS_SINGLETON is None or reload:
            _SETTINGS_SINGLETON = _build_settings()

        return _SETTINGS_SINGLETON


def update_library_roots(
    *,
    root: Optional[str] = None,
    movies_root: Optional[str] = None,
    series_root: Optional[str] = None,
) -> Settings:
    payload = load_user_settings()
    library = dict(_section(payload, "library"))
    if root is not None:
        library["root"] = root
    if movies_root is not None:
        library["movies_root"] = movies_root
    if series_root is not None:
        library["series_root"] = series_root
    payload["library"] = library
    payload["updated_at"] = datetime.now(timezone.utc).isoformat()
    write_user_settings(payload)

    return get_settings(reload=True)


__all__ = [
    "AuthSettings",
    "HistorySettings",
    "LibrarySettings",
    "PlaybackSettings",
    "Settings",
    "get_settings",
    "update_library_roots",
]
