from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from .paths import get_user_settings_path

DEFAULT_VIDEO_EXTENSIONS: Tuple[str, ...] = (".mp4", ".mkv", ".webm", ".avi", ".mov", ".m4v")


def normalize_remote_root(value: Optional[str]) -> str:
    """Normalize a remote folder to ``/lower/case`` form; the store root is ``""``."""

    text = (value or "").strip().replace("\\", "/")
    parts = [part for part in text.split("/") if part]
    if not parts:
        return ""
    return "/" + "/".join(parts).lower()


def normalize_extensions(values: Iterable[str]) -> Tuple[str, ...]:
    result = []
    for value in values:
        ext = str(value).strip().lower()
        if not ext:
            continue
        if not ext.startswith("."):
            ext = "." + ext
        if ext not in result:
            result.append(ext)
    return tuple(result)


def ensure_parent(path: Path) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        pass


def load_user_settings() -> Dict[str, Any]:
    user_path = get_user_settings_path()
    if not user_path.exists():
        return {}
    try:
        with user_path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def write_user_settings(payload: Mapping[str, Any]) -> None:
    user_path = get_user_settings_path()
    ensure_parent(user_path)
    with user_path.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, ensure_ascii=False, sort_keys=True)


@dataclass
class LibrarySettings:
    root: str = ""
    movies_root: str = "/movies"
    series_root: str = "/series"
    video_extensions: Tuple[str, ...] = DEFAULT_VIDEO_EXTENSIONS
    thumbnail_name: str = "thumbnail.jpg"
    description_name: str = "description.txt"
    page_limit: int = 2000

    def __post_init__(self) -> None:
        self.root = normalize_remote_root(self.root)
        self.movies_root = normalize_remote_root(self.movies_root)
        self.series_root = normalize_remote_root(self.series_root)
        self.video_extensions = normalize_extensions(self.video_extensions)

    @property
    def movies_prefix(self) -> str:
        return self._under_root(self.movies_root)

    @property
    def series_prefix(self) -> str:
        return self._under_root(self.series_root)

    def _under_root(self, folder: str) -> str:
        # Category folders may be given absolute or relative to the listing root.
        if not self.root or folder == self.root or folder.startswith(self.root + "/"):
            return folder
        return self.root + folder

    def as_dict(self) -> Dict[str, Any]:
        return {
            "root": self.root,
            "movies_root": self.movies_root,
            "series_root": self.series_root,
            "video_extensions": list(self.video_extensions),
            "thumbnail_name": self.thumbnail_name,
            "description_name": self.description_name,
            "page_limit": self.page_limit,
        }


@dataclass
class HistorySettings:
    remote_path: str = "/watch_history.json"
    local_key: str = "watch_history"
    flush_interval_seconds: float = 3.0
    retry_backoff_seconds: Tuple[float, ...] = field(default=(1.0, 2.0, 4.0))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "remote_path": self.remote_path,
            "local_key": self.local_key,
            "flush_interval_seconds": self.flush_interval_seconds,
            "retry_backoff_seconds": list(self.retry_backoff_seconds),
        }


@dataclass
class PlaybackSettings:
    progress_interval_seconds: float = 3.0
    resume_epsilon_seconds: float = 10.0
    completed_sentinel_seconds: float = 1.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "progress_interval_seconds": self.progress_interval_seconds,
            "resume_epsilon_seconds": self.resume_epsilon_seconds,
            "completed_sentinel_seconds": self.completed_sentinel_seconds,
        }


__all__ = [
    "DEFAULT_VIDEO_EXTENSIONS",
    "HistorySettings",
    "LibrarySettings",
    "PlaybackSettings",
    "ensure_parent",
    "load_user_settings",
    "normalize_extensions",
    "normalize_remote_root",
    "write_user_settings",
]
