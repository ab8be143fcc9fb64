"""Catalog value objects: the file index and the movie/series view derived from it."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from cloudreel.backend.remote.base import RemoteFile

_NATURAL_SPLIT_RE = re.compile(r"(\d+)")


class EntryKind(str, Enum):
    """Closed classification of a listing entry."""

    MOVIE = "movie"
    EPISODE = "episode"
    UNCLASSIFIED = "unclassified"


def natural_key(text: str) -> Tuple[Tuple[int, int, str], ...]:
    """Sort key ordering ``Season 2`` before ``Season 10``."""

    parts = []
    for chunk in _NATURAL_SPLIT_RE.split(text):
        if not chunk:
            continue
        if chunk.isdigit():
            parts.append((0, int(chunk), ""))
        else:
            parts.append((1, 0, chunk.casefold()))
    return tuple(parts)


class FileIndex(Mapping[str, RemoteFile]):
    """Every file seen by one enumeration pass, keyed by its unique id."""

    def __init__(self, files: Iterable[RemoteFile] = ()) -> None:
        self._by_id: Dict[str, RemoteFile] = {}
        for item in files:
            self._by_id[item.id] = item
        self._by_path: Dict[str, List[RemoteFile]] = {}
        for item in sorted(self._by_id.values(), key=lambda f: f.id):
            self._by_path.setdefault(item.lowercase_path, []).append(item)

    def __getitem__(self, key: str) -> RemoteFile:
        return self._by_id[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._by_id)

    def __len__(self) -> int:
        return len(self._by_id)

    def find_by_path(self, lowercase_path: str) -> Optional[RemoteFile]:
        matches = self._by_path.get(lowercase_path.lower())
        return matches[0] if matches else None

    def to_payload(self) -> List[Dict[str, Any]]:
        return [self._by_id[key].model_dump() for key in sorted(self._by_id)]

    @classmethod
    def from_payload(cls, payload: Sequence[Mapping[str, Any]]) -> "FileIndex":
        return cls(RemoteFile.model_validate(dict(entry)) for entry in payload)


class Movie(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    path: str
    folder_name: str
    display_name: str
    folder_path: str = Field(description="Lowercase folder holding the video and its artwork")
    thumbnail_path: Optional[str] = None
    description_path: Optional[str] = None

    @property
    def kind(self) -> EntryKind:
        return EntryKind.MOVIE


class Episode(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    path: str
    episode_number: Optional[int] = None
    series_name: str
    season_label: str

    @property
    def kind(self) -> EntryKind:
        return EntryKind.EPISODE


class Series(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    seasons: Dict[str, Tuple[Episode, ...]] = Field(default_factory=dict)
    folder_path: str
    thumbnail_path: Optional[str] = None
    description_path: Optional[str] = None

    def season_labels(self) -> List[str]:
        return list(self.seasons.keys())

    def episode_count(self) -> int:
        return sum(len(episodes) for episodes in self.seasons.values())


Playable = Union[Movie, Episode]
CatalogEntry = Union[Movie, Series]


__all__ = [
    "CatalogEntry",
    "EntryKind",
    "Episode",
    "FileIndex",
    "Movie",
    "Playable",
    "Series",
    "natural_key",
]
