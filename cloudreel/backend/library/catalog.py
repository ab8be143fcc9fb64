"""Fold a flat file index into the movie/series catalog.

``build_catalog`` is a pure function of its inputs: the same file index always yields
the same catalog no matter the order the listing produced the files in. Movies are flat
records named after their folder; series are grouped by ``(show folder, season folder)``
and episodes ordered by the number parsed from the filename.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from cloudreel.backend.common.logging import get_logger
from cloudreel.backend.library.artwork import ArtworkResolver
from cloudreel.backend.library.filename_parser import (
    clean_title,
    parse_episode_name,
    parse_season_label,
    strip_extension,
)
from cloudreel.backend.library.models import (
    EntryKind,
    Episode,
    FileIndex,
    Movie,
    Playable,
    Series,
    natural_key,
)
from cloudreel.backend.remote.base import RemoteFile
from cloudreel.config.settings import LibrarySettings

log = get_logger(__name__)

_DEFAULT_SEASON = "Season 1"


@dataclass(frozen=True)
class Classification:
    kind: EntryKind
    relative_parts: Tuple[str, ...] = ()
    category_path: str = ""


UNCLASSIFIED = Classification(kind=EntryKind.UNCLASSIFIED)


def classify(item: RemoteFile, library: LibrarySettings) -> Classification:
    """Place a listing entry under the movies root, the series root, or nowhere."""

    if item.extension not in library.video_extensions:
        return UNCLASSIFIED

    for kind, prefix in ((EntryKind.MOVIE, library.movies_prefix), (EntryKind.EPISODE, library.series_prefix)):
        if not prefix or not item.lowercase_path.startswith(prefix + "/"):
            continue
        depth = prefix.count("/")
        display_parts = item.display_path.split("/")[depth + 1:]
        if not display_parts:
            return UNCLASSIFIED
        if kind is EntryKind.EPISODE and len(display_parts) < 2:
            # A video sitting directly in the series root belongs to no show.
            return UNCLASSIFIED
        if kind is EntryKind.MOVIE and len(display_parts) > 2:
            # Extras and other subfolders inside a movie folder are not movies.
            return UNCLASSIFIED
        return Classification(kind=kind, relative_parts=tuple(display_parts), category_path=prefix)

    return UNCLASSIFIED


class Catalog:
    """Read-only movie/series view plus the lookups playback needs."""

    def __init__(
        self,
        movies: Iterable[Movie],
        series: Iterable[Series],
        index: FileIndex,
        library: LibrarySettings,
    ) -> None:
        self.movies: Tuple[Movie, ...] = tuple(movies)
        self.series: Tuple[Series, ...] = tuple(series)
        self.index = index
        self._artwork = ArtworkResolver(index, library)
        self._movies_by_id: Dict[str, Movie] = {movie.id: movie for movie in self.movies}
        self._series_by_name: Dict[str, Series] = {show.name: show for show in self.series}
        self._episodes_by_id: Dict[str, Episode] = {}
        for show in self.series:
            for episodes in show.seasons.values():
                for episode in episodes:
                    self._episodes_by_id[episode.id] = episode

    @classmethod
    def empty(cls, library: LibrarySettings) -> "Catalog":
        return cls((), (), FileIndex(), library)

    def __len__(self) -> int:
        return len(self._movies_by_id) + len(self._episodes_by_id)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def lookup(self, item_id: str) -> Optional[Playable]:
        return self._movies_by_id.get(item_id) or self._episodes_by_id.get(item_id)

    def kind_of(self, item_id: str) -> EntryKind:
        if item_id in self._movies_by_id:
            return EntryKind.MOVIE
        if item_id in self._episodes_by_id:
            return EntryKind.EPISODE
        return EntryKind.UNCLASSIFIED

    def is_episode(self, item_id: str) -> bool:
        return item_id in self._episodes_by_id

    def get_series(self, name: str) -> Optional[Series]:
        return self._series_by_name.get(name)

    def episodes_in_order(self, series_name: str, season_label: str) -> List[Episode]:
        show = self._series_by_name.get(series_name)
        if show is None:
            return []
        return list(show.seasons.get(season_label, ()))

    def next_episode(self, item_id: str) -> Optional[Episode]:
        """The episode after ``item_id``: same season first, then the next season's first."""

        episode = self._episodes_by_id.get(item_id)
        if episode is None:
            return None
        show = self._series_by_name[episode.series_name]
        labels = show.season_labels()
        season_index = labels.index(episode.season_label)
        current = show.seasons[episode.season_label]
        position = next(i for i, candidate in enumerate(current) if candidate.id == item_id)
        if position + 1 < len(current):
            return current[position + 1]
        for label in labels[season_index + 1:]:
            if show.seasons[label]:
                return show.seasons[label][0]
        return None

    # ------------------------------------------------------------------
    # Artwork (resolved on read)
    # ------------------------------------------------------------------
    def thumbnail_path(self, item: Union[Movie, Series]) -> Optional[str]:
        return self._artwork.thumbnail_path(item)

    def description_path(self, item: Union[Movie, Series]) -> Optional[str]:
        return self._artwork.description_path(item)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "movies": [
                {**movie.model_dump(), "thumbnail_path": self.thumbnail_path(movie)} for movie in self.movies
            ],
            "series": [
                {
                    "name": show.name,
                    "thumbnail_path": self.thumbnail_path(show),
                    "seasons": {
                        label: [episode.model_dump() for episode in episodes]
                        for label, episodes in show.seasons.items()
                    },
                }
                for show in self.series
            ],
        }


def build_catalog(index: FileIndex, library: LibrarySettings) -> Catalog:
    movies: List[Movie] = []
    # show key -> season key -> episodes; display names chosen deterministically below
    shows: Dict[str, Dict[str, List[Episode]]] = {}
    show_names: Dict[str, str] = {}
    show_folders: Dict[str, str] = {}
    season_names: Dict[Tuple[str, str], str] = {}
    pending: List[Tuple[str, str, RemoteFile, Optional[int]]] = []

    for file_id in sorted(index):
        item = index[file_id]
        placement = classify(item, library)
        if placement.kind is EntryKind.MOVIE:
            movies.append(_movie_from(item, placement))
        elif placement.kind is EntryKind.EPISODE:
            parts = placement.relative_parts
            parsed = parse_episode_name(item.name)
            show_display = parts[0]
            if len(parts) >= 3:
                season_display = parts[1]
            elif parsed.season is not None:
                season_display = f"Season {parsed.season}"
            else:
                season_display = _DEFAULT_SEASON
            show_key = show_display.casefold()
            season_key = season_display.casefold()
            show_names[show_key] = min(show_names.get(show_key, show_display), show_display)
            show_folders.setdefault(show_key, f"{placement.category_path}/{show_display.lower()}")
            season_names[(show_key, season_key)] = min(
                season_names.get((show_key, season_key), season_display), season_display
            )
            pending.append((show_key, season_key, item, parsed.episode))

    for show_key, season_key, item, number in pending:
        episode = Episode(
            id=item.id,
            name=item.name,
            path=item.display_path,
            episode_number=number,
            series_name=show_names[show_key],
            season_label=season_names[(show_key, season_key)],
        )
        shows.setdefault(show_key, {}).setdefault(season_key, []).append(episode)

    series: List[Series] = []
    for show_key, seasons in shows.items():
        ordered_keys = sorted(seasons, key=lambda key: _season_sort_key(season_names[(show_key, key)]))
        series.append(
            Series(
                name=show_names[show_key],
                seasons={
                    season_names[(show_key, key)]: tuple(sorted(seasons[key], key=_episode_sort_key))
                    for key in ordered_keys
                },
                folder_path=show_folders[show_key],
            )
        )

    movies.sort(key=lambda movie: (movie.display_name.casefold(), movie.path.casefold(), movie.id))
    series.sort(key=lambda show: (natural_key(show.name), show.name))

    log.debug("catalog_built", extra={"movies": len(movies), "series": len(series), "files": len(index)})
    return Catalog(movies, series, index, library)


def _movie_from(item: RemoteFile, placement: Classification) -> Movie:
    parts = placement.relative_parts
    if len(parts) >= 2:
        folder_name = parts[-2]
    else:
        folder_name = strip_extension(item.name)

    return Movie(
        id=item.id,
        name=item.name,
        path=item.display_path,
        folder_name=folder_name,
        display_name=clean_title(folder_name) or folder_name,
        folder_path=item.parent_lowercase_path,
    )


def _season_sort_key(label: str) -> Tuple[Any, ...]:
    number = parse_season_label(label)
    # Numbered seasons in numeric order, then anything else naturally.
    if number is not None:
        return (0, number, natural_key(label), label)
    return (1, 0, natural_key(label), label)


def _episode_sort_key(episode: Episode) -> Tuple[Any, ...]:
    if episode.episode_number is not None:
        return (0, episode.episode_number, episode.name.casefold(), episode.id)
    return (1, 0, episode.name.casefold(), episode.id)


__all__ = ["Catalog", "Classification", "build_catalog", "classify"]
