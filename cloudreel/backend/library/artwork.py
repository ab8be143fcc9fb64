"""Lazy lookup of the thumbnail/description files stored next to catalog entries."""

from __future__ import annotations

from typing import Optional, Union

from cloudreel.backend.library.models import FileIndex, Movie, Series
from cloudreel.config.settings import LibrarySettings


class ArtworkResolver:
    """Resolves sibling artwork against the file index on read, never during the build."""

    def __init__(self, index: FileIndex, library: LibrarySettings) -> None:
        self._index = index
        self._thumbnail_name = library.thumbnail_name.lower()
        self._description_name = library.description_name.lower()

    def thumbnail_path(self, item: Union[Movie, Series]) -> Optional[str]:
        if item.thumbnail_path:
            return item.thumbnail_path
        return self._sibling(item.folder_path, self._thumbnail_name)

    def description_path(self, item: Union[Movie, Series]) -> Optional[str]:
        if item.description_path:
            return item.description_path
        return self._sibling(item.folder_path, self._description_name)

    def _sibling(self, folder_path: str, filename: str) -> Optional[str]:
        found = self._index.find_by_path(f"{folder_path}/{filename}")
        return found.display_path if found is not None else None


__all__ = ["ArtworkResolver"]
