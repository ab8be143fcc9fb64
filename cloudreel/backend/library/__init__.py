"""Remote library enumeration and catalog construction."""

from cloudreel.backend.library.catalog import Catalog, build_catalog, classify
from cloudreel.backend.library.enumerator import RemoteEnumerator
from cloudreel.backend.library.models import EntryKind, Episode, FileIndex, Movie, Series

__all__ = [
    "Catalog",
    "EntryKind",
    "Episode",
    "FileIndex",
    "Movie",
    "RemoteEnumerator",
    "Series",
    "build_catalog",
    "classify",
]
