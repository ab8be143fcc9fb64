"""Paginated enumeration of the remote file tree."""

from __future__ import annotations

import asyncio
from typing import Dict

from cloudreel.backend.common.errors import AuthFailure, ListingFailure, MalformedDocument, NetworkError
from cloudreel.backend.common.logging import get_logger
from cloudreel.backend.library.models import FileIndex
from cloudreel.backend.remote.base import RemoteFile
from cloudreel.backend.remote.gateway import RemoteGateway
from cloudreel.config.settings import LibrarySettings

log = get_logger(__name__)


class RemoteEnumerator:
    """Builds a complete :class:`FileIndex` from the listing API.

    Runs are serialized: a second ``enumerate_all`` waits for the first to finish and
    then performs its own fresh listing, so pages of two runs never mix. A run that
    fails part way raises ``ListingFailure`` and its partial pages are dropped.
    """

    def __init__(self, gateway: RemoteGateway, library: LibrarySettings) -> None:
        self._gateway = gateway
        self._library = library
        self._lock = asyncio.Lock()
        self._runs = 0

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def enumerate_all(self) -> FileIndex:
        async with self._lock:
            self._runs += 1
            return await self._enumerate(self._runs)

    async def _enumerate(self, run: int) -> FileIndex:
        files: Dict[str, RemoteFile] = {}
        pages = 0
        root = self._library.root
        log.info("listing_start", extra={"run": run, "root": root or "/"})
        try:
            page = await self._gateway.list_folder(root, limit=self._library.page_limit)
            while True:
                pages += 1
                for entry in page.entries:
                    files[entry.id] = entry
                if not page.has_more:
                    break
                page = await self._gateway.list_folder_continue(page.cursor or "")
        except AuthFailure:
            raise
        except (NetworkError, MalformedDocument) as exc:
            log.warning(
                "listing_interrupted",
                extra={"run": run, "pages": pages, "partial_count": len(files), "error": str(exc)},
            )
            raise ListingFailure(f"Listing interrupted after {pages} page(s): {exc}", partial_count=len(files)) from exc

        log.info("listing_done", extra={"run": run, "pages": pages, "files": len(files)})
        return FileIndex(files.values())


__all__ = ["RemoteEnumerator"]
