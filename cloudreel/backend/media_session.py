"""Session-scoped facade: the only entry points the presentation layer calls.

A ``MediaSession`` owns the token manager, the remote gateway, the enumerator, the current
catalog, the watch-history store and (lazily) the playback coordinator. Lifecycle is
``start`` -> any number of calls -> ``teardown``; ``async with`` does both.
"""

from __future__ import annotations

import json
import sqlite3
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from cloudreel.backend.auth.token_manager import TokenManager
from cloudreel.backend.common.errors import (
    AuthFailure,
    ListingFailure,
    LocatorFailure,
    MalformedDocument,
    NetworkError,
)
from cloudreel.backend.common.logging import get_logger
from cloudreel.backend.common.notifications import Notifier
from cloudreel.backend.common.tasks import run_blocking
from cloudreel.backend.common.types import ComponentStatus, HealthReport
from cloudreel.backend.history.models import ProgressRecord
from cloudreel.backend.history.store import WatchHistoryStore
from cloudreel.backend.library.catalog import Catalog, build_catalog
from cloudreel.backend.library.enumerator import RemoteEnumerator
from cloudreel.backend.library.models import Episode, FileIndex
from cloudreel.backend.persistence.sqlite import LocalDocumentStore
from cloudreel.backend.player.controller import NowPlaying, PlaybackCoordinator, PlaybackState
from cloudreel.backend.player.exceptions import PlayerError
from cloudreel.backend.player.surface import PlaybackSurface, VlcPlaybackSurface
from cloudreel.backend.remote.base import RemoteStore
from cloudreel.backend.remote.dropbox import DropboxClient
from cloudreel.backend.remote.gateway import RemoteGateway
from cloudreel.config.settings import Settings, get_settings

log = get_logger(__name__)

SNAPSHOT_KEY = "file_index"
_SOURCE = "session"

SurfaceFactory = Callable[[], PlaybackSurface]


class MediaSession:
    def __init__(
        self,
        settings: Settings,
        remote: RemoteStore,
        local: LocalDocumentStore,
        *,
        surface_factory: Optional[SurfaceFactory] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._notifier = notifier or Notifier()
        self._local = local
        self._surface_factory = surface_factory or VlcPlaybackSurface
        self._clock = clock

        tokens_dir = Path(settings.tokens_dir) if settings.tokens_dir else None
        self.tokens = TokenManager(remote, settings.auth, token_dir=tokens_dir, clock=clock)
        self.gateway = RemoteGateway(remote, self.tokens)
        self.enumerator = RemoteEnumerator(self.gateway, settings.library)
        self.history = WatchHistoryStore(
            self.gateway,
            local,
            settings.history,
            notifier=self._notifier,
            completed_sentinel=settings.playback.completed_sentinel_seconds,
            clock=clock,
        )

        self._catalog = Catalog.empty(settings.library)
        self._catalog_source = "empty"
        self._listing_error: Optional[ListingFailure] = None
        self._auth_failure: Optional[AuthFailure] = None
        self._player: Optional[PlaybackCoordinator] = None
        self._started = False
        self._owns_local = False

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        *,
        surface_factory: Optional[SurfaceFactory] = None,
        notifier: Optional[Notifier] = None,
    ) -> "MediaSession":
        settings = settings or get_settings()
        remote = DropboxClient(timeout=settings.http_timeout)
        local = LocalDocumentStore(Path(settings.database_path) if settings.database_path else None)
        session = cls(settings, remote, local, surface_factory=surface_factory, notifier=notifier)
        session._owns_local = True
        return session

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    @property
    def settings(self) -> Settings:
        return self._settings

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        """Load watch history, then build the first catalog.

        Raises ``AuthFailure`` when the remote store cannot be used at all; history and
        snapshot data loaded from this device stay readable in that case.
        """

        if self._started:
            return
        self._started = True
        await self.history.load()
        await self.refresh_catalog()
        if self.tokens.reauth_required:
            failure = AuthFailure(self.tokens.reauth_reason or "unknown")
            self._escalate(failure)
            raise failure

    async def teardown(self) -> None:
        try:
            if self._player is not None:
                await self._player.shutdown()
        finally:
            self._player = None
            try:
                await self.history.close()
            finally:
                if self._owns_local:
                    self._local.close()
                log.info("session_closed")

    async def __aenter__(self) -> "MediaSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.teardown()

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------
    def get_catalog(self) -> Catalog:
        return self._catalog

    async def refresh_catalog(self) -> bool:
        """Re-enumerate and swap in a new catalog; the previous one survives any failure."""

        try:
            index = await self.enumerator.enumerate_all()
        except ListingFailure as exc:
            self._listing_error = exc
            log.warning("catalog_refresh_failed", extra={"error": str(exc), "partial_count": exc.partial_count})
            self._notifier.warning(_SOURCE, "Library refresh failed; showing the previous catalog.", error=exc)
            if self._catalog_source == "empty":
                await self._restore_snapshot()
            return False
        except AuthFailure as exc:
            self._escalate(exc)
            if self._catalog_source == "empty":
                await self._restore_snapshot()
            raise

        self._catalog = build_catalog(index, self._settings.library)
        self._catalog_source = "remote"
        self._listing_error = None
        log.info(
            "catalog_refreshed",
            extra={"movies": len(self._catalog.movies), "series": len(self._catalog.series), "files": len(index)},
        )
        await self._save_snapshot(index)
        return True

    async def _save_snapshot(self, index: FileIndex) -> None:
        payload = json.dumps(index.to_payload(), ensure_ascii=False)
        try:
            await run_blocking(self._local.write, SNAPSHOT_KEY, payload)
        except (sqlite3.Error, OSError) as exc:
            log.warning("snapshot_write_failed", extra={"error": str(exc)})

    async def _restore_snapshot(self) -> None:
        try:
            raw = await run_blocking(self._local.read, SNAPSHOT_KEY)
        except (sqlite3.Error, OSError) as exc:
            log.warning("snapshot_read_failed", extra={"error": str(exc)})
            return
        if raw is None:
            return
        try:
            payload = json.loads(raw)
            if not isinstance(payload, list):
                raise MalformedDocument("snapshot", "expected a list of files")
            index = FileIndex.from_payload(payload)
        except (TypeError, ValueError, MalformedDocument) as exc:
            log.warning("snapshot_unreadable", extra={"error": str(exc)})
            await self._discard_snapshot()
            return
        self._catalog = build_catalog(index, self._settings.library)
        self._catalog_source = "snapshot"
        log.info("catalog_from_snapshot", extra={"files": len(index)})

    async def _discard_snapshot(self) -> None:
        try:
            await run_blocking(self._local.delete, SNAPSHOT_KEY)
        except (sqlite3.Error, OSError) as exc:
            log.warning("snapshot_delete_failed", extra={"error": str(exc)})

    def get_next_episode(self, item_id: str) -> Optional[Episode]:
        return self._catalog.next_episode(item_id)

    async def get_description(self, entry_id: str) -> Optional[str]:
        """Text of ``description.txt`` for a movie id or a series name."""

        entry = self._catalog.lookup(entry_id) or self._catalog.get_series(entry_id)
        if entry is None or isinstance(entry, Episode):
            return None
        path = self._catalog.description_path(entry)
        if path is None:
            return None
        try:
            raw = await self.gateway.download(path)
        except NetworkError as exc:
            log.warning("description_fetch_failed", extra={"path": path, "error": str(exc)})
            self._notifier.warning(_SOURCE, f"Could not load the description for {entry_id}.", error=exc)
            return None
        return raw.decode("utf-8", errors="replace").strip()

    # ------------------------------------------------------------------
    # Watch history
    # ------------------------------------------------------------------
    def get_progress(self, item_id: str) -> Optional[ProgressRecord]:
        return self.history.get(item_id)

    def remove_from_history(self, item_id: str) -> bool:
        return self.history.remove(item_id)

    def mark_as_complete(self, item_id: str) -> ProgressRecord:
        return self.history.mark_complete(item_id)

    def continue_watching(self, limit: int = 10) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        for item_id, record in self.history.in_progress():
            item = self._catalog.lookup(item_id)
            if item is None:
                continue
            rows.append({"item": item, "progress": record})
            if len(rows) >= limit:
                break
        return rows

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------
    @property
    def player(self) -> Optional[PlaybackCoordinator]:
        return self._player

    def _ensure_player(self) -> PlaybackCoordinator:
        if self._player is None:
            self._player = PlaybackCoordinator(
                self.gateway,
                self.history,
                self.get_catalog,
                self._surface_factory(),
                self._settings.playback,
                notifier=self._notifier,
                clock=self._clock,
            )
        return self._player

    async def play_request(self, item_id: str) -> bool:
        try:
            player = self._ensure_player()
        except PlayerError as exc:
            log.error("surface_unavailable", extra={"error": str(exc)})
            self._notifier.error(_SOURCE, str(exc), error=exc)
            return False
        try:
            await player.play(item_id)
        except LocatorFailure:
            return False
        except AuthFailure as exc:
            self._escalate(exc)
            raise
        return True

    async def pause(self) -> None:
        if self._player is not None:
            await self._player.pause()

    async def resume(self) -> bool:
        if self._player is None:
            return False
        try:
            await self._player.resume()
        except LocatorFailure:
            return False
        except AuthFailure as exc:
            self._escalate(exc)
            raise
        return self._player.state is PlaybackState.PLAYING

    async def seek(self, seconds: float) -> None:
        if self._player is not None:
            await self._player.seek(seconds)

    async def close(self) -> None:
        if self._player is not None:
            await self._player.close()

    def now_playing(self) -> Optional[NowPlaying]:
        return self._player.now_playing() if self._player is not None else None

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def _escalate(self, exc: AuthFailure) -> None:
        if self._auth_failure is None:
            log.error("session_auth_failed", extra={"reason": exc.reason})
            self._notifier.error(_SOURCE, str(exc), error=exc, fatal=True)
        self._auth_failure = exc

    def status(self) -> HealthReport:
        remote: ComponentStatus = "ok"
        if self.tokens.reauth_required or self._auth_failure is not None:
            remote = "fail"
        elif self._listing_error is not None:
            remote = "degraded"

        catalog: ComponentStatus = "ok" if self._catalog_source == "remote" else "degraded"
        history: ComponentStatus = self.history.status()["status"]  # type: ignore[assignment]
        components: Dict[str, ComponentStatus] = {
            "remote": remote,
            "catalog": catalog,
            "history": history,
        }
        if "fail" in components.values():
            overall: ComponentStatus = "fail"
        elif "degraded" in components.values():
            overall = "degraded"
        else:
            overall = "ok"
        return {"status": overall, "components": components}

    def describe(self) -> Dict[str, Any]:
        return {
            **self.status(),
            "tokens": self.tokens.status(),
            "catalog_source": self._catalog_source,
            "catalog_items": len(self._catalog),
            "history": self.history.status(),
            "now_playing": self.now_playing().as_dict() if self.now_playing() else None,
        }


__all__ = ["MediaSession", "SNAPSHOT_KEY", "SurfaceFactory"]
