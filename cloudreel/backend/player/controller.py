from __future__ import annotations

"""Playback session coordination: locator resolution, resume and progress commits."""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from cloudreel.backend.common.errors import AuthFailure, LocatorFailure, MalformedDocument, NetworkError
from cloudreel.backend.common.logging import get_logger
from cloudreel.backend.common.notifications import Notifier
from cloudreel.backend.history.store import WatchHistoryStore
from cloudreel.backend.library.catalog import Catalog
from cloudreel.backend.library.models import Episode, Playable
from cloudreel.backend.player.exceptions import PlayerError, SessionClosed
from cloudreel.backend.player.surface import PlaybackSurface
from cloudreel.backend.remote.gateway import RemoteGateway
from cloudreel.config.settings import PlaybackSettings

log = get_logger(__name__)

_SOURCE = "player"
# Re-resolve a link this many seconds before the store says it lapses.
_LEASE_MARGIN = 60.0


class PlaybackState(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"
    CLOSED = "closed"


@dataclass(frozen=True)
class Locator:
    """Time-boxed streaming URL for one catalog entry."""

    item_id: str
    url: str
    expires_at: float

    def is_expired(self, now_ts: float, *, margin: float = _LEASE_MARGIN) -> bool:
        return now_ts >= self.expires_at - margin


@dataclass
class NowPlaying:
    item_id: str
    title: str
    kind: str
    state: PlaybackState
    position: float = 0.0
    duration: Optional[float] = None
    started_at: float = field(default_factory=time.time)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "title": self.title,
            "kind": self.kind,
            "state": self.state.value,
            "position": self.position,
            "duration": self.duration,
        }


CatalogProvider = Callable[[], Catalog]


class PlaybackCoordinator:
    """Drives one playback surface through ``Idle -> Resolving -> Playing <-> Paused``.

    Progress is committed to the watch-history store every ``progress_interval_seconds``
    while playing and on every transition. Natural end of media marks the item complete
    and, for episodes, moves straight on to the next one.
    """

    def __init__(
        self,
        gateway: RemoteGateway,
        history: WatchHistoryStore,
        catalog: CatalogProvider,
        surface: PlaybackSurface,
        settings: PlaybackSettings,
        *,
        notifier: Optional[Notifier] = None,
        auto_play_next: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._gateway = gateway
        self._history = history
        self._catalog = catalog
        self._surface = surface
        self._settings = settings
        self._notifier = notifier or Notifier()
        self._auto_play_next = auto_play_next
        self._clock = clock

        self._state = PlaybackState.IDLE
        self._item: Optional[Playable] = None
        self._locator: Optional[Locator] = None
        self._ticker: Optional[asyncio.Task[None]] = None
        self._end_task: Optional[asyncio.Task[None]] = None
        self._lock = asyncio.Lock()
        self._shut_down = False
        self._surface.set_end_callback(self._on_end_reached)

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------
    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def current_item_id(self) -> Optional[str]:
        return self._item.id if self._item is not None else None

    @property
    def locator(self) -> Optional[Locator]:
        return self._locator

    def now_playing(self) -> Optional[NowPlaying]:
        item = self._item
        if item is None:
            return None
        active = self._state in (PlaybackState.PLAYING, PlaybackState.PAUSED)
        return NowPlaying(
            item_id=item.id,
            title=item.name,
            kind=item.kind.value,
            state=self._state,
            position=self._surface.position() if active else 0.0,
            duration=self._surface.duration() if active else None,
        )

    def next_item(self, item_id: str) -> Optional[Episode]:
        return self._catalog().next_episode(item_id)

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------
    async def play(self, item_id: str) -> None:
        """Start ``item_id``; raises ``LocatorFailure`` after returning to idle."""

        async with self._lock:
            self._ensure_open()
            await self._leave_current()
            await self._start(item_id)

    async def pause(self) -> None:
        async with self._lock:
            if self._state is not PlaybackState.PLAYING:
                return
            self._surface.pause()
            self._commit()
            self._transition(PlaybackState.PAUSED)

    async def resume(self) -> None:
        async with self._lock:
            if self._state is not PlaybackState.PAUSED or self._item is None:
                return
            locator = self._locator
            if locator is None or locator.is_expired(self._clock()):
                position = self._surface.position()
                self._transition(PlaybackState.RESOLVING)
                try:
                    locator = await self._resolve(self._item)
                except (LocatorFailure, AuthFailure):
                    await self._abort_to_idle()
                    raise
                self._locator = locator
                self._surface.open(locator.url, start_at=position)
                log.info("locator_renewed", extra={"item_id": self._item.id})
            self._surface.play()
            self._transition(PlaybackState.PLAYING)
            self._commit()

    async def seek(self, seconds: float) -> None:
        async with self._lock:
            if self._state not in (PlaybackState.PLAYING, PlaybackState.PAUSED):
                return
            target = max(0.0, float(seconds))
            duration = self._current_duration()
            if duration is not None:
                target = min(target, duration)
            self._surface.seek(target)
            self._commit(position=target)

    async def close(self) -> None:
        """Commit progress and release the current media on every exit path."""

        async with self._lock:
            await self._leave_current()
            if self._state is not PlaybackState.IDLE or self._item is not None:
                self._item = None
                self._locator = None
                self._transition(PlaybackState.CLOSED)

    async def shutdown(self) -> None:
        try:
            await self.close()
        finally:
            self._shut_down = True
            end_task = self._end_task
            if end_task is not None and not end_task.done():
                end_task.cancel()
                try:
                    await end_task
                except asyncio.CancelledError:
                    pass
            self._surface.set_end_callback(None)
            self._surface.release()

    async def __aenter__(self) -> "PlaybackCoordinator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.shutdown()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _ensure_open(self) -> None:
        if self._shut_down:
            raise SessionClosed("Playback coordinator has been shut down")

    async def _start(self, item_id: str) -> None:
        catalog = self._catalog()
        item = catalog.lookup(item_id)
        if item is None:
            await self._abort_to_idle()
            failure = LocatorFailure(item_id, f"{item_id} is not in the catalog")
            self._report_locator_failure(failure)
            raise failure

        self._item = item
        self._transition(PlaybackState.RESOLVING)
        try:
            locator = await self._resolve(item)
        except (LocatorFailure, AuthFailure):
            await self._abort_to_idle()
            raise

        self._locator = locator
        start_at = self._resume_position(item.id)
        try:
            self._surface.open(locator.url, start_at=start_at)
            self._surface.play()
        except PlayerError as exc:
            failure = LocatorFailure(item.id, f"Playback could not start: {exc}")
            self._report_locator_failure(failure)
            await self._abort_to_idle()
            raise failure from exc

        self._transition(PlaybackState.PLAYING)
        self._start_ticker()
        log.info("playback_started", extra={"item_id": item.id, "start_at": start_at})

    async def _resolve(self, item: Playable) -> Locator:
        try:
            link = await self._gateway.temporary_link(item.path)
        except (NetworkError, MalformedDocument) as exc:
            failure = LocatorFailure(item.id, f"Could not get a stream link for {item.name}: {exc}")
            self._report_locator_failure(failure)
            raise failure from exc
        return Locator(item_id=item.id, url=link.url, expires_at=self._clock() + link.expires_in)

    def _resume_position(self, item_id: str) -> float:
        record = self._history.get(item_id)
        if record is None or record.position <= 0:
            return 0.0
        if record.duration > 0 and record.position >= record.duration - self._settings.resume_epsilon_seconds:
            # Close enough to the end to count as watched; start over.
            return 0.0
        return record.position

    def _current_duration(self) -> Optional[float]:
        duration = self._surface.duration()
        if duration:
            return duration
        if self._item is not None:
            record = self._history.get(self._item.id)
            if record is not None and record.duration > 0:
                return record.duration
        return None

    def _commit(self, *, position: Optional[float] = None) -> None:
        item = self._item
        if item is None:
            return
        duration = self._current_duration()
        if duration is None:
            log.debug("progress_skip_unknown_duration", extra={"item_id": item.id})
            return
        current = self._surface.position() if position is None else position
        self._history.set(item.id, current, duration)

    async def _leave_current(self) -> None:
        try:
            if self._state in (PlaybackState.PLAYING, PlaybackState.PAUSED):
                self._commit()
        finally:
            await self._stop_ticker()
            if self._state in (PlaybackState.PLAYING, PlaybackState.PAUSED, PlaybackState.RESOLVING):
                self._surface.stop()

    async def _abort_to_idle(self) -> None:
        await self._stop_ticker()
        self._surface.stop()
        self._item = None
        self._locator = None
        self._transition(PlaybackState.IDLE)

    def _report_locator_failure(self, failure: LocatorFailure) -> None:
        log.warning("locator_failed", extra={"item_id": failure.item_id, "error": str(failure)})
        self._notifier.warning(_SOURCE, str(failure), error=failure)

    def _transition(self, state: PlaybackState) -> None:
        if state is self._state:
            return
        log.debug(
            "playback_transition",
            extra={"from": self._state.value, "to": state.value, "item_id": self.current_item_id},
        )
        self._state = state

    # Periodic commits -------------------------------------------------
    def _start_ticker(self) -> None:
        self._ticker = asyncio.get_running_loop().create_task(self._tick(), name="progress-ticker")

    async def _stop_ticker(self) -> None:
        ticker, self._ticker = self._ticker, None
        if ticker is None or ticker.done():
            return
        ticker.cancel()
        try:
            await ticker
        except asyncio.CancelledError:
            pass

    async def _tick(self) -> None:
        interval = self._settings.progress_interval_seconds
        while True:
            await asyncio.sleep(interval)
            if self._state is not PlaybackState.PLAYING:
                continue
            try:
                self._commit()
            except PlayerError as exc:
                log.warning("progress_commit_failed", extra={"error": str(exc)})

    # End of media -----------------------------------------------------
    def _on_end_reached(self) -> None:
        if self._shut_down:
            return
        self._end_task = asyncio.get_running_loop().create_task(self._handle_end(), name="playback-end")

    async def _handle_end(self) -> None:
        async with self._lock:
            item = self._item
            if item is None or self._state not in (PlaybackState.PLAYING, PlaybackState.PAUSED):
                return
            await self._stop_ticker()
            self._history.mark_complete(item.id)
            self._transition(PlaybackState.ENDED)
            log.info("playback_ended", extra={"item_id": item.id})

            upcoming = self.next_item(item.id) if self._auto_play_next else None
            if upcoming is None:
                self._surface.stop()
                self._item = None
                self._locator = None
                self._transition(PlaybackState.CLOSED)
                return
            try:
                await self._start(upcoming.id)
            except LocatorFailure:
                # Already reported; the coordinator is back to idle.
                return
            except AuthFailure as exc:
                log.error("auto_play_auth_failed", extra={"reason": exc.reason})
                self._notifier.error(_SOURCE, str(exc), error=exc, fatal=True)


__all__ = [
    "CatalogProvider",
    "Locator",
    "NowPlaying",
    "PlaybackCoordinator",
    "PlaybackState",
]
