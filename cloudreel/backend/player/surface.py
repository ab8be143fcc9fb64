"""Playback surfaces: the thing that actually renders a stream."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, Optional

from cloudreel.backend.common.logging import get_logger
from cloudreel.backend.player.exceptions import PlayerError, SurfaceUnavailable

log = get_logger(__name__)

EndCallback = Callable[[], None]


class PlaybackSurface(ABC):
    """Minimal media-player contract the coordinator drives.

    Positions and durations are in seconds. ``duration`` returns ``None`` while the
    backend does not know the length yet. The end-of-media callback is invoked on the
    event loop thread.
    """

    def __init__(self) -> None:
        self._on_end: Optional[EndCallback] = None

    def set_end_callback(self, callback: Optional[EndCallback]) -> None:
        self._on_end = callback

    def _emit_end(self) -> None:
        if self._on_end is not None:
            self._on_end()

    @abstractmethod
    def open(self, url: str, start_at: float = 0.0) -> None: ...

    @abstractmethod
    def play(self) -> None: ...

    @abstractmethod
    def pause(self) -> None: ...

    @abstractmethod
    def seek(self, seconds: float) -> None: ...

    @abstractmethod
    def position(self) -> float: ...

    @abstractmethod
    def duration(self) -> Optional[float]: ...

    @abstractmethod
    def stop(self) -> None:
        """Stop the current media; the surface can be reopened afterwards."""

    @abstractmethod
    def release(self) -> None:
        """Free the backend for good."""


class VlcPlaybackSurface(PlaybackSurface):
    """libVLC-backed surface (``python-vlc``)."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None, *vlc_args: str) -> None:
        super().__init__()
        try:
            import vlc  # type: ignore
        except Exception as exc:  # noqa: BLE001 - libvlc missing raises OSError/NameError too
            raise SurfaceUnavailable(f"python-vlc import failed: {exc}") from exc
        self._vlc = vlc
        self._loop = loop or asyncio.get_event_loop()
        self._instance = vlc.Instance(*vlc_args)
        self._player = self._instance.media_player_new()
        self._pending_start: float = 0.0
        self._event_manager = self._player.event_manager()
        self._event_manager.event_attach(vlc.EventType.MediaPlayerEndReached, self._handle_end)
        self._event_manager.event_attach(vlc.EventType.MediaPlayerPlaying, self._handle_playing)

    def open(self, url: str, start_at: float = 0.0) -> None:
        media = self._instance.media_new(url)
        if media is None:
            raise PlayerError(f"VLC could not open {url}")
        self._player.set_media(media)
        self._pending_start = max(0.0, start_at)

    def play(self) -> None:
        if self._player.play() == -1:
            raise PlayerError("VLC refused to start playback")

    def pause(self) -> None:
        self._player.set_pause(1)

    def seek(self, seconds: float) -> None:
        self._player.set_time(int(max(0.0, seconds) * 1000))

    def position(self) -> float:
        return max(self._player.get_time(), 0) / 1000.0

    def duration(self) -> Optional[float]:
        length = self._player.get_length()
        return length / 1000.0 if length and length > 0 else None

    def stop(self) -> None:
        self._pending_start = 0.0
        self._player.stop()

    def release(self) -> None:
        self._event_manager.event_detach(self._vlc.EventType.MediaPlayerEndReached)
        self._event_manager.event_detach(self._vlc.EventType.MediaPlayerPlaying)
        self._player.stop()
        self._player.release()
        self._instance.release()

    # libVLC callbacks run on a VLC thread; hop back to the loop.
    def _handle_end(self, event) -> None:  # noqa: ANN001
        self._loop.call_soon_threadsafe(self._emit_end)

    def _handle_playing(self, event) -> None:  # noqa: ANN001
        if self._pending_start > 0:
            start, self._pending_start = self._pending_start, 0.0
            self._player.set_time(int(start * 1000))
        log.debug("vlc_playing")


__all__ = ["EndCallback", "PlaybackSurface", "VlcPlaybackSurface"]
