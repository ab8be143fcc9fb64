"""Playback surfaces and the session coordinator that drives them."""

from cloudreel.backend.player.controller import (
    Locator,
    NowPlaying,
    PlaybackCoordinator,
    PlaybackState,
)
from cloudreel.backend.player.exceptions import PlayerError, SessionClosed, SurfaceUnavailable
from cloudreel.backend.player.surface import PlaybackSurface, VlcPlaybackSurface

__all__ = [
    "Locator",
    "NowPlaying",
    "PlaybackCoordinator",
    "PlaybackState",
    "PlaybackSurface",
    "PlayerError",
    "SessionClosed",
    "SurfaceUnavailable",
    "VlcPlaybackSurface",
]
