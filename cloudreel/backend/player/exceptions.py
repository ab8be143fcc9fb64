from __future__ import annotations

"""Exceptions for the player subsystem."""

from cloudreel.backend.common.errors import CloudReelError


class PlayerError(CloudReelError):
    """Top-level error raised by the player subsystem."""


class SurfaceUnavailable(PlayerError):
    """Raised when the playback backend (libVLC) cannot be loaded."""


class SessionClosed(PlayerError):
    """Raised when a control call reaches a coordinator that has been shut down."""
