from __future__ import annotations

from typing import Optional


class CloudReelError(Exception):
    """Base for all CloudReel exceptions."""


class ConfigError(CloudReelError):
    """Configuration related issues."""


class NetworkError(CloudReelError):
    """Transport level failure talking to the remote store."""


class AuthFailure(CloudReelError):
    """The credential exchange was rejected; no further remote calls are possible."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Remote store requires re-authentication ({reason})")
        self.reason = reason


class ListingFailure(CloudReelError):
    """Enumeration of the remote file tree did not complete."""

    def __init__(self, message: str, *, partial_count: int = 0) -> None:
        super().__init__(message)
        self.partial_count = partial_count


class HistorySyncFailure(CloudReelError):
    """Reading or writing a watch-history copy failed."""


class LocatorFailure(CloudReelError):
    """A streaming locator could not be obtained for a catalog entry."""

    def __init__(self, item_id: str, message: str) -> None:
        super().__init__(message)
        self.item_id = item_id


class MalformedDocument(CloudReelError):
    """A persisted document could not be decoded."""

    def __init__(self, source: str, detail: Optional[str] = None) -> None:
        message = f"Malformed document from {source}"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.source = source


class RemoteFileNotFound(NetworkError):
    """The requested path does not exist in the remote store."""
