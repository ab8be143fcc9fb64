"""Remote file store access."""

from cloudreel.backend.remote.base import (
    ListingPage,
    RemoteFile,
    RemoteStore,
    TemporaryLink,
    TokenGrant,
)
from cloudreel.backend.remote.dropbox import DropboxClient
from cloudreel.backend.remote.gateway import RemoteGateway

__all__ = [
    "DropboxClient",
    "ListingPage",
    "RemoteFile",
    "RemoteGateway",
    "RemoteStore",
    "TemporaryLink",
    "TokenGrant",
]
