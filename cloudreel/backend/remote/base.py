"""Remote store contract and the value objects it exchanges."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field


class RemoteFile(BaseModel):
    """Immutable snapshot of one listing entry."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    lowercase_path: str
    display_path: str
    size_bytes: int = Field(default=0, ge=0)

    @property
    def extension(self) -> str:
        dot = self.name.rfind(".")
        return self.name[dot:].lower() if dot > 0 else ""

    @property
    def parent_lowercase_path(self) -> str:
        return self.lowercase_path.rsplit("/", 1)[0]


class ListingPage(BaseModel):
    entries: Sequence[RemoteFile] = Field(default_factory=list)
    cursor: Optional[str] = None
    has_more: bool = False


class TokenGrant(BaseModel):
    access_token: str
    expires_in: int = Field(ge=0)
    token_type: str = "bearer"


class TemporaryLink(BaseModel):
    url: str
    expires_in: int = Field(ge=0)


class RemoteStore(ABC):
    """Blocking client for the cloud file store.

    Implementations raise ``NetworkError`` subclasses for transport failures,
    ``RemoteFileNotFound`` for missing paths, ``AuthFailure`` when the refresh grant is
    rejected, and ``session.Unauthorized`` when an access token is refused.
    """

    name: str = "remote"

    @abstractmethod
    def exchange_refresh_token(self, refresh_token: str, app_key: str, app_secret: Optional[str]) -> TokenGrant:
        raise NotImplementedError

    @abstractmethod
    def list_folder(self, access_token: str, path: str, *, recursive: bool = True, limit: int = 2000) -> ListingPage:
        raise NotImplementedError

    @abstractmethod
    def list_folder_continue(self, access_token: str, cursor: str) -> ListingPage:
        raise NotImplementedError

    @abstractmethod
    def get_temporary_link(self, access_token: str, path: str) -> TemporaryLink:
        raise NotImplementedError

    @abstractmethod
    def download(self, access_token: str, path: str) -> bytes:
        raise NotImplementedError

    @abstractmethod
    def upload(self, access_token: str, path: str, payload: bytes) -> None:
        raise NotImplementedError


__all__ = ["ListingPage", "RemoteFile", "RemoteStore", "TemporaryLink", "TokenGrant"]
