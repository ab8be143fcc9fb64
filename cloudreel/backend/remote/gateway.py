"""Async, token-aware facade over a blocking :class:`RemoteStore`."""

from __future__ import annotations

from typing import TYPE_CHECKING, Awaitable, Callable, TypeVar

from cloudreel.backend.common.errors import AuthFailure
from cloudreel.backend.common.logging import get_logger
from cloudreel.backend.common.tasks import run_blocking
from cloudreel.backend.network_handlers.session import Unauthorized
from cloudreel.backend.remote.base import ListingPage, RemoteStore, TemporaryLink

if TYPE_CHECKING:
    from cloudreel.backend.auth.token_manager import TokenManager

T = TypeVar("T")

log = get_logger(__name__)


class RemoteGateway:
    def __init__(self, remote: RemoteStore, tokens: TokenManager) -> None:
        self._remote = remote
        self._tokens = tokens

    @property
    def tokens(self) -> TokenManager:
        return self._tokens

    async def list_folder(self, path: str, *, limit: int = 2000) -> ListingPage:
        return await self._authorized(
            lambda token: run_blocking(self._remote.list_folder, token, path, recursive=True, limit=limit)
        )

    async def list_folder_continue(self, cursor: str) -> ListingPage:
        return await self._authorized(lambda token: run_blocking(self._remote.list_folder_continue, token, cursor))

    async def temporary_link(self, path: str) -> TemporaryLink:
        return await self._authorized(lambda token: run_blocking(self._remote.get_temporary_link, token, path))

    async def download(self, path: str) -> bytes:
        return await self._authorized(lambda token: run_blocking(self._remote.download, token, path))

    async def upload(self, path: str, payload: bytes) -> None:
        await self._authorized(lambda token: run_blocking(self._remote.upload, token, path, payload))

    async def _authorized(self, call: Callable[[str], Awaitable[T]]) -> T:
        credential = await self._tokens.get_valid_token()
        try:
            return await call(credential.access_token)
        except Unauthorized:
            # Token might have been revoked; refresh once and retry.
            log.warning("remote_token_refused")
            self._tokens.invalidate(credential)
            credential = await self._tokens.get_valid_token()
            try:
                return await call(credential.access_token)
            except Unauthorized as exc:
                raise AuthFailure("token_refused") from exc


__all__ = ["RemoteGateway"]
