from __future__ import annotations

import asyncio
import threading
from typing import Callable, Dict, Iterable, Iterator, List, Optional

import pytest

from cloudreel.backend.auth.token_manager import TokenManager
from cloudreel.backend.common.errors import AuthFailure, NetworkError, RemoteFileNotFound
from cloudreel.backend.common.notifications import Notifier
from cloudreel.backend.persistence.sqlite import LocalDocumentStore
from cloudreel.backend.player.surface import PlaybackSurface
from cloudreel.backend.remote.base import ListingPage, RemoteFile, RemoteStore, TemporaryLink, TokenGrant
from cloudreel.backend.remote.gateway import RemoteGateway
from cloudreel.config.settings import (
    AuthSettings,
    HistorySettings,
    LibrarySettings,
    PlaybackSettings,
    Settings,
)


def make_file(display_path: str, file_id: Optional[str] = None, size: int = 100) -> RemoteFile:
    name = display_path.rsplit("/", 1)[-1]
    return RemoteFile(
        id=file_id or f"id:{display_path.lower()}",
        name=name,
        lowercase_path=display_path.lower(),
        display_path=display_path,
        size_bytes=size,
    )


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRemoteStore(RemoteStore):
    """In-memory remote store with failure switches."""

    name = "fake"

    def __init__(self, files: Iterable[RemoteFile] = (), *, page_size: int = 2, token_ttl: int = 14400) -> None:
        self.files: List[RemoteFile] = list(files)
        self.blobs: Dict[str, bytes] = {}
        self.page_size = page_size
        self.token_ttl = token_ttl
        self.exchanges = 0
        self.list_calls = 0
        self.uploads: List[bytes] = []
        self.reject_refresh: Optional[str] = None
        self.fail_listing_after_pages: Optional[int] = None
        self.fail_downloads = False
        self.fail_uploads = 0
        self.fail_links = False
        self.exchange_delay = 0.0
        self._lock = threading.Lock()

    # Auth -------------------------------------------------------------
    def exchange_refresh_token(self, refresh_token: str, app_key: str, app_secret: Optional[str]) -> TokenGrant:
        if self.exchange_delay:
            threading.Event().wait(self.exchange_delay)
        with self._lock:
            if self.reject_refresh:
                raise AuthFailure(self.reject_refresh)
            self.exchanges += 1
            return TokenGrant(access_token=f"token-{self.exchanges}", expires_in=self.token_ttl)

    # Listing ----------------------------------------------------------
    def list_folder(self, access_token: str, path: str, *, recursive: bool = True, limit: int = 2000) -> ListingPage:
        self.list_calls += 1
        return self._page(0)

    def list_folder_continue(self, access_token: str, cursor: str) -> ListingPage:
        return self._page(int(cursor))

    def _page(self, page_number: int) -> ListingPage:
        if self.fail_listing_after_pages is not None and page_number >= self.fail_listing_after_pages:
            raise NetworkError("listing connection reset")
        start = page_number * self.page_size
        chunk = self.files[start:start + self.page_size]
        has_more = start + self.page_size < len(self.files)
        return ListingPage(entries=chunk, cursor=str(page_number + 1) if has_more else None, has_more=has_more)

    # Content ----------------------------------------------------------
    def get_temporary_link(self, access_token: str, path: str) -> TemporaryLink:
        if self.fail_links:
            raise RemoteFileNotFound(path)
        return TemporaryLink(url=f"https://stream.test{path}?t={access_token}", expires_in=14400)

    def download(self, access_token: str, path: str) -> bytes:
        if self.fail_downloads:
            raise NetworkError("download timed out")
        try:
            return self.blobs[path.lower()]
        except KeyError:
            raise RemoteFileNotFound(path) from None

    def upload(self, access_token: str, path: str, payload: bytes) -> None:
        with self._lock:
            if self.fail_uploads:
                self.fail_uploads -= 1
                raise NetworkError("upload failed")
            self.uploads.append(payload)
            self.blobs[path.lower()] = payload


class FakeSurface(PlaybackSurface):
    def __init__(self) -> None:
        super().__init__()
        self.opened: List[tuple] = []
        self.playing = False
        self.current = 0.0
        self.length: Optional[float] = 1200.0
        self.stopped = 0
        self.released = False

    def open(self, url: str, start_at: float = 0.0) -> None:
        self.opened.append((url, start_at))
        self.current = start_at

    def play(self) -> None:
        self.playing = True

    def pause(self) -> None:
        self.playing = False

    def seek(self, seconds: float) -> None:
        self.current = seconds

    def position(self) -> float:
        return self.current

    def duration(self) -> Optional[float]:
        return self.length

    def stop(self) -> None:
        self.playing = False
        self.stopped += 1

    def release(self) -> None:
        self.released = True

    def finish(self) -> None:
        self.current = self.length or self.current
        self._emit_end()


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0, step: float = 0.01) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(step)


LIBRARY_FILES = [
    make_file("/movies/Alpha/alpha.mp4", "id:alpha"),
    make_file("/movies/Alpha/thumbnail.jpg", "id:alpha-thumb"),
    make_file("/movies/Alpha/description.txt", "id:alpha-desc"),
    make_file("/series/Beta/Season 1/S01E01.mp4", "id:b101"),
    make_file("/series/Beta/Season 1/S01E02.mp4", "id:b102"),
    make_file("/series/Beta/Season 2/S02E01.mp4", "id:b201"),
]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def library_settings() -> LibrarySettings:
    return LibrarySettings()


@pytest.fixture
def history_settings() -> HistorySettings:
    return HistorySettings(flush_interval_seconds=0.2, retry_backoff_seconds=(0.0, 0.0))


@pytest.fixture
def playback_settings() -> PlaybackSettings:
    return PlaybackSettings(progress_interval_seconds=0.05, resume_epsilon_seconds=10.0)


@pytest.fixture
def auth_settings() -> AuthSettings:
    return AuthSettings(app_key="app-key", app_secret="app-secret", refresh_token="refresh")


@pytest.fixture
def settings(tmp_path, auth_settings, library_settings, history_settings, playback_settings) -> Settings:
    return Settings(
        auth=auth_settings,
        library=library_settings,
        history=history_settings,
        playback=playback_settings,
        database_path=tmp_path / "cloudreel.db",
        tokens_dir=tmp_path / "tokens",
    )


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore(LIBRARY_FILES)


@pytest.fixture
def local_store(tmp_path) -> Iterator[LocalDocumentStore]:
    store = LocalDocumentStore(tmp_path / "local.db")
    yield store
    store.close()


@pytest.fixture
def notifier() -> Notifier:
    return Notifier()


@pytest.fixture
def tokens(remote, auth_settings, clock) -> TokenManager:
    return TokenManager(remote, auth_settings, clock=clock)


@pytest.fixture
def gateway(remote, tokens) -> RemoteGateway:
    return RemoteGateway(remote, tokens)
