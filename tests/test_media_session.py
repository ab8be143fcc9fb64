import json

import pytest

from cloudreel.backend.common.errors import AuthFailure
from cloudreel.backend.media_session import SNAPSHOT_KEY, MediaSession
from cloudreel.backend.persistence.sqlite import LocalDocumentStore
from cloudreel.backend.player.controller import PlaybackState

from .conftest import LIBRARY_FILES, FakeRemoteStore, FakeSurface


def _session(settings, remote, local_store, notifier, clock, surface=None):
    surface = surface or FakeSurface()
    return MediaSession(
        settings,
        remote,
        local_store,
        surface_factory=lambda: surface,
        notifier=notifier,
        clock=clock,
    )


@pytest.fixture
def session(settings, remote, local_store, notifier, clock):
    return _session(settings, remote, local_store, notifier, clock)


@pytest.mark.asyncio
async def test_start_builds_catalog_and_snapshot(session, local_store):
    async with session:
        catalog = session.get_catalog()
        assert [movie.folder_name for movie in catalog.movies] == ["Alpha"]
        assert [show.name for show in catalog.series] == ["Beta"]
        assert session.status()["status"] == "ok"

    snapshot = json.loads(local_store.read(SNAPSHOT_KEY))
    assert len(snapshot) == len(LIBRARY_FILES)


@pytest.mark.asyncio
async def test_failed_refresh_keeps_previous_catalog(session, remote, notifier):
    async with session:
        before = session.get_catalog()
        remote.files.append(LIBRARY_FILES[0].model_copy(update={"id": "id:new"}))
        remote.fail_listing_after_pages = 1

        assert await session.refresh_catalog() is False

        assert session.get_catalog() is before
        assert session.status()["components"]["remote"] == "degraded"
        assert any(n.error_type == "ListingFailure" for n in notifier.pending())

        remote.fail_listing_after_pages = None
        assert await session.refresh_catalog() is True
        assert session.get_catalog() is not before


@pytest.mark.asyncio
async def test_first_listing_failure_uses_snapshot(settings, local_store, notifier, clock):
    async with _session(settings, FakeRemoteStore(LIBRARY_FILES), local_store, notifier, clock):
        pass

    offline = FakeRemoteStore(LIBRARY_FILES)
    offline.fail_listing_after_pages = 0
    async with _session(settings, offline, local_store, notifier, clock) as session:
        assert len(session.get_catalog()) == 4
        assert session.status()["components"]["catalog"] == "degraded"


@pytest.mark.asyncio
async def test_unreadable_snapshot_is_discarded(settings, local_store, notifier, clock):
    local_store.write(SNAPSHOT_KEY, "{not json")
    offline = FakeRemoteStore(LIBRARY_FILES)
    offline.fail_listing_after_pages = 0

    async with _session(settings, offline, local_store, notifier, clock) as session:
        assert len(session.get_catalog()) == 0

    assert local_store.read(SNAPSHOT_KEY) is None


@pytest.mark.asyncio
async def test_auth_failure_is_fatal_on_start(session, remote, notifier):
    remote.reject_refresh = "invalid_grant"

    with pytest.raises(AuthFailure):
        await session.start()

    assert session.status()["status"] == "fail"
    assert any(n.fatal for n in notifier.pending())
    await session.teardown()


@pytest.mark.asyncio
async def test_progress_api_round_trip(session, remote):
    async with session:
        session.history.set("id:b101", 30, 1200)
        assert session.get_progress("id:b101").position == 30

        completed = session.mark_as_complete("id:b101")
        assert completed.completed
        assert session.get_next_episode("id:b101").id == "id:b102"
        assert session.get_next_episode("id:alpha") is None

        assert session.remove_from_history("id:b101") is True
        assert session.get_progress("id:b101") is None

    assert json.loads(remote.blobs["/watch_history.json"]) == {}


@pytest.mark.asyncio
async def test_continue_watching_lists_catalog_items(session, clock):
    async with session:
        session.history.set("id:alpha", 100, 1200)
        clock.advance(5)
        session.history.set("id:b102", 50, 1200)
        session.history.set("id:gone", 10, 100)
        session.mark_as_complete("id:b101")

        rows = session.continue_watching()

    assert [row["item"].id for row in rows] == ["id:b102", "id:alpha"]


@pytest.mark.asyncio
async def test_play_request_and_teardown_flush(settings, remote, local_store, notifier, clock):
    surface = FakeSurface()
    session = _session(settings, remote, local_store, notifier, clock, surface)
    await session.start()

    assert await session.play_request("id:alpha") is True
    surface.current = 90.0
    await session.pause()
    assert session.now_playing().state is PlaybackState.PAUSED

    await session.teardown()

    assert surface.released
    stored = json.loads(remote.blobs["/watch_history.json"])
    assert stored["id:alpha"]["position"] == 90.0


@pytest.mark.asyncio
async def test_play_request_reports_locator_failure(session, remote):
    async with session:
        remote.fail_links = True
        assert await session.play_request("id:alpha") is False
        assert session.player.state is PlaybackState.IDLE


@pytest.mark.asyncio
async def test_description_is_downloaded_on_demand(session, remote):
    remote.blobs["/movies/alpha/description.txt"] = b"  A movie about alpha.\n"
    async with session:
        assert await session.get_description("id:alpha") == "A movie about alpha."
        assert await session.get_description("Beta") is None


@pytest.mark.asyncio
async def test_history_survives_restart_through_remote(settings, tmp_path, notifier, clock):
    remote = FakeRemoteStore(LIBRARY_FILES)
    async with _session(settings, remote, LocalDocumentStore(tmp_path / "a.db"), notifier, clock) as first:
        first.history.set("id:alpha", 321, 1200)

    async with _session(settings, remote, LocalDocumentStore(tmp_path / "b.db"), notifier, clock) as second:
        assert second.get_progress("id:alpha").position == 321
