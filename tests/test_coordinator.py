import pytest

from cloudreel.backend.common.errors import LocatorFailure, MalformedDocument
from cloudreel.backend.history.store import WatchHistoryStore
from cloudreel.backend.library.catalog import build_catalog
from cloudreel.backend.library.models import FileIndex
from cloudreel.backend.player.controller import PlaybackCoordinator, PlaybackState
from cloudreel.backend.player.exceptions import SessionClosed

from .conftest import LIBRARY_FILES, FakeSurface, wait_until


@pytest.fixture
def history(local_store, history_settings, notifier, clock):
    return WatchHistoryStore(None, local_store, history_settings, notifier=notifier, clock=clock)


@pytest.fixture
def catalog(library_settings):
    return build_catalog(FileIndex(LIBRARY_FILES), library_settings)


@pytest.fixture
def surface():
    return FakeSurface()


@pytest.fixture
def coordinator(gateway, history, catalog, surface, playback_settings, notifier, clock):
    return PlaybackCoordinator(
        gateway,
        history,
        lambda: catalog,
        surface,
        playback_settings,
        notifier=notifier,
        clock=clock,
    )


@pytest.mark.asyncio
async def test_play_starts_from_zero_without_history(coordinator, surface):
    await coordinator.play("id:alpha")

    assert coordinator.state is PlaybackState.PLAYING
    assert surface.playing
    url, start_at = surface.opened[-1]
    assert url.startswith("https://stream.test/movies/Alpha/alpha.mp4")
    assert start_at == 0.0


@pytest.mark.asyncio
async def test_play_resumes_saved_position(coordinator, history, surface):
    history.set("id:alpha", 100, 1200)

    await coordinator.play("id:alpha")

    assert surface.opened[-1][1] == 100


@pytest.mark.asyncio
async def test_near_end_progress_restarts_from_zero(coordinator, history, surface):
    history.set("id:alpha", 1195, 1200)

    await coordinator.play("id:alpha")

    assert surface.opened[-1][1] == 0.0


@pytest.mark.asyncio
async def test_progress_is_committed_periodically(coordinator, history, surface):
    await coordinator.play("id:alpha")
    surface.current = 42.0

    await wait_until(lambda: history.get("id:alpha") is not None and history.get("id:alpha").position == 42.0)
    await coordinator.close()


@pytest.mark.asyncio
async def test_pause_resume_and_seek_commit_progress(coordinator, history, surface):
    await coordinator.play("id:alpha")
    surface.current = 60.0

    await coordinator.pause()
    assert coordinator.state is PlaybackState.PAUSED
    assert history.get("id:alpha").position == 60.0

    await coordinator.seek(5000)
    assert history.get("id:alpha").position == 1200.0
    assert surface.current == 1200.0

    await coordinator.seek(30)
    await coordinator.resume()
    assert coordinator.state is PlaybackState.PLAYING
    assert history.get("id:alpha").position == 30.0


@pytest.mark.asyncio
async def test_close_flushes_progress_and_releases_media(coordinator, history, surface):
    await coordinator.play("id:alpha")
    surface.current = 77.0

    await coordinator.close()

    assert coordinator.state is PlaybackState.CLOSED
    assert history.get("id:alpha").position == 77.0
    assert surface.stopped >= 1
    assert coordinator.current_item_id is None


@pytest.mark.asyncio
async def test_switching_items_commits_previous(coordinator, history, surface):
    await coordinator.play("id:alpha")
    surface.current = 15.0

    await coordinator.play("id:b101")

    assert history.get("id:alpha").position == 15.0
    assert coordinator.current_item_id == "id:b101"


@pytest.mark.asyncio
async def test_end_of_episode_marks_complete_and_autoplays_next(coordinator, history, surface):
    await coordinator.play("id:b102")

    surface.finish()
    await wait_until(lambda: coordinator.current_item_id == "id:b201")

    assert history.get("id:b102").completed
    assert coordinator.state is PlaybackState.PLAYING


@pytest.mark.asyncio
async def test_end_of_movie_closes(coordinator, history, surface):
    history.set("id:alpha", 118, 120)
    surface.length = 120.0
    await coordinator.play("id:alpha")

    surface.finish()
    await wait_until(lambda: coordinator.state is PlaybackState.CLOSED)

    assert coordinator.next_item("id:alpha") is None
    assert history.get("id:alpha").completed


@pytest.mark.asyncio
async def test_end_of_last_episode_closes(coordinator, history, surface):
    await coordinator.play("id:b201")

    surface.finish()
    await wait_until(lambda: coordinator.state is PlaybackState.CLOSED)

    assert history.get("id:b201").completed


@pytest.mark.asyncio
async def test_locator_failure_returns_to_idle(coordinator, remote, notifier):
    remote.fail_links = True

    with pytest.raises(LocatorFailure):
        await coordinator.play("id:alpha")

    assert coordinator.state is PlaybackState.IDLE
    assert coordinator.current_item_id is None
    assert any(n.error_type == "LocatorFailure" for n in notifier.pending())


@pytest.mark.asyncio
async def test_malformed_link_response_returns_to_idle(coordinator, remote, monkeypatch):
    def _bad_link(access_token, path):
        raise MalformedDocument("temporary_link", "response has no link")

    monkeypatch.setattr(remote, "get_temporary_link", _bad_link)

    with pytest.raises(LocatorFailure):
        await coordinator.play("id:alpha")

    assert coordinator.state is PlaybackState.IDLE
    assert coordinator.current_item_id is None


@pytest.mark.asyncio
async def test_unknown_item_is_a_locator_failure(coordinator):
    with pytest.raises(LocatorFailure):
        await coordinator.play("id:nope")
    assert coordinator.state is PlaybackState.IDLE


@pytest.mark.asyncio
async def test_expired_locator_is_renewed_on_resume(coordinator, surface, clock):
    await coordinator.play("id:alpha")
    surface.current = 300.0
    await coordinator.pause()
    first_locator = coordinator.locator

    clock.advance(5 * 3600)
    await coordinator.resume()

    assert coordinator.state is PlaybackState.PLAYING
    assert coordinator.locator != first_locator
    assert surface.opened[-1][1] == 300.0


@pytest.mark.asyncio
async def test_shutdown_releases_surface_and_rejects_play(coordinator, surface):
    async with coordinator:
        await coordinator.play("id:alpha")

    assert surface.released
    with pytest.raises(SessionClosed):
        await coordinator.play("id:alpha")
