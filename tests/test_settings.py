import json

from cloudreel.backend.network_handlers.url_manager import URLManager
from cloudreel.config.settings import LibrarySettings, get_settings, update_library_roots
from cloudreel.config.settings import library, remote
from cloudreel.config.settings.library import normalize_extensions, normalize_remote_root
from cloudreel.config.settings.paths import expand_env


def test_normalize_remote_root():
    assert normalize_remote_root(None) == ""
    assert normalize_remote_root("/") == ""
    assert normalize_remote_root("Media\\Movies/") == "/media/movies"


def test_normalize_extensions_deduplicates():
    assert normalize_extensions(["MP4", ".mp4", "mkv", ""]) == (".mp4", ".mkv")


def test_category_prefixes_follow_root():
    assert LibrarySettings().movies_prefix == "/movies"
    nested = LibrarySettings(root="/Media", movies_root="/media/films", series_root="shows")
    assert nested.movies_prefix == "/media/films"
    assert nested.series_prefix == "/media/shows"


def test_expand_env_walks_nested_values(monkeypatch):
    monkeypatch.setenv("CLOUDREEL_TEST_AGENT", "reel/1.0")
    data = {"headers": {"User-Agent": "${CLOUDREEL_TEST_AGENT}"}, "list": ["${CLOUDREEL_MISSING_VAR}x"], "n": 3}
    assert expand_env(data) == {"headers": {"User-Agent": "reel/1.0"}, "list": ["x"], "n": 3}


def test_remote_store_settings_describe_both_dropbox_hosts():
    services = remote.list_service_configs()
    assert {"dropbox_api", "dropbox_content"} <= set(services)
    assert remote.get_default_headers("dropbox_api")["User-Agent"] == "cloudreel"
    assert remote.get_service_config("nope") is None
    assert remote.get_temporary_link_ttl() > 0
    assert remote.get_retry_config()["max_attempts"] >= 1


def test_url_manager_builds_endpoint_urls():
    urlm = URLManager()
    path = urlm.endpoint_path("dropbox_api", "list_folder")
    url, headers = urlm.build("dropbox_api", path)
    assert url == "https://api.dropboxapi.com/2/files/list_folder"
    assert headers["User-Agent"] == "cloudreel"
    assert urlm.should_respect_retry_after("dropbox_api") is True


def test_env_overrides_user_settings(tmp_path, monkeypatch):
    user_file = tmp_path / "user.json"
    user_file.write_text(json.dumps({"library": {"root": "/Media"}, "history": {"flush_interval_seconds": 9}}))
    monkeypatch.setattr(library, "get_user_settings_path", lambda: user_file)
    monkeypatch.delenv("CLOUDREEL_LIBRARY_ROOT", raising=False)
    monkeypatch.setenv("CLOUDREEL_FLUSH_INTERVAL", "4.5")
    monkeypatch.setenv("CLOUDREEL_REFRESH_TOKEN", "from-env")

    settings = get_settings(reload=True)

    assert settings.library.root == "/media"
    assert settings.history.flush_interval_seconds == 4.5
    assert settings.auth.refresh_token == "from-env"


def test_update_library_roots_persists_user_file(tmp_path, monkeypatch):
    user_file = tmp_path / "nested" / "user.json"
    monkeypatch.setattr(library, "get_user_settings_path", lambda: user_file)
    for var in ("CLOUDREEL_LIBRARY_ROOT", "CLOUDREEL_MOVIES_ROOT", "CLOUDREEL_SERIES_ROOT"):
        monkeypatch.delenv(var, raising=False)

    settings = update_library_roots(root="/Media", series_root="shows")

    stored = json.loads(user_file.read_text(encoding="utf-8"))
    assert stored["library"] == {"root": "/Media", "series_root": "shows"}
    assert "updated_at" in stored
    assert settings.library.series_prefix == "/media/shows"
