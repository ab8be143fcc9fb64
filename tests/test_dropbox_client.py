import json

import pytest

from cloudreel.backend.common.errors import AuthFailure, MalformedDocument, NetworkError, RemoteFileNotFound
from cloudreel.backend.network_handlers.session import BadRequest, Conflict, Unauthorized, Upstream5xx
from cloudreel.backend.network_handlers.url_manager import URLManager
from cloudreel.backend.remote.dropbox import DropboxClient


class FakeResponse:
    def __init__(self, payload=None, content=b""):
        self._payload = payload
        self.content = content

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeHttpSession:
    def __init__(self, *outcomes):
        self.urlm = URLManager()
        self.outcomes = list(outcomes)
        self.calls = []

    def post(self, service, path, **kwargs):
        self.calls.append((service, path, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _entry(path, tag="file"):
    return {
        ".tag": tag,
        "id": f"id:{path.lower()}",
        "name": path.rsplit("/", 1)[-1],
        "path_lower": path.lower(),
        "path_display": path,
        "size": 10,
    }


def test_refresh_exchange_posts_form():
    session = FakeHttpSession(FakeResponse({"access_token": "abc", "expires_in": 14400, "token_type": "bearer"}))
    grant = DropboxClient(session).exchange_refresh_token("refresh", "key", "secret")

    assert grant.access_token == "abc"
    service, path, kwargs = session.calls[0]
    assert (service, path) == ("dropbox_api", "oauth2/token")
    assert kwargs["form"]["grant_type"] == "refresh_token"
    assert kwargs["form"]["client_secret"] == "secret"


def test_rejected_refresh_becomes_auth_failure():
    error = BadRequest("400", response=FakeResponse({"error": "invalid_grant"}))
    with pytest.raises(AuthFailure) as excinfo:
        DropboxClient(FakeHttpSession(error)).exchange_refresh_token("refresh", "key", None)
    assert excinfo.value.reason == "invalid_grant"


def test_listing_keeps_files_only_and_sends_bearer():
    payload = {
        "entries": [_entry("/movies/Alpha/alpha.mp4"), _entry("/movies/Alpha", tag="folder")],
        "cursor": "c1",
        "has_more": True,
    }
    session = FakeHttpSession(FakeResponse(payload))
    page = DropboxClient(session).list_folder("tok", "", limit=5000)

    assert [entry.display_path for entry in page.entries] == ["/movies/Alpha/alpha.mp4"]
    assert page.has_more and page.cursor == "c1"
    _, path, kwargs = session.calls[0]
    assert path == "2/files/list_folder"
    assert kwargs["headers"]["Authorization"] == "Bearer tok"
    assert kwargs["json_body"]["limit"] == 2000
    assert kwargs["json_body"]["recursive"] is True


def test_listing_with_more_but_no_cursor_is_malformed():
    session = FakeHttpSession(FakeResponse({"entries": [], "has_more": True}))
    with pytest.raises(MalformedDocument):
        DropboxClient(session).list_folder_continue("tok", "c1")


def test_missing_path_is_not_found():
    error = Conflict("409", response=FakeResponse({"error_summary": "path/not_found/.."}))
    with pytest.raises(RemoteFileNotFound):
        DropboxClient(FakeHttpSession(error)).download("tok", "/watch_history.json")


def test_server_error_is_network_error():
    with pytest.raises(NetworkError):
        DropboxClient(FakeHttpSession(Upstream5xx("503"))).get_temporary_link("tok", "/a.mp4")


def test_unauthorized_is_passed_through_for_gateway_retry():
    with pytest.raises(Unauthorized):
        DropboxClient(FakeHttpSession(Unauthorized("401"))).download("tok", "/a.mp4")


def test_upload_overwrites_whole_document():
    session = FakeHttpSession(FakeResponse({"id": "id:1"}))
    DropboxClient(session).upload("tok", "/watch_history.json", b"{}")

    service, path, kwargs = session.calls[0]
    assert (service, path) == ("dropbox_content", "2/files/upload")
    assert json.loads(kwargs["headers"]["Dropbox-API-Arg"])["mode"] == "overwrite"
    assert kwargs["content"] == b"{}"


def test_temporary_link_carries_ttl():
    session = FakeHttpSession(FakeResponse({"link": "https://dl.example/x"}))
    link = DropboxClient(session).get_temporary_link("tok", "/a.mp4")
    assert link.url == "https://dl.example/x"
    assert link.expires_in == 14400
