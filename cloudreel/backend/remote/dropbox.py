"""Dropbox HTTP API v2 implementation of the remote store contract."""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from cloudreel.backend.common.errors import (
    AuthFailure,
    MalformedDocument,
    NetworkError,
    RemoteFileNotFound,
)
from cloudreel.backend.common.logging import get_logger
from cloudreel.backend.network_handlers.session import (
    BadRequest,
    Conflict,
    HttpSession,
    NetError,
    Unauthorized,
)
from cloudreel.backend.remote.base import (
    ListingPage,
    RemoteFile,
    RemoteStore,
    TemporaryLink,
    TokenGrant,
)
from cloudreel.config.settings import get_temporary_link_ttl

_API = "dropbox_api"
_CONTENT = "dropbox_content"

log = get_logger(__name__)


class DropboxClient(RemoteStore):
    """Thin typed wrapper over the handful of Dropbox endpoints the library needs."""

    name = "dropbox"

    def __init__(self, session: Optional[HttpSession] = None, *, timeout: int = 20) -> None:
        self._session = session or HttpSession(timeout=timeout)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    def exchange_refresh_token(self, refresh_token: str, app_key: str, app_secret: Optional[str]) -> TokenGrant:
        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": app_key,
        }
        if app_secret:
            form["client_secret"] = app_secret

        try:
            response = self._session.post(_API, self._endpoint(_API, "token"), form=form)
        except (BadRequest, Unauthorized) as exc:
            reason = _error_field(exc.response, "error") or "refresh_rejected"
            log.warning("token_exchange_rejected", extra={"reason": reason})
            raise AuthFailure(reason) from exc
        except NetError as exc:
            raise NetworkError(f"Token exchange failed: {exc}") from exc

        try:
            return TokenGrant.model_validate(self._json(response, "token"))
        except ValidationError as exc:
            raise MalformedDocument("token", str(exc)) from exc

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------
    def list_folder(self, access_token: str, path: str, *, recursive: bool = True, limit: int = 2000) -> ListingPage:
        body = {
            "path": path,
            "recursive": recursive,
            "limit": max(1, min(int(limit), 2000)),
            "include_non_downloadable_files": False,
        }
        response = self._call(_API, "list_folder", access_token, json_body=body, target=path)

        return self._parse_listing(self._json(response, "listing"))

    def list_folder_continue(self, access_token: str, cursor: str) -> ListingPage:
        response = self._call(_API, "list_folder_continue", access_token, json_body={"cursor": cursor})

        return self._parse_listing(self._json(response, "listing"))

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------
    def get_temporary_link(self, access_token: str, path: str) -> TemporaryLink:
        response = self._call(_API, "temporary_link", access_token, json_body={"path": path}, target=path)
        data = self._json(response, "temporary_link")
        link = data.get("link") if isinstance(data, Mapping) else None
        if not link:
            raise MalformedDocument("temporary_link", "response has no link")

        return TemporaryLink(url=str(link), expires_in=get_temporary_link_ttl())

    def download(self, access_token: str, path: str) -> bytes:
        response = self._call(
            _CONTENT,
            "download",
            access_token,
            headers={"Dropbox-API-Arg": json.dumps({"path": path})},
            target=path,
        )

        return response.content

    def upload(self, access_token: str, path: str, payload: bytes) -> None:
        arg = {"path": path, "mode": "overwrite", "autorename": False, "mute": True}
        self._call(
            _CONTENT,
            "upload",
            access_token,
            headers={
                "Dropbox-API-Arg": json.dumps(arg),
                "Content-Type": "application/octet-stream",
            },
            content=payload,
            target=path,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _endpoint(self, service: str, key: str) -> str:
        return self._session.urlm.endpoint_path(service, key)

    def _call(
        self,
        service: str,
        endpoint: str,
        access_token: str,
        *,
        json_body: Optional[Mapping[str, Any]] = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        target: Optional[str] = None,
    ):
        hdrs = {"Authorization": f"Bearer {access_token}"}
        if headers:
            hdrs.update(headers)
        try:
            return self._session.post(
                service,
                self._endpoint(service, endpoint),
                json_body=json_body,
                content=content,
                headers=hdrs,
            )
        except Unauthorized:
            raise
        except Conflict as exc:
            summary = _error_field(exc.response, "error_summary") or ""
            if "not_found" in summary:
                raise RemoteFileNotFound(f"{target or endpoint}: {summary}") from exc
            raise NetworkError(f"{endpoint} conflict: {summary or exc}") from exc
        except NetError as exc:
            raise NetworkError(f"{endpoint} failed: {exc}") from exc

    def _json(self, response, source: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedDocument(source, "invalid JSON") from exc

    def _parse_listing(self, data: Any) -> ListingPage:
        if not isinstance(data, Mapping):
            raise MalformedDocument("listing", "payload is not an object")
        entries = []
        for raw in data.get("entries") or []:
            if not isinstance(raw, Mapping) or raw.get(".tag") != "file":
                continue
            try:
                entries.append(
                    RemoteFile(
                        id=raw["id"],
                        name=raw["name"],
                        lowercase_path=raw.get("path_lower") or str(raw["path_display"]).lower(),
                        display_path=raw.get("path_display") or raw["path_lower"],
                        size_bytes=int(raw.get("size") or 0),
                    )
                )
            except (KeyError, TypeError, ValueError, ValidationError):
                log.debug("listing_entry_skipped", extra={"entry": dict(raw)})
        has_more = bool(data.get("has_more"))
        cursor = data.get("cursor")
        if has_more and not cursor:
            raise MalformedDocument("listing", "has_more without cursor")

        return ListingPage(entries=entries, cursor=cursor, has_more=has_more)


def _error_field(response, key: str) -> Optional[str]:
    if response is None:
        return None
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, Mapping):
        value = payload.get(key)
        return str(value) if value is not None else None
    return None


__all__ = ["DropboxClient"]
