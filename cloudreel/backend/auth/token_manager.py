"""Bearer credential lifecycle for the remote store."""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from cloudreel.backend.common.errors import AuthFailure
from cloudreel.backend.common.logging import get_logger
from cloudreel.backend.common.tasks import SingleFlight, run_blocking
from cloudreel.backend.remote.base import RemoteStore
from cloudreel.config.settings import AuthSettings

_TOKEN_FILENAME = "remote_store_token.json"


class Credential(BaseModel):
    """Access token cached in memory and on disk."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: str
    expires_at: float

    def remaining(self, now_ts: float) -> float:
        return float(self.expires_at) - now_ts

    def is_near_expiry(self, now_ts: float, *, margin: float) -> bool:
        return self.remaining(now_ts) < margin


class TokenManager:
    """Hands out access tokens with at least ``expiry_margin_seconds`` of lifetime left.

    A refresh exchange is single-flight: callers arriving while one is running await
    the same outcome. A rejected refresh grant latches the manager into the
    re-authentication state for the rest of the process.
    """

    def __init__(
        self,
        remote: RemoteStore,
        auth: AuthSettings,
        *,
        token_dir: Optional[Path] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._log = get_logger(__name__)
        self._remote = remote
        self._auth = auth
        self._clock = clock
        self._margin = float(auth.expiry_margin_seconds)
        self._token_file: Optional[Path] = None
        if token_dir is not None:
            token_dir = Path(token_dir)
            token_dir.mkdir(parents=True, exist_ok=True)
            self._token_file = token_dir / _TOKEN_FILENAME
        self._credential: Optional[Credential] = None
        self._reauth_reason: Optional[str] = None
        self._refresh_count = 0
        self._flight: SingleFlight[Credential] = SingleFlight()
        self._load_token()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def get_valid_token(self) -> Credential:
        if self._reauth_reason:
            raise AuthFailure(self._reauth_reason)

        credential = self._credential
        if credential is not None and not credential.is_near_expiry(self._clock(), margin=self._margin):
            return credential

        return await self._flight.run(self._refresh)

    def invalidate(self, credential: Optional[Credential] = None) -> None:
        """Drop the cached token, e.g. after the store refused it with a 401."""

        if credential is None or self._credential == credential:
            self._credential = None

    @property
    def reauth_required(self) -> bool:
        return self._reauth_reason is not None

    @property
    def reauth_reason(self) -> Optional[str]:
        return self._reauth_reason

    @property
    def refresh_count(self) -> int:
        return self._refresh_count

    def status(self) -> Dict[str, Any]:
        if self._reauth_reason:
            return {"reauth_required": True, "reason": self._reauth_reason}
        credential = self._credential
        if credential is None:
            return {"reauth_required": False, "has_token": False}

        return {
            "reauth_required": False,
            "has_token": True,
            "expires_at": credential.expires_at,
            "expires_in": max(0, int(credential.remaining(self._clock()))),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _refresh(self) -> Credential:
        if not self._auth.configured:
            self._flag_reauth("missing_credentials")
            raise AuthFailure("missing_credentials")

        self._log.debug("token_refresh_start")
        try:
            grant = await run_blocking(
                self._remote.exchange_refresh_token,
                self._auth.refresh_token,
                self._auth.app_key,
                self._auth.app_secret,
            )
        except AuthFailure as exc:
            self._flag_reauth(exc.reason)
            self._credential = None
            self._log.error("token_refresh_rejected", extra={"reason": exc.reason})
            raise

        self._refresh_count += 1
        credential = Credential(
            access_token=grant.access_token,
            expires_at=self._clock() + int(grant.expires_in),
        )
        self._store_token(credential)
        self._log.info("token_refreshed", extra={"expires_in": grant.expires_in})

        return credential

    def _flag_reauth(self, reason: str) -> None:
        self._reauth_reason = reason

    def _store_token(self, credential: Credential) -> None:
        self._credential = credential
        if self._token_file is None:
            return

        payload = {
            "access_token": credential.access_token,
            "expires_at": credential.expires_at,
        }
        try:
            self._token_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:  # pragma: no cover - filesystem failure
            self._log.warning("token_cache_write_failed", extra={"error": str(exc)})

    def _load_token(self) -> None:
        if self._token_file is None or not self._token_file.exists():
            return
        try:
            data = json.loads(self._token_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            self._log.warning("token_cache_unreadable")
            return
        if not isinstance(data, Mapping):
            return

        try:
            self._credential = Credential.model_validate(dict(data))
        except ValidationError:
            self._log.warning("token_cache_invalid")


__all__ = ["Credential", "TokenManager"]
