"""Watch-history store: local write-through with a throttled remote mirror.

The remote copy is authoritative at load time. Every mutation is written to the local
document immediately and marks the remote copy dirty; a single background task pushes
the whole document at most once per flush window. Several mutations inside one window
are coalesced into one upload carrying the latest state. Remote failures are retried on a
fixed backoff and then reported through the notifier; they never reach the caller of
``set``.
"""

from __future__ import annotations

import asyncio
import sqlite3
import time
from typing import Callable, Dict, List, Optional, Tuple

from cloudreel.backend.common.errors import (
    AuthFailure,
    HistorySyncFailure,
    MalformedDocument,
    NetworkError,
    RemoteFileNotFound,
)
from cloudreel.backend.common.logging import get_logger
from cloudreel.backend.common.notifications import Notifier
from cloudreel.backend.common.tasks import RetrySpec, run_with_retries
from cloudreel.backend.common.types import ComponentStatus
from cloudreel.backend.history.models import ProgressRecord, WatchHistory, clamp_progress, decode_history, encode_history
from cloudreel.backend.persistence.sqlite import LocalDocumentStore
from cloudreel.backend.remote.gateway import RemoteGateway
from cloudreel.config.settings import HistorySettings

log = get_logger(__name__)

_SOURCE = "history"


class WatchHistoryStore:
    def __init__(
        self,
        gateway: Optional[RemoteGateway],
        local: LocalDocumentStore,
        settings: HistorySettings,
        *,
        notifier: Optional[Notifier] = None,
        completed_sentinel: float = 1.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._gateway = gateway
        self._local = local
        self._settings = settings
        self._notifier = notifier or Notifier()
        self._completed_sentinel = completed_sentinel
        self._clock = clock

        self._records: WatchHistory = {}
        self._loaded_from = "none"
        # Mutation counter vs. the last counter value confirmed by the remote store.
        self._version = 0
        self._synced_version = 0

        self._flush_task: Optional[asyncio.Task[None]] = None
        self._flush_requested = False
        self._next_flush_at = 0.0
        self._wake = asyncio.Event()
        self._push_lock = asyncio.Lock()
        self._uploads = 0

        self._last_error: Optional[Exception] = None
        self._auth_error: Optional[AuthFailure] = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def loaded_from(self) -> str:
        return self._loaded_from

    @property
    def dirty(self) -> bool:
        return self._synced_version < self._version

    @property
    def upload_count(self) -> int:
        return self._uploads

    @property
    def last_error(self) -> Optional[Exception]:
        return self._auth_error or self._last_error

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------
    async def load(self) -> WatchHistory:
        """Populate the in-memory map; remote wins, the local copy is the fallback.

        Never raises. An auth failure is recorded (see :meth:`flush`) and reported as fatal
        while the local copy still serves reads.
        """

        remote: Optional[WatchHistory] = None
        remote_missing = False
        if self._gateway is not None:
            try:
                raw = await self._gateway.download(self._settings.remote_path)
                remote = decode_history(raw, "remote")
            except RemoteFileNotFound:
                remote_missing = True
                log.info("history_remote_missing", extra={"path": self._settings.remote_path})
            except AuthFailure as exc:
                self._record_auth_failure(exc)
            except (NetworkError, MalformedDocument) as exc:
                self._last_error = exc
                log.warning("history_remote_load_failed", extra={"error": str(exc)})
                self._notifier.warning(_SOURCE, "Watch history is offline; showing this device's copy.", error=exc)

        if remote is not None:
            self._records = remote
            self._loaded_from = "remote"
            self._write_local()
            self._synced_version = self._version
        else:
            local = self._read_local()
            self._records = local if local is not None else {}
            self._loaded_from = "local" if local is not None else "empty"
            if remote_missing and self._records:
                # Seed the remote store from this device on first use.
                self._version += 1
                self._schedule_flush()

        log.info("history_loaded", extra={"source": self._loaded_from, "records": len(self._records)})
        return dict(self._records)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get(self, item_id: str) -> Optional[ProgressRecord]:
        return self._records.get(item_id)

    def snapshot(self) -> WatchHistory:
        return dict(self._records)

    def in_progress(self, limit: Optional[int] = None) -> List[Tuple[str, ProgressRecord]]:
        """Started but unfinished records, most recently watched first."""

        rows = [(key, record) for key, record in self._records.items() if record.position > 0 and not record.completed]
        rows.sort(key=lambda row: (-row[1].last_watched, row[0]))
        return rows[:limit] if limit is not None else rows

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def set(self, item_id: str, position: float, duration: float) -> ProgressRecord:
        position, duration = clamp_progress(position, duration)
        now_ms = int(self._clock() * 1000)
        previous = self._records.get(item_id)
        if previous is not None:
            now_ms = max(now_ms, previous.last_watched)
        record = ProgressRecord(position=position, duration=duration, last_watched=now_ms)
        self._records[item_id] = record
        self._mutated()
        return record

    def remove(self, item_id: str) -> bool:
        if self._records.pop(item_id, None) is None:
            return False
        self._mutated()
        return True

    def mark_complete(self, item_id: str) -> ProgressRecord:
        current = self._records.get(item_id)
        if current is not None and current.completed:
            return current
        duration = current.duration if current is not None and current.duration > 0 else self._completed_sentinel
        return self.set(item_id, duration, duration)

    def _mutated(self) -> None:
        self._version += 1
        self._write_local()
        self._schedule_flush()

    # ------------------------------------------------------------------
    # Local copy
    # ------------------------------------------------------------------
    def _read_local(self) -> Optional[WatchHistory]:
        try:
            raw = self._local.read(self._settings.local_key)
        except (sqlite3.Error, OSError) as exc:
            self._report_local_failure("read", exc)
            return None
        if raw is None:
            return None
        try:
            return decode_history(raw, "local")
        except MalformedDocument as exc:
            self._last_error = exc
            log.warning("history_local_malformed", extra={"error": str(exc)})
            self._notifier.warning(_SOURCE, "This device's watch history was unreadable and was ignored.", error=exc)
            return None

    def _write_local(self) -> None:
        try:
            self._local.write(self._settings.local_key, encode_history(self._records).decode("utf-8"))
        except (sqlite3.Error, OSError) as exc:
            self._report_local_failure("write", exc)

    def _report_local_failure(self, action: str, exc: Exception) -> None:
        failure = HistorySyncFailure(f"Local watch history {action} failed: {exc}")
        self._last_error = failure
        log.error("history_local_failed", extra={"action": action, "error": str(exc)})
        self._notifier.error(_SOURCE, str(failure), error=failure)

    # ------------------------------------------------------------------
    # Remote flush
    # ------------------------------------------------------------------
    def _schedule_flush(self) -> None:
        if self._gateway is None:
            return
        self._flush_requested = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: stays dirty until the next explicit flush().
            return
        if self._flush_task is None or self._flush_task.done():
            self._flush_task = loop.create_task(self._flush_loop(), name="history-flush")

    async def _flush_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while self._flush_requested:
            delay = self._next_flush_at - loop.time()
            if delay > 0:
                self._wake.clear()
                try:
                    await asyncio.wait_for(self._wake.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
            self._flush_requested = False
            self._next_flush_at = loop.time() + self._settings.flush_interval_seconds
            await self._push()

    async def _push(self) -> bool:
        if self._gateway is None:
            return False
        gateway = self._gateway
        async with self._push_lock:
            if not self.dirty:
                return True
            if self._auth_error is not None:
                return False
            version = self._version
            payload = encode_history(self._records)
            spec = RetrySpec(
                name="history_upload",
                backoff_schedule=tuple(self._settings.retry_backoff_seconds),
                retry_on=(NetworkError,),
                give_up_on=(AuthFailure,),
            )
            try:
                await run_with_retries(spec, lambda: gateway.upload(self._settings.remote_path, payload))
            except AuthFailure as exc:
                self._record_auth_failure(exc)
                return False
            except NetworkError as exc:
                failure = HistorySyncFailure(f"Watch history upload failed: {exc}")
                self._last_error = failure
                self._notifier.warning(_SOURCE, "Watch progress is saved on this device only for now.", error=failure)
                return False

            self._uploads += 1
            self._synced_version = max(self._synced_version, version)
            self._last_error = None
            log.debug("history_uploaded", extra={"version": version, "records": len(self._records)})
            return True

    async def flush(self) -> bool:
        """Push pending state now, bypassing the throttle window.

        Returns whether the remote copy is up to date afterwards. Raises ``AuthFailure``
        when pending changes cannot be pushed because the credential was rejected.
        """

        task = self._flush_task
        if task is not None and not task.done():
            self._next_flush_at = 0.0
            self._wake.set()
            await task
        if self.dirty:
            await self._push()
        if self.dirty and self._auth_error is not None:
            raise self._auth_error
        return not self.dirty

    async def close(self) -> None:
        try:
            await self.flush()
        finally:
            task = self._flush_task
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    def _record_auth_failure(self, exc: AuthFailure) -> None:
        first = self._auth_error is None
        self._auth_error = exc
        log.error("history_auth_failed", extra={"reason": exc.reason})
        if first:
            self._notifier.error(_SOURCE, str(exc), error=exc, fatal=True)

    def status(self) -> Dict[str, object]:
        state: ComponentStatus = "ok"
        if self._auth_error is not None:
            state = "fail"
        elif self._last_error is not None or self.dirty:
            state = "degraded"
        return {
            "status": state,
            "loaded_from": self._loaded_from,
            "records": len(self._records),
            "pending_upload": self.dirty,
            "uploads": self._uploads,
            "error": str(self.last_error) if self.last_error else None,
        }


__all__ = ["WatchHistoryStore"]
