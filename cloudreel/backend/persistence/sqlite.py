"""SQLite connection helpers and the local key/value document store."""

from __future__ import annotations

import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from cloudreel.config.settings import get_database_path


def _resolve_path(path: Optional[Path]) -> Path:
    db_path = Path(path or get_database_path())
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


def connect(path: Optional[Path] = None, *, apply_migrations: bool = True) -> sqlite3.Connection:
    """Create a SQLite connection and ensure the schema exists.

    The connection may be used from worker threads; callers serialise access.
    """

    db_path = _resolve_path(path)
    connection = sqlite3.connect(str(db_path), check_same_thread=False)
    connection.row_factory = sqlite3.Row
    connection.execute("PRAGMA journal_mode = WAL")
    if apply_migrations:
        migrate(connection)
    return connection


def migrate(connection: sqlite3.Connection) -> None:
    """Create required tables if they are missing."""

    connection.executescript(
        """
        CREATE TABLE IF NOT EXISTS documents (
            k TEXT PRIMARY KEY,
            v TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        """
    )


def get_document(connection: sqlite3.Connection, key: str) -> Optional[str]:
    row = connection.execute("SELECT v FROM documents WHERE k = ?", (key,)).fetchone()
    if row is None:
        return None
    return str(row["v"])


def set_document(connection: sqlite3.Connection, key: str, value: str) -> None:
    connection.execute(
        """
        INSERT INTO documents (k, v, updated_at)
        VALUES (?, ?, ?)
        ON CONFLICT(k) DO UPDATE SET v=excluded.v, updated_at=excluded.updated_at
        """,
        (key, value, _utcnow()),
    )


def delete_document(connection: sqlite3.Connection, key: str) -> None:
    connection.execute("DELETE FROM documents WHERE k = ?", (key,))


class LocalDocumentStore:
    """Whole-document string values under fixed keys in one SQLite file.

    One connection is opened and migrated up front and reused for every call.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = _resolve_path(path)
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = connect(self._path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def closed(self) -> bool:
        return self._conn is None

    def _require(self) -> sqlite3.Connection:
        if self._conn is None:
            raise sqlite3.ProgrammingError(f"Document store {self._path} is closed")
        return self._conn

    def read(self, key: str) -> Optional[str]:
        with self._lock:
            return get_document(self._require(), key)

    def write(self, key: str, value: str) -> None:
        with self._lock:
            conn = self._require()
            with conn:
                set_document(conn, key, value)

    def delete(self, key: str) -> None:
        with self._lock:
            conn = self._require()
            with conn:
                delete_document(conn, key)

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


def _utcnow() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()
