import sqlite3

import pytest

from cloudreel.backend.persistence import sqlite as local_sqlite
from cloudreel.backend.persistence.sqlite import LocalDocumentStore


def test_schema_is_migrated_once_per_store(tmp_path, monkeypatch):
    calls = []
    original = local_sqlite.migrate

    def counting_migrate(connection):
        calls.append(connection)
        original(connection)

    monkeypatch.setattr(local_sqlite, "migrate", counting_migrate)
    store = LocalDocumentStore(tmp_path / "docs.db")
    try:
        for n in range(5):
            store.write("watch_history", f'{{"n": {n}}}')
        assert store.read("watch_history") == '{"n": 4}'
    finally:
        store.close()

    assert len(calls) == 1


def test_write_read_delete(tmp_path):
    store = LocalDocumentStore(tmp_path / "docs.db")
    try:
        assert store.read("missing") is None
        store.write("file_index", "[]")
        store.write("file_index", "[1]")
        assert store.read("file_index") == "[1]"
        store.delete("file_index")
        assert store.read("file_index") is None
    finally:
        store.close()


def test_values_survive_reopen(tmp_path):
    path = tmp_path / "docs.db"
    first = LocalDocumentStore(path)
    first.write("watch_history", "{}")
    first.close()

    second = LocalDocumentStore(path)
    try:
        assert second.read("watch_history") == "{}"
    finally:
        second.close()


def test_closed_store_rejects_calls(tmp_path):
    store = LocalDocumentStore(tmp_path / "docs.db")
    store.close()
    store.close()

    assert store.closed
    with pytest.raises(sqlite3.ProgrammingError):
        store.read("watch_history")
