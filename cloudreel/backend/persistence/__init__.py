"""SQLite-backed persistence helpers for CloudReel."""

from .sqlite import (
    LocalDocumentStore,
    connect,
    delete_document,
    get_document,
    migrate,
    set_document,
)

__all__ = [
    "LocalDocumentStore",
    "connect",
    "delete_document",
    "get_document",
    "migrate",
    "set_document",
]
