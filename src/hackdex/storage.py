"""Durable key-value slots for view state.

Filters, sort order, view mode and the last sync timestamp each live in
their own named slot. Callers depend only on the small ``KeyValueStore``
protocol so tests can inject a ``MemoryStore``.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Protocol, runtime_checkable

from hackdex.database import CatalogDatabase
from hackdex.exceptions import PersistenceError

logger = logging.getLogger(__name__)

LAST_SYNC_TIME_KEY = "lastSyncTimestamp"


def filters_key(view: str) -> str:
    return f"{view}-filters"


def sorting_key(view: str) -> str:
    return f"{view}-sorting"


def view_mode_key(view: str) -> str:
    return f"{view}-view-mode"


@runtime_checkable
class KeyValueStore(Protocol):
    """Process-wide string key-value storage."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStore:
    """Dict-backed store for tests and throwaway sessions."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class SqliteStore:
    """Store backed by the ``settings`` table of the catalog database.

    SQLite errors are re-raised as ``PersistenceError``.
    """

    def __init__(self, db: CatalogDatabase) -> None:
        self._db = db

    def get(self, key: str) -> str | None:
        try:
            return self._db.get_setting(key)
        except sqlite3.Error as exc:
            raise PersistenceError(f"read {key}: {exc}") from exc

    def set(self, key: str, value: str) -> None:
        try:
            self._db.set_setting(key, value)
        except sqlite3.Error as exc:
            raise PersistenceError(f"write {key}: {exc}") from exc

    def remove(self, key: str) -> None:
        try:
            self._db.delete_setting(key)
        except sqlite3.Error as exc:
            raise PersistenceError(f"remove {key}: {exc}") from exc


class SafeStore:
    """Wrap a store so read/write failures are logged instead of raised.

    A failed ``get`` reads as an absent slot, which makes callers fall back
    to their in-memory defaults.
    """

    def __init__(self, inner: KeyValueStore) -> None:
        self._inner = inner

    def get(self, key: str) -> str | None:
        try:
            return self._inner.get(key)
        except Exception as exc:
            logger.error("Failed to read slot %s: %r", key, exc)
            return None

    def set(self, key: str, value: str) -> None:
        try:
            self._inner.set(key, value)
        except Exception as exc:
            logger.error("Failed to write slot %s: %r", key, exc)

    def remove(self, key: str) -> None:
        try:
            self._inner.remove(key)
        except Exception as exc:
            logger.error("Failed to remove slot %s: %r", key, exc)
