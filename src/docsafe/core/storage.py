"""
Key-value storage backends.

Backups, metrics and preferences share one process-wide string key-value
store. No transaction primitive is assumed: every ``set`` is a single atomic
put of one fully-formed value, so readers never see a half-written record.

Implementations:
    - :class:`InMemoryStorage` - dict-backed, optional byte quota
    - :class:`SqliteStorage`   - one-table SQLite file, committed per put
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

from docsafe.core.errors import StorageError, StorageQuotaError
from docsafe.core.logging import get_logger
from docsafe.core.timestamps import epoch_ms

logger = get_logger(__name__)


@runtime_checkable
class KeyValueStorage(Protocol):
    """Protocol for the shared persistent store.

    Values are strings (JSON documents in practice). Implementations raise
    :class:`StorageQuotaError` when the medium is full and
    :class:`StorageError` for any other failure.
    """

    def get(self, key: str) -> str | None:
        """Return the value under ``key`` or ``None``."""
        ...

    def set(self, key: str, value: str) -> None:
        """Atomically replace the value under ``key``."""
        ...

    def delete(self, key: str) -> bool:
        """Remove ``key``; returns whether it existed."""
        ...

    def keys(self, prefix: str = "") -> list[str]:
        """Snapshot of keys starting with ``prefix``."""
        ...


# ------------------------------------------------------------------ #
# In-Memory Storage
# ------------------------------------------------------------------ #


class InMemoryStorage:
    """Dict-backed storage with an optional quota.

    The quota counts the UTF-8 size of keys plus values, which is how browser
    storage budgets behave; a put that would exceed it raises
    :class:`StorageQuotaError` and leaves the previous value in place.

    Args:
        max_bytes: Total capacity, ``None`` for unlimited
    """

    def __init__(self, max_bytes: int | None = None) -> None:
        self.max_bytes = max_bytes
        self._data: dict[str, str] = {}
        self._lock = threading.RLock()

    @staticmethod
    def _size(key: str, value: str) -> int:
        return len(key.encode("utf-8")) + len(value.encode("utf-8", "surrogatepass"))

    @property
    def used_bytes(self) -> int:
        with self._lock:
            return sum(self._size(k, v) for k, v in self._data.items())

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            if self.max_bytes is not None:
                current = self._data.get(key)
                used = self.used_bytes
                if current is not None:
                    used -= self._size(key, current)
                if used + self._size(key, value) > self.max_bytes:
                    raise StorageQuotaError(
                        f"Storage quota exceeded writing {key!r}",
                    ).with_context(key=key, max_bytes=self.max_bytes)
            self._data[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return [k for k in self._data if k.startswith(prefix)]

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


# ------------------------------------------------------------------ #
# SQLite Storage
# ------------------------------------------------------------------ #


class SqliteStorage:
    """Single-table SQLite store.

    Each ``set`` is one ``INSERT OR REPLACE`` followed by a commit, so a
    crash leaves either the old or the new record, never a mix.

    Usage::

        storage = SqliteStorage("~/.docsafe/docsafe.db")
        storage.set("docsafe:backup:document:doc-1", record.to_json())
        storage.close()
    """

    _SCHEMA = (
        "CREATE TABLE IF NOT EXISTS kv ("
        " key TEXT PRIMARY KEY,"
        " value TEXT NOT NULL,"
        " updated_at INTEGER NOT NULL)"
    )

    def __init__(self, path: str | Path = ":memory:") -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            self.path = str(Path(self.path).expanduser())
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._lock = threading.RLock()
        with self._lock:
            self._conn.execute(self._SCHEMA)
            self._conn.commit()

    def _translate(self, exc: sqlite3.Error, key: str | None = None) -> StorageError:
        message = str(exc)
        if isinstance(exc, sqlite3.OperationalError) and "full" in message.lower():
            return StorageQuotaError(f"Storage full: {message}", cause=exc).with_context(key=key)
        return StorageError(f"SQLite storage failure: {message}", cause=exc).with_context(key=key)

    def get(self, key: str) -> str | None:
        with self._lock:
            try:
                row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            except sqlite3.Error as exc:
                raise self._translate(exc, key) from exc
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with self._lock:
            try:
                self._conn.execute(
                    "INSERT OR REPLACE INTO kv (key, value, updated_at) VALUES (?, ?, ?)",
                    (key, value, epoch_ms()),
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise self._translate(exc, key) from exc

    def delete(self, key: str) -> bool:
        with self._lock:
            try:
                cursor = self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise self._translate(exc, key) from exc
        return cursor.rowcount > 0

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            try:
                rows = self._conn.execute(
                    "SELECT key FROM kv WHERE substr(key, 1, length(?)) = ? ORDER BY key",
                    (prefix, prefix),
                ).fetchall()
            except sqlite3.Error as exc:
                raise self._translate(exc) from exc
        return [row[0] for row in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()
        logger.debug("storage.closed", path=self.path)

    def __repr__(self) -> str:
        return f"SqliteStorage({self.path!r})"


__all__ = ["KeyValueStorage", "InMemoryStorage", "SqliteStorage"]
