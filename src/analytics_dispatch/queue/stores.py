"""Key-value stores backing the persistent queue."""

from __future__ import annotations

import os
import re
import sqlite3
import tempfile
import threading
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from ..errors import QueueStorageError


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal string store, shaped like browser localStorage."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStore:
    """In-process store. Contents are lost when the process exits."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class FileStore:
    """
    One file per key under ``directory``.

    Writes go to a temporary file in the same directory and are moved into
    place with ``os.replace``, so a reader never sees a half-written value.
    """

    def __init__(self, directory: str | Path, suffix: str = ".json", encoding: str = "utf-8"):
        self.directory = Path(directory)
        self.suffix = suffix
        self.encoding = encoding

    def path_for(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_CHARS.sub('_', key)}{self.suffix}"

    def get_item(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        try:
            return path.read_text(encoding=self.encoding)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise QueueStorageError(f"Failed to read {path}: {e}") from e

    def set_item(self, key: str, value: str) -> None:
        path = self.path_for(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=self.suffix)
            try:
                with os.fdopen(fd, "w", encoding=self.encoding) as f:
                    f.write(value)
                os.replace(tmp, path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except OSError as e:
            raise QueueStorageError(f"Failed to write {path}: {e}") from e

    def remove_item(self, key: str) -> None:
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise QueueStorageError(f"Failed to remove {path}: {e}") from e


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""


class SqliteStore:
    """Store backed by a single SQLite table. Use ``":memory:"`` for tests."""

    def __init__(self, path: str | Path = "analytics_queue.db"):
        self.path = str(path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def connect(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            try:
                if self.path != ":memory:":
                    Path(self.path).parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self.path, check_same_thread=False)
                conn.executescript(SCHEMA_SQL)
                conn.commit()
            except (sqlite3.Error, OSError) as e:
                raise QueueStorageError(f"Failed to open {self.path}: {e}") from e
            self._conn = conn
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            try:
                row = self.connect().execute(
                    "SELECT value FROM kv WHERE key = ?", (key,)
                ).fetchone()
            except sqlite3.Error as e:
                raise QueueStorageError(f"Failed to read '{key}': {e}") from e
        return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            conn = self.connect()
            try:
                conn.execute(
                    "INSERT INTO kv (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                    "updated_at = excluded.updated_at",
                    (key, value),
                )
                conn.commit()
            except sqlite3.Error as e:
                raise QueueStorageError(f"Failed to write '{key}': {e}") from e

    def remove_item(self, key: str) -> None:
        with self._lock:
            conn = self.connect()
            try:
                conn.execute("DELETE FROM kv WHERE key = ?", (key,))
                conn.commit()
            except sqlite3.Error as e:
                raise QueueStorageError(f"Failed to remove '{key}': {e}") from e

    def __enter__(self) -> SqliteStore:
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
