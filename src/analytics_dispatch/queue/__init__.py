"""Offline event queue and its backing stores."""

from .persistent import DEFAULT_MAX_ITEMS, DEFAULT_TTL_MS, PersistentQueue, QueuedItem
from .stores import FileStore, KeyValueStore, MemoryStore, SqliteStore

__all__ = [
    "DEFAULT_MAX_ITEMS",
    "DEFAULT_TTL_MS",
    "PersistentQueue",
    "QueuedItem",
    "FileStore",
    "KeyValueStore",
    "MemoryStore",
    "SqliteStore",
]
