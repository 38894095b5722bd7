"""
Persistent queue for events that could not be delivered yet.

The queue keeps a JSON list under a single key of a ``KeyValueStore``.
Storage trouble never propagates to callers: unreadable data is treated as
an empty queue and failed writes are logged.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from ..events.types import AnalyticsEvent, now_ms
from .stores import KeyValueStore, MemoryStore


logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "analytics_queue"
DEFAULT_MAX_ITEMS = 1000
DEFAULT_TTL_MS = 7 * 24 * 60 * 60 * 1000  # 7 days


@dataclass
class QueuedItem:
    """An event waiting for delivery."""
    event: AnalyticsEvent
    enqueued_at: int
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    attempts: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "event": self.event.to_dict(),
            "enqueued_at": self.enqueued_at,
            "attempts": self.attempts,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> QueuedItem:
        return cls(
            event=AnalyticsEvent.from_dict(data["event"]),
            enqueued_at=int(data["enqueued_at"]),
            id=str(data.get("id") or uuid.uuid4().hex),
            attempts=int(data.get("attempts") or 0),
        )


class PersistentQueue:
    """
    FIFO queue of events backed by a key-value store.

    Items older than ``ttl_ms`` are discarded on load. When the queue grows
    past ``max_items`` the oldest items are dropped first.
    """

    def __init__(
        self,
        storage_key: str = DEFAULT_STORAGE_KEY,
        max_items: int = DEFAULT_MAX_ITEMS,
        ttl_ms: int = DEFAULT_TTL_MS,
        store: Optional[KeyValueStore] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.storage_key = storage_key
        self.max_items = max_items
        self.ttl_ms = ttl_ms
        self.store: KeyValueStore = store if store is not None else MemoryStore()
        self._clock = clock
        self._lock = threading.RLock()

        # Drop expired items left over from a previous run
        with self._lock:
            self._save(self._load())

    def _load(self) -> list[QueuedItem]:
        try:
            raw = self.store.get_item(self.storage_key)
        except Exception as e:
            logger.warning(f"Queue storage unavailable, treating as empty: {e}")
            return []
        if not raw:
            return []

        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Corrupted queue data under '{self.storage_key}': {e}")
            return []
        if not isinstance(data, list):
            logger.warning(f"Queue data under '{self.storage_key}' is not a list, ignoring")
            return []

        cutoff = self._clock() - self.ttl_ms
        items: list[QueuedItem] = []
        for entry in data:
            try:
                item = QueuedItem.from_dict(entry)
            except (KeyError, TypeError, ValueError, OverflowError) as e:
                logger.debug(f"Skipping undecodable queue entry: {e}")
                continue
            if item.enqueued_at >= cutoff:
                items.append(item)
        return items

    def _save(self, items: list[QueuedItem]) -> None:
        if self.max_items >= 0 and len(items) > self.max_items:
            dropped = len(items) - self.max_items
            logger.warning(f"Queue over capacity, dropping {dropped} oldest item(s)")
            items = items[dropped:]
        try:
            if items:
                self.store.set_item(self.storage_key, json.dumps([i.to_dict() for i in items], default=str))
            else:
                self.store.remove_item(self.storage_key)
        except Exception as e:
            logger.warning(f"Failed to persist queue: {e}")

    def enqueue(self, event: AnalyticsEvent) -> QueuedItem:
        item = QueuedItem(event=event, enqueued_at=self._clock())
        with self._lock:
            items = self._load()
            items.append(item)
            self._save(items)
        return item

    def drain(self, max: Optional[int] = None) -> list[QueuedItem]:
        """Remove and return up to ``max`` items, oldest first."""
        if max is not None and max <= 0:
            return []
        with self._lock:
            items = self._load()
            if max is None or max >= len(items):
                taken, rest = items, []
            else:
                taken, rest = items[:max], items[max:]
            self._save(rest)
        return taken

    def peek(self) -> list[QueuedItem]:
        """All items in FIFO order, without removing them."""
        with self._lock:
            return self._load()

    def size(self) -> int:
        return len(self.peek())

    def is_empty(self) -> bool:
        return self.size() == 0

    def remove(self, item_id: str) -> bool:
        with self._lock:
            items = self._load()
            remaining = [i for i in items if i.id != item_id]
            if len(remaining) == len(items):
                return False
            self._save(remaining)
        return True

    def increment_attempts(self, item_id: str) -> Optional[int]:
        """Bump the delivery attempt count of one item. Returns the new count."""
        with self._lock:
            items = self._load()
            for item in items:
                if item.id == item_id:
                    item.attempts += 1
                    self._save(items)
                    return item.attempts
        return None

    def prune_expired(self) -> int:
        """Rewrite storage without expired items. Returns how many remain."""
        with self._lock:
            items = self._load()
            self._save(items)
        return len(items)

    def clear(self) -> None:
        with self._lock:
            self._save([])

    def __len__(self) -> int:
        return self.size()
