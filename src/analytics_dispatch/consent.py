"""User consent state and the manager that owns it."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Callable, Iterable, Literal, Mapping

from .events.types import now_ms


logger = logging.getLogger(__name__)


class ConsentCategory(str, Enum):
    """Classes of user permission."""
    ANALYTICS = "analytics"
    MARKETING = "marketing"
    FUNCTIONAL = "functional"
    PERSONALIZATION = "personalization"
    # Strictly necessary processing; cannot be revoked
    NECESSARY = "necessary"


ALWAYS_ON: frozenset[ConsentCategory] = frozenset({ConsentCategory.NECESSARY})


@dataclass
class ConsentState:
    """
    Snapshot of consent. Absent or non-boolean values mean denied.

    ``updated_at`` (epoch ms) changes on every mutation and doubles as a
    cheap fingerprint for callers that cache decisions.
    """
    analytics: bool = False
    marketing: bool = False
    functional: bool = False
    personalization: bool = False
    necessary: bool = True
    updated_at: int = field(default_factory=now_ms)

    def allows(self, category: ConsentCategory | str) -> bool:
        try:
            key = ConsentCategory(category)
        except ValueError:
            return False
        return bool(getattr(self, key.value))

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


ConsentListener = Callable[[ConsentState], None]


def _known_categories(patch: Mapping[str, Any]) -> dict[str, bool]:
    """Keep known categories; anything that is not literally True is denied."""
    result: dict[str, bool] = {}
    for key, value in patch.items():
        try:
            category = ConsentCategory(key)
        except ValueError:
            continue
        result[category.value] = value is True
    for category in ALWAYS_ON:
        result[category.value] = True
    return result


class ConsentManager:
    """
    Single authority on whether delivery may proceed.

    Defaults to fully denied (except always-on categories). ``get`` hands out
    copies; every ``update`` stamps a strictly increasing ``updated_at`` and
    notifies listeners.
    """

    def __init__(self, initial: Mapping[str, Any] | ConsentState | None = None):
        self._lock = threading.RLock()
        self._listeners: list[ConsentListener] = []
        if isinstance(initial, ConsentState):
            initial = initial.to_dict()
        self._state = ConsentState(**_known_categories(dict(initial or {})))

    def get(self) -> ConsentState:
        """Current state (a copy, never the live object)."""
        with self._lock:
            return replace(self._state)

    def update(self, patch: Mapping[str, Any] | None) -> ConsentState:
        """Merge known categories from ``patch``. Unknown keys are dropped."""
        with self._lock:
            changes = _known_categories(dict(patch or {}))
            # Strictly increasing so the timestamp works as a change fingerprint
            stamp = max(now_ms(), self._state.updated_at + 1)
            self._state = replace(self._state, **changes, updated_at=stamp)
            snapshot = replace(self._state)
            listeners = list(self._listeners)

        self._notify(listeners, snapshot)
        return snapshot

    def set_category(self, category: ConsentCategory | str, granted: bool) -> ConsentState:
        key = category.value if isinstance(category, ConsentCategory) else category
        return self.update({key: granted})

    def allows(self, category: ConsentCategory | str) -> bool:
        with self._lock:
            return self._state.allows(category)

    def allows_analytics(self) -> bool:
        return self.allows(ConsentCategory.ANALYTICS)

    def has(
        self,
        categories: Iterable[ConsentCategory | str],
        mode: Literal["all", "any"] = "all",
    ) -> bool:
        """Compound check. ``all`` of nothing is True, ``any`` of nothing is False."""
        with self._lock:
            results = [self._state.allows(c) for c in categories]
        if mode == "any":
            return any(results)
        if mode == "all":
            return all(results)
        raise ValueError(f"Unknown consent mode: {mode}")

    def get_for(self, categories: Iterable[ConsentCategory | str]) -> dict[str, bool]:
        with self._lock:
            return {
                (c.value if isinstance(c, ConsentCategory) else c): self._state.allows(c)
                for c in categories
            }

    def add_listener(self, listener: ConsentListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: ConsentListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    @staticmethod
    def _notify(listeners: list[ConsentListener], state: ConsentState) -> None:
        for listener in listeners:
            try:
                listener(replace(state))
            except Exception as e:
                logger.warning(f"Consent listener failed: {e}")
