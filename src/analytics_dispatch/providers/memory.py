"""In-memory provider for tests and local development."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from ..events.types import AnalyticsEvent, PageContext
from .base import ProviderInitOptions, ToggleMixin


@dataclass
class RecordedCall:
    """One recorded provider call."""
    method: str
    args: tuple[Any, ...]


class RecordingProvider(ToggleMixin):
    """
    Provider that records every call it receives.

    Supports every optional capability. ``fail_on`` names operations that
    should raise (``"track"``, ``"init"``, ...) to exercise error isolation.

    Usage:
        provider = RecordingProvider("mock")
        analytics.add_provider(provider)
        analytics.track(event)
        assert provider.has("wallet_connected")
    """

    def __init__(
        self,
        provider_id: str = "recording",
        fail_on: Iterable[str] = (),
        error: Exception | None = None,
    ) -> None:
        self._id = provider_id
        self.fail_on = set(fail_on)
        self.error = error or RuntimeError(f"{provider_id} failure")
        self.events: list[AnalyticsEvent] = []
        self.calls: list[RecordedCall] = []
        self.init_options: list[ProviderInitOptions] = []
        self.flushed = 0
        self.shut_down = False

    @property
    def id(self) -> str:
        return self._id

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append(RecordedCall(method=method, args=args))
        if method in self.fail_on:
            raise self.error

    def init(self, options: ProviderInitOptions) -> None:
        self.init_options.append(options)
        self._record("init", options)

    def track(self, event: AnalyticsEvent) -> None:
        self._record("track", event)
        self.events.append(event)

    def identify(self, user_id: str, traits: Optional[dict[str, Any]] = None) -> None:
        self._record("identify", user_id, traits)

    def group(self, group_id: str, traits: Optional[dict[str, Any]] = None) -> None:
        self._record("group", group_id, traits)

    def page(self, context: Optional[PageContext] = None) -> None:
        self._record("page", context)

    def flush(self) -> None:
        self._record("flush")
        self.flushed += 1

    def shutdown(self) -> None:
        self._record("shutdown")
        self.shut_down = True
        self.set_enabled(False)

    # Test helpers

    def calls_to(self, method: str) -> list[RecordedCall]:
        return [c for c in self.calls if c.method == method]

    def has(self, event_name: str) -> bool:
        return any(e.name == event_name for e in self.events)

    def get(self, event_name: str) -> AnalyticsEvent:
        """First tracked event with the given name, or AssertionError."""
        for e in self.events:
            if e.name == event_name:
                return e
        raise AssertionError(
            f"No event '{event_name}' tracked. Tracked: {[e.name for e in self.events]}"
        )

    def clear(self) -> None:
        self.events.clear()
        self.calls.clear()
        self.init_options.clear()
