"""Analytics event types."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Optional, TypedDict


class EventSource(str, Enum):
    """Where an event originated."""
    WEB = "web"
    MOBILE = "mobile"
    SERVER = "server"


class PageContext(TypedDict, total=False):
    url: str
    referrer: str
    title: str
    path: str


class DeviceContext(TypedDict, total=False):
    user_agent: str
    screen: dict[str, int]


class EventContext(TypedDict, total=False):
    """
    Context attached to every event.

    Well-known keys are listed here; extra keys (e.g. ``chain_id``) are
    allowed and flow through untouched.
    """
    # Pseudonymous identifier, never raw PII
    user_id: str
    anonymous_id: str
    session_id: str
    page: PageContext
    device: DeviceContext
    locale: str
    app_version: str
    source: str  # EventSource value
    # Marks synthetic/E2E traffic
    test: bool


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def merge_context(
    base: Mapping[str, Any] | None,
    patch: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Shallow merge: keys in ``patch`` override ``base`` one by one."""
    merged: dict[str, Any] = dict(base or {})
    if patch:
        merged.update(patch)
    return merged


@dataclass(frozen=True)
class AnalyticsEvent:
    """
    A single analytics event on its way to the providers.

    Events are never edited in place. Each pipeline step that changes an
    event builds a new one with ``evolve``.
    """
    name: str
    payload: dict[str, Any] = field(default_factory=dict)
    context: Optional[EventContext] = None
    # Epoch milliseconds, assigned by the orchestrator when absent
    timestamp: Optional[int] = None

    def evolve(self, **changes: Any) -> AnalyticsEvent:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def with_payload(self, **updates: Any) -> AnalyticsEvent:
        return self.evolve(payload={**self.payload, **updates})

    def with_context(self, **updates: Any) -> AnalyticsEvent:
        return self.evolve(context=merge_context(self.context, updates))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "payload": dict(self.payload),
            "context": dict(self.context) if self.context is not None else None,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AnalyticsEvent:
        if not isinstance(data, Mapping) or not isinstance(data.get("name"), str):
            raise ValueError(f"Not an analytics event: {data!r}")
        timestamp = data.get("timestamp")
        return cls(
            name=data["name"],
            payload=dict(data.get("payload") or {}),
            context=dict(data["context"]) if data.get("context") is not None else None,
            timestamp=int(timestamp) if timestamp is not None else None,
        )


@dataclass(frozen=True)
class RouteDecision:
    """
    Per-event routing rules.

    ``include_providers`` acts as a whitelist when present and non-empty;
    ``exclude_providers`` is always subtracted afterwards.
    """
    include_providers: Optional[frozenset[str]] = None
    exclude_providers: Optional[frozenset[str]] = None

    @classmethod
    def of(
        cls,
        include: Iterable[str] | None = None,
        exclude: Iterable[str] | None = None,
    ) -> RouteDecision:
        return cls(
            include_providers=frozenset(include) if include is not None else None,
            exclude_providers=frozenset(exclude) if exclude is not None else None,
        )

    @classmethod
    def coerce(cls, value: RouteDecision | Mapping[str, Any] | None) -> RouteDecision:
        """Accept a RouteDecision, a plain mapping, or None."""
        if value is None:
            return cls()
        if isinstance(value, RouteDecision):
            return value
        return cls.of(
            include=value.get("include_providers"),
            exclude=value.get("exclude_providers"),
        )

    def combine(self, other: RouteDecision) -> RouteDecision:
        """
        Combine a router decision (self) with call-site options (other).

        Exclusions are unioned. The router's include list wins when it has
        one, otherwise the call site's is used.
        """
        include = self.include_providers or other.include_providers
        exclude = (self.exclude_providers or frozenset()) | (other.exclude_providers or frozenset())
        return RouteDecision(include_providers=include, exclude_providers=exclude)

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly form (sorted lists, None kept)."""
        return {
            "include_providers": sorted(self.include_providers) if self.include_providers is not None else None,
            "exclude_providers": sorted(self.exclude_providers) if self.exclude_providers is not None else None,
        }

    def allows(self, provider_id: str) -> bool:
        if self.include_providers and provider_id not in self.include_providers:
            return False
        if self.exclude_providers and provider_id in self.exclude_providers:
            return False
        return True


# Options accepted by Analytics.track have the same shape as a router decision
TrackOptions = RouteDecision

Router = Callable[[AnalyticsEvent], Optional[RouteDecision]]
