"""
Per-event provider configuration.

Older call sites describe, for each event, whether a given provider receives
it, under which name, and with which properties. ``LegacyConfigProvider``
expresses that as an ordinary provider: it wraps another provider and applies
the event's configuration before delegating ``track``. Every other attribute
(identify, page, flush, ...) is forwarded, so capability probes see exactly
what the wrapped provider supports.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Optional

from ..events.catalog import EventName
from ..events.types import AnalyticsEvent
from .base import BaseProvider, MaybeAwaitable


logger = logging.getLogger(__name__)

PropertyTransform = Callable[[dict[str, Any]], dict[str, Any]]


@dataclass(frozen=True)
class ProviderEventConfig:
    """How one provider handles one event."""
    enabled: bool = True
    # Provider-specific event name (may differ from the canonical name)
    event_name: Optional[str] = None
    # Only these payload keys are sent (e.g. pre-registered custom dimensions)
    registered_params: Optional[frozenset[str]] = None
    # Applied in order: enrich, transform, then the registered_params filter
    enrich: Optional[PropertyTransform] = None
    transform: Optional[PropertyTransform] = None

    @classmethod
    def of(
        cls,
        enabled: bool = True,
        event_name: str | None = None,
        registered_params: Iterable[str] | None = None,
        enrich: PropertyTransform | None = None,
        transform: PropertyTransform | None = None,
    ) -> ProviderEventConfig:
        return cls(
            enabled=enabled,
            event_name=event_name,
            registered_params=frozenset(registered_params) if registered_params is not None else None,
            enrich=enrich,
            transform=transform,
        )

    def apply(self, event: AnalyticsEvent) -> AnalyticsEvent:
        payload = dict(event.payload)
        if self.enrich is not None:
            payload = self.enrich(payload)
        if self.transform is not None:
            payload = self.transform(payload)
        if self.registered_params is not None:
            filtered = sorted(k for k in payload if k not in self.registered_params)
            if filtered:
                logger.debug(f"Dropping unregistered params for '{event.name}': {filtered}")
            payload = {k: v for k, v in payload.items() if k in self.registered_params}
        return event.evolve(name=self.event_name or event.name, payload=payload)


class LegacyConfigProvider:
    """
    Wrap a provider with a per-event configuration map.

    Events missing from the map pass through unchanged, or are skipped
    when ``strict`` is set.
    """

    def __init__(
        self,
        inner: BaseProvider,
        configs: Mapping[str | EventName, ProviderEventConfig],
        strict: bool = False,
    ) -> None:
        self._inner = inner
        self._configs = {
            (k.value if isinstance(k, EventName) else k): v for k, v in configs.items()
        }
        self._strict = strict

    @property
    def id(self) -> str:
        return self._inner.id

    @property
    def inner(self) -> BaseProvider:
        return self._inner

    def is_enabled(self) -> bool:
        return self._inner.is_enabled()

    def set_enabled(self, enabled: bool) -> None:
        self._inner.set_enabled(enabled)

    def configure(self, name: str | EventName, config: ProviderEventConfig) -> None:
        self._configs[name.value if isinstance(name, EventName) else name] = config

    def track(self, event: AnalyticsEvent) -> MaybeAwaitable:
        config = self._configs.get(event.name)
        if config is None:
            if self._strict:
                logger.debug(f"No configuration for '{event.name}' on '{self.id}', skipping")
                return None
            return self._inner.track(event)

        if not config.enabled:
            return None

        return self._inner.track(config.apply(event))

    def __getattr__(self, name: str) -> Any:
        # Only reached for attributes not defined here: optional capabilities
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self._inner, name)
