"""
Provider contract.

Every sink implements the small ``BaseProvider`` protocol. Identify, group,
page, init, flush and shutdown are independent optional capabilities: the
orchestrator probes for them at call time instead of forcing every vendor
adapter to stub out methods it does not support.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Optional, Protocol, Union, runtime_checkable

from ..consent import ConsentState
from ..events.types import AnalyticsEvent, EventContext, PageContext


logger = logging.getLogger(__name__)


# A provider call may complete synchronously or hand back an awaitable
MaybeAwaitable = Union[None, Awaitable[None]]


@dataclass
class ProviderInitOptions:
    """What a provider receives on registration and on every consent change."""
    consent: ConsentState
    default_context: EventContext = field(default_factory=dict)


@runtime_checkable
class BaseProvider(Protocol):
    """Required capability of every sink."""

    @property
    def id(self) -> str:
        """Stable identifier, unique within one orchestrator."""
        ...

    def is_enabled(self) -> bool: ...

    def set_enabled(self, enabled: bool) -> None: ...

    def track(self, event: AnalyticsEvent) -> MaybeAwaitable: ...


@runtime_checkable
class IdentifyCapable(Protocol):
    def identify(self, user_id: str, traits: Optional[dict[str, Any]] = None) -> MaybeAwaitable: ...


@runtime_checkable
class GroupCapable(Protocol):
    def group(self, group_id: str, traits: Optional[dict[str, Any]] = None) -> MaybeAwaitable: ...


@runtime_checkable
class PageCapable(Protocol):
    def page(self, context: Optional[PageContext] = None) -> MaybeAwaitable: ...


@runtime_checkable
class InitCapable(Protocol):
    def init(self, options: ProviderInitOptions) -> MaybeAwaitable: ...


@runtime_checkable
class FlushCapable(Protocol):
    def flush(self) -> MaybeAwaitable: ...


@runtime_checkable
class ShutdownCapable(Protocol):
    def shutdown(self) -> MaybeAwaitable: ...


def _callable_attr(obj: Any, name: str) -> bool:
    return callable(getattr(obj, name, None))


def is_provider(obj: Any) -> bool:
    """Structural check for the required capability."""
    provider_id = getattr(obj, "id", None)
    return (
        isinstance(provider_id, str)
        and bool(provider_id)
        and _callable_attr(obj, "is_enabled")
        and _callable_attr(obj, "set_enabled")
        and _callable_attr(obj, "track")
    )


def has_identify(provider: Any) -> bool:
    return _callable_attr(provider, "identify")


def has_group(provider: Any) -> bool:
    return _callable_attr(provider, "group")


def has_page(provider: Any) -> bool:
    return _callable_attr(provider, "page")


def has_init(provider: Any) -> bool:
    return _callable_attr(provider, "init")


def has_flush(provider: Any) -> bool:
    return _callable_attr(provider, "flush")


def has_shutdown(provider: Any) -> bool:
    return _callable_attr(provider, "shutdown")


def capabilities(provider: Any) -> frozenset[str]:
    """Names of the optional capabilities a provider exposes."""
    probes = {
        "identify": has_identify,
        "group": has_group,
        "page": has_page,
        "init": has_init,
        "flush": has_flush,
        "shutdown": has_shutdown,
    }
    return frozenset(name for name, probe in probes.items() if probe(provider))


@dataclass
class ProviderEntry:
    """
    Registry record for one provider.

    Delivery needs both gates open: the registry flag (toggled by the
    orchestrator) and the provider's own flag (a provider may switch itself
    off, e.g. on shutdown).
    """
    id: str
    provider: BaseProvider
    enabled: bool = True

    @property
    def is_active(self) -> bool:
        if not self.enabled:
            return False
        try:
            return bool(self.provider.is_enabled())
        except Exception as e:
            logger.warning(f"Provider '{self.id}' is_enabled() failed, treating as disabled: {e}")
            return False


class ToggleMixin:
    """Provider-side enabled flag shared by the bundled providers."""
    _enabled: bool = True

    def is_enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = bool(enabled)
