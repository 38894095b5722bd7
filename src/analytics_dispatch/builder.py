"""Fluent assembly of an Analytics instance."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from .config import DispatchConfig, create_provider, create_queue
from .consent import ConsentManager, ConsentState
from .events.catalog import validation_enabled
from .events.types import EventContext, Router, merge_context
from .middleware.builtins import (
    logging_middleware,
    pii_scrubber_middleware,
    sampling_middleware,
    validation_middleware,
)
from .middleware.chain import Middleware
from .orchestrator import Analytics, ErrorHandler, OnlineCheck
from .providers.base import BaseProvider
from .queue.persistent import PersistentQueue


logger = logging.getLogger(__name__)


class AnalyticsBuilder:
    """
    Collects configuration and wires it into an ``Analytics`` on ``build()``.

    Every step ignores None. Each ``build()`` returns a new instance with its
    own copies of the collected lists and context. Providers, the queue and
    an explicitly passed ``ConsentManager`` are shared objects.

    Usage:
        analytics = (
            AnalyticsBuilder.create()
            .add_provider(ConsoleProvider())
            .add_middleware(pii_scrubber_middleware())
            .with_default_context({"source": "web"})
            .with_consent({"analytics": True})
            .build()
        )
    """

    def __init__(self) -> None:
        self._providers: list[BaseProvider] = []
        self._middlewares: list[Middleware] = []
        self._default_context: dict[str, Any] = {}
        self._consent: ConsentManager | dict[str, Any] | None = None
        self._router: Router | None = None
        self._debug = False
        self._on_error: ErrorHandler | None = None
        self._is_online: OnlineCheck | None = None
        self._queue: PersistentQueue | None = None
        self._queue_offline = False

    @classmethod
    def create(cls) -> AnalyticsBuilder:
        return cls()

    def add_provider(self, provider: BaseProvider | None) -> AnalyticsBuilder:
        if provider is not None:
            self._providers.append(provider)
        return self

    def add_providers(self, providers: Iterable[BaseProvider | None] | None) -> AnalyticsBuilder:
        for provider in providers or []:
            self.add_provider(provider)
        return self

    def add_middleware(self, middleware: Middleware | None) -> AnalyticsBuilder:
        if middleware is not None:
            self._middlewares.append(middleware)
        return self

    def add_middlewares(self, middlewares: Iterable[Middleware | None] | None) -> AnalyticsBuilder:
        for middleware in middlewares or []:
            self.add_middleware(middleware)
        return self

    def with_default_context(
        self,
        context: EventContext | Mapping[str, Any] | None,
    ) -> AnalyticsBuilder:
        self._default_context = merge_context(self._default_context, context)
        return self

    def with_consent(
        self,
        consent: ConsentManager | ConsentState | Mapping[str, Any] | None,
    ) -> AnalyticsBuilder:
        if consent is None:
            return self
        if isinstance(consent, ConsentManager):
            self._consent = consent
        elif isinstance(consent, ConsentState):
            self._consent = consent.to_dict()
        else:
            self._consent = dict(consent)
        return self

    def with_router(self, router: Router | None) -> AnalyticsBuilder:
        if router is not None:
            self._router = router
        return self

    def with_debug_mode(self, enabled: bool = True) -> AnalyticsBuilder:
        self._debug = bool(enabled)
        return self

    def with_error_handler(self, on_error: ErrorHandler | None) -> AnalyticsBuilder:
        if on_error is not None:
            self._on_error = on_error
        return self

    def with_online_check(self, is_online: OnlineCheck | None) -> AnalyticsBuilder:
        if is_online is not None:
            self._is_online = is_online
        return self

    def with_queue(
        self,
        queue: PersistentQueue | None,
        queue_offline: bool = True,
    ) -> AnalyticsBuilder:
        if queue is not None:
            self._queue = queue
            self._queue_offline = queue_offline
        return self

    def from_config(self, config: DispatchConfig | None) -> AnalyticsBuilder:
        """
        Apply a ``DispatchConfig`` on top of what was collected so far.

        ``validation.enabled`` is scoped to the built instance; when it is
        unset, the process-wide ``ANALYTICS_ENV`` toggle decides.
        """
        if config is None:
            return self

        for provider_config in config.providers:
            if provider_config.enabled:
                self.add_provider(create_provider(provider_config))

        self.with_default_context(config.default_context)
        self.with_consent(config.consent.to_dict())
        self.with_queue(create_queue(config.queue), queue_offline=config.queue.queue_offline)
        if config.debug:
            self.with_debug_mode(True)

        # An explicit setting applies to this instance only
        enabled = config.validation.enabled
        if enabled or (enabled is None and validation_enabled()):
            self.add_middleware(validation_middleware(
                strict=config.validation.strict,
                enabled=enabled,
            ))
        if config.scrub_pii:
            self.add_middleware(pii_scrubber_middleware())
        if config.sampling.enabled:
            self.add_middleware(sampling_middleware(
                default_rate=config.sampling.default_rate,
                event_rates=config.sampling.event_rates,
            ))
        return self

    def build(self) -> Analytics:
        middlewares = list(self._middlewares)
        if self._debug:
            middlewares.append(logging_middleware(include_context=True, level=logging.INFO))

        consent = self._consent
        if isinstance(consent, dict):
            consent = dict(consent)

        logger.debug(
            f"Building analytics with {len(self._providers)} provider(s), "
            f"{len(middlewares)} middleware"
        )
        return Analytics(
            providers=list(self._providers),
            middleware=middlewares,
            consent=consent,
            default_context=dict(self._default_context),
            router=self._router,
            on_error=self._on_error,
            is_online=self._is_online,
            queue=self._queue,
            queue_offline=self._queue_offline,
            debug=self._debug,
        )
