"""
Analytics orchestrator.

The single entry point product code talks to. It owns the provider registry,
the consent manager, the middleware chain, the default context and the
per-event router, and fans every event out to the providers that should
receive it.

Nothing raised by a provider, a middleware, the router or the consent
manager escapes ``track``/``identify``/``group``/``page``. Failures are
reported through ``on_error(error, event)`` and logged.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
import logging
import threading
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional

from .consent import ConsentCategory, ConsentManager, ConsentState
from .errors import InvalidProviderError
from .events.types import (
    AnalyticsEvent,
    EventContext,
    PageContext,
    RouteDecision,
    Router,
    merge_context,
    now_ms,
)
from .middleware.chain import Middleware, MiddlewareChain
from .providers.base import (
    BaseProvider,
    ProviderEntry,
    ProviderInitOptions,
    has_flush,
    has_group,
    has_identify,
    has_init,
    has_page,
    has_shutdown,
    is_provider,
)
from .queue.persistent import PersistentQueue


logger = logging.getLogger(__name__)

ErrorHandler = Callable[[BaseException, Optional[AnalyticsEvent]], None]
OnlineCheck = Callable[[], bool]


async def _await(awaitable: Awaitable[Any]) -> Any:
    return await awaitable


class Analytics:
    """
    Routes events through middleware and consent checks to providers.

    Delivery is fire-and-forget: ``track`` returns as soon as every selected
    provider has been handed the event. Awaitable results are scheduled on
    the running loop, or on a background loop thread when the caller has
    none, and observed only to report failures. ``init``,
    ``flush`` and ``shutdown`` are awaited across all providers concurrently.

    Usage:
        analytics = Analytics(providers=[ConsoleProvider()], consent={"analytics": True})
        analytics.set_default_context({"source": "web"})
        analytics.track(event(EventName.WALLET_CONNECTED, {"wallet_label": "MetaMask"}))
        await analytics.shutdown()
    """

    def __init__(
        self,
        providers: Iterable[BaseProvider] | None = None,
        middleware: Iterable[Middleware] | None = None,
        consent: ConsentManager | Mapping[str, Any] | ConsentState | None = None,
        default_context: EventContext | Mapping[str, Any] | None = None,
        router: Router | None = None,
        on_error: ErrorHandler | None = None,
        is_online: OnlineCheck | None = None,
        queue: PersistentQueue | None = None,
        queue_offline: bool = False,
        debug: bool = False,
    ):
        self._lock = threading.RLock()
        self._registry: dict[str, ProviderEntry] = {}
        self._chain = MiddlewareChain()
        self._consent = consent if isinstance(consent, ConsentManager) else ConsentManager(consent)
        self._default_context: dict[str, Any] = dict(default_context or {})
        self._router = router
        self._on_error = on_error
        self._is_online = is_online
        self._online = True
        self._queue = queue
        self._queue_offline = queue_offline
        self.debug = debug

        # (updated_at, analytics allowed)
        self._consent_cache: tuple[int, bool] | None = None
        self._pending: set[asyncio.Future | concurrent.futures.Future] = set()
        # Runs provider coroutines when track is called outside an event loop
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: threading.Thread | None = None
        self._closed = False
        self._stats = {
            "tracked": 0,
            "delivered": 0,
            "dropped_consent": 0,
            "dropped_offline": 0,
            "dropped_middleware": 0,
            "queued": 0,
            "provider_errors": 0,
        }

        # Direct updates on a shared manager must invalidate the cache too
        self._consent.add_listener(self._on_consent_change)

        for provider in providers or []:
            self.add_provider(provider)
        for fn in middleware or []:
            self.use(fn)

    # Registry

    def add_provider(self, provider: BaseProvider) -> Analytics:
        """Register a provider and initialize it with the current consent and context."""
        if not is_provider(provider):
            self._report(InvalidProviderError(
                f"{type(provider).__name__} does not implement the provider contract "
                f"(id, is_enabled, set_enabled, track)"
            ))
            return self

        entry = ProviderEntry(id=provider.id, provider=provider)
        with self._lock:
            replaced = provider.id in self._registry
            self._registry[provider.id] = entry

        if replaced:
            logger.info(f"Replaced provider '{provider.id}'")
        else:
            logger.info(f"Registered provider '{provider.id}'")

        if has_init(provider):
            self._init_provider(entry)
        return self

    def remove_provider(self, provider_id: str) -> Analytics:
        """Shut a provider down (if it can) and deregister it."""
        with self._lock:
            entry = self._registry.get(provider_id)
        if entry is None:
            return self

        if has_shutdown(entry.provider):
            self._invoke(entry, "shutdown")

        with self._lock:
            if self._registry.get(provider_id) is entry:
                del self._registry[provider_id]
        logger.info(f"Removed provider '{provider_id}'")
        return self

    def enable_provider(self, provider_id: str) -> Analytics:
        return self._set_registry_flag(provider_id, True)

    def disable_provider(self, provider_id: str) -> Analytics:
        return self._set_registry_flag(provider_id, False)

    def _set_registry_flag(self, provider_id: str, enabled: bool) -> Analytics:
        with self._lock:
            entry = self._registry.get(provider_id)
            if entry is not None:
                entry.enabled = enabled
        if entry is None:
            logger.debug(f"No provider '{provider_id}' to {'enable' if enabled else 'disable'}")
        return self

    # Pipeline configuration

    def use(self, middleware: Middleware | None) -> Analytics:
        self._chain.use(middleware)
        return self

    def set_router(self, router: Router | None) -> Analytics:
        with self._lock:
            self._router = router
        return self

    def set_consent(self, patch: Mapping[str, Any] | None) -> Analytics:
        """
        Update consent and re-initialize every provider so vendor-side
        consent flags follow the change immediately.
        """
        try:
            self._consent.update(patch)
        except Exception as e:
            logger.error(f"Consent update failed: {e}")
            self._report(e)
            return self
        self._invalidate_consent_cache()

        for entry in self._entries():
            if has_init(entry.provider):
                self._init_provider(entry)

        if self._queue is not None:
            self.flush_queue()
        return self

    def set_default_context(self, patch: EventContext | Mapping[str, Any] | None) -> Analytics:
        with self._lock:
            self._default_context = merge_context(self._default_context, patch)
        return self

    def set_online(self, online: bool) -> Analytics:
        """Manual online flag, used when no ``is_online`` callable was given."""
        with self._lock:
            was_online = self._online
            self._online = bool(online)
        if self._online and not was_online:
            logger.info("Back online, flushing queued events")
            self.flush_queue()
        return self

    # Delivery

    def track(
        self,
        event: AnalyticsEvent | Mapping[str, Any],
        options: RouteDecision | Mapping[str, Any] | None = None,
    ) -> None:
        """Process an event and hand it to every selected provider."""
        try:
            self._track(event, options)
        except Exception as e:
            logger.error(f"Unexpected error tracking event: {e}")
            self._report(e, event if isinstance(event, AnalyticsEvent) else None)

    def _track(
        self,
        event: AnalyticsEvent | Mapping[str, Any],
        options: RouteDecision | Mapping[str, Any] | None,
    ) -> None:
        if not isinstance(event, AnalyticsEvent):
            try:
                event = AnalyticsEvent.from_dict(event)
            except ValueError as e:
                self._report(e)
                return

        if self._closed:
            logger.debug(f"Analytics is shut down, ignoring '{event.name}'")
            return

        with self._lock:
            self._stats["tracked"] += 1
            default_context = dict(self._default_context)

        enriched = event.evolve(
            context=merge_context(default_context, event.context),
            timestamp=event.timestamp if event.timestamp is not None else now_ms(),
        )

        processed = self._chain.process(enriched, enriched.context)
        if processed is None:
            self._count("dropped_middleware")
            return

        if not self._analytics_allowed():
            logger.debug(f"No analytics consent, dropping '{processed.name}'")
            self._count("dropped_consent")
            return

        if not self._check_online():
            if self._queue is not None and self._queue_offline:
                self._queue.enqueue(processed)
                self._count("queued")
                logger.debug(f"Offline, queued '{processed.name}'")
            else:
                self._count("dropped_offline")
                logger.debug(f"Offline, dropping '{processed.name}'")
            return

        decision = self._resolve_route(processed, options)
        self._dispatch(processed, decision)

    def _dispatch(self, event: AnalyticsEvent, decision: RouteDecision) -> int:
        """Hand the event to each active provider the decision allows."""
        targets = [e for e in self._active_entries() if decision.allows(e.id)]
        if self.debug:
            logger.info(f"Dispatching '{event.name}' to {[e.id for e in targets]}")

        delivered = 0
        for entry in targets:
            if self._invoke(entry, "track", event, event=event):
                delivered += 1
        return delivered

    def _resolve_route(
        self,
        event: AnalyticsEvent,
        options: RouteDecision | Mapping[str, Any] | None,
    ) -> RouteDecision:
        router_decision = RouteDecision()
        router = self._router
        if router is not None:
            try:
                router_decision = RouteDecision.coerce(router(event))
            except Exception as e:
                logger.warning(f"Router failed for '{event.name}', using call options only: {e}")
                self._report(e, event)
        return router_decision.combine(RouteDecision.coerce(options))

    def identify(self, user_id: str, traits: Optional[dict[str, Any]] = None) -> None:
        self._broadcast("identify", has_identify, user_id, traits)

    def group(self, group_id: str, traits: Optional[dict[str, Any]] = None) -> None:
        self._broadcast("group", has_group, group_id, traits)

    def page(self, context: Optional[PageContext] = None) -> None:
        self._broadcast("page", has_page, context)

    def _broadcast(self, operation: str, capable: Callable[[Any], bool], *args: Any) -> None:
        """Call an optional capability on every active provider that has it."""
        if self._closed:
            return
        if not self._analytics_allowed():
            logger.debug(f"No analytics consent, skipping {operation}")
            return
        for entry in self._active_entries():
            if capable(entry.provider):
                self._invoke(entry, operation, *args)

    # Offline queue

    def flush_queue(self, max_batch: int = 200) -> int:
        """
        Deliver queued events, oldest first, in batches of ``max_batch``.

        Queued events already went through middleware, so they go straight
        to routing. Returns how many events reached at least one provider.
        """
        if self._queue is None or self._closed:
            return 0
        if not self._analytics_allowed() or not self._check_online():
            return 0

        delivered = 0
        # Bounded by the size at entry so the loop always terminates
        remaining = self._queue.size()
        while remaining > 0:
            batch = self._queue.drain(min(max_batch, remaining))
            if not batch:
                break
            remaining -= len(batch)
            for item in batch:
                if self._dispatch(item.event, self._resolve_route(item.event, None)):
                    delivered += 1

        if delivered:
            logger.info(f"Delivered {delivered} queued event(s)")
        return delivered

    def queue_size(self) -> int:
        return self._queue.size() if self._queue is not None else 0

    def clear_queue(self) -> None:
        if self._queue is not None:
            self._queue.clear()

    # Lifecycle

    async def init(self) -> None:
        """Re-initialize every provider concurrently."""
        try:
            options = self._init_options()
        except Exception as e:
            self._report(e)
            return
        entries = [e for e in self._entries() if has_init(e.provider)]
        await self._gather("init", entries, options)

    async def flush(self) -> None:
        """Wait for in-flight provider calls, then flush every provider."""
        await self._drain_pending()
        entries = [e for e in self._entries() if has_flush(e.provider)]
        await self._gather("flush", entries)

    async def shutdown(self) -> None:
        """Shut every provider down. Later ``track`` calls are ignored."""
        await self._drain_pending()
        self._closed = True
        self._consent.remove_listener(self._on_consent_change)
        entries = [e for e in self._entries() if has_shutdown(e.provider)]
        await self._gather("shutdown", entries)
        self._stop_background_loop()
        logger.info(f"Analytics shut down. Stats: {self.stats}")

    async def _gather(self, operation: str, entries: list[ProviderEntry], *args: Any) -> None:
        async def call(entry: ProviderEntry) -> None:
            result = getattr(entry.provider, operation)(*args)
            if inspect.isawaitable(result):
                await result

        results = await asyncio.gather(
            *[call(entry) for entry in entries],
            return_exceptions=True,
        )
        for entry, result in zip(entries, results):
            if isinstance(result, Exception):
                self._provider_failed(entry.id, operation, result, None)

    async def _drain_pending(self) -> None:
        with self._lock:
            pending = [
                asyncio.wrap_future(f) if isinstance(f, concurrent.futures.Future) else f
                for f in self._pending
            ]
        if pending:
            # Failures are reported by the done callbacks
            await asyncio.gather(*pending, return_exceptions=True)

    # Introspection

    @property
    def providers(self) -> list[BaseProvider]:
        return [e.provider for e in self._entries()]

    def provider_ids(self) -> list[str]:
        return [e.id for e in self._entries()]

    def get_provider(self, provider_id: str) -> BaseProvider | None:
        with self._lock:
            entry = self._registry.get(provider_id)
        return entry.provider if entry is not None else None

    def is_provider_enabled(self, provider_id: str) -> bool:
        with self._lock:
            entry = self._registry.get(provider_id)
        return entry is not None and entry.is_active

    @property
    def consent(self) -> ConsentManager:
        return self._consent

    @property
    def default_context(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._default_context)

    @property
    def middleware(self) -> MiddlewareChain:
        return self._chain

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def stats(self) -> dict:
        """Get delivery statistics."""
        with self._lock:
            stats = dict(self._stats)
            stats["providers"] = len(self._registry)
            stats["pending"] = len(self._pending)
        stats["queue_depth"] = self.queue_size()
        return stats

    # Internals

    def _entries(self) -> list[ProviderEntry]:
        with self._lock:
            return list(self._registry.values())

    def _active_entries(self) -> list[ProviderEntry]:
        return [e for e in self._entries() if e.is_active]

    def _count(self, key: str, n: int = 1) -> None:
        with self._lock:
            self._stats[key] += n

    def _init_options(self) -> ProviderInitOptions:
        with self._lock:
            default_context = dict(self._default_context)
        return ProviderInitOptions(consent=self._consent.get(), default_context=default_context)

    def _init_provider(self, entry: ProviderEntry) -> None:
        try:
            options = self._init_options()
        except Exception as e:
            logger.error(f"Could not read consent to initialize '{entry.id}': {e}")
            self._report(e)
            return
        self._invoke(entry, "init", options)

    def _on_consent_change(self, state: ConsentState) -> None:
        self._invalidate_consent_cache()

    def _invalidate_consent_cache(self) -> None:
        with self._lock:
            self._consent_cache = None

    def _analytics_allowed(self) -> bool:
        """Consent check, cached per ``updated_at``. Fails closed."""
        try:
            state = self._consent.get()
        except Exception as e:
            logger.error(f"Consent check failed, treating as denied: {e}")
            self._report(e)
            return False

        with self._lock:
            cached = self._consent_cache
            if cached is not None and cached[0] == state.updated_at:
                return cached[1]
            allowed = state.allows(ConsentCategory.ANALYTICS)
            self._consent_cache = (state.updated_at, allowed)
        return allowed

    def _check_online(self) -> bool:
        if self._is_online is None:
            return self._online
        try:
            return bool(self._is_online())
        except Exception as e:
            logger.warning(f"Online check failed, treating as offline: {e}")
            self._report(e)
            return False

    def _invoke(
        self,
        entry: ProviderEntry,
        operation: str,
        *args: Any,
        event: AnalyticsEvent | None = None,
    ) -> bool:
        """Call one provider operation. Returns False if it raised synchronously."""
        try:
            result = getattr(entry.provider, operation)(*args)
        except Exception as e:
            self._provider_failed(entry.id, operation, e, event)
            return False

        if operation == "track":
            self._count("delivered")
        if inspect.isawaitable(result):
            self._observe(result, entry.id, operation, event)
        return True

    def _observe(
        self,
        awaitable: Awaitable[Any],
        provider_id: str,
        operation: str,
        event: AnalyticsEvent | None,
    ) -> None:
        """Schedule an awaitable provider result, routing its failure to on_error."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            task = asyncio.run_coroutine_threadsafe(_await(awaitable), self._background_loop())
        else:
            task = asyncio.ensure_future(awaitable)
        with self._lock:
            self._pending.add(task)

        def done(t: asyncio.Future | concurrent.futures.Future) -> None:
            with self._lock:
                self._pending.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                self._provider_failed(provider_id, operation, exc, event)

        task.add_done_callback(done)

    def _background_loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None:
                loop = asyncio.new_event_loop()

                def run() -> None:
                    asyncio.set_event_loop(loop)
                    try:
                        loop.run_forever()
                    finally:
                        loop.close()

                self._loop_thread = threading.Thread(
                    target=run, name="analytics-dispatch", daemon=True
                )
                self._loop_thread.start()
                self._loop = loop
            return self._loop

    def _stop_background_loop(self, timeout_s: float = 2.0) -> None:
        with self._lock:
            loop, thread = self._loop, self._loop_thread
            self._loop = self._loop_thread = None
        if loop is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        if thread is not None and thread.is_alive():
            thread.join(timeout=timeout_s)

    def _provider_failed(
        self,
        provider_id: str,
        operation: str,
        error: BaseException,
        event: AnalyticsEvent | None,
    ) -> None:
        self._count("provider_errors")
        logger.error(f"Provider '{provider_id}' {operation} failed: {error}")
        self._report(error, event)

    def _report(self, error: BaseException, event: AnalyticsEvent | None = None) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(error, event)
        except Exception as e:
            logger.error(f"on_error handler failed: {e}")
