"""Ordered chain of event transformers."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from ..events.types import AnalyticsEvent, EventContext


logger = logging.getLogger(__name__)


Middleware = Callable[[AnalyticsEvent, Optional[EventContext]], Optional[AnalyticsEvent]]


class MiddlewareChain:
    """
    Chain of responsibility over analytics events.

    Steps run left to right. A step returning None drops the event. A step
    that raises, or returns something that is not an event, is skipped and
    the event continues unchanged (fail-open).
    """

    def __init__(self, middlewares: list[Middleware] | None = None):
        self._middlewares: list[Middleware] = []
        for middleware in middlewares or []:
            self.use(middleware)

    def use(self, middleware: Middleware | None) -> MiddlewareChain:
        """Append a step. None is ignored."""
        if middleware is not None:
            self._middlewares.append(middleware)
        return self

    def process(
        self,
        event: AnalyticsEvent,
        context: EventContext | None = None,
    ) -> AnalyticsEvent | None:
        current = event
        for middleware in list(self._middlewares):
            try:
                result = middleware(current, context)
            except Exception as e:
                logger.warning(f"Middleware {_name(middleware)} failed, passing event through: {e}")
                continue

            if result is None:
                logger.debug(f"Event '{current.name}' dropped by {_name(middleware)}")
                return None

            if not isinstance(result, AnalyticsEvent):
                logger.warning(
                    f"Middleware {_name(middleware)} returned {type(result).__name__}, "
                    f"passing event through"
                )
                continue

            current = result
            # Downstream steps see the context of the event as it is now
            context = current.context

        return current

    def size(self) -> int:
        return len(self._middlewares)

    def is_empty(self) -> bool:
        return not self._middlewares

    def clear(self) -> None:
        self._middlewares.clear()

    def __len__(self) -> int:
        return len(self._middlewares)


def _name(middleware: Middleware) -> str:
    return getattr(middleware, "__name__", type(middleware).__name__)
