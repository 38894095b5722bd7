"""Built-in middleware factories.

Each factory returns a pure ``(event, context) -> event | None`` function that
can be passed to ``Analytics.use`` or ``MiddlewareChain.use``.
"""

from __future__ import annotations

import logging
import random
import re
from typing import Any, Callable, Iterable, Mapping

from ..errors import EventValidationError
from ..events.catalog import EventName, validate_event
from ..events.types import AnalyticsEvent, EventContext, RouteDecision
from .chain import Middleware


logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
DEFAULT_PII_FIELDS = ("email", "phone", "address", "ssn")


def _key(name: str | EventName) -> str:
    return name.value if isinstance(name, EventName) else name


def logging_middleware(
    prefix: str = "[Analytics]",
    include_payload: bool = True,
    include_context: bool = False,
    event_filter: Iterable[str | EventName] | None = None,
    enabled: bool = True,
    level: int = logging.INFO,
    log: logging.Logger | None = None,
) -> Middleware:
    """Log each event as it passes. Never changes or drops it."""
    names = {_key(n) for n in event_filter} if event_filter is not None else None
    out = log or logger

    def log_event(event: AnalyticsEvent, context: EventContext | None) -> AnalyticsEvent:
        if not enabled or (names is not None and event.name not in names):
            return event

        parts = [f"{prefix} {event.name} ts={event.timestamp}"]
        if include_payload:
            parts.append(f"payload={event.payload}")
        if include_context:
            parts.append(f"context={context}")
        out.log(level, " ".join(parts))
        return event

    return log_event


def pii_scrubber_middleware(
    pii_fields: Iterable[str] = DEFAULT_PII_FIELDS,
    email_pattern: re.Pattern[str] | str = EMAIL_PATTERN,
    replace_with: str = "[REDACTED]",
) -> Middleware:
    """
    Redact PII from the payload.

    Keys named in ``pii_fields`` (case-insensitive) are replaced outright;
    email addresses inside any string value are masked. Nested mappings and
    lists are walked recursively. Context is left alone: ``user_id`` is a
    pseudonymous identifier.
    """
    fields = {f.lower() for f in pii_fields}
    pattern = re.compile(email_pattern) if isinstance(email_pattern, str) else email_pattern

    def scrub(value: Any) -> Any:
        if isinstance(value, str):
            return pattern.sub(replace_with, value)
        if isinstance(value, (list, tuple)):
            return [scrub(v) for v in value]
        if isinstance(value, Mapping):
            return {
                k: replace_with if str(k).lower() in fields else scrub(v)
                for k, v in value.items()
            }
        return value

    def scrub_pii(event: AnalyticsEvent, context: EventContext | None) -> AnalyticsEvent:
        if not event.payload:
            return event
        return event.evolve(payload=scrub(event.payload))

    return scrub_pii


def sampling_middleware(
    default_rate: float = 1.0,
    event_rates: Mapping[str | EventName, float] | None = None,
    rng: Callable[[], float] = random.random,
) -> Middleware:
    """Keep a fraction of events, per-event rates overriding the default."""
    rates = {_key(k): v for k, v in (event_rates or {}).items()}

    def sample(event: AnalyticsEvent, context: EventContext | None) -> AnalyticsEvent | None:
        rate = rates.get(event.name, default_rate)
        if rng() >= rate:
            return None
        return event.with_context(sampled=True, sample_rate=rate)

    return sample


def rename_middleware(rename_map: Mapping[str | EventName, str]) -> Middleware:
    """Rename events, e.g. to match a downstream naming scheme."""
    names = {_key(k): v for k, v in rename_map.items()}

    def rename(event: AnalyticsEvent, context: EventContext | None) -> AnalyticsEvent:
        new_name = names.get(event.name)
        if new_name is None or new_name == event.name:
            return event
        return event.evolve(name=new_name)

    return rename


def validation_middleware(
    strict: bool = False,
    on_validation_error: Callable[[str, Exception], None] | None = None,
    enabled: bool | None = None,
) -> Middleware:
    """
    Validate payloads against the catalog.

    Non-strict: log and keep the event. Strict: drop invalid events.
    ``enabled=None`` follows the process-wide validation toggle.
    """

    def validate(event: AnalyticsEvent, context: EventContext | None) -> AnalyticsEvent | None:
        try:
            validate_event(event.name, event.payload, strict=True, enabled=enabled)
        except EventValidationError as e:
            if on_validation_error is not None:
                on_validation_error(event.name, e)
            if strict:
                return None
            logger.warning(str(e))
        return event

    return validate


def routing_middleware(
    rules: Mapping[str | EventName, RouteDecision | Mapping[str, Any]],
) -> Middleware:
    """
    Attach per-event routing rules to the event context.

    Pair with ``context_router`` so the orchestrator honours them.
    """
    decisions = {_key(k): RouteDecision.coerce(v) for k, v in rules.items()}

    def attach_routing(event: AnalyticsEvent, context: EventContext | None) -> AnalyticsEvent:
        decision = decisions.get(event.name)
        if decision is None:
            return event
        return event.with_context(routing=decision.to_dict())

    return attach_routing


def context_router(event: AnalyticsEvent) -> RouteDecision | None:
    """Router reading rules placed in ``context['routing']``."""
    routing = (event.context or {}).get("routing")
    if routing is None:
        return None
    return RouteDecision.coerce(routing)


def default_middlewares() -> list[Middleware]:
    """Validation, PII scrubbing, sampling of noisy events, then logging."""
    return [
        validation_middleware(strict=False),
        pii_scrubber_middleware(),
        sampling_middleware(
            default_rate=1.0,
            event_rates={
                EventName.PAGE_VIEW: 0.1,
                EventName.CLICKED_CTA: 0.5,
            },
        ),
        logging_middleware(level=logging.DEBUG),
    ]
