"""Event model and catalog."""

from .types import (
    AnalyticsEvent,
    DeviceContext,
    EventContext,
    EventSource,
    PageContext,
    RouteDecision,
    Router,
    TrackOptions,
    merge_context,
    now_ms,
)
from .catalog import (
    EVENT_SCHEMAS,
    EventName,
    EventPayload,
    event,
    is_known_event,
    schema_for,
    set_validation_enabled,
    validate_event,
    validation_enabled,
)

__all__ = [
    "AnalyticsEvent",
    "DeviceContext",
    "EventContext",
    "EventSource",
    "PageContext",
    "RouteDecision",
    "Router",
    "TrackOptions",
    "merge_context",
    "now_ms",
    "EVENT_SCHEMAS",
    "EventName",
    "EventPayload",
    "event",
    "is_known_event",
    "schema_for",
    "set_validation_enabled",
    "validate_event",
    "validation_enabled",
]
