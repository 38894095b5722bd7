"""
Analytics Dispatch - client-side telemetry dispatch core

A single entry point for product events:
- Typed event catalog with optional payload validation
- Consent-gated delivery (default deny)
- Middleware pipeline for enrichment, scrubbing and sampling
- Pluggable providers with capability probing and per-provider isolation
- Durable offline queue
"""

__version__ = "0.1.0"

from .builder import AnalyticsBuilder
from .config import DispatchConfig
from .consent import ConsentCategory, ConsentManager, ConsentState
from .errors import AnalyticsError, EventValidationError, InvalidProviderError, QueueStorageError
from .events import AnalyticsEvent, EventName, RouteDecision, event, validate_event
from .instance import get_analytics, reset_analytics, set_analytics
from .orchestrator import Analytics

__all__ = [
    "Analytics",
    "AnalyticsBuilder",
    "AnalyticsError",
    "AnalyticsEvent",
    "ConsentCategory",
    "ConsentManager",
    "ConsentState",
    "DispatchConfig",
    "EventName",
    "EventValidationError",
    "InvalidProviderError",
    "QueueStorageError",
    "RouteDecision",
    "event",
    "get_analytics",
    "reset_analytics",
    "set_analytics",
    "validate_event",
]
