"""Exception types for the dispatch core."""

from __future__ import annotations


class AnalyticsError(Exception):
    """Base class for all dispatch-core errors."""


class EventValidationError(AnalyticsError):
    """Raised when a payload does not match its catalog schema (strict mode only)."""
    def __init__(self, event_name: str, cause: Exception):
        super().__init__(f"Invalid payload for event '{event_name}': {cause}")
        self.event_name = event_name
        self.cause = cause


class InvalidProviderError(AnalyticsError, TypeError):
    """An object registered as a provider lacks the required capabilities."""


class QueueStorageError(AnalyticsError):
    """The queue's backing store could not be read or written."""
