"""Shared test fixtures for the analytics dispatch core."""

import pytest

from analytics_dispatch.events import catalog
from analytics_dispatch.events.types import AnalyticsEvent
from analytics_dispatch.instance import reset_analytics
from analytics_dispatch.orchestrator import Analytics
from analytics_dispatch.providers.memory import RecordingProvider


# =============================================================================
# Error capture
# =============================================================================

class ErrorRecorder:
    """Callable usable as ``on_error`` that remembers every report."""

    def __init__(self):
        self.calls = []

    def __call__(self, error, event=None):
        self.calls.append((error, event))

    @property
    def errors(self):
        return [error for error, _ in self.calls]

    def __len__(self):
        return len(self.calls)


@pytest.fixture
def on_error() -> ErrorRecorder:
    return ErrorRecorder()


# =============================================================================
# Providers
# =============================================================================

@pytest.fixture
def p1() -> RecordingProvider:
    return RecordingProvider("p1")


@pytest.fixture
def p2() -> RecordingProvider:
    return RecordingProvider("p2")


# =============================================================================
# Orchestrator
# =============================================================================

@pytest.fixture
def analytics(p1, p2, on_error) -> Analytics:
    """Orchestrator with two recording providers and analytics consent granted."""
    return Analytics(
        providers=[p1, p2],
        consent={"analytics": True},
        on_error=on_error,
    )


@pytest.fixture
def wallet_event() -> AnalyticsEvent:
    return AnalyticsEvent(
        name="wallet_connected",
        payload={"wallet_label": "MetaMask", "wallet_address": "0xabc", "chain_id": "1"},
    )


# =============================================================================
# Global state
# =============================================================================

@pytest.fixture(autouse=True)
def restore_validation():
    """Tests may toggle catalog validation; put it back afterwards."""
    enabled = catalog.validation_enabled()
    catalog.set_validation_enabled(True)
    yield
    catalog.set_validation_enabled(enabled)


@pytest.fixture(autouse=True)
def reset_singleton():
    reset_analytics()
    yield
    reset_analytics()
