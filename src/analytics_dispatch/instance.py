"""Process-wide Analytics instance for application bootstrap.

Library code takes an ``Analytics`` explicitly; only the application's top
level should reach for these helpers.
"""

from __future__ import annotations

import threading
from typing import Optional

from .builder import AnalyticsBuilder
from .orchestrator import Analytics


_instance: Optional[Analytics] = None
_lock = threading.Lock()


def get_analytics() -> Analytics:
    """Get the shared instance, building a default one on first use."""
    global _instance
    with _lock:
        if _instance is None:
            _instance = AnalyticsBuilder.create().build()
        return _instance


def set_analytics(analytics: Analytics) -> None:
    global _instance
    with _lock:
        _instance = analytics


def reset_analytics() -> None:
    """Forget the shared instance (tests, re-bootstrap)."""
    global _instance
    with _lock:
        _instance = None
