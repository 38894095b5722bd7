"""Console provider for development/debugging."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from ..events.types import AnalyticsEvent, PageContext
from .base import ToggleMixin


@dataclass
class ConsoleProvider(ToggleMixin):
    """
    Provider that writes events to console (stdout/stderr).

    Useful for development and debugging.
    """
    id: str = "console"

    # Output destination
    stream: str = "stdout"  # stdout | stderr

    # Output format
    format: str = "json"  # json | compact | pretty

    # Prefix for each line
    prefix: str = "[ANALYTICS] "

    def track(self, event: AnalyticsEvent) -> None:
        self._write(self._format_event(event))

    def identify(self, user_id: str, traits: Optional[dict[str, Any]] = None) -> None:
        self._write(f"identify {user_id} {json.dumps(traits or {}, default=str)}")

    def page(self, context: Optional[PageContext] = None) -> None:
        self._write(f"page {json.dumps(context or {}, default=str)}")

    def flush(self) -> None:
        self._out().flush()

    def _out(self):
        return sys.stdout if self.stream == "stdout" else sys.stderr

    def _write(self, line: str) -> None:
        print(f"{self.prefix}{line}", file=self._out())

    def _format_event(self, event: AnalyticsEvent) -> str:
        if self.format == "json":
            return json.dumps(event.to_dict(), default=str)
        elif self.format == "compact":
            ts = (
                datetime.fromtimestamp(event.timestamp / 1000, tz=timezone.utc).isoformat()
                if event.timestamp is not None else "-"
            )
            user = (event.context or {}).get("user_id") or "anonymous"
            return f"{ts} {user} {event.name} {json.dumps(event.payload, default=str)}"
        else:  # pretty
            return json.dumps(event.to_dict(), indent=2, default=str)
