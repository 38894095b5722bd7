"""ZeroMQ provider for streaming events to downstream collectors."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from ..events.types import AnalyticsEvent
from .base import ProviderInitOptions, ToggleMixin


logger = logging.getLogger(__name__)


@dataclass
class ZmqProvider(ToggleMixin):
    """
    Provider that publishes events to ZeroMQ.

    Uses the PUB/SUB pattern (or PUSH/PULL) for fan-out to collectors.
    ``track`` returns a coroutine; the orchestrator schedules it and routes
    failures to ``on_error``.

    Config:
        endpoint: ZMQ endpoint (e.g., "tcp://*:5556")
        topic: Topic prefix for messages (default: "analytics")
        socket_type: push | pub (default: pub)
        high_water_mark: Max queued messages before dropping
    """
    id: str = "zmq"
    endpoint: str = "tcp://*:5556"
    topic: str = "analytics"
    socket_type: str = "pub"  # pub | push
    high_water_mark: int = 10000

    # Internal state
    _context: Any = field(default=None, init=False, repr=False)
    _socket: Any = field(default=None, init=False, repr=False)

    def init(self, options: ProviderInitOptions) -> None:
        # Called again on every consent change; the socket is opened once
        if self._socket is None:
            self._open()

    def _open(self) -> None:
        try:
            import zmq
            import zmq.asyncio
        except ImportError:
            raise RuntimeError("pyzmq required: pip install pyzmq")

        self._context = zmq.asyncio.Context()

        if self.socket_type == "pub":
            self._socket = self._context.socket(zmq.PUB)
        else:
            self._socket = self._context.socket(zmq.PUSH)

        self._socket.set_hwm(self.high_water_mark)
        self._socket.bind(self.endpoint)

        logger.info(f"ZMQ provider bound to {self.endpoint} ({self.socket_type})")

    def format_message(self, event: AnalyticsEvent) -> str:
        """Wire format: topic + space + json."""
        return f"{self.topic} {json.dumps(event.to_dict(), default=str)}"

    async def track(self, event: AnalyticsEvent) -> None:
        if not self._socket:
            raise RuntimeError("ZMQ provider not initialized")
        await self._socket.send_string(self.format_message(event))

    def shutdown(self) -> None:
        if self._socket:
            self._socket.close()
            self._socket = None
        if self._context:
            self._context.term()
            self._context = None
        self.set_enabled(False)
        logger.info("ZMQ provider stopped")


@dataclass
class ZmqReceiver:
    """
    Helper for receiving published events (for testing/downstream).

    Usage:
        receiver = ZmqReceiver(endpoint="tcp://localhost:5556")
        receiver.start()
        async for event in receiver.receive():
            print(event.name)
    """
    endpoint: str
    topic: str = "analytics"

    _context: Any = field(default=None, init=False, repr=False)
    _socket: Any = field(default=None, init=False, repr=False)

    def start(self) -> None:
        try:
            import zmq
            import zmq.asyncio
        except ImportError:
            raise RuntimeError("pyzmq required: pip install pyzmq")

        self._context = zmq.asyncio.Context()
        self._socket = self._context.socket(zmq.SUB)
        self._socket.connect(self.endpoint)
        self._socket.subscribe(self.topic)

        logger.info(f"ZMQ receiver connected to {self.endpoint}")

    def stop(self) -> None:
        if self._socket:
            self._socket.close()
            self._socket = None
        if self._context:
            self._context.term()
            self._context = None

    @staticmethod
    def parse_message(message: str) -> AnalyticsEvent:
        _, json_str = message.split(" ", 1)
        return AnalyticsEvent.from_dict(json.loads(json_str))

    async def receive(self, limit: Optional[int] = None):
        """Async generator that yields events."""
        received = 0
        while limit is None or received < limit:
            try:
                message = await self._socket.recv_string()
                event = self.parse_message(message)
            except Exception as e:
                logger.error(f"ZMQ receive error: {e}")
                break
            received += 1
            yield event
