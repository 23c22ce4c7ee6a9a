"""Push notification channel.

The tracker listens for job-scoped events through the PushChannel
protocol. LocalEventBus is an in-process implementation: a transport
adapter (socket.io client, server-sent events reader, websocket) forwards
each received event with emit().
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from typing import Any, Protocol

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict[str, Any]], None]
Unsubscribe = Callable[[], None]


class PushChannel(Protocol):
    """A server-initiated notification transport."""

    @property
    def connected(self) -> bool: ...

    def subscribe(self, event: str, handler: EventHandler) -> Unsubscribe: ...


class LocalEventBus:
    """Thread-safe in-process event bus implementing PushChannel.

    Handlers run on the thread that calls emit().
    """

    def __init__(self, connected: bool = True):
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._lock = threading.Lock()
        self._connected = connected

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        self._connected = True

    def disconnect(self) -> None:
        """Mark the transport as gone and drop every subscription."""
        self._connected = False
        with self._lock:
            self._handlers.clear()

    def subscribe(self, event: str, handler: EventHandler) -> Unsubscribe:
        """Register a handler for one event name.

        Returns:
            Callable that removes the handler; safe to call more than once
        """
        with self._lock:
            self._handlers[event].append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(event)
                if handlers and handler in handlers:
                    handlers.remove(handler)
                    if not handlers:
                        del self._handlers[event]

        return unsubscribe

    def subscriber_count(self, event: str | None = None) -> int:
        """Number of handlers for one event, or for all events."""
        with self._lock:
            if event is not None:
                return len(self._handlers.get(event, []))
            return sum(len(handlers) for handlers in self._handlers.values())

    def emit(self, event: str, payload: dict[str, Any] | None = None) -> int:
        """Deliver an event to its current subscribers.

        Returns:
            Number of handlers the event was delivered to
        """
        if not self._connected:
            logger.debug(f"Dropping {event}: channel disconnected")
            return 0
        with self._lock:
            handlers = list(self._handlers.get(event, []))
        for handler in handlers:
            handler(dict(payload or {}))
        return len(handlers)
