"""In-process event bus connecting the build engine to host adapters."""

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

import structlog


logger = structlog.get_logger()

EventType = Literal[
    "build-started",
    "build-completed",
    "build-failed",
    "file-refresh",
    "watch-changed",
]


@dataclass(frozen=True)
class Event:
    """A published event.

    Attributes:
        type: Event type.
        payload: JSON-compatible event data.
        emitted_at: When the event was published.
    """

    type: EventType
    payload: dict[str, Any] = field(default_factory=dict)
    emitted_at: datetime = field(default_factory=lambda: datetime.now(UTC))


Handler = Callable[[Event], None]


class Subscription:
    """Handle returned by ``EventBus.subscribe``."""

    def __init__(
        self, bus: "EventBus", event_type: EventType, handler: Handler
    ) -> None:
        """Initialize the subscription."""
        self._bus = bus
        self._event_type = event_type
        self._handler = handler
        self._active = True

    @property
    def handler(self) -> Handler:
        """Get the subscribed callable."""
        return self._handler

    @property
    def active(self) -> bool:
        """Check if the handler still receives events."""
        return self._active

    def unsubscribe(self) -> None:
        """Stop receiving events. Safe to call twice."""
        if self._active:
            self._bus._remove(self._event_type, self)
            self._active = False


class EventBus:
    """Synchronous publish/subscribe bus.

    Handlers run on the publishing thread in subscription order. A handler
    that raises is logged and skipped; it never affects the publisher.
    """

    def __init__(self) -> None:
        """Initialize an empty bus."""
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._lock = threading.Lock()
        self._log = logger.bind(component="events")

    def subscribe(self, event_type: EventType, handler: Handler) -> Subscription:
        """Register a handler for one event type.

        Args:
            event_type: Event type to receive.
            handler: Callable invoked with each Event.

        Returns:
            Subscription that can be cancelled.
        """
        subscription = Subscription(self, event_type, handler)
        with self._lock:
            self._subscriptions.setdefault(event_type, []).append(subscription)
        return subscription

    def emit(self, event_type: EventType, **payload: Any) -> Event:
        """Publish an event.

        Args:
            event_type: Event type.
            **payload: Event data.

        Returns:
            The published Event.
        """
        event = Event(type=event_type, payload=payload)
        with self._lock:
            handlers = [s.handler for s in self._subscriptions.get(event_type, [])]
        self._log.debug("event_emitted", event_type=event_type, handlers=len(handlers))
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:  # noqa: BLE001
                self._log.warning(
                    "event_handler_failed",
                    event_type=event_type,
                    error=str(e),
                )
        return event

    def handler_count(self, event_type: EventType) -> int:
        """Count handlers registered for an event type."""
        with self._lock:
            return len(self._subscriptions.get(event_type, []))

    def _remove(self, event_type: str, subscription: Subscription) -> None:
        # Identity, not equality: the same handler may be subscribed twice
        with self._lock:
            subscriptions = self._subscriptions.get(event_type, [])
            self._subscriptions[event_type] = [
                s for s in subscriptions if s is not subscription
            ]
