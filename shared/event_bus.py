"""
In-memory event bus for device-change notifications.

Stores publish an event here whenever a device document changes; the
change-watch trigger source subscribes to it. Publishers don't know who is
listening and subscribers don't know which store (in-memory fixtures or the
Realtime Database listener) produced the change.

Design decisions:
- Synchronous delivery: the publisher's thread runs every handler
- Type-based subscriptions (subscribe to event types, not topics)
- Events are delivered to all subscribers in registration order
- No persistence (events are not stored, just delivered)
- Subscriber lists are guarded by a lock; the Firebase listener publishes
  from its own thread
"""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import uuid4

logger = logging.getLogger("event_bus")


@dataclass
class Event:
    """
    A record of something that happened to a device.

    Attributes:
        event_id: Unique identifier for this event instance
        event_type: String name of the event type (used for routing)
        timestamp: When the event was published
        source: Which store published the event
        payload: The event-specific data
    """
    event_type: str
    payload: dict[str, Any]
    source: str
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __str__(self) -> str:
        return f"Event({self.event_type}, id={self.event_id[:8]}, source={self.source})"


# Type alias for event handler functions
EventHandler = Callable[[Event], None]


class EventBus:
    """
    Simple in-memory event bus implementing pub/sub pattern.

    Example usage:
        bus = EventBus()

        def on_change(event):
            print(f"Device changed: {event.payload['device_id']}")
        bus.subscribe(EventTypes.DEVICE_CHANGED, on_change)

        bus.publish(device_changed("MEDIBOX001", before, after, source="memory"))
    """

    def __init__(self):
        # Map of event_type -> list of handlers
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """
        Subscribe to events of a specific type.

        Note: The same handler can be subscribed multiple times (will be called multiple times).
        """
        with self._lock:
            self._subscribers[event_type].append(handler)
        logger.debug(f"Subscribed handler to '{event_type}' events")

    def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        """
        Unsubscribe a handler from an event type.

        Returns:
            True if the handler was found and removed, False otherwise
        """
        with self._lock:
            try:
                self._subscribers[event_type].remove(handler)
            except ValueError:
                return False
        logger.debug(f"Unsubscribed handler from '{event_type}' events")
        return True

    def publish(self, event: Event) -> int:
        """
        Publish an event to all subscribers.

        Returns:
            Number of handlers that received the event

        Note: Handlers are called synchronously in the order they subscribed.
        If a handler raises an exception, it's logged but doesn't stop other handlers.
        """
        logger.debug(f"Publishing: {event}")

        with self._lock:
            handlers = list(self._subscribers.get(event.event_type, []))

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(f"Handler raised exception for {event}")

        return len(handlers)

    def get_subscriber_count(self, event_type: str) -> int:
        """Get the number of subscribers for an event type."""
        with self._lock:
            return len(self._subscribers.get(event_type, []))

    def clear_subscribers(self) -> None:
        """Remove all subscribers (useful for testing)."""
        with self._lock:
            self._subscribers.clear()
