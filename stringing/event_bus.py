"""
In-process event bus for stringing-application workflow events.

The workflow publishes what happened (an application was submitted, a
status changed, ...) and the notification service subscribes. Neither side
imports the other, so the notification core can be tested on its own.

Design decisions:
- Synchronous delivery, in subscription order, on the publisher's thread
- Routing by event type; "*" receives everything
- A handler that raises is logged with its traceback and skipped; the
  remaining handlers and the publisher carry on
- Published events are kept in a history for inspection and tests
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional
from uuid import uuid4

from notifications.models import utcnow

logger = logging.getLogger("stringing.event_bus")

WILDCARD = "*"


@dataclass(frozen=True)
class Event:
    """
    A past-tense fact published by the workflow.

    Attributes:
        event_type: Routing name (see stringing.events.EventTypes)
        payload: JSON-ready snapshot; subscribers never query back
        source: Publishing component
        event_id: Unique per published instance
        occurred_at: Publication time (UTC)
    """
    event_type: str
    payload: dict[str, Any]
    source: str = "stringing-applications"
    event_id: str = field(default_factory=lambda: uuid4().hex)
    occurred_at: datetime = field(default_factory=utcnow)

    def __str__(self) -> str:
        return f"{self.event_type}#{self.event_id[:8]} from {self.source}"


EventHandler = Callable[[Event], None]


class EventBus:
    """
    Routes published events to subscribed handlers.

    Example:
        bus = EventBus()
        stop = bus.subscribe(EventTypes.APPLICATION_SUBMITTED, handler)
        bus.publish(application_submitted(user, application))
        stop()
    """

    def __init__(self):
        self._routes: dict[str, list[EventHandler]] = {}
        self._history: list[Event] = []

    def subscribe(self, event_type: str, handler: EventHandler) -> Callable[[], bool]:
        """
        Route `event_type` (or WILDCARD) to `handler`.

        Returns:
            A callable that removes this subscription again
        """
        self._routes.setdefault(event_type, []).append(handler)
        return lambda: self.unsubscribe(event_type, handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        """Remove a subscription; False when it was not registered."""
        handlers = self._routes.get(event_type, [])
        if handler not in handlers:
            return False
        handlers.remove(handler)
        return True

    def handlers_for(self, event_type: str) -> list[EventHandler]:
        return [*self._routes.get(event_type, ()), *self._routes.get(WILDCARD, ())]

    def subscriber_count(self, event_type: str) -> int:
        return len(self._routes.get(event_type, ()))

    def publish(self, event: Event) -> int:
        """
        Deliver an event to every matching handler.

        Returns:
            Number of handlers that completed without raising
        """
        self._history.append(event)
        handlers = self.handlers_for(event.event_type)
        if not handlers:
            logger.warning(f"{event} has no subscribers")
            return 0

        logger.info(f"Publishing {event} to {len(handlers)} handler(s)")
        delivered = 0
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                name = getattr(handler, "__qualname__", repr(handler))
                logger.exception(f"{name} failed on {event}")
            else:
                delivered += 1
        return delivered

    def history(self, event_type: Optional[str] = None) -> list[Event]:
        """Published events, oldest first, optionally of one type."""
        return [e for e in self._history if event_type is None or e.event_type == event_type]

    def clear_history(self) -> None:
        self._history.clear()

    def reset(self) -> None:
        """Drop all subscriptions and history."""
        self._routes.clear()
        self._history.clear()


_default_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Process-wide bus used when none is injected."""
    global _default_bus
    if _default_bus is None:
        _default_bus = EventBus()
    return _default_bus


def reset_event_bus() -> EventBus:
    """Replace the process-wide bus (demo runs, tests)."""
    global _default_bus
    _default_bus = EventBus()
    return _default_bus
