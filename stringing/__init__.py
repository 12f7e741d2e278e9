"""
Stringing-application workflow side of the notification flow.

- The workflow publishes past-tense events on the event bus
- NotificationService subscribes and calls the notifier triggers
- Publishers never import the notification core directly
"""

from stringing.event_bus import Event, EventBus, get_event_bus, reset_event_bus
from stringing.events import EventTypes
from stringing.notification_service import NotificationService

__all__ = [
    "Event",
    "EventBus",
    "EventTypes",
    "get_event_bus",
    "reset_event_bus",
    "NotificationService",
]
