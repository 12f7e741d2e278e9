"""
Notification service for stringing-application events.

Subscribes to workflow events on the event bus and forwards each one to the
matching StringingNotifier trigger. The workflow never calls the notifier
directly; it only publishes.

Design decisions:
- One handler per workflow event, all registered in start()
- Context is rebuilt from the event payload snapshot, nothing is looked up
- Trigger outcomes are logged; failed deliveries are already recorded in
  the outbox by the dispatcher
- Render or persistence errors propagate out of the handler and are logged
  by the event bus
"""

import logging
from collections import deque
from typing import Callable, Optional

from notifications.dispatcher import DispatchOutcome
from notifications.models import ApplicationCtx, UserCtx
from notifications.triggers import StringingNotifier
from stringing.event_bus import Event, EventBus, get_event_bus
from stringing.events import EventTypes

logger = logging.getLogger("stringing.notification_service")

# Most recent trigger outcomes kept for inspection
RECENT_OUTCOMES = 100


class NotificationService:
    """
    Event-driven front end for the notifier.

    Example:
        service = NotificationService(event_bus=bus, notifier=notifier)
        service.start()
        bus.publish(application_submitted(user, application))
    """

    def __init__(
        self,
        notifier: StringingNotifier,
        event_bus: Optional[EventBus] = None,
        keep_outcomes: int = RECENT_OUTCOMES,
    ):
        """
        Args:
            notifier: Triggers to call for each workflow event
            event_bus: Event bus to subscribe to (defaults to singleton)
            keep_outcomes: How many recent outcomes to keep in `outcomes`
        """
        self.notifier = notifier
        self.event_bus = event_bus or get_event_bus()
        self._started = False
        self._handlers: dict[str, Callable[[Event], None]] = {
            EventTypes.APPLICATION_SUBMITTED: self._handle_application_submitted,
            EventTypes.STATUS_CHANGED: self._handle_status_changed,
            EventTypes.SCHEDULE_CONFIRMED: self._handle_schedule_confirmed,
            EventTypes.SCHEDULE_UPDATED: self._handle_schedule_updated,
            EventTypes.SCHEDULE_CANCELED: self._handle_schedule_canceled,
            EventTypes.APPLICATION_CANCELED: self._handle_application_canceled,
        }
        self.outcomes: deque[DispatchOutcome] = deque(maxlen=keep_outcomes)

    def start(self) -> None:
        """Subscribe to every stringing workflow event."""
        if self._started:
            logger.warning("NotificationService already started")
            return

        for event_type, handler in self._handlers.items():
            self.event_bus.subscribe(event_type, handler)

        self._started = True
        logger.info("NotificationService started - subscribed to events")

    def stop(self) -> None:
        """Stop the service by unsubscribing from events."""
        if not self._started:
            return

        for event_type, handler in self._handlers.items():
            self.event_bus.unsubscribe(event_type, handler)

        self._started = False
        logger.info("NotificationService stopped")

    # =========================================================================
    # Event Handlers
    # =========================================================================

    @staticmethod
    def _snapshot(event: Event) -> tuple[UserCtx, ApplicationCtx]:
        payload = event.payload
        user = UserCtx.model_validate(payload.get("user") or {})
        application = ApplicationCtx.model_validate(payload["application"])
        return user, application

    def _remember(self, event: Event, outcome: DispatchOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.deduplicated:
            logger.info(f"{event.event_type}: already notified (outbox {outcome.record_id})")
        elif outcome.ok:
            logger.info(f"{event.event_type}: notified via {', '.join(outcome.delivered)}")
        else:
            logger.warning(f"{event.event_type}: delivery {outcome.status} ({outcome.error})")

    def _handle_application_submitted(self, event: Event) -> None:
        user, application = self._snapshot(event)
        outcome = self.notifier.on_application_submitted(
            user, application, admin_detail_url=event.payload.get("admin_detail_url")
        )
        self._remember(event, outcome)

    def _handle_status_changed(self, event: Event) -> None:
        """
        Handle a status change.

        A change back to the same status carries no news and is ignored.
        """
        user, application = self._snapshot(event)
        previous = event.payload.get("previous_status")
        if previous is not None and previous == application.status:
            logger.debug(f"Status of {application.application_id} unchanged ({previous}), not notifying")
            return
        outcome = self.notifier.on_status_updated(
            user, application, admin_detail_url=event.payload.get("admin_detail_url")
        )
        self._remember(event, outcome)

    def _handle_schedule_confirmed(self, event: Event) -> None:
        user, application = self._snapshot(event)
        self._remember(event, self.notifier.on_schedule_confirmed(user, application))

    def _handle_schedule_updated(self, event: Event) -> None:
        user, application = self._snapshot(event)
        self._remember(event, self.notifier.on_schedule_updated(user, application))

    def _handle_schedule_canceled(self, event: Event) -> None:
        user, application = self._snapshot(event)
        self._remember(event, self.notifier.on_schedule_canceled(user, application))

    def _handle_application_canceled(self, event: Event) -> None:
        user, application = self._snapshot(event)
        self._remember(event, self.notifier.on_application_canceled(user, application))
