"""
Stringing-service triggers.

One method per domain event. Each trigger decides the dedupe key and the
fixed channel set for its event, then hands off to the Dispatcher.

Dedupe keys are built from the application id plus the value being
announced (status or schedule). Re-announcing the same status or the same
slot collapses into the existing outbox record; a changed status or slot
yields a new key and a new notification.
"""

import logging
from typing import Optional

from notifications.dispatcher import DispatchOutcome, Dispatcher
from notifications.models import (
    ApplicationCtx,
    ApplicationStatus,
    Channel,
    EventContext,
    EventType,
    UserCtx,
)

logger = logging.getLogger("notifications.triggers")

UNSCHEDULED_KEY = "unscheduled"
UNKNOWN_STATUS_KEY = "unknown"

# Fixed channel sets per event
CHANNELS: dict[EventType, list[Channel]] = {
    EventType.APPLICATION_SUBMITTED: [Channel.EMAIL, Channel.SLACK],
    EventType.STATUS_UPDATED: [Channel.EMAIL, Channel.SLACK],
    EventType.SERVICE_COMPLETED: [Channel.EMAIL, Channel.SMS],
    EventType.SERVICE_IN_PROGRESS: [Channel.EMAIL, Channel.SMS],
    EventType.SCHEDULE_CONFIRMED: [Channel.EMAIL, Channel.SMS],
    EventType.SCHEDULE_UPDATED: [Channel.EMAIL, Channel.SMS],
    EventType.SCHEDULE_CANCELED: [Channel.EMAIL],
    EventType.APPLICATION_CANCELED: [Channel.EMAIL],
}

# Statuses announced with their own event instead of a generic update
STATUS_EVENTS: dict[str, EventType] = {
    ApplicationStatus.COMPLETED: EventType.SERVICE_COMPLETED,
    ApplicationStatus.IN_PROGRESS: EventType.SERVICE_IN_PROGRESS,
}


def schedule_key(application: ApplicationCtx) -> str:
    """'YYYY-MM-DDTHH:MM' for the requested slot, with missing parts spelled out."""
    sd = application.string_details
    date = (sd.preferred_date if sd else None) or UNSCHEDULED_KEY
    time = (sd.preferred_time if sd else None) or UNSCHEDULED_KEY
    return f"{date}T{time}"


def dedupe_key_for(event_type: EventType, application: ApplicationCtx) -> str:
    """Idempotency key for announcing `event_type` about `application`."""
    app_id = application.application_id
    if event_type == EventType.APPLICATION_SUBMITTED:
        return f"{app_id}:submitted"
    if event_type in (EventType.STATUS_UPDATED, EventType.SERVICE_COMPLETED, EventType.SERVICE_IN_PROGRESS):
        status = (application.status or "").strip() or UNKNOWN_STATUS_KEY
        return f"{app_id}:status:{status}"
    if event_type == EventType.SCHEDULE_CONFIRMED:
        return f"{app_id}:schedule:{schedule_key(application)}"
    if event_type == EventType.SCHEDULE_UPDATED:
        return f"{app_id}:schedule-updated:{schedule_key(application)}"
    if event_type == EventType.SCHEDULE_CANCELED:
        return f"{app_id}:schedule-canceled:{schedule_key(application)}"
    if event_type == EventType.APPLICATION_CANCELED:
        return f"{app_id}:application-canceled"
    raise ValueError(f"No dedupe rule for {event_type}")


class StringingNotifier:
    """
    Entry points called when a stringing application changes.

    Example:
        notifier = StringingNotifier(dispatcher)
        notifier.on_application_submitted(user, application, admin_detail_url=url)
    """

    def __init__(self, dispatcher: Dispatcher):
        self.dispatcher = dispatcher

    def _fire(
        self,
        event_type: EventType,
        user: UserCtx,
        application: ApplicationCtx,
        admin_detail_url: Optional[str] = None,
    ) -> DispatchOutcome:
        ctx = EventContext(user=user, application=application, admin_detail_url=admin_detail_url)
        dedupe_key = dedupe_key_for(event_type, application)
        logger.info(f"Trigger {event_type.value} for application {application.application_id}")
        return self.dispatcher.dispatch(
            event_type,
            ctx,
            channels=CHANNELS[event_type],
            dedupe_key=dedupe_key,
        )

    def on_application_submitted(
        self, user: UserCtx, application: ApplicationCtx, admin_detail_url: Optional[str] = None
    ) -> DispatchOutcome:
        return self._fire(EventType.APPLICATION_SUBMITTED, user, application, admin_detail_url)

    def on_status_updated(
        self, user: UserCtx, application: ApplicationCtx, admin_detail_url: Optional[str] = None
    ) -> DispatchOutcome:
        """
        Announce a status change.

        Completed and in-progress statuses get their own event (and an SMS);
        every other status is a generic update.
        """
        event_type = STATUS_EVENTS.get((application.status or "").strip(), EventType.STATUS_UPDATED)
        return self._fire(event_type, user, application, admin_detail_url)

    def on_schedule_confirmed(self, user: UserCtx, application: ApplicationCtx) -> DispatchOutcome:
        return self._fire(EventType.SCHEDULE_CONFIRMED, user, application)

    def on_schedule_updated(self, user: UserCtx, application: ApplicationCtx) -> DispatchOutcome:
        return self._fire(EventType.SCHEDULE_UPDATED, user, application)

    def on_schedule_canceled(self, user: UserCtx, application: ApplicationCtx) -> DispatchOutcome:
        return self._fire(EventType.SCHEDULE_CANCELED, user, application)

    def on_application_canceled(self, user: UserCtx, application: ApplicationCtx) -> DispatchOutcome:
        return self._fire(EventType.APPLICATION_CANCELED, user, application)
