"""
Workflow events published by the stringing-application service.

Events are named in past tense and carry full snapshots of the user and
the application at publish time. Subscribers (the notification service)
rebuild their context from the payload alone.
"""

from typing import Optional

from notifications.models import ApplicationCtx, UserCtx
from stringing.event_bus import Event

SOURCE = "stringing-applications"


class EventTypes:
    """Constants for workflow event names."""
    APPLICATION_SUBMITTED = "StringingApplicationSubmitted"
    STATUS_CHANGED = "StringingStatusChanged"
    SCHEDULE_CONFIRMED = "StringingScheduleConfirmed"
    SCHEDULE_UPDATED = "StringingScheduleUpdated"
    SCHEDULE_CANCELED = "StringingScheduleCanceled"
    APPLICATION_CANCELED = "StringingApplicationCanceled"

    ALL = (
        APPLICATION_SUBMITTED,
        STATUS_CHANGED,
        SCHEDULE_CONFIRMED,
        SCHEDULE_UPDATED,
        SCHEDULE_CANCELED,
        APPLICATION_CANCELED,
    )


def _event(
    event_type: str,
    user: UserCtx,
    application: ApplicationCtx,
    admin_detail_url: Optional[str] = None,
    **extra,
) -> Event:
    payload = {
        "user": user.model_dump(mode="json"),
        "application": application.model_dump(mode="json"),
        "admin_detail_url": admin_detail_url,
    }
    payload.update(extra)
    return Event(event_type=event_type, source=SOURCE, payload=payload)


def application_submitted(
    user: UserCtx, application: ApplicationCtx, admin_detail_url: Optional[str] = None
) -> Event:
    """Published when a customer submits a stringing application."""
    return _event(EventTypes.APPLICATION_SUBMITTED, user, application, admin_detail_url)


def status_changed(
    user: UserCtx,
    application: ApplicationCtx,
    previous_status: Optional[str] = None,
    admin_detail_url: Optional[str] = None,
) -> Event:
    """
    Published when an admin moves an application to a new status.

    `application.status` is the new status.
    """
    return _event(
        EventTypes.STATUS_CHANGED,
        user,
        application,
        admin_detail_url,
        previous_status=previous_status,
    )


def schedule_confirmed(user: UserCtx, application: ApplicationCtx) -> Event:
    return _event(EventTypes.SCHEDULE_CONFIRMED, user, application)


def schedule_updated(user: UserCtx, application: ApplicationCtx) -> Event:
    return _event(EventTypes.SCHEDULE_UPDATED, user, application)


def schedule_canceled(user: UserCtx, application: ApplicationCtx) -> Event:
    return _event(EventTypes.SCHEDULE_CANCELED, user, application)


def application_canceled(user: UserCtx, application: ApplicationCtx) -> Event:
    return _event(EventTypes.APPLICATION_CANCELED, user, application)
