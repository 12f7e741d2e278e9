"""
Notification core for the stringing service.

This package renders, persists and delivers customer/operator notifications:
- Domain models and outbox record (models)
- Event renderer and calendar invites (render, calendar_invite)
- Durable, idempotent outbox store (outbox_store)
- Email, SMS and Slack senders (channels)
- Dispatcher and per-event triggers (dispatcher, triggers)
"""

from typing import Optional

import httpx

from notifications.channels import NotificationChannels, NotificationResult
from notifications.config import NotificationSettings
from notifications.dispatcher import DispatchOutcome, Dispatcher
from notifications.errors import (
    ChannelError,
    ConfigurationMissingError,
    NotificationError,
    PersistenceError,
    UnknownEventError,
)
from notifications.models import (
    ApplicationCtx,
    Channel,
    EventContext,
    EventType,
    OutboxRecord,
    OutboxStatus,
    RenderedPayload,
    UserCtx,
)
from notifications.outbox_store import OutboxStore
from notifications.render import render_event
from notifications.triggers import StringingNotifier

__all__ = [
    "ApplicationCtx",
    "Channel",
    "ChannelError",
    "ConfigurationMissingError",
    "DispatchOutcome",
    "Dispatcher",
    "EventContext",
    "EventType",
    "NotificationChannels",
    "NotificationError",
    "NotificationResult",
    "NotificationSettings",
    "OutboxRecord",
    "OutboxStatus",
    "OutboxStore",
    "PersistenceError",
    "RenderedPayload",
    "StringingNotifier",
    "UnknownEventError",
    "UserCtx",
    "build_notifier",
    "render_event",
]


def build_notifier(
    settings: NotificationSettings,
    store: Optional[OutboxStore] = None,
    client: Optional[httpx.Client] = None,
) -> StringingNotifier:
    """
    Wire settings, store, channels and dispatcher into a ready notifier.

    Args:
        settings: Provider and rendering configuration
        store: Outbox to use (a new one at settings.outbox_url otherwise)
        client: Optional HTTP client shared by the channel senders
    """
    store = store if store is not None else OutboxStore(settings.outbox_url)
    dispatcher = Dispatcher(store, NotificationChannels(settings, client), settings)
    return StringingNotifier(dispatcher)
