"""
Exceptions raised by the notification core.

Propagation rules:
- UnknownEventError and PersistenceError reach the caller of a trigger.
  Either one means no notification could even be attempted.
- ChannelError (and ConfigurationMissingError) are caught by the
  dispatcher and recorded on the outbox record as a failure. Delivery
  problems never fail the business operation that fired the trigger.
"""


class NotificationError(Exception):
    """Base class for all notification core errors."""


class UnknownEventError(NotificationError, ValueError):
    """An event tag has no renderer mapping (code/deployment mismatch)."""

    def __init__(self, event_type: object):
        self.event_type = event_type
        super().__init__(f"Unknown event type: {event_type!r}")


class PersistenceError(NotificationError):
    """The outbox store could not durably record or re-read a record."""


class ChannelError(NotificationError):
    """A channel send failed (transport error, provider rejection, ...)."""

    def __init__(self, channel: str, message: str):
        self.channel = channel
        super().__init__(f"[{channel}] {message}")


class ConfigurationMissingError(ChannelError):
    """Required provider configuration for a channel is absent."""

    def __init__(self, channel: str, setting: str):
        self.setting = setting
        super().__init__(channel, f"missing configuration: {setting}")
