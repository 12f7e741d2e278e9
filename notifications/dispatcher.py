"""
Dispatcher: render -> persist -> send per channel -> record the outcome.

One call to `Dispatcher.dispatch` is one synchronous delivery attempt.
Channels are sent one after another, in the order the caller listed them,
and the first channel that fails aborts the rest of the attempt.

Error policy:
- Rendering and persistence errors propagate to the caller
- Channel errors are caught and written to the outbox record as `failed`;
  the caller always gets a DispatchOutcome back
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence, Union

from notifications.channels import NotificationChannels
from notifications.config import NotificationSettings
from notifications.models import (
    Channel,
    EventContext,
    EventType,
    OutboxRecord,
    OutboxStatus,
)
from notifications.outbox_store import OutboxStore
from notifications.render import render_event

logger = logging.getLogger("notifications.dispatcher")


@dataclass
class DispatchOutcome:
    """What happened during one dispatch call."""
    record_id: str
    status: str
    deduplicated: bool = False
    attempted: list[str] = field(default_factory=list)
    delivered: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == OutboxStatus.SENT


class Dispatcher:
    """
    Orchestrates one end-to-end notification attempt.

    Example:
        dispatcher = Dispatcher(store, channels, settings)
        outcome = dispatcher.dispatch(
            EventType.APPLICATION_SUBMITTED,
            context,
            channels=[Channel.EMAIL, Channel.SLACK],
            dedupe_key="app-1:submitted",
        )
    """

    def __init__(
        self,
        store: OutboxStore,
        channels: NotificationChannels,
        settings: Optional[NotificationSettings] = None,
    ):
        self.store = store
        self.channels = channels
        self.settings = settings or NotificationSettings()

    def dispatch(
        self,
        event_type: Union[EventType, str],
        ctx: Union[EventContext, Mapping[str, Any]],
        channels: Sequence[Union[Channel, str]],
        dedupe_key: Optional[str] = None,
    ) -> DispatchOutcome:
        """
        Render, persist and deliver one event.

        Args:
            event_type: Event tag to render
            ctx: Event context (model or dict)
            channels: Requested channels, sent in this order
            dedupe_key: Idempotency key; a second call with the same key
                        reuses the stored record and sends nothing

        Returns:
            DispatchOutcome describing the attempt

        Raises:
            UnknownEventError: If the event tag has no template
            PersistenceError: If the outbox cannot record the attempt
        """
        if not isinstance(ctx, EventContext):
            ctx = EventContext.model_validate(ctx)
        requested = [Channel(c) for c in channels]

        rendered = render_event(event_type, ctx, self.settings)

        record, created = self.store.create_or_reuse(
            OutboxRecord(
                event_type=EventType(event_type),
                channels=requested,
                payload=ctx.model_dump(mode="json"),
                rendered=rendered,
                dedupe_key=dedupe_key,
            )
        )

        if not created:
            logger.info(
                f"Duplicate trigger for {event_type} (dedupe_key={dedupe_key}); "
                f"keeping outbox record {record.id} in status {record.status}"
            )
            return DispatchOutcome(record_id=record.id, status=record.status, deduplicated=True)

        return self._deliver(record)

    def _deliver(self, record: OutboxRecord) -> DispatchOutcome:
        """Send the stored snapshot through each requested channel."""
        outcome = DispatchOutcome(record_id=record.id, status=record.status)

        for channel in record.channels:
            payload = record.rendered.for_channel(channel)
            if payload is None:
                logger.warning(f"Outbox {record.id}: nothing rendered for {channel}, skipping")
                outcome.skipped.append(channel)
                continue

            outcome.attempted.append(channel)
            try:
                self.channels.send(channel, payload)
            except Exception as e:
                logger.error(f"Outbox {record.id}: {channel} send failed, aborting remaining channels: {e}")
                failed = self.store.mark_failed(record.id, str(e))
                outcome.status = failed.status
                outcome.error = failed.error
                return outcome
            outcome.delivered.append(channel)

        sent = self.store.mark_sent(record.id)
        outcome.status = sent.status
        logger.info(f"Outbox {record.id} sent via {', '.join(outcome.delivered) or 'no channel'}")
        return outcome
