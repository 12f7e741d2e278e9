"""
Data models for the stringing-service notification core.

Three groups of models live here:
- Event context snapshots (UserCtx, ApplicationCtx, ...) handed in by the
  stringing-application workflow when a trigger fires.
- Rendered payloads, one per channel, produced by the renderer.
- OutboxRecord, the durable row written for every dispatch attempt.

Design decisions:
- Using Pydantic for validation and JSON (de)serialisation of the outbox
- Context models only carry the fields the templates read; the workflow's
  own documents are richer and stay outside this package
- The outbox keeps a snapshot of both the context and the rendered content,
  never a live reference to the application document
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================

class Channel(str, Enum):
    """Outbound transports. SLACK is the operator chat webhook."""
    EMAIL = "email"
    SMS = "sms"
    SLACK = "slack"


class OutboxStatus(str, Enum):
    """
    Outbox record lifecycle.

    QUEUED is the initial state; SENT and FAILED are terminal for this
    package (nothing here retries a failed record).
    """
    QUEUED = "queued"
    SENT = "sent"
    FAILED = "failed"


class EventType(str, Enum):
    """Closed set of stringing-service events that produce notifications."""
    APPLICATION_SUBMITTED = "stringing.application_submitted"
    STATUS_UPDATED = "stringing.status_updated"
    SCHEDULE_CONFIRMED = "stringing.schedule_confirmed"
    SCHEDULE_UPDATED = "stringing.schedule_updated"
    SCHEDULE_CANCELED = "stringing.schedule_canceled"
    APPLICATION_CANCELED = "stringing.application_canceled"
    SERVICE_COMPLETED = "stringing.service_completed"
    SERVICE_IN_PROGRESS = "stringing.service_in_progress"


class ApplicationStatus:
    """
    Application status values that route to dedicated events.

    Any other status string is announced as a generic status update.
    """
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# =============================================================================
# Event Context
# =============================================================================

class UserCtx(BaseModel):
    """The customer being notified."""
    name: Optional[str] = Field(default=None, description="Display name")
    email: Optional[str] = Field(default=None, description="Email recipient")
    phone: Optional[str] = Field(default=None, description="Account phone number")


class StringItem(BaseModel):
    """A string chosen for the job."""
    name: Optional[str] = None


class StringDetails(BaseModel):
    """Racket, strings and the requested visit slot."""
    preferred_date: Optional[str] = Field(default=None, description="YYYY-MM-DD")
    preferred_time: Optional[str] = Field(default=None, description="HH:MM")
    racket_type: Optional[str] = None
    string_types: list[str] = Field(default_factory=list)
    string_items: list[StringItem] = Field(default_factory=list)


class ShippingInfo(BaseModel):
    """How the racket reaches the shop."""
    phone: Optional[str] = None
    collection_method: Optional[str] = Field(
        default=None,
        description="e.g. 'visit', 'self_ship', 'courier'",
    )


class ApplicationCtx(BaseModel):
    """Snapshot of a stringing application at trigger time."""
    application_id: str = Field(..., description="Application identifier")
    order_id: Optional[str] = Field(default=None, description="Originating order, if any")
    status: Optional[str] = Field(default=None, description="Workflow status at trigger time")
    contact_phone: Optional[str] = Field(default=None, description="Phone given on the application")
    string_details: Optional[StringDetails] = None
    shipping_info: Optional[ShippingInfo] = None


class EventContext(BaseModel):
    """Everything the renderer needs for one event."""
    user: UserCtx = Field(default_factory=UserCtx)
    application: ApplicationCtx
    admin_detail_url: Optional[str] = Field(
        default=None,
        description="Back-office link included in operator (Slack) messages",
    )


# =============================================================================
# Rendered Payloads
# =============================================================================

class EmailPayload(BaseModel):
    to: str
    subject: str
    html: str
    ics: Optional[str] = Field(default=None, description="iCalendar attachment body")
    bcc: Optional[str] = Field(default=None, description="Comma separated admin copies")


class SmsPayload(BaseModel):
    to: str = Field(..., description="Digits-only phone number")
    text: str


class SlackPayload(BaseModel):
    text: str


class RenderedPayload(BaseModel):
    """
    Per-channel content for one event.

    A channel is absent (None) when the event does not produce it or the
    context lacks a recipient for it. Absent is never the same as empty.
    """
    email: Optional[EmailPayload] = None
    sms: Optional[SmsPayload] = None
    slack: Optional[SlackPayload] = None

    def for_channel(self, channel: Channel | str) -> Optional[BaseModel]:
        """Get the payload rendered for a channel, or None."""
        return getattr(self, Channel(channel).value)

    def rendered_channels(self) -> list[str]:
        """Channels that have a payload."""
        return [c.value for c in Channel if self.for_channel(c) is not None]


# =============================================================================
# Outbox
# =============================================================================

class OutboxRecord(BaseModel):
    """
    One dispatch attempt for one (event, recipient context).

    `rendered` is a snapshot taken at creation time: later status changes
    of the application never alter what was (or will be) sent.
    """
    id: str = Field(default_factory=lambda: uuid4().hex, description="Opaque identifier")
    event_type: EventType
    channels: list[Channel] = Field(default_factory=list, description="Requested transports")
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Context snapshot used to render (audit/replay)",
    )
    rendered: RenderedPayload = Field(default_factory=RenderedPayload)
    status: OutboxStatus = Field(default=OutboxStatus.QUEUED)
    retries: int = Field(default=0, ge=0, description="Reserved for a future retry sweeper")
    error: Optional[str] = Field(default=None, description="Last failure message")
    dedupe_key: Optional[str] = Field(default=None, description="Idempotency key")
    created_at: datetime = Field(default_factory=utcnow)
    sent_at: Optional[datetime] = None

    model_config = ConfigDict(use_enum_values=True)

    @property
    def application_id(self) -> Optional[str]:
        return (self.payload.get("application") or {}).get("application_id")

    @property
    def order_id(self) -> Optional[str]:
        return (self.payload.get("application") or {}).get("order_id")

    def recipient(self) -> Optional[str]:
        """First recipient found in the rendered content (email, then SMS)."""
        if self.rendered.email and self.rendered.email.to.strip():
            return self.rendered.email.to.strip()
        if self.rendered.sms and self.rendered.sms.to.strip():
            return self.rendered.sms.to.strip()
        return None

    def subject(self) -> Optional[str]:
        if self.rendered.email and self.rendered.email.subject.strip():
            return self.rendered.email.subject.strip()
        return None
