"""
Channel senders: email, SMS and Slack webhook.

Each sender takes a fully rendered payload and performs one HTTP call to
its provider. There is no business logic here: what to send, and to whom,
was decided by the renderer.

Design decisions:
- Senders are built with an explicit NotificationSettings object
- An httpx.Client can be injected (tests pass one with a MockTransport)
- Missing provider configuration raises ConfigurationMissingError at send
  time, so a misconfigured channel shows up as a failed outbox record
  instead of a silently dropped message
- Any transport error or non-2xx response raises ChannelError
- Channels keep a history of successful sends for inspection and tests
"""

import base64
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union

import httpx
from pydantic import BaseModel

from notifications.config import NotificationSettings
from notifications.errors import ChannelError, ConfigurationMissingError
from notifications.models import Channel, EmailPayload, SlackPayload, SmsPayload, utcnow

logger = logging.getLogger("notifications.channels")

ICS_FILENAME = "stringing.ics"


@dataclass
class NotificationResult:
    """Record of one successful provider call."""
    channel: Channel
    recipient: str
    body: str
    subject: Optional[str] = None
    status_code: Optional[int] = None
    timestamp: datetime = field(default_factory=utcnow)

    def __str__(self) -> str:
        if self.channel == Channel.EMAIL:
            return f"EMAIL to {self.recipient}: {self.subject}"
        return f"{self.channel.value.upper()} to {self.recipient}: {self.body[:50]}"


class _HttpChannel:
    """Shared HTTP plumbing for the concrete senders."""

    channel: Channel

    def __init__(self, settings: NotificationSettings, client: Optional[httpx.Client] = None):
        self.settings = settings
        self._client = client
        self.sent_messages: list[NotificationResult] = []

    def _require(self, value: Optional[str], setting: str) -> str:
        if not value:
            raise ConfigurationMissingError(self.channel.value, setting)
        return value

    def _post(self, url: str, json_body: dict, headers: Optional[dict] = None) -> httpx.Response:
        client = self._client or httpx.Client()
        try:
            response = client.post(
                url,
                json=json_body,
                headers=headers or {},
                timeout=self.settings.sender_timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise ChannelError(self.channel.value, f"transport error: {e}") from e
        finally:
            if self._client is None:
                client.close()

        if not 200 <= response.status_code < 300:
            raise ChannelError(
                self.channel.value,
                f"HTTP {response.status_code}: {response.text[:300]}",
            )
        return response

    def _record(self, result: NotificationResult) -> NotificationResult:
        self.sent_messages.append(result)
        return result

    def get_sent_count(self) -> int:
        return len(self.sent_messages)

    def clear_history(self) -> None:
        self.sent_messages.clear()

    def find_message_to(self, recipient: str) -> Optional[NotificationResult]:
        """Find a message sent to a specific recipient."""
        for msg in self.sent_messages:
            if msg.recipient == recipient:
                return msg
        return None


class EmailChannel(_HttpChannel):
    """
    Transactional email provider (Resend-compatible JSON API).

    Requires email_api_key and email_from; email_api_url has a default.
    """

    channel = Channel.EMAIL

    def send(self, payload: EmailPayload) -> NotificationResult:
        api_key = self._require(self.settings.email_api_key, "EMAIL_API_KEY")
        sender = self._require(self.settings.email_from, "EMAIL_FROM")
        url = self._require(self.settings.email_api_url, "EMAIL_API_URL")

        body: dict[str, Any] = {
            "from": sender,
            "to": [payload.to],
            "subject": payload.subject,
            "html": payload.html,
        }
        bcc = [addr.strip() for addr in (payload.bcc or "").split(",") if addr.strip()]
        if bcc:
            body["bcc"] = bcc
        if payload.ics:
            body["attachments"] = [
                {
                    "filename": ICS_FILENAME,
                    "content": base64.b64encode(payload.ics.encode("utf-8")).decode("ascii"),
                    "content_type": "text/calendar",
                }
            ]

        response = self._post(url, body, {"Authorization": f"Bearer {api_key}"})
        logger.info(f"[EMAIL] To: {payload.to} | Subject: {payload.subject}")
        return self._record(
            NotificationResult(
                channel=Channel.EMAIL,
                recipient=payload.to,
                subject=payload.subject,
                body=payload.html,
                status_code=response.status_code,
            )
        )


class SmsChannel(_HttpChannel):
    """
    SMS gateway.

    Requires sms_api_url, sms_api_key and sms_sender.
    """

    channel = Channel.SMS

    # Longer texts are billed/split as LMS by most Korean gateways
    MAX_LENGTH = 90

    def send(self, payload: SmsPayload) -> NotificationResult:
        url = self._require(self.settings.sms_api_url, "SMS_API_URL")
        api_key = self._require(self.settings.sms_api_key, "SMS_API_KEY")
        sender = self._require(self.settings.sms_sender, "SMS_SENDER")

        if len(payload.text) > self.MAX_LENGTH:
            logger.warning(
                f"[SMS] Message length ({len(payload.text)}) exceeds {self.MAX_LENGTH} chars, "
                "may be sent as a long message"
            )

        response = self._post(
            url,
            {"from": sender, "to": payload.to, "text": payload.text},
            {"Authorization": f"Bearer {api_key}"},
        )
        logger.info(f"[SMS] To: {payload.to}")
        return self._record(
            NotificationResult(
                channel=Channel.SMS,
                recipient=payload.to,
                body=payload.text,
                status_code=response.status_code,
            )
        )


class SlackChannel(_HttpChannel):
    """Incoming-webhook poster for the operators' channel."""

    channel = Channel.SLACK

    def send(self, payload: SlackPayload) -> NotificationResult:
        url = self._require(self.settings.slack_webhook_url, "SLACK_WEBHOOK_URL")
        response = self._post(url, {"text": payload.text})
        logger.info("[SLACK] Posted to webhook")
        return self._record(
            NotificationResult(
                channel=Channel.SLACK,
                recipient="webhook",
                body=payload.text,
                status_code=response.status_code,
            )
        )


class NotificationChannels:
    """
    Facade over all channel senders.

    The dispatcher only talks to this class; it routes a payload to the
    sender for the named channel.
    """

    def __init__(self, settings: NotificationSettings, client: Optional[httpx.Client] = None):
        """
        Initialize all channels.

        Args:
            settings: Provider configuration shared by every sender
            client: Optional shared HTTP client (a new one per call otherwise)
        """
        self.email = EmailChannel(settings, client)
        self.sms = SmsChannel(settings, client)
        self.slack = SlackChannel(settings, client)

    def sender_for(self, channel: Union[Channel, str]) -> _HttpChannel:
        """
        Get the sender for a channel.

        Raises:
            ValueError: If channel is not recognized
        """
        try:
            channel = Channel(channel)
        except ValueError:
            raise ValueError(f"Unknown channel: {channel}") from None
        return getattr(self, channel.value)

    def send(self, channel: Union[Channel, str], payload: BaseModel) -> NotificationResult:
        """Send a rendered payload through the named channel."""
        return self.sender_for(channel).send(payload)

    def get_all_sent_messages(self) -> list[NotificationResult]:
        return self.email.sent_messages + self.sms.sent_messages + self.slack.sent_messages

    def get_total_sent_count(self) -> int:
        return len(self.get_all_sent_messages())

    def clear_all_history(self) -> None:
        self.email.clear_history()
        self.sms.clear_history()
        self.slack.clear_history()
