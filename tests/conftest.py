"""
Shared pytest fixtures for the stringing notification tests.

Provider HTTP APIs are replaced by an httpx MockTransport that records every
request, so channel, dispatcher and trigger tests can assert on exactly what
would have been sent.
"""

import json

import httpx
import pytest

from notifications.channels import NotificationChannels
from notifications.config import ENV_VARS, NotificationSettings
from notifications.dispatcher import Dispatcher
from notifications.models import (
    ApplicationCtx,
    EventContext,
    ShippingInfo,
    StringDetails,
    StringItem,
    UserCtx,
)
from notifications.outbox_store import OutboxStore
from notifications.triggers import StringingNotifier

EMAIL_HOST = "email.test"
SMS_HOST = "sms.test"
SLACK_HOST = "hooks.test"


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Keep the host's notification variables out of every test."""
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


class FakeProviders:
    """
    Stands in for the email, SMS and Slack provider APIs.

    Every request is recorded. `fail(host, status)` makes a host answer with
    an error status; `break_connection(host)` makes it raise a transport error.
    """

    EMAIL = EMAIL_HOST
    SMS = SMS_HOST
    SLACK = SLACK_HOST

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.failures: dict[str, int] = {}
        self.broken: set[str] = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host in self.broken:
            raise httpx.ConnectError("connection refused", request=request)
        status = self.failures.get(host, 200)
        return httpx.Response(status, json={"ok": status < 300})

    def fail(self, host: str, status: int = 500) -> None:
        self.failures[host] = status

    def break_connection(self, host: str) -> None:
        self.broken.add(host)

    def hosts(self) -> list[str]:
        return [r.url.host for r in self.requests]

    def bodies(self, host: str) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.host == host]


# =============================================================================
# Infrastructure Fixtures
# =============================================================================

@pytest.fixture
def settings() -> NotificationSettings:
    """Fully configured settings pointing at the fake providers."""
    return NotificationSettings(
        brand_name="Dokkaebi Tennis",
        base_url="https://shop.test",
        admin_bcc="ops@shop.test, owner@shop.test",
        email_api_url=f"https://{EMAIL_HOST}/emails",
        email_api_key="email-key",
        email_from="Dokkaebi Tennis <no-reply@shop.test>",
        sms_api_url=f"https://{SMS_HOST}/send",
        sms_api_key="sms-key",
        sms_sender="0212345678",
        slack_webhook_url=f"https://{SLACK_HOST}/services/T000/B000",
        sender_timeout_seconds=5.0,
    )


@pytest.fixture
def providers() -> FakeProviders:
    return FakeProviders()


@pytest.fixture
def http_client(providers: FakeProviders):
    """httpx client whose requests never leave the process."""
    client = httpx.Client(transport=httpx.MockTransport(providers))
    yield client
    client.close()


@pytest.fixture
def channels(settings: NotificationSettings, http_client: httpx.Client) -> NotificationChannels:
    """Fresh NotificationChannels facade for each test."""
    return NotificationChannels(settings, http_client)


@pytest.fixture
def store() -> OutboxStore:
    """In-memory outbox store."""
    return OutboxStore()


@pytest.fixture
def dispatcher(store: OutboxStore, channels: NotificationChannels, settings: NotificationSettings) -> Dispatcher:
    return Dispatcher(store, channels, settings)


@pytest.fixture
def notifier(dispatcher: Dispatcher) -> StringingNotifier:
    return StringingNotifier(dispatcher)


# =============================================================================
# Context Fixtures
# =============================================================================

@pytest.fixture
def application_id() -> str:
    return "65f1c0ffee0000000000a1b2"


@pytest.fixture
def user() -> UserCtx:
    """Customer with both an email address and a phone number."""
    return UserCtx(name="Kim Minji", email="minji@example.com", phone="010-1234-5678")


@pytest.fixture
def application(application_id: str) -> ApplicationCtx:
    """Scheduled visit-in application (Friday 2025-03-14 10:30)."""
    return ApplicationCtx(
        application_id=application_id,
        order_id="ord-1001",
        status="received",
        string_details=StringDetails(
            preferred_date="2025-03-14",
            preferred_time="10:30",
            racket_type="Wilson Pro Staff 97",
            string_items=[StringItem(name="Luxilon ALU Power 125")],
        ),
        shipping_info=ShippingInfo(collection_method="visit"),
    )


@pytest.fixture
def unscheduled_application(application_id: str) -> ApplicationCtx:
    """Application without a preferred date/time."""
    return ApplicationCtx(application_id=application_id, status="received")


@pytest.fixture
def context(user: UserCtx, application: ApplicationCtx) -> EventContext:
    return EventContext(
        user=user,
        application=application,
        admin_detail_url="https://shop.test/admin/applications/stringing/65f1c0ffee0000000000a1b2",
    )
