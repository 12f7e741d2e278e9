"""
Demonstration of the stringing notification flow.

Walks one application through its lifecycle by publishing workflow events.
Provider calls go to an httpx MockTransport so nothing leaves the process;
every request is printed instead.
"""

import json
import logging
from typing import Optional

import httpx

from notifications import build_notifier
from notifications.config import NotificationSettings
from notifications.models import (
    ApplicationCtx,
    ShippingInfo,
    StringDetails,
    StringItem,
    UserCtx,
)
from notifications.outbox_store import OutboxStore
from stringing import events
from stringing.event_bus import reset_event_bus
from stringing.notification_service import NotificationService

DEMO_SETTINGS = {
    "base_url": "https://shop.example.com",
    "admin_bcc": "ops@example.com",
    "email_api_url": "https://email.example.com/emails",
    "email_api_key": "demo-key",
    "email_from": "Dokkaebi Tennis <no-reply@example.com>",
    "sms_api_url": "https://sms.example.com/send",
    "sms_api_key": "demo-key",
    "sms_sender": "0212345678",
    "slack_webhook_url": "https://hooks.example.com/services/demo",
}


def _fake_provider(request: httpx.Request) -> httpx.Response:
    """Accept every provider call and show what would have been sent."""
    body = json.loads(request.content or b"{}")
    summary = body.get("subject") or body.get("text") or ""
    print(f"  -> POST {request.url.host}: {summary.splitlines()[0] if summary else ''}")
    return httpx.Response(200, json={"id": "demo"})


def sample_user() -> UserCtx:
    return UserCtx(name="Kim Minji", email="minji@example.com", phone="010-1234-5678")


def sample_application(**overrides) -> ApplicationCtx:
    values = dict(
        application_id="65f1c0ffee0000000000a1b2",
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
    values.update(overrides)
    return ApplicationCtx(**values)


def run_stringing_demo(outbox: Optional[str] = None) -> OutboxStore:
    """
    Publish a full application lifecycle and return the resulting outbox.

    Args:
        outbox: Optional SQLite file or database URL to persist the outbox to

    Returns:
        The outbox store holding one record per distinct notification
    """
    print("\n" + "=" * 70)
    print("STRINGING DEMO: application lifecycle notifications")
    print("=" * 70 + "\n")

    settings = NotificationSettings(**DEMO_SETTINGS, outbox_url=outbox)
    store = OutboxStore(settings.outbox_url)
    client = httpx.Client(transport=httpx.MockTransport(_fake_provider))
    notifier = build_notifier(settings, store=store, client=client)

    bus = reset_event_bus()
    service = NotificationService(notifier, event_bus=bus)
    service.start()

    user = sample_user()
    application = sample_application()
    admin_url = f"{settings.base_url}/admin/applications/stringing/{application.application_id}"

    steps = [
        ("Customer submits the application",
         events.application_submitted(user, application, admin_detail_url=admin_url)),
        ("Submission event delivered twice",
         events.application_submitted(user, application, admin_detail_url=admin_url)),
        ("Shop confirms the visit slot",
         events.schedule_confirmed(user, application)),
        ("Customer moves the visit",
         events.schedule_updated(
             user,
             sample_application(string_details=StringDetails(
                 preferred_date="2025-03-15",
                 preferred_time="23:30",
                 racket_type="Wilson Pro Staff 97",
             )),
         )),
        ("Stringer starts working",
         events.status_changed(user, sample_application(status="in_progress"), previous_status="received")),
        ("Stringing completed",
         events.status_changed(user, sample_application(status="completed"), previous_status="in_progress")),
    ]

    try:
        for title, event in steps:
            print(f"\nACTION: {title}")
            print("-" * 70)
            bus.publish(event)
    finally:
        service.stop()
        client.close()

    page = store.list_records(limit=50)
    print("\n" + "-" * 70)
    print(f"Outbox: {page.total} records {page.counts}")
    for record in page.items:
        print(f"  {record.id[:8]}  {record.status:<6}  {record.event_type:<36}  {record.recipient()}")
    print("-" * 70)
    return store


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
        datefmt="%H:%M:%S",
    )
    run_stringing_demo()
