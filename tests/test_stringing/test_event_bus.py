"""
Tests for the event bus and the workflow event factories.
"""

import logging

import pytest

from stringing.event_bus import WILDCARD, Event, EventBus, get_event_bus, reset_event_bus
from stringing.events import EventTypes, application_submitted, status_changed


class TestEvent:
    def test_defaults(self):
        event = Event(event_type="TestEvent", payload={"key": "value"})

        assert event.source == "stringing-applications"
        assert len(event.event_id) == 32
        assert event.occurred_at.tzinfo is not None

    def test_event_ids_are_unique(self):
        assert Event(event_type="Test", payload={}).event_id != Event(event_type="Test", payload={}).event_id

    def test_str(self):
        event = Event(event_type=EventTypes.APPLICATION_SUBMITTED, payload={}, source="admin")

        assert str(event).startswith("StringingApplicationSubmitted#")
        assert str(event).endswith("from admin")


class TestEventFactories:
    """Tests that workflow events carry full JSON snapshots."""

    def test_application_submitted_payload(self, user, application):
        event = application_submitted(user, application, admin_detail_url="https://shop.test/admin/x")

        assert event.event_type == EventTypes.APPLICATION_SUBMITTED
        assert event.payload["user"]["email"] == "minji@example.com"
        assert event.payload["application"]["application_id"] == application.application_id
        assert event.payload["application"]["string_details"]["preferred_time"] == "10:30"
        assert event.payload["admin_detail_url"] == "https://shop.test/admin/x"

    def test_status_changed_keeps_previous_status(self, user, application):
        event = status_changed(user, application, previous_status="submitted")

        assert event.payload["previous_status"] == "submitted"
        assert event.payload["application"]["status"] == "received"

    def test_snapshot_is_detached(self, user, application):
        event = application_submitted(user, application)
        application.status = "changed later"

        assert event.payload["application"]["status"] == "received"


class TestEventBus:
    """Tests for routing and delivery."""

    @pytest.fixture
    def bus(self) -> EventBus:
        return EventBus()

    def test_subscribe_and_publish(self, bus: EventBus):
        received = []
        bus.subscribe("TestEvent", received.append)

        delivered = bus.publish(Event(event_type="TestEvent", payload={"data": 123}))

        assert delivered == 1
        assert received[0].payload["data"] == 123

    def test_handlers_called_in_subscription_order(self, bus: EventBus):
        calls = []
        bus.subscribe("TestEvent", lambda e: calls.append("first"))
        bus.subscribe("TestEvent", lambda e: calls.append("second"))

        bus.publish(Event(event_type="TestEvent", payload={}))

        assert calls == ["first", "second"]

    def test_wildcard_receives_everything(self, bus: EventBus):
        received = []
        bus.subscribe(WILDCARD, received.append)

        bus.publish(Event(event_type="A", payload={}))
        bus.publish(Event(event_type="B", payload={}))

        assert [e.event_type for e in received] == ["A", "B"]

    def test_other_event_types_not_delivered(self, bus: EventBus):
        received = []
        bus.subscribe("A", received.append)

        bus.publish(Event(event_type="B", payload={}))

        assert received == []

    def test_unsubscribe(self, bus: EventBus):
        received = []
        bus.subscribe("TestEvent", received.append)

        assert bus.unsubscribe("TestEvent", received.append) is True
        assert bus.unsubscribe("TestEvent", received.append) is False
        assert bus.unsubscribe("Never", received.append) is False

        bus.publish(Event(event_type="TestEvent", payload={}))
        assert received == []

    def test_subscribe_returns_canceller(self, bus: EventBus):
        received = []
        stop = bus.subscribe("TestEvent", received.append)

        assert stop() is True
        assert bus.subscriber_count("TestEvent") == 0

    def test_failing_handler_does_not_stop_others(self, bus: EventBus, caplog):
        """Test that a handler error is logged and the next handler still runs."""
        received = []

        def broken(event):
            raise RuntimeError("handler blew up")

        bus.subscribe("TestEvent", broken)
        bus.subscribe("TestEvent", received.append)

        with caplog.at_level(logging.ERROR, logger="stringing.event_bus"):
            delivered = bus.publish(Event(event_type="TestEvent", payload={}))

        assert delivered == 1
        assert len(received) == 1
        assert "broken failed on TestEvent#" in caplog.text
        assert "handler blew up" in caplog.text

    def test_no_subscribers_warns(self, bus: EventBus, caplog):
        with caplog.at_level(logging.WARNING, logger="stringing.event_bus"):
            delivered = bus.publish(Event(event_type="Lonely", payload={}))

        assert delivered == 0
        assert "has no subscribers" in caplog.text

    def test_history(self, bus: EventBus):
        bus.publish(Event(event_type="A", payload={}))
        bus.publish(Event(event_type="B", payload={}))

        assert [e.event_type for e in bus.history()] == ["A", "B"]
        assert [e.event_type for e in bus.history("B")] == ["B"]

        bus.clear_history()
        assert bus.history() == []

    def test_reset(self, bus: EventBus):
        bus.subscribe("A", print)
        bus.publish(Event(event_type="A", payload={}))

        bus.reset()

        assert bus.subscriber_count("A") == 0
        assert bus.history() == []


class TestSingleton:
    def test_reset_event_bus(self):
        bus = reset_event_bus()

        assert get_event_bus() is bus
        assert reset_event_bus() is not bus
