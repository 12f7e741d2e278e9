"""
Tests for the event renderer.

These tests verify the per-channel payloads produced for each stringing
event, the placeholder rules for missing data, and that rendering is pure.
"""

import pytest

from notifications.errors import UnknownEventError
from notifications.models import (
    ApplicationCtx,
    EventContext,
    EventType,
    ShippingInfo,
    UserCtx,
)
from notifications.render import (
    EVENT_TEMPLATES,
    UNSCHEDULED,
    get_event_template,
    normalize_phone,
    pick_phone,
    render_event,
    short_code,
)


class TestTemplateTable:
    def test_every_event_type_has_a_template(self):
        """Test that the template table covers the closed event set."""
        assert set(EVENT_TEMPLATES) == set(EventType)

    def test_unknown_event_raises(self, context):
        """Test that an unmapped tag fails loudly."""
        with pytest.raises(UnknownEventError) as exc_info:
            render_event("stringing.racket_exploded", context)

        assert "stringing.racket_exploded" in str(exc_info.value)

    def test_unknown_event_is_also_value_error(self):
        with pytest.raises(ValueError):
            get_event_template("nope")


class TestHelpers:
    def test_normalize_phone(self):
        assert normalize_phone("010-1234-5678") == "01012345678"
        assert normalize_phone("+82 (10) 1234 5678") == "821012345678"
        assert normalize_phone(None) == ""
        assert normalize_phone("n/a") == ""

    def test_pick_phone_preference_order(self, user, application):
        """Test contact phone, then account phone, then shipping phone."""
        app = application.model_copy(
            update={"contact_phone": "010-9999-0000", "shipping_info": ShippingInfo(phone="010-7777-0000")}
        )
        assert pick_phone(EventContext(user=user, application=app)) == "01099990000"

        app = app.model_copy(update={"contact_phone": "  "})
        assert pick_phone(EventContext(user=user, application=app)) == "01012345678"

        no_phone_user = UserCtx(name="Lee", email="lee@example.com")
        assert pick_phone(EventContext(user=no_phone_user, application=app)) == "01077770000"

    def test_short_code(self):
        assert short_code("65f1c0ffee0000000000a1b2") == "DK-00A1B2"
        assert short_code(None) == "-"


class TestApplicationSubmitted:
    """Tests for the submission notification."""

    def test_email(self, context, settings):
        rendered = render_event(EventType.APPLICATION_SUBMITTED, context, settings)

        email = rendered.email
        assert email.to == "minji@example.com"
        assert email.subject == "[Dokkaebi Tennis] Application received · 2025-03-14 (Fri) 10:30"
        assert email.bcc == "ops@shop.test, owner@shop.test"
        assert "Wilson Pro Staff 97" in email.html
        assert "Luxilon ALU Power 125" in email.html
        assert "https://shop.test/mypage?tab=applications&amp;applicationId=65f1c0ffee0000000000a1b2" in email.html
        assert "https://shop.test/services/apply?orderId=ord-1001" in email.html

    def test_calendar_attached(self, context, settings):
        rendered = render_event(EventType.APPLICATION_SUBMITTED, context, settings)

        assert rendered.email.ics is not None
        assert "DTSTART;TZID=Asia/Seoul:20250314T103000" in rendered.email.ics

    def test_slack(self, context, settings):
        rendered = render_event(EventType.APPLICATION_SUBMITTED, context, settings)

        text = rendered.slack.text
        assert text.startswith("[Dokkaebi Tennis] Application received · Kim Minji (minji@example.com)")
        assert "2025-03-14 (Fri) 10:30" in text
        assert "#65f1c0ffee0000000000a1b2" in text
        assert text.endswith("\n" + context.admin_detail_url)

    def test_sms(self, context, settings):
        rendered = render_event(EventType.APPLICATION_SUBMITTED, context, settings)

        assert rendered.sms.to == "01012345678"
        lines = rendered.sms.text.split("\n")
        assert lines[0] == "[Dokkaebi Tennis] Application received"
        assert lines[1] == "Hi Kim Minji"
        assert "Schedule: 2025-03-14 (Fri) 10:30" in lines

    def test_self_ship_adds_tracking_button(self, user, application, settings):
        app = application.model_copy(update={"shipping_info": ShippingInfo(collection_method="self_ship")})

        rendered = render_event(
            EventType.APPLICATION_SUBMITTED, EventContext(user=user, application=app), settings
        )

        assert f"https://shop.test/services/applications/{app.application_id}/shipping" in rendered.email.html

    def test_no_reschedule_button_without_order(self, user, application, settings):
        app = application.model_copy(update={"order_id": None})

        rendered = render_event(
            EventType.APPLICATION_SUBMITTED, EventContext(user=user, application=app), settings
        )

        assert "services/apply" not in rendered.email.html


class TestMissingRecipients:
    """Tests that channels without a recipient are omitted, not emptied."""

    def test_no_email_means_no_email_payload(self, application, settings):
        user = UserCtx(name="Kim Minji", phone="010-1234-5678")

        rendered = render_event(
            EventType.SCHEDULE_CONFIRMED, EventContext(user=user, application=application), settings
        )

        assert rendered.email is None
        assert rendered.sms is not None
        assert rendered.rendered_channels() == ["sms", "slack"]

    def test_no_phone_means_no_sms_payload(self, application, settings):
        user = UserCtx(name="Kim Minji", email="minji@example.com")

        rendered = render_event(
            EventType.SCHEDULE_CONFIRMED, EventContext(user=user, application=application), settings
        )

        assert rendered.sms is None
        assert rendered.email is not None

    def test_unparseable_phone_means_no_sms_payload(self, application, settings):
        user = UserCtx(email="minji@example.com", phone="unknown")

        rendered = render_event(
            EventType.SERVICE_COMPLETED, EventContext(user=user, application=application), settings
        )

        assert rendered.sms is None


class TestPlaceholders:
    """Tests for missing schedule, status and name."""

    def test_status_update_without_schedule(self, user, unscheduled_application, settings):
        """Test the unscheduled placeholder and the absence of an invite."""
        rendered = render_event(
            EventType.STATUS_UPDATED,
            EventContext(user=user, application=unscheduled_application),
            settings,
        )

        assert rendered.email.subject == "[Dokkaebi Tennis] Application status update: received"
        assert UNSCHEDULED in rendered.email.html
        assert rendered.email.ics is None
        assert "None" not in rendered.email.html
        assert "None" not in rendered.slack.text
        assert f"· {UNSCHEDULED} ·" in rendered.slack.text

    def test_status_update_has_no_sms(self, context, settings):
        rendered = render_event(EventType.STATUS_UPDATED, context, settings)

        assert rendered.sms is None
        assert rendered.slack.text.split("\n")[0].endswith("status received")

    def test_missing_status(self, user, unscheduled_application, settings):
        app = unscheduled_application.model_copy(update={"status": None})

        rendered = render_event(EventType.STATUS_UPDATED, EventContext(user=user, application=app), settings)

        assert rendered.email.subject.endswith(": Unknown")

    def test_date_without_time_is_unscheduled(self, user, application, settings):
        details = application.string_details.model_copy(update={"preferred_time": None})
        app = application.model_copy(update={"string_details": details})

        rendered = render_event(EventType.SCHEDULE_CONFIRMED, EventContext(user=user, application=app), settings)

        assert rendered.email.subject.endswith(f"· {UNSCHEDULED}")
        assert rendered.email.ics is None

    def test_missing_name(self, application, settings):
        user = UserCtx(email="minji@example.com", phone="01012345678")

        rendered = render_event(EventType.SERVICE_COMPLETED, EventContext(user=user, application=application), settings)

        assert "Hi Customer" in rendered.sms.text


class TestOtherEvents:
    def test_in_progress_has_fixed_status(self, context, settings):
        rendered = render_event(EventType.SERVICE_IN_PROGRESS, context, settings)

        assert rendered.email.subject.startswith("[Dokkaebi Tennis] Work in progress")
        assert "In progress" in rendered.email.html
        assert "status In progress" in rendered.slack.text

    def test_schedule_updated_uses_new_schedule_label(self, context, settings):
        rendered = render_event(EventType.SCHEDULE_UPDATED, context, settings)

        assert "New schedule" in rendered.email.html
        assert rendered.email.ics is not None

    def test_cancellations_have_no_invite(self, context, settings):
        for event_type in (EventType.SCHEDULE_CANCELED, EventType.APPLICATION_CANCELED):
            rendered = render_event(event_type, context, settings)

            assert rendered.email.ics is None
            assert "Canceled schedule" in rendered.email.html

    def test_application_canceled_offers_reapply(self, context, settings):
        rendered = render_event(EventType.APPLICATION_CANCELED, context, settings)

        assert "Apply again" in rendered.email.html
        assert "https://shop.test/services/apply?orderId=ord-1001" in rendered.email.html


class TestRenderingIsPure:
    def test_same_input_same_output(self, context, settings):
        """Test byte-identical output for repeated renders."""
        for event_type in EventType:
            first = render_event(event_type, context, settings)
            second = render_event(event_type, context, settings)

            assert first.model_dump() == second.model_dump()

    def test_accepts_plain_dict_context(self, context, settings):
        from_model = render_event(EventType.APPLICATION_SUBMITTED, context, settings)
        from_dict = render_event("stringing.application_submitted", context.model_dump(), settings)

        assert from_model == from_dict

    def test_html_escapes_context_values(self, application, settings):
        user = UserCtx(name='<script>alert("x")</script>', email="minji@example.com")

        rendered = render_event(
            EventType.APPLICATION_SUBMITTED, EventContext(user=user, application=application), settings
        )

        assert "<script>" not in rendered.email.html
        assert "&lt;script&gt;" in rendered.email.html

    def test_default_settings(self, context):
        rendered = render_event(EventType.APPLICATION_SUBMITTED, context)

        assert rendered.email.subject.startswith("[Dokkaebi Tennis]")
        assert rendered.email.bcc is None
