"""
Tests for confirmation e-mails

Tests cover:
- At-most-once send via the confirmation marker
- Primary -> fallback provider, including a provider that raises
- Incomplete flight data is refused before any provider is called
- Total failure leaves the marker unset
- Template model, escaping and subject line
- Provider payloads (Postmark, Gmail) over a mock transport
"""

import base64
import json
import pytest
from datetime import datetime

import httpx

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from conftest import FakeProvider, traveler_input


def make_notifications(db, clock, *providers):
    from tripbook.services.notification_service import NotificationService

    return NotificationService(db, providers=list(providers), clock=clock)


class TestSendConfirmation:
    def test_send_once(self, db, clock, confirmed_booking):
        primary = FakeProvider("postmark")
        service = make_notifications(db, clock, primary)
        booking = confirmed_booking()

        first = service.send_confirmation(booking.id)
        second = service.send_confirmation(booking.id)

        assert first.success and not first.already_sent
        assert first.provider == "postmark"
        assert first.sent_at == clock()
        assert second.already_sent
        assert second.message_id == first.message_id
        assert len(primary.sent) == 1

    def test_recipient_is_first_passenger_with_email(self, db, clock, confirmed_booking):
        primary = FakeProvider("postmark")
        booking = confirmed_booking(passengers=[
            traveler_input("Liam", "Byrne", email=None, gender="male"),
            traveler_input("Aoife", "Murphy", email="aoife.murphy@tripmail.com"),
        ])
        make_notifications(db, clock, primary).send_confirmation(booking.id)

        assert primary.sent[0].to == "aoife.murphy@tripmail.com"
        assert primary.sent[0].template_model["passenger_name"] == "AOIFE MURPHY"

    def test_fallback_provider(self, db, clock, confirmed_booking):
        primary = FakeProvider("postmark", succeed=False)
        fallback = FakeProvider("gmail")
        booking = confirmed_booking()

        result = make_notifications(db, clock, primary, fallback).send_confirmation(booking.id)

        assert result.provider == "gmail"
        assert len(primary.sent) == 1
        assert len(fallback.sent) == 1
        db.refresh(booking)
        assert booking.confirmation_provider == "gmail"

    def test_provider_exception_falls_back(self, db, clock, confirmed_booking):
        class CrashingProvider(FakeProvider):
            def send(self, message):
                raise RuntimeError("connection reset by peer")

        fallback = FakeProvider("gmail")
        booking = confirmed_booking()

        result = make_notifications(db, clock, CrashingProvider("postmark"), fallback).send_confirmation(booking.id)

        assert result.success
        assert result.provider == "gmail"
        assert len(fallback.sent) == 1

    def test_provider_exception_without_fallback(self, db, clock, confirmed_booking):
        from tripbook.errors import NotificationDeliveryFailed

        class CrashingProvider(FakeProvider):
            def send(self, message):
                raise RuntimeError("connection reset by peer")

        booking = confirmed_booking()
        with pytest.raises(NotificationDeliveryFailed) as exc:
            make_notifications(db, clock, CrashingProvider("postmark")).send_confirmation(booking.id)

        assert "connection reset by peer" in exc.value.context["errors"][0]
        db.refresh(booking)
        assert booking.confirmation_sent_at is None

    def test_incomplete_flight_snapshot(self, db, clock, confirmed_booking):
        from tripbook.errors import ConfirmationRenderFailed

        primary = FakeProvider("postmark")
        booking = confirmed_booking()
        booking.outbound_flight = {k: v for k, v in booking.outbound_flight.items() if k != "departing_at"}
        db.commit()

        with pytest.raises(ConfirmationRenderFailed) as exc:
            make_notifications(db, clock, primary).send_confirmation(booking.id)

        assert exc.value.status_code == 500
        assert primary.sent == []
        db.refresh(booking)
        assert booking.confirmation_sent_at is None

    def test_all_providers_fail(self, db, clock, confirmed_booking):
        from tripbook.errors import NotificationDeliveryFailed

        booking = confirmed_booking()
        service = make_notifications(db, clock, FakeProvider("postmark", succeed=False), FakeProvider("gmail", succeed=False))

        with pytest.raises(NotificationDeliveryFailed) as exc:
            service.send_confirmation(booking.id)
        assert exc.value.retryable
        assert len(exc.value.context["errors"]) == 2

        db.refresh(booking)
        assert booking.confirmation_sent_at is None

    def test_retry_after_failure(self, db, clock, confirmed_booking):
        from tripbook.errors import NotificationDeliveryFailed

        booking = confirmed_booking()
        flaky = FakeProvider("postmark", succeed=False)
        service = make_notifications(db, clock, flaky)
        with pytest.raises(NotificationDeliveryFailed):
            service.send_confirmation(booking.id)

        flaky.succeed = True
        assert service.send_confirmation(booking.id).already_sent is False

    def test_no_providers_configured(self, db, clock, confirmed_booking):
        from tripbook.errors import NotificationDeliveryFailed

        with pytest.raises(NotificationDeliveryFailed):
            make_notifications(db, clock).send_confirmation(confirmed_booking().id)

    def test_pending_booking_not_sent(self, db, clock, drafts, ready_draft):
        from tripbook.errors import InvalidTransition

        primary = FakeProvider("postmark")
        booking = drafts.complete(ready_draft().id)
        with pytest.raises(InvalidTransition):
            make_notifications(db, clock, primary).send_confirmation(booking.id)
        assert primary.sent == []

    def test_no_recipient(self, db, clock, confirmed_booking):
        from tripbook.errors import NoRecipientAddress

        primary = FakeProvider("postmark")
        booking = confirmed_booking(passengers=[
            traveler_input(email=None),
            traveler_input("Liam", "Byrne", email=None),
        ])
        with pytest.raises(NoRecipientAddress):
            make_notifications(db, clock, primary).send_confirmation(booking.id)
        assert primary.sent == []

    def test_marker_set_concurrently(self, db, clock, confirmed_booking):
        """Marker written by another sender between check and write"""
        from tripbook.models.booking import FlightBooking

        booking = confirmed_booking()

        class RacingProvider(FakeProvider):
            def send(self, message):
                db.query(FlightBooking).filter(FlightBooking.id == booking.id).update(
                    {"confirmation_sent_at": clock(), "confirmation_provider": "gmail"},
                    synchronize_session=False,
                )
                db.commit()
                return super().send(message)

        result = make_notifications(db, clock, RacingProvider("postmark")).send_confirmation(booking.id)

        assert result.already_sent
        assert result.provider == "gmail"


class TestTemplates:
    def test_template_model(self, confirmed_booking, clock):
        from tripbook.config import settings
        from tripbook.services.email_templates import render_confirmation, REQUIRED_TEMPLATE_KEYS

        booking = confirmed_booking()
        message = render_confirmation(booking, settings, clock(), booking_url="https://tripbook.app/booking/tok")
        model = message.template_model

        assert all(model[key] for key in REQUIRED_TEMPLATE_KEYS)
        assert model["pnr"] == "XK4P2Q"
        assert model["outbound_date"] == "Mon, Jan 27, 2025"
        assert model["outbound_depart_time"] == "10:15"
        assert model["outbound_depart_airport"] == "DUB - Dublin Airport"
        assert model["outbound_stops"] == "Direct"
        assert model["total_paid"] == "€230.00"
        assert model["is_round_trip"] == "true"
        assert model["return_flight_number"] == "EI155"
        assert model["download_pdf_url"] == "https://tripbook.app/booking/tok?action=pdf"
        assert model["receipt_id"].startswith("RCP-XK4P2Q-")
        assert message.subject == "Flight Confirmation - DUB to LHR | XK4P2Q"

    def test_receipt_id_base36(self):
        from tripbook.services.email_templates import receipt_id, to_base36

        assert to_base36(35) == "Z"
        assert to_base36(36) == "10"
        assert receipt_id("ABC123", datetime(1970, 1, 1, 0, 0, 1)) == "RCP-ABC123-RS"

    def test_html_escaped(self, db, confirmed_booking, clock):
        from tripbook.config import settings
        from tripbook.services.email_templates import render_confirmation

        booking = confirmed_booking()
        passengers = [dict(p) for p in booking.passengers]
        passengers[0]["first_name"] = "<b>Aoife</b>"
        booking.passengers = passengers
        db.commit()

        message = render_confirmation(booking, settings, clock())
        assert "<b>" not in message.html_body
        assert "&lt;B&gt;AOIFE&lt;/B&gt;" in message.html_body


class TestProviders:
    def _message(self):
        from tripbook.services.email_templates import RenderedConfirmation

        return RenderedConfirmation(
            to="aoife.murphy@tripmail.com",
            recipient_name="Aoife Murphy",
            subject="Flight Confirmation - DUB to LHR | XK4P2Q",
            template_model={"pnr": "XK4P2Q"},
            html_body="<p>hi</p>",
            text_body="hi",
        )

    def test_postmark_payload(self):
        from tripbook.services.email_providers import PostmarkProvider

        seen = {}

        def handler(request):
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ErrorCode": 0, "MessageID": "pm-1"})

        provider = PostmarkProvider("server-token", "Tripbook <support@tripbook.app>",
                                    client=httpx.Client(transport=httpx.MockTransport(handler)))
        result = provider.send(self._message())

        assert result.success and result.message_id == "pm-1"
        assert seen["headers"]["X-Postmark-Server-Token"] == "server-token"
        assert seen["body"]["TemplateAlias"] == "receipt"
        assert seen["body"]["To"] == "aoife.murphy@tripmail.com"
        assert seen["body"]["TemplateModel"] == {"pnr": "XK4P2Q"}

    def test_postmark_error_code(self):
        from tripbook.services.email_providers import PostmarkProvider

        def handler(request):
            return httpx.Response(422, json={"ErrorCode": 300, "Message": "Invalid email request"})

        provider = PostmarkProvider("server-token", "support@tripbook.app",
                                    client=httpx.Client(transport=httpx.MockTransport(handler)))
        result = provider.send(self._message())

        assert not result.success
        assert result.error_code == 300
        assert result.error == "Invalid email request"

    def test_postmark_unconfigured(self):
        from tripbook.services.email_providers import PostmarkProvider

        assert PostmarkProvider("", "support@tripbook.app").send(self._message()).success is False

    def test_gmail_refresh_then_send(self):
        from tripbook.services.email_providers import GmailProvider

        calls = []

        def handler(request):
            calls.append(request.url.path)
            if request.url.path == "/token":
                return httpx.Response(200, json={"access_token": "ya29.token"})
            assert request.headers["Authorization"] == "Bearer ya29.token"
            raw = json.loads(request.content)["raw"]
            decoded = base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)).decode()
            assert "Subject: Flight Confirmation - DUB to LHR | XK4P2Q" in decoded
            return httpx.Response(200, json={"id": "gm-1"})

        provider = GmailProvider(
            "client-id", "client-secret", "refresh-token", "support@tripbook.app",
            token_url="https://oauth2.example.org/token",
            send_url="https://gmail.example.org/send",
            client=httpx.Client(transport=httpx.MockTransport(handler)),
        )
        result = provider.send(self._message())

        assert result.success and result.message_id == "gm-1"
        assert calls == ["/token", "/send"]

    def test_gmail_token_failure(self):
        from tripbook.services.email_providers import GmailProvider

        def handler(request):
            return httpx.Response(400, json={"error": "invalid_grant"})

        provider = GmailProvider(
            "client-id", "client-secret", "refresh-token", "support@tripbook.app",
            client=httpx.Client(transport=httpx.MockTransport(handler)),
        )
        assert provider.send(self._message()).success is False
