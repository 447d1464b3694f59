"""
End-to-end booking flow

offer OFF1 (EUR 200.00) -> draft -> one checked bag (EUR 30.00) -> policy
acknowledged -> ready_for_payment -> completed -> booking confirmed as ORD1
-> confirmation sent once -> 30 day guest link -> link expires.
"""

import pytest
from datetime import timedelta

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from conftest import FakeProvider


class TestBookingFlow:
    def test_full_flow(self, db, drafts, new_draft, clock):
        from tripbook.errors import TokenExpired
        from tripbook.models.booking import FlightBooking
        from tripbook.schemas.booking_draft import BagSelectionIn, ExtrasSelection
        from tripbook.services.booking_service import BookingService
        from tripbook.services.link_service import LinkService
        from tripbook.services.notification_service import NotificationService

        draft = new_draft()
        assert draft.total_price_minor == 20000

        draft = drafts.select_extras(draft.id, ExtrasSelection(bags=[
            BagSelectionIn(service_id="bag_1", passenger_id="pas_1", quantity=1),
        ]))
        assert draft.total_price_minor == 23000

        drafts.acknowledge_policy(draft.id, True)
        draft = drafts.mark_ready_for_payment(draft.id)
        assert draft.status == "ready_for_payment"

        booking = drafts.complete(draft.id)
        assert booking.status == "pending_payment"
        assert booking.total_amount_minor == 23000
        assert drafts.get_draft_status(draft.id).status == "completed"

        booking = BookingService(db, clock=clock).confirm(booking.id, upstream_order_id="ORD1")
        assert booking.status == "confirmed"

        provider = FakeProvider("postmark")
        notifications = NotificationService(db, providers=[provider], clock=clock)
        first = notifications.send_confirmation(booking.id)
        second = notifications.send_confirmation(booking.id)
        assert not first.already_sent
        assert second.already_sent
        assert len(provider.sent) == 1

        links = LinkService(db, clock=clock)
        link = links.issue(booking.id, ttl=timedelta(days=30))
        assert link.expires_at == clock() + timedelta(days=30)
        assert links.resolve(link.token).id == booking.id

        clock.advance(days=30, seconds=1)
        with pytest.raises(TokenExpired):
            links.resolve(link.token)

        assert db.query(FlightBooking).count() == 1
