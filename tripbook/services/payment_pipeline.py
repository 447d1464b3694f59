"""
Payment webhook pipeline.

    payment.succeeded: complete draft -> confirm booking -> issue guest link
                       -> send confirmation
    payment.failed:    complete draft -> fail booking

Every step is idempotent on its own, so a replayed webhook walks the same
path and finds each effect already applied. A notification failure does not
fail the webhook: the booking stays confirmed with the marker unset and the
send can be retried.
"""

import logging
from datetime import datetime
from typing import Callable, Optional, Sequence

from sqlalchemy.orm import Session

from ..config import Settings, settings as default_settings
from ..errors import (
    ConfirmationRenderFailed,
    InvalidTransition,
    NoRecipientAddress,
    NotificationDeliveryFailed,
)
from ..models.booking import FlightBooking, BookingStatus
from ..schemas.payment import PaymentEvent, PaymentWebhookResult
from ..utils.money import Money
from ..utils.security import utcnow
from .booking_service import BookingService
from .draft_service import DraftService
from .email_providers import EmailProvider
from .link_service import LinkService
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

CONFIRMATION_LINK_KEY = "confirmation"


class PaymentPipeline:
    def __init__(
        self,
        db: Session,
        providers: Optional[Sequence[EmailProvider]] = None,
        clock: Callable[[], datetime] = utcnow,
        config: Settings = default_settings,
    ):
        self.db = db
        self.clock = clock
        self.config = config
        self.drafts = DraftService(db, clock=clock, config=config)
        self.bookings = BookingService(db, clock=clock)
        self.links = LinkService(db, clock=clock, config=config)
        self.notifications = NotificationService(db, providers=providers, clock=clock, config=config)

    def handle(self, event: PaymentEvent) -> PaymentWebhookResult:
        logger.info(f"Payment event {event.type} for draft {event.draft_id}")
        if event.type == "payment.succeeded":
            return self._succeeded(event)
        return self._failed(event)

    def _complete(self, event: PaymentEvent, check_amount: bool) -> FlightBooking:
        expected = None
        if check_amount and event.amount_minor is not None:
            expected = Money(event.amount_minor, event.currency)
        return self.drafts.complete(
            event.draft_id,
            expected_total=expected,
            payment_intent_id=event.payment_intent_id,
        )

    def _succeeded(self, event: PaymentEvent) -> PaymentWebhookResult:
        booking = self._complete(event, check_amount=True)
        duplicate = False

        try:
            booking = self.bookings.confirm(
                booking.id,
                upstream_order_id=event.upstream_order_id,
                booking_reference=event.booking_reference,
                payment_intent_id=event.payment_intent_id,
            )
        except InvalidTransition:
            booking = self.bookings.get_booking(booking.id)
            if booking.booking_status != BookingStatus.CONFIRMED:
                raise
            duplicate = True
            logger.info(f"Booking {booking.id} already confirmed, replay treated as no-op")

        link = self.links.issue(booking.id, idempotency_key=CONFIRMATION_LINK_KEY)

        sent = False
        notification_error = None
        try:
            result = self.notifications.send_confirmation(booking.id, booking_url=self.links.link_url(link))
            sent = True
            duplicate = duplicate and result.already_sent
        except (NotificationDeliveryFailed, NoRecipientAddress, ConfirmationRenderFailed) as e:
            notification_error = e.message
            logger.warning(f"Confirmation for booking {booking.id} not sent: {e.message}")

        self.db.refresh(booking)
        return PaymentWebhookResult(
            status="duplicate" if duplicate else "processed",
            booking_id=booking.id,
            booking_status=booking.status,
            link_token=link.token,
            confirmation_sent=sent,
            notification_error=notification_error,
        )

    def _failed(self, event: PaymentEvent) -> PaymentWebhookResult:
        booking = self._complete(event, check_amount=False)
        duplicate = False
        reason = event.failure_reason or "Payment failed"

        try:
            booking = self.bookings.fail(booking.id, reason)
        except InvalidTransition:
            booking = self.bookings.get_booking(booking.id)
            if booking.booking_status != BookingStatus.FAILED:
                raise
            duplicate = True

        return PaymentWebhookResult(
            status="duplicate" if duplicate else "processed",
            booking_id=booking.id,
            booking_status=booking.status,
        )
