"""
Notification Dispatcher

Sends the booking confirmation at most once. ``confirmation_sent_at`` on the
booking is the only idempotency gate: it is checked before any network call
and written with a set-if-null UPDATE after a provider accepts the message.
Retrying is the caller's job; the only internal retry is primary -> fallback.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from sqlalchemy import and_
from sqlalchemy.orm import Session

from ..config import Settings, settings as default_settings
from ..errors import BookingNotFound, InvalidTransition, NotificationDeliveryFailed
from ..models.booking import FlightBooking, BookingStatus
from ..schemas.booking import ConfirmationResult
from ..utils.db_helpers import compare_and_set
from ..utils.logging_config import get_logger
from ..utils.security import utcnow
from .email_providers import DeliveryResult, EmailProvider, GmailProvider, PostmarkProvider
from .email_templates import RenderedConfirmation, render_confirmation

logger = get_logger(__name__)


def default_providers(config: Settings = default_settings) -> List[EmailProvider]:
    """Postmark first, Gmail as fallback; unconfigured providers are skipped."""
    providers: List[EmailProvider] = []
    if config.has_postmark_config:
        providers.append(PostmarkProvider.from_settings(config))
    if config.has_gmail_config:
        providers.append(GmailProvider.from_settings(config))
    return providers


class NotificationService:
    def __init__(
        self,
        db: Session,
        providers: Optional[Sequence[EmailProvider]] = None,
        clock: Callable[[], datetime] = utcnow,
        config: Settings = default_settings,
    ):
        self.db = db
        self.providers = list(providers) if providers is not None else default_providers(config)
        self.clock = clock
        self.config = config

    def _load(self, booking_id: str, account_id: Optional[str]) -> FlightBooking:
        query = self.db.query(FlightBooking).filter(FlightBooking.id == booking_id)
        if account_id is not None:
            query = query.filter(FlightBooking.account_id == account_id)
        booking = query.first()
        if not booking:
            raise BookingNotFound(booking_id=booking_id)
        return booking

    def _already_sent(self, booking: FlightBooking) -> ConfirmationResult:
        logger.confirmation_skipped(booking.id, booking.confirmation_sent_at)
        return ConfirmationResult(
            success=True,
            already_sent=True,
            provider=booking.confirmation_provider,
            message_id=booking.confirmation_message_id,
            sent_at=booking.confirmation_sent_at,
        )

    def _deliver(self, provider: EmailProvider, message: RenderedConfirmation) -> DeliveryResult:
        try:
            return provider.send(message)
        except Exception as e:
            # A crashing provider counts as a failed attempt so the next one is tried
            logger.error(f"E-mail provider {provider.name} raised: {e}")
            return DeliveryResult(False, provider.name, error=str(e)[:500])

    def send_confirmation(
        self,
        booking_id: str,
        booking_url: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> ConfirmationResult:
        booking = self._load(booking_id, account_id)
        if booking.confirmation_sent_at is not None:
            return self._already_sent(booking)

        if booking.booking_status != BookingStatus.CONFIRMED:
            raise InvalidTransition(
                f"Confirmation can only be sent for confirmed bookings (status: {booking.status})",
                booking_id=booking.id,
                status=booking.status,
            )

        message = render_confirmation(booking, self.config, self.clock(), booking_url)

        delivered: Optional[DeliveryResult] = None
        errors = []
        for provider in self.providers:
            result = self._deliver(provider, message)
            if result.success:
                delivered = result
                break
            errors.append(f"{result.provider}: {result.error}")
            logger.log_with_context(
                logging.WARNING,
                f"Confirmation via {result.provider} failed",
                entity_type="booking",
                entity_id=booking.id,
                provider=result.provider,
                error=result.error,
            )

        if delivered is None:
            raise NotificationDeliveryFailed(
                booking_id=booking.id,
                errors=errors or ["no e-mail provider configured"],
            )

        sent_at = self.clock()
        won = compare_and_set(
            self.db,
            FlightBooking,
            and_(FlightBooking.id == booking.id, FlightBooking.confirmation_sent_at.is_(None)),
            {
                "confirmation_sent_at": sent_at,
                "confirmation_provider": delivered.provider,
                "confirmation_message_id": delivered.message_id,
            },
        )
        if won:
            self.db.commit()
        else:
            # A concurrent send marked it first; ours is a duplicate delivery
            self.db.rollback()
            logger.log_with_context(
                logging.WARNING,
                "Confirmation marker was already set by a concurrent send",
                entity_type="booking",
                entity_id=booking.id,
                provider=delivered.provider,
            )
        self.db.refresh(booking)

        logger.confirmation_sent(booking.id, delivered.provider, delivered.message_id)
        return ConfirmationResult(
            success=True,
            already_sent=not won,
            provider=booking.confirmation_provider,
            message_id=booking.confirmation_message_id,
            sent_at=booking.confirmation_sent_at,
        )
