"""
Link Issuer

Guest links are opaque random tokens with no derivation relationship to the
booking id or reference. Validity is checked on every resolve; nothing is
deleted when a link expires.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import Settings, settings as default_settings
from ..errors import BookingNotFound, TokenExpired, TokenNotFound
from ..models.booking import FlightBooking
from ..models.booking_link import BookingLink
from ..schemas.booking import GuestBookingView, GuestFlightView, GuestPassengerView
from ..schemas.offer import FlightSegmentSnapshot
from ..utils.logging_config import get_logger
from ..utils.money import Money
from ..utils.security import generate_secure_token, token_preview, utcnow

logger = get_logger(__name__)

# Collisions are astronomically unlikely; retry a couple of times anyway
MAX_TOKEN_ATTEMPTS = 3


class LinkService:
    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utcnow,
        config: Settings = default_settings,
    ):
        self.db = db
        self.clock = clock
        self.config = config

    def link_url(self, link: BookingLink) -> str:
        return f"{self.config.public_base_url.rstrip('/')}/booking/{link.token}"

    def _existing(self, booking_id: str, idempotency_key: str) -> Optional[BookingLink]:
        return self.db.query(BookingLink).filter(
            BookingLink.booking_id == booking_id,
            BookingLink.idempotency_key == idempotency_key,
        ).first()

    def issue(
        self,
        booking_id: str,
        ttl: Optional[timedelta] = None,
        idempotency_key: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> BookingLink:
        """
        Mint a guest link for a booking.

        With an ``idempotency_key`` a repeated call returns the link minted by
        the first call, whatever its ttl.
        """
        query = self.db.query(FlightBooking).filter(FlightBooking.id == booking_id)
        if account_id is not None:
            query = query.filter(FlightBooking.account_id == account_id)
        if query.first() is None:
            raise BookingNotFound(booking_id=booking_id)

        if idempotency_key:
            existing = self._existing(booking_id, idempotency_key)
            if existing is not None:
                return existing

        ttl = ttl or timedelta(days=self.config.booking_link_ttl_days)
        now = self.clock()

        for _ in range(MAX_TOKEN_ATTEMPTS):
            link = BookingLink(
                token=generate_secure_token(self.config.booking_link_token_length),
                booking_id=booking_id,
                idempotency_key=idempotency_key,
                expires_at=now + ttl,
                created_at=now,
            )
            self.db.add(link)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                if idempotency_key:
                    # A concurrent issue() with the same key won
                    existing = self._existing(booking_id, idempotency_key)
                    if existing is not None:
                        return existing
                continue
            self.db.refresh(link)
            logger.link_issued(booking_id, token_preview(link.token), link.expires_at)
            return link

        raise RuntimeError("Could not mint a unique booking link token")

    def resolve(self, token: str) -> FlightBooking:
        """Return the booking behind a live token."""
        link = self.db.query(BookingLink).filter(BookingLink.token == token).first() if token else None
        if link is None:
            logger.link_rejected(token_preview(token), "not_found")
            raise TokenNotFound()

        if link.expires_at < self.clock():
            logger.link_rejected(token_preview(token), "expired")
            raise TokenExpired(expired_at=link.expires_at.isoformat())

        booking = self.db.query(FlightBooking).filter(FlightBooking.id == link.booking_id).first()
        if booking is None:
            raise TokenNotFound()
        return booking

    def list_links(self, booking_id: str):
        return (
            self.db.query(BookingLink)
            .filter(BookingLink.booking_id == booking_id)
            .order_by(BookingLink.created_at.desc())
            .all()
        )

    def resolve_guest_view(self, token: str) -> GuestBookingView:
        return guest_view(self.resolve(token), self.config.support_email)


def guest_view(booking: FlightBooking, support_email: str) -> GuestBookingView:
    """
    Read-only projection for guest link holders: route, PNR, flights and
    passenger names. No contact, document or account data.
    """
    outbound = FlightSegmentSnapshot.model_validate(booking.outbound_flight)
    legs = [outbound]
    if booking.return_flight:
        legs.append(FlightSegmentSnapshot.model_validate(booking.return_flight))

    return GuestBookingView(
        status=booking.status,
        route=f"{outbound.origin} → {outbound.destination}",
        pnr=booking.display_reference,
        flights=[
            GuestFlightView(
                from_airport=leg.origin,
                to_airport=leg.destination,
                departure=leg.departing_at,
                arrival=leg.arriving_at,
                airline=leg.airline,
                flight_number=leg.flight_number,
                duration=leg.duration,
            )
            for leg in legs
        ],
        passengers=[
            GuestPassengerView(first_name=p.get("first_name", ""), last_name=p.get("last_name", ""))
            for p in booking.passengers or []
        ],
        support_email=support_email,
        airline=outbound.airline,
        departure_date=outbound.departure_date,
        total_amount=Money(booking.total_amount_minor, booking.currency).format_currency(),
    )
