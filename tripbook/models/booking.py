import uuid
from datetime import datetime
from sqlalchemy import Column, String, BigInteger, Text, DateTime, JSON, Index
from ..database import Base
import enum


class BookingStatus(str, enum.Enum):
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"  # terminal
    FAILED = "failed"        # terminal


BOOKING_TRANSITIONS = {
    BookingStatus.PENDING_PAYMENT: frozenset({BookingStatus.CONFIRMED, BookingStatus.FAILED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.FAILED: frozenset(),
}


class FlightBooking(Base):
    """
    Durable record of a paid draft.

    Flight, passenger and price data are frozen copies taken at conversion
    time. Only status fields, the confirmation marker and the support
    reference are written after insert, and rows are never deleted.
    """
    __tablename__ = "flight_bookings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    account_id = Column(String(64), nullable=False, index=True)
    trip_id = Column(String(64), nullable=False, index=True)
    # One booking per draft, backstop for the draft's completed transition
    draft_id = Column(String(36), nullable=False, unique=True)

    # Upstream order
    offer_id = Column(String(255), nullable=False)
    upstream_order_id = Column(String(255), nullable=True)
    booking_reference = Column(String(32), nullable=True)
    payment_intent_id = Column(String(255), nullable=True)

    # Financial summary (minor units)
    currency = Column(String(3), nullable=False)
    total_amount_minor = Column(BigInteger, nullable=False)
    base_price_minor = Column(BigInteger, nullable=True)
    extras_total_minor = Column(BigInteger, nullable=True)

    # Frozen snapshots (schemas.booking)
    outbound_flight = Column(JSON, nullable=False)
    return_flight = Column(JSON, nullable=True)
    passengers = Column(JSON, nullable=False)
    policies = Column(JSON, nullable=True)
    included_baggage = Column(JSON, nullable=False, default=list)
    paid_baggage = Column(JSON, nullable=False, default=list)
    seat_selections = Column(JSON, nullable=False, default=list)
    departure_at = Column(DateTime, nullable=True)

    status = Column(String(30), nullable=False, default=BookingStatus.PENDING_PAYMENT.value)
    failure_reason = Column(Text, nullable=True)

    # Idempotency marker for the confirmation notification
    confirmation_sent_at = Column(DateTime, nullable=True)
    confirmation_provider = Column(String(50), nullable=True)
    confirmation_message_id = Column(String(255), nullable=True)

    support_reference = Column(String(100), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    confirmed_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_flight_booking_upstream_order", "upstream_order_id"),
        Index("ix_flight_booking_account_created", "account_id", "created_at"),
    )

    @property
    def booking_status(self) -> BookingStatus:
        return BookingStatus(self.status)

    @property
    def display_reference(self) -> str:
        """PNR shown to travelers"""
        if self.booking_reference:
            return self.booking_reference
        if self.upstream_order_id:
            return self.upstream_order_id[-6:].upper()
        return "PENDING"

    def __repr__(self):
        return f"<FlightBooking {self.id} ref={self.booking_reference} status={self.status}>"
