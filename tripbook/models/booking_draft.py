import uuid
from datetime import datetime
from sqlalchemy import Column, String, BigInteger, Integer, Boolean, DateTime, JSON, Index
from ..database import Base
import enum


class DraftStatus(str, enum.Enum):
    DRAFT = "draft"
    EXTRAS_SELECTED = "extras_selected"
    READY_FOR_PAYMENT = "ready_for_payment"
    COMPLETED = "completed"  # terminal, converted into a FlightBooking
    EXPIRED = "expired"      # terminal, offer or draft lifetime elapsed


TERMINAL_DRAFT_STATUSES = frozenset({DraftStatus.COMPLETED, DraftStatus.EXPIRED})

OPEN_DRAFT_STATUSES = frozenset({
    DraftStatus.DRAFT,
    DraftStatus.EXTRAS_SELECTED,
    DraftStatus.READY_FOR_PAYMENT,
})

# Every legal (from -> to) pair. Anything missing is an InvalidTransition.
DRAFT_TRANSITIONS = {
    DraftStatus.DRAFT: frozenset({
        DraftStatus.EXTRAS_SELECTED,
        DraftStatus.READY_FOR_PAYMENT,
        DraftStatus.EXPIRED,
    }),
    DraftStatus.EXTRAS_SELECTED: frozenset({
        DraftStatus.EXTRAS_SELECTED,
        DraftStatus.READY_FOR_PAYMENT,
        DraftStatus.EXPIRED,
    }),
    DraftStatus.READY_FOR_PAYMENT: frozenset({
        DraftStatus.EXTRAS_SELECTED,  # policy un-acknowledged
        DraftStatus.COMPLETED,
        DraftStatus.EXPIRED,
    }),
    DraftStatus.COMPLETED: frozenset(),
    DraftStatus.EXPIRED: frozenset(),
}


def can_transition(current: DraftStatus, target: DraftStatus) -> bool:
    return target in DRAFT_TRANSITIONS[DraftStatus(current)]


class BookingDraft(Base):
    """
    Pre-purchase assembly of an offer, its passengers and selected extras.

    Prices are integer minor units in ``currency``. ``total_price_minor`` is
    always base + extras and is rewritten together with the line items.
    ``offer_snapshot`` is the parsed offer captured at creation time and is
    never refreshed from upstream.
    """
    __tablename__ = "booking_drafts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    account_id = Column(String(64), nullable=False, index=True)
    trip_id = Column(String(64), nullable=False)

    # Upstream offer
    offer_id = Column(String(255), nullable=False)
    offer_expires_at = Column(DateTime, nullable=True)

    # Money (minor units)
    currency = Column(String(3), nullable=False)
    base_price_minor = Column(BigInteger, nullable=False)
    extras_total_minor = Column(BigInteger, nullable=False, default=0)
    total_price_minor = Column(BigInteger, nullable=False)

    # Passengers and selections (lists of dicts, see schemas.booking_draft)
    passengers = Column(JSON, nullable=False, default=list)
    selected_bags = Column(JSON, nullable=False, default=list)
    selected_seats = Column(JSON, nullable=False, default=list)

    # Point-in-time offer snapshot (schemas.offer.OfferSnapshot)
    offer_snapshot = Column(JSON, nullable=False)

    policy_acknowledged = Column(Boolean, nullable=False, default=False)
    policy_acknowledged_at = Column(DateTime, nullable=True)

    status = Column(String(30), nullable=False, default=DraftStatus.DRAFT.value)
    # Bumped on every write, part of the compare-and-swap predicate
    version = Column(Integer, nullable=False, default=1)

    booking_id = Column(String(36), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_booking_draft_account_trip", "account_id", "trip_id", "created_at"),
        Index("ix_booking_draft_status_expiry", "status", "expires_at"),
    )

    @property
    def draft_status(self) -> DraftStatus:
        return DraftStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.draft_status in TERMINAL_DRAFT_STATUSES

    def effective_expiry(self):
        """The earlier of the offer expiry and the draft's own expiry."""
        candidates = [d for d in (self.offer_expires_at, self.expires_at) if d is not None]
        return min(candidates) if candidates else None

    def __repr__(self):
        return f"<BookingDraft {self.id} offer={self.offer_id} status={self.status}>"
