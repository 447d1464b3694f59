import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from ..database import Base


class BookingLink(Base):
    """
    Guest access capability for a single booking.

    Validity is decided at read time from ``expires_at``. Expired links are
    kept and rejected on lookup.
    """
    __tablename__ = "booking_links"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    token = Column(String(64), nullable=False, unique=True, index=True)
    booking_id = Column(String(36), ForeignKey("flight_bookings.id"), nullable=False, index=True)
    # Repeated issue() calls with the same key return the same link
    idempotency_key = Column(String(100), nullable=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("booking_id", "idempotency_key", name="uq_booking_link_idempotency"),
    )

    def __repr__(self):
        return f"<BookingLink booking={self.booking_id} expires={self.expires_at}>"
