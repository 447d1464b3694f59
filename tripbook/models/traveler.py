import uuid
from datetime import datetime
from sqlalchemy import Column, String, Date, DateTime, Boolean, Index
from ..database import Base


class TravelerProfile(Base):
    """Saved traveler details an account can reuse across bookings"""
    __tablename__ = "traveler_profiles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    account_id = Column(String(64), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    date_of_birth = Column(Date, nullable=False)
    gender = Column(String(10), nullable=False)
    email = Column(String(255), nullable=True)
    phone_country_code = Column(String(8), nullable=True)
    phone_number = Column(String(32), nullable=True)
    passport_number = Column(String(50), nullable=True)
    passport_issuing_country = Column(String(2), nullable=True)
    passport_expiry_date = Column(Date, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Soft Delete
    is_deleted = Column(Boolean, default=False, index=True)
    deleted_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_traveler_profile_account", "account_id", "is_deleted"),
    )

    def __repr__(self):
        return f"<TravelerProfile {self.first_name} {self.last_name}>"
