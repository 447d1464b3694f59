from pydantic import BaseModel, Field, computed_field
from typing import Optional, List
from datetime import datetime

from ..utils.money import Money
from .offer import FlightSegmentSnapshot


# ----- frozen snapshots stored on FlightBooking -----

class BookingPassenger(BaseModel):
    id: str
    type: str = "adult"
    title: Optional[str] = None
    first_name: str
    last_name: str
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    email: Optional[str] = None
    phone_country_code: Optional[str] = None
    phone_number: Optional[str] = None
    passport_number: Optional[str] = None
    passport_issuing_country: Optional[str] = None
    passport_expiry_date: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class IncludedBaggageSummary(BaseModel):
    passenger_id: str
    passenger_name: str
    cabin_bags: int = 0
    checked_bags: int = 0
    checked_weight: Optional[str] = None


class PaidBaggageSummary(BaseModel):
    service_id: str
    passenger_id: str
    passenger_name: str
    type: str = "checked"
    quantity: int
    weight: Optional[str] = None
    price_minor: int
    currency: str
    price: str


class SeatSummary(BaseModel):
    service_id: str
    passenger_id: str
    passenger_name: str
    segment_id: str
    flight_number: Optional[str] = None
    designator: str
    price_minor: int
    currency: str
    price: str


class PolicySummary(BaseModel):
    can_change: bool = False
    can_refund: bool = False
    change_policy: str = "Changes not allowed"
    refund_policy: str = "Non-refundable"
    change_penalty: Optional[str] = None
    refund_penalty: Optional[str] = None


# ----- requests -----

class SupportReferenceIn(BaseModel):
    support_reference: str = Field(..., min_length=1, max_length=100)


class LinkCreate(BaseModel):
    ttl_days: Optional[int] = Field(None, ge=1, le=365)
    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=100)


# ----- responses -----

class BookingResponse(BaseModel):
    id: str
    account_id: str
    trip_id: str
    draft_id: str
    offer_id: str
    upstream_order_id: Optional[str] = None
    booking_reference: Optional[str] = None
    display_reference: str
    status: str
    currency: str
    total_amount_minor: int
    base_price_minor: Optional[int] = None
    extras_total_minor: Optional[int] = None
    outbound_flight: FlightSegmentSnapshot
    return_flight: Optional[FlightSegmentSnapshot] = None
    passengers: List[BookingPassenger]
    policies: Optional[PolicySummary] = None
    included_baggage: List[IncludedBaggageSummary] = []
    paid_baggage: List[PaidBaggageSummary] = []
    seat_selections: List[SeatSummary] = []
    failure_reason: Optional[str] = None
    support_reference: Optional[str] = None
    confirmation_sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @computed_field
    @property
    def total_amount(self) -> str:
        return Money(self.total_amount_minor, self.currency).display()

    class Config:
        from_attributes = True


class BookingListItem(BaseModel):
    id: str
    trip_id: str
    display_reference: str
    status: str
    currency: str
    total_amount_minor: int
    departure_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LinkResponse(BaseModel):
    token: str
    url: str
    booking_id: str
    expires_at: datetime
    created_at: Optional[datetime] = None


class GuestFlightView(BaseModel):
    from_airport: str
    to_airport: str
    departure: Optional[datetime] = None
    arrival: Optional[datetime] = None
    airline: str
    flight_number: str
    duration: Optional[str] = None


class GuestPassengerView(BaseModel):
    first_name: str
    last_name: str


class GuestBookingView(BaseModel):
    """Read-only projection served to holders of a guest link"""
    status: str
    route: str
    pnr: str
    flights: List[GuestFlightView]
    passengers: List[GuestPassengerView]
    support_email: str
    airline: str
    departure_date: str
    total_amount: str


class ConfirmationResult(BaseModel):
    success: bool = True
    already_sent: bool = False
    provider: Optional[str] = None
    message_id: Optional[str] = None
    sent_at: Optional[datetime] = None
