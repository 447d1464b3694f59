from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List
from datetime import datetime, date
from enum import Enum

from ..utils.sanitization import sanitize_text
from .offer import FlightSegmentSnapshot


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class PassengerType(str, Enum):
    ADULT = "adult"
    CHILD = "child"
    INFANT = "infant_without_seat"


class Title(str, Enum):
    MR = "mr"
    MS = "ms"
    MRS = "mrs"
    MISS = "miss"
    DR = "dr"


class TravelerInput(BaseModel):
    """Passenger details supplied when the draft is created"""
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    date_of_birth: date
    gender: Gender
    title: Optional[Title] = None
    email: Optional[EmailStr] = None
    phone_country_code: Optional[str] = Field(None, max_length=8)
    phone_number: Optional[str] = Field(None, max_length=32)
    passport_number: Optional[str] = Field(None, max_length=50)
    passport_issuing_country: Optional[str] = Field(None, min_length=2, max_length=2)
    passport_expiry_date: Optional[date] = None
    traveler_profile_id: Optional[str] = Field(None, max_length=36)

    @field_validator('first_name', 'last_name', 'passport_number', mode='before')
    @classmethod
    def sanitize_text_fields(cls, v):
        return sanitize_text(v)


class DraftPassenger(BaseModel):
    """
    A passenger as stored on the draft.

    ``id`` is the upstream passenger id the offer was priced for and never
    changes after creation.
    """
    id: str
    type: PassengerType = PassengerType.ADULT
    title: Title
    first_name: str
    last_name: str
    date_of_birth: date
    gender: Gender
    email: Optional[str] = None
    phone_country_code: Optional[str] = None
    phone_number: Optional[str] = None
    passport_number: Optional[str] = None
    passport_issuing_country: Optional[str] = None
    passport_expiry_date: Optional[date] = None
    traveler_profile_id: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def has_passport(self) -> bool:
        return bool(
            self.passport_number
            and self.passport_issuing_country
            and self.passport_expiry_date
        )


class PassengerUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    title: Optional[Title] = None
    email: Optional[EmailStr] = None
    phone_country_code: Optional[str] = Field(None, max_length=8)
    phone_number: Optional[str] = Field(None, max_length=32)
    passport_number: Optional[str] = Field(None, max_length=50)
    passport_issuing_country: Optional[str] = Field(None, min_length=2, max_length=2)
    passport_expiry_date: Optional[date] = None

    @field_validator('first_name', 'last_name', 'passport_number', mode='before')
    @classmethod
    def sanitize_text_fields(cls, v):
        return sanitize_text(v)


class BagSelectionIn(BaseModel):
    service_id: str = Field(..., min_length=1, max_length=255)
    passenger_id: str = Field(..., min_length=1, max_length=255)
    segment_id: Optional[str] = Field(None, max_length=255)
    quantity: int = Field(1, ge=1, le=10)


class SeatSelectionIn(BaseModel):
    service_id: str = Field(..., min_length=1, max_length=255)
    passenger_id: str = Field(..., min_length=1, max_length=255)
    segment_id: str = Field(..., min_length=1, max_length=255)


class ExtrasSelection(BaseModel):
    """Full replacement of the bag and seat selection"""
    bags: List[BagSelectionIn] = Field(default_factory=list, max_length=50)
    seats: List[SeatSelectionIn] = Field(default_factory=list, max_length=50)


class SelectedBag(BaseModel):
    service_id: str
    passenger_id: str
    segment_ids: List[str]
    type: str = "checked"
    quantity: int
    unit_price_minor: int
    total_price_minor: int
    currency: str
    weight: Optional[str] = None


class SelectedSeat(BaseModel):
    service_id: str
    passenger_id: str
    segment_id: str
    designator: str
    price_minor: int
    currency: str


class DraftCreate(BaseModel):
    trip_id: str = Field(..., min_length=1, max_length=64)
    offer_id: str = Field(..., min_length=1, max_length=255)
    passengers: List[TravelerInput] = Field(..., min_length=1, max_length=9)


class PolicyAcknowledge(BaseModel):
    acknowledged: bool = True


# ----- read models -----

class PolicyView(BaseModel):
    can_change: bool
    can_refund: bool
    change_policy: str
    refund_policy: str
    change_penalty: Optional[str] = None
    refund_penalty: Optional[str] = None
    acknowledged: bool = False


class IncludedBaggageView(BaseModel):
    passenger_id: str
    passenger_name: str
    cabin_bags: int
    checked_bags: int
    checked_weight: Optional[str] = None


class AvailableBagView(BaseModel):
    service_id: str
    passenger_id: str
    segment_ids: List[str]
    type: str
    max_quantity: int
    price: str
    price_minor: int
    weight: Optional[str] = None


class SelectedBagView(SelectedBag):
    price: str


class SelectedSeatView(SelectedSeat):
    price: str


class DraftPassengerView(BaseModel):
    id: str
    type: PassengerType
    title: Title
    first_name: str
    last_name: str
    date_of_birth: date
    gender: Gender
    email: Optional[str] = None
    has_passport: bool = False
    traveler_profile_id: Optional[str] = None


class DraftView(BaseModel):
    id: str
    trip_id: str
    offer_id: str
    status: str
    version: int
    currency: str
    base_price_minor: int
    extras_total_minor: int
    total_price_minor: int
    base_price: str
    extras_total: str
    total_price: str
    outbound: FlightSegmentSnapshot
    return_flight: Optional[FlightSegmentSnapshot] = None
    passengers: List[DraftPassengerView]
    selected_bags: List[SelectedBagView]
    selected_seats: List[SelectedSeatView]
    included_baggage: List[IncludedBaggageView]
    available_bags: List[AvailableBagView]
    available_seat_count: int
    policies: PolicyView
    requires_passport: bool
    expires_at: Optional[datetime] = None
    expires_in_minutes: Optional[int] = None
    booking_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DraftStatusView(BaseModel):
    id: str
    status: str
    version: int
    booking_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
