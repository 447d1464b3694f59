"""
Validated, owned snapshot of an upstream flight offer.

The offer gateway parses raw provider payloads into these models at the
boundary; drafts store ``OfferSnapshot.model_dump(mode="json")`` and nothing
downstream ever sees the provider response itself.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils.money import Money, normalize_currency


class SnapshotModel(BaseModel):
    model_config = ConfigDict(frozen=True)


def _as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class WeightAllowance(SnapshotModel):
    amount: Decimal
    unit: str = "kg"

    def display(self) -> str:
        return f"{self.amount.normalize():f}{self.unit}"


class ConditionDetail(SnapshotModel):
    allowed: bool
    penalty_amount: Optional[str] = None
    penalty_currency: Optional[str] = None


class PolicyConditions(SnapshotModel):
    change_before_departure: Optional[ConditionDetail] = None
    refund_before_departure: Optional[ConditionDetail] = None

    @property
    def can_change(self) -> bool:
        return bool(self.change_before_departure and self.change_before_departure.allowed)

    @property
    def can_refund(self) -> bool:
        return bool(self.refund_before_departure and self.refund_before_departure.allowed)

    @property
    def change_policy(self) -> str:
        if not self.can_change:
            return "Changes not allowed"
        detail = self.change_before_departure
        if detail.penalty_amount:
            return f"Changes allowed with {detail.penalty_currency or 'EUR'} {detail.penalty_amount} fee"
        return "Free changes allowed"

    @property
    def refund_policy(self) -> str:
        if not self.can_refund:
            return "Non-refundable"
        detail = self.refund_before_departure
        if detail.penalty_amount:
            return f"Refundable with {detail.penalty_currency or 'EUR'} {detail.penalty_amount} fee"
        return "Fully refundable"


class IncludedBaggage(SnapshotModel):
    segment_id: str
    passenger_id: str
    cabin_quantity: int = 0
    checked_quantity: int = 0
    checked_weight: Optional[WeightAllowance] = None


class BaggageService(SnapshotModel):
    id: str
    passenger_id: str
    segment_ids: List[str]
    type: Literal["checked", "carry_on"] = "checked"
    max_quantity: int = Field(1, ge=1)
    price_minor: int = Field(..., ge=0)
    currency: str
    weight: Optional[WeightAllowance] = None

    @field_validator("currency")
    @classmethod
    def normalize_currency_code(cls, v: str) -> str:
        return normalize_currency(v)

    @property
    def unit_price(self) -> Money:
        return Money(self.price_minor, self.currency)


class SeatService(SnapshotModel):
    id: str
    passenger_id: str
    segment_id: str
    designator: str
    price_minor: int = Field(..., ge=0)
    currency: str

    @field_validator("currency")
    @classmethod
    def normalize_currency_code(cls, v: str) -> str:
        return normalize_currency(v)

    @property
    def price(self) -> Money:
        return Money(self.price_minor, self.currency)


class FlightSegmentSnapshot(SnapshotModel):
    """One direction of travel, frozen by value."""
    airline: str = "Unknown"
    airline_code: Optional[str] = None
    # Receipts and guest pages render these; offers without them are rejected
    flight_number: str = Field(..., min_length=1)
    departing_at: datetime
    arriving_at: datetime
    departure_date: str = ""
    origin: str = Field(..., min_length=1)
    destination: str = Field(..., min_length=1)
    origin_name: Optional[str] = None
    destination_name: Optional[str] = None
    duration: Optional[str] = None
    cabin_class: Optional[str] = None
    stops: int = 0
    segment_ids: List[str] = Field(default_factory=list)

    @property
    def departure_time(self) -> str:
        return self.departing_at.strftime("%H:%M")

    @property
    def arrival_time(self) -> str:
        return self.arriving_at.strftime("%H:%M")

    @property
    def stops_display(self) -> str:
        if self.stops == 0:
            return "Direct"
        return f"{self.stops} stop" + ("s" if self.stops > 1 else "")


class OfferPassenger(SnapshotModel):
    id: str
    type: Optional[str] = None


class OfferSnapshot(SnapshotModel):
    offer_id: str
    base_price_minor: int = Field(..., ge=0)
    currency: str
    expires_at: Optional[datetime] = None
    passengers: List[OfferPassenger] = Field(default_factory=list)
    outbound: FlightSegmentSnapshot
    return_flight: Optional[FlightSegmentSnapshot] = None
    conditions: PolicyConditions = Field(default_factory=PolicyConditions)
    included_baggage: List[IncludedBaggage] = Field(default_factory=list)
    baggage_services: List[BaggageService] = Field(default_factory=list)
    seat_services: List[SeatService] = Field(default_factory=list)
    requires_passport: bool = False

    @field_validator("currency")
    @classmethod
    def normalize_currency_code(cls, v: str) -> str:
        return normalize_currency(v)

    @field_validator("expires_at")
    @classmethod
    def normalize_expiry(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_naive_utc(v)

    @property
    def base_price(self) -> Money:
        return Money(self.base_price_minor, self.currency)

    @property
    def segment_ids(self) -> List[str]:
        ids = list(self.outbound.segment_ids)
        if self.return_flight:
            ids.extend(self.return_flight.segment_ids)
        return ids

    def baggage_service(self, service_id: str) -> Optional[BaggageService]:
        return next((s for s in self.baggage_services if s.id == service_id), None)

    def seat_service(self, service_id: str) -> Optional[SeatService]:
        return next((s for s in self.seat_services if s.id == service_id), None)

    def flight_number_for_segment(self, segment_id: str) -> Optional[str]:
        for leg in (self.outbound, self.return_flight):
            if leg and segment_id in leg.segment_ids:
                return leg.flight_number
        return None
