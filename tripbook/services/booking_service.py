"""
Booking Record Store

Converts a paid draft into a ``FlightBooking`` and owns the booking status
machine. Flight, passenger and price data are copied by value at conversion
time; after insert only status fields, the confirmation marker and the
support reference are ever written.
"""

import uuid
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from ..errors import BookingNotFound, InvalidTransition
from ..models.booking import FlightBooking, BookingStatus, BOOKING_TRANSITIONS
from ..models.booking_draft import BookingDraft, DraftStatus
from ..schemas.booking import (
    BookingPassenger,
    IncludedBaggageSummary,
    PaidBaggageSummary,
    PolicySummary,
    SeatSummary,
)
from ..schemas.booking_draft import DraftPassenger, SelectedBag, SelectedSeat
from ..schemas.offer import OfferSnapshot
from ..utils.db_helpers import compare_and_set
from ..utils.logging_config import get_logger
from ..utils.money import Money
from ..utils.security import utcnow

logger = get_logger(__name__)


def _penalty(detail) -> Optional[str]:
    if detail and detail.allowed and detail.penalty_amount:
        return f"{detail.penalty_currency or 'EUR'} {detail.penalty_amount}"
    return None


def policy_summary(snapshot: OfferSnapshot) -> PolicySummary:
    conditions = snapshot.conditions
    return PolicySummary(
        can_change=conditions.can_change,
        can_refund=conditions.can_refund,
        change_policy=conditions.change_policy,
        refund_policy=conditions.refund_policy,
        change_penalty=_penalty(conditions.change_before_departure),
        refund_penalty=_penalty(conditions.refund_before_departure),
    )


def included_baggage_by_passenger(snapshot: OfferSnapshot, passengers: List[DraftPassenger]) -> List[IncludedBaggageSummary]:
    """Allowance on the first segment each passenger flies"""
    summaries = []
    for passenger in passengers:
        allowance = next(
            (b for b in snapshot.included_baggage if b.passenger_id == passenger.id),
            None,
        )
        summaries.append(IncludedBaggageSummary(
            passenger_id=passenger.id,
            passenger_name=passenger.full_name,
            cabin_bags=allowance.cabin_quantity if allowance else 0,
            checked_bags=allowance.checked_quantity if allowance else 0,
            checked_weight=allowance.checked_weight.display() if allowance and allowance.checked_weight else None,
        ))
    return summaries


def convert_draft(draft: BookingDraft, now: datetime, payment_intent_id: Optional[str] = None) -> FlightBooking:
    """
    Build (but do not persist) the booking for a ``ready_for_payment`` draft.

    Reads only the draft and its stored offer snapshot. The caller is
    responsible for flipping the draft to ``completed`` in the same
    transaction that inserts the returned row.
    """
    if draft.draft_status != DraftStatus.READY_FOR_PAYMENT:
        raise InvalidTransition(
            f"Cannot convert a draft in status {draft.status}",
            draft_id=draft.id,
            status=draft.status,
        )

    snapshot = OfferSnapshot.model_validate(draft.offer_snapshot)
    passengers = [DraftPassenger.model_validate(p) for p in draft.passengers or []]
    names = {p.id: p.full_name for p in passengers}
    bags = [SelectedBag.model_validate(b) for b in draft.selected_bags or []]
    seats = [SelectedSeat.model_validate(s) for s in draft.selected_seats or []]

    frozen_passengers = [
        BookingPassenger(
            id=p.id,
            type=p.type.value,
            title=p.title.value,
            first_name=p.first_name,
            last_name=p.last_name,
            date_of_birth=p.date_of_birth.isoformat(),
            gender=p.gender.value,
            email=p.email,
            phone_country_code=p.phone_country_code,
            phone_number=p.phone_number,
            passport_number=p.passport_number,
            passport_issuing_country=p.passport_issuing_country,
            passport_expiry_date=p.passport_expiry_date.isoformat() if p.passport_expiry_date else None,
        ).model_dump(mode="json")
        for p in passengers
    ]

    paid_baggage = [
        PaidBaggageSummary(
            service_id=b.service_id,
            passenger_id=b.passenger_id,
            passenger_name=names.get(b.passenger_id, ""),
            type=b.type,
            quantity=b.quantity,
            weight=b.weight,
            price_minor=b.total_price_minor,
            currency=b.currency,
            price=Money(b.total_price_minor, b.currency).display(),
        ).model_dump(mode="json")
        for b in bags
    ]

    seat_selections = [
        SeatSummary(
            service_id=s.service_id,
            passenger_id=s.passenger_id,
            passenger_name=names.get(s.passenger_id, ""),
            segment_id=s.segment_id,
            flight_number=snapshot.flight_number_for_segment(s.segment_id),
            designator=s.designator,
            price_minor=s.price_minor,
            currency=s.currency,
            price=Money(s.price_minor, s.currency).display(),
        ).model_dump(mode="json")
        for s in seats
    ]

    return FlightBooking(
        id=str(uuid.uuid4()),
        account_id=draft.account_id,
        trip_id=draft.trip_id,
        draft_id=draft.id,
        offer_id=draft.offer_id,
        payment_intent_id=payment_intent_id,
        currency=draft.currency,
        total_amount_minor=draft.total_price_minor,
        base_price_minor=draft.base_price_minor,
        extras_total_minor=draft.extras_total_minor,
        outbound_flight=snapshot.outbound.model_dump(mode="json"),
        return_flight=snapshot.return_flight.model_dump(mode="json") if snapshot.return_flight else None,
        passengers=frozen_passengers,
        policies=policy_summary(snapshot).model_dump(mode="json"),
        included_baggage=[s.model_dump(mode="json") for s in included_baggage_by_passenger(snapshot, passengers)],
        paid_baggage=paid_baggage,
        seat_selections=seat_selections,
        departure_at=snapshot.outbound.departing_at,
        status=BookingStatus.PENDING_PAYMENT.value,
        created_at=now,
    )


class BookingService:
    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    def get_by_draft(self, draft_id: str) -> Optional[FlightBooking]:
        return self.db.query(FlightBooking).filter(FlightBooking.draft_id == draft_id).first()

    def get_booking(self, booking_id: str, account_id: Optional[str] = None) -> FlightBooking:
        query = self.db.query(FlightBooking).filter(FlightBooking.id == booking_id)
        if account_id is not None:
            query = query.filter(FlightBooking.account_id == account_id)
        booking = query.first()
        if not booking:
            raise BookingNotFound(booking_id=booking_id)
        return booking

    def list_bookings(
        self,
        account_id: str,
        status: Optional[BookingStatus] = None,
        trip_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[FlightBooking]:
        query = self.db.query(FlightBooking).filter(FlightBooking.account_id == account_id)
        if status is not None:
            query = query.filter(FlightBooking.status == BookingStatus(status).value)
        if trip_id:
            query = query.filter(FlightBooking.trip_id == trip_id)
        return (
            query.order_by(FlightBooking.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def _transition(self, booking: FlightBooking, target: BookingStatus, values: dict) -> FlightBooking:
        current = booking.booking_status
        if target not in BOOKING_TRANSITIONS[current]:
            raise InvalidTransition(
                f"Booking cannot move from {current.value} to {target.value}",
                booking_id=booking.id,
                status=current.value,
            )

        won = compare_and_set(
            self.db,
            FlightBooking,
            and_(FlightBooking.id == booking.id, FlightBooking.status == current.value),
            {"status": target.value, **values},
        )
        if not won:
            self.db.rollback()
            self.db.refresh(booking)
            raise InvalidTransition(
                f"Booking cannot move from {booking.status} to {target.value}",
                booking_id=booking.id,
                status=booking.status,
            )

        self.db.commit()
        self.db.refresh(booking)
        logger.booking_status_changed(booking.id, current.value, target.value)
        return booking

    def confirm(
        self,
        booking_id: str,
        upstream_order_id: str,
        booking_reference: Optional[str] = None,
        account_id: Optional[str] = None,
        payment_intent_id: Optional[str] = None,
    ) -> FlightBooking:
        booking = self.get_booking(booking_id, account_id)
        values = {
            "upstream_order_id": upstream_order_id,
            "booking_reference": booking_reference.upper() if booking_reference else None,
            "confirmed_at": self.clock(),
        }
        if payment_intent_id:
            values["payment_intent_id"] = payment_intent_id
        return self._transition(booking, BookingStatus.CONFIRMED, values)

    def fail(self, booking_id: str, reason: str, account_id: Optional[str] = None) -> FlightBooking:
        booking = self.get_booking(booking_id, account_id)
        return self._transition(booking, BookingStatus.FAILED, {
            "failure_reason": reason,
            "failed_at": self.clock(),
        })

    def cancel(self, booking_id: str, account_id: Optional[str] = None) -> FlightBooking:
        booking = self.get_booking(booking_id, account_id)
        return self._transition(booking, BookingStatus.CANCELLED, {"cancelled_at": self.clock()})

    def set_support_reference(self, booking_id: str, support_reference: str, account_id: Optional[str] = None) -> FlightBooking:
        """Attach a support ticket reference. Write-once: a second, different value is rejected."""
        booking = self.get_booking(booking_id, account_id)
        won = compare_and_set(
            self.db,
            FlightBooking,
            and_(FlightBooking.id == booking.id, FlightBooking.support_reference.is_(None)),
            {"support_reference": support_reference},
        )
        if won:
            self.db.commit()
        else:
            self.db.rollback()
        self.db.refresh(booking)
        if booking.support_reference != support_reference:
            raise InvalidTransition(
                "Booking already has a support reference",
                booking_id=booking.id,
            )
        return booking
