"""
Draft Store

Owns ``BookingDraft`` and its state machine:

    draft -> extras_selected -> ready_for_payment -> completed
    (any open state) -> expired

Every write is a single compare-and-set UPDATE on (id, status, version), so
two concurrent requests against the same draft can never both apply. Totals
are recomputed from the line items on every mutation and verified before the
write is issued.
"""

from datetime import datetime, date, timedelta
from typing import Callable, Dict, List, Optional, Set

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import Settings, settings as default_settings
from ..errors import (
    CurrencyMismatch,
    DraftConflict,
    DraftFinalized,
    DraftNotFound,
    IncompleteTravelerData,
    InvalidExtra,
    InvalidReference,
    InvalidTransition,
    MoneyInconsistency,
    OfferExpired,
    PolicyNotAcknowledged,
    TravelerNotFound,
)
from ..models.booking import FlightBooking
from ..models.booking_draft import (
    BookingDraft,
    DraftStatus,
    OPEN_DRAFT_STATUSES,
    can_transition,
)
from ..models.traveler import TravelerProfile
from ..schemas.booking_draft import (
    AvailableBagView,
    DraftCreate,
    DraftPassenger,
    DraftPassengerView,
    DraftView,
    ExtrasSelection,
    Gender,
    PassengerType,
    PassengerUpdate,
    PolicyView,
    SelectedBag,
    SelectedBagView,
    SelectedSeat,
    SelectedSeatView,
    Title,
    TravelerInput,
)
from ..schemas.offer import OfferSnapshot
from ..utils.db_helpers import compare_and_set
from ..utils.logging_config import get_logger
from ..utils.money import Money, sum_money
from ..utils.security import utcnow
from .booking_service import BookingService, convert_draft, included_baggage_by_passenger, policy_summary
from .offer_gateway import OfferGateway

logger = get_logger(__name__)

# Statuses in which passengers and extras may still be edited
EDITABLE_STATUSES = frozenset({DraftStatus.DRAFT, DraftStatus.EXTRAS_SELECTED})


def age_on(date_of_birth: date, on: date) -> int:
    years = on.year - date_of_birth.year
    if (on.month, on.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years


def passenger_type_for(date_of_birth: date, on: date) -> PassengerType:
    age = age_on(date_of_birth, on)
    if age < 2:
        return PassengerType.INFANT
    if age < 12:
        return PassengerType.CHILD
    return PassengerType.ADULT


def default_title(gender: Gender) -> Title:
    return Title.MR if gender == Gender.MALE else Title.MS


def compute_extras(bags: List[SelectedBag], seats: List[SelectedSeat], currency: str) -> Money:
    lines = [Money(b.total_price_minor, b.currency) for b in bags]
    lines += [Money(s.price_minor, s.currency) for s in seats]
    return sum_money(lines, currency)


def verify_totals(
    base_minor: int,
    extras_minor: int,
    total_minor: int,
    bags: List[SelectedBag],
    seats: List[SelectedSeat],
    currency: str,
) -> None:
    """Raise MoneyInconsistency unless total == base + sum(lines) in one currency."""
    try:
        recomputed = compute_extras(bags, seats, currency)
    except (CurrencyMismatch, TypeError, ValueError) as e:
        raise MoneyInconsistency(f"Extras could not be summed: {e}", currency=currency)

    for bag in bags:
        if bag.total_price_minor != bag.unit_price_minor * bag.quantity:
            raise MoneyInconsistency(
                "Bag line total does not match unit price x quantity",
                service_id=bag.service_id,
            )
    if recomputed.amount_minor != extras_minor:
        raise MoneyInconsistency(
            "Extras total does not match the selected extras",
            expected=recomputed.amount_minor,
            stored=extras_minor,
        )
    if base_minor + extras_minor != total_minor:
        raise MoneyInconsistency(
            "Grand total does not equal base price plus extras",
            base=base_minor,
            extras=extras_minor,
            total=total_minor,
        )


class DraftService:
    def __init__(
        self,
        db: Session,
        gateway: Optional[OfferGateway] = None,
        clock: Callable[[], datetime] = utcnow,
        config: Settings = default_settings,
    ):
        self.db = db
        self.gateway = gateway
        self.clock = clock
        self.config = config

    # ----- loading / guards -----

    def _load(self, draft_id: str, account_id: Optional[str] = None) -> BookingDraft:
        query = self.db.query(BookingDraft).filter(BookingDraft.id == draft_id)
        if account_id is not None:
            query = query.filter(BookingDraft.account_id == account_id)
        draft = query.first()
        if not draft:
            raise DraftNotFound(draft_id=draft_id)
        return draft

    def _load_open(self, draft_id: str, account_id: Optional[str] = None) -> BookingDraft:
        """Load a draft that may still be read or mutated, expiring it if its time is up."""
        draft = self._load(draft_id, account_id)
        if draft.is_terminal:
            raise DraftFinalized(
                f"Booking draft is already {draft.status}",
                draft_id=draft.id,
                status=draft.status,
                booking_id=draft.booking_id,
            )

        expiry = draft.effective_expiry()
        if expiry is not None and expiry <= self.clock():
            self._expire(draft)
            raise OfferExpired(draft_id=draft.id, expired_at=expiry.isoformat())
        return draft

    def _expire(self, draft: BookingDraft) -> bool:
        old_status = draft.status
        won = compare_and_set(
            self.db,
            BookingDraft,
            and_(
                BookingDraft.id == draft.id,
                BookingDraft.status == old_status,
                BookingDraft.version == draft.version,
            ),
            {
                "status": DraftStatus.EXPIRED.value,
                "version": draft.version + 1,
                "updated_at": self.clock(),
            },
        )
        if won:
            self.db.commit()
            logger.draft_transition(draft.id, old_status, DraftStatus.EXPIRED.value)
        else:
            self.db.rollback()
        self.db.refresh(draft)
        return won

    def _write(self, draft: BookingDraft, values: Dict, target: Optional[DraftStatus] = None) -> BookingDraft:
        """
        Compare-and-set ``values`` onto the draft as last read.

        ``target`` None keeps the current status.
        """
        current = draft.draft_status
        if target is not None and not can_transition(current, target):
            raise InvalidTransition(
                f"Draft cannot move from {current.value} to {target.value}",
                draft_id=draft.id,
                status=current.value,
            )

        new_status = (target or current).value
        seen_version = draft.version
        won = compare_and_set(
            self.db,
            BookingDraft,
            and_(
                BookingDraft.id == draft.id,
                BookingDraft.status == current.value,
                BookingDraft.version == seen_version,
            ),
            {
                **values,
                "status": new_status,
                "version": seen_version + 1,
                "updated_at": self.clock(),
            },
        )
        if not won:
            self.db.rollback()
            self.db.refresh(draft)
            if draft.is_terminal:
                raise DraftFinalized(
                    f"Booking draft is already {draft.status}",
                    draft_id=draft.id,
                    status=draft.status,
                    booking_id=draft.booking_id,
                )
            raise DraftConflict(draft_id=draft.id, expected_version=seen_version, version=draft.version)

        self.db.commit()
        self.db.refresh(draft)
        if new_status != current.value:
            logger.draft_transition(draft.id, current.value, new_status)
        return draft

    @staticmethod
    def _require_editable(draft: BookingDraft) -> None:
        if draft.draft_status not in EDITABLE_STATUSES:
            raise InvalidTransition(
                "Draft is awaiting payment; withdraw the policy acknowledgement to edit it",
                draft_id=draft.id,
                status=draft.status,
            )

    @staticmethod
    def snapshot_of(draft: BookingDraft) -> OfferSnapshot:
        return OfferSnapshot.model_validate(draft.offer_snapshot)

    @staticmethod
    def passengers_of(draft: BookingDraft) -> List[DraftPassenger]:
        return [DraftPassenger.model_validate(p) for p in draft.passengers or []]

    # ----- create -----

    def _check_profiles(self, account_id: str, inputs: List[TravelerInput]) -> None:
        profile_ids = {p.traveler_profile_id for p in inputs if p.traveler_profile_id}
        if not profile_ids:
            return
        found = {
            row.id
            for row in self.db.query(TravelerProfile.id).filter(
                TravelerProfile.id.in_(profile_ids),
                TravelerProfile.account_id == account_id,
                TravelerProfile.is_deleted == False,  # noqa: E712
            )
        }
        missing = profile_ids - found
        if missing:
            raise TravelerNotFound(traveler_profile_ids=sorted(missing))

    def create(self, account_id: str, data: DraftCreate) -> BookingDraft:
        if self.gateway is None:
            raise RuntimeError("DraftService.create requires an offer gateway")

        snapshot = self.gateway.get_offer(data.offer_id)
        now = self.clock()

        if snapshot.expires_at is not None and snapshot.expires_at <= now:
            raise OfferExpired(offer_id=data.offer_id, expired_at=snapshot.expires_at.isoformat())

        if snapshot.passengers and len(snapshot.passengers) != len(data.passengers):
            raise InvalidReference(
                f"Offer is priced for {len(snapshot.passengers)} passenger(s), got {len(data.passengers)}",
                offer_id=data.offer_id,
            )

        self._check_profiles(account_id, data.passengers)

        passengers = []
        for i, traveler in enumerate(data.passengers):
            upstream_id = snapshot.passengers[i].id if i < len(snapshot.passengers) else f"pas_{i}"
            passengers.append(DraftPassenger(
                id=upstream_id,
                type=passenger_type_for(traveler.date_of_birth, now.date()),
                title=traveler.title or default_title(traveler.gender),
                first_name=traveler.first_name,
                last_name=traveler.last_name,
                date_of_birth=traveler.date_of_birth,
                gender=traveler.gender,
                email=str(traveler.email) if traveler.email else None,
                phone_country_code=traveler.phone_country_code,
                phone_number=traveler.phone_number,
                passport_number=traveler.passport_number,
                passport_issuing_country=traveler.passport_issuing_country.upper() if traveler.passport_issuing_country else None,
                passport_expiry_date=traveler.passport_expiry_date,
                traveler_profile_id=traveler.traveler_profile_id,
            ))

        base = snapshot.base_price
        draft = BookingDraft(
            account_id=account_id,
            trip_id=data.trip_id,
            offer_id=snapshot.offer_id,
            offer_expires_at=snapshot.expires_at,
            currency=base.currency,
            base_price_minor=base.amount_minor,
            extras_total_minor=0,
            total_price_minor=base.amount_minor,
            passengers=[p.model_dump(mode="json") for p in passengers],
            selected_bags=[],
            selected_seats=[],
            offer_snapshot=snapshot.model_dump(mode="json"),
            policy_acknowledged=False,
            status=DraftStatus.DRAFT.value,
            version=1,
            created_at=now,
            updated_at=now,
            expires_at=snapshot.expires_at or now + timedelta(minutes=self.config.draft_default_ttl_minutes),
        )
        verify_totals(draft.base_price_minor, 0, draft.total_price_minor, [], [], draft.currency)

        self.db.add(draft)
        self.db.commit()
        self.db.refresh(draft)

        logger.draft_created(draft.id, draft.offer_id, len(passengers), base.display())
        return draft

    # ----- reads -----

    def get_draft(self, draft_id: str, account_id: Optional[str] = None) -> BookingDraft:
        return self._load_open(draft_id, account_id)

    def get_draft_status(self, draft_id: str, account_id: Optional[str] = None) -> BookingDraft:
        """Status poll; works on finalized drafts so clients can follow a payment through."""
        return self._load(draft_id, account_id)

    def find_active_draft_for_trip(self, account_id: str, trip_id: str) -> Optional[BookingDraft]:
        now = self.clock()
        return (
            self.db.query(BookingDraft)
            .filter(
                BookingDraft.account_id == account_id,
                BookingDraft.trip_id == trip_id,
                BookingDraft.status.in_([s.value for s in OPEN_DRAFT_STATUSES]),
                or_(BookingDraft.expires_at.is_(None), BookingDraft.expires_at > now),
                or_(BookingDraft.offer_expires_at.is_(None), BookingDraft.offer_expires_at > now),
            )
            .order_by(BookingDraft.created_at.desc())
            .first()
        )

    # ----- mutations -----

    def _deleted_profile_ids(self, passengers: List[DraftPassenger]) -> Set[str]:
        profile_ids = {p.traveler_profile_id for p in passengers if p.traveler_profile_id}
        if not profile_ids:
            return set()
        live = {
            row.id
            for row in self.db.query(TravelerProfile.id).filter(
                TravelerProfile.id.in_(profile_ids),
                TravelerProfile.is_deleted == False,  # noqa: E712
            )
        }
        return profile_ids - live

    def select_extras(
        self,
        draft_id: str,
        selection: ExtrasSelection,
        account_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> BookingDraft:
        """Replace the draft's bag and seat selection. Prices come from the offer snapshot only."""
        draft = self._load_open(draft_id, account_id)
        self._require_editable(draft)
        if expected_version is not None and expected_version != draft.version:
            raise DraftConflict(draft_id=draft.id, expected_version=expected_version, version=draft.version)

        snapshot = self.snapshot_of(draft)
        passengers = {p.id: p for p in self.passengers_of(draft)}
        segment_ids = set(snapshot.segment_ids)
        deleted_profiles = self._deleted_profile_ids(list(passengers.values()))

        def check_passenger(passenger_id: str) -> None:
            passenger = passengers.get(passenger_id)
            if passenger is None:
                raise InvalidReference(f"Passenger {passenger_id} is not part of this draft", passenger_id=passenger_id)
            if passenger.traveler_profile_id in deleted_profiles:
                raise InvalidReference(
                    f"Traveler profile for passenger {passenger_id} no longer exists",
                    passenger_id=passenger_id,
                    traveler_profile_id=passenger.traveler_profile_id,
                )

        def check_segment(segment_id: str) -> None:
            if segment_id not in segment_ids:
                raise InvalidReference(f"Segment {segment_id} is not part of this offer", segment_id=segment_id)

        bags: List[SelectedBag] = []
        seen_bag_services = set()
        for item in selection.bags:
            service = snapshot.baggage_service(item.service_id)
            if service is None:
                raise InvalidExtra(f"Baggage option {item.service_id} is not available", service_id=item.service_id)
            check_passenger(item.passenger_id)
            if item.segment_id is not None:
                check_segment(item.segment_id)
            if service.passenger_id != item.passenger_id:
                raise InvalidExtra("Baggage option belongs to a different passenger", service_id=service.id)
            if item.segment_id is not None and item.segment_id not in service.segment_ids:
                raise InvalidExtra("Baggage option does not cover this segment", service_id=service.id)
            if service.id in seen_bag_services:
                raise InvalidExtra("Baggage option selected more than once", service_id=service.id)
            if item.quantity > service.max_quantity:
                raise InvalidExtra(
                    f"At most {service.max_quantity} of this bag can be added",
                    service_id=service.id,
                    max_quantity=service.max_quantity,
                )
            seen_bag_services.add(service.id)

            line = service.unit_price * item.quantity
            bags.append(SelectedBag(
                service_id=service.id,
                passenger_id=service.passenger_id,
                segment_ids=list(service.segment_ids),
                type=service.type,
                quantity=item.quantity,
                unit_price_minor=service.price_minor,
                total_price_minor=line.amount_minor,
                currency=line.currency,
                weight=service.weight.display() if service.weight else None,
            ))

        seats: List[SelectedSeat] = []
        seated = set()
        taken = set()
        for item in selection.seats:
            service = snapshot.seat_service(item.service_id)
            if service is None:
                raise InvalidExtra(f"Seat option {item.service_id} is not available", service_id=item.service_id)
            check_passenger(item.passenger_id)
            check_segment(item.segment_id)
            if service.passenger_id != item.passenger_id or service.segment_id != item.segment_id:
                raise InvalidExtra("Seat option does not match this passenger and segment", service_id=service.id)
            if (item.passenger_id, item.segment_id) in seated:
                raise InvalidExtra(
                    "Only one seat per passenger per segment",
                    passenger_id=item.passenger_id,
                    segment_id=item.segment_id,
                )
            if (item.segment_id, service.designator) in taken:
                raise InvalidExtra(
                    f"Seat {service.designator} is already selected on this segment",
                    segment_id=item.segment_id,
                    designator=service.designator,
                )
            seated.add((item.passenger_id, item.segment_id))
            taken.add((item.segment_id, service.designator))

            seats.append(SelectedSeat(
                service_id=service.id,
                passenger_id=service.passenger_id,
                segment_id=service.segment_id,
                designator=service.designator,
                price_minor=service.price_minor,
                currency=service.currency,
            ))

        extras = compute_extras(bags, seats, draft.currency)
        total = Money(draft.base_price_minor, draft.currency) + extras
        verify_totals(draft.base_price_minor, extras.amount_minor, total.amount_minor, bags, seats, draft.currency)

        return self._write(draft, {
            "selected_bags": [b.model_dump(mode="json") for b in bags],
            "selected_seats": [s.model_dump(mode="json") for s in seats],
            "extras_total_minor": extras.amount_minor,
            "total_price_minor": total.amount_minor,
        }, target=DraftStatus.EXTRAS_SELECTED)

    def update_passenger(
        self,
        draft_id: str,
        passenger_id: str,
        update: PassengerUpdate,
        account_id: Optional[str] = None,
    ) -> BookingDraft:
        draft = self._load_open(draft_id, account_id)
        self._require_editable(draft)

        passengers = self.passengers_of(draft)
        index = next((i for i, p in enumerate(passengers) if p.id == passenger_id), None)
        if index is None:
            raise InvalidReference(f"Passenger {passenger_id} is not part of this draft", passenger_id=passenger_id)

        changes = update.model_dump(exclude_unset=True)
        if "email" in changes and changes["email"] is not None:
            changes["email"] = str(changes["email"])
        if changes.get("passport_issuing_country"):
            changes["passport_issuing_country"] = changes["passport_issuing_country"].upper()
        for required in ("first_name", "last_name", "date_of_birth", "gender", "title"):
            if required in changes and changes[required] is None:
                raise IncompleteTravelerData(f"{required} cannot be cleared", passenger_id=passenger_id, field=required)

        updated = passengers[index].model_copy(update=changes)
        if "gender" in changes and "title" not in changes:
            updated = updated.model_copy(update={"title": default_title(updated.gender)})
        if "date_of_birth" in changes:
            reference = draft.created_at.date() if draft.created_at else self.clock().date()
            updated = updated.model_copy(update={"type": passenger_type_for(updated.date_of_birth, reference)})
        passengers[index] = DraftPassenger.model_validate(updated.model_dump())

        return self._write(draft, {"passengers": [p.model_dump(mode="json") for p in passengers]})

    def acknowledge_policy(self, draft_id: str, acknowledged: bool = True, account_id: Optional[str] = None) -> BookingDraft:
        draft = self._load_open(draft_id, account_id)
        values = {
            "policy_acknowledged": acknowledged,
            "policy_acknowledged_at": self.clock() if acknowledged else None,
        }
        target = None
        if draft.draft_status == DraftStatus.READY_FOR_PAYMENT:
            if acknowledged:
                return draft
            # Withdrawing consent takes the draft out of the payment step
            target = DraftStatus.EXTRAS_SELECTED
        return self._write(draft, values, target=target)

    def _missing_traveler_fields(self, draft: BookingDraft, snapshot: OfferSnapshot) -> Dict[str, List[str]]:
        departure = snapshot.outbound.departing_at.date()
        missing: Dict[str, List[str]] = {}
        for passenger in self.passengers_of(draft):
            fields = [
                name for name in ("first_name", "last_name")
                if not (getattr(passenger, name) or "").strip()
            ]
            if snapshot.requires_passport:
                if not passenger.passport_number:
                    fields.append("passport_number")
                if not passenger.passport_issuing_country:
                    fields.append("passport_issuing_country")
                if not passenger.passport_expiry_date:
                    fields.append("passport_expiry_date")
                elif passenger.passport_expiry_date <= departure:
                    fields.append("passport_expiry_date")
            if fields:
                missing[passenger.id] = fields
        return missing

    def mark_ready_for_payment(self, draft_id: str, account_id: Optional[str] = None) -> BookingDraft:
        draft = self._load_open(draft_id, account_id)
        if draft.draft_status == DraftStatus.READY_FOR_PAYMENT:
            return draft

        snapshot = self.snapshot_of(draft)
        missing = self._missing_traveler_fields(draft, snapshot)
        if missing:
            raise IncompleteTravelerData(draft_id=draft.id, missing=missing)
        if not draft.policy_acknowledged:
            raise PolicyNotAcknowledged(draft_id=draft.id)

        verify_totals(
            draft.base_price_minor,
            draft.extras_total_minor,
            draft.total_price_minor,
            [SelectedBag.model_validate(b) for b in draft.selected_bags or []],
            [SelectedSeat.model_validate(s) for s in draft.selected_seats or []],
            draft.currency,
        )
        return self._write(draft, {}, target=DraftStatus.READY_FOR_PAYMENT)

    # ----- conversion -----

    def complete(
        self,
        draft_id: str,
        account_id: Optional[str] = None,
        expected_total: Optional[Money] = None,
        payment_intent_id: Optional[str] = None,
    ) -> FlightBooking:
        """
        Convert a paid draft into its booking, exactly once.

        The draft's ready_for_payment -> completed flip and the booking insert
        commit together. A caller that loses the flip (or finds the draft
        already completed) gets the existing booking back.
        """
        bookings = BookingService(self.db, clock=self.clock)
        draft = self._load(draft_id, account_id)

        if draft.draft_status == DraftStatus.COMPLETED:
            existing = bookings.get_by_draft(draft.id)
            if existing is not None:
                return existing
        if draft.draft_status == DraftStatus.EXPIRED:
            raise DraftFinalized("Booking draft has expired", draft_id=draft.id, status=draft.status)
        if draft.draft_status != DraftStatus.READY_FOR_PAYMENT:
            raise InvalidTransition(
                f"Draft cannot be completed from {draft.status}",
                draft_id=draft.id,
                status=draft.status,
            )

        bags = [SelectedBag.model_validate(b) for b in draft.selected_bags or []]
        seats = [SelectedSeat.model_validate(s) for s in draft.selected_seats or []]
        verify_totals(draft.base_price_minor, draft.extras_total_minor, draft.total_price_minor, bags, seats, draft.currency)
        if expected_total is not None and expected_total != Money(draft.total_price_minor, draft.currency):
            raise MoneyInconsistency(
                "Paid amount does not match the draft total",
                draft_id=draft.id,
                paid=expected_total.display(),
                total=Money(draft.total_price_minor, draft.currency).display(),
            )

        now = self.clock()
        booking = convert_draft(draft, now, payment_intent_id=payment_intent_id)
        won = compare_and_set(
            self.db,
            BookingDraft,
            and_(
                BookingDraft.id == draft.id,
                BookingDraft.status == DraftStatus.READY_FOR_PAYMENT.value,
                BookingDraft.version == draft.version,
            ),
            {
                "status": DraftStatus.COMPLETED.value,
                "version": draft.version + 1,
                "booking_id": booking.id,
                "updated_at": now,
            },
        )
        if not won:
            self.db.rollback()
            return self._resolve_lost_completion(draft.id, bookings)

        self.db.add(booking)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = bookings.get_by_draft(draft.id)
            if existing is None:
                raise
            return existing

        self.db.refresh(booking)
        logger.draft_transition(draft.id, DraftStatus.READY_FOR_PAYMENT.value, DraftStatus.COMPLETED.value, booking_id=booking.id)
        logger.booking_created(booking.id, draft.id, Money(booking.total_amount_minor, booking.currency).display())
        return booking

    def _resolve_lost_completion(self, draft_id: str, bookings: BookingService) -> FlightBooking:
        draft = self._load(draft_id)
        self.db.refresh(draft)
        if draft.draft_status == DraftStatus.COMPLETED:
            existing = bookings.get_by_draft(draft.id)
            if existing is not None:
                return existing
        if draft.draft_status == DraftStatus.EXPIRED:
            raise DraftFinalized("Booking draft has expired", draft_id=draft.id, status=draft.status)
        if draft.draft_status != DraftStatus.READY_FOR_PAYMENT:
            raise InvalidTransition(
                f"Draft cannot be completed from {draft.status}",
                draft_id=draft.id,
                status=draft.status,
            )
        raise DraftConflict(draft_id=draft.id)

    # ----- maintenance -----

    def expire_stale_drafts(self, now: Optional[datetime] = None) -> int:
        """Move every open draft whose offer or draft expiry has passed to ``expired``."""
        now = now or self.clock()
        stale = (
            self.db.query(BookingDraft.id, BookingDraft.status, BookingDraft.version)
            .filter(
                BookingDraft.status.in_([s.value for s in OPEN_DRAFT_STATUSES]),
                or_(BookingDraft.expires_at <= now, BookingDraft.offer_expires_at <= now),
            )
            .all()
        )

        expired = 0
        for draft_id, status, version in stale:
            won = compare_and_set(
                self.db,
                BookingDraft,
                and_(
                    BookingDraft.id == draft_id,
                    BookingDraft.status == status,
                    BookingDraft.version == version,
                ),
                {"status": DraftStatus.EXPIRED.value, "version": version + 1, "updated_at": now},
            )
            if won:
                expired += 1
                logger.draft_transition(draft_id, status, DraftStatus.EXPIRED.value, reason="sweep")
        self.db.commit()
        return expired

    # ----- read model -----

    def to_draft_view(self, draft: BookingDraft) -> DraftView:
        snapshot = self.snapshot_of(draft)
        passengers = self.passengers_of(draft)
        bags = [SelectedBag.model_validate(b) for b in draft.selected_bags or []]
        seats = [SelectedSeat.model_validate(s) for s in draft.selected_seats or []]
        policies = policy_summary(snapshot)

        expiry = draft.effective_expiry()
        expires_in = None
        if expiry is not None:
            expires_in = max(0, int((expiry - self.clock()).total_seconds() // 60))

        return DraftView(
            id=draft.id,
            trip_id=draft.trip_id,
            offer_id=draft.offer_id,
            status=draft.status,
            version=draft.version,
            currency=draft.currency,
            base_price_minor=draft.base_price_minor,
            extras_total_minor=draft.extras_total_minor,
            total_price_minor=draft.total_price_minor,
            base_price=Money(draft.base_price_minor, draft.currency).display(),
            extras_total=Money(draft.extras_total_minor, draft.currency).display(),
            total_price=Money(draft.total_price_minor, draft.currency).display(),
            outbound=snapshot.outbound,
            return_flight=snapshot.return_flight,
            passengers=[
                DraftPassengerView(has_passport=p.has_passport, **p.model_dump(include=set(DraftPassengerView.model_fields) - {"has_passport"}))
                for p in passengers
            ],
            selected_bags=[
                SelectedBagView(price=Money(b.total_price_minor, b.currency).display(), **b.model_dump())
                for b in bags
            ],
            selected_seats=[
                SelectedSeatView(price=Money(s.price_minor, s.currency).display(), **s.model_dump())
                for s in seats
            ],
            included_baggage=[
                s.model_dump() for s in included_baggage_by_passenger(snapshot, passengers)
            ],
            available_bags=[
                AvailableBagView(
                    service_id=s.id,
                    passenger_id=s.passenger_id,
                    segment_ids=list(s.segment_ids),
                    type=s.type,
                    max_quantity=s.max_quantity,
                    price=s.unit_price.display(),
                    price_minor=s.price_minor,
                    weight=s.weight.display() if s.weight else None,
                )
                for s in snapshot.baggage_services
            ],
            available_seat_count=len(snapshot.seat_services),
            policies=PolicyView(acknowledged=bool(draft.policy_acknowledged), **policies.model_dump()),
            requires_passport=snapshot.requires_passport,
            expires_at=expiry,
            expires_in_minutes=expires_in,
            booking_id=draft.booking_id,
            created_at=draft.created_at,
            updated_at=draft.updated_at,
        )
