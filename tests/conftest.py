"""
Shared fixtures: in-memory database, controllable clock, fake offer gateway
and fake e-mail providers.
"""

import os
import sys
from datetime import date, datetime, timedelta

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("DRAFT_EXPIRY_SWEEP_ENABLED", "false")
os.environ.setdefault("PAYMENT_WEBHOOK_SECRET", "whsec-test-secret")
os.environ.setdefault("LOG_JSON", "false")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

START = datetime(2025, 1, 10, 9, 0, 0)
DEPARTURE = datetime(2025, 1, 27, 10, 15, 0)


class FakeClock:
    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeGateway:
    """Serves fixed snapshots by offer id and counts upstream calls"""

    def __init__(self, *snapshots):
        self.snapshots = {s.offer_id: s for s in snapshots}
        self.calls = []

    def get_offer(self, offer_id):
        from tripbook.errors import OfferUnavailable

        self.calls.append(offer_id)
        if offer_id not in self.snapshots:
            raise OfferUnavailable("Flight offer not found", offer_id=offer_id)
        return self.snapshots[offer_id]


class FakeProvider:
    def __init__(self, name: str, succeed: bool = True, error: str = "rejected"):
        self.name = name
        self.succeed = succeed
        self.error = error
        self.sent = []

    def send(self, message):
        from tripbook.services.email_providers import DeliveryResult

        self.sent.append(message)
        if self.succeed:
            return DeliveryResult(True, self.name, message_id=f"{self.name}-msg-{len(self.sent)}")
        return DeliveryResult(False, self.name, error=self.error)


def build_snapshot(offer_id: str = "OFF1", expires_at: datetime = START + timedelta(hours=1), **overrides):
    from tripbook.schemas.offer import (
        BaggageService,
        ConditionDetail,
        FlightSegmentSnapshot,
        IncludedBaggage,
        OfferPassenger,
        OfferSnapshot,
        PolicyConditions,
        SeatService,
        WeightAllowance,
    )

    values = dict(
        offer_id=offer_id,
        base_price_minor=20000,
        currency="EUR",
        expires_at=expires_at,
        passengers=[OfferPassenger(id="pas_1", type="adult"), OfferPassenger(id="pas_2", type="adult")],
        outbound=FlightSegmentSnapshot(
            airline="Aer Lingus",
            airline_code="EI",
            flight_number="EI154",
            departing_at=DEPARTURE,
            arriving_at=DEPARTURE + timedelta(hours=1, minutes=25),
            departure_date=DEPARTURE.date().isoformat(),
            origin="DUB",
            destination="LHR",
            origin_name="Dublin Airport",
            destination_name="Heathrow Airport",
            duration="1h 25m",
            cabin_class="economy",
            stops=0,
            segment_ids=["seg_1"],
        ),
        return_flight=FlightSegmentSnapshot(
            airline="Aer Lingus",
            airline_code="EI",
            flight_number="EI155",
            departing_at=DEPARTURE + timedelta(days=5),
            arriving_at=DEPARTURE + timedelta(days=5, hours=1, minutes=20),
            departure_date=(DEPARTURE + timedelta(days=5)).date().isoformat(),
            origin="LHR",
            destination="DUB",
            stops=0,
            segment_ids=["seg_2"],
        ),
        conditions=PolicyConditions(
            change_before_departure=ConditionDetail(allowed=True, penalty_amount="50.00", penalty_currency="EUR"),
            refund_before_departure=ConditionDetail(allowed=False),
        ),
        included_baggage=[
            IncludedBaggage(segment_id="seg_1", passenger_id="pas_1", cabin_quantity=1, checked_quantity=1,
                            checked_weight=WeightAllowance(amount="23", unit="kg")),
            IncludedBaggage(segment_id="seg_1", passenger_id="pas_2", cabin_quantity=1),
        ],
        baggage_services=[
            BaggageService(id="bag_1", passenger_id="pas_1", segment_ids=["seg_1", "seg_2"], max_quantity=2,
                           price_minor=3000, currency="EUR", weight=WeightAllowance(amount="23", unit="kg")),
            BaggageService(id="bag_2", passenger_id="pas_2", segment_ids=["seg_1"], max_quantity=1,
                           price_minor=3000, currency="EUR"),
        ],
        seat_services=[
            SeatService(id="seat_1", passenger_id="pas_1", segment_id="seg_1", designator="12A", price_minor=1500, currency="EUR"),
            SeatService(id="seat_2", passenger_id="pas_2", segment_id="seg_1", designator="12A", price_minor=1500, currency="EUR"),
            SeatService(id="seat_3", passenger_id="pas_2", segment_id="seg_1", designator="12B", price_minor=1500, currency="EUR"),
        ],
        requires_passport=False,
    )
    values.update(overrides)
    return OfferSnapshot(**values)


def traveler_input(first_name="Aoife", last_name="Murphy", email="aoife.murphy@tripmail.com", **extra):
    from tripbook.schemas.booking_draft import TravelerInput

    values = dict(
        first_name=first_name,
        last_name=last_name,
        date_of_birth=date(1990, 4, 2),
        gender="female",
        email=email,
    )
    values.update(extra)
    return TravelerInput(**values)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def snapshot():
    return build_snapshot()


@pytest.fixture
def gateway(snapshot):
    return FakeGateway(snapshot)


@pytest.fixture
def engine():
    from tripbook.database import Base
    from tripbook import models  # noqa: F401

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def drafts(db, gateway, clock):
    from tripbook.services.draft_service import DraftService

    return DraftService(db, gateway=gateway, clock=clock)


@pytest.fixture
def new_draft(drafts):
    """Create a two-passenger draft for OFF1"""
    from tripbook.schemas.booking_draft import DraftCreate

    def _create(account_id="acct-1", trip_id="trip-1", offer_id="OFF1", passengers=None):
        passengers = passengers or [
            traveler_input(),
            traveler_input("Liam", "Byrne", email=None, gender="male"),
        ]
        return drafts.create(account_id, DraftCreate(trip_id=trip_id, offer_id=offer_id, passengers=passengers))

    return _create


@pytest.fixture
def ready_draft(drafts, new_draft):
    """A draft with one checked bag, policy acknowledged, in ready_for_payment"""
    from tripbook.schemas.booking_draft import BagSelectionIn, ExtrasSelection

    def _ready(**kwargs):
        draft = new_draft(**kwargs)
        drafts.select_extras(draft.id, ExtrasSelection(bags=[
            BagSelectionIn(service_id="bag_1", passenger_id="pas_1", quantity=1),
        ]))
        drafts.acknowledge_policy(draft.id, True)
        return drafts.mark_ready_for_payment(draft.id)

    return _ready


@pytest.fixture
def confirmed_booking(drafts, ready_draft, clock):
    from tripbook.services.booking_service import BookingService

    def _confirmed(**kwargs):
        draft = ready_draft(**kwargs)
        booking = drafts.complete(draft.id)
        return BookingService(drafts.db, clock=clock).confirm(booking.id, upstream_order_id="ord_0000AbCdEf", booking_reference="xk4p2q")

    return _confirmed


@pytest.fixture(autouse=True)
def disable_rate_limits():
    from tripbook.utils.rate_limiter import limiter

    limiter.enabled = False
    yield
    limiter.enabled = True
