"""
Tests for the Duffel offer gateway

Tests cover:
- Offer payload parsing into an OfferSnapshot
- Duration formatting
- Error mapping (transient vs hard failures)
- Seat maps are optional
- Incomplete segments are rejected
"""

import pytest

import httpx

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


def duffel_offer(**overrides):
    offer = {
        "id": "off_0000A1",
        "total_amount": "230.50",
        "total_currency": "EUR",
        "expires_at": "2025-01-10T10:00:00Z",
        "cabin_class": "economy",
        "passenger_identity_documents_required": False,
        "passengers": [{"id": "pas_1", "type": "adult"}],
        "conditions": {
            "change_before_departure": {"allowed": True, "penalty_amount": "50.00", "penalty_currency": "EUR"},
            "refund_before_departure": None,
        },
        "slices": [
            {
                "origin": {"iata_code": "DUB", "name": "Dublin Airport", "iata_country_code": "IE"},
                "destination": {"iata_code": "JFK", "name": "John F. Kennedy International Airport", "iata_country_code": "US"},
                "duration": "PT10H30M",
                "segments": [
                    {
                        "id": "seg_1",
                        "departing_at": "2025-01-27T10:15:00",
                        "arriving_at": "2025-01-27T11:40:00",
                        "operating_carrier": {"name": "Aer Lingus", "iata_code": "EI"},
                        "operating_carrier_flight_number": "154",
                        "passengers": [{
                            "passenger_id": "pas_1",
                            "cabin_class": "economy",
                            "baggages": [
                                {"type": "checked", "quantity": 1, "maximum_weight_kg": 23},
                                {"type": "carry_on", "quantity": 1},
                            ],
                        }],
                    },
                    {
                        "id": "seg_2",
                        "departing_at": "2025-01-27T13:00:00",
                        "arriving_at": "2025-01-27T15:45:00",
                        "operating_carrier": {"name": "Aer Lingus", "iata_code": "EI"},
                        "operating_carrier_flight_number": "105",
                    },
                ],
            }
        ],
        "available_services": [
            {
                "id": "ase_bag1",
                "type": "baggage",
                "passenger_ids": ["pas_1"],
                "segment_ids": ["seg_1", "seg_2"],
                "maximum_quantity": 2,
                "total_amount": "30.00",
                "total_currency": "EUR",
                "metadata": {"type": "checked", "maximum_weight_kg": 23},
            },
            {"id": "ase_meal", "type": "meal", "passenger_ids": ["pas_1"], "total_amount": "5.00", "total_currency": "EUR"},
        ],
    }
    offer.update(overrides)
    return offer


SEAT_MAPS = [{
    "segment_id": "seg_1",
    "cabins": [{
        "rows": [{
            "sections": [{
                "elements": [
                    {"type": "seat", "designator": "12A", "available_services": [
                        {"id": "ase_seat12a", "passenger_id": "pas_1", "total_amount": "15.00", "total_currency": "EUR"},
                    ]},
                    {"type": "seat", "designator": "12B", "available_services": []},
                    {"type": "lavatory"},
                ],
            }],
        }],
    }],
}]


def gateway_with(handler):
    from tripbook.services.offer_gateway import DuffelOfferGateway

    return DuffelOfferGateway(
        access_token="duffel_test_token",
        base_url="https://api.duffel.test",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


class TestParseOffer:
    def test_prices_and_expiry(self):
        from datetime import datetime
        from tripbook.services.offer_gateway import parse_offer

        snapshot = parse_offer(duffel_offer(), SEAT_MAPS)

        assert snapshot.base_price_minor == 23050
        assert snapshot.currency == "EUR"
        assert snapshot.expires_at == datetime(2025, 1, 10, 10, 0, 0)

    def test_slice(self):
        from tripbook.services.offer_gateway import parse_offer

        outbound = parse_offer(duffel_offer()).outbound

        assert outbound.flight_number == "EI154"
        assert outbound.origin == "DUB"
        assert outbound.destination == "JFK"
        assert outbound.stops == 1
        assert outbound.stops_display == "1 stop"
        assert outbound.duration == "10h 30m"
        assert outbound.segment_ids == ["seg_1", "seg_2"]
        assert outbound.departure_date == "2025-01-27"

    def test_services(self):
        from tripbook.services.offer_gateway import parse_offer

        snapshot = parse_offer(duffel_offer(), SEAT_MAPS)

        assert [s.id for s in snapshot.baggage_services] == ["ase_bag1"]
        bag = snapshot.baggage_services[0]
        assert bag.price_minor == 3000
        assert bag.max_quantity == 2
        assert bag.weight.display() == "23kg"
        assert [(s.designator, s.price_minor) for s in snapshot.seat_services] == [("12A", 1500)]

    def test_included_baggage(self):
        from tripbook.services.offer_gateway import parse_offer

        included = parse_offer(duffel_offer()).included_baggage

        assert included[0].checked_quantity == 1
        assert included[0].cabin_quantity == 1
        assert included[0].checked_weight.display() == "23kg"

    def test_conditions(self):
        from tripbook.services.offer_gateway import parse_offer

        conditions = parse_offer(duffel_offer()).conditions

        assert conditions.can_change
        assert not conditions.can_refund
        assert conditions.refund_policy == "Non-refundable"

    def test_passport_required_across_borders(self):
        from tripbook.services.offer_gateway import parse_offer

        assert parse_offer(duffel_offer()).requires_passport is True

    def test_no_slices(self):
        from tripbook.services.offer_gateway import parse_offer

        with pytest.raises(ValueError):
            parse_offer(duffel_offer(slices=[]))

    def test_segment_without_departure_time(self):
        from tripbook.services.offer_gateway import parse_offer

        offer = duffel_offer()
        del offer["slices"][0]["segments"][0]["departing_at"]

        with pytest.raises(ValueError):
            parse_offer(offer)

    def test_segment_without_flight_number(self):
        from tripbook.services.offer_gateway import parse_offer

        offer = duffel_offer()
        segment = offer["slices"][0]["segments"][0]
        segment["operating_carrier"] = {"name": "Aer Lingus"}
        del segment["operating_carrier_flight_number"]

        with pytest.raises(ValueError):
            parse_offer(offer)

    def test_slice_without_origin(self):
        from tripbook.services.offer_gateway import parse_offer

        offer = duffel_offer()
        offer["slices"][0]["origin"] = {}

        with pytest.raises(ValueError):
            parse_offer(offer)

    def test_format_duration(self):
        from tripbook.services.offer_gateway import format_duration

        assert format_duration("PT2H30M") == "2h 30m"
        assert format_duration("PT45M") == "45m"
        assert format_duration("P1DT2H") == "26h"
        assert format_duration(None) is None


class TestDuffelGateway:
    def test_get_offer(self):
        seen = []

        def handler(request):
            seen.append(request)
            if request.url.path.endswith("/air/seat_maps"):
                return httpx.Response(200, json={"data": SEAT_MAPS})
            return httpx.Response(200, json={"data": duffel_offer()})

        snapshot = gateway_with(handler).get_offer("off_0000A1")

        assert snapshot.offer_id == "off_0000A1"
        assert len(snapshot.seat_services) == 1
        assert seen[0].headers["Authorization"] == "Bearer duffel_test_token"
        assert seen[0].headers["Duffel-Version"] == "v2"
        assert seen[0].url.params["return_available_services"] == "true"

    def test_seat_map_failure_is_not_fatal(self):
        def handler(request):
            if request.url.path.endswith("/air/seat_maps"):
                return httpx.Response(503, json={"errors": [{"message": "unavailable"}]})
            return httpx.Response(200, json={"data": duffel_offer()})

        snapshot = gateway_with(handler).get_offer("off_0000A1")
        assert snapshot.seat_services == []

    def test_not_found_is_hard_failure(self):
        from tripbook.errors import OfferUnavailable

        def handler(request):
            return httpx.Response(404, json={"errors": [{"message": "Offer not found"}]})

        with pytest.raises(OfferUnavailable) as exc:
            gateway_with(handler).get_offer("off_missing")
        assert exc.value.transient is False
        assert exc.value.message == "Offer not found"
        assert exc.value.status_code == 502

    def test_server_error_is_transient(self):
        from tripbook.errors import OfferUnavailable

        def handler(request):
            return httpx.Response(502, text="Bad gateway")

        with pytest.raises(OfferUnavailable) as exc:
            gateway_with(handler).get_offer("off_0000A1")
        assert exc.value.transient is True
        assert exc.value.status_code == 503

    def test_timeout_is_transient(self):
        from tripbook.errors import OfferUnavailable

        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(OfferUnavailable) as exc:
            gateway_with(handler).get_offer("off_0000A1")
        assert exc.value.transient is True

    def test_unparseable_offer(self):
        from tripbook.errors import OfferUnavailable

        def handler(request):
            if request.url.path.endswith("/air/seat_maps"):
                return httpx.Response(200, json={"data": []})
            return httpx.Response(200, json={"data": {"id": "off_1", "total_amount": "x", "total_currency": "EUR"}})

        with pytest.raises(OfferUnavailable):
            gateway_with(handler).get_offer("off_1")

    def test_incomplete_segment_is_unavailable(self):
        from tripbook.errors import OfferUnavailable

        offer = duffel_offer()
        del offer["slices"][0]["segments"][0]["departing_at"]

        def handler(request):
            if request.url.path.endswith("/air/seat_maps"):
                return httpx.Response(200, json={"data": []})
            return httpx.Response(200, json={"data": offer})

        with pytest.raises(OfferUnavailable) as exc:
            gateway_with(handler).get_offer("off_0000A1")
        assert exc.value.transient is False

    def test_map_error_unknown_status(self):
        from tripbook.services.offer_gateway import map_error

        assert map_error(418, None).transient is False
        assert map_error(507, None).transient is True
        assert map_error(429, None).transient is True
