"""
Offer Gateway

Narrow read interface onto the upstream flight-offer provider. The draft
store only ever sees ``OfferSnapshot``; raw provider payloads are parsed and
discarded at this boundary.

Duffel API documentation: https://duffel.com/docs/api
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import httpx
from pydantic import ValidationError

from ..config import Settings, settings as default_settings
from ..errors import OfferUnavailable
from ..schemas.offer import (
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
from ..utils.logging_config import request_id_var
from ..utils.money import Money

logger = logging.getLogger(__name__)


class OfferGateway(Protocol):
    def get_offer(self, offer_id: str) -> OfferSnapshot:
        ...


@dataclass
class GatewayError:
    """Structured error from the offer provider"""
    code: str
    message: str
    status_code: int
    transient: bool = False


# Anything not listed: 5xx is transient, other 4xx is a hard failure
ERROR_MAP = {
    401: GatewayError("unauthorized", "Offer provider rejected our credentials", 401, False),
    403: GatewayError("forbidden", "Offer provider denied access", 403, False),
    404: GatewayError("not_found", "Flight offer not found", 404, False),
    410: GatewayError("gone", "Flight offer is no longer available", 410, False),
    422: GatewayError("unprocessable", "Flight offer is no longer available", 422, False),
    429: GatewayError("rate_limited", "Offer provider is rate limiting us", 429, True),
    500: GatewayError("server_error", "Offer provider server error", 500, True),
    502: GatewayError("bad_gateway", "Offer provider gateway error", 502, True),
    503: GatewayError("service_unavailable", "Offer provider unavailable", 503, True),
    504: GatewayError("gateway_timeout", "Offer provider timed out", 504, True),
}

_DURATION_RE = re.compile(r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:\d+S)?)?$")


def format_duration(value: Optional[str]) -> Optional[str]:
    """ISO 8601 duration ("PT2H30M") to "2h 30m"."""
    if not value:
        return None
    match = _DURATION_RE.match(value)
    if not match:
        return value
    days, hours, minutes = (int(g or 0) for g in match.groups())
    hours += days * 24
    if hours and minutes:
        return f"{hours}h {minutes}m"
    if hours:
        return f"{hours}h"
    return f"{minutes}m"


def map_error(status_code: int, payload: Optional[Dict]) -> GatewayError:
    error = ERROR_MAP.get(status_code)
    if error is None:
        if status_code >= 500:
            error = GatewayError("server_error", f"Offer provider error: {status_code}", status_code, True)
        else:
            error = GatewayError("unknown", f"Unexpected offer provider status: {status_code}", status_code, False)

    if payload and isinstance(payload.get("errors"), list) and payload["errors"]:
        detail = payload["errors"][0].get("message")
        if detail:
            return GatewayError(error.code, detail, status_code, error.transient)
    return error


class DuffelOfferGateway:
    """
    Offer gateway backed by the Duffel API.

    Credentials come from ``Settings`` at construction time. Pass ``client``
    to reuse a connection pool (or an ``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        access_token: str,
        base_url: str = "https://api.duffel.com",
        api_version: str = "v2",
        timeout: float = 20,
        client: Optional[httpx.Client] = None,
    ):
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, config: Settings = default_settings) -> "DuffelOfferGateway":
        return cls(
            access_token=config.duffel_access_token,
            base_url=config.duffel_base_url,
            api_version=config.duffel_api_version,
            timeout=config.duffel_timeout_seconds,
        )

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Duffel-Version": self.api_version,
            "Accept": "application/json",
            "User-Agent": "Tripbook-Backend/1.0",
        }
        request_id = request_id_var.get()
        if request_id:
            headers["X-Request-ID"] = request_id
        return headers

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict:
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                response = self._client.get(url, headers=self._get_headers(), params=params, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.get(url, headers=self._get_headers(), params=params)
        except httpx.TimeoutException as e:
            logger.warning(f"Offer provider timeout on {path}: {e}")
            raise OfferUnavailable("Flight offer service timed out. Please try again.", transient=True)
        except httpx.HTTPError as e:
            logger.warning(f"Offer provider unreachable on {path}: {e}")
            raise OfferUnavailable("Flight offer service is unreachable. Please try again.", transient=True)

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if 200 <= response.status_code < 300 and isinstance(payload, dict):
            return payload

        error = map_error(response.status_code, payload)
        if error.code in ("unauthorized", "forbidden"):
            logger.error(f"Offer provider auth failure ({response.status_code}) on {path}")
        else:
            logger.warning(f"Offer provider error {response.status_code} on {path}: {error.message}")
        raise OfferUnavailable(error.message, transient=error.transient, upstream_status=response.status_code)

    def get_offer(self, offer_id: str) -> OfferSnapshot:
        payload = self._get(f"/air/offers/{offer_id}", params={"return_available_services": "true"})
        offer = payload.get("data") or {}

        seat_maps: List[Dict] = []
        try:
            seat_maps = self._get("/air/seat_maps", params={"offer_id": offer_id}).get("data") or []
        except OfferUnavailable as e:
            # Seat selection is optional, the draft is created without seats
            logger.info(f"Seat maps unavailable for offer {offer_id}: {e.message}")

        try:
            return parse_offer(offer, seat_maps)
        except (ValidationError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Could not parse offer {offer_id}: {e}")
            raise OfferUnavailable("Flight offer data was incomplete. Please search again.", offer_id=offer_id)


# ----- payload parsing -----

def _weight(kg) -> Optional[WeightAllowance]:
    if kg in (None, ""):
        return None
    return WeightAllowance(amount=str(kg), unit="kg")


def _condition(raw: Optional[Dict]) -> Optional[ConditionDetail]:
    if not raw:
        return None
    amount = raw.get("penalty_amount")
    return ConditionDetail(
        allowed=bool(raw.get("allowed")),
        penalty_amount=str(amount) if amount not in (None, "") else None,
        penalty_currency=raw.get("penalty_currency"),
    )


def _parse_slice(raw: Dict, fallback_cabin: Optional[str]) -> FlightSegmentSnapshot:
    segments = raw.get("segments") or []
    if not segments:
        raise ValueError("slice has no segments")
    first, last = segments[0], segments[-1]
    carrier = first.get("operating_carrier") or first.get("marketing_carrier") or {}
    number = first.get("operating_carrier_flight_number") or first.get("marketing_carrier_flight_number") or ""
    code = carrier.get("iata_code")

    cabin = fallback_cabin
    seg_passengers = first.get("passengers") or []
    if seg_passengers and seg_passengers[0].get("cabin_class"):
        cabin = seg_passengers[0]["cabin_class"]

    origin = raw.get("origin") or first.get("origin") or {}
    destination = raw.get("destination") or last.get("destination") or {}
    departing_at = first.get("departing_at")

    return FlightSegmentSnapshot(
        airline=carrier.get("name") or "Unknown",
        airline_code=code,
        flight_number=f"{code or ''}{number}",
        departing_at=departing_at,
        arriving_at=last.get("arriving_at"),
        departure_date=(departing_at or "")[:10],
        origin=origin.get("iata_code", ""),
        destination=destination.get("iata_code", ""),
        origin_name=origin.get("name"),
        destination_name=destination.get("name"),
        duration=format_duration(raw.get("duration") or first.get("duration")),
        cabin_class=cabin,
        stops=len(segments) - 1,
        segment_ids=[s["id"] for s in segments],
    )


def _included_baggage(slices: List[Dict]) -> List[IncludedBaggage]:
    included = []
    for slice_ in slices:
        for segment in slice_.get("segments") or []:
            for pax in segment.get("passengers") or []:
                cabin = checked = 0
                checked_weight = None
                for bag in pax.get("baggages") or []:
                    quantity = int(bag.get("quantity") or 0)
                    if bag.get("type") == "checked":
                        checked += quantity
                        checked_weight = checked_weight or _weight(bag.get("maximum_weight_kg"))
                    else:
                        cabin += quantity
                included.append(IncludedBaggage(
                    segment_id=segment["id"],
                    passenger_id=pax["passenger_id"],
                    cabin_quantity=cabin,
                    checked_quantity=checked,
                    checked_weight=checked_weight,
                ))
    return included


def _passenger_of(service: Dict) -> Optional[str]:
    ids = service.get("passenger_ids") or []
    return service.get("passenger_id") or (ids[0] if ids else None)


def _baggage_services(raw_services: List[Dict]) -> List[BaggageService]:
    services = []
    for service in raw_services:
        if service.get("type") != "baggage":
            continue
        passenger_id = _passenger_of(service)
        if not passenger_id:
            continue
        price = Money.from_decimal_string(service["total_amount"], service["total_currency"])
        metadata = service.get("metadata") or {}
        services.append(BaggageService(
            id=service["id"],
            passenger_id=passenger_id,
            segment_ids=service.get("segment_ids") or [],
            type="carry_on" if metadata.get("type") == "carry_on" else "checked",
            max_quantity=max(int(service.get("maximum_quantity") or 1), 1),
            price_minor=price.amount_minor,
            currency=price.currency,
            weight=_weight(metadata.get("maximum_weight_kg")),
        ))
    return services


def _seat_services(seat_maps: List[Dict]) -> List[SeatService]:
    services = []
    for seat_map in seat_maps:
        segment_id = seat_map.get("segment_id")
        for cabin in seat_map.get("cabins") or []:
            for row in cabin.get("rows") or []:
                for section in row.get("sections") or []:
                    for element in section.get("elements") or []:
                        if element.get("type") != "seat":
                            continue
                        for service in element.get("available_services") or []:
                            price = Money.from_decimal_string(service["total_amount"], service["total_currency"])
                            services.append(SeatService(
                                id=service["id"],
                                passenger_id=service["passenger_id"],
                                segment_id=segment_id,
                                designator=element["designator"],
                                price_minor=price.amount_minor,
                                currency=price.currency,
                            ))
    return services


def parse_offer(offer: Dict, seat_maps: Optional[List[Dict]] = None) -> OfferSnapshot:
    """Build an ``OfferSnapshot`` from a Duffel offer and its seat maps."""
    base = Money.from_decimal_string(offer["total_amount"], offer["total_currency"])
    slices = offer.get("slices") or []
    if not slices:
        raise ValueError("offer has no slices")
    cabin = offer.get("cabin_class")

    outbound = _parse_slice(slices[0], cabin)
    return_flight = _parse_slice(slices[1], cabin) if len(slices) > 1 else None

    conditions = offer.get("conditions") or {}
    countries = {
        (s.get("origin") or {}).get("iata_country_code") for s in slices
    } | {
        (s.get("destination") or {}).get("iata_country_code") for s in slices
    }
    countries.discard(None)

    return OfferSnapshot(
        offer_id=offer["id"],
        base_price_minor=base.amount_minor,
        currency=base.currency,
        expires_at=offer.get("expires_at"),
        passengers=[OfferPassenger(id=p["id"], type=p.get("type")) for p in offer.get("passengers") or []],
        outbound=outbound,
        return_flight=return_flight,
        conditions=PolicyConditions(
            change_before_departure=_condition(conditions.get("change_before_departure")),
            refund_before_departure=_condition(conditions.get("refund_before_departure")),
        ),
        included_baggage=_included_baggage(slices),
        baggage_services=_baggage_services(offer.get("available_services") or []),
        seat_services=_seat_services(seat_maps or []),
        requires_passport=bool(offer.get("passenger_identity_documents_required")) or len(countries) > 1,
    )
