"""
Confirmation e-mail rendering.

Everything comes from the booking's frozen snapshot; nothing here talks to
the offer provider. Values interpolated into HTML are escaped.
"""

import string
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import ValidationError

from ..config import Settings
from ..errors import ConfirmationRenderFailed, NoRecipientAddress
from ..models.booking import FlightBooking
from ..schemas.booking import BookingPassenger
from ..schemas.offer import FlightSegmentSnapshot
from ..utils.money import Money
from ..utils.sanitization import escape_html, sanitize_header_value

REQUIRED_TEMPLATE_KEYS = (
    "product_url",
    "product_name",
    "pnr",
    "airline",
    "outbound_date",
    "outbound_depart_time",
    "outbound_depart_airport",
    "outbound_stops",
    "outbound_arrive_time",
    "outbound_arrive_airport",
    "outbound_flight_number",
    "passenger_name",
    "total_paid",
    "view_booking_url",
    "company_name",
    "company_address",
    "receipt_id",
    "date",
    "support_url",
)

_BASE36 = string.digits + string.ascii_uppercase


@dataclass
class RenderedConfirmation:
    to: str
    recipient_name: str
    subject: str
    template_model: Dict[str, str]
    html_body: str
    text_body: str


def format_display_date(value: Optional[datetime]) -> str:
    """"Mon, Jan 27, 2025" """
    if value is None:
        return ""
    return f"{value.strftime('%a, %b')} {value.day}, {value.year}"


def to_base36(number: int) -> str:
    if number <= 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def receipt_id(reference: str, now: datetime) -> str:
    millis = int((now - datetime(1970, 1, 1)).total_seconds() * 1000)
    return f"RCP-{reference}-{to_base36(millis)}"


def validate_template_model(model: Dict[str, str]) -> List[str]:
    """Required keys that are missing or empty"""
    return [key for key in REQUIRED_TEMPLATE_KEYS if not model.get(key)]


def find_recipient(booking: FlightBooking) -> BookingPassenger:
    for raw in booking.passengers or []:
        passenger = BookingPassenger.model_validate(raw)
        if passenger.email:
            return passenger
    raise NoRecipientAddress(booking_id=booking.id)


def _airport(leg: FlightSegmentSnapshot, code: str, name: Optional[str]) -> str:
    return f"{code} - {name}" if name else code


def _leg_model(prefix: str, leg: Optional[FlightSegmentSnapshot]) -> Dict[str, str]:
    if leg is None:
        return {
            f"{prefix}_date": "",
            f"{prefix}_depart_time": "",
            f"{prefix}_depart_airport": "",
            f"{prefix}_stops": "",
            f"{prefix}_arrive_time": "",
            f"{prefix}_arrive_airport": "",
            f"{prefix}_flight_number": "",
        }
    return {
        f"{prefix}_date": format_display_date(leg.departing_at) or leg.departure_date,
        f"{prefix}_depart_time": leg.departure_time,
        f"{prefix}_depart_airport": _airport(leg, leg.origin, leg.origin_name),
        f"{prefix}_stops": leg.stops_display,
        f"{prefix}_arrive_time": leg.arrival_time,
        f"{prefix}_arrive_airport": _airport(leg, leg.destination, leg.destination_name),
        f"{prefix}_flight_number": leg.flight_number,
    }


def build_template_model(
    booking: FlightBooking,
    recipient: BookingPassenger,
    config: Settings,
    now: datetime,
    booking_url: Optional[str] = None,
) -> Dict[str, str]:
    outbound = FlightSegmentSnapshot.model_validate(booking.outbound_flight)
    return_leg = FlightSegmentSnapshot.model_validate(booking.return_flight) if booking.return_flight else None
    base_url = config.public_base_url.rstrip("/")
    view_url = booking_url or f"{base_url}/bookings/{booking.id}"
    reference = booking.display_reference

    model = {
        "product_url": base_url,
        "product_name": config.product_name,
        "pnr": reference,
        "airline": outbound.airline,
        **_leg_model("outbound", outbound),
        **_leg_model("return", return_leg),
        "is_round_trip": "true" if return_leg else "",
        "passenger_name": recipient.full_name.upper(),
        "total_paid": Money(booking.total_amount_minor, booking.currency).format_currency(),
        "view_booking_url": view_url,
        "download_pdf_url": f"{view_url}?action=pdf",
        "add_to_calendar_url": f"{view_url}?action=calendar",
        "company_name": config.product_name,
        "company_address": config.support_email,
        "receipt_id": receipt_id(reference, now),
        "date": format_display_date(now),
        "support_url": f"mailto:{config.support_email}",
    }
    return model


def _html_leg(title: str, model: Dict[str, str], prefix: str) -> str:
    e = {k: escape_html(v) for k, v in model.items() if k.startswith(prefix)}
    return (
        f"<h3>{escape_html(title)}</h3>"
        f"<p>{e[prefix + '_date']}<br>"
        f"{e[prefix + '_depart_time']} {e[prefix + '_depart_airport']} &rarr; "
        f"{e[prefix + '_arrive_time']} {e[prefix + '_arrive_airport']}<br>"
        f"{e[prefix + '_flight_number']} &middot; {e[prefix + '_stops']}</p>"
    )


def render_html(model: Dict[str, str]) -> str:
    parts = [
        "<html><body>",
        f"<h2>{escape_html(model['product_name'])} booking confirmed</h2>",
        f"<p>Hello {escape_html(model['passenger_name'])},</p>",
        f"<p>Your booking reference is <strong>{escape_html(model['pnr'])}</strong> "
        f"with {escape_html(model['airline'])}.</p>",
        _html_leg("Outbound", model, "outbound"),
    ]
    if model.get("is_round_trip"):
        parts.append(_html_leg("Return", model, "return"))
    parts += [
        f"<p>Total paid: <strong>{escape_html(model['total_paid'])}</strong></p>",
        f"<p><a href=\"{escape_html(model['view_booking_url'])}\">View your booking</a></p>",
        f"<p>Receipt {escape_html(model['receipt_id'])} &middot; {escape_html(model['date'])}</p>",
        f"<p>Questions? <a href=\"{escape_html(model['support_url'])}\">Contact support</a></p>",
        f"<p>{escape_html(model['company_name'])} &middot; {escape_html(model['company_address'])}</p>",
        "</body></html>",
    ]
    return "".join(parts)


def render_text(model: Dict[str, str]) -> str:
    lines = [
        f"{model['product_name']} booking confirmed",
        "",
        f"Hello {model['passenger_name']},",
        f"Booking reference: {model['pnr']} ({model['airline']})",
        "",
        f"Outbound {model['outbound_date']}: {model['outbound_depart_time']} {model['outbound_depart_airport']}"
        f" -> {model['outbound_arrive_time']} {model['outbound_arrive_airport']}"
        f" ({model['outbound_flight_number']}, {model['outbound_stops']})",
    ]
    if model.get("is_round_trip"):
        lines.append(
            f"Return {model['return_date']}: {model['return_depart_time']} {model['return_depart_airport']}"
            f" -> {model['return_arrive_time']} {model['return_arrive_airport']}"
            f" ({model['return_flight_number']}, {model['return_stops']})"
        )
    lines += [
        "",
        f"Total paid: {model['total_paid']}",
        f"View your booking: {model['view_booking_url']}",
        f"Receipt {model['receipt_id']} - {model['date']}",
        f"Support: {model['company_address']}",
    ]
    return "\n".join(lines)


def render_confirmation(
    booking: FlightBooking,
    config: Settings,
    now: datetime,
    booking_url: Optional[str] = None,
) -> RenderedConfirmation:
    recipient = find_recipient(booking)
    try:
        model = build_template_model(booking, recipient, config, now, booking_url)
        outbound = FlightSegmentSnapshot.model_validate(booking.outbound_flight)
    except ValidationError as e:
        raise ConfirmationRenderFailed(booking_id=booking.id, error=str(e)[:200])

    missing = validate_template_model(model)
    if missing:
        raise ConfirmationRenderFailed(
            f"Confirmation template is missing required values: {', '.join(missing)}",
            booking_id=booking.id,
        )

    subject = sanitize_header_value(
        f"Flight Confirmation - {outbound.origin} to {outbound.destination} | {model['pnr']}"
    )
    return RenderedConfirmation(
        to=recipient.email,
        recipient_name=recipient.full_name,
        subject=subject,
        template_model=model,
        html_body=render_html(model),
        text_body=render_text(model),
    )
