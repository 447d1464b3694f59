# Models package
from .booking_draft import (
    BookingDraft,
    DraftStatus,
    DRAFT_TRANSITIONS,
    TERMINAL_DRAFT_STATUSES,
    OPEN_DRAFT_STATUSES,
    can_transition,
)
from .booking import FlightBooking, BookingStatus, BOOKING_TRANSITIONS
from .booking_link import BookingLink
from .traveler import TravelerProfile

__all__ = [
    "BookingDraft", "DraftStatus", "DRAFT_TRANSITIONS",
    "TERMINAL_DRAFT_STATUSES", "OPEN_DRAFT_STATUSES", "can_transition",
    "FlightBooking", "BookingStatus", "BOOKING_TRANSITIONS",
    "BookingLink",
    "TravelerProfile",
]
