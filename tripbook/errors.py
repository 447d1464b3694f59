"""
Booking pipeline errors.

Every error carries a stable ``code`` (returned to API clients), a
``category`` used by callers to decide whether a retry makes sense, and the
HTTP status the API layer responds with.

Categories:
- validation: bad input, surfaced immediately, never retried
- temporal:   the offer/link is past its validity window, start over
- upstream:   offer gateway or e-mail provider failure, safe to retry
- conflict:   a concurrent or duplicate request already applied the effect
- not_found:  unknown id/token
- internal:   consistency violation, the transition was aborted
"""

import enum
from typing import Any, Dict, Optional


class ErrorCategory(str, enum.Enum):
    VALIDATION = "validation"
    TEMPORAL = "temporal"
    UPSTREAM = "upstream"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"


class BookingPipelineError(Exception):
    code = "booking_error"
    category = ErrorCategory.INTERNAL
    status_code = 500
    default_message = "Booking pipeline error"

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return self.category == ErrorCategory.UPSTREAM

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "detail": self.message,
            "code": self.code,
            "category": self.category.value,
        }
        if self.context:
            body["context"] = self.context
        return body


# ----- validation -----

class InvalidExtra(BookingPipelineError):
    code = "invalid_extra"
    category = ErrorCategory.VALIDATION
    status_code = 422
    default_message = "Selected extra is not available for this offer"


class InvalidReference(BookingPipelineError):
    code = "invalid_reference"
    category = ErrorCategory.VALIDATION
    status_code = 422
    default_message = "Passenger or segment is not part of this draft"


class IncompleteTravelerData(BookingPipelineError):
    code = "incomplete_traveler_data"
    category = ErrorCategory.VALIDATION
    status_code = 422
    default_message = "Passenger details are incomplete"


class PolicyNotAcknowledged(BookingPipelineError):
    code = "policy_not_acknowledged"
    category = ErrorCategory.VALIDATION
    status_code = 422
    default_message = "Please acknowledge the booking policy before proceeding"


class CurrencyMismatch(BookingPipelineError):
    code = "currency_mismatch"
    category = ErrorCategory.VALIDATION
    status_code = 422
    default_message = "Amounts in different currencies cannot be combined"


# ----- temporal -----

class OfferExpired(BookingPipelineError):
    code = "offer_expired"
    category = ErrorCategory.TEMPORAL
    status_code = 410
    default_message = "Flight offer has expired. Please search for new flights."


class TokenExpired(BookingPipelineError):
    code = "token_expired"
    category = ErrorCategory.TEMPORAL
    status_code = 410
    default_message = "Token expired"


# ----- upstream -----

class OfferUnavailable(BookingPipelineError):
    code = "offer_unavailable"
    category = ErrorCategory.UPSTREAM
    status_code = 502
    default_message = "Flight offer not found or has expired. Please search for new flights."

    def __init__(self, message: Optional[str] = None, transient: bool = False, **context: Any):
        super().__init__(message, **context)
        self.transient = transient
        if transient:
            self.status_code = 503


class NotificationDeliveryFailed(BookingPipelineError):
    code = "notification_delivery_failed"
    category = ErrorCategory.UPSTREAM
    status_code = 502
    default_message = "Confirmation could not be delivered by any provider"


# ----- conflict -----

class DraftFinalized(BookingPipelineError):
    code = "draft_finalized"
    category = ErrorCategory.CONFLICT
    status_code = 409
    default_message = "Booking draft is already finalized"


class DraftConflict(BookingPipelineError):
    code = "draft_conflict"
    category = ErrorCategory.CONFLICT
    status_code = 409
    default_message = "Booking draft was modified concurrently, reload and retry"


class InvalidTransition(BookingPipelineError):
    code = "invalid_transition"
    category = ErrorCategory.CONFLICT
    status_code = 409
    default_message = "Status transition is not allowed"


# ----- not found -----

class DraftNotFound(BookingPipelineError):
    code = "draft_not_found"
    category = ErrorCategory.NOT_FOUND
    status_code = 404
    default_message = "Booking draft not found"


class BookingNotFound(BookingPipelineError):
    code = "booking_not_found"
    category = ErrorCategory.NOT_FOUND
    status_code = 404
    default_message = "Booking not found"


class TravelerNotFound(BookingPipelineError):
    code = "traveler_not_found"
    category = ErrorCategory.NOT_FOUND
    status_code = 404
    default_message = "Traveler profile not found"


class TokenNotFound(BookingPipelineError):
    code = "token_not_found"
    category = ErrorCategory.NOT_FOUND
    status_code = 404
    default_message = "Invalid token"


class NoRecipientAddress(BookingPipelineError):
    code = "no_recipient_address"
    category = ErrorCategory.VALIDATION
    status_code = 422
    default_message = "No passenger email found"


# ----- internal -----

class MoneyInconsistency(BookingPipelineError):
    code = "money_inconsistency"
    category = ErrorCategory.INTERNAL
    status_code = 500
    default_message = "Draft totals do not match their line items"


class ConfirmationRenderFailed(BookingPipelineError):
    code = "confirmation_render_failed"
    category = ErrorCategory.INTERNAL
    status_code = 500
    default_message = "Booking snapshot is missing data needed for the confirmation"
