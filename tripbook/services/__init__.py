# Services package
from .offer_gateway import OfferGateway, DuffelOfferGateway, parse_offer
from .draft_service import DraftService
from .booking_service import BookingService, convert_draft
from .link_service import LinkService, guest_view
from .email_providers import DeliveryResult, EmailProvider, PostmarkProvider, GmailProvider
from .notification_service import NotificationService, default_providers
from .payment_pipeline import PaymentPipeline

__all__ = [
    "OfferGateway", "DuffelOfferGateway", "parse_offer",
    "DraftService",
    "BookingService", "convert_draft",
    "LinkService", "guest_view",
    "DeliveryResult", "EmailProvider", "PostmarkProvider", "GmailProvider",
    "NotificationService", "default_providers",
    "PaymentPipeline",
]
