from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..services.booking_service import BookingService
from ..services.draft_service import DraftService
from ..services.email_providers import EmailProvider
from ..services.link_service import LinkService
from ..services.notification_service import NotificationService, default_providers
from ..services.offer_gateway import DuffelOfferGateway, OfferGateway
from ..services.payment_pipeline import PaymentPipeline
from .logging_config import set_request_context, request_id_var
from .security import utcnow, verify_access_token, verify_shared_secret

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Account:
    """The authenticated owner of drafts and bookings"""
    id: str


def get_current_account(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> Account:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    account_id = str(payload["sub"])
    set_request_context(request_id_var.get(), account_id)
    return Account(id=account_id)


def verify_webhook_secret(x_webhook_secret: str = Header(None, alias="X-Webhook-Secret")) -> None:
    if not verify_shared_secret(x_webhook_secret, settings.payment_webhook_secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret",
        )


# ----- collaborators (overridden in tests) -----

def get_clock() -> Callable[[], datetime]:
    return utcnow


def get_offer_gateway() -> OfferGateway:
    return DuffelOfferGateway.from_settings(settings)


def get_email_providers() -> List[EmailProvider]:
    return default_providers(settings)


# ----- services -----

def get_draft_service(
    db: Session = Depends(get_db),
    gateway: OfferGateway = Depends(get_offer_gateway),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> DraftService:
    return DraftService(db, gateway=gateway, clock=clock)


def get_booking_service(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> BookingService:
    return BookingService(db, clock=clock)


def get_link_service(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> LinkService:
    return LinkService(db, clock=clock)


def get_notification_service(
    db: Session = Depends(get_db),
    providers: List[EmailProvider] = Depends(get_email_providers),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> NotificationService:
    return NotificationService(db, providers=providers, clock=clock)


def get_payment_pipeline(
    db: Session = Depends(get_db),
    providers: List[EmailProvider] = Depends(get_email_providers),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> PaymentPipeline:
    return PaymentPipeline(db, providers=providers, clock=clock)
