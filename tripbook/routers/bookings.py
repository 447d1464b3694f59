from datetime import timedelta
from fastapi import APIRouter, Depends, Query, Request, status
from typing import List, Optional

from ..models.booking import BookingStatus
from ..schemas.booking import (
    BookingListItem,
    BookingResponse,
    ConfirmationResult,
    LinkCreate,
    LinkResponse,
    SupportReferenceIn,
)
from ..services.booking_service import BookingService
from ..services.link_service import LinkService
from ..services.notification_service import NotificationService
from ..utils.dependencies import (
    Account,
    get_booking_service,
    get_current_account,
    get_link_service,
    get_notification_service,
)
from ..utils.rate_limiter import limiter, get_rate_limit

router = APIRouter(prefix="/api/bookings", tags=["Bookings"])


@router.get("", response_model=List[BookingListItem])
def list_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    trip_id: Optional[str] = Query(None, max_length=64),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    account: Account = Depends(get_current_account),
    service: BookingService = Depends(get_booking_service),
):
    return service.list_bookings(account.id, status=status_filter, trip_id=trip_id, limit=limit, offset=offset)


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: str,
    account: Account = Depends(get_current_account),
    service: BookingService = Depends(get_booking_service),
):
    return service.get_booking(booking_id, account_id=account.id)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
@limiter.limit(get_rate_limit("booking_action"))
def cancel_booking(
    request: Request,
    booking_id: str,
    account: Account = Depends(get_current_account),
    service: BookingService = Depends(get_booking_service),
):
    return service.cancel(booking_id, account_id=account.id)


@router.put("/{booking_id}/support-reference", response_model=BookingResponse)
def set_support_reference(
    booking_id: str,
    data: SupportReferenceIn,
    account: Account = Depends(get_current_account),
    service: BookingService = Depends(get_booking_service),
):
    return service.set_support_reference(booking_id, data.support_reference, account_id=account.id)


@router.post("/{booking_id}/send-confirmation", response_model=ConfirmationResult)
@limiter.limit(get_rate_limit("send_confirmation"))
def send_confirmation(
    request: Request,
    booking_id: str,
    account: Account = Depends(get_current_account),
    links: LinkService = Depends(get_link_service),
    notifications: NotificationService = Depends(get_notification_service),
):
    """Send the confirmation e-mail once; repeats report already_sent"""
    link = links.issue(booking_id, idempotency_key="confirmation", account_id=account.id)
    return notifications.send_confirmation(booking_id, booking_url=links.link_url(link), account_id=account.id)


@router.post("/{booking_id}/links", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("booking_action"))
def issue_link(
    request: Request,
    booking_id: str,
    data: LinkCreate,
    account: Account = Depends(get_current_account),
    links: LinkService = Depends(get_link_service),
):
    ttl = timedelta(days=data.ttl_days) if data.ttl_days else None
    link = links.issue(booking_id, ttl=ttl, idempotency_key=data.idempotency_key, account_id=account.id)
    return LinkResponse(
        token=link.token,
        url=links.link_url(link),
        booking_id=link.booking_id,
        expires_at=link.expires_at,
        created_at=link.created_at,
    )
