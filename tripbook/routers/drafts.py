from fastapi import APIRouter, Depends, Query, Request, status
from typing import Optional

from ..schemas.booking_draft import (
    DraftCreate,
    DraftStatusView,
    DraftView,
    ExtrasSelection,
    PassengerUpdate,
    PolicyAcknowledge,
)
from ..services.draft_service import DraftService
from ..utils.dependencies import Account, get_current_account, get_draft_service
from ..utils.rate_limiter import limiter, get_rate_limit

router = APIRouter(prefix="/api/drafts", tags=["Booking drafts"])


@router.post("", response_model=DraftView, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("draft_create"))
def create_draft(
    request: Request,
    data: DraftCreate,
    account: Account = Depends(get_current_account),
    service: DraftService = Depends(get_draft_service),
):
    """Price an offer for the given passengers and open a draft"""
    draft = service.create(account.id, data)
    return service.to_draft_view(draft)


@router.get("/active", response_model=Optional[DraftView])
def get_active_draft(
    trip_id: str = Query(..., min_length=1, max_length=64),
    account: Account = Depends(get_current_account),
    service: DraftService = Depends(get_draft_service),
):
    """Newest open, unexpired draft for a trip, or null"""
    draft = service.find_active_draft_for_trip(account.id, trip_id)
    return service.to_draft_view(draft) if draft else None


@router.get("/{draft_id}", response_model=DraftView)
@limiter.limit(get_rate_limit("draft_read"))
def get_draft(
    request: Request,
    draft_id: str,
    account: Account = Depends(get_current_account),
    service: DraftService = Depends(get_draft_service),
):
    draft = service.get_draft(draft_id, account_id=account.id)
    return service.to_draft_view(draft)


@router.get("/{draft_id}/status", response_model=DraftStatusView)
def get_draft_status(
    draft_id: str,
    account: Account = Depends(get_current_account),
    service: DraftService = Depends(get_draft_service),
):
    """Poll after payment; also answers for completed and expired drafts"""
    return service.get_draft_status(draft_id, account_id=account.id)


@router.put("/{draft_id}/extras", response_model=DraftView)
@limiter.limit(get_rate_limit("draft_update"))
def select_extras(
    request: Request,
    draft_id: str,
    selection: ExtrasSelection,
    expected_version: Optional[int] = Query(None, ge=1),
    account: Account = Depends(get_current_account),
    service: DraftService = Depends(get_draft_service),
):
    """Replace the bag and seat selection"""
    draft = service.select_extras(draft_id, selection, account_id=account.id, expected_version=expected_version)
    return service.to_draft_view(draft)


@router.patch("/{draft_id}/passengers/{passenger_id}", response_model=DraftView)
@limiter.limit(get_rate_limit("draft_update"))
def update_passenger(
    request: Request,
    draft_id: str,
    passenger_id: str,
    update: PassengerUpdate,
    account: Account = Depends(get_current_account),
    service: DraftService = Depends(get_draft_service),
):
    draft = service.update_passenger(draft_id, passenger_id, update, account_id=account.id)
    return service.to_draft_view(draft)


@router.post("/{draft_id}/policy", response_model=DraftView)
def acknowledge_policy(
    draft_id: str,
    data: PolicyAcknowledge,
    account: Account = Depends(get_current_account),
    service: DraftService = Depends(get_draft_service),
):
    draft = service.acknowledge_policy(draft_id, data.acknowledged, account_id=account.id)
    return service.to_draft_view(draft)


@router.post("/{draft_id}/ready", response_model=DraftView)
def mark_ready_for_payment(
    draft_id: str,
    account: Account = Depends(get_current_account),
    service: DraftService = Depends(get_draft_service),
):
    """Lock the price and hand off to payment"""
    draft = service.mark_ready_for_payment(draft_id, account_id=account.id)
    return service.to_draft_view(draft)

