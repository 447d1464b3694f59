from fastapi import APIRouter, Depends, Path, Request

from ..schemas.booking import GuestBookingView
from ..services.link_service import LinkService
from ..utils.dependencies import get_link_service
from ..utils.rate_limiter import limiter, get_rate_limit

router = APIRouter(prefix="/api/public/bookings", tags=["Guest booking page"])


@router.get("/{token}", response_model=GuestBookingView)
@limiter.limit(get_rate_limit("guest_booking"))
def get_guest_booking(
    request: Request,
    token: str = Path(..., min_length=1, max_length=64),
    links: LinkService = Depends(get_link_service),
):
    """Read-only booking page for link holders; no account required"""
    return links.resolve_guest_view(token)
