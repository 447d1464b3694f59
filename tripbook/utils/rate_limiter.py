"""
Rate Limiter Configuration

Storage comes from RATE_LIMIT_STORAGE_URI: "memory://" for a single
instance, "redis://host:6379" when several workers share the limits.
"""

import logging

from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request

from ..config import settings

logger = logging.getLogger(__name__)


def get_real_client_ip(request: Request) -> str:
    """Get real client IP behind a reverse proxy"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # First entry is the original client
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return get_remote_address(request)


def create_limiter() -> Limiter:
    storage_uri = settings.rate_limit_storage_uri or "memory://"
    logger.info(f"Rate limiter storage: {storage_uri.split('@')[-1]}")
    return Limiter(
        key_func=get_real_client_ip,
        storage_uri=storage_uri,
        default_limits=["100/minute"],
    )


# Global rate limiter instance
limiter = create_limiter()


RATE_LIMITS = {
    # Guest links are unauthenticated, keep token guessing expensive
    "guest_booking": "30/minute",

    "draft_create": "20/minute",
    "draft_update": "60/minute",
    "draft_read": "120/minute",

    "booking_list": "100/minute",
    "booking_action": "30/minute",
    "send_confirmation": "10/minute",

    "webhook": "100/minute",
}


def get_rate_limit(operation: str) -> str:
    """Get rate limit for a specific operation."""
    return RATE_LIMITS.get(operation, "100/minute")
