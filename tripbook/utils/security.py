import hmac
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from ..config import settings

TOKEN_ALPHABET = string.ascii_letters + string.digits


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_secure_token(length: Optional[int] = None) -> str:
    """
    Generate an opaque alphanumeric token from the OS CSPRNG.

    32 characters over a 62-symbol alphabet is ~190 bits. The token has no
    relationship to any booking id or reference.
    """
    length = length or settings.booking_link_token_length
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def token_preview(token: str) -> str:
    """Safe-to-log prefix of a secret token"""
    return f"{token[:4]}…" if token else ""


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify a JWT token"""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        return payload
    except JWTError:
        return None


def verify_access_token(token: str) -> Optional[dict]:
    """Verify an access token and return payload"""
    payload = decode_token(token)
    if payload and payload.get("type", "access") == "access" and payload.get("sub"):
        return payload
    return None


def create_access_token(account_id: str, expires_minutes: int = 15) -> str:
    """Mint an account token. Sessions are issued by the auth service; used by tests and tooling."""
    expire = utcnow() + timedelta(minutes=expires_minutes)
    payload = {"sub": account_id, "type": "access", "exp": expire}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def verify_shared_secret(provided: Optional[str], expected: str) -> bool:
    """Constant-time comparison for webhook secrets"""
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())
