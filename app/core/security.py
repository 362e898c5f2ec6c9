"""JWT helpers for the caller identity the scheduler trusts.

Tokens are issued by the identity service. The queue service only checks the
signature, expiry and ``type`` claim, then looks the ``sub`` up in ``users``.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from app.config import settings

PATIENT_ROLE = "patient"
STAFF_ROLES = frozenset({"doctor", "nurse", "receptionist", "admin"})
TOKEN_TYPE = "access"


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """
    Mint an access token for a known user id.

    Used by the seed script and tests; production tokens come from the
    identity service signed with the same key.

    Args:
        data: Claims to encode, at least ``sub``
        expires_delta: Lifetime, defaults to ACCESS_TOKEN_EXPIRE_MINUTES

    Returns:
        Encoded JWT
    """
    issued_at = datetime.now(UTC)
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims = {**data, "iat": issued_at, "exp": issued_at + lifetime, "type": TOKEN_TYPE}
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Return the token's claims, or None when it is invalid, expired or not an access token."""
    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    return claims if claims.get("type") == TOKEN_TYPE else None


def is_staff(user: dict[str, Any]) -> bool:
    """Check whether a user record belongs to front-desk or clinical staff."""
    return user.get("role") in STAFF_ROLES
