"""JWT token creation and verification.

- Access token: short-lived (60min), sent as Bearer on every API call
- Refresh token: long-lived (30 days), exchanged for a new pair
- OAuth state token: 10 minutes, round-trips through Google so the
  callback can tell it started the flow (no server-side session)

PyJWT requires `sub` to be a string, so user ids are stringified here
and parsed back in auth.dependencies.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from fourme.config import settings

ACCESS = "access"
REFRESH = "refresh"
OAUTH_STATE = "oauth_state"


class TokenError(Exception):
    """Raised when token creation/verification fails."""


def _encode(payload: dict) -> str:
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(
    user_id: int,
    username: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a JWT access token."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "type": ACCESS,
        "exp": now + timedelta(
            minutes=expires_minutes or settings.access_token_expire_minutes
        ),
        "iat": now,
    }
    if username:
        payload["username"] = username
    return _encode(payload)


def create_refresh_token(
    user_id: int,
    expires_days: Optional[int] = None,
) -> str:
    """Create a JWT refresh token."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "type": REFRESH,
        "exp": now + timedelta(
            days=expires_days or settings.refresh_token_expire_days
        ),
        "iat": now,
    }
    return _encode(payload)


def create_state_token() -> str:
    """Signed, short-lived OAuth `state` value."""
    now = datetime.now(timezone.utc)
    return _encode({
        "type": OAUTH_STATE,
        "nonce": secrets.token_urlsafe(16),
        "exp": now + timedelta(minutes=10),
        "iat": now,
    })


def verify_token(token: str, expected_type: Optional[str] = None) -> dict:
    """Verify and decode a JWT token.

    Returns the payload dict on success.
    Raises TokenError on failure, including a type mismatch.
    """
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")

    if expected_type and payload.get("type") != expected_type:
        raise TokenError(f"Expected a {expected_type} token")
    return payload
