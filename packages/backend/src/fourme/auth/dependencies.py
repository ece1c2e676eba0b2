"""FastAPI auth dependencies.

Used as Depends() in route handlers to extract and validate the
current identity from the Authorization header. The identity is an
explicit per-request value handed to each handler, never global state.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException

from fourme.auth.jwt import ACCESS, TokenError, verify_token


class CurrentIdentity:
    """The authenticated user making the request.

    Only the id is trusted for authorization; every ownership decision
    is re-checked against the database with this id.
    """

    def __init__(self, user_id: int, username: Optional[str] = None):
        self.user_id = user_id
        self.username = username

    def __repr__(self) -> str:
        return f"CurrentIdentity(user_id={self.user_id!r})"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_optional(
    authorization: Optional[str] = Header(None),
) -> Optional[CurrentIdentity]:
    """Extract current identity (optional — returns None if no auth).

    A header that is present but invalid still fails with 401.
    """
    if not authorization:
        return None
    if not authorization.startswith("Bearer "):
        raise _unauthorized("Authorization header must be 'Bearer <token>'")
    return _authenticate_jwt(authorization[7:])


async def get_current_user(
    identity: Optional[CurrentIdentity] = Depends(get_current_user_optional),
) -> CurrentIdentity:
    """Extract current identity (required — 401 if no auth)."""
    if not identity:
        raise _unauthorized("Authentication required")
    return identity


def _authenticate_jwt(token: str) -> CurrentIdentity:
    """Authenticate via JWT access token. Refresh tokens are rejected."""
    try:
        payload = verify_token(token, expected_type=ACCESS)
        return CurrentIdentity(
            user_id=int(payload["sub"]),
            username=payload.get("username"),
        )
    except (KeyError, ValueError):
        raise _unauthorized("Invalid token: bad subject")
    except TokenError as e:
        raise _unauthorized(str(e))
