"""Auth API — registration, login, token refresh, Google sign-in.

Routes:
- POST /auth/register         → create an account, returns a token pair
- POST /auth/login            → username/password → token pair
- POST /auth/refresh          → refresh token → new token pair
- GET  /auth/google           → Google consent URL (with signed state)
- GET  /auth/google/callback  → code exchange, then redirect to the frontend
- GET  /auth/me               → the current user

Everything here is open except /auth/me, which asks for the identity
itself.
"""

from typing import Optional
from urllib.parse import urlencode

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from fourme.auth.dependencies import CurrentIdentity, get_current_user
from fourme.auth.google import GoogleOAuthClient, OAuthError, get_google_client
from fourme.auth.jwt import (
    OAUTH_STATE,
    REFRESH,
    TokenError,
    create_access_token,
    create_refresh_token,
    create_state_token,
    verify_token,
)
from fourme.config import settings
from fourme.db.engine import get_db
from fourme.db.models import User
from fourme.schemas.user import UserRead
from fourme.services.user_service import UserExistsError, UserService

logger = structlog.get_logger()

router = APIRouter(prefix="/auth")


def _svc(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(db)


# ─── Schemas ─────────────────────────────────────────────


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=255)
    password: str = Field(min_length=6)


class LoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    token: str
    refresh_token: str
    token_type: str = "bearer"
    user: Optional[UserRead] = None


def _issue(user: User) -> TokenResponse:
    return TokenResponse(
        token=create_access_token(user.id, username=user.username),
        refresh_token=create_refresh_token(user.id),
        user=UserRead.model_validate(user),
    )


# ─── Register / login ────────────────────────────────────


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(body: RegisterRequest, svc: UserService = Depends(_svc)):
    """Create a new account and sign it in."""
    try:
        user = await svc.register(body.username, body.email, body.password)
    except UserExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _issue(user)


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, svc: UserService = Depends(_svc)):
    """Username and password → token pair."""
    user = await svc.authenticate(body.username, body.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    logger.info("auth.login", user_id=user.id)
    return _issue(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, svc: UserService = Depends(_svc)):
    """Exchange a refresh token for a new pair. Access tokens are refused."""
    try:
        payload = verify_token(body.refresh_token, expected_type=REFRESH)
        user_id = int(payload["sub"])
    except TokenError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token: bad subject")

    user = await svc.get(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User no longer exists")
    return _issue(user)


# ─── Google ──────────────────────────────────────────────


@router.get("/google")
async def google_login(google: GoogleOAuthClient = Depends(get_google_client)):
    """Where the browser should go to start Google sign-in."""
    return {"url": google.authorization_url(create_state_token())}


@router.get("/google/callback")
async def google_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    google: GoogleOAuthClient = Depends(get_google_client),
    svc: UserService = Depends(_svc),
):
    """Finish Google sign-in and hand the tokens to the frontend."""
    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")
    try:
        verify_token(state or "", expected_type=OAUTH_STATE)
    except TokenError:
        raise HTTPException(status_code=400, detail="Invalid OAuth state")

    try:
        access = await google.exchange_code(code)
        profile = await google.fetch_userinfo(access)
    except OAuthError as e:
        logger.warning("auth.google_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Google sign-in failed")

    try:
        user = await svc.sign_in_with_google(profile)
    except UserExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    query = urlencode({
        "token": create_access_token(user.id, username=user.username),
        "refresh_token": create_refresh_token(user.id),
    })
    return RedirectResponse(
        f"{settings.frontend_url.rstrip('/')}/auth/callback?{query}",
        status_code=307,
    )


# ─── Current user ───────────────────────────────────────


@router.get("/me", response_model=UserRead)
async def get_me(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: UserService = Depends(_svc),
):
    """The authenticated user's profile."""
    user = await svc.get(identity.user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user
