"""Google OAuth 2.0 client — authorization-code flow over httpx.

Three calls:
1. authorization_url(state) → where the browser goes for consent
2. exchange_code(code)      → POST to the token endpoint for an access token
3. fetch_userinfo(token)    → GET the profile (id, email, name, picture)

The http client is injectable so tests can route it through
httpx.MockTransport instead of the network.
"""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

import httpx

from fourme.config import settings

AUTH_URL = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
SCOPES = (
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
)


class OAuthError(Exception):
    """Raised when Google rejects the exchange or returns unusable data."""


@dataclass
class GoogleUser:
    id: str
    email: str
    name: str
    picture: Optional[str] = None


class GoogleOAuthClient:
    """Thin wrapper around Google's OAuth endpoints."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_url: str,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_url = redirect_url
        self._http = http

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_url,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "state": state,
            "access_type": "offline",
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> str:
        """Trade an authorization code for an access token."""
        try:
            resp = await self._request(
                "POST",
                TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_url,
                    "grant_type": "authorization_code",
                },
            )
        except httpx.HTTPError as e:
            raise OAuthError(f"token endpoint unreachable: {e}") from e

        if resp.status_code != 200:
            raise OAuthError(f"token exchange failed with HTTP {resp.status_code}")
        token = resp.json().get("access_token")
        if not token:
            raise OAuthError("token response has no access_token")
        return token

    async def fetch_userinfo(self, access_token: str) -> GoogleUser:
        try:
            resp = await self._request(
                "GET",
                USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as e:
            raise OAuthError(f"userinfo endpoint unreachable: {e}") from e

        if resp.status_code != 200:
            raise OAuthError(f"userinfo failed with HTTP {resp.status_code}")
        data = resp.json()
        if not data.get("id") or not data.get("email"):
            raise OAuthError("userinfo response is missing id or email")
        return GoogleUser(
            id=str(data["id"]),
            email=data["email"],
            name=data.get("name") or data["email"].split("@")[0],
            picture=data.get("picture"),
        )

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._http is not None:
            return await self._http.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=10.0) as http:
            return await http.request(method, url, **kwargs)


def get_google_client() -> GoogleOAuthClient:
    """FastAPI dependency — overridden in tests."""
    return GoogleOAuthClient(
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        redirect_url=settings.google_redirect_url,
    )
