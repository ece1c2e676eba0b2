"""Google sign-in tests.

Google itself is replaced by an httpx.MockTransport behind a real
GoogleOAuthClient, so the code exchange and profile fetch run the same
code as production against scripted responses.
"""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from conftest import register
from fourme.auth.google import TOKEN_URL, USERINFO_URL, GoogleOAuthClient, get_google_client
from fourme.auth.jwt import OAUTH_STATE, create_refresh_token, create_state_token, verify_token
from fourme.config import settings
from fourme.main import app
from fourme.services.user_service import UserService

PROFILE = {
    "id": "g-123",
    "email": "carol@example.com",
    "name": "Carol",
    "picture": "https://lh3.example.com/carol.png",
}


class FakeGoogle:
    def __init__(self):
        self.token_status = 200
        self.profile = dict(PROFILE)
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if str(request.url) == TOKEN_URL:
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": "google-access"})
        if str(request.url) == USERINFO_URL:
            assert request.headers["Authorization"] == "Bearer google-access"
            return httpx.Response(200, json=self.profile)
        return httpx.Response(404)


@pytest.fixture
async def google(client):
    fake = FakeGoogle()
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake.handler))
    oauth = GoogleOAuthClient("client-id", "client-secret", "http://test/cb", http=http)
    app.dependency_overrides[get_google_client] = lambda: oauth
    yield fake
    await http.aclose()


async def _callback(client, code="auth-code", state=None):
    params = {"code": code, "state": state if state is not None else create_state_token()}
    return await client.get("/api/auth/google/callback", params=params)


def _tokens(response) -> dict:
    location = urlparse(response.headers["location"])
    assert f"{location.scheme}://{location.netloc}" == settings.frontend_url.rstrip("/")
    assert location.path == "/auth/callback"
    return {k: v[0] for k, v in parse_qs(location.query).items()}


# ═══════════════════════════════════════════════════════════
# Consent URL
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_consent_url_carries_signed_state(client, google):
    r = await client.get("/api/auth/google")
    assert r.status_code == 200
    url = urlparse(r.json()["url"])
    query = parse_qs(url.query)
    assert url.netloc == "accounts.google.com"
    assert query["client_id"] == ["client-id"]
    assert query["response_type"] == ["code"]
    verify_token(query["state"][0], expected_type=OAUTH_STATE)


# ═══════════════════════════════════════════════════════════
# Callback
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_callback_creates_user_and_redirects(client, google):
    r = await _callback(client)
    assert r.status_code == 307
    tokens = _tokens(r)

    me = await client.get(
        "/api/auth/me", headers={"Authorization": f"Bearer {tokens['token']}"}
    )
    assert me.status_code == 200
    assert me.json()["email"] == "carol@example.com"
    assert me.json()["username"] == "carol"
    assert me.json()["avatar_url"] == PROFILE["picture"]

    r = await client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_second_sign_in_reuses_account(client, google):
    first = _tokens(await _callback(client))
    second = _tokens(await _callback(client))
    a = verify_token(first["token"])["sub"]
    b = verify_token(second["token"])["sub"]
    assert a == b


@pytest.mark.asyncio
async def test_existing_email_is_linked(client, google):
    """A password account with the same email gets Google attached, not duplicated."""
    tokens = await register(client, "carol")
    r = await _callback(client)
    assert verify_token(_tokens(r)["token"])["sub"] == str(tokens["user"]["id"])

    login = await client.post(
        "/api/auth/login", json={"username": "carol", "password": "secret123"}
    )
    assert login.status_code == 200


@pytest.mark.asyncio
async def test_username_clash_gets_suffix(client, google):
    await client.post(
        "/api/auth/register",
        json={"username": "carol", "email": "someone-else@example.com", "password": "secret123"},
    )
    tokens = _tokens(await _callback(client))
    me = await client.get(
        "/api/auth/me", headers={"Authorization": f"Bearer {tokens['token']}"}
    )
    assert me.json()["username"] == "carol2"


@pytest.mark.asyncio
async def test_missing_code_is_400(client, google):
    r = await client.get("/api/auth/google/callback", params={"state": create_state_token()})
    assert r.status_code == 400
    assert google.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize("state", ["", "garbage"])
async def test_bad_state_is_400(client, google, state):
    r = await _callback(client, state=state)
    assert r.status_code == 400
    assert google.requests == []


@pytest.mark.asyncio
async def test_other_token_as_state_is_400(client, google):
    r = await _callback(client, state=create_refresh_token(1))
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_exchange_failure_is_500(client, google):
    google.token_status = 400
    r = await _callback(client)
    assert r.status_code == 500
    assert r.json()["detail"] == "Google sign-in failed"


@pytest.mark.asyncio
async def test_conflicting_new_account_is_409(client, google, monkeypatch):
    """A unique-constraint clash while creating the account is a conflict, not a crash."""
    await client.post(
        "/api/auth/register",
        json={"username": "carol", "email": "someone-else@example.com", "password": "secret123"},
    )

    async def clashing_username(self, profile):
        return "carol"

    monkeypatch.setattr(UserService, "_free_username", clashing_username)

    r = await _callback(client)
    assert r.status_code == 409
