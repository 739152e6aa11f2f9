"""Shared fixtures for support-oauth tests."""

import asyncio
import time
from urllib.parse import parse_qs, urlparse

import jwt
import pytest
from fastapi.testclient import TestClient

from config import ENV_KEYS, Config
from main import create_app
from support_oauth.accounts import AccountRecord, AccountService
from support_oauth.store import GrantStore

PORTAL_JWT_SECRET = "portal-login-signing-key"
CLIENT_ID = "2b7c1f0e-support-portal"
CLIENT_SECRET = "c2VjcmV0LWZvci10aGUtc3VwcG9ydC1wb3J0YWw"
PORTAL_URL = "https://support.example.com"
REDIRECT_URI = "https://support.example.com/oauth/callback"
PREFIX = "/api/account/support/oauth"


class FakeAccountService(AccountService):
    """In-memory account backend with optional failure and latency."""

    def __init__(self, accounts: dict = None, error: Exception = None, delay: float = 0):
        self.accounts = accounts or {}
        self.error = error
        self.delay = delay
        self.calls = []
        self.closed = False

    async def account_exists(self, user_id: int):
        self.calls.append(user_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        account = self.accounts.get(user_id)
        return account is not None, account

    async def close(self):
        self.closed = True


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def query_params(location: str) -> dict:
    """Flatten a redirect Location's query string into a dict."""
    return {k: v[0] for k, v in parse_qs(urlparse(location).query).items()}


def make_login_token(user_id="42", secret=PORTAL_JWT_SECRET, audience="login", expires_in=300) -> str:
    payload = {"sub": str(user_id), "aud": audience, "exp": int(time.time()) + expires_in}
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep the developer's environment and home config out of tests."""
    for name in ENV_KEYS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SUPPORT_OAUTH_CONFIG", str(tmp_path / "config.json"))


@pytest.fixture
def config_data() -> dict:
    return {
        "client_id": CLIENT_ID,
        "client_secret": CLIENT_SECRET,
        "support_portal_url": PORTAL_URL,
        "mailbox_id": "7",
        "portal_jwt_secret": PORTAL_JWT_SECRET,
        "account_service_url": "https://accounts.internal",
    }


@pytest.fixture
def config(config_data) -> Config:
    return Config(config_data)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> GrantStore:
    return GrantStore(clock=clock)


@pytest.fixture
def ada() -> AccountRecord:
    return AccountRecord(
        id=42,
        first_name="Ada",
        last_name="Lovelace",
        email="a@b.com",
        verified=True,
    )


@pytest.fixture
def accounts(ada) -> FakeAccountService:
    return FakeAccountService({42: ada})


@pytest.fixture
def app(config, accounts, store):
    return create_app(config, account_service=accounts, store=store)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def login_headers() -> dict:
    return {"Authorization": f"Bearer {make_login_token()}"}


@pytest.fixture
def authorize(client, login_headers):
    """GET the authorize endpoint as the logged-in user; returns the response."""

    def _authorize(scope="openid", state="xyz", redirect_uri=REDIRECT_URI,
                   client_id=CLIENT_ID, response_type="code", headers=None):
        params = {
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "scope": scope,
            "state": state,
            "response_type": response_type,
        }
        return client.get(
            f"{PREFIX}/authorize",
            params=params,
            headers=login_headers if headers is None else headers,
            follow_redirects=False,
        )

    return _authorize


@pytest.fixture
def exchange(client):
    """POST an authorization_code grant with client credentials in the body."""

    def _exchange(code, redirect_uri=REDIRECT_URI, client_id=CLIENT_ID, client_secret=CLIENT_SECRET):
        return client.post(f"{PREFIX}/token", data={
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": client_id,
            "client_secret": client_secret,
        })

    return _exchange
