from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.middleware.sessions import SessionMiddleware

from tiktok_auth.router import create_auth_router

from .conftest import InMemoryAccountStore, InMemoryProfileStore, FakeProvider


@pytest.fixture
def stores():
    return InMemoryAccountStore(), InMemoryProfileStore()


@pytest.fixture
def client(config, stores):
    provider = FakeProvider()
    app = FastAPI()
    app.add_middleware(SessionMiddleware, secret_key="test-session-secret")
    app.include_router(
        create_auth_router(
            config,
            provider_factory=lambda cfg, http: provider,
            store_factory=lambda cfg, http: stores,
        )
    )
    return TestClient(app)


def _query(response) -> dict:
    return {k: v[0] for k, v in parse_qs(urlparse(response.headers["location"]).query).items()}


def test_start_redirects_to_provider(client):
    response = client.get("/api/auth/tiktok", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"].startswith("https://provider.test/authorize?")
    assert set(_query(response)) == {"state", "code_challenge", "code_challenge_method"}


def test_full_login_sets_session(client, stores):
    start = client.get("/api/auth/tiktok", follow_redirects=False)
    state = _query(start)["state"]

    assert client.get("/me").status_code == 401

    callback = client.get("/api/auth/tiktok/callback", params={"code": "c", "state": state}, follow_redirects=False)
    assert callback.status_code == 302
    assert callback.headers["location"] == "https://app.test/onboarding"

    me = client.get("/me")
    assert me.status_code == 200
    accounts, profiles = stores
    account_id = next(iter(accounts.accounts.values()))["id"]
    assert me.json()["account_id"] == account_id
    assert me.json()["profile_complete"] is False
    assert "access_token" not in me.json()


def test_error_redirect_has_no_session(client):
    response = client.get("/api/auth/tiktok/callback", params={"code": "c", "state": "garbage"}, follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "https://app.test/login?error=state_invalid"
    assert client.get("/me").status_code == 401


def test_logout_clears_session(client):
    state = _query(client.get("/api/auth/tiktok", follow_redirects=False))["state"]
    client.get("/api/auth/tiktok/callback", params={"code": "c", "state": state}, follow_redirects=False)
    assert client.get("/me").status_code == 200

    response = client.get("/logout", follow_redirects=False)
    assert response.headers["location"] == "https://app.test/login"
    assert client.get("/me").status_code == 401


def test_default_factories_use_tiktok_and_supabase(config):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.host)
        return httpx.Response(500)

    app = FastAPI()
    app.add_middleware(SessionMiddleware, secret_key="s")
    app.include_router(create_auth_router(config, transport=httpx.MockTransport(handler)))
    client = TestClient(app)

    start = client.get("/api/auth/tiktok", follow_redirects=False)
    assert start.headers["location"].startswith("https://www.tiktok.com/v2/auth/authorize/?")
    assert calls == []

    state = _query(start)["state"]
    callback = client.get("/api/auth/tiktok/callback", params={"code": "c", "state": state}, follow_redirects=False)
    assert _query(callback) == {"error": "provider_token", "status": "500"}
    assert calls == ["open.tiktokapis.com"]


def test_html_from_store_proxy_ends_in_login_redirect(config):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v2/oauth/token/":
            return httpx.Response(200, json={"access_token": "at", "open_id": "oid"})
        if request.url.path == "/v2/user/info/":
            return httpx.Response(200, json={"data": {"user": {"display_name": "Jane Doe"}}})
        return httpx.Response(200, text="<html>proxy</html>", headers={"Content-Type": "text/html"})

    app = FastAPI()
    app.add_middleware(SessionMiddleware, secret_key="s")
    app.include_router(create_auth_router(config, transport=httpx.MockTransport(handler)))
    client = TestClient(app)

    state = _query(client.get("/api/auth/tiktok", follow_redirects=False))["state"]
    callback = client.get("/api/auth/tiktok/callback", params={"code": "c", "state": state}, follow_redirects=False)
    assert callback.status_code == 302
    assert callback.headers["location"].startswith("https://app.test/login?")
    assert _query(callback) == {"error": "create_user", "status": "200"}
    assert client.get("/me").status_code == 401
