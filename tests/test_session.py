from urllib.parse import parse_qs, urlparse

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.middleware.sessions import SessionMiddleware
from starlette.requests import Request

from tiktok_auth import session as session_module
from tiktok_auth.models import AccountSession
from tiktok_auth.router import create_auth_router
from tiktok_auth.session import SESSION_KEY, is_session_stale, store_login

from .conftest import FakeProvider, InMemoryAccountStore, InMemoryProfileStore


def _request(data=None) -> Request:
    return Request({"type": "http", "session": dict(data or {})})


def test_store_login_keeps_tokens_out_of_the_cookie():
    request = _request()
    session = AccountSession(account_id="acct-1", access_token="access-jwt", refresh_token="refresh-jwt")
    store_login(request, session, provider="tiktok", profile_complete=True)

    stored = request.session[SESSION_KEY]
    assert stored["account_id"] == "acct-1"
    assert stored["provider"] == "tiktok"
    assert stored["profile_complete"] is True
    assert "access-jwt" not in repr(request.session)
    assert "refresh-jwt" not in repr(request.session)


@pytest.mark.parametrize(
    "max_idle, idle_for, stale",
    [
        (0, 10**6, False),
        (60, 59, False),
        (60, 60, True),
        (60, 3600, True),
    ],
)
def test_is_session_stale(monkeypatch, max_idle, idle_for, stale):
    monkeypatch.setattr(session_module.time, "time", lambda: 1_000_000.0)
    request = _request({"last_activity_at": 1_000_000 - idle_for})
    assert is_session_stale(request, max_idle) is stale


def test_idle_timeout_comes_from_config(monkeypatch, config):
    config = config.model_copy(update={"session_max_idle_seconds": 60})
    app = FastAPI()
    app.add_middleware(SessionMiddleware, secret_key="test-session-secret")
    stores = InMemoryAccountStore(), InMemoryProfileStore()
    provider = FakeProvider()
    app.include_router(
        create_auth_router(
            config,
            provider_factory=lambda cfg, http: provider,
            store_factory=lambda cfg, http: stores,
        )
    )
    client = TestClient(app)

    start = client.get("/api/auth/tiktok", follow_redirects=False)
    state = {k: v[0] for k, v in parse_qs(urlparse(start.headers["location"]).query).items()}["state"]
    client.get("/api/auth/tiktok/callback", params={"code": "c", "state": state}, follow_redirects=False)
    assert client.get("/me").status_code == 200

    real_time = session_module.time.time
    monkeypatch.setattr(session_module.time, "time", lambda: real_time() + 61)
    assert client.get("/me").status_code == 401
    assert client.get("/me").json()["detail"] == "Not authenticated"
