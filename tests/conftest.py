"""Test configuration, fakes and fixtures."""

import asyncio
import dataclasses
import uuid
from typing import Optional
from urllib.parse import urlencode

import pytest

from tiktok_auth.config import BridgeConfig
from tiktok_auth.errors import ProviderError, StoreError, UsernameTakenError
from tiktok_auth.models import AccountSession, Profile, ProviderIdentity, ProviderToken

CLIENT_SECRET = "test-client-secret"
NOW = 1_700_000_000


# ============================================================
# Fakes
# ============================================================


class FakeProvider:
    """ProviderProtocolClient that never touches the network and records calls."""

    name = "tiktok"

    def __init__(self, open_id: str = "open-id-1", display_name: Optional[str] = "Jane Doe", avatar_url=None):
        self.open_id = open_id
        self.display_name = display_name
        self.avatar_url = avatar_url
        self.exchange_error: Optional[ProviderError] = None
        self.calls = []

    def build_authorize_url(self, state: str, code_challenge: str) -> str:
        query = urlencode({"state": state, "code_challenge": code_challenge, "code_challenge_method": "S256"})
        return f"https://provider.test/authorize?{query}"

    async def exchange_code(self, code: str, code_verifier: str) -> ProviderToken:
        self.calls.append(("exchange_code", code, code_verifier))
        if self.exchange_error:
            raise self.exchange_error
        return ProviderToken(access_token=f"at-{code}", open_id=self.open_id)

    async def fetch_user_info(self, token: ProviderToken) -> ProviderIdentity:
        self.calls.append(("fetch_user_info", token.open_id))
        return ProviderIdentity(open_id=token.open_id, display_name=self.display_name, avatar_url=self.avatar_url)


class InMemoryAccountStore:
    """AccountStore with a unique email constraint. Yields to the loop before each write."""

    def __init__(self):
        self.accounts = {}
        self.calls = []
        self.create_error: Optional[StoreError] = None
        self.sign_in_error: Optional[StoreError] = None
        self.update_error: Optional[StoreError] = None

    async def create(self, email: str, secret: str, metadata: dict) -> Optional[str]:
        self.calls.append(("create", email))
        await asyncio.sleep(0)
        if self.create_error:
            raise self.create_error
        if email in self.accounts:
            return None
        account_id = str(uuid.uuid4())
        self.accounts[email] = {"id": account_id, "secret": secret, "metadata": dict(metadata)}
        return account_id

    async def sign_in(self, email: str, secret: str) -> AccountSession:
        self.calls.append(("sign_in", email))
        await asyncio.sleep(0)
        if self.sign_in_error:
            raise self.sign_in_error
        account = self.accounts.get(email)
        if account is None or account["secret"] != secret:
            raise StoreError("invalid login credentials", status=400, code="invalid_credentials")
        return AccountSession(
            account_id=account["id"],
            access_token=f"session-{uuid.uuid4().hex}",
            refresh_token="refresh",
            expires_in=3600,
            metadata=dict(account["metadata"]),
        )

    async def update_metadata(self, account_id: str, metadata: dict) -> None:
        self.calls.append(("update_metadata", account_id))
        if self.update_error:
            raise self.update_error
        for account in self.accounts.values():
            if account["id"] == account_id:
                account["metadata"] = dict(metadata)


class InMemoryProfileStore:
    """ProfileStore with primary key and unique username constraints."""

    def __init__(self):
        self.rows = {}
        self.calls = []

    def _taken(self, username: Optional[str], account_id: str) -> bool:
        return username is not None and any(
            row.username == username and row.account_id != account_id for row in self.rows.values()
        )

    async def get(self, account_id: str) -> Optional[Profile]:
        self.calls.append(("get", account_id))
        await asyncio.sleep(0)
        row = self.rows.get(account_id)
        return dataclasses.replace(row) if row else None

    async def insert(self, profile: Profile) -> None:
        self.calls.append(("insert", profile.account_id))
        await asyncio.sleep(0)
        if profile.account_id in self.rows or self._taken(profile.username, profile.account_id):
            raise UsernameTakenError("duplicate key", status=409, code="23505")
        self.rows[profile.account_id] = dataclasses.replace(profile)

    async def update(self, account_id: str, fields: dict) -> None:
        self.calls.append(("update", account_id, dict(fields)))
        await asyncio.sleep(0)
        if self._taken(fields.get("username"), account_id):
            raise UsernameTakenError("duplicate key", status=409, code="23505")
        row = self.rows[account_id]
        for key, value in fields.items():
            setattr(row, key, value)

    async def exists_by_username(self, username: str) -> bool:
        self.calls.append(("exists_by_username", username))
        await asyncio.sleep(0)
        return any(row.username == username for row in self.rows.values())

    def usernames(self):
        return [row.username for row in self.rows.values()]


# ============================================================
# Fixtures
# ============================================================


@pytest.fixture
def config() -> BridgeConfig:
    return BridgeConfig(
        client_key="test-client-key",
        client_secret=CLIENT_SECRET,
        redirect_uri="https://app.test/api/auth/tiktok/callback",
        app_base_url="https://app.test",
        supabase_url="https://db.test",
        supabase_service_key="sb_secret_test",
    )


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def accounts() -> InMemoryAccountStore:
    return InMemoryAccountStore()


@pytest.fixture
def profiles() -> InMemoryProfileStore:
    return InMemoryProfileStore()


@pytest.fixture
def clock():
    """Mutable clock: set clock.now to move time."""

    class _Clock:
        now = NOW

        def __call__(self):
            return self.now

    return _Clock()
