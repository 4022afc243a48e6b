"""
Protocols for the bridge's collaborators.

The flow only talks to these interfaces, so the TikTok client and the
Supabase stores can be replaced by fakes in tests without network access.
"""

from typing import Optional, Protocol, runtime_checkable

from .models import (
    AccountSession,
    DerivedCredential,
    Profile,
    ProviderIdentity,
    ProviderToken,
)


@runtime_checkable
class ProviderProtocolClient(Protocol):
    """OAuth2 authorization-code + PKCE client for one identity provider."""

    name: str

    def build_authorize_url(self, state: str, code_challenge: str) -> str:
        """Return the provider consent URL for the given state and S256 challenge."""
        ...

    async def exchange_code(self, code: str, code_verifier: str) -> ProviderToken:
        """Redeem an authorization code. Raises ProviderError on any failure."""
        ...

    async def fetch_user_info(self, token: ProviderToken) -> ProviderIdentity:
        """Fetch display name and avatar. Never raises; missing data comes back as None."""
        ...


@runtime_checkable
class CredentialDeriver(Protocol):
    def email(self, open_id: str) -> str: ...

    def secret(self, open_id: str) -> str: ...

    def derive(self, open_id: str) -> DerivedCredential: ...


@runtime_checkable
class AccountStore(Protocol):
    """Identity records (auth users) in the platform store."""

    async def create(self, email: str, secret: str, metadata: dict) -> Optional[str]:
        """Create an account and return its id, or None if it already exists. Raises StoreError."""
        ...

    async def sign_in(self, email: str, secret: str) -> AccountSession:
        """Password sign-in. Raises StoreError."""
        ...

    async def update_metadata(self, account_id: str, metadata: dict) -> None:
        """Replace the account's user metadata. Raises StoreError."""
        ...


@runtime_checkable
class ProfileStore(Protocol):
    """Profile rows keyed by account id, with a unique username."""

    async def get(self, account_id: str) -> Optional[Profile]: ...

    async def insert(self, profile: Profile) -> None:
        """Insert a row. Raises UsernameTakenError on a username conflict."""
        ...

    async def update(self, account_id: str, fields: dict) -> None:
        """Update columns of an existing row. Raises UsernameTakenError on a username conflict."""
        ...

    async def exists_by_username(self, username: str) -> bool: ...
