"""
Value types passed between the provider client, the stores and the flow.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class ProviderToken:
    access_token: str
    open_id: str
    scope: Optional[str] = None
    expires_in: Optional[int] = None


@dataclass(frozen=True)
class ProviderIdentity:
    """What the provider tells us about the user. Display name and avatar may be missing."""

    open_id: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


@dataclass(frozen=True)
class DerivedCredential:
    email: str
    secret: str = field(repr=False)


@dataclass(frozen=True)
class AccountSession:
    """A signed-in session for a platform account, as returned by the account store."""

    account_id: str
    access_token: str = field(repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)
    expires_in: Optional[int] = None
    metadata: dict = field(default_factory=dict)


@dataclass
class Profile:
    account_id: str
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    date_of_birth: Optional[str] = None
    age: Optional[int] = None
    email: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        """A profile is complete once it has a username and either a birth date or an age."""
        return bool(self.username) and (bool(self.date_of_birth) or self.age is not None)


@dataclass(frozen=True)
class ProvisionResult:
    account_id: str
    session: AccountSession
    profile_complete: bool
    created: bool
