"""
Idempotent account + profile provisioning.

Because the credential is deterministic, concurrent or repeated logins for
the same provider identity all converge on one account: whichever request
loses the create race sees "already exists" and simply signs in. Nothing in
here takes a lock.
"""

import logging
from typing import Optional

from .errors import ProvisioningError, SignInError, StoreError, UsernameTakenError
from .models import AccountSession, DerivedCredential, Profile, ProviderIdentity, ProvisionResult
from .protocol import AccountStore, ProfileStore
from .usernames import UsernameAllocator

logger = logging.getLogger(__name__)

DEFAULT_USERNAME_ATTEMPTS = 3


def account_metadata(provider: str, identity: ProviderIdentity) -> dict:
    return {
        "provider": provider,
        f"{provider}_open_id": identity.open_id,
        f"{provider}_display_name": identity.display_name,
        f"{provider}_avatar_url": identity.avatar_url,
    }


class AccountProvisioner:
    def __init__(
        self,
        accounts: AccountStore,
        profiles: ProfileStore,
        allocator: UsernameAllocator,
        provider: str = "tiktok",
        username_attempts: int = DEFAULT_USERNAME_ATTEMPTS,
    ):
        self.accounts = accounts
        self.profiles = profiles
        self.allocator = allocator
        self.provider = provider
        self.username_attempts = username_attempts

    async def provision(
        self,
        credential: DerivedCredential,
        identity: ProviderIdentity,
        preferred_username: str,
    ) -> ProvisionResult:
        """
        Create (or find) the account, sign in, and make sure a profile row exists.

        Raises ProvisioningError when the account cannot be created or the
        profile cannot be written, SignInError when the derived credential
        does not sign in.
        """
        metadata = account_metadata(self.provider, identity)

        try:
            created_id = await self.accounts.create(credential.email, credential.secret, metadata)
        except StoreError as e:
            logger.error("account create failed", extra={"status": e.status, "code": e.code})
            raise ProvisioningError("account create failed", status=e.status, code=e.code) from e

        try:
            session = await self.accounts.sign_in(credential.email, credential.secret)
        except StoreError as e:
            logger.error("derived credential sign-in failed", extra={"status": e.status, "code": e.code})
            raise SignInError("sign-in failed", status=e.status, code=e.code) from e

        previous_avatar = session.metadata.get(f"{self.provider}_avatar_url")
        if created_id is None:
            await self._refresh_metadata(session, metadata)

        try:
            profile = await self._ensure_profile(session, credential, identity, preferred_username, previous_avatar)
        except StoreError as e:
            logger.error("profile write failed", extra={"status": e.status, "code": e.code})
            raise ProvisioningError("profile write failed", status=e.status, code=e.code) from e

        return ProvisionResult(
            account_id=session.account_id,
            session=session,
            profile_complete=profile.is_complete,
            created=created_id is not None,
        )

    async def _refresh_metadata(self, session: AccountSession, metadata: dict) -> None:
        """Record the latest provider name/avatar on an existing account. Failures are logged only."""
        merged = {**session.metadata, **{k: v for k, v in metadata.items() if v is not None}}
        try:
            await self.accounts.update_metadata(session.account_id, merged)
        except StoreError as e:
            logger.warning(
                "account metadata update failed",
                extra={"account_id": session.account_id, "status": e.status, "code": e.code},
            )

    async def _ensure_profile(
        self,
        session: AccountSession,
        credential: DerivedCredential,
        identity: ProviderIdentity,
        preferred_username: str,
        previous_avatar: Optional[str],
    ) -> Profile:
        """
        Insert or fill in the profile row, re-reading it after every conflict.

        A conflict is either a concurrent login for the same account having
        inserted the row first (the re-read then finds it) or the username
        being taken between the availability probe and the write (a fresh
        suffixed name is allocated). The store's unique index is what
        enforces uniqueness; the probe only makes conflicts rare.
        """
        username = preferred_username
        attempt = 0
        while True:
            existing = await self.profiles.get(session.account_id)
            try:
                return await self._apply(existing, session, credential, identity, username, previous_avatar)
            except UsernameTakenError:
                attempt += 1
                if attempt > self.username_attempts:
                    raise
                logger.info("profile write conflicted, retrying", extra={"attempt": attempt})
                username = await self.allocator.allocate(identity.display_name, identity.open_id, skip_base=True)

    async def _apply(
        self,
        existing: Optional[Profile],
        session: AccountSession,
        credential: DerivedCredential,
        identity: ProviderIdentity,
        username: str,
        previous_avatar: Optional[str],
    ) -> Profile:
        if existing is None:
            profile = Profile(
                account_id=session.account_id,
                username=username,
                avatar_url=identity.avatar_url,
                email=credential.email,
            )
            await self.profiles.insert(profile)
            return profile

        changes = {}
        if identity.avatar_url and identity.avatar_url != existing.avatar_url:
            # Only replace an avatar that came from the provider in the first place
            if not existing.avatar_url or existing.avatar_url == previous_avatar:
                changes["avatar_url"] = identity.avatar_url
        if not existing.username:
            changes["username"] = username

        if changes:
            await self.profiles.update(existing.account_id, changes)
            existing.username = changes.get("username", existing.username)
            existing.avatar_url = changes.get("avatar_url", existing.avatar_url)
        return existing
