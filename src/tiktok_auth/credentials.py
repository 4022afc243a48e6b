"""
Deterministic account credentials for provider identities.

Logging in twice with the same TikTok identity must land in the same platform
account without a server-side session table, so the account email and
password are pure functions of the provider's ``open_id`` and the server
secret. The email lives under a reserved domain so it never collides with
addresses typed in by real users.
"""

import hashlib

from .models import DerivedCredential

EMAIL_HASH_CHARS = 40


class Sha256CredentialDeriver:
    """CredentialDeriver that hashes the provider id (and server secret) with SHA-256."""

    def __init__(self, server_secret: str, provider: str = "tiktok", email_domain: str = "tiktok.local"):
        if not server_secret:
            raise ValueError("server_secret is required")
        self._server_secret = server_secret
        self.provider = provider
        self.email_domain = email_domain

    def email(self, open_id: str) -> str:
        # Hashed so case-only differences between ids survive a case-folding store
        digest = hashlib.sha256(open_id.encode("utf-8")).hexdigest()[:EMAIL_HASH_CHARS]
        return f"{self.provider}_{digest}@{self.email_domain}"

    def secret(self, open_id: str) -> str:
        digest = hashlib.sha256((open_id + self._server_secret).encode("utf-8")).hexdigest()
        return f"{self.provider}-{digest}"

    def derive(self, open_id: str) -> DerivedCredential:
        if not open_id:
            raise ValueError("open_id is required")
        return DerivedCredential(email=self.email(open_id), secret=self.secret(open_id))
