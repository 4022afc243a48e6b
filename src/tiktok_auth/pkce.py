"""
PKCE verifier/challenge generation.

TikTok expects the S256 challenge as the hex digest of SHA-256 over the
verifier, not the base64url digest used by RFC 7636.
"""

import base64
import hashlib
import secrets
from dataclasses import dataclass, field

CODE_CHALLENGE_METHOD = "S256"
VERIFIER_BYTES = 64


@dataclass(frozen=True)
class PKCEPair:
    verifier: str = field(repr=False)
    challenge: str
    method: str = CODE_CHALLENGE_METHOD


def compute_code_challenge(verifier: str) -> str:
    return hashlib.sha256(verifier.encode("ascii")).hexdigest()


def generate_pkce_pair() -> PKCEPair:
    """Return a fresh verifier (base64url of 64 random bytes) and its challenge."""
    verifier = base64.urlsafe_b64encode(secrets.token_bytes(VERIFIER_BYTES)).rstrip(b"=").decode("ascii")
    return PKCEPair(verifier=verifier, challenge=compute_code_challenge(verifier))
