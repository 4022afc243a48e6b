"""
Encrypted OAuth ``state`` parameter.

The PKCE verifier has to survive the redirect to TikTok and back without any
server-side storage, so it travels inside the ``state`` value, sealed with
AES-256-GCM under a key derived from the client secret:

    token = base64url(nonce[12] || tag[16] || ciphertext)

The associated data pins the token format version. Decoding is fail-closed:
any malformed, truncated, tampered or incomplete token decodes to ``None``.
"""

import base64
import binascii
import hashlib
import json
import logging
import os
import re
import secrets
from dataclasses import asdict, dataclass
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

ASSOCIATED_DATA = b"tiktok-oauth-state:v1"
NONCE_SIZE = 12
TAG_SIZE = 16

_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]+\Z")


@dataclass(frozen=True)
class AuthorizationState:
    """Ephemeral payload carried through the provider redirect."""

    code_verifier: str
    created_at: int
    nonce: str

    def age(self, now: float) -> float:
        return now - self.created_at

    def is_expired(self, now: float, max_age: int) -> bool:
        return self.age(now) > max_age


def new_state(code_verifier: str, now: float) -> AuthorizationState:
    return AuthorizationState(code_verifier=code_verifier, created_at=int(now), nonce=secrets.token_urlsafe(16))


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(token: str) -> bytes:
    """Strict unpadded base64url: one token spelling per byte string."""
    if not _TOKEN_RE.match(token):
        raise ValueError("not base64url")
    padded = token + "=" * (-len(token) % 4)
    raw = base64.urlsafe_b64decode(padded.encode("ascii"))
    if _b64encode(raw) != token:
        raise ValueError("non-canonical base64url")
    return raw


class StateCodec:
    """Seal and open AuthorizationState values with a key derived from a server secret."""

    def __init__(self, server_secret: str):
        if not server_secret:
            raise ValueError("server_secret is required")
        self._aead = AESGCM(hashlib.sha256(server_secret.encode("utf-8")).digest())

    def encode(self, state: AuthorizationState) -> str:
        nonce = os.urandom(NONCE_SIZE)
        plaintext = json.dumps(asdict(state), separators=(",", ":")).encode("utf-8")
        sealed = self._aead.encrypt(nonce, plaintext, ASSOCIATED_DATA)
        # AESGCM appends the tag; the wire format puts it before the ciphertext
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return _b64encode(nonce + tag + ciphertext)

    def decode(self, token: Optional[str]) -> Optional[AuthorizationState]:
        if not token:
            return None
        try:
            raw = _b64decode(token)
        except (binascii.Error, ValueError, UnicodeEncodeError):
            logger.debug("state token is not base64url")
            return None
        if len(raw) <= NONCE_SIZE + TAG_SIZE:
            return None

        nonce = raw[:NONCE_SIZE]
        tag = raw[NONCE_SIZE : NONCE_SIZE + TAG_SIZE]
        ciphertext = raw[NONCE_SIZE + TAG_SIZE :]
        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, ASSOCIATED_DATA)
        except InvalidTag:
            logger.debug("state token failed authentication")
            return None

        try:
            data = json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            return None
        return _state_from_dict(data)


def _state_from_dict(data) -> Optional[AuthorizationState]:
    if not isinstance(data, dict):
        return None
    verifier = data.get("code_verifier")
    created_at = data.get("created_at")
    nonce = data.get("nonce")
    if not isinstance(verifier, str) or not verifier:
        return None
    if not isinstance(nonce, str) or not nonce:
        return None
    if isinstance(created_at, bool) or not isinstance(created_at, int):
        return None
    return AuthorizationState(code_verifier=verifier, created_at=created_at, nonce=nonce)
