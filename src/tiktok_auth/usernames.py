"""
Username normalization and allocation.

Display names become handles matching ``[a-z0-9_]{1,50}``. Allocation probes
the profile store and falls back to random suffixes on collision. The probe
is check-then-insert and therefore racy; the profile store's unique index is
what actually guarantees uniqueness (see AccountProvisioner).
"""

import hashlib
import logging
import re
import secrets
import unicodedata
from typing import Optional

from .protocol import ProfileStore

logger = logging.getLogger(__name__)

MAX_LENGTH = 50
SUFFIX_DIGITS = 4
DEFAULT_ATTEMPTS = 10

_INVALID_RUN = re.compile(r"[^a-z0-9_]+")
_REPEATED_UNDERSCORE = re.compile(r"_{2,}")


def normalize_username(raw: Optional[str]) -> str:
    """
    Turn arbitrary text into a handle, or "" when nothing usable is left.

    >>> normalize_username("O'Brien 123!!")
    'o_brien_123'
    """
    if not raw:
        return ""
    text = unicodedata.normalize("NFKD", raw)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = text.lower().strip()
    text = _INVALID_RUN.sub("_", text)
    text = _REPEATED_UNDERSCORE.sub("_", text)
    text = text.strip("_")
    return text[:MAX_LENGTH].rstrip("_")


def fallback_username(open_id: str) -> str:
    """Stable handle derived from the provider id, used when the display name has no usable characters."""
    return "tiktok_" + hashlib.sha256(open_id.encode("utf-8")).hexdigest()[:10]


def with_random_suffix(base: str) -> str:
    suffix = "".join(secrets.choice("0123456789") for _ in range(SUFFIX_DIGITS))
    head = base[: MAX_LENGTH - SUFFIX_DIGITS - 1].rstrip("_")
    return f"{head}_{suffix}"


def random_username() -> str:
    return "user_" + secrets.token_hex(4)


class UsernameAllocator:
    """Pick a free username for a candidate display name."""

    def __init__(self, profiles: ProfileStore, attempts: int = DEFAULT_ATTEMPTS):
        self.profiles = profiles
        self.attempts = attempts

    def base_for(self, candidate: Optional[str], open_id: str) -> str:
        return normalize_username(candidate) or fallback_username(open_id)

    async def allocate(self, candidate: Optional[str], open_id: str, *, skip_base: bool = False) -> str:
        """
        Return the normalized base if it is free, else a suffixed variant.

        ``skip_base`` goes straight to suffixed variants; the provisioner uses
        it after the store rejected the base name.
        """
        base = self.base_for(candidate, open_id)
        if not skip_base and not await self.profiles.exists_by_username(base):
            return base

        for _ in range(self.attempts):
            name = with_random_suffix(base)
            if not await self.profiles.exists_by_username(name):
                return name

        name = random_username()
        logger.info("username suffixes exhausted, using random handle", extra={"base": base})
        return name
