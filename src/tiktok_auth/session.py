"""
Session helpers and FastAPI dependencies.

The callback records the signed-in account in ``request.session``
(Starlette's signed cookie session). The cookie is signed, not encrypted, so
only the account id and login flags go there; the platform access and
refresh tokens stay server-side and are never written to the cookie.

``BridgeConfig.session_max_idle_seconds`` treats the user as signed out after
that long without a request (0 = disabled).
"""

import time
from typing import Optional

from fastapi import HTTPException, Request

from .models import AccountSession

SESSION_KEY = "account"


def store_login(request: Request, session: AccountSession, *, provider: str, profile_complete: bool) -> None:
    """Remember the signed-in account for later requests."""
    now = int(time.time())
    request.session[SESSION_KEY] = {
        "account_id": session.account_id,
        "provider": provider,
        "profile_complete": profile_complete,
        "signed_in_at": now,
    }
    request.session["last_activity_at"] = now


def current_login(request: Request) -> Optional[dict]:
    return request.session.get(SESSION_KEY)


def clear_login(request: Request) -> None:
    request.session.clear()


def is_session_stale(request: Request, max_idle_seconds: int) -> bool:
    if max_idle_seconds <= 0:
        return False
    now = int(time.time())
    last_at = request.session.get("last_activity_at", now)
    return now - last_at >= max_idle_seconds


def touch_session_activity(request: Request) -> None:
    request.session["last_activity_at"] = int(time.time())


def require_login(max_idle_seconds: int = 0):
    """Dependency: a signed-in, non-idle account must be in the session. Returns the stored login."""

    async def _dep(request: Request) -> dict:
        login = current_login(request)
        if not login:
            raise HTTPException(status_code=401, detail="Not authenticated")
        if is_session_stale(request, max_idle_seconds):
            clear_login(request)
            raise HTTPException(status_code=401, detail="Session expired or inactive; please log in again")
        touch_session_activity(request)
        return login

    return _dep
