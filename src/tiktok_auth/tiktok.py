"""
TikTok Login Kit (OAuth 2.0 v2) client.

Implements ProviderProtocolClient over a caller-supplied httpx.AsyncClient so
that the HTTP timeout and transport are owned by the request handler.
Nothing here is retried: a failed call surfaces immediately and the flow
turns it into a login redirect.
"""

import logging
from typing import Optional

import httpx
from authlib.common.urls import add_params_to_uri

from .errors import ProviderError
from .models import ProviderIdentity, ProviderToken
from .pkce import CODE_CHALLENGE_METHOD

logger = logging.getLogger(__name__)

TIKTOK_AUTH_URL = "https://www.tiktok.com/v2/auth/authorize/"
TIKTOK_TOKEN_URL = "https://open.tiktokapis.com/v2/oauth/token/"
TIKTOK_USERINFO_URL = "https://open.tiktokapis.com/v2/user/info/"

USERINFO_FIELDS = "open_id,display_name,avatar_url"


def _first(*values) -> Optional[str]:
    for value in values:
        if value not in (None, ""):
            return str(value)
    return None


class TikTokClient:
    """ProviderProtocolClient for TikTok."""

    name: str = "tiktok"

    def __init__(
        self,
        client_key: str,
        client_secret: str,
        redirect_uri: str,
        http: httpx.AsyncClient,
        scope: str = "user.info.basic",
    ):
        self.client_key = client_key
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scope = scope
        self._http = http

    def build_authorize_url(self, state: str, code_challenge: str) -> str:
        return add_params_to_uri(
            TIKTOK_AUTH_URL,
            [
                ("client_key", self.client_key),
                ("response_type", "code"),
                ("scope", self.scope),
                ("redirect_uri", self.redirect_uri),
                ("state", state),
                ("code_challenge", code_challenge),
                ("code_challenge_method", CODE_CHALLENGE_METHOD),
            ],
        )

    async def exchange_code(self, code: str, code_verifier: str) -> ProviderToken:
        """
        Redeem the authorization code at the token endpoint.

        TikTok answers either with a flat token object or one wrapped in
        ``data``; errors come back with ``error``/``error_code`` and a
        ``log_id``. Only those diagnostic fields are carried on the
        ProviderError, never the response body.
        """
        form = {
            "client_key": self.client_key,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
            "code_verifier": code_verifier,
        }
        try:
            response = await self._http.post(
                TIKTOK_TOKEN_URL,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            logger.warning("TikTok token request failed: %s", type(e).__name__)
            raise ProviderError("token request failed", status=0) from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        data = body.get("data") if isinstance(body.get("data"), dict) else body

        access_token = data.get("access_token")
        open_id = _first(data.get("open_id"), data.get("openId"))
        if response.is_success and access_token and open_id:
            expires_in = data.get("expires_in")
            return ProviderToken(
                access_token=access_token,
                open_id=open_id,
                scope=data.get("scope"),
                expires_in=int(expires_in) if isinstance(expires_in, (int, float)) else None,
            )

        log_id = _first(body.get("log_id"), data.get("log_id"), body.get("logId"), data.get("logId"))
        error_code = _first(body.get("error_code"), data.get("error_code"), body.get("error"), data.get("error"))
        logger.warning(
            "TikTok token exchange failed",
            extra={
                "status": response.status_code,
                "has_access_token": bool(access_token),
                "has_open_id": bool(open_id),
                "error_code": error_code,
                "log_id": log_id,
            },
        )
        raise ProviderError(
            "token exchange rejected",
            status=response.status_code,
            error_code=error_code,
            log_id=log_id,
        )

    async def fetch_user_info(self, token: ProviderToken) -> ProviderIdentity:
        """Best effort profile lookup; any failure yields an identity without name/avatar."""
        try:
            response = await self._http.get(
                TIKTOK_USERINFO_URL,
                params={"fields": USERINFO_FIELDS},
                headers={"Authorization": f"Bearer {token.access_token}"},
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("TikTok userinfo fetch failed: %s", type(e).__name__)
            return ProviderIdentity(open_id=token.open_id)

        user = {}
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            user = payload["data"].get("user") or {}
        if not isinstance(user, dict):
            user = {}
        return ProviderIdentity(
            open_id=token.open_id,
            display_name=_first(user.get("display_name")),
            avatar_url=_first(user.get("avatar_url")),
        )
