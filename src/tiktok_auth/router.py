"""
FastAPI auth router: TikTok sign-in, /me, logout.

Both the start URL and the provider callback URL are served by the same
handler; which phase runs depends on the presence of ``code``. Each request
gets its own httpx client, bounded by ``http_timeout_seconds``.
"""

from typing import Callable, Optional, Tuple

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from .config import BridgeConfig
from .flow import FlowState, SignInFlow
from .protocol import AccountStore, ProfileStore, ProviderProtocolClient
from .session import clear_login, require_login, store_login
from .supabase import SupabaseAccountStore, SupabaseProfileStore
from .tiktok import TikTokClient

ProviderFactory = Callable[[BridgeConfig, httpx.AsyncClient], ProviderProtocolClient]
StoreFactory = Callable[[BridgeConfig, httpx.AsyncClient], Tuple[AccountStore, ProfileStore]]


def tiktok_provider(config: BridgeConfig, http: httpx.AsyncClient) -> ProviderProtocolClient:
    return TikTokClient(config.client_key, config.client_secret, config.redirect_uri, http, scope=config.scope)


def supabase_stores(config: BridgeConfig, http: httpx.AsyncClient) -> Tuple[AccountStore, ProfileStore]:
    accounts = SupabaseAccountStore(config.supabase_url, config.supabase_service_key, http)
    profiles = SupabaseProfileStore(config.supabase_url, config.supabase_service_key, http, table=config.profiles_table)
    return accounts, profiles


def create_auth_router(
    config: BridgeConfig,
    *,
    provider_factory: Optional[ProviderFactory] = None,
    store_factory: Optional[StoreFactory] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> APIRouter:
    """Create an APIRouter with the TikTok sign-in endpoints, /me and /logout."""
    provider_factory = provider_factory or tiktok_provider
    store_factory = store_factory or supabase_stores
    router = APIRouter()

    @router.get("/api/auth/tiktok")
    @router.get("/api/auth/tiktok/callback", name="tiktok_callback")
    async def tiktok_sign_in(request: Request):
        """Start the TikTok login, or finish it when TikTok redirects back with a code."""
        async with httpx.AsyncClient(timeout=config.http_timeout_seconds, transport=transport) as http:
            provider = provider_factory(config, http)
            accounts, profiles = store_factory(config, http)
            flow = SignInFlow(config, provider, accounts, profiles)
            result = await flow.handle(request.query_params)

        if result.state == FlowState.PROVISIONED and result.session is not None:
            store_login(
                request,
                result.session,
                provider=provider.name,
                profile_complete=result.profile_complete,
            )
        return RedirectResponse(url=result.location, status_code=302)

    @router.get("/me")
    async def me(login: dict = Depends(require_login(config.session_max_idle_seconds))):
        """Return the signed-in account (without tokens)."""
        return {
            "account_id": login["account_id"],
            "provider": login.get("provider"),
            "profile_complete": login.get("profile_complete", False),
            "signed_in_at": login.get("signed_in_at"),
        }

    @router.get("/logout")
    async def logout(request: Request):
        """Clear session and redirect to the login page."""
        clear_login(request)
        return RedirectResponse(url=config.app_url(config.login_path), status_code=302)

    return router
