"""
FastAPI app: TikTok sign-in bridge into the platform's Supabase accounts.

Decisions:
- .env is loaded before building BridgeConfig so TIKTOK_*, SUPABASE_* and
  APP_BASE_URL are visible to pydantic-settings.
- The config is validated per request by the flow, not at startup: a missing
  secret sends users to /login?error=config_missing instead of crashing the app.
- Session secret from SESSION_SECRET env; default "change-me" is for dev only.
"""

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from starlette.middleware.sessions import SessionMiddleware

load_dotenv()

from tiktok_auth import BridgeConfig, create_auth_router, current_login  # noqa: E402
from tiktok_auth.logging_utils import configure_logging  # noqa: E402

config = BridgeConfig()
configure_logging(config.log_level)

app = FastAPI()
app.add_middleware(SessionMiddleware, secret_key=config.session_secret, https_only=config.app_base_url.startswith("https"))
app.include_router(create_auth_router(config))


@app.get("/")
async def home(request: Request):
    login = current_login(request)
    return {"logged_in": bool(login), "account_id": login["account_id"] if login else None}
