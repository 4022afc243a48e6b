"""
Bridge configuration.

Settings are read from the environment (and from ``.env`` when main.py loads
it) into a BridgeConfig that is handed to the router at construction time.
Required fields default to empty strings so a half-configured deployment still
boots; the flow checks ``missing_provider_fields()`` and
``missing_store_fields()`` before making any network call and redirects to
the login page with ``config_missing`` / ``store_config_missing``.
"""

from typing import List
from urllib.parse import urlencode

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BridgeConfig(BaseSettings):
    """Settings for the TikTok sign-in bridge."""

    # Provider (TikTok Login Kit v2)
    client_key: str = Field(default="", validation_alias=AliasChoices("TIKTOK_CLIENT_KEY", "client_key"))
    client_secret: str = Field(
        default="",
        repr=False,
        validation_alias=AliasChoices("TIKTOK_CLIENT_SECRET", "client_secret"),
    )
    redirect_uri: str = Field(default="", validation_alias=AliasChoices("TIKTOK_REDIRECT_URI", "redirect_uri"))
    scope: str = Field(default="user.info.basic", validation_alias=AliasChoices("TIKTOK_SCOPE", "scope"))

    # Application
    app_base_url: str = Field(default="", validation_alias=AliasChoices("APP_BASE_URL", "app_base_url"))
    login_path: str = "/login"
    onboarding_path: str = "/onboarding"
    home_path: str = "/feed"
    session_secret: str = Field(
        default="change-me",
        repr=False,
        validation_alias=AliasChoices("SESSION_SECRET", "session_secret"),
    )
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL", "log_level"))
    session_max_idle_seconds: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("SESSION_MAX_IDLE_SECONDS", "session_max_idle_seconds"),
    )

    # Identity + profile store (Supabase). The key must be a service-role key.
    supabase_url: str = Field(
        default="",
        validation_alias=AliasChoices("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL", "supabase_url"),
    )
    supabase_service_key: str = Field(
        default="",
        repr=False,
        validation_alias=AliasChoices("SUPABASE_SECRET_KEY", "SUPABASE_SERVICE_ROLE_KEY", "supabase_service_key"),
    )
    profiles_table: str = "profiles"

    # Limits
    state_max_age_seconds: int = Field(
        default=300,
        validation_alias=AliasChoices("TIKTOK_STATE_MAX_AGE_SECONDS", "state_max_age_seconds"),
    )
    http_timeout_seconds: float = Field(
        default=10.0,
        validation_alias=AliasChoices("TIKTOK_HTTP_TIMEOUT_SECONDS", "http_timeout_seconds"),
    )

    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore", populate_by_name=True)

    @field_validator("app_base_url", "supabase_url", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, value):
        if isinstance(value, str):
            return value.strip().rstrip("/")
        return value

    @field_validator("client_key", "client_secret", "redirect_uri", "supabase_service_key", mode="before")
    @classmethod
    def _strip(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

    def missing_provider_fields(self) -> List[str]:
        """Names of required provider/application settings that are empty."""
        required = {
            "client_key": self.client_key,
            "client_secret": self.client_secret,
            "redirect_uri": self.redirect_uri,
            "app_base_url": self.app_base_url,
        }
        return [name for name, value in required.items() if not value]

    def missing_store_fields(self) -> List[str]:
        required = {
            "supabase_url": self.supabase_url,
            "supabase_service_key": self.supabase_service_key,
        }
        return [name for name, value in required.items() if not value]

    def app_url(self, path: str, **params) -> str:
        """Absolute URL on the application, with empty query parameters dropped."""
        query = {k: v for k, v in params.items() if v not in (None, "")}
        url = f"{self.app_base_url}{path}"
        return f"{url}?{urlencode(query)}" if query else url
