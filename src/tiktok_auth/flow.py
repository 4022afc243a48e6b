"""
Sign-in flow orchestrator.

One GET endpoint, two phases:

- Phase A (no ``code``): make a PKCE pair, seal the verifier into the
  ``state`` parameter and send the browser to TikTok's consent screen.
- Phase B (``code`` + ``state``): open the state, redeem the code, fetch the
  profile, derive the account credential, pick a username, provision the
  account and send the browser to onboarding or the main app.

Every failure ends as a redirect to the login page with a coarse error code.
No state is kept between the two requests other than what travels inside
the sealed ``state`` token.
"""

import enum
import logging
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from .config import BridgeConfig
from .credentials import Sha256CredentialDeriver
from .errors import (
    AuthBridgeError,
    ConfigurationError,
    ProviderDeniedError,
    ProviderError,
    ProvisioningError,
    SignInError,
    StateError,
    StoreError,
)
from .logging_utils import log_event
from .models import AccountSession
from .pkce import generate_pkce_pair
from .protocol import AccountStore, CredentialDeriver, ProfileStore, ProviderProtocolClient
from .provisioner import AccountProvisioner
from .state_codec import StateCodec, new_state
from .supabase import service_key_kind
from .usernames import UsernameAllocator

logger = logging.getLogger(__name__)


class FlowState(str, enum.Enum):
    START = "start"
    AWAITING_CALLBACK = "awaiting_callback"
    CONFIG_MISSING = "config_missing"
    PROVIDER_DENIED = "provider_denied"
    MISSING_STATE = "missing_state"
    INVALID_STATE = "invalid_state"
    EXPIRED_STATE = "expired_state"
    PROVIDER_EXCHANGE_FAILED = "provider_exchange_failed"
    PROVISIONING_FAILED = "provisioning_failed"
    SIGN_IN_FAILED = "sign_in_failed"
    PROVISIONED = "provisioned"


_STATE_ERRORS = {
    "state_missing": FlowState.MISSING_STATE,
    "state_invalid": FlowState.INVALID_STATE,
    "state_expired": FlowState.EXPIRED_STATE,
}


@dataclass(frozen=True)
class FlowResult:
    """Where to send the browser, and the session when the login succeeded."""

    state: FlowState
    location: str
    session: Optional[AccountSession] = None
    profile_complete: bool = False
    created: bool = False


class SignInFlow:
    """Runs one request of the TikTok sign-in flow against injected collaborators."""

    def __init__(
        self,
        config: BridgeConfig,
        provider: ProviderProtocolClient,
        accounts: AccountStore,
        profiles: ProfileStore,
        *,
        credentials: Optional[CredentialDeriver] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.provider = provider
        self.accounts = accounts
        self.profiles = profiles
        self.clock = clock
        self._credentials = credentials
        self._codec: Optional[StateCodec] = None

    # Built lazily: both need the client secret, which may be missing
    @property
    def codec(self) -> StateCodec:
        if self._codec is None:
            self._codec = StateCodec(self.config.client_secret)
        return self._codec

    @property
    def credentials(self) -> CredentialDeriver:
        if self._credentials is None:
            self._credentials = Sha256CredentialDeriver(self.config.client_secret, provider=self.provider.name)
        return self._credentials

    async def handle(self, params: Mapping[str, str]) -> FlowResult:
        """Dispatch on the query parameters of an incoming request."""
        code = params.get("code")
        try:
            self.check_config()
            if not code and params.get("error"):
                return self._provider_denied(params.get("error"))
            if not code:
                return self.start()
            return await self.complete(code, params.get("state"))
        except ConfigurationError as e:
            return self._fail(FlowState.CONFIG_MISSING, e)

    def check_config(self) -> None:
        """Raise ConfigurationError before any network call when settings are unusable."""
        missing = self.config.missing_provider_fields()
        if missing:
            logger.error("provider configuration missing", extra={"missing": missing})
            raise ConfigurationError("provider configuration missing")

        missing = self.config.missing_store_fields()
        if missing:
            logger.error("store configuration missing", extra={"missing": missing})
            raise ConfigurationError("store configuration missing", code="store_config_missing")

        kind, role, is_service_key = service_key_kind(self.config.supabase_service_key)
        if not is_service_key:
            logger.error("store key is not a service key", extra={"kind": kind, "role": role})
            raise ConfigurationError("store key lacks service privileges", code="store_key_invalid", kind=kind, role=role)

    def start(self) -> FlowResult:
        pkce = generate_pkce_pair()
        token = self.codec.encode(new_state(pkce.verifier, self.clock()))
        location = self.provider.build_authorize_url(state=token, code_challenge=pkce.challenge)
        log_event("oauth_start", outcome="redirect", provider=self.provider.name)
        return FlowResult(FlowState.AWAITING_CALLBACK, location)

    async def complete(self, code: str, state: Optional[str]) -> FlowResult:
        try:
            verifier = self._open_state(state)
        except StateError as e:
            return self._fail(_STATE_ERRORS.get(e.code, FlowState.INVALID_STATE), e)

        try:
            token = await self.provider.exchange_code(code, verifier)
        except ProviderError as e:
            return self._fail(FlowState.PROVIDER_EXCHANGE_FAILED, e)

        identity = await self.provider.fetch_user_info(token)
        credential = self.credentials.derive(token.open_id)

        allocator = UsernameAllocator(self.profiles)
        provisioner = AccountProvisioner(self.accounts, self.profiles, allocator, provider=self.provider.name)
        try:
            preferred = await allocator.allocate(identity.display_name, identity.open_id)
            result = await provisioner.provision(credential, identity, preferred)
        except SignInError as e:
            return self._fail(FlowState.SIGN_IN_FAILED, e)
        except ProvisioningError as e:
            return self._fail(FlowState.PROVISIONING_FAILED, e)
        except StoreError as e:
            return self._fail(FlowState.PROVISIONING_FAILED, ProvisioningError(str(e), status=e.status, code=e.code))

        path = self.config.home_path if result.profile_complete else self.config.onboarding_path
        log_event(
            "oauth_callback",
            outcome="success",
            provider=self.provider.name,
            account_id=result.account_id,
            created=result.created,
            profile_complete=result.profile_complete,
        )
        return FlowResult(
            FlowState.PROVISIONED,
            self.config.app_url(path),
            session=result.session,
            profile_complete=result.profile_complete,
            created=result.created,
        )

    def _open_state(self, state: Optional[str]) -> str:
        if not state:
            raise StateError("state_missing")
        payload = self.codec.decode(state)
        if payload is None:
            raise StateError("state_invalid")
        if payload.is_expired(self.clock(), self.config.state_max_age_seconds):
            raise StateError("state_expired")
        return payload.code_verifier

    def _provider_denied(self, reason: str) -> FlowResult:
        error = ProviderDeniedError("provider returned an error", reason=reason[:64])
        return self._fail(FlowState.PROVIDER_DENIED, error)

    def _fail(self, state: FlowState, error: AuthBridgeError) -> FlowResult:
        params = error.redirect_params()
        log_event(
            "oauth_callback" if state != FlowState.CONFIG_MISSING else "oauth_config",
            outcome="failure",
            reason=params["error"],
            state=state.value,
            provider_reason=params.get("reason"),
            **{k: v for k, v in params.items() if k not in ("error", "reason")},
        )
        return FlowResult(state, self.config.app_url(self.config.login_path, **params))
