"""
TikTok sign-in bridge.

Exposes the configuration (BridgeConfig), the flow orchestrator (SignInFlow),
its building blocks (PKCE, state codec, credential deriver, username
allocator, provisioner) and the FastAPI auth router factory
(create_auth_router).
"""

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
    UsernameTakenError,
)
from .flow import FlowResult, FlowState, SignInFlow
from .pkce import PKCEPair, compute_code_challenge, generate_pkce_pair
from .provisioner import AccountProvisioner
from .router import create_auth_router
from .session import current_login, require_login
from .state_codec import AuthorizationState, StateCodec
from .usernames import UsernameAllocator, normalize_username

__all__ = [
    "BridgeConfig",
    "SignInFlow",
    "FlowResult",
    "FlowState",
    "create_auth_router",
    "current_login",
    "require_login",
    "PKCEPair",
    "generate_pkce_pair",
    "compute_code_challenge",
    "AuthorizationState",
    "StateCodec",
    "Sha256CredentialDeriver",
    "UsernameAllocator",
    "normalize_username",
    "AccountProvisioner",
    "AuthBridgeError",
    "ConfigurationError",
    "StateError",
    "ProviderError",
    "ProviderDeniedError",
    "ProvisioningError",
    "SignInError",
    "StoreError",
    "UsernameTakenError",
]
