"""
Error taxonomy for the sign-in bridge.

Every error carries a coarse ``code`` that ends up in the login redirect and
an optional set of non-sensitive diagnostic fields (HTTP status, provider
error code, provider log id). Messages are for logs only and are never sent
to the browser.
"""

from typing import Optional


class AuthBridgeError(Exception):
    """Base class for errors that end the flow with a login redirect."""

    code: str = "auth_failed"

    def __init__(self, message: str = "", **params: Optional[str]):
        super().__init__(message or self.code)
        self.params = {k: str(v) for k, v in params.items() if v not in (None, "")}

    def redirect_params(self) -> dict:
        return {"error": self.code, **self.params}


class ConfigurationError(AuthBridgeError):
    """Missing provider/store settings or a store credential without service privileges."""

    code = "config_missing"

    def __init__(self, message: str = "", code: Optional[str] = None, **params):
        super().__init__(message, **params)
        if code:
            self.code = code


class StateError(AuthBridgeError):
    """The OAuth state parameter is missing, fails decryption, or is too old."""

    code = "state_invalid"

    def __init__(self, code: str = "state_invalid", message: str = ""):
        super().__init__(message or code)
        self.code = code


class ProviderError(AuthBridgeError):
    """Token exchange was rejected or returned an unusable body."""

    code = "provider_token"

    def __init__(
        self,
        message: str = "",
        *,
        status: Optional[int] = None,
        error_code: Optional[str] = None,
        log_id: Optional[str] = None,
    ):
        super().__init__(message, status=status, code=error_code, log_id=log_id)
        self.status = status
        self.error_code = error_code
        self.log_id = log_id


class ProvisioningError(AuthBridgeError):
    """Account creation failed for a reason other than 'already exists'."""

    code = "create_user"


class SignInError(AuthBridgeError):
    """Signing in with the derived credential failed."""

    code = "signin"


class StoreError(Exception):
    """A backing store call failed. Carries the HTTP status and store error code."""

    def __init__(self, message: str, status: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.code = code


class UsernameTakenError(StoreError):
    """The profile store rejected a write because the username already exists."""


class ProviderDeniedError(AuthBridgeError):
    """The provider redirected back with an ``error`` instead of a code (e.g. the user cancelled)."""

    code = "provider_denied"
