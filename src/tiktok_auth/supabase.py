"""
Supabase-backed account and profile stores.

Accounts go through the GoTrue admin API, profiles through PostgREST. Both
require the project's service-role key; ``service_key_kind`` tells a
service key apart from a publishable/anon key without a network call so a
misconfigured deployment fails before touching the provider.
"""

import logging
from typing import Optional, Tuple

import httpx
from authlib.common.encoding import json_loads, urlsafe_b64decode

from .errors import StoreError, UsernameTakenError
from .models import AccountSession, Profile

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = "id,username,profile_image_url,date_of_birth,age,email"
ALREADY_EXISTS_CODES = {"email_exists", "user_already_exists"}
UNIQUE_VIOLATION = "23505"


def service_key_kind(key: str) -> Tuple[str, Optional[str], bool]:
    """
    Classify a Supabase key as (kind, role, is_service_key).

    New-style keys carry their kind in a prefix; legacy keys are JWTs whose
    unverified ``role`` claim says whether they are service-role keys.
    """
    if key.startswith("sb_secret_"):
        return "secret", None, True
    if key.startswith("sb_publishable_"):
        return "publishable", None, False

    parts = key.split(".")
    if len(parts) == 3:
        try:
            claims = json_loads(urlsafe_b64decode(parts[1].encode("ascii")))
        except (ValueError, UnicodeError):
            return "jwt", None, False
        role = claims.get("role") if isinstance(claims, dict) else None
        return "jwt", role, role == "service_role"
    return "unknown", None, False


def _error_code(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    code = body.get("error_code") or body.get("code") or body.get("error")
    return str(code) if code is not None else None


class _SupabaseBase:
    def __init__(self, base_url: str, service_key: str, http: httpx.AsyncClient):
        self.base_url = base_url.rstrip("/")
        self._service_key = service_key
        self._http = http

    @property
    def _headers(self) -> dict:
        return {
            "apikey": self._service_key,
            "Authorization": f"Bearer {self._service_key}",
        }

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = {**self._headers, **kwargs.pop("headers", {})}
        try:
            return await self._http.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {path} failed: {type(e).__name__}", status=0) from e

    @staticmethod
    def _body(response: httpx.Response, action: str, expected: type):
        """Parsed JSON body of a successful response, or StoreError when it is not of the expected shape."""
        try:
            body = response.json()
        except ValueError as e:
            raise StoreError(f"{action} returned a malformed response", status=response.status_code) from e
        if not isinstance(body, expected):
            raise StoreError(f"{action} returned a malformed response", status=response.status_code)
        return body


class SupabaseAccountStore(_SupabaseBase):
    """AccountStore over the GoTrue admin and token endpoints."""

    async def create(self, email: str, secret: str, metadata: dict) -> Optional[str]:
        response = await self._request(
            "POST",
            "/auth/v1/admin/users",
            json={
                "email": email,
                "password": secret,
                "email_confirm": True,
                "user_metadata": metadata,
            },
        )
        if response.is_success:
            created_id = self._body(response, "create user", dict).get("id")
            if not isinstance(created_id, str) or not created_id:
                raise StoreError("create user response has no id", status=response.status_code)
            return created_id

        code = _error_code(response)
        if response.status_code == 422 or code in ALREADY_EXISTS_CODES:
            return None
        raise StoreError("create user failed", status=response.status_code, code=code)

    async def sign_in(self, email: str, secret: str) -> AccountSession:
        response = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": secret},
        )
        if not response.is_success:
            raise StoreError("password sign-in failed", status=response.status_code, code=_error_code(response))

        body = self._body(response, "password sign-in", dict)
        user = body.get("user") or {}
        if not isinstance(user, dict) or not body.get("access_token") or not user.get("id"):
            raise StoreError("sign-in response has no session", status=response.status_code)
        return AccountSession(
            account_id=user["id"],
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            expires_in=body.get("expires_in"),
            metadata=user.get("user_metadata") if isinstance(user.get("user_metadata"), dict) else {},
        )

    async def update_metadata(self, account_id: str, metadata: dict) -> None:
        response = await self._request(
            "PUT",
            f"/auth/v1/admin/users/{account_id}",
            json={"user_metadata": metadata},
        )
        if not response.is_success:
            raise StoreError("metadata update failed", status=response.status_code, code=_error_code(response))


class SupabaseProfileStore(_SupabaseBase):
    """ProfileStore over PostgREST. ``username`` must carry a unique index."""

    def __init__(self, base_url: str, service_key: str, http: httpx.AsyncClient, table: str = "profiles"):
        super().__init__(base_url, service_key, http)
        self.table = table

    @property
    def _path(self) -> str:
        return f"/rest/v1/{self.table}"

    def _raise_for_write(self, response: httpx.Response, action: str) -> None:
        if response.is_success:
            return
        code = _error_code(response)
        if response.status_code == 409 or code == UNIQUE_VIOLATION:
            raise UsernameTakenError(f"profile {action} conflicts", status=response.status_code, code=code)
        raise StoreError(f"profile {action} failed", status=response.status_code, code=code)

    async def get(self, account_id: str) -> Optional[Profile]:
        response = await self._request(
            "GET",
            self._path,
            params={"id": f"eq.{account_id}", "select": PROFILE_COLUMNS, "limit": "1"},
        )
        if not response.is_success:
            raise StoreError("profile lookup failed", status=response.status_code, code=_error_code(response))
        rows = self._body(response, "profile lookup", list)
        if not rows:
            return None
        row = rows[0]
        if not isinstance(row, dict) or not row.get("id"):
            raise StoreError("profile lookup returned a malformed row", status=response.status_code)
        return Profile(
            account_id=row["id"],
            username=row.get("username"),
            avatar_url=row.get("profile_image_url"),
            date_of_birth=row.get("date_of_birth"),
            age=row.get("age"),
            email=row.get("email"),
        )

    async def insert(self, profile: Profile) -> None:
        response = await self._request(
            "POST",
            self._path,
            headers={"Prefer": "return=minimal"},
            json={
                "id": profile.account_id,
                "email": profile.email,
                "username": profile.username,
                "profile_image_url": profile.avatar_url,
            },
        )
        self._raise_for_write(response, "insert")

    async def update(self, account_id: str, fields: dict) -> None:
        columns = {"avatar_url": "profile_image_url"}
        body = {columns.get(k, k): v for k, v in fields.items()}
        response = await self._request(
            "PATCH",
            self._path,
            params={"id": f"eq.{account_id}"},
            headers={"Prefer": "return=minimal"},
            json=body,
        )
        self._raise_for_write(response, "update")

    async def exists_by_username(self, username: str) -> bool:
        response = await self._request(
            "GET",
            self._path,
            params={"username": f"eq.{username}", "select": "id", "limit": "1"},
        )
        if not response.is_success:
            raise StoreError("username lookup failed", status=response.status_code, code=_error_code(response))
        return bool(self._body(response, "username lookup", list))
