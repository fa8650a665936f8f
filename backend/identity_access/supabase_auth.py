"""
Minimal Supabase Auth (GoTrue) client for password sign-in, sign-up, password
reset and update, e-mail link verification and admin user deletion.

Design:
- Framework-agnostic, callable from web adapters and the CLI.
- Uses requests under the hood; failures are mapped to `AuthProviderError`
  with a short machine code so the web layer can render neutral messages.

Security:
- Do not log credentials or tokens.
- The service role key is only sent for admin endpoints.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
import os

# Small indirection to ease monkeypatching in tests
import requests as http


class AuthProviderError(Exception):
    def __init__(self, code: str, status: int | None = None):
        super().__init__(code)
        self.code = code
        self.status = status


@dataclass(frozen=True)
class SupabaseAuthConfig:
    base_url: str  # e.g., http://localhost:54321
    anon_key: str
    service_role_key: str = ""
    timeout: float = 10.0

    @property
    def auth_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/auth/v1"


def load_auth_config() -> SupabaseAuthConfig:
    return SupabaseAuthConfig(
        base_url=(os.getenv("SUPABASE_URL") or "http://localhost:54321").strip(),
        anon_key=(os.getenv("SUPABASE_ANON_KEY") or "").strip(),
        service_role_key=(os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip(),
    )


@dataclass(frozen=True)
class AuthSession:
    access_token: str
    user_id: str
    email: str
    full_name: Optional[str]


def _json(resp) -> Dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _full_name(user: Dict[str, Any]) -> Optional[str]:
    meta = user.get("user_metadata") or {}
    if isinstance(meta, dict):
        for key in ("full_name", "name"):
            value = meta.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


class SupabaseAuthClient:
    def __init__(self, cfg: SupabaseAuthConfig) -> None:
        self.cfg = cfg

    def _headers(self, *, admin: bool = False, bearer: Optional[str] = None) -> Dict[str, str]:
        key = self.cfg.service_role_key if admin else self.cfg.anon_key
        headers = {"apikey": key, "Content-Type": "application/json"}
        if admin:
            headers["Authorization"] = f"Bearer {key}"
        elif bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        return headers

    def _request(self, method: str, path: str, *, admin: bool = False, bearer: Optional[str] = None, **kwargs):
        url = f"{self.cfg.auth_url}{path}"
        try:
            headers = self._headers(admin=admin, bearer=bearer)
            return http.request(method, url, headers=headers, timeout=self.cfg.timeout, **kwargs)
        except http.RequestException as exc:
            raise AuthProviderError("provider_unreachable") from exc

    def sign_in_with_password(self, *, email: str, password: str) -> AuthSession:
        resp = self._request("POST", "/token", params={"grant_type": "password"}, json={"email": email, "password": password})
        body = _json(resp)
        if resp.status_code in (400, 401):
            raise AuthProviderError("invalid_credentials", resp.status_code)
        if resp.status_code != 200:
            raise AuthProviderError("provider_error", resp.status_code)
        user = body.get("user") or {}
        token = body.get("access_token")
        if not token or not isinstance(user, dict) or not user.get("id"):
            raise AuthProviderError("invalid_response", resp.status_code)
        return AuthSession(
            access_token=str(token),
            user_id=str(user["id"]),
            email=str(user.get("email") or email),
            full_name=_full_name(user),
        )

    def sign_up(self, *, email: str, password: str, full_name: str) -> Optional[AuthSession]:
        """Register a user. Returns a session when e-mail confirmation is disabled."""
        resp = self._request(
            "POST", "/signup", json={"email": email, "password": password, "data": {"full_name": full_name}}
        )
        body = _json(resp)
        if resp.status_code == 422 or resp.status_code == 400:
            code = "user_exists" if "registered" in str(body.get("msg") or body.get("error_description") or "") else "signup_rejected"
            raise AuthProviderError(code, resp.status_code)
        if resp.status_code not in (200, 201):
            raise AuthProviderError("provider_error", resp.status_code)
        token = body.get("access_token")
        user = body.get("user") if token else body
        if token and isinstance(user, dict) and user.get("id"):
            return AuthSession(
                access_token=str(token),
                user_id=str(user["id"]),
                email=str(user.get("email") or email),
                full_name=_full_name(user) or full_name,
            )
        return None

    def send_password_reset(self, *, email: str, redirect_to: Optional[str] = None) -> None:
        payload: Dict[str, Any] = {"email": email}
        params = {"redirect_to": redirect_to} if redirect_to else None
        resp = self._request("POST", "/recover", json=payload, params=params)
        if resp.status_code not in (200, 204):
            raise AuthProviderError("recover_failed", resp.status_code)

    def verify_email_link(self, *, token_hash: str, link_type: str) -> AuthSession:
        """Exchange the `token_hash` of a recovery or invite e-mail for a session."""
        resp = self._request("POST", "/verify", json={"type": link_type, "token_hash": token_hash})
        body = _json(resp)
        if resp.status_code in (400, 401, 403, 404, 422):
            raise AuthProviderError("link_invalid", resp.status_code)
        if resp.status_code != 200:
            raise AuthProviderError("provider_error", resp.status_code)
        user = body.get("user") or {}
        token = body.get("access_token")
        if not token or not isinstance(user, dict) or not user.get("id"):
            raise AuthProviderError("invalid_response", resp.status_code)
        return AuthSession(
            access_token=str(token),
            user_id=str(user["id"]),
            email=str(user.get("email") or ""),
            full_name=_full_name(user),
        )

    def update_password(self, *, access_token: str, password: str) -> None:
        """Set a new password for the user the access token belongs to."""
        resp = self._request("PUT", "/user", bearer=access_token, json={"password": password})
        if resp.status_code == 401:
            raise AuthProviderError("session_expired", resp.status_code)
        if resp.status_code == 422:
            body = _json(resp)
            code = str(body.get("error_code") or "")
            raise AuthProviderError("same_password" if code == "same_password" else "weak_password", resp.status_code)
        if resp.status_code != 200:
            raise AuthProviderError("update_failed", resp.status_code)

    def admin_delete_user(self, user_id: str) -> None:
        if not self.cfg.service_role_key:
            raise AuthProviderError("missing_service_role_key")
        resp = self._request("DELETE", f"/admin/users/{user_id}", admin=True)
        if resp.status_code == 404:
            return
        if resp.status_code not in (200, 204):
            raise AuthProviderError("admin_delete_failed", resp.status_code)
