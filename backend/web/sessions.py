"""
Session and CSRF state shared by the app, the routers and the SSR pages.

Why:
    Routers must not import `backend.web.main` (circular at import time). The
    settings object, the session store and the session-bound CSRF tokens live
    here; `main` re-exports them for tests and tooling.

Behavior:
    - `SESSION_STORE` is the in-memory store unless `SESSIONS_BACKEND=db` is
      set outside pytest, in which case sessions persist in Postgres.
    - CSRF tokens for server-rendered forms are bound to the opaque session id.
"""
from __future__ import annotations

from typing import Any, Dict, Optional
import hmac
import logging
import os
import secrets
import sys

from fastapi import Request, Response

from backend.identity_access.stores import SessionStore

from .auth_utils import SESSION_COOKIE_NAME, cookie_opts


logger = logging.getLogger("hope.identity_access")


class AuthSettings:
    def __init__(self) -> None:
        self._env_override: str | None = None

    @property
    def environment(self) -> str:
        if self._env_override is not None:
            return self._env_override
        return os.getenv("HOPE_ENV", "dev").lower()

    def override_environment(self, env: str | None) -> None:
        """Override environment for tests (e.g., "prod"), or reset with None."""
        self._env_override = env


SETTINGS = AuthSettings()


def _under_pytest() -> bool:
    return "pytest" in sys.modules or bool(os.getenv("PYTEST_CURRENT_TEST"))


def _build_session_store():
    if (not _under_pytest()) and os.getenv("SESSIONS_BACKEND", "memory").lower() == "db":
        from backend.identity_access.stores_db import DBSessionStore

        return DBSessionStore()
    return SessionStore()


SESSION_STORE = _build_session_store()


def get_session_id(request: Request) -> Optional[str]:
    return request.cookies.get(SESSION_COOKIE_NAME)


def current_user(request: Request) -> Optional[Dict[str, Any]]:
    return getattr(request.state, "user", None)


def set_session_cookie(response: Response, value: str, *, max_age: int | None = None) -> None:
    opts = cookie_opts(SETTINGS.environment)
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=value,
        httponly=True,
        secure=opts["secure"],
        samesite=opts["samesite"],
        path="/",
        max_age=max_age,
    )


def clear_session_cookie(response: Response) -> None:
    opts = cookie_opts(SETTINGS.environment)
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        path="/",
        secure=opts["secure"],
        httponly=True,
        samesite=opts["samesite"],
    )


# --- CSRF tokens for server-rendered forms -------------------------------------

_CSRF_BY_SESSION: dict[str, str] = {}


def get_or_create_csrf_token(session_id: str) -> str:
    token = _CSRF_BY_SESSION.get(session_id)
    if not token:
        token = secrets.token_urlsafe(24)
        _CSRF_BY_SESSION[session_id] = token
    return token


def validate_csrf(session_id: Optional[str], form_value: Optional[str]) -> bool:
    if not session_id or not form_value:
        return False
    expected = _CSRF_BY_SESSION.get(session_id)
    if not expected:
        return False
    return hmac.compare_digest(expected, str(form_value))


def forget_csrf(session_id: Optional[str]) -> None:
    if session_id:
        _CSRF_BY_SESSION.pop(session_id, None)


def revoke_sessions_for(sub: str) -> int:
    """End every session of `sub` (soft delete, role change); returns the count."""
    if not sub:
        return 0
    sids = SESSION_STORE.delete_for_sub(sub)
    for sid in sids:
        forget_csrf(sid)
    logger.info("sessions revoked sub=%s count=%s", sub, len(sids))
    return len(sids)
