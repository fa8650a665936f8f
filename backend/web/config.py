"""
Configuration and startup security checks for the Hope Institute portal.

Why: Prevent accidental insecure deployments. This module provides a single
guard that enforces minimal production safety constraints without burdening
local development, plus small typed readers for web-level settings.

Permissions: The caller needs no special privileges. The functions simply read
environment variables; the guard raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os
from typing import Tuple


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def current_env() -> str:
    return (os.getenv("HOPE_ENV", "dev") or "dev").strip().lower()


def session_ttl_seconds() -> int:
    raw = (os.getenv("SESSION_TTL_SECONDS") or "").strip()
    try:
        value = int(raw)
    except ValueError:
        return 3600
    return value if value > 0 else 3600


def site_base_url() -> str:
    return (os.getenv("SITE_BASE_URL") or "http://localhost:8000").strip().rstrip("/")


def contact_rate_limit() -> Tuple[int, int]:
    """Return `(attempts, window_seconds)` from `CONTACT_RATE_LIMIT` (default 3/300)."""
    raw = (os.getenv("CONTACT_RATE_LIMIT") or "3/300").strip()
    try:
        attempts_s, window_s = raw.split("/", 1)
        attempts, window = int(attempts_s), int(window_s)
    except ValueError:
        return 3, 300
    if attempts <= 0 or window <= 0:
        return 3, 300
    return attempts, window


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Intent: Abort process startup when obviously insecure settings are detected
    in production/staging. Development remains permissive for convenience.

    Checks:
    - Supabase service role key must be set and not a known dummy placeholder.
    - The JWT secret used to verify access tokens must be set.
    - DATABASE_URL must point at Postgres and must not disable TLS.
    - SUPABASE_URL must use https.
    """

    env = current_env()
    if not _is_prod_like(env):
        return  # dev/test remain permissive

    # 1) Supabase service role key
    srole = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "").strip()
    if not srole or srole.upper() in ("DUMMY_DO_NOT_USE", "CHANGE_ME") or srole.upper().startswith("CHANGE_ME"):
        raise SystemExit(
            "Refusing to start: SUPABASE_SERVICE_ROLE_KEY is unset or a dummy placeholder in production."
        )

    # 2) Token verification secret
    if not (os.getenv("SUPABASE_JWT_SECRET") or "").strip():
        raise SystemExit("Refusing to start: SUPABASE_JWT_SECRET is unset in production.")

    # 3) Postgres with TLS
    dsn = os.getenv("DATABASE_URL", "")
    if not dsn or dsn.strip().lower().startswith("sqlite"):
        raise SystemExit("Refusing to start: DATABASE_URL must point at Postgres in production.")
    if "sslmode=disable" in dsn:
        raise SystemExit(
            "Refusing to start: DATABASE_URL contains sslmode=disable in production. Use sslmode=require or verify TLS."
        )

    # 4) Auth endpoint must use HTTPS in production-like environments
    supabase_url = (os.getenv("SUPABASE_URL") or "").strip().lower()
    if not supabase_url or supabase_url.startswith("http://"):
        raise SystemExit("Refusing to start: SUPABASE_URL must use https in production (got http or nothing).")
