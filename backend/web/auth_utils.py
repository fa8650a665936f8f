"""
Shared authentication utilities.

Why:
    Avoid duplicating environment-dependent cookie policy logic across modules
    (main app, auth router, tests). Keeping a single helper improves consistency.

Design:
    The helpers are framework-agnostic and pure: they accept plain values and
    return the corresponding cookie flags or user context.
"""

from __future__ import annotations

from typing import Any, Dict

from backend.identity_access.domain import primary_role


SESSION_COOKIE_NAME = "hope_session"


def cookie_opts(environment: str) -> dict:
    """Return hardened cookie flags (dev = prod).

    Returns a mapping with keys:
      - secure: True
      - samesite: "lax"  # cookie is sent on top-level navigations after sign-in redirects
    """
    return {"secure": True, "samesite": "lax"}


def user_context(rec: Any) -> Dict[str, Any]:
    """Minimal, read-only user context exposed on `request.state.user`."""
    roles = list(getattr(rec, "roles", []) or [])
    return {
        "sub": rec.sub,
        "name": getattr(rec, "name", "") or "",
        "email": getattr(rec, "email", "") or "",
        "role": primary_role(roles),
        "roles": roles,
    }
