"""
Identity domain constants and simple helpers.

Why:
- Centralize allowed roles to avoid drift between tools and web layer.
- Roles mirror the Postgres roles the row-level-security policies check.
"""

from __future__ import annotations

from typing import Iterable

ROLE_AUTHENTICATED = "authenticated"
ROLE_SERVICE = "service_role"

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({ROLE_AUTHENTICATED, ROLE_SERVICE})


def primary_role(roles: Iterable[str]) -> str:
    """Return the most privileged known role; unknown roles are ignored."""
    values = set(roles or ())
    if ROLE_SERVICE in values:
        return ROLE_SERVICE
    return ROLE_AUTHENTICATED


def is_admin(roles: Iterable[str]) -> bool:
    return ROLE_SERVICE in set(roles or ())


__all__ = ["ALLOWED_ROLES", "ROLE_AUTHENTICATED", "ROLE_SERVICE", "primary_role", "is_admin"]
