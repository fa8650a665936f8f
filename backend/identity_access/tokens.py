"""
Access-token verification for Supabase Auth (GoTrue) sessions.

Why: The web adapter must not trust the user object GoTrue returns alongside a
token; the token itself is verified locally before a server-side session is
created. Keeping this out of the web layer makes it unit-testable.

Security: Supabase signs access tokens with the project's JWT secret (HS256).
We check signature, audience and expiry (with a small clock skew) and require
a `sub` claim.
"""
from __future__ import annotations

from typing import Dict
import time

from jose import jwt
from jose.exceptions import JOSEError


class TokenVerificationError(Exception):
    """Raised when the access token fails verification."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


MAX_CLOCK_SKEW_SECONDS = 5  # Allow minimal skew between servers
EXPECTED_AUDIENCE = "authenticated"


def verify_access_token(token: str, secret: str, *, audience: str = EXPECTED_AUDIENCE) -> Dict[str, object]:
    """Validate a GoTrue access token and return its claims.

    Raises
    ------
    TokenVerificationError:
        `missing_secret`, `invalid_token` (signature, audience, format) or
        `expired_token`.
    """
    if not secret:
        raise TokenVerificationError("missing_secret")
    if not token:
        raise TokenVerificationError("invalid_token")
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=audience,
            options={
                "verify_signature": True,
                "verify_aud": True,
                "verify_exp": False,
                "verify_iat": False,
                "verify_nbf": False,
            },
        )
    except JOSEError as exc:
        raise TokenVerificationError("invalid_token") from exc

    _validate_temporal_claims(claims)
    if not isinstance(claims.get("sub"), str) or not claims.get("sub"):
        raise TokenVerificationError("invalid_token")
    return claims


def _validate_temporal_claims(claims: Dict[str, object]) -> None:
    now = time.time()
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        raise TokenVerificationError("invalid_token")
    if exp + MAX_CLOCK_SKEW_SECONDS < now:
        raise TokenVerificationError("expired_token")

    iat = claims.get("iat")
    if isinstance(iat, (int, float)) and iat - MAX_CLOCK_SKEW_SECONDS > now:
        raise TokenVerificationError("invalid_token")

    nbf = claims.get("nbf")
    if isinstance(nbf, (int, float)) and nbf - MAX_CLOCK_SKEW_SECONDS > now:
        raise TokenVerificationError("invalid_token")
