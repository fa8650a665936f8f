"""
In-memory session store for development and tests.

Why: Keep sessions opaque to the client. For production, use the Postgres-backed
`DBSessionStore` (`SESSIONS_BACKEND=db`).

Security: Cookies carry only an opaque session id. Session data (including the
provider access token) stays server-side.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence
import secrets
import time


def _now() -> int:
    return int(time.time())


@dataclass
class SessionRecord:
    session_id: str
    sub: str
    roles: list[str]
    name: str
    email: str = ""
    access_token: Optional[str] = field(default=None, repr=False)
    expires_at: Optional[int] = None
    ttl_seconds: int = 3600


class SessionStore:
    def __init__(self):
        self._data: Dict[str, SessionRecord] = {}

    def create(
        self,
        *,
        sub: str,
        roles: Sequence[str],
        name: str,
        email: str = "",
        access_token: Optional[str] = None,
        ttl_seconds: int = 3600,
    ) -> SessionRecord:
        sid = secrets.token_urlsafe(24)
        rec = SessionRecord(
            session_id=sid,
            sub=sub,
            roles=list(roles),
            name=name,
            email=email,
            access_token=access_token,
            expires_at=_now() + ttl_seconds,
            ttl_seconds=ttl_seconds,
        )
        self._data[sid] = rec
        return rec

    def get(self, session_id: str) -> Optional[SessionRecord]:
        rec = self._data.get(session_id)
        if not rec:
            return None
        if rec.expires_at and rec.expires_at < _now():
            self._data.pop(session_id, None)
            return None
        return rec

    def delete(self, session_id: str) -> None:
        self._data.pop(session_id, None)

    def delete_for_sub(self, sub: str) -> list[str]:
        """Drop every session of `sub`; returns the removed session ids."""
        sids = [sid for sid, rec in self._data.items() if rec.sub == sub]
        for sid in sids:
            self._data.pop(sid, None)
        return sids

    def clear(self) -> None:
        self._data.clear()
