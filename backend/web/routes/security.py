"""
Shared web security helpers (FastAPI-agnostic utilities for routes).

Contains the same-origin check used by every write endpoint, the client
address resolution and the rate limiter for public forms (built on `limits`,
the storage and strategy library behind slowapi).
Keeping a single implementation avoids security drift between routers.
"""
from __future__ import annotations

from typing import Tuple
from urllib.parse import urlparse
import logging
import math
import os
import time

from fastapi import Request
from fastapi.responses import JSONResponse
from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter


logger = logging.getLogger("hope.web")


def _trust_proxy() -> bool:
    return (os.getenv("HOPE_TRUST_PROXY", "false") or "").lower() == "true"


def _parse_origin(url: str) -> tuple[str, str, int]:
    p = urlparse(url)
    if not p.scheme or not p.hostname:
        raise ValueError("invalid_origin")
    scheme = p.scheme.lower()
    host = p.hostname.lower()
    port = p.port if p.port is not None else (443 if scheme == "https" else 80)
    return scheme, host, int(port)


def _parse_server(request: Request) -> tuple[str, str, int]:
    if _trust_proxy():
        xf_proto = (request.headers.get("x-forwarded-proto") or request.url.scheme or "").split(",")[0].strip()
        xf_host = (request.headers.get("x-forwarded-host") or request.headers.get("host") or "").split(",")[0].strip()
        scheme = (xf_proto or request.url.scheme or "http").lower()
        if ":" in xf_host:
            host_only, port_str = xf_host.rsplit(":", 1)
            try:
                port = int(port_str)
            except ValueError:
                port = 443 if scheme == "https" else 80
            host = host_only.lower()
        else:
            host = (xf_host or (request.url.hostname or "")).lower()
            port = int(request.url.port) if request.url.port else (443 if scheme == "https" else 80)
        xf_port_raw = request.headers.get("x-forwarded-port") or ""
        if xf_port_raw:
            try:
                port = int(xf_port_raw.split(",")[0].strip())
            except ValueError:
                port = 443 if scheme == "https" else 80
        return scheme, host, port

    scheme = (request.url.scheme or "http").lower()
    host = (request.url.hostname or "").lower()
    port = int(request.url.port) if request.url.port else (443 if scheme == "https" else 80)
    return scheme, host, port


def _is_same_origin(request: Request) -> bool:
    """Verify same-origin using Origin or Referer headers.

    Behavior:
    - If Origin is present, require exact scheme/host/port match with server.
    - Else if Referer is present, validate its origin similarly.
    - Else (no headers): allow to not break non-browser clients.
    Proxy awareness: Only trust X-Forwarded-* when HOPE_TRUST_PROXY=true.
    """
    try:
        server = _parse_server(request)
        origin_val = request.headers.get("origin")
        if origin_val:
            return _parse_origin(origin_val) == server
        referer_val = request.headers.get("referer")
        if referer_val:
            return _parse_origin(referer_val) == server
        return True
    except ValueError:
        return False


def csrf_guard(request: Request) -> JSONResponse | None:
    """Enforce same-origin for browser write requests.

    Behavior:
        - In production, require that either Origin or Referer is present AND
          same-origin. Missing or foreign headers result in 403 `CSRF_FAILED`.
        - Elsewhere, fall back to best-effort `_is_same_origin`, which permits
          requests without these headers (server-to-server calls, tests).
    """
    strict = (os.getenv("HOPE_ENV", "dev") or "").lower() in ("prod", "production")
    allowed = _is_same_origin(request)
    if strict and not (request.headers.get("origin") or request.headers.get("referer")):
        allowed = False
    if allowed:
        return None
    logger.warning("Rejected cross-origin write path=%s", request.url.path)
    return JSONResponse(
        {"success": False, "error": "Cross-origin request rejected", "code": "CSRF_FAILED"},
        status_code=403,
        headers={"Cache-Control": "private, no-store", "Vary": "Origin"},
    )


def client_ip(request: Request) -> str:
    """Best-effort client address; X-Forwarded-For is honoured behind a trusted proxy."""
    if _trust_proxy():
        forwarded = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
        if forwarded:
            return forwarded
    return request.client.host if request.client else "unknown"


class RateLimiter:
    """Moving-window limiter keyed by an arbitrary string (e.g., client address).

    Counters live in a process-local `limits` memory storage, which drops a
    key once its window has passed. The limit protects a single public form
    and does not need to be shared across instances.
    """

    def __init__(self, attempts: int, window_seconds: int) -> None:
        self.attempts = attempts
        self.window_seconds = window_seconds
        self.item = RateLimitItemPerSecond(attempts, window_seconds)
        self._storage = MemoryStorage()
        self._limiter = MovingWindowRateLimiter(self._storage)

    def hit(self, key: str) -> Tuple[bool, int]:
        """Record an attempt; returns `(allowed, retry_after_seconds)`."""
        if self._limiter.hit(self.item, key):
            return True, 0
        reset_at = self._limiter.get_window_stats(self.item, key).reset_time
        retry_after = max(1, math.ceil(reset_at - time.time()))
        logger.info("Rate limit exceeded key=%s retry_after=%s", key, retry_after)
        return False, retry_after

    def remaining(self, key: str) -> int:
        return self._limiter.get_window_stats(self.item, key).remaining

    def reset(self) -> None:
        self._storage.reset()
