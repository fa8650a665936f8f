"""
JSON envelopes and the service runner used by every API router.

Why:
    All endpoints answer with the same `{success, data, error}` envelope and
    the same cache policy. Handlers stay small: they validate the request, hand
    a closure to `run_service` and let it own the transaction and the mapping
    of domain errors to HTTP statuses.

Behavior:
    - `ServiceError` → its status code and `{success: false, error, code, details}`.
    - `IntegrityError` raised on flush/commit → 409 `CONSTRAINT_VIOLATION`.
    - Anything else → logged with `logger.exception`, 500 `UNKNOWN_ERROR`.
    - Write methods pass through `csrf_guard` before the service runs.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Optional
import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.academy.errors import ServiceError
from backend.academy.querying import ListParams
from backend.db.session import session_scope

from .routes.security import csrf_guard


logger = logging.getLogger("hope.web")

_SAFE_METHODS = ("GET", "HEAD", "OPTIONS")


def json_private(payload: Any, *, status_code: int = 200, vary_origin: bool = False) -> JSONResponse:
    """Return a JSONResponse with cache disabled for shared caches and browsers.

    Rationale: most endpoints expose user- or role-scoped data. To avoid
    accidental caching in proxies or browsers, respond with "private, no-store".
    """
    headers = {"Cache-Control": "private, no-store"}
    if vary_origin:
        headers["Vary"] = "Origin"
    return JSONResponse(content=payload, status_code=status_code, headers=headers)


def ok(data: Any, *, status_code: int = 200, message: Optional[str] = None) -> JSONResponse:
    payload: Dict[str, Any] = {"success": True, "data": data}
    if message:
        payload["message"] = message
    return json_private(payload, status_code=status_code)


def fail(
    message: str,
    code: str,
    *,
    status_code: int = 400,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    payload: Dict[str, Any] = {"success": False, "error": message, "code": code}
    if details:
        payload["details"] = details
    return json_private(payload, status_code=status_code)


def request_claims(request: Request) -> Dict[str, Any]:
    """Claims published to Postgres for row-level security."""
    user = getattr(request.state, "user", None) or {}
    if not user.get("sub"):
        return {"role": "anon"}
    return {"sub": user["sub"], "role": user.get("role") or "authenticated"}


def list_params(request: Request, **defaults: Any) -> ListParams:
    return ListParams.from_query(request.query_params, **defaults)


def run_service(
    request: Request,
    op: Callable[[Session], Any],
    *,
    status_code: int = 200,
    message: Optional[str] = None,
) -> JSONResponse:
    """Run `op` inside one transaction and wrap its result in the envelope."""
    if request.method not in _SAFE_METHODS:
        rejected = csrf_guard(request)
        if rejected is not None:
            return rejected
    try:
        with session_scope(request_claims(request)) as session:
            result = op(session)
    except ServiceError as exc:
        logger.info("service error path=%s code=%s", request.url.path, exc.code)
        return json_private(exc.to_payload(), status_code=exc.status_code)
    except IntegrityError as exc:
        logger.warning("integrity error path=%s type=%s", request.url.path, exc.__class__.__name__)
        return fail("The change conflicts with existing data", "CONSTRAINT_VIOLATION", status_code=409)
    except Exception:
        logger.exception("unexpected error path=%s", request.url.path)
        return fail("An unexpected error occurred", "UNKNOWN_ERROR", status_code=500)
    return ok(result, status_code=status_code, message=message)
