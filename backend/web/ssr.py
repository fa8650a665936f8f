"""
Helpers shared by the server-rendered page routers.

Why:
    Pages render what the JSON API returns instead of querying the database
    directly, so the UI can never show data the API would refuse. The helpers
    here make that in-process API hop, render the Layout with HTMX awareness
    and handle the session-bound CSRF tokens of the HTML forms.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional, Tuple
import logging
import os
import secrets

import httpx
from httpx import ASGITransport
from fastapi import Request
from fastapi.responses import HTMLResponse, RedirectResponse

from .auth_utils import SESSION_COOKIE_NAME, cookie_opts
from .components import Layout
from .config import site_base_url
from .routes.security import client_ip
from .sessions import SETTINGS, current_user, get_or_create_csrf_token, get_session_id, validate_csrf


logger = logging.getLogger("hope.web")

PREAUTH_COOKIE_NAME = "hope_preauth"


def _internal_base() -> Tuple[str, str]:
    """Resolve the base URL + origin for SSR-internal API hops.

    `APP_INTERNAL_BASE_URL` overrides the default `http://local` loopback
    used with ASGITransport.
    """
    base = (os.getenv("APP_INTERNAL_BASE_URL", "") or "").strip() or "http://local"
    origin = base.rstrip("/") or "http://local"
    return base, origin


def internal_api_client(request: Request) -> httpx.AsyncClient:
    """Create an ASGI client for the running app with the caller's session.

    The default headers include an Origin matching the internal base so write
    endpoints that enforce same-origin checks accept these SSR→API calls. The
    transport reports the original client address so per-client rate limits
    keep working behind the hop.
    """
    base, origin = _internal_base()
    transport = ASGITransport(app=request.app, client=(client_ip(request), 0))
    client = httpx.AsyncClient(transport=transport, base_url=base, headers={"Origin": origin})
    sid = get_session_id(request)
    if sid:
        client.cookies.set(SESSION_COOKIE_NAME, sid)
    return client


async def api_call(
    request: Request,
    method: str,
    path: str,
    *,
    params: Optional[Mapping[str, Any]] = None,
    json: Any = None,
    files: Any = None,
) -> Tuple[int, Dict[str, Any]]:
    """Call the JSON API in-process and return `(status, envelope)`.

    `files` is passed through as a multipart body (image uploads).

    Transport failures are logged and reported as a 500 envelope so pages can
    render an error state instead of crashing.
    """
    try:
        async with internal_api_client(request) as client:
            resp = await client.request(method, path, params=params, json=json, files=files)
    except httpx.HTTPError as exc:
        logger.error("internal api call failed path=%s error=%s", path, exc.__class__.__name__)
        return 500, {"success": False, "error": "An unexpected error occurred", "code": "UNKNOWN_ERROR"}
    try:
        body = resp.json()
    except ValueError:
        body = {}
    return resp.status_code, body if isinstance(body, dict) else {}


async def api_data(request: Request, path: str, params: Optional[Mapping[str, Any]] = None, default: Any = None) -> Any:
    """GET helper returning `data` on success and `default` otherwise."""
    status, body = await api_call(request, "GET", path, params=params)
    if status == 200 and body.get("success"):
        return body.get("data")
    return default


def layout_response(
    request: Request,
    layout: Layout,
    *,
    status_code: int = 200,
    headers: dict[str, str] | None = None,
) -> HTMLResponse:
    """Render Layout with HTMX-aware semantics and return an HTMLResponse.

    Behavior:
        - Returns the `<main>` fragment plus an out-of-band header when
          `HX-Request` is present; otherwise the complete document.
        - Personalized pages default to `Cache-Control: private, no-store`.
        - Merges caller-provided headers onto the response.
    Permissions:
        None. Route handlers enforce roles before calling this helper.
    """
    if request.headers.get("HX-Request"):
        body = layout.render_fragment()
    else:
        body = layout.render()
    response = HTMLResponse(content=body, status_code=status_code)
    response.headers["Vary"] = "HX-Request"
    if current_user(request) and not (headers and "Cache-Control" in headers):
        response.headers["Cache-Control"] = "private, no-store"
    if headers:
        for key, value in headers.items():
            response.headers[key] = value
    return response


def page(
    request: Request,
    title: str,
    content: str,
    *,
    status_code: int = 200,
    description: Optional[str] = None,
    canonical_path: Optional[str] = None,
    breadcrumb_labels: Optional[Dict[str, str]] = None,
    headers: dict[str, str] | None = None,
) -> HTMLResponse:
    """Wrap `content` in the site Layout for the current user."""
    sid = get_session_id(request)
    user = current_user(request)
    layout = Layout(
        title=title,
        content=content,
        user=user,
        current_path=request.url.path,
        description=description,
        canonical_url=f"{site_base_url()}{canonical_path}" if canonical_path else None,
        csrf_token=get_or_create_csrf_token(sid) if (sid and user) else None,
        breadcrumb_labels=breadcrumb_labels,
    )
    return layout_response(request, layout, status_code=status_code, headers=headers)


# --- CSRF for HTML forms ------------------------------------------------------


def session_csrf_token(request: Request) -> str:
    """CSRF token bound to the session cookie (empty without a session)."""
    sid = get_session_id(request)
    return get_or_create_csrf_token(sid) if sid else ""


def form_csrf_ok(request: Request, form: Mapping[str, Any]) -> bool:
    return validate_csrf(get_session_id(request), form.get("csrf_token"))


def preauth_csrf_token(request: Request) -> Tuple[str, Optional[str]]:
    """CSRF token for forms rendered before sign-in.

    Returns `(token, new_preauth_id)`; when `new_preauth_id` is set the caller
    must store it with `set_preauth_cookie`.
    """
    pre_id = request.cookies.get(PREAUTH_COOKIE_NAME)
    fresh = None
    if not pre_id:
        pre_id = fresh = secrets.token_urlsafe(24)
    return get_or_create_csrf_token(f"pre:{pre_id}"), fresh


def preauth_csrf_ok(request: Request, form: Mapping[str, Any]) -> bool:
    pre_id = request.cookies.get(PREAUTH_COOKIE_NAME)
    if not pre_id:
        return False
    return validate_csrf(f"pre:{pre_id}", form.get("csrf_token"))


def set_preauth_cookie(response, pre_id: Optional[str]) -> None:
    if not pre_id:
        return
    opts = cookie_opts(SETTINGS.environment)
    response.set_cookie(
        key=PREAUTH_COOKIE_NAME,
        value=pre_id,
        httponly=True,
        secure=opts["secure"],
        samesite=opts["samesite"],
        path="/",
        max_age=1800,
    )


def csrf_error() -> HTMLResponse:
    return HTMLResponse(content="CSRF Error", status_code=403, headers={"Cache-Control": "private, no-store"})


def see_other(url: str) -> RedirectResponse:
    """PRG redirect (303) with caching disabled."""
    return RedirectResponse(url=url, status_code=303, headers={"Cache-Control": "private, no-store"})


# --- Mapping API errors onto forms --------------------------------------------


def error_message(body: Mapping[str, Any], default: str = "Something went wrong. Please try again.") -> str:
    message = body.get("error")
    return str(message) if message else default


def field_errors(body: Mapping[str, Any], fields: Iterable[str] = ()) -> Dict[str, str]:
    """Per-field messages from a `VALIDATION_ERROR` or service error envelope.

    `fields` lists form field names; a service error whose `details` mention
    one of them is attached to that field as well.
    """
    details = body.get("details") or {}
    out: Dict[str, str] = {}
    if isinstance(details, dict):
        for item in details.get("errors") or []:
            if isinstance(item, dict) and item.get("field"):
                out.setdefault(str(item["field"]).split(".")[-1], str(item.get("message") or "Invalid value"))
        field = details.get("field")
        if isinstance(field, str) and body.get("error"):
            out.setdefault(field, str(body["error"]))
        for name in fields:
            if name in details and body.get("error"):
                out.setdefault(name, str(body["error"]))
    return out


def form_text(form: Mapping[str, Any], key: str) -> Optional[str]:
    """Trimmed form value; empty strings become None."""
    value = form.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None
