"Hope Institute portal"
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import logging
import os
import sys
from urllib.parse import quote

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out/opt-in via HOPE_ENABLE_DOTENV (default true
      outside pytest).
    """
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("HOPE_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


from dotenv import load_dotenv

if _should_load_dotenv():
    load_dotenv()

from backend.academy import profiles
from backend.identity_access.domain import ROLE_SERVICE
from backend.storage.config import UPLOADS_URL_PREFIX, get_uploads_dir

from . import config as _cfg
from .auth_utils import SESSION_COOKIE_NAME, user_context
from .responses import fail, run_service
from .sessions import SESSION_STORE, SETTINGS, current_user

# Minimal production safety checks (fail-fast on insecure config)
_cfg.ensure_secure_config_on_startup()

logger = logging.getLogger("hope.identity_access")

app = FastAPI(
    title="Hope Institute portal",
    description="Course catalog, intakes, enrollments and payments for Hope Institute",
    version="1.0.0",
)

# --- Static Files & Routers -----------------------------------------------------

static_dir = Path(__file__).parent / "static"
app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")

uploads_dir = get_uploads_dir()
uploads_dir.mkdir(parents=True, exist_ok=True)
app.mount(UPLOADS_URL_PREFIX.rstrip("/"), StaticFiles(directory=str(uploads_dir)), name="uploads")

from .routes.admin_catalog import admin_catalog_router
from .routes.admin_operations import admin_operations_router
from .routes.admin_pages import admin_pages_router
from .routes.admin_users import admin_users_router
from .routes.auth import auth_router
from .routes.pages import pages_router
from .routes.public_api import public_router
from .routes.seo import seo_router
from .routes.uploads import uploads_router
from .routes.user_api import user_router
from .routes.user_pages import user_pages_router

# --- Auth Helpers & Middleware --------------------------------------------------

PUBLIC_PREFIXES = (
    "/courses",
    "/aboutus",
    "/contactus",
    "/sign-in",
    "/sign-up",
    "/forgot-password",
    "/reset-password",
    "/sign-out",
    "/api/public/",
    "/api/contact",
    "/uploads/",
    "/static/",
    "/sitemap",
)
PUBLIC_EXACT = ("/", "/health", "/robots.txt", "/favicon.ico")
ADMIN_API_PREFIXES = ("/api/admin/", "/api/upload", "/api/delete-image")


def _is_public_path(path: str) -> bool:
    return path in PUBLIC_EXACT or path.startswith(PUBLIC_PREFIXES)


def _is_admin_path(path: str) -> bool:
    if path == "/admin" or path.startswith("/admin/"):
        return True
    return path.startswith(ADMIN_API_PREFIXES)


def _unauthenticated(request: Request) -> Response:
    path = request.url.path
    if path.startswith("/api/"):
        return JSONResponse(
            {"success": False, "error": "Unauthorized", "code": "UNAUTHENTICATED"},
            status_code=401,
            headers={"Cache-Control": "private, no-store", "Vary": "Origin"},
        )
    target = path + (f"?{request.url.query}" if request.url.query else "")
    login = f"/sign-in?redirect={quote(target, safe='/')}"
    if "HX-Request" in request.headers:
        # Security: prevent intermediaries from caching unauthenticated HTMX responses
        return Response(
            status_code=401,
            headers={"HX-Redirect": login, "Cache-Control": "private, no-store", "Vary": "HX-Request"},
        )
    return RedirectResponse(url=login, status_code=302)


@app.middleware("http")
async def auth_enforcement(request: Request, call_next):
    """Resolve the session on every request and gate private paths.

    Behavior:
        - `request.state.user` is set whenever a valid session cookie exists,
          public paths included, so pages can personalise the header.
        - Private paths without a session: 401 JSON for `/api/`, 401 with
          `HX-Redirect` for HTMX, otherwise a redirect to `/sign-in`.
        - Admin paths additionally require the `service_role` role.
    """
    path = request.url.path
    request.state.user = None
    sid = request.cookies.get(SESSION_COOKIE_NAME)
    rec = None
    if sid:
        try:
            rec = SESSION_STORE.get(sid)
        except Exception as exc:
            logger.warning("Session store get failed: %s", exc.__class__.__name__)
    if rec:
        # Expose minimal, read-only user context for downstream handlers.
        request.state.user = user_context(rec)

    if _is_public_path(path):
        return await call_next(request)
    if not rec:
        return _unauthenticated(request)

    if _is_admin_path(path) and request.state.user.get("role") != ROLE_SERVICE:
        logger.info("admin path denied path=%s sub=%s", path, rec.sub)
        if path.startswith("/api/"):
            return fail("Admin access required", "FORBIDDEN", status_code=403)
        return RedirectResponse(url="/users/profile", status_code=302)
    return await call_next(request)


# --- Security Headers Middleware ----------------------------------------------


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    if SETTINGS.environment == "prod":
        # Harden CSP in production: avoid 'unsafe-inline' to reduce XSS surface.
        csp = (
            "default-src 'self'; script-src 'self'; style-src 'self'; "
            "img-src 'self' data:; font-src 'self' data:; connect-src 'self'; form-action 'self';"
        )
    else:
        # Developer experience: allow inline for local SSR templates/components.
        csp = (
            "default-src 'self'; script-src 'self' 'unsafe-inline'; style-src 'self' 'unsafe-inline'; "
            "img-src 'self' data:; font-src 'self' data:; connect-src 'self'; form-action 'self';"
        )
    response.headers.setdefault("Content-Security-Policy", csp)
    response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    # Support Origin/Referer fallback in CSRF checks without leaking cross-site
    # paths: strict-origin-when-cross-origin.
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    if SETTINGS.environment == "prod":
        response.headers.setdefault("Cross-Origin-Opener-Policy", "same-origin")
    response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
    # HSTS: always on (dev = prod)
    response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


# --- Error handlers -------------------------------------------------------------


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Map pydantic validation failures onto the error envelope (400)."""
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ())]
        errors.append({"field": ".".join(loc[1:]) or ".".join(loc), "message": str(err.get("msg") or "Invalid value")})
    return fail("Invalid request", "VALIDATION_ERROR", status_code=400, details={"errors": errors})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    """Envelope for API paths, a rendered page for everything else."""
    if request.url.path.startswith("/api/"):
        code = "NOT_FOUND" if exc.status_code == 404 else "HTTP_ERROR"
        return fail(str(exc.detail or "Not found"), code, status_code=exc.status_code)
    from .ssr import page

    title = "Page not found" if exc.status_code == 404 else "Something went wrong"
    content = (
        '<section class="container narrow">'
        f"<h1>{title}</h1>"
        '<p>The page you requested is not available. <a href="/courses">Browse our courses</a>.</p>'
        "</section>"
    )
    return page(request, title, content, status_code=exc.status_code, headers={"Cache-Control": "private, no-store"})


app.include_router(auth_router)
app.include_router(public_router)
app.include_router(user_router)
app.include_router(admin_catalog_router)
app.include_router(admin_operations_router)
app.include_router(admin_users_router)
app.include_router(uploads_router)
app.include_router(seo_router)
app.include_router(pages_router)
app.include_router(user_pages_router)
app.include_router(admin_pages_router)


@app.get("/health")
async def health_check():
    # Minimal health endpoint used by orchestrators and tests.
    # Security: include no-store to avoid caching any runtime status.
    return JSONResponse({"status": "healthy"}, headers={"Cache-Control": "private, no-store"})


class ProfileUpdate(BaseModel):
    full_name: str | None = Field(default=None, max_length=100)
    phone: str | None = Field(default=None, max_length=32)


@app.get("/api/me")
async def get_me(request: Request):
    """Session summary plus the caller's profile.

    Permissions:
        Any authenticated session; the middleware rejects anonymous callers.
    """
    user = current_user(request) or {}
    rec = SESSION_STORE.get(request.cookies.get(SESSION_COOKIE_NAME) or "")
    exp_iso = None
    if rec and rec.expires_at:
        exp_iso = datetime.fromtimestamp(rec.expires_at, tz=timezone.utc).isoformat(timespec="seconds")

    def op(session):
        return {
            "sub": user.get("sub"),
            "role": user.get("role"),
            "roles": user.get("roles", []),
            "name": user.get("name", ""),
            "email": user.get("email", ""),
            "expires_at": exp_iso,
            "profile": profiles.get_profile(session, str(user.get("sub"))),
        }

    return run_service(request, op)


@app.patch("/api/me")
async def update_me(request: Request, payload: ProfileUpdate):
    sub = str((current_user(request) or {}).get("sub") or "")
    data = payload.model_dump(exclude_unset=True)
    return run_service(request, lambda s: profiles.update_own(s, sub, data), message="Profile updated")


__all__ = ["app", "SESSION_STORE", "SETTINGS", "SESSION_COOKIE_NAME"]
