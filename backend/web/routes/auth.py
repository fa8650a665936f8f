"""
Authentication routes: sign-in, sign-up, password reset and sign-out.

Why:
    Credentials are checked by Supabase Auth (GoTrue); the app never stores
    passwords. After a successful sign-in the access token is verified locally,
    the profile row is ensured and an opaque server-side session is issued as
    the `hope_session` cookie. Tokens never reach the browser.

Notes:
    - `get_auth_client()` is the single factory for the provider client so
      tests can monkeypatch it with a fake.
    - Forms rendered before sign-in carry a CSRF token bound to a short-lived
      pre-auth cookie; POSTs additionally pass the same-origin check.
"""

from __future__ import annotations

from html import escape
from typing import Optional
import logging
import os
import re

from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from backend.academy import profiles
from backend.academy.errors import Forbidden, ServiceError
from backend.db.session import session_scope
from backend.identity_access.domain import ROLE_AUTHENTICATED, ROLE_SERVICE
from backend.identity_access.supabase_auth import AuthProviderError, SupabaseAuthClient, load_auth_config
from backend.identity_access.tokens import TokenVerificationError, verify_access_token

from ..auth_utils import SESSION_COOKIE_NAME
from ..components.forms import ForgotPasswordForm, ResetPasswordForm, SignInForm, SignUpForm
from ..config import session_ttl_seconds, site_base_url
from ..sessions import (
    SESSION_STORE,
    clear_session_cookie,
    current_user,
    forget_csrf,
    get_session_id,
    revoke_sessions_for,
    set_session_cookie,
    validate_csrf,
)
from ..ssr import page, preauth_csrf_ok, preauth_csrf_token, session_csrf_token, set_preauth_cookie
from .security import csrf_guard


auth_router = APIRouter(tags=["Auth"])
logger = logging.getLogger("hope.web.auth")

# Single source of truth for allowed in-app redirect paths
# Disallow double slashes and path traversal (".."), allow dots in names
INAPP_PATH_PATTERN = re.compile(r"^(?!.*//)(?!.*\.\.)/[A-Za-z0-9._\-/]*$")
MAX_INAPP_REDIRECT_LEN = 256

FORGOT_PASSWORD_NOTICE = "If an account exists for that address, a password reset link has been sent."
PASSWORD_UPDATED_NOTICE = "Your password has been updated. Please sign in with the new password."

# GoTrue e-mail link types that end on the reset form
_LINK_TYPES = ("recovery", "invite")

_SIGN_IN_MESSAGES = {
    "invalid_credentials": "Invalid e-mail or password.",
    "ACCOUNT_DELETED": "This account has been deactivated. Please contact the institute.",
}
_GENERIC_SIGN_IN_ERROR = "Sign-in is temporarily unavailable. Please try again."

_PASSWORD_UPDATE_MESSAGES = {
    "same_password": "The new password must differ from the old one.",
    "weak_password": "This password is too weak. Please choose a longer one.",
    "session_expired": "Your reset link has expired. Please request a new one.",
}


def get_auth_client() -> SupabaseAuthClient:
    return SupabaseAuthClient(load_auth_config())


def _is_inapp_path(value: str) -> bool:
    """Return True if value is an absolute in-app path, e.g., "/", "/courses/web-design".

    Why:
        Prevent open redirect vulnerabilities by only allowing internal paths
        without scheme/host or query fragments.
    Examples (accepted):
        "/", "/courses", "/admin/courses/edit/42"
    Examples (rejected):
        "courses" (not absolute), "https://evil.com", "//evil.com", "/a?b", "/a#b", "/.."
    """
    if not value or not isinstance(value, str):
        return False
    if len(value) > MAX_INAPP_REDIRECT_LEN:
        return False
    return bool(INAPP_PATH_PATTERN.match(value))


def _landing_for(role: str) -> str:
    return "/admin/dashboard" if role == ROLE_SERVICE else "/users/profile"


def _auth_page(request: Request, title: str, content: str, *, status_code: int = 200, pre_id: Optional[str] = None):
    response = page(request, title, content, status_code=status_code, headers={"Cache-Control": "private, no-store"})
    set_preauth_cookie(response, pre_id)
    return response


def _render_sign_in(
    request: Request,
    *,
    email: str = "",
    redirect: Optional[str] = None,
    error: Optional[str] = None,
    notice: Optional[str] = None,
    status_code: int = 200,
):
    token, pre_id = preauth_csrf_token(request)
    form = SignInForm(token, email=email, redirect=redirect, error=error, notice=notice)
    return _auth_page(request, "Sign in", form.render(), status_code=status_code, pre_id=pre_id)


def _start_session(*, user_id: str, email: str, full_name: Optional[str], access_token: str):
    """Verify the provider token, ensure the profile and create the app session.

    Raises:
        TokenVerificationError: token signature, audience or expiry invalid.
        ServiceError: `ACCOUNT_DELETED` for soft-deleted profiles.
    """
    secret = os.getenv("SUPABASE_JWT_SECRET", "")
    claims = verify_access_token(access_token, secret)
    if str(claims.get("sub") or "") != user_id:
        raise TokenVerificationError("sub_mismatch")
    with session_scope({"sub": user_id, "role": ROLE_AUTHENTICATED}) as session:
        profile = profiles.ensure_profile(session, user_id, email, full_name)
        if profile.deleted_at is not None:
            raise Forbidden("Account deleted", "ACCOUNT_DELETED")
        role = profile.role or ROLE_AUTHENTICATED
        name = profile.full_name
        email = profile.email
    rec = SESSION_STORE.create(
        sub=user_id,
        roles=[role],
        name=name,
        email=email,
        access_token=access_token,
        ttl_seconds=session_ttl_seconds(),
    )
    return rec, role


@auth_router.get("/sign-in", response_class=HTMLResponse)
async def sign_in_page(request: Request, redirect: Optional[str] = None, reset: Optional[str] = None):
    """Render the sign-in form.

    Behavior:
        - Signed-in users are sent to their landing page.
        - `redirect` is kept only when it is a safe in-app path.
        - `reset=done` shows the password-updated notice.
    """
    user = current_user(request)
    if user:
        return RedirectResponse(url=_landing_for(user.get("role", "")), status_code=303)
    safe_redirect = redirect if (redirect and _is_inapp_path(redirect)) else None
    notice = PASSWORD_UPDATED_NOTICE if reset == "done" else None
    return _render_sign_in(request, redirect=safe_redirect, notice=notice)


@auth_router.post("/sign-in")
async def sign_in_submit(request: Request):
    """Authenticate with e-mail and password.

    Behavior:
        - 303 to a safe `redirect` or the role landing page on success; sets
          the HttpOnly `hope_session` cookie.
        - Re-renders the form with 400 on bad credentials or 403 for
          deactivated accounts.
    Security:
        Same-origin check plus pre-auth CSRF token. Errors never reveal
        whether the e-mail exists.
    """
    rejected = csrf_guard(request)
    if rejected is not None:
        return rejected
    form = await request.form()
    email = str(form.get("email") or "").strip().lower()
    password = str(form.get("password") or "")
    redirect = str(form.get("redirect") or "")
    safe_redirect = redirect if _is_inapp_path(redirect) else None
    if not preauth_csrf_ok(request, form):
        return _render_sign_in(request, email=email, redirect=safe_redirect, error="Your form expired. Please try again.", status_code=403)
    if not email or not password:
        return _render_sign_in(request, email=email, redirect=safe_redirect, error=_SIGN_IN_MESSAGES["invalid_credentials"], status_code=400)

    try:
        auth = get_auth_client().sign_in_with_password(email=email, password=password)
        rec, role = _start_session(
            user_id=auth.user_id, email=auth.email, full_name=auth.full_name, access_token=auth.access_token
        )
    except AuthProviderError as exc:
        logger.info("sign-in rejected code=%s", exc.code)
        message = _SIGN_IN_MESSAGES.get(exc.code, _GENERIC_SIGN_IN_ERROR)
        status = 400 if exc.code == "invalid_credentials" else 502
        return _render_sign_in(request, email=email, redirect=safe_redirect, error=message, status_code=status)
    except TokenVerificationError as exc:
        logger.warning("sign-in token verification failed code=%s", exc.code)
        return _render_sign_in(request, email=email, redirect=safe_redirect, error=_GENERIC_SIGN_IN_ERROR, status_code=502)
    except ServiceError as exc:
        logger.info("sign-in refused code=%s", exc.code)
        message = _SIGN_IN_MESSAGES.get(exc.code, exc.message)
        return _render_sign_in(request, email=email, redirect=safe_redirect, error=message, status_code=exc.status_code)

    target = safe_redirect or _landing_for(role)
    logger.info("sign-in ok sub=%s role=%s", rec.sub, role)
    resp = RedirectResponse(url=target, status_code=303, headers={"Cache-Control": "private, no-store"})
    set_session_cookie(resp, rec.session_id, max_age=session_ttl_seconds())
    return resp


@auth_router.get("/sign-up", response_class=HTMLResponse)
async def sign_up_page(request: Request):
    if current_user(request):
        return RedirectResponse(url="/users/profile", status_code=303)
    token, pre_id = preauth_csrf_token(request)
    return _auth_page(request, "Sign up", SignUpForm(token).render(), pre_id=pre_id)


@auth_router.post("/sign-up")
async def sign_up_submit(request: Request):
    """Register a learner account.

    Behavior:
        - Validates name (1..100), e-mail and password (>= 8) before calling
          the provider.
        - When the provider returns a session (e-mail confirmation disabled)
          the user is signed in directly; otherwise a confirmation notice is
          shown.
    """
    rejected = csrf_guard(request)
    if rejected is not None:
        return rejected
    form = await request.form()
    values = {
        "full_name": str(form.get("full_name") or "").strip(),
        "email": str(form.get("email") or "").strip().lower(),
    }
    password = str(form.get("password") or "")

    def rerender(error: Optional[str] = None, field_errors: Optional[dict] = None, status_code: int = 400):
        token, pre_id = preauth_csrf_token(request)
        content = SignUpForm(token, values=values, error=error, field_errors=field_errors).render()
        return _auth_page(request, "Sign up", content, status_code=status_code, pre_id=pre_id)

    if not preauth_csrf_ok(request, form):
        return rerender("Your form expired. Please try again.", status_code=403)

    errors = {}
    if not values["full_name"] or len(values["full_name"]) > 100:
        errors["full_name"] = "Please enter your name (up to 100 characters)."
    if not re.match(r"^[^\s@]+@[^\s@]+\.[^\s@]+$", values["email"]):
        errors["email"] = "Please enter a valid e-mail address."
    if len(password) < 8:
        errors["password"] = "Password must be at least 8 characters long."
    if errors:
        return rerender(field_errors=errors)

    try:
        auth = get_auth_client().sign_up(email=values["email"], password=password, full_name=values["full_name"])
        if auth is None:
            notice = (
                '<section class="auth-card"><h1>Check your inbox</h1>'
                "<p>We sent you a confirmation link. Please confirm your e-mail address, then sign in.</p>"
                '<p><a class="btn btn-primary" href="/sign-in">Go to sign in</a></p></section>'
            )
            return _auth_page(request, "Confirm your e-mail", notice)
        rec, role = _start_session(
            user_id=auth.user_id, email=auth.email, full_name=auth.full_name, access_token=auth.access_token
        )
    except AuthProviderError as exc:
        logger.info("sign-up rejected code=%s", exc.code)
        if exc.code == "user_exists":
            return rerender(field_errors={"email": "An account with this e-mail already exists."}, status_code=409)
        return rerender("Registration is temporarily unavailable. Please try again.", status_code=502)
    except (TokenVerificationError, ServiceError) as exc:
        logger.warning("sign-up session failed error=%s", exc.__class__.__name__)
        return rerender("Registration is temporarily unavailable. Please try again.", status_code=502)

    logger.info("sign-up ok sub=%s", rec.sub)
    resp = RedirectResponse(url=_landing_for(role), status_code=303, headers={"Cache-Control": "private, no-store"})
    set_session_cookie(resp, rec.session_id, max_age=session_ttl_seconds())
    return resp


@auth_router.get("/forgot-password", response_class=HTMLResponse)
async def forgot_password_page(request: Request):
    token, pre_id = preauth_csrf_token(request)
    return _auth_page(request, "Forgot password", ForgotPasswordForm(token).render(), pre_id=pre_id)


@auth_router.post("/forgot-password", response_class=HTMLResponse)
async def forgot_password_submit(request: Request):
    """Request a password reset e-mail.

    Security:
        Always renders the same neutral notice, whether or not the address is
        known and whether or not the provider call succeeded, so the form
        cannot be used to enumerate accounts.
    """
    rejected = csrf_guard(request)
    if rejected is not None:
        return rejected
    form = await request.form()
    if not preauth_csrf_ok(request, form):
        token, pre_id = preauth_csrf_token(request)
        content = ForgotPasswordForm(token, error="Your form expired. Please try again.").render()
        return _auth_page(request, "Forgot password", content, status_code=403, pre_id=pre_id)
    email = str(form.get("email") or "").strip().lower()
    if email:
        try:
            get_auth_client().send_password_reset(email=email, redirect_to=f"{site_base_url()}/reset-password")
        except AuthProviderError as exc:
            logger.warning("password reset request failed code=%s", exc.code)
    token, pre_id = preauth_csrf_token(request)
    content = ForgotPasswordForm(token, notice=FORGOT_PASSWORD_NOTICE).render()
    return _auth_page(request, "Forgot password", content, pre_id=pre_id)


def _render_reset(
    request: Request,
    *,
    setup: bool = False,
    error: Optional[str] = None,
    field_errors: Optional[dict] = None,
    status_code: int = 200,
):
    form = ResetPasswordForm(session_csrf_token(request), setup=setup, error=error, field_errors=field_errors)
    title = "Set your password" if setup else "Reset password"
    return page(request, title, form.render(), status_code=status_code, headers={"Cache-Control": "private, no-store"})


def _invalid_link(request: Request, message: str, status_code: int):
    content = (
        '<section class="auth-card"><h1>Link not valid</h1>'
        f'<p class="alert alert-error" role="alert">{escape(message)}</p>'
        '<p><a class="btn btn-primary" href="/forgot-password">Request a new link</a></p></section>'
    )
    return page(request, "Reset password", content, status_code=status_code, headers={"Cache-Control": "private, no-store"})


@auth_router.get("/reset-password", response_class=HTMLResponse)
async def reset_password_page(
    request: Request,
    token_hash: Optional[str] = None,
    link_type: Optional[str] = Query(None, alias="type"),
    setup: Optional[str] = None,
):
    """Open the reset form from a recovery or invite e-mail link.

    Behavior:
        - With `token_hash`, the hash is verified with the provider and a
          session is opened for the link's user, then 303 to the bare form URL
          so the hash does not stay in the address bar or history.
        - Without a session the user is sent to `/forgot-password`.
        - `type=invite` (or `setup=1`) words the form for first-time setup.
    """
    if token_hash:
        kind = link_type if link_type in _LINK_TYPES else "recovery"
        try:
            auth = get_auth_client().verify_email_link(token_hash=token_hash, link_type=kind)
            rec, _role = _start_session(
                user_id=auth.user_id, email=auth.email, full_name=auth.full_name, access_token=auth.access_token
            )
        except AuthProviderError as exc:
            logger.info("reset link rejected code=%s", exc.code)
            if exc.code == "link_invalid":
                return _invalid_link(request, "This link is invalid or has expired.", 400)
            return _invalid_link(request, "Password reset is temporarily unavailable. Please try again.", 502)
        except TokenVerificationError as exc:
            logger.warning("reset link token verification failed code=%s", exc.code)
            return _invalid_link(request, "Password reset is temporarily unavailable. Please try again.", 502)
        except ServiceError as exc:
            logger.info("reset link refused code=%s", exc.code)
            return _invalid_link(request, _SIGN_IN_MESSAGES.get(exc.code, exc.message), exc.status_code)

        previous = get_session_id(request)
        if previous:
            SESSION_STORE.delete(previous)
            forget_csrf(previous)
        logger.info("reset link accepted sub=%s type=%s", rec.sub, kind)
        target = "/reset-password?setup=1" if kind == "invite" else "/reset-password"
        resp = RedirectResponse(url=target, status_code=303, headers={"Cache-Control": "private, no-store"})
        set_session_cookie(resp, rec.session_id, max_age=session_ttl_seconds())
        return resp

    if not current_user(request):
        return RedirectResponse(url="/forgot-password", status_code=303)
    return _render_reset(request, setup=setup == "1")


@auth_router.post("/reset-password")
async def reset_password_submit(request: Request):
    """Set a new password for the signed-in user.

    Behavior:
        - Password must be at least 8 characters and match the confirmation.
        - On success every session of the user ends (other devices included)
          and the browser is sent to `/sign-in?reset=done`.
        - Provider rejections re-render the form (400 same or weak password,
          401 expired recovery session, 502 otherwise).
    Security:
        Same-origin check plus the session-bound form token.
    """
    rejected = csrf_guard(request)
    if rejected is not None:
        return rejected
    sid = get_session_id(request)
    rec = SESSION_STORE.get(sid) if sid else None
    if rec is None:
        return RedirectResponse(url="/forgot-password", status_code=303)
    form = await request.form()
    setup = str(form.get("setup") or "") == "1"
    if not validate_csrf(sid, form.get("csrf_token")):
        return _render_reset(request, setup=setup, error="Your form expired. Please try again.", status_code=403)

    password = str(form.get("password") or "")
    confirm = str(form.get("confirm_password") or "")
    errors = {}
    if len(password) < 8:
        errors["password"] = "Password must be at least 8 characters long."
    elif password != confirm:
        errors["confirm_password"] = "Passwords do not match."
    if errors:
        return _render_reset(request, setup=setup, field_errors=errors, status_code=400)

    try:
        get_auth_client().update_password(access_token=rec.access_token or "", password=password)
    except AuthProviderError as exc:
        logger.info("password update rejected code=%s", exc.code)
        message = _PASSWORD_UPDATE_MESSAGES.get(exc.code)
        if exc.code in ("same_password", "weak_password"):
            return _render_reset(request, setup=setup, field_errors={"password": message}, status_code=400)
        if exc.code == "session_expired":
            return _render_reset(request, setup=setup, error=message, status_code=401)
        return _render_reset(
            request, setup=setup, error="Your password could not be updated. Please try again.", status_code=502
        )

    revoke_sessions_for(rec.sub)
    logger.info("password updated sub=%s", rec.sub)
    resp = RedirectResponse(url="/sign-in?reset=done", status_code=303, headers={"Cache-Control": "private, no-store"})
    clear_session_cookie(resp)
    return resp


@auth_router.post("/sign-out")
async def sign_out(request: Request):
    """Delete the server-side session and clear the cookie.

    Behavior:
        - 303 to `/`. Works without a session (idempotent).
        - The form token is checked when a session exists; a missing or wrong
          token keeps the session alive and returns 403.
    """
    rejected = csrf_guard(request)
    if rejected is not None:
        return rejected
    sid = get_session_id(request)
    if sid and SESSION_STORE.get(sid) is not None:
        form = await request.form()
        if not validate_csrf(sid, form.get("csrf_token")):
            return HTMLResponse(content="CSRF Error", status_code=403, headers={"Cache-Control": "private, no-store"})
        SESSION_STORE.delete(sid)
        forget_csrf(sid)
        logger.info("sign-out ok")
    resp = RedirectResponse(url="/", status_code=303, headers={"Cache-Control": "private, no-store"})
    clear_session_cookie(resp)
    return resp


__all__ = ["auth_router", "get_auth_client", "INAPP_PATH_PATTERN", "SESSION_COOKIE_NAME"]
