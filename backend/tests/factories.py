"""
Row builders, fake provider clients and HTTP helpers shared by the tests.

Builders write directly through the ORM so tests can arrange state without
going through the API; anything that involves seat accounting or state
machines should use the academy services instead.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
import time
import uuid

import httpx
from httpx import ASGITransport
from jose import jwt

from backend.db import session_scope
from backend.db.models import Affiliation, Course, CourseCategory, Intake, Profile
from backend.identity_access.supabase_auth import AuthProviderError, AuthSession
from backend.notifications.resend import EmailDeliveryError
from backend.web.auth_utils import SESSION_COOKIE_NAME
from backend.web.sessions import SESSION_STORE, get_or_create_csrf_token


JWT_SECRET = "test-jwt-secret-with-enough-entropy"


# --- Rows ---------------------------------------------------------------------


def make_profile(
    *,
    email: Optional[str] = None,
    full_name: str = "Test Learner",
    role: str = "authenticated",
    phone: Optional[str] = None,
) -> Profile:
    user_id = str(uuid.uuid4())
    with session_scope() as session:
        profile = Profile(
            id=user_id,
            email=email or f"user-{user_id[:8]}@example.com",
            full_name=full_name,
            role=role,
            phone=phone,
        )
        session.add(profile)
    return profile


def make_category(name: str = "Technology", description: Optional[str] = None) -> CourseCategory:
    with session_scope() as session:
        category = CourseCategory(name=name, description=description)
        session.add(category)
    return category


def make_affiliation(name: str = "CTEVT", type_: str = "Council") -> Affiliation:
    with session_scope() as session:
        affiliation = Affiliation(name=name, type=type_)
        session.add(affiliation)
    return affiliation


def make_course(
    *,
    title: str = "Web Development",
    slug: Optional[str] = None,
    price: float = 15000,
    category_id: Optional[str] = None,
    overview: Optional[str] = None,
    image_url: Optional[str] = None,
) -> Course:
    with session_scope() as session:
        course = Course(
            title=title,
            slug=slug or title.lower().replace(" ", "-"),
            price=price,
            category_id=category_id,
            course_overview=overview,
            image_url=image_url,
        )
        session.add(course)
    return course


def make_intake(
    course_id: str,
    *,
    days_ahead: int = 30,
    capacity: int = 20,
    is_open: bool = True,
    total_registered: int = 0,
) -> Intake:
    start = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(days=days_ahead)
    with session_scope() as session:
        intake = Intake(
            course_id=course_id,
            start_date=start,
            end_date=start + timedelta(days=90),
            capacity=capacity,
            is_open=is_open,
            total_registered=total_registered,
        )
        session.add(intake)
    return intake


def reload(model, entity_id: str):
    """Fresh copy of a row, read in its own transaction."""
    with session_scope() as session:
        return session.get(model, entity_id)


# --- Fake providers -----------------------------------------------------------


def make_access_token(sub: str, *, secret: str = JWT_SECRET, audience: str = "authenticated", expires_in: int = 3600) -> str:
    now = int(time.time())
    claims = {"sub": sub, "aud": audience, "role": "authenticated", "iat": now, "exp": now + expires_in}
    return jwt.encode(claims, secret, algorithm="HS256")


class FakeAuthClient:
    """In-memory Supabase Auth with the subset of calls the app makes."""

    def __init__(self) -> None:
        self.users: Dict[str, Dict[str, Any]] = {}
        self.password_resets: List[Tuple[str, Optional[str]]] = []
        self.deleted: List[str] = []
        self.failing_deletes: set[str] = set()
        self.confirm_email = False
        # token_hash -> e-mail of a pending recovery or invite link
        self.email_links: Dict[str, str] = {}
        self.password_updates: List[Tuple[str, str]] = []

    def add_user(self, email: str, password: str, full_name: Optional[str] = None, user_id: Optional[str] = None) -> str:
        uid = user_id or str(uuid.uuid4())
        self.users[email] = {"id": uid, "password": password, "full_name": full_name}
        return uid

    def _session(self, email: str) -> AuthSession:
        user = self.users[email]
        return AuthSession(
            access_token=make_access_token(user["id"]),
            user_id=user["id"],
            email=email,
            full_name=user["full_name"],
        )

    def sign_in_with_password(self, *, email: str, password: str) -> AuthSession:
        user = self.users.get(email)
        if user is None or user["password"] != password:
            raise AuthProviderError("invalid_credentials", 400)
        return self._session(email)

    def sign_up(self, *, email: str, password: str, full_name: str) -> Optional[AuthSession]:
        if email in self.users:
            raise AuthProviderError("user_exists", 422)
        self.add_user(email, password, full_name)
        return None if self.confirm_email else self._session(email)

    def send_password_reset(self, *, email: str, redirect_to: Optional[str] = None) -> None:
        self.password_resets.append((email, redirect_to))

    def issue_email_link(self, email: str) -> str:
        token_hash = f"link-{uuid.uuid4().hex}"
        self.email_links[token_hash] = email
        return token_hash

    def verify_email_link(self, *, token_hash: str, link_type: str) -> AuthSession:
        email = self.email_links.pop(token_hash, None)
        if email is None or email not in self.users:
            raise AuthProviderError("link_invalid", 403)
        return self._session(email)

    def update_password(self, *, access_token: str, password: str) -> None:
        sub = jwt.get_unverified_claims(access_token).get("sub")
        for email, user in self.users.items():
            if user["id"] == sub:
                if user["password"] == password:
                    raise AuthProviderError("same_password", 422)
                user["password"] = password
                self.password_updates.append((email, password))
                return
        raise AuthProviderError("session_expired", 401)

    def admin_delete_user(self, user_id: str) -> None:
        if user_id in self.failing_deletes:
            raise AuthProviderError("admin_delete_failed", 500)
        self.deleted.append(user_id)


class FakeMailClient:
    """Records sent e-mails; set `fail = True` to simulate a Resend rejection."""

    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.fail = False

    def send(self, *, to, subject: str, html: str, text: Optional[str] = None, reply_to: Optional[str] = None) -> str:
        if self.fail:
            raise EmailDeliveryError("resend_rejected")
        self.sent.append({"to": list(to), "subject": subject, "html": html, "text": text, "reply_to": reply_to})
        return f"email-{len(self.sent)}"


# --- HTTP ---------------------------------------------------------------------


def api_client(base_url: str = "http://test") -> httpx.AsyncClient:
    from backend.web.main import app

    return httpx.AsyncClient(transport=ASGITransport(app=app), base_url=base_url)


def login(client: httpx.AsyncClient, profile: Profile) -> str:
    """Attach a server-side session for `profile`; returns its form CSRF token."""
    rec = SESSION_STORE.create(
        sub=profile.id,
        roles=[profile.role],
        name=profile.full_name,
        email=profile.email,
    )
    client.cookies.set(SESSION_COOKIE_NAME, rec.session_id)
    return get_or_create_csrf_token(rec.session_id)


def envelope(resp: httpx.Response) -> Dict[str, Any]:
    body = resp.json()
    assert isinstance(body, dict) and "success" in body, body
    return body
