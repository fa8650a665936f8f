"""
Browser auth flow: sign-in, sign-up, password reset and sign-out.

The client talks to the app over https so the Secure cookies the app issues
are kept by the cookie jar, exactly as a browser would.
"""
from __future__ import annotations

import pytest

from backend.db import session_scope
from backend.db.models import Profile
from backend.db.session import utcnow
from backend.web.routes.auth import _is_inapp_path
from backend.web.sessions import SESSION_STORE, get_or_create_csrf_token

from factories import api_client, make_profile, reload


pytestmark = pytest.mark.anyio

BASE = "https://test"


async def _preauth_token(client, path: str = "/sign-in") -> str:
    resp = await client.get(path)
    assert resp.status_code == 200
    pre_id = client.cookies.get("hope_preauth")
    assert pre_id
    return get_or_create_csrf_token(f"pre:{pre_id}")


async def _sign_in(client, email: str, password: str, **extra):
    token = await _preauth_token(client)
    data = {"email": email, "password": password, "csrf_token": token}
    data.update(extra)
    return await client.post("/sign-in", data=data)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("/", True),
        ("/courses/web-development", True),
        ("/admin/courses/edit/42", True),
        ("courses", False),
        ("https://evil.example", False),
        ("//evil.example", False),
        ("/a?b=1", False),
        ("/..", False),
        ("/" + "a" * 300, False),
    ],
)
def test_inapp_redirect_validation(value, expected):
    assert _is_inapp_path(value) is expected


async def test_sign_in_creates_profile_and_session(auth_provider):
    auth_provider.add_user("learner@example.com", "correct horse", full_name="Asha Learner")
    async with api_client(BASE) as client:
        resp = await _sign_in(client, "Learner@Example.com", "correct horse")
        assert resp.status_code == 303
        assert resp.headers["location"] == "/users/profile"
        sid = client.cookies.get("hope_session")
        assert sid and SESSION_STORE.get(sid) is not None

        me = (await client.get("/api/me")).json()["data"]
    assert me["email"] == "learner@example.com"
    assert me["profile"]["full_name"] == "Asha Learner"


async def test_admin_lands_on_dashboard(auth_provider):
    uid = auth_provider.add_user("admin@example.com", "s3cret-pass")
    with session_scope() as session:
        session.add(Profile(id=uid, email="admin@example.com", full_name="Office Admin", role="service_role"))
    async with api_client(BASE) as client:
        resp = await _sign_in(client, "admin@example.com", "s3cret-pass")
    assert resp.headers["location"] == "/admin/dashboard"


async def test_sign_in_honours_safe_redirect_only(auth_provider):
    auth_provider.add_user("learner@example.com", "correct horse")
    async with api_client(BASE) as client:
        resp = await _sign_in(client, "learner@example.com", "correct horse", redirect="/courses/web-development")
    assert resp.headers["location"] == "/courses/web-development"

    async with api_client(BASE) as client:
        resp = await _sign_in(client, "learner@example.com", "correct horse", redirect="https://evil.example/")
    assert resp.headers["location"] == "/users/profile"


async def test_wrong_password_rerenders_form(auth_provider):
    auth_provider.add_user("learner@example.com", "correct horse")
    async with api_client(BASE) as client:
        resp = await _sign_in(client, "learner@example.com", "wrong")
    assert resp.status_code == 400
    assert "Invalid e-mail or password." in resp.text
    assert client.cookies.get("hope_session") is None


async def test_missing_form_token_is_rejected(auth_provider):
    auth_provider.add_user("learner@example.com", "correct horse")
    async with api_client(BASE) as client:
        await client.get("/sign-in")
        resp = await client.post("/sign-in", data={"email": "learner@example.com", "password": "correct horse"})
    assert resp.status_code == 403


async def test_deleted_account_cannot_sign_in(auth_provider):
    learner = make_profile(email="gone@example.com")
    with session_scope() as session:
        session.get(Profile, learner.id).deleted_at = utcnow()
    auth_provider.add_user("gone@example.com", "correct horse", user_id=learner.id)
    async with api_client(BASE) as client:
        resp = await _sign_in(client, "gone@example.com", "correct horse")
    assert resp.status_code == 403
    assert "deactivated" in resp.text


async def test_signed_in_user_skips_sign_in_page(auth_provider):
    auth_provider.add_user("learner@example.com", "correct horse")
    async with api_client(BASE) as client:
        await _sign_in(client, "learner@example.com", "correct horse")
        resp = await client.get("/sign-in")
    assert resp.status_code == 303
    assert resp.headers["location"] == "/users/profile"


async def test_sign_up_signs_the_user_in(auth_provider):
    async with api_client(BASE) as client:
        token = await _preauth_token(client, "/sign-up")
        resp = await client.post(
            "/sign-up",
            data={"full_name": "Ram Thapa", "email": "ram@example.com", "password": "long enough", "csrf_token": token},
        )
    assert resp.status_code == 303
    uid = auth_provider.users["ram@example.com"]["id"]
    assert reload(Profile, uid).full_name == "Ram Thapa"


async def test_sign_up_validation_and_duplicates(auth_provider):
    auth_provider.add_user("ram@example.com", "whatever1")
    async with api_client(BASE) as client:
        token = await _preauth_token(client, "/sign-up")
        resp = await client.post(
            "/sign-up", data={"full_name": "", "email": "bad", "password": "short", "csrf_token": token}
        )
        assert resp.status_code == 400
        assert "at least 8 characters" in resp.text

        resp = await client.post(
            "/sign-up",
            data={"full_name": "Ram", "email": "ram@example.com", "password": "long enough", "csrf_token": token},
        )
        assert resp.status_code == 409
        assert "already exists" in resp.text


async def test_sign_up_with_email_confirmation(auth_provider):
    auth_provider.confirm_email = True
    async with api_client(BASE) as client:
        token = await _preauth_token(client, "/sign-up")
        resp = await client.post(
            "/sign-up",
            data={"full_name": "Ram Thapa", "email": "ram@example.com", "password": "long enough", "csrf_token": token},
        )
    assert resp.status_code == 200
    assert "Check your inbox" in resp.text
    assert client.cookies.get("hope_session") is None


async def test_forgot_password_is_neutral(auth_provider):
    async with api_client(BASE) as client:
        token = await _preauth_token(client, "/forgot-password")
        resp = await client.post("/forgot-password", data={"email": "nobody@example.com", "csrf_token": token})
    assert resp.status_code == 200
    assert "If an account exists for that address" in resp.text
    assert auth_provider.password_resets[0][0] == "nobody@example.com"
    assert auth_provider.password_resets[0][1].endswith("/reset-password")


async def _open_reset_link(client, provider, email: str, link_type: str = "recovery"):
    token_hash = provider.issue_email_link(email)
    return await client.get("/reset-password", params={"token_hash": token_hash, "type": link_type})


async def test_reset_link_updates_password_and_ends_sessions(auth_provider):
    uid = auth_provider.add_user("learner@example.com", "old password")
    async with api_client(BASE) as client:
        resp = await _open_reset_link(client, auth_provider, "learner@example.com")
        assert resp.status_code == 303
        assert resp.headers["location"] == "/reset-password"
        sid = client.cookies.get("hope_session")
        assert sid and SESSION_STORE.get(sid).sub == uid
        other_device = SESSION_STORE.create(sub=uid, roles=["authenticated"], name=None, email="learner@example.com")

        resp = await client.get("/reset-password")
        assert resp.status_code == 200
        assert "Choose a new password" in resp.text
        token = get_or_create_csrf_token(sid)

        resp = await client.post(
            "/reset-password", data={"password": "new password", "confirm_password": "other", "csrf_token": token}
        )
        assert resp.status_code == 400
        assert "Passwords do not match." in resp.text

        resp = await client.post(
            "/reset-password", data={"password": "short", "confirm_password": "short", "csrf_token": token}
        )
        assert resp.status_code == 400
        assert "at least 8 characters" in resp.text

        resp = await client.post(
            "/reset-password",
            data={"password": "new password", "confirm_password": "new password", "csrf_token": token},
        )
        assert resp.status_code == 303
        assert resp.headers["location"] == "/sign-in?reset=done"
        assert SESSION_STORE.get(sid) is None
        assert SESSION_STORE.get(other_device.session_id) is None
        assert auth_provider.password_updates == [("learner@example.com", "new password")]

        resp = await client.get("/sign-in", params={"reset": "done"})
        assert "Your password has been updated" in resp.text
        resp = await _sign_in(client, "learner@example.com", "new password")
    assert resp.status_code == 303


async def test_reset_rejects_bad_links_and_missing_sessions(auth_provider):
    async with api_client(BASE) as client:
        resp = await client.get("/reset-password", params={"token_hash": "unknown", "type": "recovery"})
        assert resp.status_code == 400
        assert "invalid or has expired" in resp.text
        assert client.cookies.get("hope_session") is None

        resp = await client.get("/reset-password")
        assert resp.status_code == 303
        assert resp.headers["location"] == "/forgot-password"

        resp = await client.post("/reset-password", data={"password": "new password", "confirm_password": "new password"})
        assert resp.status_code == 303
        assert resp.headers["location"] == "/forgot-password"


async def test_reset_requires_form_token_and_a_new_password(auth_provider):
    auth_provider.add_user("learner@example.com", "old password")
    async with api_client(BASE) as client:
        await _open_reset_link(client, auth_provider, "learner@example.com")
        sid = client.cookies.get("hope_session")

        resp = await client.post(
            "/reset-password", data={"password": "new password", "confirm_password": "new password", "csrf_token": "nope"}
        )
        assert resp.status_code == 403
        assert SESSION_STORE.get(sid) is not None

        token = get_or_create_csrf_token(sid)
        resp = await client.post(
            "/reset-password",
            data={"password": "old password", "confirm_password": "old password", "csrf_token": token},
        )
    assert resp.status_code == 400
    assert "must differ from the old one" in resp.text
    assert auth_provider.password_updates == []


async def test_invite_link_opens_setup_form(auth_provider):
    auth_provider.add_user("staff@example.com", "temporary secret")
    async with api_client(BASE) as client:
        resp = await _open_reset_link(client, auth_provider, "staff@example.com", link_type="invite")
        assert resp.status_code == 303
        assert resp.headers["location"] == "/reset-password?setup=1"

        resp = await client.get("/reset-password", params={"setup": "1"})
    assert resp.status_code == 200
    assert "Set your password" in resp.text
    assert 'name="setup" value="1"' in resp.text


async def test_sign_out_requires_form_token(auth_provider):
    auth_provider.add_user("learner@example.com", "correct horse")
    async with api_client(BASE) as client:
        await _sign_in(client, "learner@example.com", "correct horse")
        sid = client.cookies.get("hope_session")

        resp = await client.post("/sign-out", data={"csrf_token": "nope"})
        assert resp.status_code == 403
        assert SESSION_STORE.get(sid) is not None

        resp = await client.post("/sign-out", data={"csrf_token": get_or_create_csrf_token(sid)})
        assert resp.status_code == 303
        assert resp.headers["location"] == "/"
    assert SESSION_STORE.get(sid) is None


async def test_sign_out_without_session_is_idempotent():
    async with api_client(BASE) as client:
        resp = await client.post("/sign-out")
    assert resp.status_code == 303
