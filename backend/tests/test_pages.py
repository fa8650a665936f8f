"""
Server-rendered pages: public site, learner area and the admin back-office.

Pages render through the in-process JSON API, so these tests exercise the
SSR hop together with the routers behind it.
"""
from __future__ import annotations

import pytest

from backend.db import session_scope
from backend.db.models import ContactRequest, Course, Enrollment
from backend.web.sessions import get_or_create_csrf_token

from factories import api_client, login, make_category, make_course, make_intake, make_profile


pytestmark = pytest.mark.anyio


# --- Public -------------------------------------------------------------------


async def test_home_lists_upcoming_intakes_and_courses():
    course = make_course(title="Professional Cookery", overview="Kitchen **basics**.")
    make_intake(course.id)
    async with api_client() as client:
        resp = await client.get("/")
    assert resp.status_code == 200
    assert "Upcoming intakes" in resp.text
    assert "Professional Cookery" in resp.text


async def test_catalog_search_and_category_filter():
    tech = make_category("Technology")
    make_course(title="Web Development", category_id=tech.id)
    make_course(title="Professional Cookery")
    async with api_client() as client:
        resp = await client.get("/courses", params={"search": "web"})
        assert "Web Development" in resp.text
        assert "Professional Cookery" not in resp.text

        resp = await client.get("/courses", params={"category": "Technology"})
        assert "Web Development" in resp.text
        assert "Professional Cookery" not in resp.text


async def test_course_detail_renders_markdown_safely():
    course = make_course(
        title="Web Development",
        overview="Learn **HTML** and CSS.\n\n<script>alert('x')</script>",
    )
    make_intake(course.id)
    async with api_client() as client:
        resp = await client.get(f"/courses/{course.slug}")
    assert resp.status_code == 200
    assert "<strong>HTML</strong>" in resp.text
    assert "<script>alert" not in resp.text
    # anonymous visitors get a sign-in link instead of an enroll form
    assert "/sign-in?redirect=/courses/web-development" in resp.text


async def test_unknown_course_is_404():
    async with api_client() as client:
        resp = await client.get("/courses/does-not-exist")
    assert resp.status_code == 404
    assert "Course not found" in resp.text


async def test_htmx_requests_get_a_fragment():
    async with api_client() as client:
        full = await client.get("/aboutus")
        fragment = await client.get("/aboutus", headers={"HX-Request": "true"})
    assert "<html" in full.text
    assert "<html" not in fragment.text
    assert "About Hope Institute" in fragment.text
    assert fragment.headers["Vary"] == "HX-Request"


async def test_enroll_requires_sign_in():
    course = make_course()
    intake = make_intake(course.id)
    async with api_client() as client:
        resp = await client.post(f"/courses/{course.slug}/enroll", data={"intake_id": intake.id})
    assert resp.status_code == 303
    assert resp.headers["location"] == f"/sign-in?redirect=/courses/{course.slug}"


async def test_learner_enrolls_from_course_page():
    learner = make_profile()
    course = make_course()
    intake = make_intake(course.id, capacity=1)
    other = make_profile()
    async with api_client() as client:
        token = login(client, learner)
        resp = await client.post(f"/courses/{course.slug}/enroll", data={"intake_id": intake.id, "csrf_token": "bad"})
        assert resp.status_code == 403

        resp = await client.post(f"/courses/{course.slug}/enroll", data={"intake_id": intake.id, "csrf_token": token})
        assert resp.status_code == 303
        assert resp.headers["location"] == f"/courses/{course.slug}?enrolled=1#intakes"

    async with api_client() as client:
        token = login(client, other)
        resp = await client.post(f"/courses/{course.slug}/enroll", data={"intake_id": intake.id, "csrf_token": token})
    assert resp.status_code == 409
    assert "This intake is full" in resp.text
    with session_scope() as session:
        assert session.query(Enrollment).count() == 1


async def test_contact_form_for_visitors():
    async with api_client() as client:
        resp = await client.get("/contactus")
        assert resp.status_code == 200
        pre_id = resp.cookies.get("hope_preauth")
        assert pre_id
        client.cookies.set("hope_preauth", pre_id)
        token = get_or_create_csrf_token(f"pre:{pre_id}")

        resp = await client.post(
            "/contactus",
            data={"name": "Sita", "email": "sita@example.com", "phone": "", "message": "Short", "csrf_token": token},
        )
        assert resp.status_code == 400
        assert "Message must be at least 10 characters long" in resp.text

        resp = await client.post(
            "/contactus",
            data={
                "name": "Sita Sharma",
                "email": "sita@example.com",
                "phone": "",
                "message": "When does the next cookery intake start?",
                "csrf_token": token,
            },
        )
        assert resp.status_code == 303
        assert resp.headers["location"] == "/contactus?sent=1"

        resp = await client.post("/contactus", data={"name": "x", "csrf_token": "wrong"})
        assert resp.status_code == 403
    with session_scope() as session:
        assert session.query(ContactRequest).count() == 1


# --- Learner area -------------------------------------------------------------


async def test_private_pages_redirect_to_sign_in():
    async with api_client() as client:
        resp = await client.get("/users/profile")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/sign-in?redirect=/users/profile"

        resp = await client.get("/users/profile", headers={"HX-Request": "true"})
        assert resp.status_code == 401
        assert resp.headers["HX-Redirect"] == "/sign-in?redirect=/users/profile"


async def test_profile_page_and_update():
    learner = make_profile(full_name="Asha Learner")
    async with api_client() as client:
        token = login(client, learner)
        resp = await client.get("/users/profile")
        assert resp.status_code == 200
        assert "Asha Learner" in resp.text
        assert resp.headers["Cache-Control"] == "private, no-store"

        resp = await client.post("/users/profile", data={"full_name": "Asha K.", "phone": "", "csrf_token": token})
        assert resp.status_code == 303

        resp = await client.post("/users/profile", data={"full_name": "Asha K.", "phone": "12", "csrf_token": token})
        assert resp.status_code == 400


# --- Admin --------------------------------------------------------------------


async def test_learner_is_sent_away_from_admin_pages():
    learner = make_profile()
    async with api_client() as client:
        login(client, learner)
        resp = await client.get("/admin/dashboard")
    assert resp.status_code == 302
    assert resp.headers["location"] == "/users/profile"


async def test_admin_dashboard_and_course_creation():
    admin = make_profile(role="service_role", full_name="Office Admin")
    async with api_client() as client:
        token = login(client, admin)
        resp = await client.get("/admin/dashboard")
        assert resp.status_code == 200
        assert "Enrollments by status" in resp.text

        resp = await client.post(
            "/admin/courses/new",
            data={"title": "Hotel Management", "price": "45000", "csrf_token": "bad"},
        )
        assert resp.status_code == 403

        resp = await client.post(
            "/admin/courses/new",
            data={"title": "Hotel Management", "price": "45000", "csrf_token": token},
        )
        assert resp.status_code == 303
        assert "notice=created" in resp.headers["location"]

        resp = await client.post(
            "/admin/courses/new",
            data={"title": "Hotel Management", "price": "45000", "csrf_token": token},
        )
        assert resp.status_code == 409

        resp = await client.get("/admin/courses")
        assert "Hotel Management" in resp.text
    with session_scope() as session:
        assert session.query(Course).filter_by(slug="hotel-management").count() == 1
