"""
JSON API: envelopes, access control, CSRF, caching headers and the main flows.
"""
from __future__ import annotations

import pytest

from backend.db import session_scope
from backend.db.models import Payment

from factories import api_client, envelope, login, make_course, make_intake, make_profile


pytestmark = pytest.mark.anyio


def _admin():
    return make_profile(email="admin@example.com", full_name="Office Admin", role="service_role")


# --- Access control -----------------------------------------------------------


async def test_health_is_public():
    async with api_client() as client:
        resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy"}
    assert resp.headers["Cache-Control"] == "private, no-store"


async def test_private_api_requires_session():
    async with api_client() as client:
        for path in ("/api/me", "/api/user/enrollments", "/api/admin/courses"):
            resp = await client.get(path)
            assert resp.status_code == 401
            assert envelope(resp)["code"] == "UNAUTHENTICATED"
            assert envelope(resp)["error"] == "Unauthorized"


async def test_unknown_session_cookie_is_anonymous():
    async with api_client() as client:
        client.cookies.set("hope_session", "forged")
        resp = await client.get("/api/me")
    assert resp.status_code == 401


async def test_admin_api_requires_service_role():
    learner = make_profile()
    async with api_client() as client:
        login(client, learner)
        for path in ("/api/admin/courses", "/api/admin/dashboard"):
            resp = await client.get(path)
            assert resp.status_code == 403
            assert envelope(resp)["code"] == "FORBIDDEN"
        resp = await client.post("/api/delete-image", json={"imageUrl": "/uploads/x.png"})
        assert resp.status_code == 403


async def test_security_headers_are_set():
    async with api_client() as client:
        resp = await client.get("/health")
    assert resp.headers["X-Frame-Options"] == "SAMEORIGIN"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert "default-src 'self'" in resp.headers["Content-Security-Policy"]
    assert resp.headers["Strict-Transport-Security"].startswith("max-age=")


# --- Me -----------------------------------------------------------------------


async def test_me_returns_session_and_profile():
    learner = make_profile(email="learner@example.com", full_name="Asha Learner")
    async with api_client() as client:
        login(client, learner)
        resp = await client.get("/api/me")
        body = envelope(resp)
        assert body["success"] is True
        assert body["data"]["role"] == "authenticated"
        assert body["data"]["profile"]["email"] == "learner@example.com"
        assert body["data"]["expires_at"]

        resp = await client.patch("/api/me", json={"full_name": "Asha K.", "phone": "9812345678"})
        assert resp.status_code == 200
        assert envelope(resp)["data"]["full_name"] == "Asha K."

        resp = await client.patch("/api/me", json={"phone": "12"})
        assert resp.status_code == 400
        assert envelope(resp)["code"] == "INVALID_PHONE"


# --- Admin catalog ------------------------------------------------------------


async def test_admin_creates_course_and_gets_envelopes():
    admin = _admin()
    async with api_client() as client:
        login(client, admin)
        resp = await client.post("/api/admin/courses", json={"title": "Web Development", "price": 15000})
        assert resp.status_code == 201
        body = envelope(resp)
        assert body["message"] == "Course created"
        assert body["data"]["slug"] == "web-development"
        assert resp.headers["Cache-Control"] == "private, no-store"

        resp = await client.post("/api/admin/courses", json={"title": "Web Development", "price": 1})
        assert resp.status_code == 409
        assert envelope(resp)["code"] == "UNIQUE_CONSTRAINT_VIOLATION"

        resp = await client.post("/api/admin/courses", json={"title": "No price"})
        assert resp.status_code == 400
        body = envelope(resp)
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"]["errors"][0]["field"] == "price"

        resp = await client.get("/api/admin/courses", params={"search": "web"})
        listing = envelope(resp)["data"]
        assert listing["total"] == 1
        assert listing["data"][0]["intake_count"] == 0

        resp = await client.get("/api/admin/courses/missing")
        assert resp.status_code == 404
        assert envelope(resp)["code"] == "NOT_FOUND"


async def test_cross_origin_writes_are_rejected():
    admin = _admin()
    async with api_client() as client:
        login(client, admin)
        resp = await client.post(
            "/api/admin/categories",
            json={"name": "Technology"},
            headers={"Origin": "https://evil.example"},
        )
        assert resp.status_code == 403
        assert envelope(resp)["code"] == "CSRF_FAILED"

        resp = await client.post(
            "/api/admin/categories",
            json={"name": "Technology"},
            headers={"Origin": "http://test"},
        )
        assert resp.status_code == 201


async def test_production_requires_origin_on_writes(monkeypatch):
    admin = _admin()
    monkeypatch.setenv("HOPE_ENV", "prod")
    async with api_client() as client:
        login(client, admin)
        resp = await client.post("/api/admin/categories", json={"name": "Technology"})
        assert resp.status_code == 403


async def test_intake_endpoints():
    admin = _admin()
    course = make_course()
    async with api_client() as client:
        login(client, admin)
        resp = await client.get("/api/admin/intakes", params={"courseId": course.id})
        assert resp.status_code == 400
        assert envelope(resp)["code"] == "MISSING_PARAMETERS"

        resp = await client.post(
            "/api/admin/intakes/generate",
            json={"courseId": course.id, "year": 2031, "pattern": "bimonthly", "capacity": 15},
        )
        assert resp.status_code == 201
        assert len(envelope(resp)["data"]["created"]) == 6

        resp = await client.get("/api/admin/intakes", params={"courseId": course.id, "year": "2031"})
        assert envelope(resp)["data"]["metadata"]["total_capacity"] == 90


async def test_refund_through_the_api():
    admin = _admin()
    learner = make_profile()
    course = make_course(price=8000)
    intake = make_intake(course.id)
    async with api_client() as client:
        login(client, admin)
        resp = await client.post("/api/admin/enrollments", json={"user_id": learner.id, "intake_id": intake.id})
        assert resp.status_code == 201
        enrollment_id = envelope(resp)["data"]["id"]

        resp = await client.patch(f"/api/admin/enrollments/{enrollment_id}/status", json={"status": "enrolled"})
        assert envelope(resp)["data"]["status"] == "enrolled"

        with session_scope() as session:
            payment_id = session.query(Payment).filter_by(enrollment_id=enrollment_id).one().id

        resp = await client.post(f"/api/admin/payments/{payment_id}/refund", json={"amount": 9000, "reason": "Too much"})
        assert resp.status_code == 400
        assert envelope(resp)["code"] == "REFUND_EXCEEDS_AMOUNT"

        resp = await client.post(f"/api/admin/payments/{payment_id}/refund", json={"amount": 8000, "reason": "Course cancelled"})
        body = envelope(resp)
        assert body["message"] == "Refund recorded"
        assert body["data"]["status"] == "refunded"

        resp = await client.get("/api/admin/refunds", params={"paymentId": payment_id})
        assert len(envelope(resp)["data"]) == 1

        resp = await client.get("/api/admin/dashboard", params={"totalIncome": "1"})
        assert envelope(resp)["data"] == 0


async def test_admin_user_deletion_api():
    admin = _admin()
    learner = make_profile()
    async with api_client() as client:
        login(client, admin)
        resp = await client.request("DELETE", f"/api/admin/users/{admin.id}", json={"reason": "Testing"})
        assert resp.status_code == 403
        assert envelope(resp)["code"] == "SELF_DELETION"

        resp = await client.request(
            "DELETE", f"/api/admin/users/{learner.id}", json={"reason": "Duplicate", "scheduleDays": 7, "notify": False}
        )
        assert resp.status_code == 200
        assert envelope(resp)["data"]["scheduled_deletion_date"]

        resp = await client.get("/api/admin/users/deleted")
        assert envelope(resp)["data"]["total"] == 1

        resp = await client.post(f"/api/admin/users/{learner.id}/restore")
        assert envelope(resp)["message"] == "User restored"


async def test_soft_delete_and_demotion_end_open_sessions():
    head = _admin()
    deputy = make_profile(email="deputy@example.com", full_name="Deputy Admin", role="service_role")
    clerk = make_profile(email="clerk@example.com", full_name="Front Desk", role="service_role")
    async with api_client() as head_client, api_client() as deputy_client, api_client() as clerk_client:
        login(head_client, head)
        login(deputy_client, deputy)
        login(clerk_client, clerk)
        assert (await deputy_client.get("/api/admin/profiles")).status_code == 200
        assert (await clerk_client.get("/api/admin/profiles")).status_code == 200

        resp = await head_client.request("DELETE", f"/api/admin/users/{deputy.id}", json={"reason": "Left the institute"})
        assert resp.status_code == 200
        assert (await deputy_client.get("/api/admin/profiles")).status_code == 401
        assert (await deputy_client.post("/api/admin/categories", json={"name": "Hospitality"})).status_code == 401
        assert (await deputy_client.get("/api/me")).status_code == 401

        resp = await head_client.patch(f"/api/admin/profiles/{clerk.id}/role", json={"role": "authenticated"})
        assert resp.status_code == 200
        assert (await clerk_client.get("/api/admin/profiles")).status_code == 401

        # the acting admin keeps their own session
        assert (await head_client.get("/api/admin/profiles")).status_code == 200


# --- Public API ---------------------------------------------------------------


async def test_public_catalog_is_cacheable():
    course = make_course(title="Basic Computer")
    make_intake(course.id)
    async with api_client() as client:
        resp = await client.get("/api/public/courses")
        assert resp.status_code == 200
        assert resp.headers["Cache-Control"] == "public, max-age=60"
        assert envelope(resp)["data"]["total"] == 1

        resp = await client.get("/api/public/courses", params={"slug": "basic-computer"})
        assert len(envelope(resp)["data"]["intakes"]) == 1

        resp = await client.get("/api/public/courses", params={"slug": "nope"})
        assert resp.status_code == 404
        assert resp.headers["Cache-Control"] == "private, no-store"

        resp = await client.get("/api/public/intakes", params={"courseId": course.id})
        assert len(envelope(resp)["data"]) == 1

        resp = await client.get("/api/public/intakes")
        assert resp.status_code == 400
        assert envelope(resp)["code"] == "INVALID_REQUEST"

        resp = await client.get("/api/public/categories")
        assert envelope(resp)["data"] == []


async def test_contact_form_is_rate_limited():
    payload = {"name": "Sita Sharma", "email": "sita@example.com", "message": "Do you run weekend classes?"}
    async with api_client() as client:
        for _ in range(3):
            resp = await client.post("/api/contact", json=payload)
            assert resp.status_code == 201
        resp = await client.post("/api/contact", json=payload)
    assert resp.status_code == 429
    body = envelope(resp)
    assert body["code"] == "RATE_LIMITED"
    assert body["retryAfter"] >= 1
    assert resp.headers["Retry-After"] == str(body["retryAfter"])


async def test_contact_validation_error():
    async with api_client() as client:
        resp = await client.post("/api/contact", json={"name": "S", "email": "sita@example.com", "message": "Hello there!"})
    assert resp.status_code == 400
    assert envelope(resp)["code"] == "NAME_TOO_SHORT"


# --- Learner API --------------------------------------------------------------


async def test_learner_requests_and_cancels_enrollment():
    learner = make_profile()
    course = make_course(price=5000)
    intake = make_intake(course.id, capacity=3)
    async with api_client() as client:
        login(client, learner)
        resp = await client.post("/api/user/enrollments", json={"intakeId": intake.id, "notes": "Evening batch"})
        assert resp.status_code == 201
        enrollment_id = envelope(resp)["data"]["id"]

        resp = await client.post("/api/user/enrollments", json={"intakeId": intake.id})
        assert resp.status_code == 409
        assert envelope(resp)["code"] == "ALREADY_ENROLLED"

        resp = await client.get("/api/user/enrollments")
        assert envelope(resp)["data"]["total"] == 1

        resp = await client.post("/api/user/payments", json={"enrollmentId": enrollment_id, "amount": 2500})
        assert resp.status_code == 201
        assert envelope(resp)["data"]["status"] == "pending"

        resp = await client.get("/api/user/payments")
        assert envelope(resp)["data"]["total"] == 1

        resp = await client.post(f"/api/user/enrollments/{enrollment_id}/cancel", json={"reason": "Schedule clash"})
        assert envelope(resp)["data"]["status"] == "cancelled"


async def test_learner_cannot_touch_other_enrollments():
    owner = make_profile()
    stranger = make_profile()
    course = make_course()
    intake = make_intake(course.id)
    async with api_client() as client:
        login(client, owner)
        resp = await client.post("/api/user/enrollments", json={"intakeId": intake.id})
        enrollment_id = envelope(resp)["data"]["id"]

    async with api_client() as client:
        login(client, stranger)
        resp = await client.post(f"/api/user/enrollments/{enrollment_id}/cancel", json={})
        assert resp.status_code == 404
        resp = await client.post("/api/user/payments", json={"enrollmentId": enrollment_id, "amount": 100})
        assert resp.status_code == 400
