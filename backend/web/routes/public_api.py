"""
Public catalog API (no session required).

Why:
    The public site and third-party clients read the catalog through the same
    contract as the SSR pages. Reads are served from the query cache inside the
    academy services; successful responses may be cached briefly by browsers.

Behavior:
    - `GET /api/public/courses` answers by `id`, `slug`, `related` or as a page.
    - `GET /api/public/intakes` requires one selector; anything else is 400.
    - `GET /api/public/categories` lists all categories (id and name).
    - `POST /api/contact` stores a contact request, rate-limited per client.
"""
from __future__ import annotations

from typing import Optional
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from backend.academy import categories, contact, courses, intakes

from ..config import contact_rate_limit
from ..responses import fail, json_private, list_params, run_service
from .security import RateLimiter, client_ip


public_router = APIRouter(tags=["Public"])
logger = logging.getLogger("hope.web.public")

PUBLIC_CACHE_CONTROL = "public, max-age=60"

_attempts, _window = contact_rate_limit()
CONTACT_LIMITER = RateLimiter(_attempts, _window)


def _cacheable(response: JSONResponse) -> JSONResponse:
    if response.status_code == 200:
        response.headers["Cache-Control"] = PUBLIC_CACHE_CONTROL
    return response


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes")


@public_router.get("/api/public/courses")
async def public_courses(request: Request):
    """Catalog listing or a single course.

    Query:
        `id`, `slug` or `related=<course_id>` select a single shape; otherwise
        the list parameters (`page`, `pageSize`, `sortBy`, `order`, `filters`)
        apply with `sortBy` limited to the public column map.
    """
    q = request.query_params
    if q.get("id"):
        return _cacheable(run_service(request, lambda s: courses.public_get(s, q["id"])))
    if q.get("slug"):
        return _cacheable(run_service(request, lambda s: courses.public_get_by_slug(s, q["slug"])))
    if q.get("related"):
        return _cacheable(run_service(request, lambda s: courses.related_courses(s, q["related"])))
    params = list_params(request)
    return _cacheable(run_service(request, lambda s: courses.public_list(s, params)))


@public_router.get("/api/public/intakes")
async def public_intakes(request: Request):
    q = request.query_params
    if q.get("courseId"):
        return _cacheable(run_service(request, lambda s: intakes.public_by_course(s, q["courseId"])))
    if q.get("intakeId"):
        return _cacheable(run_service(request, lambda s: intakes.public_get(s, q["intakeId"])))
    if _flag(q.get("upcoming")):
        try:
            limit = max(1, min(50, int(q.get("limit") or 5)))
        except ValueError:
            limit = 5
        return _cacheable(run_service(request, lambda s: intakes.public_upcoming(s, limit)))
    if _flag(q.get("all")):
        return _cacheable(run_service(request, intakes.public_all))
    if q.get("slug"):
        return _cacheable(run_service(request, lambda s: intakes.public_by_course_slug(s, q["slug"])))
    return fail("Invalid request", "INVALID_REQUEST", status_code=400)


@public_router.get("/api/public/categories")
async def public_categories(request: Request):
    return _cacheable(run_service(request, categories.public_categories))


class ContactCreate(BaseModel):
    name: str = Field(default="", max_length=200)
    email: str = Field(default="", max_length=320)
    phone: str | None = Field(default=None, max_length=40)
    message: str = Field(default="", max_length=10000)

    @field_validator("phone")
    @classmethod
    def _strip_empty(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v if v else None
        return v


@public_router.post("/api/contact")
async def submit_contact(request: Request, payload: ContactCreate):
    """Store a contact request and notify the institute.

    Behavior:
        - 201 with the stored request.
        - 400 on invalid name, e-mail, phone or message.
        - 429 with `retryAfter` (seconds) when the client exceeds the limit.
    """
    allowed, retry_after = CONTACT_LIMITER.hit(client_ip(request))
    if not allowed:
        logger.info("contact form rate-limited")
        resp = json_private(
            {
                "success": False,
                "error": "Too many requests. Please try again later.",
                "code": "RATE_LIMITED",
                "retryAfter": retry_after,
            },
            status_code=429,
        )
        resp.headers["Retry-After"] = str(retry_after)
        return resp
    return run_service(
        request,
        lambda s: contact.submit(s, payload.name, payload.email, payload.phone, payload.message),
        status_code=201,
        message="Thank you for contacting us. We will get back to you soon.",
    )
