"""
Admin catalog API: courses, categories, affiliations and intakes.

Why:
    The back-office edits the catalog the public site reads. Handlers only
    translate HTTP into service calls; every rule (lengths, uniqueness, blocked
    deletes, capacity) lives in `backend.academy` so SSR forms and API clients
    get the same answers.

Permissions:
    Caller must hold `service_role`. The middleware rejects everyone else on
    `/api/admin/` before these handlers run.
"""
from __future__ import annotations

from datetime import datetime
import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field, field_validator

from backend.academy import affiliations, categories, courses, intakes

from ..responses import fail, list_params, run_service


admin_catalog_router = APIRouter(tags=["Admin catalog"])
logger = logging.getLogger("hope.web.admin")


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes")


def _strip(v):
    if isinstance(v, str):
        v = v.strip()
        return v if v else None
    return v


# --- Courses ------------------------------------------------------------------


class CourseCreate(BaseModel):
    title: str = Field(..., max_length=255)
    slug: str | None = Field(default=None, max_length=255)
    price: float
    category_id: str | None = None
    affiliation_id: str | None = None
    course_highlights: str | None = None
    course_overview: str | None = None
    image_url: str | None = Field(default=None, max_length=1024)
    level: int | None = None
    duration_type: str | None = None
    duration_value: int | None = None

    @field_validator("slug", "category_id", "affiliation_id", "image_url")
    @classmethod
    def _strip_empty(cls, v):
        return _strip(v)


class CourseUpdate(BaseModel):
    # Partial update: only fields sent by the client are applied
    title: str | None = Field(default=None, max_length=255)
    slug: str | None = Field(default=None, max_length=255)
    price: float | None = None
    category_id: str | None = None
    affiliation_id: str | None = None
    course_highlights: str | None = None
    course_overview: str | None = None
    image_url: str | None = Field(default=None, max_length=1024)
    level: int | None = None
    duration_type: str | None = None
    duration_value: int | None = None

    @field_validator("slug", "category_id", "affiliation_id", "image_url")
    @classmethod
    def _strip_empty(cls, v):
        return _strip(v)


class ImagePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_url: str = Field(..., min_length=1, max_length=1024, alias="imageUrl")


@admin_catalog_router.get("/api/admin/courses")
async def list_courses(request: Request):
    """List courses, or answer a single lookup.

    Query:
        `id` → course details, `slug` → course by slug, `getAll=1` → compact list
        for selects; otherwise paginated with search over title and slug.
    """
    q = request.query_params
    if q.get("id"):
        return run_service(request, lambda s: courses.get_course_details(s, q["id"]))
    if q.get("slug"):
        return run_service(request, lambda s: courses.get_course_by_slug(s, q["slug"]))
    if _flag(q.get("getAll")):
        return run_service(request, courses.list_all_courses)
    params = list_params(request)
    return run_service(request, lambda s: courses.list_courses(s, params))


@admin_catalog_router.post("/api/admin/courses")
async def create_course(request: Request, payload: CourseCreate):
    data = payload.model_dump(exclude_unset=True)
    return run_service(request, lambda s: courses.create_course(s, data), status_code=201, message="Course created")


@admin_catalog_router.get("/api/admin/courses/{course_id}")
async def get_course(request: Request, course_id: str):
    return run_service(request, lambda s: courses.get_course_details(s, course_id))


@admin_catalog_router.patch("/api/admin/courses/{course_id}")
async def update_course(request: Request, course_id: str, payload: CourseUpdate):
    data = payload.model_dump(exclude_unset=True)
    return run_service(request, lambda s: courses.update_course(s, course_id, data), message="Course updated")


@admin_catalog_router.delete("/api/admin/courses/{course_id}")
async def delete_course(request: Request, course_id: str):
    """Delete a course.

    Behavior:
        - 200 on success; a local uploaded image is removed as well.
        - 409 `CONSTRAINT_VIOLATION` while intakes reference the course.
    """
    return run_service(request, lambda s: courses.delete_course(s, course_id), message="Course deleted")


@admin_catalog_router.put("/api/admin/courses/{course_id}/image")
async def set_course_image(request: Request, course_id: str, payload: ImagePayload):
    return run_service(request, lambda s: courses.set_course_image(s, course_id, payload.image_url))


@admin_catalog_router.delete("/api/admin/courses/{course_id}/image")
async def clear_course_image(request: Request, course_id: str):
    return run_service(request, lambda s: courses.clear_course_image(s, course_id))


# --- Categories ---------------------------------------------------------------


class CategoryPayload(BaseModel):
    name: str | None = Field(default=None, max_length=255)
    description: str | None = None

    @field_validator("description")
    @classmethod
    def _strip_empty(cls, v):
        return _strip(v)


@admin_catalog_router.get("/api/admin/categories")
async def list_categories(request: Request):
    if _flag(request.query_params.get("getAll")):
        return run_service(request, categories.list_all_categories)
    params = list_params(request)
    return run_service(request, lambda s: categories.list_categories(s, params))


@admin_catalog_router.post("/api/admin/categories")
async def create_category(request: Request, payload: CategoryPayload):
    data = payload.model_dump(exclude_unset=True)
    return run_service(request, lambda s: categories.create_category(s, data), status_code=201)


@admin_catalog_router.get("/api/admin/categories/{category_id}")
async def get_category(request: Request, category_id: str):
    return run_service(request, lambda s: categories.get_category(s, category_id))


@admin_catalog_router.patch("/api/admin/categories/{category_id}")
async def update_category(request: Request, category_id: str, payload: CategoryPayload):
    data = payload.model_dump(exclude_unset=True)
    return run_service(request, lambda s: categories.update_category(s, category_id, data))


@admin_catalog_router.delete("/api/admin/categories/{category_id}")
async def delete_category(request: Request, category_id: str):
    return run_service(request, lambda s: categories.delete_category(s, category_id), message="Category deleted")


# --- Affiliations -------------------------------------------------------------


class AffiliationPayload(BaseModel):
    name: str | None = Field(default=None, max_length=255)
    type: str | None = Field(default=None, max_length=100)
    description: str | None = None

    @field_validator("description")
    @classmethod
    def _strip_empty(cls, v):
        return _strip(v)


@admin_catalog_router.get("/api/admin/affiliations")
async def list_affiliations(request: Request):
    if _flag(request.query_params.get("getAll")):
        return run_service(request, affiliations.list_all_affiliations)
    params = list_params(request)
    return run_service(request, lambda s: affiliations.list_affiliations(s, params))


@admin_catalog_router.post("/api/admin/affiliations")
async def create_affiliation(request: Request, payload: AffiliationPayload):
    data = payload.model_dump(exclude_unset=True)
    return run_service(request, lambda s: affiliations.create_affiliation(s, data), status_code=201)


@admin_catalog_router.get("/api/admin/affiliations/{affiliation_id}")
async def get_affiliation(request: Request, affiliation_id: str):
    return run_service(request, lambda s: affiliations.get_affiliation(s, affiliation_id))


@admin_catalog_router.patch("/api/admin/affiliations/{affiliation_id}")
async def update_affiliation(request: Request, affiliation_id: str, payload: AffiliationPayload):
    data = payload.model_dump(exclude_unset=True)
    return run_service(request, lambda s: affiliations.update_affiliation(s, affiliation_id, data))


@admin_catalog_router.delete("/api/admin/affiliations/{affiliation_id}")
async def delete_affiliation(request: Request, affiliation_id: str):
    return run_service(
        request, lambda s: affiliations.delete_affiliation(s, affiliation_id), message="Affiliation deleted"
    )


# --- Intakes ------------------------------------------------------------------


class IntakePayload(BaseModel):
    id: str | None = None
    course_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    capacity: int | None = None
    is_open: bool | None = None


class IntakeStatus(BaseModel):
    is_open: bool


class IntakeGenerate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    course_id: str = Field(..., min_length=1, alias="courseId")
    year: int | None = None
    pattern: str = "quarterly"
    capacity: int = intakes.DEFAULT_CAPACITY


@admin_catalog_router.get("/api/admin/intakes")
async def list_intakes(request: Request):
    """List intakes.

    Query:
        `courseId` + `year` → intakes of that year with utilization metadata;
        `active=1` → open future intakes; `all=1` → every intake with its
        course; otherwise paginated.
    """
    q = request.query_params
    if q.get("courseId") and q.get("year") is not None:
        return run_service(request, lambda s: intakes.by_course_and_year(s, q["courseId"], q.get("year")))
    if q.get("courseId") or q.get("year") is not None:
        return fail("Both courseId and year are required", "MISSING_PARAMETERS", status_code=400)
    if _flag(q.get("active")):
        return run_service(request, intakes.list_all_active)
    if _flag(q.get("all")):
        return run_service(request, intakes.list_all_intakes)
    params = list_params(request)
    return run_service(request, lambda s: intakes.list_intakes(s, params))


@admin_catalog_router.post("/api/admin/intakes")
async def create_intake(request: Request, payload: IntakePayload):
    data = payload.model_dump(exclude_unset=True)
    return run_service(request, lambda s: intakes.create_intake(s, data), status_code=201)


@admin_catalog_router.put("/api/admin/intakes")
async def upsert_intake(request: Request, payload: IntakePayload):
    data = payload.model_dump(exclude_unset=True)
    return run_service(request, lambda s: intakes.upsert_intake(s, data))


@admin_catalog_router.post("/api/admin/intakes/generate")
async def generate_intakes(request: Request, payload: IntakeGenerate):
    return run_service(
        request,
        lambda s: intakes.generate_for_course(s, payload.course_id, payload.year, payload.pattern, payload.capacity),
        status_code=201,
    )


@admin_catalog_router.get("/api/admin/intakes/{intake_id}")
async def get_intake(request: Request, intake_id: str):
    return run_service(request, lambda s: intakes.get_intake_details(s, intake_id))


@admin_catalog_router.patch("/api/admin/intakes/{intake_id}")
async def update_intake(request: Request, intake_id: str, payload: IntakePayload):
    data = payload.model_dump(exclude_unset=True)
    data.pop("id", None)
    return run_service(request, lambda s: intakes.update_intake(s, intake_id, data))


@admin_catalog_router.patch("/api/admin/intakes/{intake_id}/status")
async def update_intake_status(request: Request, intake_id: str, payload: IntakeStatus):
    return run_service(request, lambda s: intakes.update_intake_status(s, intake_id, payload.is_open))


@admin_catalog_router.delete("/api/admin/intakes/{intake_id}")
async def delete_intake(request: Request, intake_id: str):
    return run_service(request, lambda s: intakes.delete_intake(s, intake_id), message="Intake deleted")
