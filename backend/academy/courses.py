"""
Courses: admin catalog management and the public catalog.

Why:
    The public catalog is the hottest read path of the site, so public reads go
    through the query cache; every admin write marks the `("public", "courses")`
    branch stale.

Behavior:
    - Slugs are derived from the title when omitted and must stay unique.
    - A course cannot be deleted while intakes exist (and therefore while any
      enrollment exists); its locally uploaded image is removed on delete.
    - Public rows carry the earliest upcoming open intake and its free seats.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional
import logging
import re
import unicodedata

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from backend.db.models import DURATION_TYPES, Affiliation, Course, CourseCategory, Enrollment, Intake
from backend.db.session import utcnow
from backend.storage import local as local_storage

from .cache import CACHE, QueryKeys, mark_stale
from .errors import ConstraintViolation, NotFound, UniqueViolation, ValidationFailed
from .querying import ListParams, paginate
from .validation import get_or_404, require_choice, require_length


logger = logging.getLogger("hope.academy.courses")

SLUG_RE = re.compile(r"^[a-z0-9-_]+$")

_intake_count = (
    select(func.count(Intake.id)).where(Intake.course_id == Course.id).correlate(Course).scalar_subquery()
)
_enrollment_count = (
    select(func.count(Enrollment.id))
    .join(Intake, Enrollment.intake_id == Intake.id)
    .where(Intake.course_id == Course.id)
    .correlate(Course)
    .scalar_subquery()
)

ADMIN_COLUMNS = {
    "id": Course.id,
    "title": Course.title,
    "slug": Course.slug,
    "level": Course.level,
    "price": Course.price,
    "duration_type": Course.duration_type,
    "duration_value": Course.duration_value,
    "category_id": Course.category_id,
    "affiliation_id": Course.affiliation_id,
    "category_name": CourseCategory.name,
    "affiliation_name": Affiliation.name,
    "intake_count": _intake_count,
    "enrollment_count": _enrollment_count,
    "created_at": Course.created_at,
    "updated_at": Course.updated_at,
}

PUBLIC_COLUMNS = {
    "title": Course.title,
    "name": Course.title,
    "category": CourseCategory.name,
    "price": Course.price,
    "duration_type": Course.duration_type,
    "duration_value": Course.duration_value,
    "level": Course.level,
    "created_at": Course.created_at,
}


def slugify(value: str) -> str:
    ascii_value = unicodedata.normalize("NFKD", value or "").encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_value.lower()).strip("-")
    return slug


def _admin_stmt():
    return (
        select(
            Course,
            CourseCategory.name.label("category_name"),
            Affiliation.name.label("affiliation_name"),
            _intake_count.label("intake_count"),
            _enrollment_count.label("enrollment_count"),
        )
        .outerjoin(CourseCategory, Course.category_id == CourseCategory.id)
        .outerjoin(Affiliation, Course.affiliation_id == Affiliation.id)
    )


def list_courses(session: Session, params: ListParams) -> Dict[str, Any]:
    return paginate(
        session,
        _admin_stmt(),
        params,
        ADMIN_COLUMNS,
        search_columns=(Course.title, Course.slug),
    )


def list_all_courses(session: Session) -> List[Dict[str, Any]]:
    rows = session.execute(
        select(Course.id, Course.title, Course.slug, Course.price, CourseCategory.name.label("category_name"))
        .outerjoin(CourseCategory, Course.category_id == CourseCategory.id)
        .order_by(Course.title)
    ).all()
    return [dict(r._asdict()) for r in rows]


def intake_to_dict(intake: Intake) -> Dict[str, Any]:
    data = intake.to_dict()
    data["available_spots"] = max(0, int(intake.capacity) - int(intake.total_registered))
    data["available_seats"] = data["available_spots"]
    return data


def get_course_details(session: Session, course_id: str) -> Dict[str, Any]:
    course = get_or_404(session, Course, course_id, "Course")
    data = course.to_dict()
    data["category"] = course.category.to_dict() if course.category else None
    data["affiliation"] = course.affiliation.to_dict() if course.affiliation else None
    intakes = sorted(course.intakes, key=lambda i: i.start_date)
    data["intakes"] = [intake_to_dict(i) for i in intakes]
    return data


def get_course_by_slug(session: Session, slug: str) -> Dict[str, Any]:
    course = session.execute(select(Course).where(Course.slug == slug)).scalar_one_or_none()
    if course is None:
        raise NotFound("Course", slug)
    return get_course_details(session, course.id)


def _validated_fields(session: Session, data: Mapping[str, Any], *, partial: bool) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if not partial or "title" in data:
        out["title"] = require_length(data.get("title"), "title", 3, 255)
    if "slug" in data or not partial:
        raw_slug = (data.get("slug") or "").strip()
        if not raw_slug and "title" in out:
            raw_slug = slugify(out["title"])
        if raw_slug:
            if not SLUG_RE.match(raw_slug):
                raise ValidationFailed(
                    "Slug can only contain lowercase letters, numbers, hyphens and underscores",
                    "INVALID_SLUG",
                    {"slug": raw_slug},
                )
            out["slug"] = raw_slug
        elif not partial:
            raise ValidationFailed("Slug is required", "SLUG_REQUIRED")
    if not partial or "price" in data:
        try:
            price = float(data.get("price"))
        except (TypeError, ValueError):
            raise ValidationFailed("Price must be a number", "INVALID_PRICE")
        if price < 0:
            raise ValidationFailed("Price cannot be negative", "INVALID_PRICE", {"price": price})
        out["price"] = price
    if "duration_value" in data and data.get("duration_value") is not None:
        try:
            value = int(data.get("duration_value"))
        except (TypeError, ValueError):
            raise ValidationFailed("Duration must be a whole number", "INVALID_DURATION")
        if value <= 0:
            raise ValidationFailed("Duration must be greater than 0", "INVALID_DURATION", {"duration_value": value})
        out["duration_value"] = value
    if "duration_type" in data and data.get("duration_type") is not None:
        out["duration_type"] = require_choice(data.get("duration_type"), "duration_type", DURATION_TYPES)
    if "level" in data and data.get("level") is not None:
        try:
            level = int(data.get("level"))
        except (TypeError, ValueError):
            raise ValidationFailed("Level must be a whole number", "INVALID_LEVEL")
        if level < 1:
            raise ValidationFailed("Level must be at least 1", "INVALID_LEVEL", {"level": level})
        out["level"] = level
    for ref, model, label in (("category_id", CourseCategory, "Category"), ("affiliation_id", Affiliation, "Affiliation")):
        if ref in data:
            ref_id = data.get(ref) or None
            if ref_id is not None and session.get(model, ref_id) is None:
                raise ValidationFailed(f"{label} does not exist", f"INVALID_{ref.upper()}", {ref: ref_id})
            out[ref] = ref_id
    for text_field in ("course_highlights", "course_overview", "image_url"):
        if text_field in data:
            out[text_field] = data.get(text_field) or None
    return out


def _ensure_unique_slug(session: Session, slug: str, exclude_id: Optional[str] = None) -> None:
    stmt = select(Course.id).where(Course.slug == slug)
    if exclude_id:
        stmt = stmt.where(Course.id != exclude_id)
    if session.execute(stmt).first() is not None:
        raise UniqueViolation("A course with this slug already exists", {"slug": slug})


def create_course(session: Session, data: Mapping[str, Any]) -> Dict[str, Any]:
    fields = _validated_fields(session, data, partial=False)
    _ensure_unique_slug(session, fields["slug"])
    course = Course(**fields)
    session.add(course)
    session.flush()
    mark_stale(session, QueryKeys.courses(), QueryKeys.intakes())
    logger.info("course created id=%s slug=%s", course.id, course.slug)
    return course.to_dict()


def update_course(session: Session, course_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    course = get_or_404(session, Course, course_id, "Course")
    fields = _validated_fields(session, data, partial=True)
    if "slug" in fields and fields["slug"] != course.slug:
        _ensure_unique_slug(session, fields["slug"], exclude_id=course.id)
    for key, value in fields.items():
        setattr(course, key, value)
    session.flush()
    mark_stale(session, QueryKeys.courses(), QueryKeys.intakes())
    return course.to_dict()


def delete_course(session: Session, course_id: str) -> None:
    course = get_or_404(session, Course, course_id, "Course")
    intake_count = session.execute(select(func.count(Intake.id)).where(Intake.course_id == course.id)).scalar_one()
    if intake_count:
        raise ConstraintViolation(
            "Cannot delete course with existing intakes",
            details={"intake_count": int(intake_count)},
        )
    image_url = course.image_url
    session.delete(course)
    session.flush()
    if local_storage.is_local_upload(image_url):
        try:
            local_storage.delete_image(image_url)
        except OSError:
            logger.warning("could not remove image of deleted course id=%s", course_id)
    mark_stale(session, QueryKeys.courses(), QueryKeys.intakes())
    logger.info("course deleted id=%s", course_id)


def set_course_image(session: Session, course_id: str, image_url: str) -> Dict[str, Any]:
    course = get_or_404(session, Course, course_id, "Course")
    url = (image_url or "").strip()
    if not url:
        raise ValidationFailed("Image URL is required", "IMAGE_URL_REQUIRED")
    course.image_url = url
    session.flush()
    mark_stale(session, QueryKeys.courses())
    return course.to_dict()


def clear_course_image(session: Session, course_id: str) -> Dict[str, Any]:
    course = get_or_404(session, Course, course_id, "Course")
    previous = course.image_url
    course.image_url = None
    session.flush()
    if local_storage.is_local_upload(previous):
        local_storage.delete_image(previous)
    mark_stale(session, QueryKeys.courses())
    return course.to_dict()


# --- Public catalog -----------------------------------------------------------


def _next_intakes(session: Session, course_ids: Iterable[str]) -> Dict[str, Intake]:
    ids = list(course_ids)
    if not ids:
        return {}
    rows = session.execute(
        select(Intake)
        .where(Intake.course_id.in_(ids), Intake.is_open.is_(True), Intake.start_date > utcnow())
        .order_by(Intake.start_date.asc())
    ).scalars()
    out: Dict[str, Intake] = {}
    for intake in rows:
        out.setdefault(intake.course_id, intake)
    return out


def _public_row(row: Any, next_intake: Optional[Intake]) -> Dict[str, Any]:
    course: Course = row.Course
    data = course.to_dict()
    data["category_name"] = row.category_name
    data["affiliation_name"] = row.affiliation_name
    if next_intake is not None:
        data["next_intake_id"] = next_intake.id
        data["next_intake_date"] = next_intake.to_dict()["start_date"]
        data["available_seats"] = max(0, next_intake.capacity - next_intake.total_registered)
    else:
        data["next_intake_id"] = None
        data["next_intake_date"] = None
        data["available_seats"] = None
    return data


def _public_stmt():
    return (
        select(
            Course,
            CourseCategory.name.label("category_name"),
            Affiliation.name.label("affiliation_name"),
        )
        .outerjoin(CourseCategory, Course.category_id == CourseCategory.id)
        .outerjoin(Affiliation, Course.affiliation_id == Affiliation.id)
    )


def _load_public_list(session: Session, params: ListParams) -> Dict[str, Any]:
    extra = []
    category = params.filter_value("category")
    filters = [(k, v) for k, v in params.filters if k != "category"]
    if isinstance(category, str) and category.strip():
        needle = category.strip()
        extra.append(or_(CourseCategory.name.ilike(needle), Course.category_id == needle))
    scoped = ListParams(
        page=params.page,
        page_size=params.page_size,
        sort_by=params.sort_by,
        order=params.order,
        filters=filters,
        search=params.search,
    )
    result = paginate(
        session,
        _public_stmt(),
        scoped,
        PUBLIC_COLUMNS,
        search_columns=(Course.title, Course.course_overview),
        extra_conditions=extra,
        mapper=lambda r: r,
    )
    nxt = _next_intakes(session, [r.Course.id for r in result["data"]])
    result["data"] = [_public_row(r, nxt.get(r.Course.id)) for r in result["data"]]
    return result


def public_list(session: Session, params: ListParams) -> Dict[str, Any]:
    key = QueryKeys.courses("list", params.cache_key())
    return CACHE.get_or_set(key, lambda: _load_public_list(session, params))


def public_get(session: Session, course_id: str) -> Dict[str, Any]:
    def load() -> Dict[str, Any]:
        row = session.execute(_public_stmt().where(Course.id == course_id)).first()
        if row is None:
            raise NotFound("Course", course_id)
        return _public_row(row, _next_intakes(session, [course_id]).get(course_id))

    return CACHE.get_or_set(QueryKeys.courses("id", course_id), load)


def public_get_by_slug(session: Session, slug: str) -> Dict[str, Any]:
    def load() -> Dict[str, Any]:
        row = session.execute(_public_stmt().where(Course.slug == slug)).first()
        if row is None:
            raise NotFound("Course", slug)
        course_id = row.Course.id
        data = _public_row(row, _next_intakes(session, [course_id]).get(course_id))
        upcoming = session.execute(
            select(Intake)
            .where(Intake.course_id == course_id, Intake.is_open.is_(True), Intake.start_date > utcnow())
            .order_by(Intake.start_date.asc())
        ).scalars()
        data["intakes"] = [intake_to_dict(i) for i in upcoming]
        return data

    return CACHE.get_or_set(QueryKeys.courses("slug", slug), load)


def related_courses(session: Session, course_id: str, limit: int = 3) -> List[Dict[str, Any]]:
    def load() -> List[Dict[str, Any]]:
        course = session.get(Course, course_id)
        if course is None:
            raise NotFound("Course", course_id)
        if course.category_id is None:
            return []
        rows = session.execute(
            _public_stmt()
            .where(Course.category_id == course.category_id, Course.id != course.id)
            .order_by(Course.created_at.desc())
            .limit(limit)
        ).all()
        nxt = _next_intakes(session, [r.Course.id for r in rows])
        return [_public_row(r, nxt.get(r.Course.id)) for r in rows]

    return CACHE.get_or_set(QueryKeys.courses("related", course_id, limit), load)
