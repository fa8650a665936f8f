"""
Intakes: dated cohorts of a course with a seat capacity.

Behavior:
    - `total_registered` counts seats held by requested/enrolled enrollments;
      it is maintained by the enrollment service, never edited directly.
    - `generate_for_course` creates a year of intakes from a month pattern and
      skips months that already have one.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional
import logging

from sqlalchemy import extract, func, select
from sqlalchemy.orm import Session

from backend.db.models import Course, Enrollment, Intake
from backend.db.session import as_utc, utcnow

from .cache import CACHE, QueryKeys, mark_stale
from .courses import intake_to_dict
from .errors import ConstraintViolation, NotFound, ValidationFailed
from .querying import ListParams, paginate
from .validation import get_or_404, parse_datetime


logger = logging.getLogger("hope.academy.intakes")

PATTERNS: Dict[str, tuple[int, ...]] = {
    "quarterly": (1, 4, 7, 10),
    "bimonthly": (1, 3, 5, 7, 9, 11),
}
DEFAULT_CAPACITY = 20
MAX_CAPACITY = 10000

_enrollment_count = (
    select(func.count(Enrollment.id)).where(Enrollment.intake_id == Intake.id).correlate(Intake).scalar_subquery()
)

COLUMNS = {
    "id": Intake.id,
    "course_id": Intake.course_id,
    "course_title": Course.title,
    "start_date": Intake.start_date,
    "end_date": Intake.end_date,
    "capacity": Intake.capacity,
    "is_open": Intake.is_open,
    "total_registered": Intake.total_registered,
    "enrollment_count": _enrollment_count,
    "created_at": Intake.created_at,
    "updated_at": Intake.updated_at,
}


def _list_row(row: Any) -> Dict[str, Any]:
    data = row.Intake.to_dict()
    data["course_title"] = row.course_title
    data["enrollment_count"] = int(row.enrollment_count or 0)
    data["available_spots"] = max(0, int(row.Intake.capacity) - data["enrollment_count"])
    return data


def list_intakes(session: Session, params: ListParams) -> Dict[str, Any]:
    stmt = select(Intake, Course.title.label("course_title"), _enrollment_count.label("enrollment_count")).join(
        Course, Intake.course_id == Course.id
    )
    return paginate(
        session,
        stmt,
        params,
        COLUMNS,
        search_columns=(Course.title,),
        mapper=_list_row,
    )


def get_intake_details(session: Session, intake_id: str) -> Dict[str, Any]:
    intake = get_or_404(session, Intake, intake_id, "Intake")
    data = intake_to_dict(intake)
    data["course"] = intake.course.to_dict()
    data["enrollment_count"] = len(intake.enrollments)
    return data


def _capacity(raw: Any) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationFailed("Capacity must be a whole number", "INVALID_CAPACITY")
    if value < 1 or value > MAX_CAPACITY:
        raise ValidationFailed(
            f"Capacity must be between 1 and {MAX_CAPACITY}", "INVALID_CAPACITY", {"capacity": value}
        )
    return value


def _check_dates(start: datetime, end: datetime) -> None:
    if as_utc(start) >= as_utc(end):
        raise ValidationFailed(
            "Start date must be before end date",
            "INVALID_DATE_RANGE",
            {"start_date": as_utc(start).isoformat(), "end_date": as_utc(end).isoformat()},
        )


def create_intake(session: Session, data: Mapping[str, Any]) -> Dict[str, Any]:
    course_id = data.get("course_id")
    if not course_id or session.get(Course, course_id) is None:
        raise ValidationFailed("Course does not exist", "INVALID_COURSE_ID", {"course_id": course_id})
    start = as_utc(parse_datetime(data.get("start_date"), "start_date"))
    end = as_utc(parse_datetime(data.get("end_date"), "end_date"))
    _check_dates(start, end)
    intake = Intake(
        course_id=course_id,
        start_date=start,
        end_date=end,
        capacity=_capacity(data["capacity"] if data.get("capacity") is not None else DEFAULT_CAPACITY),
        is_open=bool(data["is_open"]) if data.get("is_open") is not None else True,
    )
    session.add(intake)
    session.flush()
    mark_stale(session, QueryKeys.intakes(), QueryKeys.courses())
    logger.info("intake created id=%s course=%s", intake.id, course_id)
    return intake_to_dict(intake)


def update_intake(session: Session, intake_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    intake = get_or_404(session, Intake, intake_id, "Intake")
    if "course_id" in data and data.get("course_id") != intake.course_id:
        if session.get(Course, data.get("course_id")) is None:
            raise ValidationFailed("Course does not exist", "INVALID_COURSE_ID", {"course_id": data.get("course_id")})
        intake.course_id = data["course_id"]
    start = as_utc(parse_datetime(data["start_date"], "start_date")) if data.get("start_date") else as_utc(intake.start_date)
    end = as_utc(parse_datetime(data["end_date"], "end_date")) if data.get("end_date") else as_utc(intake.end_date)
    _check_dates(start, end)
    intake.start_date, intake.end_date = start, end
    if "capacity" in data and data.get("capacity") is not None:
        capacity = _capacity(data.get("capacity"))
        if capacity < intake.total_registered:
            raise ValidationFailed(
                "Capacity cannot be lower than the number of registered learners",
                "CAPACITY_BELOW_REGISTERED",
                {"capacity": capacity, "total_registered": intake.total_registered},
            )
        intake.capacity = capacity
    if "is_open" in data and data.get("is_open") is not None:
        intake.is_open = bool(data.get("is_open"))
    session.flush()
    mark_stale(session, QueryKeys.intakes(), QueryKeys.courses())
    return intake_to_dict(intake)


def upsert_intake(session: Session, data: Mapping[str, Any]) -> Dict[str, Any]:
    if data.get("id"):
        return update_intake(session, str(data["id"]), data)
    return create_intake(session, data)


def delete_intake(session: Session, intake_id: str) -> None:
    intake = get_or_404(session, Intake, intake_id, "Intake")
    count = session.execute(select(func.count(Enrollment.id)).where(Enrollment.intake_id == intake.id)).scalar_one()
    if count:
        raise ConstraintViolation(
            "Cannot delete intake with existing enrollments",
            details={"enrollment_count": int(count)},
        )
    session.delete(intake)
    session.flush()
    mark_stale(session, QueryKeys.intakes(), QueryKeys.courses())
    logger.info("intake deleted id=%s", intake_id)


def update_intake_status(session: Session, intake_id: str, is_open: bool) -> Dict[str, Any]:
    intake = get_or_404(session, Intake, intake_id, "Intake")
    intake.is_open = bool(is_open)
    session.flush()
    mark_stale(session, QueryKeys.intakes(), QueryKeys.courses())
    return intake_to_dict(intake)


def _validate_year(raw: Any) -> int:
    text = str(raw).strip() if raw is not None else ""
    if len(text) != 4 or not text.isdigit() or not (1900 <= int(text) <= 2100):
        raise ValidationFailed("Year must be a 4 digit year between 1900 and 2100", "INVALID_YEAR", {"year": raw})
    return int(text)


def generate_for_course(
    session: Session,
    course_id: str,
    year: Optional[int] = None,
    pattern: str = "quarterly",
    capacity: int = DEFAULT_CAPACITY,
) -> Dict[str, Any]:
    """Create intakes for `course_id` in `year` following a month pattern.

    Returns:
        `{"created": [...intakes], "skipped": [months]}`
    """
    get_or_404(session, Course, course_id, "Course")
    months = PATTERNS.get(pattern)
    if months is None:
        raise ValidationFailed("Unknown intake pattern", "INVALID_PATTERN", {"pattern": pattern, "allowed": list(PATTERNS)})
    target_year = _validate_year(year if year is not None else utcnow().year)
    existing = {
        as_utc(d).month
        for d in session.execute(
            select(Intake.start_date).where(
                Intake.course_id == course_id, extract("year", Intake.start_date) == target_year
            )
        ).scalars()
    }
    created: List[Intake] = []
    skipped: List[int] = []
    for month in months:
        if month in existing:
            skipped.append(month)
            continue
        intake = Intake(
            course_id=course_id,
            start_date=datetime(target_year, month, 1, tzinfo=timezone.utc),
            end_date=datetime(target_year, month, 28, tzinfo=timezone.utc),
            capacity=_capacity(capacity),
            is_open=True,
        )
        session.add(intake)
        created.append(intake)
    session.flush()
    if created:
        mark_stale(session, QueryKeys.intakes(), QueryKeys.courses())
    logger.info("intakes generated course=%s year=%s created=%s", course_id, target_year, len(created))
    return {"created": [intake_to_dict(i) for i in created], "skipped": skipped}


def by_course_and_year(session: Session, course_id: str, year: Any) -> Dict[str, Any]:
    target_year = _validate_year(year)
    rows = session.execute(
        select(Intake)
        .where(Intake.course_id == course_id, extract("year", Intake.start_date) == target_year)
        .order_by(Intake.start_date.asc())
    ).scalars().all()
    total_capacity = sum(int(i.capacity) for i in rows)
    total_registered = sum(int(i.total_registered) for i in rows)
    utilization = round(total_registered / total_capacity * 100, 2) if total_capacity else 0.0
    return {
        "intakes": [intake_to_dict(i) for i in rows],
        "metadata": {
            "total_intakes": len(rows),
            "total_capacity": total_capacity,
            "total_registered": total_registered,
            "utilization_rate": utilization,
        },
    }


def _with_course(rows) -> List[Dict[str, Any]]:
    out = []
    for intake, title, slug in rows:
        data = intake_to_dict(intake)
        data["course_title"] = title
        data["course_slug"] = slug
        out.append(data)
    return out


def list_all_active(session: Session) -> List[Dict[str, Any]]:
    rows = session.execute(
        select(Intake, Course.title, Course.slug)
        .join(Course, Intake.course_id == Course.id)
        .where(Intake.is_open.is_(True), Intake.start_date > utcnow())
        .order_by(Intake.start_date.asc())
    ).all()
    return _with_course(rows)


def list_all_intakes(session: Session) -> List[Dict[str, Any]]:
    rows = session.execute(
        select(Intake, Course.title, Course.slug)
        .join(Course, Intake.course_id == Course.id)
        .order_by(Intake.start_date.desc())
    ).all()
    return _with_course(rows)


# --- Public reads -------------------------------------------------------------


def public_by_course(session: Session, course_id: str) -> List[Dict[str, Any]]:
    def load() -> List[Dict[str, Any]]:
        rows = session.execute(
            select(Intake)
            .where(Intake.course_id == course_id, Intake.is_open.is_(True), Intake.start_date > utcnow())
            .order_by(Intake.start_date.asc())
        ).scalars()
        return [intake_to_dict(i) for i in rows]

    return CACHE.get_or_set(QueryKeys.intakes("course", course_id), load)


def public_get(session: Session, intake_id: str) -> Dict[str, Any]:
    def load() -> Dict[str, Any]:
        row = session.execute(
            select(Intake, Course.title, Course.slug)
            .join(Course, Intake.course_id == Course.id)
            .where(Intake.id == intake_id)
        ).first()
        if row is None:
            raise NotFound("Intake", intake_id)
        return _with_course([row])[0]

    return CACHE.get_or_set(QueryKeys.intakes("id", intake_id), load)


def public_upcoming(session: Session, limit: int = 5) -> List[Dict[str, Any]]:
    limit = max(1, min(50, int(limit)))
    return CACHE.get_or_set(QueryKeys.intakes("upcoming", limit), lambda: list_all_active(session)[:limit])


def public_all(session: Session) -> List[Dict[str, Any]]:
    return CACHE.get_or_set(QueryKeys.intakes("all"), lambda: list_all_active(session))


def public_by_course_slug(session: Session, slug: str) -> List[Dict[str, Any]]:
    course_id = session.execute(select(Course.id).where(Course.slug == slug)).scalar_one_or_none()
    if course_id is None:
        raise NotFound("Course", slug)
    return public_by_course(session, course_id)
