"""Course categories: admin CRUD plus the public name list."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.db.models import Course, CourseCategory

from .cache import CACHE, QueryKeys, mark_stale
from .errors import ConstraintViolation, UniqueViolation
from .querying import ListParams, paginate
from .validation import get_or_404, require_length


logger = logging.getLogger("hope.academy.categories")

_course_count = (
    select(func.count(Course.id)).where(Course.category_id == CourseCategory.id).correlate(CourseCategory).scalar_subquery()
)

COLUMNS = {
    "id": CourseCategory.id,
    "name": CourseCategory.name,
    "description": CourseCategory.description,
    "created_at": CourseCategory.created_at,
    "updated_at": CourseCategory.updated_at,
    "course_count": _course_count,
}


def list_categories(session: Session, params: ListParams) -> Dict[str, Any]:
    stmt = select(CourseCategory, _course_count.label("course_count"))
    return paginate(
        session,
        stmt,
        params,
        COLUMNS,
        search_columns=(CourseCategory.name, CourseCategory.description),
    )


def list_all_categories(session: Session) -> List[Dict[str, Any]]:
    rows = session.execute(select(CourseCategory.id, CourseCategory.name).order_by(CourseCategory.name)).all()
    return [{"id": r.id, "name": r.name} for r in rows]


def public_categories(session: Session) -> List[Dict[str, Any]]:
    return CACHE.get_or_set(QueryKeys.categories("all"), lambda: list_all_categories(session))


def get_category(session: Session, category_id: str) -> Dict[str, Any]:
    return get_or_404(session, CourseCategory, category_id, "Category").to_dict()


def _ensure_unique_name(session: Session, name: str, exclude_id: str | None = None) -> None:
    stmt = select(CourseCategory.id).where(func.lower(CourseCategory.name) == name.lower())
    if exclude_id:
        stmt = stmt.where(CourseCategory.id != exclude_id)
    if session.execute(stmt).first() is not None:
        raise UniqueViolation("A category with this name already exists", {"name": name})


def create_category(session: Session, data: Mapping[str, Any]) -> Dict[str, Any]:
    name = require_length(data.get("name"), "name", 3, 255)
    _ensure_unique_name(session, name)
    category = CourseCategory(name=name, description=(data.get("description") or None))
    session.add(category)
    session.flush()
    mark_stale(session, QueryKeys.categories(), QueryKeys.courses())
    logger.info("category created id=%s", category.id)
    return category.to_dict()


def update_category(session: Session, category_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    category = get_or_404(session, CourseCategory, category_id, "Category")
    if "name" in data:
        name = require_length(data.get("name"), "name", 3, 255)
        _ensure_unique_name(session, name, exclude_id=category.id)
        category.name = name
    if "description" in data:
        category.description = data.get("description") or None
    session.flush()
    mark_stale(session, QueryKeys.categories(), QueryKeys.courses())
    return category.to_dict()


def delete_category(session: Session, category_id: str) -> None:
    category = get_or_404(session, CourseCategory, category_id, "Category")
    in_use = session.execute(select(func.count(Course.id)).where(Course.category_id == category.id)).scalar_one()
    if in_use:
        raise ConstraintViolation(
            "Cannot delete category while courses reference it",
            details={"course_count": int(in_use)},
        )
    session.delete(category)
    session.flush()
    mark_stale(session, QueryKeys.categories(), QueryKeys.courses())
    logger.info("category deleted id=%s", category_id)
