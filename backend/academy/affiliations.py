"""Affiliations (accrediting bodies and partners) referenced by courses."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.db.models import Affiliation, Course

from .cache import QueryKeys, mark_stale
from .errors import ConstraintViolation, UniqueViolation
from .querying import ListParams, paginate
from .validation import get_or_404, require_length


logger = logging.getLogger("hope.academy.affiliations")

_course_count = (
    select(func.count(Course.id)).where(Course.affiliation_id == Affiliation.id).correlate(Affiliation).scalar_subquery()
)

COLUMNS = {
    "id": Affiliation.id,
    "name": Affiliation.name,
    "type": Affiliation.type,
    "description": Affiliation.description,
    "created_at": Affiliation.created_at,
    "updated_at": Affiliation.updated_at,
    "course_count": _course_count,
}


def list_affiliations(session: Session, params: ListParams) -> Dict[str, Any]:
    stmt = select(Affiliation, _course_count.label("course_count"))
    return paginate(
        session,
        stmt,
        params,
        COLUMNS,
        search_columns=(Affiliation.name, Affiliation.type, Affiliation.description),
    )


def list_all_affiliations(session: Session) -> List[Dict[str, Any]]:
    rows = session.execute(select(Affiliation.id, Affiliation.name, Affiliation.type).order_by(Affiliation.name)).all()
    return [{"id": r.id, "name": r.name, "type": r.type} for r in rows]


def get_affiliation(session: Session, affiliation_id: str) -> Dict[str, Any]:
    return get_or_404(session, Affiliation, affiliation_id, "Affiliation").to_dict()


def _ensure_unique_name(session: Session, name: str, exclude_id: str | None = None) -> None:
    stmt = select(Affiliation.id).where(func.lower(Affiliation.name) == name.lower())
    if exclude_id:
        stmt = stmt.where(Affiliation.id != exclude_id)
    if session.execute(stmt).first() is not None:
        raise UniqueViolation("An affiliation with this name already exists", {"name": name})


def create_affiliation(session: Session, data: Mapping[str, Any]) -> Dict[str, Any]:
    name = require_length(data.get("name"), "name", 3, 255)
    kind = require_length(data.get("type"), "type", 2, 100)
    _ensure_unique_name(session, name)
    affiliation = Affiliation(name=name, type=kind, description=(data.get("description") or None))
    session.add(affiliation)
    session.flush()
    mark_stale(session, QueryKeys.courses())
    logger.info("affiliation created id=%s", affiliation.id)
    return affiliation.to_dict()


def update_affiliation(session: Session, affiliation_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    affiliation = get_or_404(session, Affiliation, affiliation_id, "Affiliation")
    if "name" in data:
        name = require_length(data.get("name"), "name", 3, 255)
        _ensure_unique_name(session, name, exclude_id=affiliation.id)
        affiliation.name = name
    if "type" in data:
        affiliation.type = require_length(data.get("type"), "type", 2, 100)
    if "description" in data:
        affiliation.description = data.get("description") or None
    session.flush()
    mark_stale(session, QueryKeys.courses())
    return affiliation.to_dict()


def delete_affiliation(session: Session, affiliation_id: str) -> None:
    affiliation = get_or_404(session, Affiliation, affiliation_id, "Affiliation")
    in_use = session.execute(select(func.count(Course.id)).where(Course.affiliation_id == affiliation.id)).scalar_one()
    if in_use:
        raise ConstraintViolation(
            "Cannot delete affiliation while courses reference it",
            details={"course_count": int(in_use)},
        )
    session.delete(affiliation)
    session.flush()
    mark_stale(session, QueryKeys.courses())
    logger.info("affiliation deleted id=%s", affiliation_id)
