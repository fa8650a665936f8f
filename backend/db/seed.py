"""
Idempotent seed loader for the course catalog.

Why:
    Fresh environments (local dev, review apps, tests) need a realistic
    catalog without hand-written SQL. The data lives in a YAML file next to
    this module and can be replaced with `hope-admin seed --file`.

Behavior:
    - Rows are matched by natural key: category and affiliation by name,
      course by slug, intake by course and start date, profile by id.
    - Existing rows are left untouched; running the loader twice creates
      nothing the second time.
    - Course references to categories or affiliations are resolved by name.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Union
import logging

import yaml
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .models import PROFILE_ROLES, ROLE_AUTHENTICATED, Affiliation, Course, CourseCategory, Intake, Profile


logger = logging.getLogger("hope.tools.seed")

DEFAULT_SEED_FILE = Path(__file__).with_name("seed_data.yml")

SEED_SECTIONS = ("categories", "affiliations", "courses", "intakes", "profiles")


class SeedError(ValueError):
    """The seed file is malformed or references unknown rows."""


def load_seed_file(path: Union[str, Path, None] = None) -> Dict[str, Any]:
    target = Path(path) if path else DEFAULT_SEED_FILE
    with target.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise SeedError(f"{target}: expected a mapping at the top level")
    unknown = set(data) - set(SEED_SECTIONS)
    if unknown:
        raise SeedError(f"{target}: unknown sections {sorted(unknown)}")
    return data


def _as_datetime(value: Any, field: str) -> datetime:
    # YAML turns unquoted dates into date objects
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError as exc:
            raise SeedError(f"{field}: invalid date {value!r}") from exc
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise SeedError(f"{field}: missing or invalid date")


def _items(data: Mapping[str, Any], section: str) -> Iterable[Mapping[str, Any]]:
    items = data.get(section) or []
    if not isinstance(items, list):
        raise SeedError(f"{section}: expected a list")
    for item in items:
        if not isinstance(item, dict):
            raise SeedError(f"{section}: every entry must be a mapping")
        yield item


def _by_name(session: Session, model, name: Optional[str]):
    if not name:
        return None
    row = session.execute(select(model).where(func.lower(model.name) == str(name).lower())).scalar_one_or_none()
    if row is None:
        raise SeedError(f"{model.__tablename__}: no row named {name!r}")
    return row


def _seed_named(
    session: Session,
    model,
    items: Iterable[Mapping[str, Any]],
    fields: Iterable[str],
    required: Iterable[str] = (),
) -> int:
    created = 0
    for item in items:
        name = str(item.get("name") or "").strip()
        if not name:
            raise SeedError(f"{model.__tablename__}: entry without a name")
        missing = [f for f in required if not item.get(f)]
        if missing:
            raise SeedError(f"{model.__tablename__}: {name!r} is missing {missing}")
        exists = session.execute(select(model.id).where(func.lower(model.name) == name.lower())).first()
        if exists is not None:
            continue
        session.add(model(name=name, **{f: item.get(f) for f in fields if item.get(f) is not None}))
        created += 1
    session.flush()
    return created


def _seed_courses(session: Session, items: Iterable[Mapping[str, Any]]) -> int:
    created = 0
    for item in items:
        slug = str(item.get("slug") or "").strip()
        if not slug or not item.get("title"):
            raise SeedError("courses: every course needs a title and a slug")
        if session.execute(select(Course.id).where(Course.slug == slug)).first() is not None:
            continue
        category = _by_name(session, CourseCategory, item.get("category"))
        affiliation = _by_name(session, Affiliation, item.get("affiliation"))
        session.add(
            Course(
                title=str(item["title"]),
                slug=slug,
                price=float(item.get("price") or 0),
                category_id=category.id if category else None,
                affiliation_id=affiliation.id if affiliation else None,
                level=int(item.get("level") or 1),
                duration_type=item.get("duration_type") or "month",
                duration_value=int(item.get("duration_value") or 3),
                course_overview=item.get("course_overview"),
                course_highlights=item.get("course_highlights"),
                image_url=item.get("image_url"),
            )
        )
        created += 1
    session.flush()
    return created


def _seed_intakes(session: Session, items: Iterable[Mapping[str, Any]]) -> int:
    created = 0
    for item in items:
        slug = item.get("course")
        course = session.execute(select(Course).where(Course.slug == slug)).scalar_one_or_none()
        if course is None:
            raise SeedError(f"intakes: unknown course {slug!r}")
        start = _as_datetime(item.get("start_date"), "start_date")
        end = _as_datetime(item.get("end_date"), "end_date")
        if end <= start:
            raise SeedError(f"intakes: end_date must be after start_date for {slug!r}")
        exists = session.execute(
            select(Intake.id).where(Intake.course_id == course.id, Intake.start_date == start)
        ).first()
        if exists is not None:
            continue
        session.add(
            Intake(
                course_id=course.id,
                start_date=start,
                end_date=end,
                capacity=int(item.get("capacity") or 20),
                is_open=bool(item.get("is_open", True)),
            )
        )
        created += 1
    session.flush()
    return created


def _seed_profiles(session: Session, items: Iterable[Mapping[str, Any]]) -> int:
    """Profiles for users that already exist in the auth provider."""
    created = 0
    for item in items:
        user_id = str(item.get("id") or "").strip()
        if not user_id or not item.get("email"):
            raise SeedError("profiles: every profile needs the auth user id and an e-mail")
        if session.get(Profile, user_id) is not None:
            continue
        role = item.get("role") or ROLE_AUTHENTICATED
        if role not in PROFILE_ROLES:
            raise SeedError(f"profiles: unknown role {role!r}")
        session.add(
            Profile(
                id=user_id,
                email=str(item["email"]).lower(),
                full_name=str(item.get("full_name") or item["email"]),
                phone=item.get("phone"),
                role=role,
            )
        )
        created += 1
    session.flush()
    return created


def seed(session: Session, data: Mapping[str, Any]) -> Dict[str, int]:
    """Insert missing rows from `data`; returns the created count per section."""
    counts = {
        "categories": _seed_named(session, CourseCategory, _items(data, "categories"), ("description",)),
        "affiliations": _seed_named(
            session, Affiliation, _items(data, "affiliations"), ("type", "description"), required=("type",)
        ),
        "courses": _seed_courses(session, _items(data, "courses")),
        "intakes": _seed_intakes(session, _items(data, "intakes")),
        "profiles": _seed_profiles(session, _items(data, "profiles")),
    }
    logger.info("seed finished %s", " ".join(f"{k}={v}" for k, v in counts.items()))
    return counts
