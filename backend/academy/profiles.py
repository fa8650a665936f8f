"""
Learner and admin profiles.

The `profiles` row mirrors the auth provider's user (`id == sub`) and is the
source of truth for the application role.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.db.models import PROFILE_ROLES, ROLE_AUTHENTICATED, Enrollment, Profile

from .errors import Forbidden, NotFound
from .querying import ListParams, paginate
from .validation import get_or_404, optional_phone, require_choice, require_email, require_length


logger = logging.getLogger("hope.academy.profiles")

_enrollment_count = (
    select(func.count(Enrollment.id)).where(Enrollment.user_id == Profile.id).correlate(Profile).scalar_subquery()
)

COLUMNS = {
    "id": Profile.id,
    "full_name": Profile.full_name,
    "email": Profile.email,
    "phone": Profile.phone,
    "role": Profile.role,
    "deleted_at": Profile.deleted_at,
    "deletion_count": Profile.deletion_count,
    "enrollment_count": _enrollment_count,
    "created_at": Profile.created_at,
    "updated_at": Profile.updated_at,
}


def ensure_profile(
    session: Session,
    user_id: str,
    email: str,
    full_name: Optional[str] = None,
    role: str = ROLE_AUTHENTICATED,
) -> Profile:
    """Return the profile for `user_id`, creating it on first sign-in."""
    profile = session.get(Profile, user_id)
    clean_email = require_email(email)
    if profile is None:
        name = (full_name or "").strip() or clean_email.split("@", 1)[0]
        profile = Profile(
            id=user_id,
            email=clean_email,
            full_name=name[:255],
            role=role if role in PROFILE_ROLES else ROLE_AUTHENTICATED,
        )
        session.add(profile)
        session.flush()
        logger.info("profile created id=%s", user_id)
        return profile
    if profile.email != clean_email:
        profile.email = clean_email
        session.flush()
    return profile


def get_profile(session: Session, user_id: str) -> Dict[str, Any]:
    return get_or_404(session, Profile, user_id, "Profile").to_dict()


def update_own(session: Session, user_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    profile = session.get(Profile, user_id)
    if profile is None or profile.deleted_at is not None:
        raise NotFound("Profile", user_id)
    if "full_name" in data:
        profile.full_name = require_length(data.get("full_name"), "full_name", 1, 100)
    if "phone" in data:
        profile.phone = optional_phone(data.get("phone"))
    session.flush()
    return profile.to_dict()


def list_profiles(session: Session, params: ListParams, *, include_deleted: bool = False) -> Dict[str, Any]:
    extra = [] if include_deleted else [Profile.deleted_at.is_(None)]
    return paginate(
        session,
        select(Profile, _enrollment_count.label("enrollment_count")),
        params,
        COLUMNS,
        search_columns=(Profile.full_name, Profile.email, Profile.phone),
        extra_conditions=extra,
    )


def update_role(session: Session, admin_id: str, user_id: str, role: str) -> Dict[str, Any]:
    if admin_id == user_id:
        raise Forbidden("You cannot change your own role", "SELF_ROLE_CHANGE")
    profile = get_or_404(session, Profile, user_id, "Profile")
    profile.role = require_choice(role, "role", PROFILE_ROLES)
    session.flush()
    logger.info("profile role changed id=%s role=%s by=%s", user_id, profile.role, admin_id)
    return profile.to_dict()
