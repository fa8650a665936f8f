"""
Soft deletion, restoration and purging of user accounts.

Why:
    Admins deactivate accounts without losing enrollment and payment history.
    A deactivated account can be restored a limited number of times; accounts
    scheduled for permanent removal are purged by the `purge-deletions` CLI.

Behavior:
    - `soft_delete` stamps `deleted_at`, optionally schedules a purge date,
      increments `deletion_count` and writes a history row.
    - `restore` requires `deletion_count < MAX_USER_RESTORATIONS`.
    - `purge_due` deletes the auth user first, then the local rows.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Protocol
import logging
import os

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from backend.db.models import Enrollment, Intake, Payment, Profile, Refund, UserDeletionHistory
from backend.db.session import as_utc, utcnow
from backend.notifications import send_email
from backend.notifications import templates

from .errors import ConstraintViolation, Forbidden, NotFound, ValidationFailed
from .querying import ListParams, paginate
from .validation import parse_datetime, require_length


logger = logging.getLogger("hope.academy.user_deletion")

DEFAULT_MAX_RESTORATIONS = 3


class AuthAdmin(Protocol):
    def admin_delete_user(self, user_id: str) -> None: ...


def max_restorations() -> int:
    raw = (os.getenv("MAX_USER_RESTORATIONS") or "").strip()
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_MAX_RESTORATIONS
    return value if value > 0 else DEFAULT_MAX_RESTORATIONS


COLUMNS = {
    "id": Profile.id,
    "full_name": Profile.full_name,
    "email": Profile.email,
    "deleted_at": Profile.deleted_at,
    "deletion_scheduled_for": Profile.deletion_scheduled_for,
    "deletion_count": Profile.deletion_count,
    "created_at": Profile.created_at,
}


def soft_delete(
    session: Session,
    admin_id: str,
    user_id: str,
    reason: Optional[str],
    schedule_days: Optional[int] = None,
    *,
    notify: bool = True,
) -> Dict[str, Any]:
    if admin_id == user_id:
        raise Forbidden("You cannot delete your own account", "SELF_DELETION")
    profile = session.get(Profile, user_id)
    if profile is None:
        raise NotFound("User", user_id)
    if profile.deleted_at is not None:
        raise ConstraintViolation("User is already deleted", "ALREADY_DELETED", {"user_id": user_id})
    text = require_length(reason, "reason", 3, 1000)
    if schedule_days is not None:
        try:
            schedule_days = int(schedule_days)
        except (TypeError, ValueError):
            raise ValidationFailed("Schedule days must be a whole number", "INVALID_SCHEDULE")
        if schedule_days < 1 or schedule_days > 365:
            raise ValidationFailed("Schedule days must be between 1 and 365", "INVALID_SCHEDULE")

    now = utcnow()
    scheduled = now + timedelta(days=schedule_days) if schedule_days else None
    profile.deleted_at = now
    profile.deletion_scheduled_for = scheduled
    profile.deletion_count = (profile.deletion_count or 0) + 1
    history = UserDeletionHistory(
        user_id=profile.id,
        deleted_at=now,
        deleted_by=admin_id,
        deletion_reason=text,
        scheduled_deletion_date=scheduled,
    )
    session.add(history)
    session.flush()
    logger.info("user soft-deleted id=%s by=%s scheduled=%s", user_id, admin_id, bool(scheduled))

    if notify:
        subject, html, body = templates.account_deleted(
            name=profile.full_name,
            reason=text,
            scheduled_for=scheduled.date().isoformat() if scheduled else None,
        )
        log = send_email(
            session,
            to=profile.email,
            subject=subject,
            html=html,
            text=body,
            email_type="account_deletion",
            user_id=profile.id,
            admin_id=admin_id,
            related_entity_type="user",
            related_entity_id=profile.id,
        )
        history.email_notification_sent = log.status == "sent"
        session.flush()
    return history.to_dict()


def restore(session: Session, admin_id: str, user_id: str) -> Dict[str, Any]:
    profile = session.get(Profile, user_id)
    if profile is None:
        raise NotFound("User", user_id)
    if profile.deleted_at is None:
        raise ConstraintViolation("User is not deleted", "NOT_DELETED", {"user_id": user_id})
    limit = max_restorations()
    if (profile.deletion_count or 0) >= limit:
        raise ConstraintViolation(
            "This user has reached the maximum number of restorations",
            "RESTORE_LIMIT_REACHED",
            {"deletion_count": profile.deletion_count, "max_restorations": limit},
        )
    now = utcnow()
    profile.deleted_at = None
    profile.deletion_scheduled_for = None
    history = session.execute(
        select(UserDeletionHistory)
        .where(UserDeletionHistory.user_id == user_id, UserDeletionHistory.restored_at.is_(None))
        .order_by(UserDeletionHistory.deleted_at.desc())
        .limit(1)
    ).scalar_one_or_none()
    if history is not None:
        history.restored_at = now
        history.restored_by = admin_id
        history.restoration_count = (history.restoration_count or 0) + 1
    session.flush()
    logger.info("user restored id=%s by=%s", user_id, admin_id)
    return profile.to_dict()


def list_deleted(
    session: Session,
    params: ListParams,
    deleted_from: Any = None,
    deleted_to: Any = None,
) -> Dict[str, Any]:
    extra = [Profile.deleted_at.is_not(None)]
    if deleted_from:
        extra.append(Profile.deleted_at >= as_utc(parse_datetime(deleted_from, "deleted_from")))
    if deleted_to:
        extra.append(Profile.deleted_at <= as_utc(parse_datetime(deleted_to, "deleted_to")))
    return paginate(
        session,
        select(Profile),
        params,
        COLUMNS,
        search_columns=(Profile.full_name, Profile.email),
        extra_conditions=extra,
        default_sort="deleted_at",
    )


def history_for_user(session: Session, user_id: str) -> List[Dict[str, Any]]:
    if session.get(Profile, user_id) is None:
        raise NotFound("User", user_id)
    rows = session.execute(
        select(UserDeletionHistory)
        .where(UserDeletionHistory.user_id == user_id)
        .order_by(UserDeletionHistory.deleted_at.desc())
    ).scalars()
    return [r.to_dict() for r in rows]


def _remove_local_rows(session: Session, user_id: str) -> None:
    enrollments = session.execute(select(Enrollment).where(Enrollment.user_id == user_id)).scalars().all()
    enrollment_ids = [e.id for e in enrollments]
    for enrollment in enrollments:
        if enrollment.status in ("requested", "enrolled"):
            intake = session.get(Intake, enrollment.intake_id)
            if intake is not None:
                intake.total_registered = max(0, intake.total_registered - 1)
    payment_ids = (
        session.execute(select(Payment.id).where(Payment.enrollment_id.in_(enrollment_ids))).scalars().all()
        if enrollment_ids
        else []
    )
    session.execute(
        delete(Refund).where(
            or_(Refund.user_id == user_id, Refund.payment_id.in_(payment_ids), Refund.enrollment_id.in_(enrollment_ids))
        )
    )
    if enrollment_ids:
        session.execute(delete(Payment).where(Payment.enrollment_id.in_(enrollment_ids)))
    session.execute(delete(Enrollment).where(Enrollment.user_id == user_id))
    session.execute(delete(UserDeletionHistory).where(UserDeletionHistory.user_id == user_id))
    session.execute(delete(Profile).where(Profile.id == user_id))


def purge_due(session: Session, auth_admin: AuthAdmin, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Permanently delete users whose scheduled deletion date has passed.

    Returns:
        `{"purged": [user ids], "failed": [{"id", "error"}]}`
    """
    cutoff = as_utc(now) if now else utcnow()
    due = session.execute(
        select(Profile.id).where(
            Profile.deleted_at.is_not(None),
            Profile.deletion_scheduled_for.is_not(None),
            Profile.deletion_scheduled_for <= cutoff,
        )
    ).scalars().all()
    purged: List[str] = []
    failed: List[Dict[str, str]] = []
    for user_id in due:
        try:
            auth_admin.admin_delete_user(user_id)
        except Exception as exc:  # provider errors must not stop the batch
            logger.warning("auth user delete failed id=%s error=%s", user_id, exc.__class__.__name__)
            failed.append({"id": user_id, "error": exc.__class__.__name__})
            continue
        _remove_local_rows(session, user_id)
        purged.append(user_id)
    session.flush()
    logger.info("purge finished purged=%s failed=%s", len(purged), len(failed))
    return {"purged": purged, "failed": failed}
