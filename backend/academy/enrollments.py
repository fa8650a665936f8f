"""
Enrollments: a learner's seat in an intake.

Why:
    Seat accounting must stay consistent with enrollment state. The intake row
    is locked (`SELECT ... FOR UPDATE` on Postgres) while a seat is taken or
    released so concurrent requests cannot oversubscribe an intake.

Behavior:
    - Seat-holding states are `requested` and `enrolled`; `total_registered`
      is incremented when a seat is taken and decremented when it is released.
    - Status transitions follow `TRANSITIONS`; setting the current status again
      is a no-op.
    - Pending payments follow the enrollment: enrolled/completed completes
      them, cancelled cancels them.
    - Learners are e-mailed about status changes; admins about new requests.
      E-mail failures never fail the operation.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional
import logging

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from backend.db.models import ENROLLMENT_STATUSES, Course, Enrollment, Intake, Payment, Profile, Refund
from backend.db.session import as_utc
from backend.notifications import admin_recipients, send_email
from backend.notifications import templates

from .cache import QueryKeys, mark_stale
from .errors import ConstraintViolation, Forbidden, NotFound, ServiceError, ValidationFailed
from .querying import ListParams, paginate, row_to_dict
from .validation import get_or_404, require_choice


logger = logging.getLogger("hope.academy.enrollments")

TRANSITIONS: Dict[str, tuple[str, ...]] = {
    "requested": ("enrolled", "cancelled"),
    "enrolled": ("completed", "cancelled"),
    "completed": (),
    "cancelled": ("requested",),
}
SEAT_HOLDING = ("requested", "enrolled")

_latest_payment = (
    select(Payment.id, Payment.status)
    .where(Payment.enrollment_id == Enrollment.id)
    .order_by(Payment.created_at.desc())
    .limit(1)
    .correlate(Enrollment)
)
_payment_id = _latest_payment.with_only_columns(Payment.id).scalar_subquery()
_payment_status = _latest_payment.with_only_columns(Payment.status).scalar_subquery()

COLUMNS = {
    "id": Enrollment.id,
    "status": Enrollment.status,
    "user_id": Enrollment.user_id,
    "intake_id": Enrollment.intake_id,
    "enrollment_date": Enrollment.enrollment_date,
    "user_name": Profile.full_name,
    "user_email": Profile.email,
    "course_id": Course.id,
    "course_title": Course.title,
    "start_date": Intake.start_date,
    "end_date": Intake.end_date,
    "payment_status": _payment_status,
    "created_at": Enrollment.created_at,
    "updated_at": Enrollment.updated_at,
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, ())


def list_statement():
    return (
        select(
            Enrollment,
            Profile.full_name.label("user_name"),
            Profile.email.label("user_email"),
            Course.id.label("course_id"),
            Course.title.label("course_title"),
            Intake.start_date.label("start_date"),
            Intake.end_date.label("end_date"),
            _payment_id.label("payment_id"),
            _payment_status.label("payment_status"),
        )
        .join(Profile, Enrollment.user_id == Profile.id)
        .join(Intake, Enrollment.intake_id == Intake.id)
        .join(Course, Intake.course_id == Course.id)
    )


def list_enrollments(
    session: Session,
    params: ListParams,
    *,
    user_id: Optional[str] = None,
    status: Optional[str] = None,
) -> Dict[str, Any]:
    extra = []
    if user_id:
        extra.append(Enrollment.user_id == user_id)
    if status:
        extra.append(Enrollment.status == require_choice(status, "status", ENROLLMENT_STATUSES))
    return paginate(
        session,
        list_statement(),
        params,
        COLUMNS,
        search_columns=(Profile.full_name, Profile.email, Course.title),
        extra_conditions=extra,
    )


def get_enrollment_details(session: Session, enrollment_id: str) -> Dict[str, Any]:
    enrollment = get_or_404(session, Enrollment, enrollment_id, "Enrollment")
    data = enrollment.to_dict()
    data["user"] = enrollment.user.to_dict()
    data["intake"] = enrollment.intake.to_dict()
    data["course"] = enrollment.intake.course.to_dict()
    data["payments"] = [p.to_dict() for p in sorted(enrollment.payments, key=lambda p: p.created_at)]
    refunds = session.execute(
        select(Refund)
        .where(or_(Refund.enrollment_id == enrollment.id, Refund.payment_id.in_([p.id for p in enrollment.payments])))
        .order_by(Refund.created_at.desc())
    ).scalars()
    data["refunds"] = [r.to_dict() for r in refunds]
    return data


def _lock_intake(session: Session, intake_id: str) -> Intake:
    intake = session.execute(select(Intake).where(Intake.id == intake_id).with_for_update()).scalar_one_or_none()
    if intake is None:
        raise NotFound("Intake", intake_id)
    return intake


def _take_seat(intake: Intake, *, code: str = "CAPACITY_EXCEEDED") -> None:
    if intake.total_registered >= intake.capacity:
        message = "This intake is full" if code == "INTAKE_FULL" else "Intake capacity exceeded"
        raise ConstraintViolation(
            message,
            code,
            {"capacity": intake.capacity, "total_registered": intake.total_registered},
        )
    intake.total_registered = intake.total_registered + 1


def _release_seat(intake: Intake) -> None:
    intake.total_registered = max(0, intake.total_registered - 1)


def _ensure_not_already_enrolled(session: Session, user_id: str, intake_id: str, exclude_id: Optional[str] = None) -> None:
    stmt = select(Enrollment.id).where(
        Enrollment.user_id == user_id,
        Enrollment.intake_id == intake_id,
        Enrollment.status.in_(SEAT_HOLDING),
    )
    if exclude_id:
        stmt = stmt.where(Enrollment.id != exclude_id)
    if session.execute(stmt).first() is not None:
        raise ConstraintViolation(
            "You are already enrolled in this intake",
            "ALREADY_ENROLLED",
            {"user_id": user_id, "intake_id": intake_id},
        )


def create_enrollment(session: Session, data: Mapping[str, Any]) -> Dict[str, Any]:
    """Admin enrollment: seat, enrollment and a pending cash payment in one unit of work."""
    user_id = data.get("user_id")
    user = session.get(Profile, user_id) if user_id else None
    if user is None or user.deleted_at is not None:
        raise ValidationFailed("User does not exist", "INVALID_USER_ID", {"user_id": user_id})
    status = require_choice(data.get("status") or "requested", "status", SEAT_HOLDING)
    intake = _lock_intake(session, str(data.get("intake_id") or ""))
    if not intake.is_open:
        raise ConstraintViolation("This intake is closed for enrollment", "INTAKE_CLOSED", {"intake_id": intake.id})
    _ensure_not_already_enrolled(session, user.id, intake.id)
    _take_seat(intake)
    enrollment = Enrollment(user_id=user.id, intake_id=intake.id, status=status, notes=data.get("notes") or None)
    session.add(enrollment)
    session.flush()
    session.add(Payment(enrollment_id=enrollment.id, amount=float(intake.course.price), payment_method="cash"))
    session.flush()
    mark_stale(session, QueryKeys.courses(), QueryKeys.intakes())
    logger.info("enrollment created id=%s intake=%s", enrollment.id, intake.id)
    return enrollment.to_dict()


def update_enrollment(session: Session, enrollment_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    enrollment = get_or_404(session, Enrollment, enrollment_id, "Enrollment")
    if "notes" in data:
        enrollment.notes = data.get("notes") or None
    if "cancelled_reason" in data:
        enrollment.cancelled_reason = data.get("cancelled_reason") or None
    session.flush()
    return enrollment.to_dict()


def _sync_payments(enrollment: Enrollment, status: str) -> None:
    if status in ("enrolled", "completed"):
        target = "completed"
    elif status == "cancelled":
        target = "cancelled"
    else:
        return
    for payment in enrollment.payments:
        if payment.status == "pending":
            payment.status = target


def _notify_status(session: Session, enrollment: Enrollment, reason: Optional[str]) -> None:
    user = enrollment.user
    course = enrollment.intake.course
    subject, html, text = templates.enrollment_status_changed(
        user_name=user.full_name, course_title=course.title, status=enrollment.status, reason=reason
    )
    send_email(
        session,
        to=user.email,
        subject=subject,
        html=html,
        text=text,
        email_type="enrollment_status",
        user_id=user.id,
        related_entity_type="enrollment",
        related_entity_id=enrollment.id,
    )


def update_enrollment_status(
    session: Session,
    enrollment_id: str,
    status: str,
    cancelled_reason: Optional[str] = None,
    *,
    notify: bool = True,
) -> Dict[str, Any]:
    enrollment = get_or_404(session, Enrollment, enrollment_id, "Enrollment")
    target = require_choice(status, "status", ENROLLMENT_STATUSES)
    current = enrollment.status
    if target == current:
        return enrollment.to_dict()
    if not can_transition(current, target):
        raise ValidationFailed(
            f"Cannot change enrollment status from {current} to {target}",
            "INVALID_STATUS_TRANSITION",
            {"from": current, "to": target, "allowed": list(TRANSITIONS.get(current, ()))},
        )
    intake = _lock_intake(session, enrollment.intake_id)
    if current not in SEAT_HOLDING and target in SEAT_HOLDING:
        _take_seat(intake)
    elif current in SEAT_HOLDING and target not in SEAT_HOLDING and target == "cancelled":
        _release_seat(intake)
    enrollment.status = target
    if target == "cancelled":
        enrollment.cancelled_reason = (cancelled_reason or "").strip() or enrollment.cancelled_reason
    elif target == "requested":
        enrollment.cancelled_reason = None
    _sync_payments(enrollment, target)
    session.flush()
    mark_stale(session, QueryKeys.courses(), QueryKeys.intakes())
    logger.info("enrollment status id=%s %s->%s", enrollment.id, current, target)
    if notify:
        _notify_status(session, enrollment, cancelled_reason if target == "cancelled" else None)
    return enrollment.to_dict()


def bulk_update_status(session: Session, enrollment_ids: Iterable[str], status: str) -> Dict[str, Any]:
    require_choice(status, "status", ENROLLMENT_STATUSES)
    updated: List[str] = []
    failed: List[Dict[str, Any]] = []
    for enrollment_id in enrollment_ids:
        try:
            update_enrollment_status(session, enrollment_id, status)
            updated.append(enrollment_id)
        except ServiceError as exc:
            failed.append({"id": enrollment_id, "error": exc.message, "code": exc.code})
    return {"updated": updated, "failed": failed}


def upsert_enrollment(session: Session, data: Mapping[str, Any]) -> Dict[str, Any]:
    enrollment_id = data.get("id")
    if not enrollment_id:
        return create_enrollment(session, data)
    result = update_enrollment(session, str(enrollment_id), data)
    if data.get("status") and data.get("status") != result["status"]:
        result = update_enrollment_status(session, str(enrollment_id), str(data["status"]), data.get("cancelled_reason"))
    return result


def delete_enrollment(session: Session, enrollment_id: str) -> None:
    enrollment = get_or_404(session, Enrollment, enrollment_id, "Enrollment")
    if enrollment.status == "completed":
        raise ConstraintViolation(
            "Completed enrollments cannot be deleted",
            "CANNOT_DELETE_COMPLETED",
            {"id": enrollment.id},
        )
    if enrollment.status in SEAT_HOLDING:
        _release_seat(_lock_intake(session, enrollment.intake_id))
    payment_ids = [p.id for p in enrollment.payments]
    session.execute(
        delete(Refund).where(or_(Refund.enrollment_id == enrollment.id, Refund.payment_id.in_(payment_ids)))
    )
    session.execute(delete(Payment).where(Payment.enrollment_id == enrollment.id))
    session.expire(enrollment, ["payments"])
    session.delete(enrollment)
    session.flush()
    mark_stale(session, QueryKeys.courses(), QueryKeys.intakes())
    logger.info("enrollment deleted id=%s", enrollment_id)


# --- Learner flows ------------------------------------------------------------


def request_enrollment(session: Session, user_id: str, intake_id: str, notes: Optional[str] = None) -> Dict[str, Any]:
    user = session.get(Profile, user_id)
    if user is None or user.deleted_at is not None:
        raise Forbidden("Your account cannot enroll", "ACCOUNT_INACTIVE")
    intake = _lock_intake(session, intake_id)
    _ensure_not_already_enrolled(session, user.id, intake.id)
    if not intake.is_open:
        raise ConstraintViolation("This intake is closed for enrollment", "INTAKE_CLOSED", {"intake_id": intake.id})
    _take_seat(intake, code="INTAKE_FULL")
    enrollment = Enrollment(user_id=user.id, intake_id=intake.id, status="requested", notes=(notes or "").strip() or None)
    session.add(enrollment)
    session.flush()
    mark_stale(session, QueryKeys.courses(), QueryKeys.intakes())
    logger.info("enrollment requested id=%s intake=%s", enrollment.id, intake.id)

    course = intake.course
    subject, html, text = templates.enrollment_requested(
        user_name=user.full_name,
        user_email=user.email,
        course_title=course.title,
        start_date=as_utc(intake.start_date).date().isoformat(),
    )
    send_email(
        session,
        to=admin_recipients(session),
        subject=subject,
        html=html,
        text=text,
        reply_to=user.email,
        email_type="enrollment_request",
        user_id=user.id,
        related_entity_type="enrollment",
        related_entity_id=enrollment.id,
    )
    return enrollment.to_dict()


def list_for_user(session: Session, user_id: str) -> Dict[str, Any]:
    rows = session.execute(
        select(
            Enrollment,
            Course.id.label("course_id"),
            Course.title.label("course_title"),
            Course.slug.label("course_slug"),
            Course.image_url.label("course_image"),
            Course.price.label("course_price"),
            Intake.start_date.label("start_date"),
            Intake.end_date.label("end_date"),
        )
        .join(Intake, Enrollment.intake_id == Intake.id)
        .join(Course, Intake.course_id == Course.id)
        .where(Enrollment.user_id == user_id)
        .order_by(Enrollment.created_at.desc())
    ).all()
    data = [row_to_dict(r) for r in rows]
    return {"data": data, "total": len(data)}


def cancel_for_user(session: Session, user_id: str, enrollment_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
    enrollment = session.get(Enrollment, enrollment_id)
    if enrollment is None or enrollment.user_id != user_id:
        raise NotFound("Enrollment", enrollment_id)
    if enrollment.status != "requested":
        raise ValidationFailed(
            "Only requested enrollments can be cancelled",
            "INVALID_STATUS_TRANSITION",
            {"status": enrollment.status},
        )
    return update_enrollment_status(
        session, enrollment_id, "cancelled", (reason or "").strip() or "Cancelled by learner"
    )

