"""
Payments recorded against enrollments, including partial and full refunds.

Behavior:
    - Status transitions follow `TRANSITIONS`; `refunded` is only reachable via
      `refund_payment`, which keeps `refunded_amount` and the refund rows in
      the same unit of work.
    - Learners may record their own pending payments for enrollments they own.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.db.models import PAYMENT_METHODS, PAYMENT_STATUSES, Course, Enrollment, Intake, Payment, Profile, Refund

from .errors import ConstraintViolation, NotFound, ValidationFailed
from .querying import ListParams, paginate
from .validation import get_or_404, require_choice, require_length


logger = logging.getLogger("hope.academy.payments")

TRANSITIONS: Dict[str, tuple[str, ...]] = {
    "pending": ("completed", "failed", "cancelled"),
    "completed": ("refunded",),
    "failed": ("pending",),
    "refunded": (),
    "cancelled": (),
}
MAX_AMOUNT = 1_000_000

COLUMNS = {
    "id": Payment.id,
    "enrollment_id": Payment.enrollment_id,
    "amount": Payment.amount,
    "refunded_amount": Payment.refunded_amount,
    "status": Payment.status,
    "payment_method": Payment.payment_method,
    "user_id": Profile.id,
    "user_name": Profile.full_name,
    "user_email": Profile.email,
    "course_title": Course.title,
    "enrollment_status": Enrollment.status,
    "created_at": Payment.created_at,
    "updated_at": Payment.updated_at,
}


def _list_stmt():
    return (
        select(
            Payment,
            Profile.id.label("user_id"),
            Profile.full_name.label("user_name"),
            Profile.email.label("user_email"),
            Course.id.label("course_id"),
            Course.title.label("course_title"),
            Enrollment.status.label("enrollment_status"),
        )
        .join(Enrollment, Payment.enrollment_id == Enrollment.id)
        .join(Profile, Enrollment.user_id == Profile.id)
        .join(Intake, Enrollment.intake_id == Intake.id)
        .join(Course, Intake.course_id == Course.id)
    )


def list_payments(session: Session, params: ListParams) -> Dict[str, Any]:
    return paginate(
        session,
        _list_stmt(),
        params,
        COLUMNS,
        search_columns=(Profile.full_name, Profile.email, Course.title),
    )


def get_payment_details(session: Session, payment_id: str) -> Dict[str, Any]:
    payment = get_or_404(session, Payment, payment_id, "Payment")
    enrollment = payment.enrollment
    data = payment.to_dict()
    data["enrollment"] = enrollment.to_dict()
    data["user"] = enrollment.user.to_dict()
    data["intake"] = enrollment.intake.to_dict()
    data["course"] = enrollment.intake.course.to_dict()
    data["refunds"] = [r.to_dict() for r in sorted(payment.refunds, key=lambda r: r.created_at, reverse=True)]
    data["refundable_amount"] = round(float(payment.amount) - float(payment.refunded_amount or 0), 2)
    return data


def _amount(raw: Any) -> float:
    try:
        value = round(float(raw), 2)
    except (TypeError, ValueError):
        raise ValidationFailed("Amount must be a number", "INVALID_AMOUNT")
    if value <= 0 or value > MAX_AMOUNT:
        raise ValidationFailed(
            f"Amount must be greater than 0 and at most {MAX_AMOUNT:,}", "INVALID_AMOUNT", {"amount": value}
        )
    return value


def create_payment(session: Session, data: Mapping[str, Any]) -> Dict[str, Any]:
    enrollment_id = data.get("enrollment_id")
    if not enrollment_id or session.get(Enrollment, enrollment_id) is None:
        raise ValidationFailed("Enrollment does not exist", "INVALID_ENROLLMENT", {"enrollment_id": enrollment_id})
    status = require_choice(data.get("status") or "pending", "status", tuple(s for s in PAYMENT_STATUSES if s != "refunded"))
    method = require_choice(data.get("payment_method") or "cash", "payment_method", PAYMENT_METHODS)
    payment = Payment(
        enrollment_id=enrollment_id,
        amount=_amount(data.get("amount")),
        status=status,
        payment_method=method,
        remarks=(data.get("remarks") or None),
    )
    session.add(payment)
    session.flush()
    logger.info("payment created id=%s enrollment=%s", payment.id, enrollment_id)
    return payment.to_dict()


def update_payment(session: Session, payment_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    payment = get_or_404(session, Payment, payment_id, "Payment")
    if "amount" in data and data.get("amount") is not None:
        amount = _amount(data.get("amount"))
        if amount < float(payment.refunded_amount or 0):
            raise ValidationFailed(
                "Amount cannot be lower than the refunded amount",
                "INVALID_AMOUNT",
                {"amount": amount, "refunded_amount": payment.refunded_amount},
            )
        payment.amount = amount
    if "payment_method" in data and data.get("payment_method"):
        payment.payment_method = require_choice(data.get("payment_method"), "payment_method", PAYMENT_METHODS)
    if "remarks" in data:
        payment.remarks = data.get("remarks") or None
    session.flush()
    return payment.to_dict()


def update_payment_status(session: Session, payment_id: str, status: str, remarks: Optional[str] = None) -> Dict[str, Any]:
    payment = get_or_404(session, Payment, payment_id, "Payment")
    target = require_choice(status, "status", PAYMENT_STATUSES)
    current = payment.status
    if target == current:
        return payment.to_dict()
    if target == "refunded":
        raise ValidationFailed("Use the refund operation to refund a payment", "REFUND_REQUIRED", {"from": current})
    if target not in TRANSITIONS.get(current, ()):
        raise ValidationFailed(
            f"Cannot change payment status from {current} to {target}",
            "INVALID_STATUS_TRANSITION",
            {"from": current, "to": target, "allowed": list(TRANSITIONS.get(current, ()))},
        )
    payment.status = target
    if remarks is not None and remarks.strip():
        payment.remarks = remarks.strip()
    session.flush()
    logger.info("payment status id=%s %s->%s", payment.id, current, target)
    return payment.to_dict()


def delete_payment(session: Session, payment_id: str) -> None:
    payment = get_or_404(session, Payment, payment_id, "Payment")
    if payment.refunds:
        raise ConstraintViolation(
            "Cannot delete a payment that has refunds",
            details={"refund_count": len(payment.refunds)},
        )
    session.delete(payment)
    session.flush()
    logger.info("payment deleted id=%s", payment_id)


def refund_payment(session: Session, payment_id: str, amount: Any, reason: Optional[str]) -> Dict[str, Any]:
    """Refund part or all of a completed payment.

    Returns:
        `{"refund_id", "refunded_amount", "status"}` after the update.
    """
    payment = session.execute(select(Payment).where(Payment.id == payment_id).with_for_update()).scalar_one_or_none()
    if payment is None:
        raise NotFound("Payment", payment_id)
    if payment.status != "completed":
        raise ValidationFailed(
            "Only completed payments can be refunded",
            "INVALID_PAYMENT_STATUS",
            {"status": payment.status},
        )
    text = require_length(reason, "reason", 3, 1000)
    value = _amount(amount)
    already = float(payment.refunded_amount or 0)
    refundable = round(float(payment.amount) - already, 2)
    if value > refundable:
        raise ValidationFailed(
            "Refund amount exceeds the refundable amount",
            "REFUND_EXCEEDS_AMOUNT",
            {"amount": value, "refundable": refundable},
        )
    enrollment = payment.enrollment
    refund = Refund(
        payment_id=payment.id,
        enrollment_id=enrollment.id,
        user_id=enrollment.user_id,
        reason=text,
        amount=value,
    )
    session.add(refund)
    payment.refunded_amount = round(already + value, 2)
    if payment.refunded_amount >= round(float(payment.amount), 2):
        payment.status = "refunded"
    session.flush()
    logger.info("payment refunded id=%s refund=%s full=%s", payment.id, refund.id, payment.status == "refunded")
    return {"refund_id": refund.id, "refunded_amount": payment.refunded_amount, "status": payment.status}


# --- Learner flows ------------------------------------------------------------


def create_for_user(session: Session, user_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    enrollment_id = data.get("enrollment_id")
    enrollment = session.get(Enrollment, enrollment_id) if enrollment_id else None
    if enrollment is None or enrollment.user_id != user_id:
        raise ValidationFailed(
            "Enrollment not found for this user", "INVALID_ENROLLMENT", {"enrollment_id": enrollment_id}
        )
    payment = Payment(
        enrollment_id=enrollment.id,
        amount=_amount(data.get("amount")),
        status="pending",
        payment_method=require_choice(data.get("payment_method") or "cash", "payment_method", PAYMENT_METHODS),
        remarks=(data.get("remarks") or None),
    )
    session.add(payment)
    session.flush()
    logger.info("learner payment recorded id=%s", payment.id)
    return payment.to_dict()


def history_for_user(session: Session, user_id: str, params: ListParams) -> Dict[str, Any]:
    return paginate(
        session,
        _list_stmt(),
        params,
        COLUMNS,
        search_columns=(Course.title,),
        extra_conditions=(Enrollment.user_id == user_id,),
    )
