"""Read side of refunds; refunds are created through `payments.refund_payment`."""
from __future__ import annotations

from typing import Any, Dict, List
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.db.models import Course, Enrollment, Intake, Payment, Profile, Refund

from .querying import ListParams, paginate
from .validation import get_or_404


logger = logging.getLogger("hope.academy.refunds")

COLUMNS = {
    "id": Refund.id,
    "payment_id": Refund.payment_id,
    "enrollment_id": Refund.enrollment_id,
    "user_id": Refund.user_id,
    "amount": Refund.amount,
    "reason": Refund.reason,
    "payment_amount": Payment.amount,
    "user_name": Profile.full_name,
    "course_title": Course.title,
    "created_at": Refund.created_at,
}


def _list_stmt():
    return (
        select(
            Refund,
            Payment.amount.label("payment_amount"),
            Payment.status.label("payment_status"),
            Profile.full_name.label("user_name"),
            Profile.email.label("user_email"),
            Course.title.label("course_title"),
        )
        .join(Payment, Refund.payment_id == Payment.id)
        .join(Enrollment, Payment.enrollment_id == Enrollment.id)
        .join(Profile, Enrollment.user_id == Profile.id)
        .join(Intake, Enrollment.intake_id == Intake.id)
        .join(Course, Intake.course_id == Course.id)
    )


def list_refunds(session: Session, params: ListParams) -> Dict[str, Any]:
    return paginate(
        session,
        _list_stmt(),
        params,
        COLUMNS,
        search_columns=(Refund.reason, Profile.full_name, Profile.email, Course.title),
    )


def get_refund_details(session: Session, refund_id: str) -> Dict[str, Any]:
    refund = get_or_404(session, Refund, refund_id, "Refund")
    data = refund.to_dict()
    payment = refund.payment
    data["payment"] = payment.to_dict()
    data["enrollment"] = payment.enrollment.to_dict()
    data["user"] = payment.enrollment.user.to_dict()
    data["course"] = payment.enrollment.intake.course.to_dict()
    return data


def list_for_payment(session: Session, payment_id: str) -> List[Dict[str, Any]]:
    get_or_404(session, Payment, payment_id, "Payment")
    rows = session.execute(
        select(Refund).where(Refund.payment_id == payment_id).order_by(Refund.created_at.desc())
    ).scalars()
    return [r.to_dict() for r in rows]
