"""Aggregates shown on the admin dashboard."""
from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from backend.db.models import ENROLLMENT_STATUSES, PAYMENT_STATUSES, ROLE_AUTHENTICATED, Enrollment, Payment, Profile

from .enrollments import list_statement as _enrollment_rows
from .querying import row_to_dict


def total_users(session: Session) -> int:
    return int(
        session.execute(
            select(func.count(Profile.id)).where(Profile.role == ROLE_AUTHENTICATED, Profile.deleted_at.is_(None))
        ).scalar_one()
    )


def total_enrollments(session: Session) -> int:
    return int(session.execute(select(func.count(Enrollment.id))).scalar_one())


def enrollments_by_status(session: Session) -> List[Dict[str, Any]]:
    rows = dict(session.execute(select(Enrollment.status, func.count(Enrollment.id)).group_by(Enrollment.status)).all())
    return [{"status": s, "count": int(rows.get(s, 0))} for s in ENROLLMENT_STATUSES]


def total_income(session: Session) -> float:
    """Completed payments plus the unrefunded part of refunded ones."""
    net = case(
        (Payment.status.in_(("completed", "refunded")), Payment.amount - func.coalesce(Payment.refunded_amount, 0)),
        else_=0,
    )
    value = session.execute(select(func.coalesce(func.sum(net), 0))).scalar_one()
    return round(float(value or 0), 2)


def payments_by_status(session: Session) -> List[Dict[str, Any]]:
    rows = {
        status: (int(count), float(total or 0))
        for status, count, total in session.execute(
            select(Payment.status, func.count(Payment.id), func.sum(Payment.amount)).group_by(Payment.status)
        ).all()
    }
    return [
        {"status": s, "count": rows.get(s, (0, 0.0))[0], "total_amount": round(rows.get(s, (0, 0.0))[1], 2)}
        for s in PAYMENT_STATUSES
    ]


def recent_enrollments(session: Session, limit: int = 5) -> List[Dict[str, Any]]:
    rows = session.execute(_enrollment_rows().order_by(Enrollment.created_at.desc()).limit(limit)).all()
    return [row_to_dict(r) for r in rows]


def summary(session: Session) -> Dict[str, Any]:
    return {
        "total_users": total_users(session),
        "total_enrollments": total_enrollments(session),
        "enrollments_by_status": enrollments_by_status(session),
        "total_income": total_income(session),
        "payments_by_status": payments_by_status(session),
        "recent_enrollments": recent_enrollments(session),
    }
