"""
Admin operations API: enrollments, payments, refunds, contact requests,
e-mail logs and the dashboard.

Why:
    These endpoints drive the day-to-day back-office work. State machines
    (enrollment, payment, contact) are enforced in the services; this adapter
    maps request bodies and query selectors onto them.

Permissions:
    Caller must hold `service_role` (enforced by the middleware for
    `/api/admin/`). The acting admin is taken from the session, never from the
    request body.
"""
from __future__ import annotations

from typing import List
import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field, field_validator

from backend.academy import contact, dashboard, email_logs, enrollments, payments, refunds

from ..responses import list_params, run_service
from ..sessions import current_user


admin_operations_router = APIRouter(tags=["Admin operations"])
logger = logging.getLogger("hope.web.admin")


def _strip(v):
    if isinstance(v, str):
        v = v.strip()
        return v if v else None
    return v


# --- Enrollments --------------------------------------------------------------


class EnrollmentPayload(BaseModel):
    id: str | None = None
    user_id: str | None = None
    intake_id: str | None = None
    status: str | None = None
    notes: str | None = Field(default=None, max_length=2000)
    cancelled_reason: str | None = Field(default=None, max_length=1000)

    @field_validator("notes", "cancelled_reason")
    @classmethod
    def _strip_empty(cls, v):
        return _strip(v)


class EnrollmentStatus(BaseModel):
    status: str
    cancelled_reason: str | None = Field(default=None, max_length=1000)


class BulkStatus(BaseModel):
    ids: List[str] = Field(..., min_length=1, max_length=500)
    status: str


@admin_operations_router.get("/api/admin/enrollments")
async def list_enrollments(request: Request):
    """List enrollments with user, course, intake and payment columns.

    Query:
        list parameters plus optional `userId` and `status` shortcuts.
    """
    q = request.query_params
    params = list_params(request)
    return run_service(
        request,
        lambda s: enrollments.list_enrollments(s, params, user_id=q.get("userId") or None, status=q.get("status") or None),
    )


@admin_operations_router.post("/api/admin/enrollments")
async def create_enrollment(request: Request, payload: EnrollmentPayload):
    data = payload.model_dump(exclude_unset=True)
    return run_service(request, lambda s: enrollments.create_enrollment(s, data), status_code=201)


@admin_operations_router.put("/api/admin/enrollments")
async def upsert_enrollment(request: Request, payload: EnrollmentPayload):
    data = payload.model_dump(exclude_unset=True)
    return run_service(request, lambda s: enrollments.upsert_enrollment(s, data))


@admin_operations_router.post("/api/admin/enrollments/bulk-status")
async def bulk_status(request: Request, payload: BulkStatus):
    """Apply one status to many enrollments.

    Behavior:
        Returns `{updated: [...ids], failed: [{id, error, code}]}`; rejected
        transitions do not abort the others.
    """
    return run_service(request, lambda s: enrollments.bulk_update_status(s, payload.ids, payload.status))


@admin_operations_router.get("/api/admin/enrollments/{enrollment_id}")
async def get_enrollment(request: Request, enrollment_id: str):
    return run_service(request, lambda s: enrollments.get_enrollment_details(s, enrollment_id))


@admin_operations_router.patch("/api/admin/enrollments/{enrollment_id}")
async def update_enrollment(request: Request, enrollment_id: str, payload: EnrollmentPayload):
    data = payload.model_dump(exclude_unset=True, include={"notes", "cancelled_reason"})
    return run_service(request, lambda s: enrollments.update_enrollment(s, enrollment_id, data))


@admin_operations_router.patch("/api/admin/enrollments/{enrollment_id}/status")
async def update_enrollment_status(request: Request, enrollment_id: str, payload: EnrollmentStatus):
    return run_service(
        request,
        lambda s: enrollments.update_enrollment_status(s, enrollment_id, payload.status, payload.cancelled_reason),
    )


@admin_operations_router.delete("/api/admin/enrollments/{enrollment_id}")
async def delete_enrollment(request: Request, enrollment_id: str):
    return run_service(request, lambda s: enrollments.delete_enrollment(s, enrollment_id), message="Enrollment deleted")


# --- Payments -----------------------------------------------------------------


class PaymentPayload(BaseModel):
    enrollment_id: str | None = None
    amount: float | None = None
    status: str | None = None
    payment_method: str | None = None
    remarks: str | None = Field(default=None, max_length=2000)

    @field_validator("remarks")
    @classmethod
    def _strip_empty(cls, v):
        return _strip(v)


class PaymentStatus(BaseModel):
    status: str
    remarks: str | None = Field(default=None, max_length=2000)


class RefundPayload(BaseModel):
    amount: float
    reason: str = Field(default="", max_length=2000)


@admin_operations_router.get("/api/admin/payments")
async def list_payments(request: Request):
    params = list_params(request)
    return run_service(request, lambda s: payments.list_payments(s, params))


@admin_operations_router.post("/api/admin/payments")
async def create_payment(request: Request, payload: PaymentPayload):
    data = payload.model_dump(exclude_unset=True)
    return run_service(request, lambda s: payments.create_payment(s, data), status_code=201)


@admin_operations_router.get("/api/admin/payments/{payment_id}")
async def get_payment(request: Request, payment_id: str):
    return run_service(request, lambda s: payments.get_payment_details(s, payment_id))


@admin_operations_router.patch("/api/admin/payments/{payment_id}")
async def update_payment(request: Request, payment_id: str, payload: PaymentPayload):
    data = payload.model_dump(exclude_unset=True, include={"amount", "payment_method", "remarks"})
    return run_service(request, lambda s: payments.update_payment(s, payment_id, data))


@admin_operations_router.patch("/api/admin/payments/{payment_id}/status")
async def update_payment_status(request: Request, payment_id: str, payload: PaymentStatus):
    return run_service(
        request, lambda s: payments.update_payment_status(s, payment_id, payload.status, payload.remarks)
    )


@admin_operations_router.post("/api/admin/payments/{payment_id}/refund")
async def refund_payment(request: Request, payment_id: str, payload: RefundPayload):
    """Refund part or all of a completed payment.

    Behavior:
        - 200 with `{refund_id, refunded_amount, status}`.
        - 400 `INVALID_PAYMENT_STATUS`, `REFUND_EXCEEDS_AMOUNT` or a reason
          length error.
    """
    return run_service(
        request,
        lambda s: payments.refund_payment(s, payment_id, payload.amount, payload.reason),
        message="Refund recorded",
    )


@admin_operations_router.delete("/api/admin/payments/{payment_id}")
async def delete_payment(request: Request, payment_id: str):
    return run_service(request, lambda s: payments.delete_payment(s, payment_id), message="Payment deleted")


# --- Refunds ------------------------------------------------------------------


@admin_operations_router.get("/api/admin/refunds")
async def list_refunds(request: Request):
    payment_id = request.query_params.get("paymentId")
    if payment_id:
        return run_service(request, lambda s: refunds.list_for_payment(s, payment_id))
    params = list_params(request)
    return run_service(request, lambda s: refunds.list_refunds(s, params))


@admin_operations_router.get("/api/admin/refunds/{refund_id}")
async def get_refund(request: Request, refund_id: str):
    return run_service(request, lambda s: refunds.get_refund_details(s, refund_id))


# --- Dashboard ----------------------------------------------------------------

_DASHBOARD_SELECTORS = {
    "summary": dashboard.summary,
    "totalUsers": dashboard.total_users,
    "totalEnrollments": dashboard.total_enrollments,
    "enrollmentsByStatus": dashboard.enrollments_by_status,
    "totalIncome": dashboard.total_income,
    "paymentsByStatus": dashboard.payments_by_status,
}


@admin_operations_router.get("/api/admin/dashboard")
async def get_dashboard(request: Request):
    """Dashboard aggregates.

    Query:
        One selector flag (`summary`, `totalUsers`, `totalEnrollments`,
        `enrollmentsByStatus`, `totalIncome`, `paymentsByStatus`). Without a
        selector the full summary is returned.
    """
    for key, loader in _DASHBOARD_SELECTORS.items():
        if key in request.query_params:
            return run_service(request, loader)
    return run_service(request, dashboard.summary)


# --- Contact requests ---------------------------------------------------------


class ContactStatus(BaseModel):
    status: str


class ContactReplyPayload(BaseModel):
    subject: str = Field(default="", max_length=1000)
    message: str = Field(default="", max_length=20000)


@admin_operations_router.get("/api/admin/contact-requests")
async def list_contact_requests(request: Request):
    params = list_params(request)
    return run_service(request, lambda s: contact.list_requests(s, params))


@admin_operations_router.get("/api/admin/contact-requests/{request_id}")
async def get_contact_request(request: Request, request_id: str):
    return run_service(request, lambda s: contact.get_request_details(s, request_id))


@admin_operations_router.patch("/api/admin/contact-requests/{request_id}")
async def update_contact_status(request: Request, request_id: str, payload: ContactStatus):
    return run_service(request, lambda s: contact.update_status(s, request_id, payload.status))


@admin_operations_router.delete("/api/admin/contact-requests/{request_id}")
async def delete_contact_request(request: Request, request_id: str):
    return run_service(request, lambda s: contact.delete_request(s, request_id), message="Contact request deleted")


@admin_operations_router.post("/api/admin/contact-requests/{request_id}/reply")
async def reply_contact_request(request: Request, request_id: str, payload: ContactReplyPayload):
    """E-mail a reply to the requester and store it.

    Behavior:
        - 201 with the stored reply; `email_status` is `sent` or `failed`.
        - A `new` request moves to `in-progress`.
    """
    user = current_user(request) or {}
    admin = {"sub": user.get("sub"), "email": user.get("email")}
    return run_service(
        request,
        lambda s: contact.reply(s, admin, request_id, payload.subject, payload.message),
        status_code=201,
    )


@admin_operations_router.get("/api/admin/contact-replies")
async def list_contact_replies(request: Request):
    params = list_params(request, default_sort="sent_at")
    return run_service(request, lambda s: contact.list_replies(s, params))


# --- E-mail logs --------------------------------------------------------------


@admin_operations_router.get("/api/admin/email-logs")
async def list_email_logs(request: Request):
    params = list_params(request)
    return run_service(request, lambda s: email_logs.list_email_logs(s, params))


@admin_operations_router.get("/api/admin/email-logs/{log_id}")
async def get_email_log(request: Request, log_id: str):
    return run_service(request, lambda s: email_logs.get_email_log(s, log_id))
