"""
Learner API: own enrollments and payments.

Why:
    Learners request seats and record payments without touching admin
    endpoints. Every query is scoped to the session subject; the services
    re-check ownership so a forged id never reaches another learner's rows.

Permissions:
    Any authenticated session (middleware guarantees `request.state.user`).
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field, field_validator

from backend.academy import enrollments, payments

from ..responses import list_params, run_service
from ..sessions import current_user


user_router = APIRouter(tags=["Learner"])
logger = logging.getLogger("hope.web.user")


def _sub(request: Request) -> str:
    return str((current_user(request) or {}).get("sub") or "")


class EnrollmentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    intake_id: str = Field(..., min_length=1, max_length=64, alias="intakeId")
    notes: str | None = Field(default=None, max_length=2000)


class CancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class PaymentRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enrollment_id: str = Field(..., min_length=1, max_length=64, alias="enrollmentId")
    amount: float
    payment_method: str = Field(default="cash", alias="paymentMethod")
    remarks: str | None = Field(default=None, max_length=2000)

    @field_validator("remarks")
    @classmethod
    def _strip_empty(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v if v else None
        return v


@user_router.get("/api/user/enrollments")
async def my_enrollments(request: Request):
    sub = _sub(request)
    return run_service(request, lambda s: enrollments.list_for_user(s, sub))


@user_router.post("/api/user/enrollments")
async def request_enrollment(request: Request, payload: EnrollmentRequest):
    """Request a seat in an intake.

    Behavior:
        - 201 with the new enrollment (status `requested`).
        - 409 `ALREADY_ENROLLED`, `INTAKE_CLOSED` or `INTAKE_FULL`.
        - 403 `ACCOUNT_INACTIVE` for deleted profiles.
    """
    sub = _sub(request)
    return run_service(
        request,
        lambda s: enrollments.request_enrollment(s, sub, payload.intake_id, payload.notes),
        status_code=201,
        message="Enrollment request submitted",
    )


@user_router.post("/api/user/enrollments/{enrollment_id}/cancel")
async def cancel_enrollment(request: Request, enrollment_id: str, payload: CancelRequest):
    sub = _sub(request)
    return run_service(request, lambda s: enrollments.cancel_for_user(s, sub, enrollment_id, payload.reason))


@user_router.get("/api/user/payments")
async def my_payments(request: Request):
    sub = _sub(request)
    params = list_params(request)
    return run_service(request, lambda s: payments.history_for_user(s, sub, params))


@user_router.post("/api/user/payments")
async def record_payment(request: Request, payload: PaymentRecord):
    sub = _sub(request)
    return run_service(
        request,
        lambda s: payments.create_for_user(s, sub, payload.model_dump()),
        status_code=201,
    )
