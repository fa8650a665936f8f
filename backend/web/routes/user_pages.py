"""
Learner pages: profile with enrollments, and payment history.

Permissions:
    Any signed-in user; `auth_enforcement` redirects anonymous visitors to
    `/sign-in` before these handlers run.

Behavior:
    Forms post back to the page they were rendered on and redirect (303) on
    success. Validation errors re-render the form with the API's messages.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional
from html import escape
import logging

from fastapi import APIRouter, Request

from ..components import Column, DataTable, StatusBadge, status_cell
from ..components.cards.course import format_date, format_price
from ..components.forms import FormShell, PaymentRecordForm, ProfileForm
from ..ssr import (
    api_call,
    api_data,
    csrf_error,
    error_message,
    field_errors,
    form_csrf_ok,
    form_text,
    page,
    see_other,
    session_csrf_token,
)


user_pages_router = APIRouter(tags=["Learner pages"])
logger = logging.getLogger("hope.web.user_pages")

_NOTICES = {
    "saved": "Your profile has been updated.",
    "cancelled": "Your enrollment request has been cancelled.",
    "paid": "Your payment has been recorded and is awaiting confirmation.",
}


def _notice_html(request: Request) -> str:
    notice = _NOTICES.get(request.query_params.get("notice") or "")
    return f'<div class="alert alert-success" role="status">{escape(notice)}</div>' if notice else ""


def _enrollment_rows(enrollments: List[Dict[str, Any]], csrf: str) -> str:
    if not enrollments:
        return '<p class="empty-state">You have no enrollments yet. <a href="/courses">Find a course</a>.</p>'
    rows = []
    for e in enrollments:
        actions = ""
        if e.get("status") == "requested":
            actions = FormShell(
                f"/users/enrollments/{e.get('id')}/cancel",
                csrf,
                "",
                submit_label="Cancel request",
                submit_variant="secondary",
                confirm="Cancel this enrollment request?",
                css_class="form form--button",
            ).render()
        if e.get("status") in ("requested", "enrolled"):
            actions += PaymentRecordForm(csrf, enrollment_id=str(e.get("id"))).render()
        rows.append(
            "<tr>"
            f'<td><a href="/courses/{escape(str(e.get("course_slug") or ""))}">{escape(str(e.get("course_title") or ""))}</a></td>'
            f"<td>{escape(format_date(e.get('start_date')))}</td>"
            f"<td>{escape(format_price(e.get('course_price')))}</td>"
            f"<td>{StatusBadge(e.get('status')).render()}</td>"
            f"<td>{actions}</td>"
            "</tr>"
        )
    return f"""
<div class="table-scroll">
<table class="table">
    <thead><tr><th scope="col">Course</th><th scope="col">Starts</th><th scope="col">Fee</th><th scope="col">Status</th><th scope="col"><span class="sr-only">Actions</span></th></tr></thead>
    <tbody>{''.join(rows)}</tbody>
</table>
</div>"""


async def _profile_page(
    request: Request,
    *,
    values: Optional[dict] = None,
    error: Optional[str] = None,
    errors: Optional[Dict[str, str]] = None,
    status_code: int = 200,
):
    me = await api_data(request, "/api/me", default={}) or {}
    profile = me.get("profile") or {}
    enrollments = (await api_data(request, "/api/user/enrollments", default={}) or {}).get("data") or []
    csrf = session_csrf_token(request)
    form_values = dict(profile)
    if values:
        form_values.update(values)
    content = f"""
<section>
    <h1>My profile</h1>
    {_notice_html(request)}
    {ProfileForm(csrf, values=form_values, error=error, field_errors=errors).render()}
</section>
<section aria-labelledby="enrollments-heading">
    <h2 id="enrollments-heading">My enrollments</h2>
    {_enrollment_rows(enrollments, csrf)}
    <p><a href="/users/payment-history">View payment history</a></p>
</section>"""
    return page(request, "My profile", content, status_code=status_code)


@user_pages_router.get("/users/profile")
async def profile_page(request: Request):
    return await _profile_page(request)


@user_pages_router.post("/users/profile")
async def profile_submit(request: Request):
    form = await request.form()
    if not form_csrf_ok(request, form):
        return csrf_error()
    payload = {"full_name": form_text(form, "full_name") or "", "phone": form_text(form, "phone")}
    status, body = await api_call(request, "PATCH", "/api/me", json=payload)
    if status == 200:
        return see_other("/users/profile?notice=saved")
    return await _profile_page(
        request,
        values={"full_name": payload["full_name"], "phone": payload["phone"] or ""},
        error=error_message(body),
        errors=field_errors(body),
        status_code=status if status >= 400 else 400,
    )


@user_pages_router.post("/users/enrollments/{enrollment_id}/cancel")
async def enrollment_cancel(request: Request, enrollment_id: str):
    form = await request.form()
    if not form_csrf_ok(request, form):
        return csrf_error()
    status, body = await api_call(request, "POST", f"/api/user/enrollments/{enrollment_id}/cancel", json={})
    if status == 200:
        return see_other("/users/profile?notice=cancelled")
    return await _profile_page(request, error=error_message(body), status_code=status if status >= 400 else 400)


PAYMENT_COLUMNS = [
    Column("course_title", "Course", sortable=False),
    Column("amount", "Amount", render=lambda row: escape(format_price(row.get("amount")))),
    Column("payment_method", "Method"),
    Column("status", "Status", render=status_cell()),
    Column("refunded_amount", "Refunded", sortable=False, render=lambda row: escape(format_price(row.get("refunded_amount")))),
    Column("created_at", "Date"),
]


@user_pages_router.get("/users/payment-history")
async def payment_history(request: Request):
    query = dict(request.query_params)
    listing = await api_data(request, "/api/user/payments", query, default=None) or {"data": [], "total": 0}
    table = DataTable(
        PAYMENT_COLUMNS,
        listing,
        path="/users/payment-history",
        query=query,
        empty_text="No payments recorded yet.",
        search_placeholder="Search by course",
    )
    content = f"""
<section>
    <h1>Payment history</h1>
    {_notice_html(request)}
    {table.render()}
</section>"""
    return page(request, "Payment history", content)


@user_pages_router.post("/users/payments")
async def payment_record(request: Request):
    """Record a learner payment (status `pending` until an admin confirms it)."""
    form = await request.form()
    if not form_csrf_ok(request, form):
        return csrf_error()
    payload = {
        "enrollmentId": form_text(form, "enrollment_id") or "",
        "amount": form_text(form, "amount") or "0",
        "paymentMethod": form_text(form, "payment_method") or "cash",
    }
    status, body = await api_call(request, "POST", "/api/user/payments", json=payload)
    if status == 201:
        return see_other("/users/payment-history?notice=paid")
    logger.info("learner payment rejected status=%s code=%s", status, body.get("code"))
    return await _profile_page(request, error=error_message(body), status_code=status if status >= 400 else 400)
