"""
Admin back-office pages.

Permissions:
    `service_role` only. `auth_enforcement` answers anonymous visitors with a
    redirect to `/sign-in` and non-admins with a redirect to `/users/profile`
    before any handler here runs.

Behavior:
    - Every page reads through the JSON API (`ssr.api_call`), so the admin UI
      shows exactly what `/api/admin/*` returns and cannot bypass service
      validation.
    - Forms post back to a page route, which maps the fields onto the API
      payload and redirects (303) on success. On failure the page re-renders
      with the API's message and the status it returned.
    - Course images go through `POST /api/upload` first; the returned URL is
      then stored on the course.
"""
from __future__ import annotations

from dataclasses import dataclass
from html import escape
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type
import logging

from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse
from starlette.datastructures import UploadFile

from backend.academy import enrollments as enrollment_rules
from backend.academy import payments as payment_rules
from backend.academy.contact import TRANSITIONS as CONTACT_TRANSITIONS
from backend.db.models import ENROLLMENT_STATUSES

from ..components import Column, DataTable, StatusBadge, status_cell
from ..components.base import Component
from ..components.cards.course import format_date, format_price
from ..components.forms import (
    AffiliationForm,
    CategoryForm,
    CourseForm,
    DeleteForm,
    EnrollmentCreateForm,
    FormShell,
    IntakeForm,
    IntakeGenerateForm,
    PaymentCreateForm,
    RefundForm,
    ReplyForm,
    RoleForm,
    SoftDeleteForm,
    StatusForm,
    TextAreaField,
)
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


admin_pages_router = APIRouter(tags=["Admin pages"])
logger = logging.getLogger("hope.web.admin_pages")

_NOTICES = {
    "created": "Created.",
    "saved": "Changes saved.",
    "deleted": "Deleted.",
    "status": "Status updated.",
    "generated": "Intakes generated.",
    "refunded": "Refund recorded.",
    "replied": "Reply sent.",
    "restored": "User restored.",
    "image-removed": "Image removed.",
    "bulk": "Bulk status update applied.",
}

# Select lists in admin forms load at most one API page
SELECT_PAGE_SIZE = 100

_BREADCRUMBS = {"admin": "Admin", "edit": "Edit", "new": "New"}


# --- Small helpers ------------------------------------------------------------


def _notice_html(request: Request) -> str:
    key = request.query_params.get("notice") or ""
    notice = _NOTICES.get(key)
    if not notice:
        return ""
    if key == "bulk":
        failed = request.query_params.get("failed") or "0"
        if failed.isdigit() and int(failed) > 0:
            notice = f"{notice} {failed} enrollment(s) could not be changed."
    return f'<div class="alert alert-success" role="status">{escape(notice)}</div>'


def _error_html(message: Optional[str]) -> str:
    return f'<div class="alert alert-error" role="alert">{escape(message)}</div>' if message else ""


def _failure_status(status: int) -> int:
    return status if status >= 400 else 400


def _page_header(title: str, actions: str = "") -> str:
    return f'<div class="page-header"><h1>{escape(title)}</h1><div class="actions-row">{actions}</div></div>'


def _detail_list(pairs: Iterable[Tuple[str, Any]]) -> str:
    items = "".join(f"<dt>{escape(label)}</dt><dd>{value}</dd>" for label, value in pairs)
    return f'<dl class="detail-list">{items}</dl>'


def _text(value: Any) -> str:
    if value is None or value == "":
        return "—"
    return escape(str(value))


def _when(value: Any) -> str:
    if not value:
        return "—"
    text = str(value)
    return escape(text[:16].replace("T", " "))


def _money(value: Any) -> str:
    return escape(format_price(value))


def _link(href: str, label: Any) -> str:
    return f'<a href="{escape(href)}">{_text(label)}</a>'


def _simple_table(headers: List[str], rows: List[List[str]], empty_text: str) -> str:
    if not rows:
        return f'<p class="empty-state">{escape(empty_text)}</p>'
    head = "".join(f'<th scope="col">{escape(h)}</th>' for h in headers)
    body = "".join("<tr>" + "".join(f"<td>{cell}</td>" for cell in row) + "</tr>" for row in rows)
    return f'<div class="table-scroll"><table class="table"><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table></div>'


def _admin_page(request: Request, title: str, content: str, *, status_code: int = 200, labels: Optional[Dict[str, str]] = None):
    crumbs = dict(_BREADCRUMBS)
    if labels:
        crumbs.update(labels)
    return page(request, title, content, status_code=status_code, breadcrumb_labels=crumbs)


def _date_value(raw: Optional[str]) -> Optional[str]:
    """`YYYY-MM-DD` from a date input as midnight UTC."""
    if not raw:
        return None
    return f"{raw[:10]}T00:00:00+00:00"


def _listing(query: Mapping[str, Any], *keys: str) -> Dict[str, Any]:
    return {k: v for k, v in query.items() if k in ("page", "pageSize", "sortBy", "order", "filters", "search") + keys}


async def _load_listing(request: Request, path: str, params: Mapping[str, Any]) -> Dict[str, Any]:
    return await api_data(request, path, params, default=None) or {"data": [], "total": 0, "page": 1, "pageSize": 10}


async def _form(request: Request):
    """Parsed form, or None when the CSRF token does not match the session."""
    form = await request.form()
    if not form_csrf_ok(request, form):
        return None
    return form


# --- Dashboard ----------------------------------------------------------------


@admin_pages_router.get("/admin")
async def admin_root():
    return RedirectResponse(url="/admin/dashboard", status_code=302)


@admin_pages_router.get("/admin/dashboard")
async def dashboard(request: Request):
    summary = await api_data(request, "/api/admin/dashboard", default={}) or {}
    cards = [
        ("Users", _text(summary.get("total_users", 0))),
        ("Enrollments", _text(summary.get("total_enrollments", 0))),
        ("Income", _money(summary.get("total_income", 0))),
    ]
    cards_html = "".join(
        f'<div class="stat-card"><div class="stat-card__value">{value}</div><div class="stat-card__label">{escape(label)}</div></div>'
        for label, value in cards
    )
    by_enrollment = _simple_table(
        ["Status", "Count"],
        [[StatusBadge(r.get("status")).render(), _text(r.get("count"))] for r in summary.get("enrollments_by_status") or []],
        "No enrollments yet.",
    )
    by_payment = _simple_table(
        ["Status", "Count", "Amount"],
        [
            [StatusBadge(r.get("status")).render(), _text(r.get("count")), _money(r.get("total_amount"))]
            for r in summary.get("payments_by_status") or []
        ],
        "No payments yet.",
    )
    recent = _simple_table(
        ["Learner", "Course", "Status", "Requested"],
        [
            [
                _link(f"/admin/enrollments/{r.get('id')}", r.get("user_name") or r.get("user_email")),
                _text(r.get("course_title")),
                StatusBadge(r.get("status")).render(),
                _when(r.get("created_at")),
            ]
            for r in summary.get("recent_enrollments") or []
        ],
        "No recent enrollments.",
    )
    content = f"""
{_page_header("Dashboard")}
<div class="stat-grid">{cards_html}</div>
<section class="panel"><h2>Enrollments by status</h2>{by_enrollment}</section>
<section class="panel"><h2>Payments by status</h2>{by_payment}</section>
<section class="panel"><h2>Recent enrollments</h2>{recent}<p><a href="/admin/enrollments">All enrollments</a></p></section>"""
    return _admin_page(request, "Dashboard", content)


# --- Courses ------------------------------------------------------------------


COURSE_COLUMNS = [
    Column("title", "Title"),
    Column("category_name", "Category"),
    Column("affiliation_name", "Affiliation"),
    Column("price", "Price", render=lambda row: _money(row.get("price"))),
    Column("intake_count", "Intakes", sortable=False),
    Column("enrollment_count", "Enrollments", sortable=False),
    Column("created_at", "Created"),
]

_COURSE_FIELDS = (
    "title",
    "slug",
    "price",
    "category_id",
    "affiliation_id",
    "level",
    "duration_type",
    "duration_value",
    "course_overview",
    "course_highlights",
)


@admin_pages_router.get("/admin/courses")
async def courses_list(request: Request):
    query = dict(request.query_params)
    listing = await _load_listing(request, "/api/admin/courses", _listing(query))
    table = DataTable(
        COURSE_COLUMNS,
        listing,
        path="/admin/courses",
        query=query,
        empty_text="No courses yet.",
        search_placeholder="Search by title or slug",
        row_href=lambda row: f"/admin/courses/{row.get('id')}",
    )
    content = f"""
{_page_header("Courses", '<a class="btn btn-primary" href="/admin/courses/new">New course</a>')}
{_notice_html(request)}
{table.render()}"""
    return _admin_page(request, "Courses", content)


async def _course_choices(request: Request) -> Tuple[List[dict], List[dict]]:
    categories = await api_data(request, "/api/admin/categories", {"getAll": "1"}, default=[]) or []
    affiliations = await api_data(request, "/api/admin/affiliations", {"getAll": "1"}, default=[]) or []
    return categories, affiliations


async def _course_form_page(
    request: Request,
    *,
    action: str,
    title: str,
    values: Optional[dict] = None,
    error: Optional[str] = None,
    errors: Optional[Dict[str, str]] = None,
    submit_label: str = "Create course",
    status_code: int = 200,
):
    categories, affiliations = await _course_choices(request)
    form = CourseForm(
        action,
        session_csrf_token(request),
        categories=categories,
        affiliations=affiliations,
        values=values,
        error=error,
        field_errors=errors,
        submit_label=submit_label,
    )
    content = f"{_page_header(title)}{form.render()}"
    return _admin_page(request, title, content, status_code=status_code)


def _course_payload(form: Mapping[str, Any]) -> Dict[str, Any]:
    return {name: form_text(form, name) for name in _COURSE_FIELDS}


def _submitted_image(form: Mapping[str, Any]) -> Optional[UploadFile]:
    upload = form.get("image")
    if isinstance(upload, UploadFile) and upload.filename:
        return upload
    return None


async def _upload_image(request: Request, upload: UploadFile) -> Tuple[Optional[str], Optional[str]]:
    """Store an uploaded image through the upload API.

    Returns:
        `(url, None)` on success, `(None, message)` otherwise.
    """
    data = await upload.read()
    status, body = await api_call(
        request,
        "POST",
        "/api/upload",
        files={"file": (upload.filename, data, upload.content_type or "application/octet-stream")},
    )
    if status == 201:
        return (body.get("data") or {}).get("url"), None
    return None, error_message(body, "The image could not be uploaded")


async def _discard_image(request: Request, url: Optional[str]) -> None:
    if url and url.startswith("/uploads/"):
        status, _ = await api_call(request, "POST", "/api/delete-image", json={"imageUrl": url})
        if status != 200:
            logger.warning("could not remove replaced image url=%s status=%s", url, status)


@admin_pages_router.get("/admin/courses/new")
async def course_new(request: Request):
    return await _course_form_page(request, action="/admin/courses/new", title="New course")


@admin_pages_router.post("/admin/courses/new")
async def course_create(request: Request):
    form = await _form(request)
    if form is None:
        return csrf_error()
    payload = _course_payload(form)
    uploaded_url = None
    upload = _submitted_image(form)
    if upload is not None:
        uploaded_url, upload_error = await _upload_image(request, upload)
        if upload_error:
            return await _course_form_page(
                request, action="/admin/courses/new", title="New course", values=payload,
                error=upload_error, errors={"image": upload_error}, status_code=400,
            )
        payload["image_url"] = uploaded_url
    status, body = await api_call(request, "POST", "/api/admin/courses", json=payload)
    if status == 201:
        course_id = (body.get("data") or {}).get("id")
        return see_other(f"/admin/courses/{course_id}?notice=created")
    await _discard_image(request, uploaded_url)
    return await _course_form_page(
        request,
        action="/admin/courses/new",
        title="New course",
        values=payload,
        error=error_message(body),
        errors=field_errors(body, _COURSE_FIELDS),
        status_code=_failure_status(status),
    )


@admin_pages_router.get("/admin/courses/edit/{course_id}")
async def course_edit(request: Request, course_id: str):
    course = await api_data(request, f"/api/admin/courses/{course_id}")
    if not course:
        return _admin_page(request, "Course not found", "<h1>Course not found</h1>", status_code=404)
    return await _course_form_page(
        request,
        action=f"/admin/courses/edit/{course_id}",
        title=f"Edit {course.get('title')}",
        values=course,
        submit_label="Save changes",
    )


@admin_pages_router.post("/admin/courses/edit/{course_id}")
async def course_update(request: Request, course_id: str):
    form = await _form(request)
    if form is None:
        return csrf_error()
    payload = _course_payload(form)
    previous_url = form_text(form, "image_url")
    values = dict(payload, image_url=previous_url)
    uploaded_url = None
    upload = _submitted_image(form)
    if upload is not None:
        uploaded_url, upload_error = await _upload_image(request, upload)
        if upload_error:
            return await _course_form_page(
                request, action=f"/admin/courses/edit/{course_id}", title="Edit course", values=values,
                error=upload_error, errors={"image": upload_error}, submit_label="Save changes", status_code=400,
            )
        payload["image_url"] = uploaded_url
    status, body = await api_call(request, "PATCH", f"/api/admin/courses/{course_id}", json=payload)
    if status == 200:
        if uploaded_url and previous_url != uploaded_url:
            await _discard_image(request, previous_url)
        return see_other(f"/admin/courses/{course_id}?notice=saved")
    await _discard_image(request, uploaded_url)
    return await _course_form_page(
        request,
        action=f"/admin/courses/edit/{course_id}",
        title="Edit course",
        values=values,
        error=error_message(body),
        errors=field_errors(body, _COURSE_FIELDS),
        submit_label="Save changes",
        status_code=_failure_status(status),
    )


async def _course_detail(request: Request, course_id: str, *, error: Optional[str] = None, status_code: int = 200):
    course = await api_data(request, f"/api/admin/courses/{course_id}")
    if not course:
        return _admin_page(request, "Course not found", "<h1>Course not found</h1>", status_code=404)
    csrf = session_csrf_token(request)
    category = course.get("category") or {}
    affiliation = course.get("affiliation") or {}
    facts = _detail_list(
        [
            ("Slug", _link(f"/courses/{course.get('slug')}", course.get("slug"))),
            ("Price", _money(course.get("price"))),
            ("Category", _text(category.get("name"))),
            ("Affiliation", _text(affiliation.get("name"))),
            ("Level", _text(course.get("level"))),
            ("Duration", _text(f"{course.get('duration_value') or ''} {course.get('duration_type') or ''}".strip())),
            ("Created", _when(course.get("created_at"))),
        ]
    )
    image = course.get("image_url")
    image_html = ""
    if image:
        remove = FormShell(
            f"/admin/courses/{course_id}/image/delete", csrf, "", submit_label="Remove image",
            submit_variant="secondary", confirm="Remove the course image?", css_class="form form--button",
        ).render()
        image_html = f'<p><img class="image-preview" src="{escape(image)}" alt="Course image" width="240"></p>{remove}'
    intakes = _simple_table(
        ["Starts", "Ends", "Capacity", "Registered", "Open"],
        [
            [
                _link(f"/admin/intakes/{i.get('id')}", format_date(i.get("start_date"))),
                _text(format_date(i.get("end_date"))),
                _text(i.get("capacity")),
                _text(i.get("total_registered")),
                "Yes" if i.get("is_open") else "No",
            ]
            for i in course.get("intakes") or []
        ],
        "No intakes scheduled.",
    )
    intake_form = IntakeForm("/admin/intakes", csrf, values={"course_id": course_id}, lock_course=True)
    actions = (
        f'<a class="btn btn-secondary" href="/admin/courses/edit/{escape(course_id)}">Edit</a>'
        + DeleteForm(f"/admin/courses/{course_id}/delete", csrf, label="Delete course",
                     confirm="Delete this course?").render()
    )
    content = f"""
{_page_header(course.get("title") or "Course", actions)}
{_notice_html(request)}
{_error_html(error)}
<section class="panel">{facts}{image_html}</section>
<section class="panel"><h2>Intakes</h2>{intakes}<details><summary>Add intake</summary>{intake_form.render()}</details></section>"""
    return _admin_page(
        request, course.get("title") or "Course", content, status_code=status_code,
        labels={course_id: course.get("title") or "Course"},
    )


@admin_pages_router.get("/admin/courses/{course_id}")
async def course_detail(request: Request, course_id: str):
    return await _course_detail(request, course_id)


@admin_pages_router.post("/admin/courses/{course_id}/delete")
async def course_delete(request: Request, course_id: str):
    form = await _form(request)
    if form is None:
        return csrf_error()
    status, body = await api_call(request, "DELETE", f"/api/admin/courses/{course_id}")
    if status == 200:
        return see_other("/admin/courses?notice=deleted")
    return await _course_detail(request, course_id, error=error_message(body), status_code=_failure_status(status))


@admin_pages_router.post("/admin/courses/{course_id}/image/delete")
async def course_image_delete(request: Request, course_id: str):
    form = await _form(request)
    if form is None:
        return csrf_error()
    status, body = await api_call(request, "DELETE", f"/api/admin/courses/{course_id}/image")
    if status == 200:
        return see_other(f"/admin/courses/{course_id}?notice=image-removed")
    return await _course_detail(request, course_id, error=error_message(body), status_code=_failure_status(status))


# --- Categories and affiliations ----------------------------------------------


@dataclass
class _Taxonomy:
    """One of the two small lookup tables edited through a single form."""

    path: str
    api: str
    title: str
    singular: str
    form: Type[Component]
    fields: Tuple[str, ...]
    columns: List[Column]

    def render_form(self, action: str, csrf: str, **kwargs: Any) -> str:
        return self.form(action, csrf, **kwargs).render()


CATEGORIES = _Taxonomy(
    path="/admin/categories",
    api="/api/admin/categories",
    title="Categories",
    singular="category",
    form=CategoryForm,
    fields=("name", "description"),
    columns=[
        Column("name", "Name"),
        Column("description", "Description", sortable=False),
        Column("course_count", "Courses", sortable=False),
        Column("created_at", "Created"),
    ],
)

AFFILIATIONS = _Taxonomy(
    path="/admin/affiliations",
    api="/api/admin/affiliations",
    title="Affiliations",
    singular="affiliation",
    form=AffiliationForm,
    fields=("name", "type", "description"),
    columns=[
        Column("name", "Name"),
        Column("type", "Type"),
        Column("course_count", "Courses", sortable=False),
        Column("created_at", "Created"),
    ],
)


def _taxonomy_payload(kind: _Taxonomy, form: Mapping[str, Any]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {name: form_text(form, name) or "" for name in kind.fields}
    payload["description"] = form_text(form, "description")
    return payload


async def _taxonomy_list(
    request: Request, kind: _Taxonomy, *, values: Optional[dict] = None, error: Optional[str] = None, status_code: int = 200
):
    query = dict(request.query_params)
    listing = await _load_listing(request, kind.api, _listing(query))
    table = DataTable(
        kind.columns,
        listing,
        path=kind.path,
        query=query,
        empty_text=f"No {kind.title.lower()} yet.",
        row_href=lambda row: f"{kind.path}/{row.get('id')}",
    )
    form_html = kind.render_form(
        kind.path, session_csrf_token(request), values=values, error=error, submit_label=f"Add {kind.singular}"
    )
    content = f"""
{_page_header(kind.title)}
{_notice_html(request)}
{table.render()}
<section class="panel"><h2>Add {escape(kind.singular)}</h2>{form_html}</section>"""
    return _admin_page(request, kind.title, content, status_code=status_code)


async def _taxonomy_detail(
    request: Request, kind: _Taxonomy, item_id: str, *, values: Optional[dict] = None,
    error: Optional[str] = None, status_code: int = 200,
):
    item = await api_data(request, f"{kind.api}/{item_id}")
    if not item:
        return _admin_page(request, "Not found", f"<h1>{escape(kind.singular.capitalize())} not found</h1>", status_code=404)
    csrf = session_csrf_token(request)
    form_html = kind.render_form(
        f"{kind.path}/{item_id}", csrf, values=values or item, error=error, submit_label="Save changes"
    )
    delete_html = DeleteForm(f"{kind.path}/{item_id}/delete", csrf, confirm=f"Delete this {kind.singular}?").render()
    content = f"""
{_page_header(item.get("name") or kind.singular.capitalize(), delete_html)}
{_notice_html(request)}
<section class="panel">{form_html}</section>"""
    return _admin_page(request, item.get("name") or kind.title, content, status_code=status_code,
                       labels={item_id: item.get("name") or kind.singular})


async def _taxonomy_create(request: Request, kind: _Taxonomy):
    form = await _form(request)
    if form is None:
        return csrf_error()
    payload = _taxonomy_payload(kind, form)
    status, body = await api_call(request, "POST", kind.api, json=payload)
    if status == 201:
        return see_other(f"{kind.path}?notice=created")
    return await _taxonomy_list(
        request, kind, values=payload, error=error_message(body), status_code=_failure_status(status)
    )


async def _taxonomy_update(request: Request, kind: _Taxonomy, item_id: str):
    form = await _form(request)
    if form is None:
        return csrf_error()
    payload = _taxonomy_payload(kind, form)
    status, body = await api_call(request, "PATCH", f"{kind.api}/{item_id}", json=payload)
    if status == 200:
        return see_other(f"{kind.path}/{item_id}?notice=saved")
    return await _taxonomy_detail(
        request, kind, item_id, values=payload, error=error_message(body), status_code=_failure_status(status)
    )


async def _taxonomy_delete(request: Request, kind: _Taxonomy, item_id: str):
    form = await _form(request)
    if form is None:
        return csrf_error()
    status, body = await api_call(request, "DELETE", f"{kind.api}/{item_id}")
    if status == 200:
        return see_other(f"{kind.path}?notice=deleted")
    return await _taxonomy_detail(request, kind, item_id, error=error_message(body), status_code=_failure_status(status))


def _register_taxonomy(kind: _Taxonomy) -> None:
    async def list_page(request: Request):
        return await _taxonomy_list(request, kind)

    async def create(request: Request):
        return await _taxonomy_create(request, kind)

    async def detail(request: Request, item_id: str):
        return await _taxonomy_detail(request, kind, item_id)

    async def update(request: Request, item_id: str):
        return await _taxonomy_update(request, kind, item_id)

    async def delete(request: Request, item_id: str):
        return await _taxonomy_delete(request, kind, item_id)

    admin_pages_router.add_api_route(kind.path, list_page, methods=["GET"], name=f"{kind.singular}_list")
    admin_pages_router.add_api_route(kind.path, create, methods=["POST"], name=f"{kind.singular}_create")
    admin_pages_router.add_api_route(f"{kind.path}/{{item_id}}", detail, methods=["GET"], name=f"{kind.singular}_detail")
    admin_pages_router.add_api_route(f"{kind.path}/{{item_id}}", update, methods=["POST"], name=f"{kind.singular}_update")
    admin_pages_router.add_api_route(
        f"{kind.path}/{{item_id}}/delete", delete, methods=["POST"], name=f"{kind.singular}_delete"
    )


_register_taxonomy(CATEGORIES)
_register_taxonomy(AFFILIATIONS)


# --- Intakes ------------------------------------------------------------------


INTAKE_COLUMNS = [
    Column("course_title", "Course"),
    Column("start_date", "Starts", render=lambda row: escape(format_date(row.get("start_date")))),
    Column("end_date", "Ends", render=lambda row: escape(format_date(row.get("end_date")))),
    Column("capacity", "Capacity"),
    Column("total_registered", "Registered"),
    Column("is_open", "Open"),
    Column("enrollment_count", "Enrollments", sortable=False),
]

_INTAKE_FIELDS = ("course_id", "start_date", "end_date", "capacity")


def _intake_payload(form: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "course_id": form_text(form, "course_id"),
        "start_date": _date_value(form_text(form, "start_date")),
        "end_date": _date_value(form_text(form, "end_date")),
        "capacity": form_text(form, "capacity"),
        "is_open": form.get("is_open") is not None,
    }


async def _intakes_page(
    request: Request,
    *,
    values: Optional[dict] = None,
    error: Optional[str] = None,
    errors: Optional[Dict[str, str]] = None,
    generate_values: Optional[dict] = None,
    generate_error: Optional[str] = None,
    status_code: int = 200,
):
    query = dict(request.query_params)
    listing = await _load_listing(request, "/api/admin/intakes", _listing(query))
    courses = await api_data(request, "/api/admin/courses", {"getAll": "1"}, default=[]) or []
    csrf = session_csrf_token(request)
    table = DataTable(
        INTAKE_COLUMNS,
        listing,
        path="/admin/intakes",
        query=query,
        empty_text="No intakes yet.",
        search_placeholder="Search by course",
        row_href=lambda row: f"/admin/intakes/{row.get('id')}",
    )
    create_form = IntakeForm("/admin/intakes", csrf, courses=courses, values=values, error=error, field_errors=errors)
    generate_form = IntakeGenerateForm(csrf, courses=courses, values=generate_values, error=generate_error)
    content = f"""
{_page_header("Intakes")}
{_notice_html(request)}
{table.render()}
<section class="panel"><h2>Add intake</h2>{create_form.render()}</section>
<section class="panel"><h2>Generate a year of intakes</h2>{generate_form.render()}</section>"""
    return _admin_page(request, "Intakes", content, status_code=status_code)


@admin_pages_router.get("/admin/intakes")
async def intakes_list(request: Request):
    return await _intakes_page(request)


@admin_pages_router.post("/admin/intakes")
async def intake_create(request: Request):
    form = await _form(request)
    if form is None:
        return csrf_error()
    payload = _intake_payload(form)
    status, body = await api_call(request, "POST", "/api/admin/intakes", json=payload)
    if status == 201:
        intake_id = (body.get("data") or {}).get("id")
        return see_other(f"/admin/intakes/{intake_id}?notice=created")
    values = dict(payload, start_date=form_text(form, "start_date"), end_date=form_text(form, "end_date"))
    return await _intakes_page(
        request,
        values=values,
        error=error_message(body),
        errors=field_errors(body, _INTAKE_FIELDS),
        status_code=_failure_status(status),
    )


@admin_pages_router.post("/admin/intakes/generate")
async def intakes_generate(request: Request):
    form = await _form(request)
    if form is None:
        return csrf_error()
    values = {
        "course_id": form_text(form, "course_id"),
        "year": form_text(form, "year"),
        "pattern": form_text(form, "pattern") or "quarterly",
        "capacity": form_text(form, "capacity"),
    }
    payload = {
        "courseId": values["course_id"] or "",
        "year": values["year"],
        "pattern": values["pattern"],
    }
    if values["capacity"]:
        payload["capacity"] = values["capacity"]
    status, body = await api_call(request, "POST", "/api/admin/intakes/generate", json=payload)
    if status == 201:
        created = len((body.get("data") or {}).get("created") or [])
        logger.info("admin generated intakes course=%s created=%s", values["course_id"], created)
        return see_other("/admin/intakes?notice=generated")
    return await _intakes_page(
        request, generate_values=values, generate_error=error_message(body), status_code=_failure_status(status)
    )


async def _intake_detail(
    request: Request,
    intake_id: str,
    *,
    values: Optional[dict] = None,
    error: Optional[str] = None,
    errors: Optional[Dict[str, str]] = None,
    status_code: int = 200,
):
    intake = await api_data(request, f"/api/admin/intakes/{intake_id}")
    if not intake:
        return _admin_page(request, "Intake not found", "<h1>Intake not found</h1>", status_code=404)
    csrf = session_csrf_token(request)
    course = intake.get("course") or {}
    label = f"{course.get('title') or 'Intake'} · {format_date(intake.get('start_date'))}"
    facts = _detail_list(
        [
            ("Course", _link(f"/admin/courses/{course.get('id')}", course.get("title"))),
            ("Starts", _text(format_date(intake.get("start_date")))),
            ("Ends", _text(format_date(intake.get("end_date")))),
            ("Capacity", _text(intake.get("capacity"))),
            ("Registered", _text(intake.get("total_registered"))),
            ("Available", _text(intake.get("available_spots"))),
            ("Enrollments", _text(intake.get("enrollment_count"))),
            ("Open", "Yes" if intake.get("is_open") else "No"),
        ]
    )
    is_open = bool(intake.get("is_open"))
    toggle = FormShell(
        f"/admin/intakes/{intake_id}/status",
        csrf,
        f'<input type="hidden" name="is_open" value="{"0" if is_open else "1"}">',
        submit_label="Close intake" if is_open else "Open intake",
        submit_variant="secondary",
        css_class="form form--button",
    ).render()
    delete_html = DeleteForm(f"/admin/intakes/{intake_id}/delete", csrf, confirm="Delete this intake?").render()
    edit_form = IntakeForm(
        f"/admin/intakes/{intake_id}",
        csrf,
        values=values or intake,
        error=error,
        field_errors=errors,
        submit_label="Save changes",
        lock_course=True,
    )
    content = f"""
{_page_header(label, toggle + delete_html)}
{_notice_html(request)}
<section class="panel">{facts}</section>
<section class="panel"><h2>Edit intake</h2>{edit_form.render()}</section>"""
    return _admin_page(request, label, content, status_code=status_code, labels={intake_id: label})


@admin_pages_router.get("/admin/intakes/{intake_id}")
async def intake_detail(request: Request, intake_id: str):
    return await _intake_detail(request, intake_id)


@admin_pages_router.post("/admin/intakes/{intake_id}")
async def intake_update(request: Request, intake_id: str):
    form = await _form(request)
    if form is None:
        return csrf_error()
    payload = _intake_payload(form)
    payload.pop("course_id", None)
    status, body = await api_call(request, "PATCH", f"/api/admin/intakes/{intake_id}", json=payload)
    if status == 200:
        return see_other(f"/admin/intakes/{intake_id}?notice=saved")
    values = dict(
        payload,
        course_id=form_text(form, "course_id"),
        start_date=form_text(form, "start_date"),
        end_date=form_text(form, "end_date"),
    )
    return await _intake_detail(
        request, intake_id, values=values, error=error_message(body),
        errors=field_errors(body, _INTAKE_FIELDS), status_code=_failure_status(status),
    )


@admin_pages_router.post("/admin/intakes/{intake_id}/status")
async def intake_status(request: Request, intake_id: str):
    form = await _form(request)
    if form is None:
        return csrf_error()
    is_open = form_text(form, "is_open") == "1"
    status, body = await api_call(request, "PATCH", f"/api/admin/intakes/{intake_id}/status", json={"is_open": is_open})
    if status == 200:
        return see_other(f"/admin/intakes/{intake_id}?notice=status")
    return await _intake_detail(request, intake_id, error=error_message(body), status_code=_failure_status(status))


@admin_pages_router.post("/admin/intakes/{intake_id}/delete")
async def intake_delete(request: Request, intake_id: str):
    form = await _form(request)
    if form is None:
        return csrf_error()
    status, body = await api_call(request, "DELETE", f"/api/admin/intakes/{intake_id}")
    if status == 200:
        return see_other("/admin/intakes?notice=deleted")
    return await _intake_detail(request, intake_id, error=error_message(body), status_code=_failure_status(status))


# --- Enrollments --------------------------------------------------------------


ENROLLMENT_COLUMNS = [
    Column("user_name", "Learner"),
    Column("user_email", "E-mail"),
    Column("course_title", "Course"),
    Column("start_date", "Intake", render=lambda row: escape(format_date(row.get("start_date")))),
    Column("status", "Status", render=status_cell()),
    Column("payment_status", "Payment", sortable=False, render=status_cell("payment_status")),
    Column("created_at", "Requested"),
]

BULK_FORM_ID = "bulk-status-form"


def _bulk_checkbox(row: Dict[str, Any]) -> str:
    return (
        f'<input type="checkbox" name="ids" value="{escape(str(row.get("id")))}" form="{BULK_FORM_ID}" '
        f'aria-label="Select enrollment">'
    )


def _status_filter(current: str) -> str:
    options = ['<option value="">All statuses</option>'] + [
        f'<option value="{s}"{" selected" if s == current else ""}>{s.capitalize()}</option>'
        for s in ENROLLMENT_STATUSES
    ]
    return f"""
<form class="form form--inline" method="get" action="/admin/enrollments">
    <label class="form-label" for="status-filter">Status</label>
    <select id="status-filter" name="status" class="form-input">{''.join(options)}</select>
    <button type="submit" class="btn btn-secondary">Filter</button>
</form>"""


def _bulk_form(csrf: str) -> str:
    options = "".join(f'<option value="{s}">{s.capitalize()}</option>' for s in ENROLLMENT_STATUSES)
    return f"""
<form id="{BULK_FORM_ID}" class="form form--inline" method="post" action="/admin/enrollments/bulk-status">
    <input type="hidden" name="csrf_token" value="{escape(csrf)}">
    <label class="form-label" for="bulk-status">Set selected to</label>
    <select id="bulk-status" name="status" class="form-input">{options}</select>
    <button type="submit" class="btn btn-secondary" data-confirm="Change the status of the selected enrollments?">Apply</button>
</form>"""


async def _enrollment_choices(request: Request) -> Tuple[List[dict], List[dict]]:
    users = (await _load_listing(request, "/api/admin/profiles", {"pageSize": SELECT_PAGE_SIZE, "sortBy": "full_name", "order": "asc"})).get("data") or []
    intakes = await api_data(request, "/api/admin/intakes", {"active": "1"}, default=[]) or []
    return users, intakes


async def _enrollments_page(request: Request, *, values: Optional[dict] = None, error: Optional[str] = None, status_code: int = 200):
    query = dict(request.query_params)
    current_status = query.get("status") or ""
    listing = await _load_listing(request, "/api/admin/enrollments", _listing(query, "status", "userId"))
    csrf = session_csrf_token(request)
    table = DataTable(
        ENROLLMENT_COLUMNS + [Column("select", "Select", sortable=False, render=_bulk_checkbox)],
        listing,
        path="/admin/enrollments",
        query=query,
        empty_text="No enrollments found.",
        search_placeholder="Search by learner or course",
        keep=("status", "userId"),
        row_href=lambda row: f"/admin/enrollments/{row.get('id')}",
    )
    users, intakes = await _enrollment_choices(request)
    create_form = EnrollmentCreateForm(csrf, users=users, intakes=intakes, values=values, error=error)
    details_open = " open" if error else ""
    content = f"""
{_page_header("Enrollments")}
{_notice_html(request)}
{_status_filter(current_status)}
{table.render()}
{_bulk_form(csrf)}
<details class="panel"{details_open}><summary>Create enrollment</summary>{create_form.render()}</details>"""
    return _admin_page(request, "Enrollments", content, status_code=status_code)


@admin_pages_router.get("/admin/enrollments")
async def enrollments_list(request: Request):
    return await _enrollments_page(request)


@admin_pages_router.post("/admin/enrollments")
async def enrollment_create(request: Request):
    form = await _form(request)
    if form is None:
        return csrf_error()
    payload = {
        "user_id": form_text(form, "user_id"),
        "intake_id": form_text(form, "intake_id"),
        "status": form_text(form, "status") or "enrolled",
        "notes": form_text(form, "notes"),
    }
    status, body = await api_call(request, "POST", "/api/admin/enrollments", json=payload)
    if status == 201:
        enrollment_id = (body.get("data") or {}).get("id")
        return see_other(f"/admin/enrollments/{enrollment_id}?notice=created")
    return await _enrollments_page(request, values=payload, error=error_message(body), status_code=_failure_status(status))


@admin_pages_router.post("/admin/enrollments/bulk-status")
async def enrollments_bulk_status(request: Request):
    form = await _form(request)
    if form is None:
        return csrf_error()
    ids = [str(v) for v in form.getlist("ids") if str(v).strip()]
    if not ids:
        return await _enrollments_page(request, error="Select at least one enrollment", status_code=400)
    status, body = await api_call(
        request, "POST", "/api/admin/enrollments/bulk-status", json={"ids": ids, "status": form_text(form, "status") or ""}
    )
    if status == 200:
        failed = len((body.get("data") or {}).get("failed") or [])
        return see_other(f"/admin/enrollments?notice=bulk&failed={failed}")
    return await _enrollments_page(request, error=error_message(body), status_code=_failure_status(status))


async def _enrollment_detail(request: Request, enrollment_id: str, *, error: Optional[str] = None, status_code: int = 200):
    enrollment = await api_data(request, f"/api/admin/enrollments/{enrollment_id}")
    if not enrollment:
        return _admin_page(request, "Enrollment not found", "<h1>Enrollment not found</h1>", status_code=404)
    csrf = session_csrf_token(request)
    user = enrollment.get("user") or {}
    course = enrollment.get("course") or {}
    intake = enrollment.get("intake") or {}
    current = enrollment.get("status") or ""
    label = f"{user.get('full_name') or 'Learner'} · {course.get('title') or 'Course'}"
    facts = _detail_list(
        [
            ("Learner", _link(f"/admin/users/{user.get('id')}", user.get("full_name"))),
            ("E-mail", _text(user.get("email"))),
            ("Course", _link(f"/admin/courses/{course.get('id')}", course.get("title"))),
            ("Intake", _link(f"/admin/intakes/{intake.get('id')}", format_date(intake.get("start_date")))),
            ("Status", StatusBadge(current).render()),
            ("Requested", _when(enrollment.get("enrollment_date") or enrollment.get("created_at"))),
            ("Cancellation reason", _text(enrollment.get("cancelled_reason"))),
        ]
    )
    status_form = StatusForm(
        f"/admin/enrollments/{enrollment_id}/status",
        csrf,
        enrollment_rules.TRANSITIONS.get(current, ()),
        with_reason=True,
        reason_label="Reason (used when cancelling)",
    )
    notes_form = FormShell(
        f"/admin/enrollments/{enrollment_id}/notes",
        csrf,
        TextAreaField("notes", "Notes").render(value=enrollment.get("notes") or "", rows=3, class_="form-input"),
        submit_label="Save notes",
    )
    payments = _simple_table(
        ["Amount", "Method", "Status", "Refunded", "Date"],
        [
            [
                _link(f"/admin/payments/{p.get('id')}", format_price(p.get("amount"))),
                _text(p.get("payment_method")),
                StatusBadge(p.get("status")).render(),
                _money(p.get("refunded_amount")),
                _when(p.get("created_at")),
            ]
            for p in enrollment.get("payments") or []
        ],
        "No payments recorded.",
    )
    refunds = _simple_table(
        ["Amount", "Reason", "Date"],
        [
            [_link(f"/admin/refunds/{r.get('id')}", format_price(r.get("amount"))), _text(r.get("reason")), _when(r.get("created_at"))]
            for r in enrollment.get("refunds") or []
        ],
        "No refunds.",
    )
    payment_form = ""
    if current in ("requested", "enrolled"):
        payment_form = PaymentCreateForm("/admin/payments", csrf, enrollment_id=enrollment_id).render()
    delete_html = DeleteForm(
        f"/admin/enrollments/{enrollment_id}/delete", csrf, confirm="Delete this enrollment and release its seat?"
    ).render()
    content = f"""
{_page_header(label, delete_html)}
{_notice_html(request)}
{_error_html(error)}
<section class="panel">{facts}</section>
<section class="panel"><h2>Status</h2>{status_form.render()}</section>
<section class="panel"><h2>Notes</h2>{notes_form.render()}</section>
<section class="panel"><h2>Payments</h2>{payments}{payment_form}</section>
<section class="panel"><h2>Refunds</h2>{refunds}</section>"""
    return _admin_page(request, label, content, status_code=status_code, labels={enrollment_id: label})


@admin_pages_router.get("/admin/enrollments/{enrollment_id}")
async def enrollment_detail(request: Request, enrollment_id: str):
    return await _enrollment_detail(request, enrollment_id)


async def _enrollment_action(
    request: Request, enrollment_id: str, method: str, path: str, payload: Optional[dict], notice: str, success: str = ""
):
    status, body = await api_call(request, method, path, json=payload)
    if status == 200:
        return see_other(success or f"/admin/enrollments/{enrollment_id}?notice={notice}")
    return await _enrollment_detail(request, enrollment_id, error=error_message(body), status_code=_failure_status(status))


@admin_pages_router.post("/admin/enrollments/{enrollment_id}/status")
async def enrollment_status(request: Request, enrollment_id: str):
    form = await _form(request)
    if form is None:
        return csrf_error()
    payload = {"status": form_text(form, "status") or "", "cancelled_reason": form_text(form, "reason")}
    return await _enrollment_action(
        request, enrollment_id, "PATCH", f"/api/admin/enrollments/{enrollment_id}/status", payload, "status"
    )


@admin_pages_router.post("/admin/enrollments/{enrollment_id}/notes")
async def enrollment_notes(request: Request, enrollment_id: str):
    form = await _form(request)
    if form is None:
        return csrf_error()
    return await _enrollment_action(
        request, enrollment_id, "PATCH", f"/api/admin/enrollments/{enrollment_id}", {"notes": form_text(form, "notes")}, "saved"
    )


@admin_pages_router.post("/admin/enrollments/{enrollment_id}/delete")
async def enrollment_delete(request: Request, enrollment_id: str):
    form = await _form(request)
    if form is None:
        return csrf_error()
    return await _enrollment_action(
        request, enrollment_id, "DELETE", f"/api/admin/enrollments/{enrollment_id}", None, "deleted",
        success="/admin/enrollments?notice=deleted",
    )


# --- Payments and refunds -----------------------------------------------------


PAYMENT_COLUMNS = [
    Column("user_name", "Learner"),
    Column("course_title", "Course"),
    Column("amount", "Amount", render=lambda row: _money(row.get("amount"))),
    Column("refunded_amount", "Refunded", render=lambda row: _money(row.get("refunded_amount"))),
    Column("status", "Status", render=status_cell()),
    Column("payment_method", "Method"),
    Column("enrollment_status", "Enrollment", render=status_cell("enrollment_status")),
    Column("created_at", "Date"),
]

REFUND_COLUMNS = [
    Column("user_name", "Learner"),
    Column("course_title", "Course"),
    Column("amount", "Amount", render=lambda row: _money(row.get("amount"))),
    Column("payment_amount", "Payment", render=lambda row: _money(row.get("payment_amount"))),
    Column("reason", "Reason", sortable=False),
    Column("created_at", "Date"),
]


async def _payments_page(request: Request, *, error: Optional[str] = None, status_code: int = 200):
    query = dict(request.query_params)
    listing = await _load_listing(request, "/api/admin/payments", _listing(query))
    enrollments = (await _load_listing(request, "/api/admin/enrollments", {"pageSize": SELECT_PAGE_SIZE})).get("data") or []
    table = DataTable(
        PAYMENT_COLUMNS,
        listing,
        path="/admin/payments",
        query=query,
        empty_text="No payments recorded.",
        search_placeholder="Search by learner or course",
        row_href=lambda row: f"/admin/payments/{row.get('id')}",
    )
    create_form = PaymentCreateForm("/admin/payments", session_csrf_token(request), enrollments=enrollments, error=error)
    content = f"""
{_page_header("Payments")}
{_notice_html(request)}
{table.render()}
<details class="panel"{" open" if error else ""}><summary>Record payment</summary>{create_form.render()}</details>"""
    return _admin_page(request, "Payments", content, status_code=status_code)


@admin_pages_router.get("/admin/payments")
async def payments_list(request: Request):
    return await _payments_page(request)


@admin_pages_router.post("/admin/payments")
async def payment_create(request: Request):
    form = await _form(request)
    if form is None:
        return csrf_error()
    payload = {
        "enrollment_id": form_text(form, "enrollment_id"),
        "amount": form_text(form, "amount"),
        "status": form_text(form, "status") or "pending",
        "payment_method": form_text(form, "payment_method") or "cash",
        "remarks": form_text(form, "remarks"),
    }
    status, body = await api_call(request, "POST", "/api/admin/payments", json=payload)
    if status == 201:
        payment_id = (body.get("data") or {}).get("id")
        return see_other(f"/admin/payments/{payment_id}?notice=created")
    return await _payments_page(request, error=error_message(body), status_code=_failure_status(status))


async def _payment_detail(
    request: Request, payment_id: str, *, error: Optional[str] = None, refund_error: Optional[str] = None, status_code: int = 200
):
    payment = await api_data(request, f"/api/admin/payments/{payment_id}")
    if not payment:
        return _admin_page(request, "Payment not found", "<h1>Payment not found</h1>", status_code=404)
    csrf = session_csrf_token(request)
    user = payment.get("user") or {}
    course = payment.get("course") or {}
    enrollment = payment.get("enrollment") or {}
    current = payment.get("status") or ""
    label = f"Payment {format_price(payment.get('amount'))} · {user.get('full_name') or ''}".strip(" ·")
    facts = _detail_list(
        [
            ("Learner", _link(f"/admin/users/{user.get('id')}", user.get("full_name"))),
            ("Course", _link(f"/admin/courses/{course.get('id')}", course.get("title"))),
            ("Enrollment", _link(f"/admin/enrollments/{enrollment.get('id')}", enrollment.get("status"))),
            ("Amount", _money(payment.get("amount"))),
            ("Refunded", _money(payment.get("refunded_amount"))),
            ("Refundable", _money(payment.get("refundable_amount"))),
            ("Method", _text(payment.get("payment_method"))),
            ("Status", StatusBadge(current).render()),
            ("Remarks", _text(payment.get("remarks"))),
            ("Recorded", _when(payment.get("created_at"))),
        ]
    )
    # `refunded` is reached through the refund form only
    choices = [s for s in payment_rules.TRANSITIONS.get(current, ()) if s != "refunded"]
    status_form = StatusForm(
        f"/admin/payments/{payment_id}/status", csrf, choices, with_reason=True, reason_label="Remarks"
    )
    refundable = float(payment.get("refundable_amount") or 0)
    refund_html = ""
    if current == "completed" and refundable > 0:
        refund_html = RefundForm(
            f"/admin/payments/{payment_id}/refund", csrf, max_amount=refundable, error=refund_error
        ).render()
    refunds = _simple_table(
        ["Amount", "Reason", "Date"],
        [
            [_link(f"/admin/refunds/{r.get('id')}", format_price(r.get("amount"))), _text(r.get("reason")), _when(r.get("created_at"))]
            for r in payment.get("refunds") or []
        ],
        "No refunds.",
    )
    delete_html = DeleteForm(f"/admin/payments/{payment_id}/delete", csrf, confirm="Delete this payment?").render()
    content = f"""
{_page_header(label, delete_html)}
{_notice_html(request)}
{_error_html(error)}
<section class="panel">{facts}</section>
<section class="panel"><h2>Status</h2>{status_form.render()}</section>
<section class="panel"><h2>Refunds</h2>{refunds}{refund_html}</section>"""
    return _admin_page(request, label, content, status_code=status_code, labels={payment_id: "Payment"})


@admin_pages_router.get("/admin/payments/{payment_id}")
async def payment_detail(request: Request, payment_id: str):
    return await _payment_detail(request, payment_id)


@admin_pages_router.post("/admin/payments/{payment_id}/status")
async def payment_status(request: Request, payment_id: str):
    form = await _form(request)
    if form is None:
        return csrf_error()
    payload = {"status": form_text(form, "status") or "", "remarks": form_text(form, "reason")}
    status, body = await api_call(request, "PATCH", f"/api/admin/payments/{payment_id}/status", json=payload)
    if status == 200:
        return see_other(f"/admin/payments/{payment_id}?notice=status")
    return await _payment_detail(request, payment_id, error=error_message(body), status_code=_failure_status(status))


@admin_pages_router.post("/admin/payments/{payment_id}/refund")
async def payment_refund(request: Request, payment_id: str):
    form = await _form(request)
    if form is None:
        return csrf_error()
    payload = {"amount": form_text(form, "amount") or "0", "reason": form_text(form, "reason") or ""}
    status, body = await api_call(request, "POST", f"/api/admin/payments/{payment_id}/refund", json=payload)
    if status in (200, 201):
        return see_other(f"/admin/payments/{payment_id}?notice=refunded")
    return await _payment_detail(
        request, payment_id, refund_error=error_message(body), status_code=_failure_status(status)
    )


@admin_pages_router.post("/admin/payments/{payment_id}/delete")
async def payment_delete(request: Request, payment_id: str):
    form = await _form(request)
    if form is None:
        return csrf_error()
    status, body = await api_call(request, "DELETE", f"/api/admin/payments/{payment_id}")
    if status == 200:
        return see_other("/admin/payments?notice=deleted")
    return await _payment_detail(request, payment_id, error=error_message(body), status_code=_failure_status(status))


@admin_pages_router.get("/admin/refunds")
async def refunds_list(request: Request):
    query = dict(request.query_params)
    listing = await _load_listing(request, "/api/admin/refunds", _listing(query))
    table = DataTable(
        REFUND_COLUMNS,
        listing,
        path="/admin/refunds",
        query=query,
        empty_text="No refunds recorded.",
        search_placeholder="Search by reason, learner or course",
        row_href=lambda row: f"/admin/refunds/{row.get('id')}",
    )
    return _admin_page(request, "Refunds", f"{_page_header('Refunds')}{table.render()}")


@admin_pages_router.get("/admin/refunds/{refund_id}")
async def refund_detail(request: Request, refund_id: str):
    refund = await api_data(request, f"/api/admin/refunds/{refund_id}")
    if not refund:
        return _admin_page(request, "Refund not found", "<h1>Refund not found</h1>", status_code=404)
    payment = refund.get("payment") or {}
    user = refund.get("user") or {}
    course = refund.get("course") or {}
    facts = _detail_list(
        [
            ("Amount", _money(refund.get("amount"))),
            ("Reason", _text(refund.get("reason"))),
            ("Payment", _link(f"/admin/payments/{payment.get('id')}", format_price(payment.get("amount")))),
            ("Learner", _link(f"/admin/users/{user.get('id')}", user.get("full_name"))),
            ("Course", _text(course.get("title"))),
            ("Date", _when(refund.get("created_at"))),
        ]
    )
    content = f"{_page_header('Refund')}<section class=\"panel\">{facts}</section>"
    return _admin_page(request, "Refund", content, labels={refund_id: "Refund"})


# --- Users --------------------------------------------------------------------


def _role_label(row: Dict[str, Any]) -> str:
    return "Admin" if row.get("role") == "service_role" else "Learner"


USER_COLUMNS = [
    Column("full_name", "Name"),
    Column("email", "E-mail"),
    Column("phone", "Phone"),
    Column("role", "Role", render=_role_label),
    Column("enrollment_count", "Enrollments", sortable=False),
    Column("created_at", "Joined"),
]

DELETED_USER_COLUMNS = [
    Column("full_name", "Name"),
    Column("email", "E-mail"),
    Column("deleted_at", "Deleted"),
    Column("deletion_scheduled_for", "Purge on"),
    Column("deletion_count", "Deletions"),
]


@admin_pages_router.get("/admin/users")
async def users_list(request: Request):
    query = dict(request.query_params)
    listing = await _load_listing(request, "/api/admin/profiles", _listing(query))
    table = DataTable(
        USER_COLUMNS,
        listing,
        path="/admin/users",
        query=query,
        empty_text="No users found.",
        search_placeholder="Search by name, e-mail or phone",
        row_href=lambda row: f"/admin/users/{row.get('id')}",
    )
    actions = '<a class="btn btn-secondary" href="/admin/users/deleted">Deleted users</a>'
    content = f"{_page_header('Users', actions)}{_notice_html(request)}{table.render()}"
    return _admin_page(request, "Users", content)


@admin_pages_router.get("/admin/users/deleted")
async def users_deleted(request: Request):
    query = dict(request.query_params)
    listing = await _load_listing(request, "/api/admin/users/deleted", _listing(query, "deletedFrom", "deletedTo"))
    table = DataTable(
        DELETED_USER_COLUMNS,
        listing,
        path="/admin/users/deleted",
        query=query,
        empty_text="No deleted users.",
        search_placeholder="Search by name or e-mail",
        row_href=lambda row: f"/admin/users/{row.get('id')}",
        keep=("deletedFrom", "deletedTo"),
    )
    content = f"{_page_header('Deleted users')}{_notice_html(request)}{table.render()}"
    return _admin_page(request, "Deleted users", content, labels={"deleted": "Deleted users"})


async def _user_detail(
    request: Request, user_id: str, *, error: Optional[str] = None, delete_error: Optional[str] = None, status_code: int = 200
):
    profile = await api_data(request, f"/api/admin/profiles/{user_id}")
    if not profile:
        return _admin_page(request, "User not found", "<h1>User not found</h1>", status_code=404)
    csrf = session_csrf_token(request)
    deleted = bool(profile.get("deleted_at"))
    facts = _detail_list(
        [
            ("E-mail", _text(profile.get("email"))),
            ("Phone", _text(profile.get("phone"))),
            ("Role", _role_label(profile)),
            ("Joined", _when(profile.get("created_at"))),
            ("Deleted", _when(profile.get("deleted_at"))),
            ("Purge on", _when(profile.get("deletion_scheduled_for"))),
            ("Deletions", _text(profile.get("deletion_count"))),
        ]
    )
    if deleted:
        account_html = FormShell(
            f"/admin/users/{user_id}/restore", csrf, "", submit_label="Restore user", css_class="form form--button"
        ).render()
    else:
        account_html = (
            RoleForm(f"/admin/users/{user_id}/role", csrf, current=profile.get("role") or "authenticated").render()
            + SoftDeleteForm(f"/admin/users/{user_id}/delete", csrf, error=delete_error).render()
        )
    enrollments = (await _load_listing(request, "/api/admin/enrollments", {"userId": user_id, "pageSize": SELECT_PAGE_SIZE})).get("data") or []
    enrollment_table = _simple_table(
        ["Course", "Intake", "Status"],
        [
            [
                _link(f"/admin/enrollments/{e.get('id')}", e.get("course_title")),
                _text(format_date(e.get("start_date"))),
                StatusBadge(e.get("status")).render(),
            ]
            for e in enrollments
        ],
        "No enrollments.",
    )
    history = await api_data(request, f"/api/admin/users/{user_id}/deletion-history", default=[]) or []
    history_table = _simple_table(
        ["Deleted", "Reason", "Purge on", "Restored", "Notified"],
        [
            [
                _when(h.get("deleted_at")),
                _text(h.get("deletion_reason")),
                _when(h.get("scheduled_deletion_date")),
                _when(h.get("restored_at")),
                "Yes" if h.get("email_notification_sent") else "No",
            ]
            for h in history
        ],
        "No deletion history.",
    )
    name = profile.get("full_name") or "User"
    content = f"""
{_page_header(name)}
{_notice_html(request)}
{_error_html(error)}
<section class="panel">{facts}</section>
<section class="panel"><h2>Account</h2>{account_html}</section>
<section class="panel"><h2>Enrollments</h2>{enrollment_table}</section>
<section class="panel"><h2>Deletion history</h2>{history_table}</section>"""
    return _admin_page(request, name, content, status_code=status_code, labels={user_id: name})


@admin_pages_router.get("/admin/users/{user_id}")
async def user_detail(request: Request, user_id: str):
    return await _user_detail(request, user_id)


@admin_pages_router.post("/admin/users/{user_id}/role")
async def user_role(request: Request, user_id: str):
    form = await _form(request)
    if form is None:
        return csrf_error()
    status, body = await api_call(
        request, "PATCH", f"/api/admin/profiles/{user_id}/role", json={"role": form_text(form, "role") or ""}
    )
    if status == 200:
        return see_other(f"/admin/users/{user_id}?notice=saved")
    return await _user_detail(request, user_id, error=error_message(body), status_code=_failure_status(status))


@admin_pages_router.post("/admin/users/{user_id}/delete")
async def user_delete(request: Request, user_id: str):
    form = await _form(request)
    if form is None:
        return csrf_error()
    payload: Dict[str, Any] = {
        "reason": form_text(form, "reason") or "",
        "notify": form.get("notify") is not None,
    }
    schedule = form_text(form, "schedule_days")
    if schedule:
        payload["scheduleDays"] = schedule
    status, body = await api_call(request, "DELETE", f"/api/admin/users/{user_id}", json=payload)
    if status == 200:
        return see_other("/admin/users/deleted?notice=deleted")
    return await _user_detail(request, user_id, delete_error=error_message(body), status_code=_failure_status(status))


@admin_pages_router.post("/admin/users/{user_id}/restore")
async def user_restore(request: Request, user_id: str):
    form = await _form(request)
    if form is None:
        return csrf_error()
    status, body = await api_call(request, "POST", f"/api/admin/users/{user_id}/restore", json={})
    if status == 200:
        return see_other(f"/admin/users/{user_id}?notice=restored")
    return await _user_detail(request, user_id, error=error_message(body), status_code=_failure_status(status))


# --- Contact requests and e-mail logs -----------------------------------------


CONTACT_COLUMNS = [
    Column("name", "Name"),
    Column("email", "E-mail"),
    Column("phone", "Phone"),
    Column("message", "Message", sortable=False, render=lambda row: _text(_excerpt(row.get("message")))),
    Column("status", "Status", render=status_cell()),
    Column("reply_count", "Replies", sortable=False),
    Column("created_at", "Received"),
]

EMAIL_LOG_COLUMNS = [
    Column("subject", "Subject"),
    Column("to_emails", "To", sortable=False, render=lambda row: _text(", ".join(row.get("to_emails") or []))),
    Column("email_type", "Type"),
    Column("status", "Status", render=status_cell()),
    Column("sent_at", "Sent"),
]


def _excerpt(text: Any, limit: int = 80) -> str:
    value = " ".join(str(text or "").split())
    return value if len(value) <= limit else value[: limit - 1].rstrip() + "…"


@admin_pages_router.get("/admin/contact-requests")
async def contact_requests_list(request: Request):
    query = dict(request.query_params)
    listing = await _load_listing(request, "/api/admin/contact-requests", _listing(query))
    table = DataTable(
        CONTACT_COLUMNS,
        listing,
        path="/admin/contact-requests",
        query=query,
        empty_text="No contact requests.",
        search_placeholder="Search by name, e-mail or message",
        row_href=lambda row: f"/admin/contact-requests/{row.get('id')}",
    )
    content = f"{_page_header('Contact requests')}{_notice_html(request)}{table.render()}"
    return _admin_page(request, "Contact requests", content, labels={"contact-requests": "Contact requests"})


async def _contact_detail(
    request: Request, request_id: str, *, error: Optional[str] = None, reply_error: Optional[str] = None, status_code: int = 200
):
    item = await api_data(request, f"/api/admin/contact-requests/{request_id}")
    if not item:
        return _admin_page(request, "Request not found", "<h1>Contact request not found</h1>", status_code=404)
    csrf = session_csrf_token(request)
    current = item.get("status") or "new"
    facts = _detail_list(
        [
            ("From", _text(item.get("name"))),
            ("E-mail", _text(item.get("email"))),
            ("Phone", _text(item.get("phone"))),
            ("Status", StatusBadge(current).render()),
            ("Received", _when(item.get("created_at"))),
        ]
    )
    message = escape(item.get("message") or "").replace("\n", "<br>")
    replies = "".join(
        f"""
<article class="panel">
    <h3>{_text(r.get("subject"))}</h3>
    <p class="text-muted">{_when(r.get("sent_at"))} · {_text(r.get("admin_email"))} · {StatusBadge(r.get("email_status")).render()}</p>
    <p>{escape(r.get("message") or "").replace(chr(10), "<br>")}</p>
</article>"""
        for r in item.get("replies") or []
    ) or '<p class="empty-state">No replies yet.</p>'
    status_form = StatusForm(f"/admin/contact-requests/{request_id}/status", csrf, CONTACT_TRANSITIONS.get(current, ()))
    reply_form = ReplyForm(
        f"/admin/contact-requests/{request_id}/reply", csrf, subject="Re: your message to Hope Institute", error=reply_error
    )
    delete_html = DeleteForm(f"/admin/contact-requests/{request_id}/delete", csrf, confirm="Delete this request?").render()
    title = f"Message from {item.get('name') or 'visitor'}"
    content = f"""
{_page_header(title, delete_html)}
{_notice_html(request)}
{_error_html(error)}
<section class="panel">{facts}<p>{message}</p></section>
<section class="panel"><h2>Status</h2>{status_form.render()}</section>
<section><h2>Replies</h2>{replies}</section>
<section class="panel"><h2>Reply</h2>{reply_form.render()}</section>"""
    return _admin_page(
        request, title, content, status_code=status_code,
        labels={"contact-requests": "Contact requests", request_id: item.get("name") or "Request"},
    )


@admin_pages_router.get("/admin/contact-requests/{request_id}")
async def contact_request_detail(request: Request, request_id: str):
    return await _contact_detail(request, request_id)


@admin_pages_router.post("/admin/contact-requests/{request_id}/status")
async def contact_request_status(request: Request, request_id: str):
    form = await _form(request)
    if form is None:
        return csrf_error()
    status, body = await api_call(
        request, "PATCH", f"/api/admin/contact-requests/{request_id}", json={"status": form_text(form, "status") or ""}
    )
    if status == 200:
        return see_other(f"/admin/contact-requests/{request_id}?notice=status")
    return await _contact_detail(request, request_id, error=error_message(body), status_code=_failure_status(status))


@admin_pages_router.post("/admin/contact-requests/{request_id}/reply")
async def contact_request_reply(request: Request, request_id: str):
    form = await _form(request)
    if form is None:
        return csrf_error()
    payload = {"subject": form_text(form, "subject") or "", "message": form_text(form, "message") or ""}
    status, body = await api_call(request, "POST", f"/api/admin/contact-requests/{request_id}/reply", json=payload)
    if status in (200, 201):
        return see_other(f"/admin/contact-requests/{request_id}?notice=replied")
    return await _contact_detail(request, request_id, reply_error=error_message(body), status_code=_failure_status(status))


@admin_pages_router.post("/admin/contact-requests/{request_id}/delete")
async def contact_request_delete(request: Request, request_id: str):
    form = await _form(request)
    if form is None:
        return csrf_error()
    status, body = await api_call(request, "DELETE", f"/api/admin/contact-requests/{request_id}")
    if status == 200:
        return see_other("/admin/contact-requests?notice=deleted")
    return await _contact_detail(request, request_id, error=error_message(body), status_code=_failure_status(status))


@admin_pages_router.get("/admin/email-logs")
async def email_logs_list(request: Request):
    query = dict(request.query_params)
    listing = await _load_listing(request, "/api/admin/email-logs", _listing(query))
    table = DataTable(
        EMAIL_LOG_COLUMNS,
        listing,
        path="/admin/email-logs",
        query=query,
        empty_text="No e-mails sent yet.",
        search_placeholder="Search by subject or type",
        row_href=lambda row: f"/admin/email-logs/{row.get('id')}",
    )
    return _admin_page(request, "E-mail logs", f"{_page_header('E-mail logs')}{table.render()}",
                       labels={"email-logs": "E-mail logs"})


@admin_pages_router.get("/admin/email-logs/{log_id}")
async def email_log_detail(request: Request, log_id: str):
    log = await api_data(request, f"/api/admin/email-logs/{log_id}")
    if not log:
        return _admin_page(request, "E-mail not found", "<h1>E-mail not found</h1>", status_code=404)
    facts = _detail_list(
        [
            ("Subject", _text(log.get("subject"))),
            ("From", _text(log.get("from_email"))),
            ("To", _text(", ".join(log.get("to_emails") or []))),
            ("Reply to", _text(log.get("reply_to"))),
            ("Type", _text(log.get("email_type"))),
            ("Status", StatusBadge(log.get("status")).render()),
            ("Error", _text(log.get("error_message"))),
            ("Sent", _when(log.get("sent_at"))),
        ]
    )
    # Stored HTML is shown as source; it is never rendered into the admin page
    body = escape(log.get("text_content") or log.get("html_content") or "")
    content = f"""
{_page_header("E-mail")}
<section class="panel">{facts}</section>
<section class="panel"><h2>Content</h2><pre class="email-body">{body}</pre></section>"""
    return _admin_page(request, "E-mail", content, labels={"email-logs": "E-mail logs", log_id: "E-mail"})
