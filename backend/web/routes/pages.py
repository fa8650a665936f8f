"""
Public pages: home, catalog, course detail, about and contact.

Why:
    The public site is server-rendered for search engines and slow devices.
    Every page reads through the public JSON API (in-process), so the markup
    always reflects what the API would return to any other client.

Behavior:
    - `/courses` maps its filter form onto the list parameters of
      `/api/public/courses` (`search`, `category`, `sortBy`, `order`, `page`).
    - `POST /courses/{slug}/enroll` requires a session; anonymous visitors are
      sent to `/sign-in` and come back to the course page afterwards.
    - The contact form works signed in and out: the CSRF token is bound to the
      session when there is one and to the pre-auth cookie otherwise.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote
from html import escape
import json
import logging

from fastapi import APIRouter, Request

from ..components import CourseGrid, IntakeTable, Pagination, markdown_to_text, render_markdown_safe
from ..components.cards.course import format_date, format_duration, format_price
from ..components.forms import ContactForm, SelectField, TextInputField
from ..sessions import current_user, get_session_id
from ..ssr import (
    api_call,
    api_data,
    csrf_error,
    error_message,
    field_errors,
    form_csrf_ok,
    page,
    preauth_csrf_ok,
    preauth_csrf_token,
    see_other,
    session_csrf_token,
    set_preauth_cookie,
)


pages_router = APIRouter(tags=["Pages"])
logger = logging.getLogger("hope.web.pages")

CATALOG_PAGE_SIZE = 9

# (value, label, sortBy, order)
CATALOG_SORTS: List[Tuple[str, str, str, str]] = [
    ("newest", "Newest first", "created_at", "desc"),
    ("title", "Title A-Z", "title", "asc"),
    ("price-asc", "Price: low to high", "price", "asc"),
    ("price-desc", "Price: high to low", "price", "desc"),
]

_ENROLL_MESSAGES = {
    "ALREADY_ENROLLED": "You already have an enrollment for this intake.",
    "INTAKE_FULL": "This intake is full. Please choose another date.",
    "INTAKE_CLOSED": "This intake is no longer open for enrollment.",
    "ACCOUNT_INACTIVE": "Your account is not active. Please contact the institute.",
}


def _listing(data: Any) -> Dict[str, Any]:
    if isinstance(data, dict):
        return data
    return {"data": [], "total": 0, "page": 1, "pageSize": CATALOG_PAGE_SIZE}


# --- Home ---------------------------------------------------------------------


@pages_router.get("/")
async def home(request: Request):
    """Landing page with upcoming intakes and the newest courses."""
    upcoming = await api_data(request, "/api/public/intakes", {"upcoming": "1", "limit": "6"}, default=[])
    featured = await api_data(
        request, "/api/public/courses", {"pageSize": "6", "sortBy": "created_at", "order": "desc"}, default=None
    )
    content = f"""
<section class="hero">
    <h1>Learn a skill that opens doors</h1>
    <p class="text-muted">Hope Institute offers practical, instructor-led courses with regular intakes throughout the year.</p>
    <p><a class="btn btn-primary" href="/courses">Browse courses</a> <a class="btn btn-secondary" href="/contactus">Talk to us</a></p>
</section>
<section aria-labelledby="upcoming-heading">
    <h2 id="upcoming-heading">Upcoming intakes</h2>
    {IntakeTable(upcoming or [], show_course=True).render()}
</section>
<section aria-labelledby="featured-heading">
    <h2 id="featured-heading">Featured courses</h2>
    {CourseGrid(_listing(featured).get("data") or [], empty_text="New courses are coming soon.").render()}
</section>"""
    return page(
        request,
        "Home",
        content,
        description="Hope Institute: practical courses with regular intakes. Browse the catalog and enroll online.",
        canonical_path="/",
    )


# --- Catalog ------------------------------------------------------------------


def _sort_choice(value: Optional[str]) -> Tuple[str, str, str, str]:
    for choice in CATALOG_SORTS:
        if choice[0] == value:
            return choice
    return CATALOG_SORTS[0]


def _catalog_filters(search: str, category: str, sort: str, categories: List[Dict[str, Any]]) -> str:
    category_options = [(c.get("name"), c.get("name")) for c in categories if c.get("name")]
    fields = "".join(
        [
            TextInputField("search", "Search").render(value=search, input_type="search", class_="form-input"),
            SelectField("category", "Category").render(
                category_options, value=category or None, placeholder="All categories", class_="form-input"
            ),
            SelectField("sort", "Sort by").render(
                [(value, label) for value, label, _s, _o in CATALOG_SORTS], value=sort, class_="form-input"
            ),
        ]
    )
    return f"""
<form class="catalog-filters" method="get" action="/courses" role="search">
    {fields}
    <button type="submit" class="btn btn-secondary">Apply</button>
</form>"""


@pages_router.get("/courses")
async def courses_catalog(request: Request):
    q = request.query_params
    search = (q.get("search") or "").strip()
    category = (q.get("category") or "").strip()
    sort_value, _label, sort_by, order = _sort_choice(q.get("sort"))
    params: Dict[str, str] = {
        "page": q.get("page") or "1",
        "pageSize": str(CATALOG_PAGE_SIZE),
        "sortBy": sort_by,
        "order": order,
    }
    if search:
        params["search"] = search
    if category:
        params["filters"] = json.dumps([{"id": "category", "value": category}])

    listing = _listing(await api_data(request, "/api/public/courses", params, default=None))
    categories = await api_data(request, "/api/public/categories", default=[]) or []

    pager_query = {"search": search, "category": category, "sort": sort_value if q.get("sort") else ""}
    pager = Pagination(
        "/courses",
        pager_query,
        page=listing.get("page") or 1,
        page_size=listing.get("pageSize") or CATALOG_PAGE_SIZE,
        total=listing.get("total") or 0,
        keep=("category", "sort"),
    )
    content = f"""
<section>
    <h1>Courses</h1>
    {_catalog_filters(search, category, sort_value, categories)}
    {CourseGrid(listing.get("data") or []).render()}
    {pager.render()}
</section>"""
    return page(
        request,
        "Courses",
        content,
        description="All Hope Institute courses with prices, durations and upcoming intakes.",
        canonical_path="/courses",
    )


# --- Course detail ------------------------------------------------------------


async def _render_course_detail(
    request: Request, slug: str, *, error: Optional[str] = None, notice: Optional[str] = None, status_code: int = 200
):
    status, body = await api_call(request, "GET", "/api/public/courses", params={"slug": slug})
    if status == 404 or not body.get("success"):
        return page(
            request,
            "Course not found",
            '<section><h1>Course not found</h1><p>This course does not exist. <a href="/courses">See all courses</a>.</p></section>',
            status_code=404 if status in (404, 200) else status,
        )
    course = body.get("data") or {}
    related = await api_data(request, "/api/public/courses", {"related": course.get("id")}, default=[]) or []

    user = current_user(request)
    path = f"/courses/{slug}"
    if user:
        intake_table = IntakeTable(
            course.get("intakes") or [], enroll_action=f"{path}/enroll", csrf_token=session_csrf_token(request)
        )
    else:
        intake_table = IntakeTable(course.get("intakes") or [], sign_in_href=f"/sign-in?redirect={quote(path)}")

    alert = ""
    if error:
        alert = f'<div class="alert alert-error" role="alert">{_esc(error)}</div>'
    elif notice:
        alert = f'<div class="alert alert-success" role="status">{_esc(notice)}</div>'

    facts = [
        ("Price", format_price(course.get("price"))),
        ("Duration", format_duration(course.get("duration_value"), course.get("duration_type")) or "—"),
        ("Level", str(course.get("level") or "—")),
        ("Category", course.get("category_name") or "—"),
        ("Affiliation", course.get("affiliation_name") or "—"),
        ("Next intake", format_date(course.get("next_intake_date"))),
    ]
    facts_html = "".join(f"<dt>{_esc(label)}</dt><dd>{_esc(value)}</dd>" for label, value in facts)
    image = course.get("image_url")
    image_html = f'<img class="course-card__image" src="{_esc(image)}" alt="">' if image else ""
    highlights = course.get("course_highlights")
    highlights_html = (
        f'<h2>Highlights</h2><div class="markdown-body">{render_markdown_safe(highlights)}</div>' if highlights else ""
    )
    related_html = (
        f'<section aria-labelledby="related-heading"><h2 id="related-heading">Related courses</h2>{CourseGrid(related).render()}</section>'
        if related
        else ""
    )
    content = f"""
<article class="course-detail">
    <div>
        <h1>{_esc(course.get("title"))}</h1>
        {alert}
        {image_html}
        <div class="markdown-body">{render_markdown_safe(course.get("course_overview"))}</div>
        {highlights_html}
        <h2 id="intakes">Intakes</h2>
        {intake_table.render()}
    </div>
    <aside class="course-detail__aside">
        <dl class="detail-list">{facts_html}</dl>
    </aside>
</article>
{related_html}"""
    description = markdown_to_text(course.get("course_overview"), limit=160) or f"{course.get('title')} at Hope Institute."
    return page(
        request,
        str(course.get("title") or "Course"),
        content,
        status_code=status_code,
        description=description,
        canonical_path=path,
        breadcrumb_labels={path: str(course.get("title") or slug)},
    )


def _esc(value: Any) -> str:
    return escape("" if value is None else str(value), quote=True)


@pages_router.get("/courses/{slug}")
async def course_detail(request: Request, slug: str):
    notice = "Your enrollment request was received. We will confirm it shortly." if request.query_params.get("enrolled") else None
    return await _render_course_detail(request, slug, notice=notice)


@pages_router.post("/courses/{slug}/enroll")
async def course_enroll(request: Request, slug: str):
    """Request a seat in one of the course's intakes.

    Permissions:
        Signed-in learners; anonymous visitors are redirected to `/sign-in`.
    Behavior:
        303 back to the course page on success; on a domain error the page is
        rendered again with the message and the API status.
    """
    path = f"/courses/{slug}"
    if not current_user(request):
        return see_other(f"/sign-in?redirect={quote(path)}")
    form = await request.form()
    if not form_csrf_ok(request, form):
        return csrf_error()
    intake_id = str(form.get("intake_id") or "").strip()
    if not intake_id:
        return await _render_course_detail(request, slug, error="Please choose an intake.", status_code=400)
    status, body = await api_call(request, "POST", "/api/user/enrollments", json={"intakeId": intake_id})
    if status == 201:
        return see_other(f"{path}?enrolled=1#intakes")
    message = _ENROLL_MESSAGES.get(str(body.get("code")), error_message(body))
    return await _render_course_detail(request, slug, error=message, status_code=status if status >= 400 else 400)


# --- Static pages -------------------------------------------------------------


@pages_router.get("/aboutus")
async def about_page(request: Request):
    content = """
<section class="container narrow">
    <h1>About Hope Institute</h1>
    <p>Hope Institute is a training center focused on practical, job-ready skills. Our courses are taught in small
    groups by practitioners and run in regular intakes so you can start when it suits you.</p>
    <h2>How enrollment works</h2>
    <ol>
        <li>Pick a course and an intake date from the <a href="/courses">catalog</a>.</li>
        <li>Create an account and request your seat.</li>
        <li>Our team confirms the enrollment once the payment has been recorded.</li>
    </ol>
    <p>Questions? <a href="/contactus">Get in touch</a>.</p>
</section>"""
    return page(
        request,
        "About us",
        content,
        description="About Hope Institute and how course enrollment works.",
        canonical_path="/aboutus",
    )


def _contact_token(request: Request) -> Tuple[str, Optional[str]]:
    if get_session_id(request) and current_user(request):
        return session_csrf_token(request), None
    return preauth_csrf_token(request)


def _contact_csrf_ok(request: Request, form) -> bool:
    if get_session_id(request) and current_user(request):
        return form_csrf_ok(request, form)
    return preauth_csrf_ok(request, form)


def _contact_page(
    request: Request,
    *,
    values: Optional[dict] = None,
    error: Optional[str] = None,
    errors: Optional[Dict[str, str]] = None,
    notice: Optional[str] = None,
    status_code: int = 200,
):
    token, pre_id = _contact_token(request)
    notice_html = f'<div class="alert alert-success" role="status">{_esc(notice)}</div>' if notice else ""
    form = ContactForm(token, values=values, error=error, field_errors=errors)
    content = f"""
<section class="container narrow">
    <h1>Contact us</h1>
    <p class="text-muted">Send us a message and we will reply by e-mail.</p>
    {notice_html}
    {form.render()}
</section>"""
    response = page(
        request,
        "Contact",
        content,
        status_code=status_code,
        description="Contact Hope Institute about courses, intakes and enrollment.",
        canonical_path="/contactus",
        headers={"Cache-Control": "private, no-store"},
    )
    set_preauth_cookie(response, pre_id)
    return response


@pages_router.get("/contactus")
async def contact_page(request: Request):
    notice = "Thank you for contacting us. We will get back to you soon." if request.query_params.get("sent") else None
    return _contact_page(request, notice=notice)


@pages_router.post("/contactus")
async def contact_submit(request: Request):
    form = await request.form()
    if not _contact_csrf_ok(request, form):
        return csrf_error()
    values = {key: str(form.get(key) or "").strip() for key in ("name", "email", "phone", "message")}
    payload = dict(values)
    payload["phone"] = values["phone"] or None
    status, body = await api_call(request, "POST", "/api/contact", json=payload)
    if status == 201:
        return see_other("/contactus?sent=1")
    logger.info("contact form rejected status=%s code=%s", status, body.get("code"))
    return _contact_page(
        request,
        values=values,
        error=error_message(body),
        errors=field_errors(body),
        status_code=status if status >= 400 else 400,
    )
