"""
Course and intake cards for the public catalog.

Cards take the dictionaries returned by the public JSON API as-is, so the
home page, the catalog and the related-courses strip render the same markup.
"""

from typing import Any, Dict, List, Optional

from ..base import Component
from ..markdown import markdown_to_text


def format_price(value: Any) -> str:
    try:
        return f"Rs. {float(value):,.0f}"
    except (TypeError, ValueError):
        return "—"


def format_date(value: Any) -> str:
    """`2026-03-01T00:00:00+00:00` -> `2026-03-01`."""
    if not value:
        return "—"
    return str(value)[:10]


def format_duration(value: Any, unit: Any) -> str:
    if not value or not unit:
        return ""
    unit = str(unit)
    label = unit if str(value) == "1" else (unit if unit.endswith("s") else f"{unit}s")
    return f"{value} {label}"


class CourseCard(Component):
    """Catalog card with image, category, price, duration and next intake."""

    def __init__(self, course: Dict[str, Any], *, heading_level: int = 3):
        self.course = course
        self.heading_level = heading_level

    def render(self) -> str:
        c = self.course
        href = f"/courses/{c.get('slug', '')}"
        image = c.get("image_url")
        image_html = (
            f'<img class="course-card__image" src="{self.escape(image)}" alt="" loading="lazy">'
            if image
            else '<div class="course-card__image course-card__image--placeholder" aria-hidden="true"></div>'
        )
        excerpt = markdown_to_text(c.get("course_overview"), limit=120)
        next_intake = ""
        if c.get("next_intake_date"):
            seats = c.get("available_seats")
            seats_text = f" · {seats} seats left" if seats is not None else ""
            next_intake = (
                f'<p class="course-card__intake">Next intake: {self.escape(format_date(c["next_intake_date"]))}'
                f"{self.escape(seats_text)}</p>"
            )
        h = f"h{self.heading_level}"
        category = c.get("category_name")
        badge = f'<span class="badge">{self.escape(category)}</span>' if category else ""
        return f"""
<article class="card course-card">
    {image_html}
    <div class="card-body">
        {badge}
        <{h} class="card-title"><a href="{self.escape(href)}">{self.escape(c.get('title'))}</a></{h}>
        <p class="course-card__excerpt">{self.escape(excerpt)}</p>
        <p class="course-card__meta">
            <span class="price">{self.escape(format_price(c.get('price')))}</span>
            <span class="duration">{self.escape(format_duration(c.get('duration_value'), c.get('duration_type')))}</span>
        </p>
        {next_intake}
    </div>
</article>"""


class CourseGrid(Component):
    def __init__(self, courses: List[Dict[str, Any]], *, empty_text: str = "No courses found."):
        self.courses = courses
        self.empty_text = empty_text

    def render(self) -> str:
        if not self.courses:
            return f'<p class="empty-state">{self.escape(self.empty_text)}</p>'
        cards = "".join(CourseCard(c).render() for c in self.courses)
        return f'<div class="course-grid">{cards}</div>'


class IntakeTable(Component):
    """Upcoming intakes; optionally with an enroll button per open intake.

    Args:
        intakes: Intake dicts (`start_date`, `end_date`, `available_seats`, ...)
        enroll_action: Form action for the enroll button, or None to hide it
        csrf_token: Session CSRF token for the enroll forms
        show_course: Include the course title column (home page)
    """

    def __init__(
        self,
        intakes: List[Dict[str, Any]],
        *,
        enroll_action: Optional[str] = None,
        csrf_token: Optional[str] = None,
        show_course: bool = False,
        sign_in_href: Optional[str] = None,
    ):
        self.intakes = intakes
        self.enroll_action = enroll_action
        self.csrf_token = csrf_token
        self.show_course = show_course
        self.sign_in_href = sign_in_href

    def render(self) -> str:
        if not self.intakes:
            return '<p class="empty-state">No upcoming intakes are scheduled.</p>'
        course_head = '<th scope="col">Course</th>' if self.show_course else ""
        action_head = '<th scope="col"><span class="sr-only">Action</span></th>' if self._has_action() else ""
        rows = "".join(self._render_row(i) for i in self.intakes)
        return f"""
<table class="table intake-table">
    <thead><tr>{course_head}<th scope="col">Starts</th><th scope="col">Ends</th><th scope="col">Seats left</th>{action_head}</tr></thead>
    <tbody>{rows}</tbody>
</table>"""

    def _has_action(self) -> bool:
        return bool(self.enroll_action or self.sign_in_href)

    def _render_row(self, intake: Dict[str, Any]) -> str:
        course_cell = ""
        if self.show_course:
            slug = intake.get("course_slug") or ""
            course_cell = f'<td><a href="/courses/{self.escape(slug)}">{self.escape(intake.get("course_title"))}</a></td>'
        seats = intake.get("available_seats", intake.get("available_spots"))
        action_cell = ""
        if self._has_action():
            action_cell = f"<td>{self._render_action(intake, seats)}</td>"
        return (
            f"<tr>{course_cell}"
            f"<td>{self.escape(format_date(intake.get('start_date')))}</td>"
            f"<td>{self.escape(format_date(intake.get('end_date')))}</td>"
            f"<td>{self.escape(seats)}</td>"
            f"{action_cell}</tr>"
        )

    def _render_action(self, intake: Dict[str, Any], seats: Any) -> str:
        if not seats:
            return '<span class="badge badge--muted">Full</span>'
        if not self.enroll_action:
            return f'<a class="btn btn-secondary" href="{self.escape(self.sign_in_href)}">Sign in to enroll</a>'
        return f"""
<form method="post" action="{self.escape(self.enroll_action)}" class="enroll-form">
    <input type="hidden" name="csrf_token" value="{self.escape(self.csrf_token)}">
    <input type="hidden" name="intake_id" value="{self.escape(intake.get('id'))}">
    <button type="submit" class="btn btn-primary">Enroll</button>
</form>"""
