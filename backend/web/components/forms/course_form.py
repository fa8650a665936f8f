"""
Course create/edit form for the admin back-office.

The same component serves `/admin/courses/new` and `/admin/courses/edit/{id}`;
only the action URL, the submit label and the prefilled values differ.
"""
from typing import Any, Dict, List, Optional

from backend.db.models import DURATION_TYPES

from ..base import Component
from .fields import FileUploadField, SelectField, TextAreaField, TextInputField, options_from
from .shell import FieldErrors, FormShell, value_of


class CourseForm(Component):
    """
    Renders the course form with category and affiliation selects, markdown
    overview and highlights, and an optional image upload.

    Args:
        action: Form action URL
        csrf_token: Session-bound CSRF token
        categories: Rows from `GET /api/admin/categories?getAll=1`
        affiliations: Rows from `GET /api/admin/affiliations?getAll=1`
        values: Prefill (course dict or the submitted form)
        error: General error message shown above the fields
        field_errors: Per-field messages keyed by field name
    """

    def __init__(
        self,
        action: str,
        csrf_token: str,
        *,
        categories: Optional[List[Dict[str, Any]]] = None,
        affiliations: Optional[List[Dict[str, Any]]] = None,
        values: Optional[dict] = None,
        error: Optional[str] = None,
        field_errors: Optional[FieldErrors] = None,
        submit_label: str = "Create course",
    ):
        self.action = action
        self.csrf_token = csrf_token
        self.categories = categories or []
        self.affiliations = affiliations or []
        self.values = values or {}
        self.error = error
        self.field_errors = field_errors or {}
        self.submit_label = submit_label

    def render(self) -> str:
        v, fe = self.values, self.field_errors
        image_url = v.get("image_url") or ""
        image_preview = (
            f'<p class="image-preview"><img id="course-image-preview" src="{self.escape(image_url)}" alt="Current course image" width="240"></p>'
            f'<input type="hidden" name="image_url" value="{self.escape(image_url)}">'
            if image_url
            else '<p class="image-preview"><img id="course-image-preview" alt="Selected course image" width="240" hidden></p>'
        )
        fields = [
            TextInputField("title", "Title", required=True, error_text=fe.get("title")).render(
                value=value_of(v, "title"), class_="form-input", maxlength="255"
            ),
            TextInputField(
                "slug", "Slug", help_text="Lowercase letters, digits, - and _. Leave empty to derive it from the title.",
                error_text=fe.get("slug"),
            ).render(value=value_of(v, "slug"), class_="form-input", maxlength="255"),
            TextInputField("price", "Price", required=True, error_text=fe.get("price")).render(
                value=value_of(v, "price"), input_type="number", class_="form-input", min="0", step="0.01"
            ),
            SelectField("category_id", "Category", error_text=fe.get("category_id")).render(
                options_from(self.categories), value=v.get("category_id"), placeholder="— none —", class_="form-input"
            ),
            SelectField("affiliation_id", "Affiliation", error_text=fe.get("affiliation_id")).render(
                options_from(self.affiliations), value=v.get("affiliation_id"), placeholder="— none —", class_="form-input"
            ),
            TextInputField("level", "Level", error_text=fe.get("level")).render(
                value=value_of(v, "level", 1), input_type="number", class_="form-input", min="1", max="10"
            ),
            SelectField("duration_type", "Duration unit", error_text=fe.get("duration_type")).render(
                [(d, d) for d in DURATION_TYPES], value=v.get("duration_type") or "month", class_="form-input"
            ),
            TextInputField("duration_value", "Duration", error_text=fe.get("duration_value")).render(
                value=value_of(v, "duration_value", 3), input_type="number", class_="form-input", min="1"
            ),
            TextAreaField("course_overview", "Overview (markdown)", error_text=fe.get("course_overview")).render(
                value=value_of(v, "course_overview"), rows=8, class_="form-input"
            ),
            TextAreaField("course_highlights", "Highlights (markdown)", error_text=fe.get("course_highlights")).render(
                value=value_of(v, "course_highlights"), rows=6, class_="form-input"
            ),
            image_preview,
            FileUploadField(
                "image", "Image", help_text="JPEG, PNG, GIF or WebP below 5 MB.", error_text=fe.get("image")
            ).render(class_="form-input", data_file_preview="course-image-preview"),
        ]
        return FormShell(
            self.action,
            self.csrf_token,
            "".join(fields),
            submit_label=self.submit_label,
            error=self.error,
            css_class="form course-form",
            enctype="multipart/form-data",
            cancel_href="/admin/courses",
        ).render()
