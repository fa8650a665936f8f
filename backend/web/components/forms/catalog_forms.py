"""
Small catalog forms: categories, affiliations and intakes.
"""

from typing import Any, Dict, List, Optional

from backend.academy.intakes import DEFAULT_CAPACITY, PATTERNS

from ..base import Component
from .fields import CheckboxField, SelectField, TextAreaField, TextInputField, options_from
from .shell import FieldErrors, FormShell, value_of


class CategoryForm(Component):
    def __init__(
        self,
        action: str,
        csrf_token: str,
        *,
        values: Optional[dict] = None,
        error: Optional[str] = None,
        submit_label: str = "Add category",
    ) -> None:
        self.action = action
        self.csrf_token = csrf_token
        self.values = values or {}
        self.error = error
        self.submit_label = submit_label

    def render(self) -> str:
        fields = "".join(
            [
                TextInputField("name", "Name", required=True).render(
                    value=value_of(self.values, "name"), class_="form-input", maxlength="255"
                ),
                TextAreaField("description", "Description").render(
                    value=value_of(self.values, "description"), rows=3, class_="form-input"
                ),
            ]
        )
        return FormShell(self.action, self.csrf_token, fields, submit_label=self.submit_label, error=self.error).render()


class AffiliationForm(Component):
    def __init__(
        self,
        action: str,
        csrf_token: str,
        *,
        values: Optional[dict] = None,
        error: Optional[str] = None,
        submit_label: str = "Add affiliation",
    ) -> None:
        self.action = action
        self.csrf_token = csrf_token
        self.values = values or {}
        self.error = error
        self.submit_label = submit_label

    def render(self) -> str:
        fields = "".join(
            [
                TextInputField("name", "Name", required=True).render(
                    value=value_of(self.values, "name"), class_="form-input", maxlength="255"
                ),
                TextInputField("type", "Type", required=True, help_text="e.g. University, Council, Board").render(
                    value=value_of(self.values, "type"), class_="form-input", maxlength="100"
                ),
                TextAreaField("description", "Description").render(
                    value=value_of(self.values, "description"), rows=3, class_="form-input"
                ),
            ]
        )
        return FormShell(self.action, self.csrf_token, fields, submit_label=self.submit_label, error=self.error).render()


class IntakeForm(Component):
    """Create or edit one intake.

    Dates are edited as `YYYY-MM-DD`; the page handler converts them to
    midnight UTC before calling the API.
    """

    def __init__(
        self,
        action: str,
        csrf_token: str,
        *,
        courses: Optional[List[Dict[str, Any]]] = None,
        values: Optional[dict] = None,
        error: Optional[str] = None,
        field_errors: Optional[FieldErrors] = None,
        submit_label: str = "Add intake",
        lock_course: bool = False,
    ) -> None:
        self.action = action
        self.csrf_token = csrf_token
        self.courses = courses or []
        self.values = values or {}
        self.error = error
        self.field_errors = field_errors or {}
        self.submit_label = submit_label
        self.lock_course = lock_course

    def render(self) -> str:
        v, fe = self.values, self.field_errors
        if self.lock_course:
            course_html = f'<input type="hidden" name="course_id" value="{self.escape(v.get("course_id"))}">'
        else:
            course_html = SelectField("course_id", "Course", required=True, error_text=fe.get("course_id")).render(
                options_from(self.courses, label_key="title"), value=v.get("course_id"), placeholder="Select a course",
                class_="form-input",
            )
        fields = "".join(
            [
                course_html,
                TextInputField("start_date", "Start date", required=True, error_text=fe.get("start_date")).render(
                    value=str(v.get("start_date") or "")[:10], input_type="date", class_="form-input"
                ),
                TextInputField("end_date", "End date", required=True, error_text=fe.get("end_date")).render(
                    value=str(v.get("end_date") or "")[:10], input_type="date", class_="form-input"
                ),
                TextInputField("capacity", "Capacity", required=True, error_text=fe.get("capacity")).render(
                    value=value_of(v, "capacity", DEFAULT_CAPACITY), input_type="number", class_="form-input", min="1"
                ),
                CheckboxField("is_open", "Open for enrollment").render(checked=bool(v.get("is_open", True))),
            ]
        )
        return FormShell(self.action, self.csrf_token, fields, submit_label=self.submit_label, error=self.error).render()


class IntakeGenerateForm(Component):
    """Generate a year of intakes for one course from a month pattern."""

    def __init__(
        self,
        csrf_token: str,
        *,
        courses: Optional[List[Dict[str, Any]]] = None,
        values: Optional[dict] = None,
        error: Optional[str] = None,
    ) -> None:
        self.csrf_token = csrf_token
        self.courses = courses or []
        self.values = values or {}
        self.error = error

    def render(self) -> str:
        v = self.values
        fields = "".join(
            [
                SelectField("course_id", "Course", required=True).render(
                    options_from(self.courses, label_key="title"), value=v.get("course_id"),
                    placeholder="Select a course", class_="form-input",
                ),
                TextInputField("year", "Year", required=True).render(
                    value=value_of(v, "year"), input_type="number", class_="form-input", min="1900", max="2100"
                ),
                SelectField("pattern", "Pattern").render(
                    [(p, p.capitalize()) for p in PATTERNS], value=v.get("pattern") or "quarterly", class_="form-input"
                ),
                TextInputField("capacity", "Capacity per intake").render(
                    value=value_of(v, "capacity", DEFAULT_CAPACITY), input_type="number", class_="form-input", min="1"
                ),
            ]
        )
        return FormShell(
            "/admin/intakes/generate", self.csrf_token, fields, submit_label="Generate intakes", error=self.error,
            css_class="form form--inline",
        ).render()
