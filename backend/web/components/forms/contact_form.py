"""
Public contact form.
"""

from typing import Optional

from ..base import Component
from .fields import TextAreaField, TextInputField
from .shell import FieldErrors, FormShell


class ContactForm(Component):
    """Contact form posting to `/contactus` (PRG back to the same page)."""

    def __init__(
        self,
        csrf_token: str,
        *,
        values: Optional[dict] = None,
        error: Optional[str] = None,
        field_errors: Optional[FieldErrors] = None,
    ) -> None:
        self.csrf_token = csrf_token
        self.values = values or {}
        self.error = error
        self.field_errors = field_errors or {}

    def render(self) -> str:
        v, fe = self.values, self.field_errors
        fields = "".join(
            [
                TextInputField("name", "Name", required=True, error_text=fe.get("name")).render(
                    value=v.get("name", ""), autocomplete="name", class_="form-input", maxlength="100"
                ),
                TextInputField("email", "E-mail", required=True, error_text=fe.get("email")).render(
                    value=v.get("email", ""), input_type="email", autocomplete="email", class_="form-input"
                ),
                TextInputField("phone", "Phone (optional)", error_text=fe.get("phone")).render(
                    value=v.get("phone", ""), input_type="tel", autocomplete="tel", class_="form-input", maxlength="20"
                ),
                TextAreaField("message", "Message", required=True, error_text=fe.get("message")).render(
                    value=v.get("message", ""), rows=6, class_="form-input", maxlength="5000"
                ),
            ]
        )
        return FormShell(
            "/contactus", self.csrf_token, fields, submit_label="Send message", error=self.error, css_class="form contact-form"
        ).render()
