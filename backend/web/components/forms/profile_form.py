"""
Learner profile form (name and phone; e-mail is owned by the auth provider).
"""

from typing import Optional

from ..base import Component
from .fields import TextInputField
from .shell import FieldErrors, FormShell


class ProfileForm(Component):
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
                TextInputField("full_name", "Full name", required=True, error_text=fe.get("full_name")).render(
                    value=v.get("full_name", ""), autocomplete="name", class_="form-input", maxlength="100"
                ),
                TextInputField("email", "E-mail").render(
                    value=v.get("email", ""), input_type="email", class_="form-input", readonly=True
                ),
                TextInputField("phone", "Phone", error_text=fe.get("phone")).render(
                    value=v.get("phone") or "", input_type="tel", autocomplete="tel", class_="form-input", maxlength="20"
                ),
            ]
        )
        return FormShell(
            "/users/profile", self.csrf_token, fields, submit_label="Save profile", error=self.error,
            css_class="form profile-form",
        ).render()
