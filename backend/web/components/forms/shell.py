"""
Shared wrapper for server-rendered forms.

Every form posts back to its own page (PRG) and carries the session-bound
CSRF token as a hidden field.
"""

from typing import Any, Dict, Mapping, Optional

from ..base import Component
from .submit import SubmitButton


class FormShell(Component):
    def __init__(
        self,
        action: str,
        csrf_token: Optional[str],
        fields_html: str,
        *,
        submit_label: str = "Save",
        error: Optional[str] = None,
        css_class: str = "form",
        enctype: Optional[str] = None,
        cancel_href: Optional[str] = None,
        submit_variant: str = "primary",
        confirm: Optional[str] = None,
    ) -> None:
        self.action = action
        self.csrf_token = csrf_token
        self.fields_html = fields_html
        self.submit_label = submit_label
        self.error = error
        self.css_class = css_class
        self.enctype = enctype
        self.cancel_href = cancel_href
        self.submit_variant = submit_variant
        self.confirm = confirm

    def render(self) -> str:
        error_html = f'<div class="alert alert-error" role="alert">{self.escape(self.error)}</div>' if self.error else ""
        csrf_html = (
            f'<input type="hidden" name="csrf_token" value="{self.escape(self.csrf_token)}">'
            if self.csrf_token is not None
            else ""
        )
        cancel_html = (
            f'<a class="btn btn-secondary" href="{self.escape(self.cancel_href)}">Cancel</a>' if self.cancel_href else ""
        )
        form_attrs = self.attributes(
            method="post",
            action=self.action,
            class_=self.css_class,
            enctype=self.enctype,
        )
        submit = SubmitButton(self.submit_label, variant=self.submit_variant, confirm=self.confirm)
        return f"""
<form {form_attrs}>
    {csrf_html}
    {error_html}
    {self.fields_html}
    <div class="form-actions">
        {submit.render()}
        {cancel_html}
    </div>
</form>"""


def value_of(values: Mapping[str, Any], key: str, default: Any = "") -> Any:
    value = values.get(key, default)
    return default if value is None else value


FieldErrors = Dict[str, str]
