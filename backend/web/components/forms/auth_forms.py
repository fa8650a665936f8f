"""
Sign-in, sign-up, forgot-password and reset-password forms.

The first three are rendered before a session exists, so they carry a CSRF
token bound to a short-lived pre-auth id instead of the session id. The reset
form is shown to the short session opened by a recovery or invite link.
"""

from typing import Optional

from ..base import Component
from .fields import TextInputField
from .shell import FieldErrors, FormShell


class SignInForm(Component):
    def __init__(
        self,
        csrf_token: str,
        *,
        email: str = "",
        redirect: Optional[str] = None,
        error: Optional[str] = None,
        notice: Optional[str] = None,
    ) -> None:
        self.csrf_token = csrf_token
        self.email = email
        self.redirect = redirect
        self.error = error
        self.notice = notice

    def render(self) -> str:
        fields = [
            TextInputField("email", "E-mail", required=True).render(
                value=self.email, input_type="email", autocomplete="email", class_="form-input"
            ),
            TextInputField("password", "Password", required=True).render(
                input_type="password", autocomplete="current-password", class_="form-input"
            ),
        ]
        if self.redirect:
            fields.append(f'<input type="hidden" name="redirect" value="{self.escape(self.redirect)}">')
        notice_html = f'<div class="alert alert-success" role="status">{self.escape(self.notice)}</div>' if self.notice else ""
        form = FormShell(
            "/sign-in", self.csrf_token, "".join(fields), submit_label="Sign in", error=self.error, css_class="form auth-form"
        ).render()
        return f"""
<section class="auth-card">
    <h1>Sign in</h1>
    {notice_html}
    {form}
    <p class="auth-links">
        <a href="/forgot-password">Forgot your password?</a>
        &middot;
        <a href="/sign-up">Create an account</a>
    </p>
</section>"""


class SignUpForm(Component):
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
        fe = self.field_errors
        fields = [
            TextInputField("full_name", "Full name", required=True, error_text=fe.get("full_name")).render(
                value=self.values.get("full_name", ""), autocomplete="name", class_="form-input", maxlength="100"
            ),
            TextInputField("email", "E-mail", required=True, error_text=fe.get("email")).render(
                value=self.values.get("email", ""), input_type="email", autocomplete="email", class_="form-input"
            ),
            TextInputField(
                "password",
                "Password",
                required=True,
                help_text="At least 8 characters.",
                error_text=fe.get("password"),
            ).render(input_type="password", autocomplete="new-password", class_="form-input", minlength="8"),
        ]
        form = FormShell(
            "/sign-up", self.csrf_token, "".join(fields), submit_label="Create account", error=self.error,
            css_class="form auth-form",
        ).render()
        return f"""
<section class="auth-card">
    <h1>Create an account</h1>
    {form}
    <p class="auth-links">Already registered? <a href="/sign-in">Sign in</a></p>
</section>"""


class ForgotPasswordForm(Component):
    def __init__(self, csrf_token: str, *, notice: Optional[str] = None, error: Optional[str] = None) -> None:
        self.csrf_token = csrf_token
        self.notice = notice
        self.error = error

    def render(self) -> str:
        notice_html = f'<div class="alert alert-info" role="status">{self.escape(self.notice)}</div>' if self.notice else ""
        field = TextInputField("email", "E-mail", required=True).render(
            input_type="email", autocomplete="email", class_="form-input"
        )
        form = FormShell(
            "/forgot-password", self.csrf_token, field, submit_label="Send reset link", error=self.error,
            css_class="form auth-form",
        ).render()
        return f"""
<section class="auth-card">
    <h1>Reset your password</h1>
    {notice_html}
    {form}
    <p class="auth-links"><a href="/sign-in">Back to sign in</a></p>
</section>"""


class ResetPasswordForm(Component):
    """New password plus confirmation; `setup=True` words it for invited users."""

    def __init__(
        self,
        csrf_token: str,
        *,
        setup: bool = False,
        error: Optional[str] = None,
        field_errors: Optional[FieldErrors] = None,
    ) -> None:
        self.csrf_token = csrf_token
        self.setup = setup
        self.error = error
        self.field_errors = field_errors or {}

    def render(self) -> str:
        fe = self.field_errors
        fields = [
            TextInputField(
                "password",
                "New password",
                required=True,
                help_text="At least 8 characters.",
                error_text=fe.get("password"),
            ).render(input_type="password", autocomplete="new-password", class_="form-input", minlength="8"),
            TextInputField("confirm_password", "Confirm new password", required=True, error_text=fe.get("confirm_password")).render(
                input_type="password", autocomplete="new-password", class_="form-input", minlength="8"
            ),
        ]
        if self.setup:
            fields.append('<input type="hidden" name="setup" value="1">')
        title = "Set your password" if self.setup else "Choose a new password"
        form = FormShell(
            "/reset-password", self.csrf_token, "".join(fields), submit_label="Save password", error=self.error,
            css_class="form auth-form",
        ).render()
        return f"""
<section class="auth-card">
    <h1>{title}</h1>
    {form}
    <p class="auth-links"><a href="/sign-in">Back to sign in</a></p>
</section>"""
