"""
Back-office action forms: status changes, refunds, replies, deletions.

Each form is a single POST target on the admin page it belongs to; the page
handler maps the fields to the JSON API and redirects back (PRG).
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

from backend.db.models import PAYMENT_METHODS

from ..base import Component
from .fields import CheckboxField, SelectField, TextAreaField, TextInputField
from .shell import FormShell, value_of


class StatusForm(Component):
    """Select the next status from the transitions the service allows."""

    def __init__(
        self,
        action: str,
        csrf_token: str,
        choices: Iterable[str],
        *,
        current: Optional[str] = None,
        with_reason: bool = False,
        reason_label: str = "Reason",
        submit_label: str = "Update status",
    ) -> None:
        self.action = action
        self.csrf_token = csrf_token
        self.choices = list(choices)
        self.current = current
        self.with_reason = with_reason
        self.reason_label = reason_label
        self.submit_label = submit_label

    def render(self) -> str:
        if not self.choices:
            return '<p class="text-muted">No further status changes are possible.</p>'
        fields = [
            SelectField("status", "New status", required=True).render(
                [(c, c.replace("_", " ").capitalize()) for c in self.choices], value=self.current, class_="form-input"
            )
        ]
        if self.with_reason:
            fields.append(TextAreaField("reason", self.reason_label).render(rows=2, class_="form-input", maxlength="1000"))
        return FormShell(
            self.action, self.csrf_token, "".join(fields), submit_label=self.submit_label, css_class="form form--inline"
        ).render()


class DeleteForm(Component):
    """Single danger button with a browser confirmation."""

    def __init__(self, action: str, csrf_token: str, *, label: str = "Delete", confirm: str = "Delete this record?"):
        self.action = action
        self.csrf_token = csrf_token
        self.label = label
        self.confirm = confirm

    def render(self) -> str:
        return FormShell(
            self.action, self.csrf_token, "", submit_label=self.label, submit_variant="danger", confirm=self.confirm,
            css_class="form form--button",
        ).render()


class RefundForm(Component):
    def __init__(self, action: str, csrf_token: str, *, max_amount: float, error: Optional[str] = None):
        self.action = action
        self.csrf_token = csrf_token
        self.max_amount = max_amount
        self.error = error

    def render(self) -> str:
        fields = "".join(
            [
                TextInputField(
                    "amount", "Refund amount", required=True, help_text=f"Up to {self.max_amount:,.2f}"
                ).render(input_type="number", class_="form-input", min="0.01", step="0.01", max=f"{self.max_amount:.2f}"),
                TextAreaField("reason", "Reason", required=True).render(rows=2, class_="form-input", maxlength="2000"),
            ]
        )
        return FormShell(
            self.action, self.csrf_token, fields, submit_label="Record refund", error=self.error, css_class="form refund-form"
        ).render()


class ReplyForm(Component):
    def __init__(self, action: str, csrf_token: str, *, subject: str = "", error: Optional[str] = None):
        self.action = action
        self.csrf_token = csrf_token
        self.subject = subject
        self.error = error

    def render(self) -> str:
        fields = "".join(
            [
                TextInputField("subject", "Subject", required=True).render(
                    value=self.subject, class_="form-input", maxlength="1000"
                ),
                TextAreaField("message", "Message", required=True).render(rows=6, class_="form-input"),
            ]
        )
        return FormShell(
            self.action, self.csrf_token, fields, submit_label="Send reply", error=self.error, css_class="form reply-form"
        ).render()


class SoftDeleteForm(Component):
    """Soft delete a user with a reason and an optional purge schedule."""

    def __init__(self, action: str, csrf_token: str, *, error: Optional[str] = None):
        self.action = action
        self.csrf_token = csrf_token
        self.error = error

    def render(self) -> str:
        fields = "".join(
            [
                TextAreaField("reason", "Reason", required=True, help_text="3 to 1000 characters.").render(
                    rows=2, class_="form-input", maxlength="1000"
                ),
                TextInputField(
                    "schedule_days", "Purge after (days)", help_text="Leave empty to keep the account restorable."
                ).render(input_type="number", class_="form-input", min="1", max="365"),
                CheckboxField("notify", "Notify the user by e-mail").render(checked=True),
            ]
        )
        return FormShell(
            self.action, self.csrf_token, fields, submit_label="Delete user", submit_variant="danger",
            confirm="Delete this user?", error=self.error, css_class="form soft-delete-form",
        ).render()


class RoleForm(Component):
    def __init__(self, action: str, csrf_token: str, *, current: str):
        self.action = action
        self.csrf_token = csrf_token
        self.current = current

    def render(self) -> str:
        field = SelectField("role", "Role").render(
            [("authenticated", "Learner"), ("service_role", "Admin")], value=self.current, class_="form-input"
        )
        return FormShell(
            self.action, self.csrf_token, field, submit_label="Change role", css_class="form form--inline"
        ).render()


class EnrollmentCreateForm(Component):
    """Admin enrollment on behalf of a learner."""

    def __init__(
        self,
        csrf_token: str,
        *,
        users: List[Dict[str, Any]],
        intakes: List[Dict[str, Any]],
        values: Optional[dict] = None,
        error: Optional[str] = None,
    ) -> None:
        self.csrf_token = csrf_token
        self.users = users
        self.intakes = intakes
        self.values = values or {}
        self.error = error

    def _intake_options(self) -> List[Tuple[str, str]]:
        return [
            (str(i.get("id")), f"{i.get('course_title', '')} · {str(i.get('start_date') or '')[:10]}")
            for i in self.intakes
        ]

    def render(self) -> str:
        v = self.values
        fields = "".join(
            [
                SelectField("user_id", "Learner", required=True).render(
                    [(str(u.get("id")), f"{u.get('full_name')} <{u.get('email')}>") for u in self.users],
                    value=v.get("user_id"), placeholder="Select a learner", class_="form-input",
                ),
                SelectField("intake_id", "Intake", required=True).render(
                    self._intake_options(), value=v.get("intake_id"), placeholder="Select an intake", class_="form-input"
                ),
                SelectField("status", "Status").render(
                    [("requested", "Requested"), ("enrolled", "Enrolled")], value=v.get("status") or "enrolled",
                    class_="form-input",
                ),
                TextAreaField("notes", "Notes").render(value=value_of(v, "notes"), rows=2, class_="form-input"),
            ]
        )
        return FormShell(
            "/admin/enrollments", self.csrf_token, fields, submit_label="Create enrollment", error=self.error
        ).render()


class PaymentCreateForm(Component):
    """Record a payment against an enrollment."""

    def __init__(
        self,
        action: str,
        csrf_token: str,
        *,
        enrollment_id: Optional[str] = None,
        enrollments: Optional[List[Dict[str, Any]]] = None,
        error: Optional[str] = None,
    ) -> None:
        self.action = action
        self.csrf_token = csrf_token
        self.enrollment_id = enrollment_id
        self.enrollments = enrollments or []
        self.error = error

    def render(self) -> str:
        if self.enrollment_id:
            target = f'<input type="hidden" name="enrollment_id" value="{self.escape(self.enrollment_id)}">'
        else:
            target = SelectField("enrollment_id", "Enrollment", required=True).render(
                [
                    (str(e.get("id")), f"{e.get('user_name') or e.get('user_email')} · {e.get('course_title')}")
                    for e in self.enrollments
                ],
                placeholder="Select an enrollment",
                class_="form-input",
            )
        fields = "".join(
            [
                target,
                TextInputField("amount", "Amount", required=True).render(
                    input_type="number", class_="form-input", min="0.01", step="0.01"
                ),
                SelectField("payment_method", "Method").render(
                    [(m, m.replace("_", " ").capitalize()) for m in PAYMENT_METHODS], value="cash", class_="form-input"
                ),
                SelectField("status", "Status").render(
                    [("pending", "Pending"), ("completed", "Completed")], value="completed", class_="form-input"
                ),
                TextAreaField("remarks", "Remarks").render(rows=2, class_="form-input"),
            ]
        )
        return FormShell(self.action, self.csrf_token, fields, submit_label="Record payment", error=self.error).render()


class PaymentRecordForm(Component):
    """Learner-side payment record for one enrollment."""

    def __init__(self, csrf_token: str, *, enrollment_id: str):
        self.csrf_token = csrf_token
        self.enrollment_id = enrollment_id

    def render(self) -> str:
        fields = "".join(
            [
                f'<input type="hidden" name="enrollment_id" value="{self.escape(self.enrollment_id)}">',
                TextInputField("amount", "Amount", required=True).render(
                    input_type="number", class_="form-input", min="0.01", step="0.01"
                ),
                SelectField("payment_method", "Method").render(
                    [(m, m.replace("_", " ").capitalize()) for m in PAYMENT_METHODS], value="cash", class_="form-input"
                ),
            ]
        )
        return FormShell(
            "/users/payments", self.csrf_token, fields, submit_label="Record payment", css_class="form form--inline"
        ).render()
