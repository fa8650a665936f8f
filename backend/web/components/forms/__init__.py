"""
Form components for Hope Institute.

Field building blocks plus the concrete public, learner and admin forms.
"""

from .fields import CheckboxField, FileUploadField, FormField, SelectField, TextAreaField, TextInputField
from .submit import SubmitButton
from .shell import FormShell
from .auth_forms import ForgotPasswordForm, ResetPasswordForm, SignInForm, SignUpForm
from .contact_form import ContactForm
from .profile_form import ProfileForm
from .course_form import CourseForm
from .catalog_forms import AffiliationForm, CategoryForm, IntakeForm, IntakeGenerateForm
from .operations_forms import (
    DeleteForm,
    EnrollmentCreateForm,
    PaymentCreateForm,
    PaymentRecordForm,
    RefundForm,
    ReplyForm,
    RoleForm,
    SoftDeleteForm,
    StatusForm,
)

__all__ = [
    "FormField",
    "TextAreaField",
    "FileUploadField",
    "TextInputField",
    "SelectField",
    "CheckboxField",
    "SubmitButton",
    "FormShell",
    "SignInForm",
    "SignUpForm",
    "ForgotPasswordForm",
    "ResetPasswordForm",
    "ContactForm",
    "ProfileForm",
    "CourseForm",
    "CategoryForm",
    "AffiliationForm",
    "IntakeForm",
    "IntakeGenerateForm",
    "StatusForm",
    "DeleteForm",
    "RefundForm",
    "ReplyForm",
    "SoftDeleteForm",
    "RoleForm",
    "EnrollmentCreateForm",
    "PaymentCreateForm",
    "PaymentRecordForm",
]
