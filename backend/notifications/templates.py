"""
E-mail bodies for transactional messages.

Every builder returns `(subject, html, text)`. Values are HTML-escaped; the
templates are intentionally plain so they render in every mail client.
"""
from __future__ import annotations

from html import escape
from typing import Optional, Tuple

Rendered = Tuple[str, str, str]

_INSTITUTE = "Hope Institute"


def _wrap(title: str, body_html: str) -> str:
    return (
        '<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto">'
        f'<h2 style="color:#1f3a93">{escape(title)}</h2>'
        f"{body_html}"
        f'<p style="color:#777;font-size:12px">{_INSTITUTE}</p>'
        "</div>"
    )


def enrollment_requested(*, user_name: str, user_email: str, course_title: str, start_date: str) -> Rendered:
    subject = f"New enrollment request: {course_title}"
    html = _wrap(
        "New enrollment request",
        f"<p><strong>{escape(user_name)}</strong> ({escape(user_email)}) requested a seat in "
        f"<strong>{escape(course_title)}</strong> starting {escape(start_date)}.</p>"
        "<p>Review the request in the admin back-office.</p>",
    )
    text = f"{user_name} ({user_email}) requested a seat in {course_title} starting {start_date}."
    return subject, html, text


def enrollment_status_changed(
    *, user_name: str, course_title: str, status: str, reason: Optional[str] = None
) -> Rendered:
    subject = f"Your enrollment for {course_title} is now {status}"
    reason_html = f"<p>Reason: {escape(reason)}</p>" if reason else ""
    html = _wrap(
        "Enrollment update",
        f"<p>Dear {escape(user_name)},</p>"
        f"<p>Your enrollment for <strong>{escape(course_title)}</strong> is now "
        f"<strong>{escape(status)}</strong>.</p>{reason_html}",
    )
    text = f"Dear {user_name}, your enrollment for {course_title} is now {status}."
    if reason:
        text += f" Reason: {reason}"
    return subject, html, text


def contact_form(*, name: str, email: str, phone: Optional[str], message: str) -> Rendered:
    subject = f"Contact form: {name}"
    html = _wrap(
        "New contact request",
        f"<p><strong>Name:</strong> {escape(name)}<br>"
        f"<strong>Email:</strong> {escape(email)}<br>"
        f"<strong>Phone:</strong> {escape(phone or '-')}</p>"
        f"<p style=\"white-space:pre-wrap\">{escape(message)}</p>",
    )
    text = f"Name: {name}\nEmail: {email}\nPhone: {phone or '-'}\n\n{message}"
    return subject, html, text


def contact_reply(*, name: str, subject: str, message: str, original_message: str) -> Rendered:
    html = _wrap(
        subject,
        f"<p>Dear {escape(name)},</p>"
        f"<p style=\"white-space:pre-wrap\">{escape(message)}</p>"
        "<hr><p style=\"color:#777\">Your original message:</p>"
        f"<blockquote style=\"color:#777;white-space:pre-wrap\">{escape(original_message)}</blockquote>",
    )
    text = f"Dear {name},\n\n{message}\n\n> {original_message}"
    return subject, html, text


def account_deleted(*, name: str, reason: str, scheduled_for: Optional[str]) -> Rendered:
    subject = "Your account has been deactivated"
    when = (
        f"It will be permanently removed on {escape(scheduled_for)} unless restored."
        if scheduled_for
        else "It has been removed immediately."
    )
    html = _wrap(
        "Account deactivated",
        f"<p>Dear {escape(name)},</p><p>Your account was deactivated. Reason: {escape(reason)}.</p>"
        f"<p>{when}</p><p>Please contact us if you believe this is a mistake.</p>",
    )
    text = f"Dear {name}, your account was deactivated. Reason: {reason}."
    return subject, html, text
