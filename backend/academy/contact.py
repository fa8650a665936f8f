"""
Customer contact requests submitted on the public site, and admin replies.

Behavior:
    - `submit` stores the request and notifies the institute by e-mail.
    - `reply` e-mails the requester, stores the reply with its delivery status
      and moves a `new` request to `in-progress`.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.db.models import CONTACT_STATUSES, ContactReply, ContactRequest
from backend.notifications import admin_recipients, send_email
from backend.notifications import templates

from .errors import ValidationFailed
from .querying import ListParams, paginate
from .validation import get_or_404, optional_phone, require_choice, require_email, require_length


logger = logging.getLogger("hope.academy.contact")

TRANSITIONS: Dict[str, tuple[str, ...]] = {
    "new": ("in-progress", "resolved", "closed"),
    "in-progress": ("resolved", "closed"),
    "resolved": ("closed",),
    "closed": (),
}

_reply_count = (
    select(func.count(ContactReply.id))
    .where(ContactReply.contact_request_id == ContactRequest.id)
    .correlate(ContactRequest)
    .scalar_subquery()
)

COLUMNS = {
    "id": ContactRequest.id,
    "name": ContactRequest.name,
    "email": ContactRequest.email,
    "phone": ContactRequest.phone,
    "message": ContactRequest.message,
    "status": ContactRequest.status,
    "reply_count": _reply_count,
    "created_at": ContactRequest.created_at,
    "updated_at": ContactRequest.updated_at,
}

REPLY_COLUMNS = {
    "id": ContactReply.id,
    "contact_request_id": ContactReply.contact_request_id,
    "subject": ContactReply.subject,
    "reply_to_email": ContactReply.reply_to_email,
    "reply_to_name": ContactReply.reply_to_name,
    "email_status": ContactReply.email_status,
    "admin_email": ContactReply.admin_email,
    "sent_at": ContactReply.sent_at,
    "created_at": ContactReply.created_at,
}


def submit(
    session: Session,
    name: Optional[str],
    email: Optional[str],
    phone: Optional[str],
    message: Optional[str],
) -> Dict[str, Any]:
    request = ContactRequest(
        name=require_length(name, "name", 2, 100),
        email=require_email(email),
        phone=optional_phone(phone),
        message=require_length(message, "message", 10, 5000),
        status="new",
    )
    session.add(request)
    session.flush()
    logger.info("contact request stored id=%s", request.id)

    subject, html, text = templates.contact_form(
        name=request.name, email=request.email, phone=request.phone, message=request.message
    )
    send_email(
        session,
        to=admin_recipients(session),
        subject=subject,
        html=html,
        text=text,
        reply_to=request.email,
        email_type="contact_form",
        related_entity_type="contact_request",
        related_entity_id=request.id,
    )
    return request.to_dict()


def list_requests(session: Session, params: ListParams) -> Dict[str, Any]:
    return paginate(
        session,
        select(ContactRequest, _reply_count.label("reply_count")),
        params,
        COLUMNS,
        search_columns=(ContactRequest.name, ContactRequest.email, ContactRequest.message),
    )


def get_request_details(session: Session, request_id: str) -> Dict[str, Any]:
    request = get_or_404(session, ContactRequest, request_id, "Contact request")
    data = request.to_dict()
    data["replies"] = [r.to_dict() for r in sorted(request.replies, key=lambda r: r.sent_at)]
    return data


def update_status(session: Session, request_id: str, status: str) -> Dict[str, Any]:
    request = get_or_404(session, ContactRequest, request_id, "Contact request")
    target = require_choice(status, "status", CONTACT_STATUSES)
    current = request.status
    if target != current and target not in TRANSITIONS.get(current, ()):
        raise ValidationFailed(
            f"Cannot change contact request status from {current} to {target}",
            "INVALID_STATUS_TRANSITION",
            {"from": current, "to": target, "allowed": list(TRANSITIONS.get(current, ()))},
        )
    request.status = target
    session.flush()
    return request.to_dict()


def delete_request(session: Session, request_id: str) -> None:
    request = get_or_404(session, ContactRequest, request_id, "Contact request")
    session.delete(request)
    session.flush()
    logger.info("contact request deleted id=%s", request_id)


def reply(
    session: Session,
    admin: Mapping[str, Any],
    request_id: str,
    subject: Optional[str],
    message: Optional[str],
) -> Dict[str, Any]:
    """Send an e-mail reply to a contact request and record it.

    `admin` carries the acting admin's `sub` and `email`.
    """
    request = get_or_404(session, ContactRequest, request_id, "Contact request")
    clean_subject = require_length(subject, "subject", 1, 500)
    clean_message = require_length(message, "message", 1, 10000)
    _, html, text = templates.contact_reply(
        name=request.name, subject=clean_subject, message=clean_message, original_message=request.message
    )
    log = send_email(
        session,
        to=request.email,
        subject=clean_subject,
        html=html,
        text=text,
        reply_to=admin.get("email") or None,
        email_type="contact_reply",
        admin_id=admin.get("sub"),
        related_entity_type="contact_request",
        related_entity_id=request.id,
    )
    stored = ContactReply(
        contact_request_id=request.id,
        subject=clean_subject,
        message=clean_message,
        reply_to_email=request.email,
        reply_to_name=request.name,
        resend_email_id=log.resend_email_id,
        email_status="sent" if log.status == "sent" else "failed",
        error_message=log.error_message,
        admin_id=admin.get("sub"),
        admin_email=admin.get("email"),
    )
    session.add(stored)
    if request.status == "new":
        request.status = "in-progress"
    session.flush()
    logger.info("contact reply stored id=%s status=%s", stored.id, stored.email_status)
    return stored.to_dict()


def list_replies(session: Session, params: ListParams) -> Dict[str, Any]:
    stmt = select(ContactReply, ContactRequest.status.label("request_status")).join(
        ContactRequest, ContactReply.contact_request_id == ContactRequest.id
    )
    return paginate(
        session,
        stmt,
        params,
        REPLY_COLUMNS,
        search_columns=(ContactReply.subject, ContactReply.reply_to_email, ContactReply.reply_to_name),
        default_sort="sent_at",
    )
