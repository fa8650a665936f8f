"""
Send transactional e-mails and record every attempt in `email_logs`.

Behavior:
    - Without `RESEND_API_KEY` nothing is sent; the log row gets status `skipped`.
    - Delivery errors are logged and stored as status `failed`; callers never
      see an exception for a failed e-mail.
"""
from __future__ import annotations

from typing import Optional, Sequence
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.db.models import EmailLog, Profile, ROLE_SERVICE

from .resend import EmailDeliveryError, ResendClient, load_resend_config, recipients


logger = logging.getLogger("hope.notifications")


def get_mail_client() -> Optional[ResendClient]:
    """Return a configured client, or None when e-mail is disabled."""
    cfg = load_resend_config()
    if not cfg.configured:
        return None
    return ResendClient(cfg)


def send_email(
    session: Session,
    *,
    to: Sequence[str] | str,
    subject: str,
    html: str,
    text: Optional[str] = None,
    reply_to: Optional[str] = None,
    email_type: Optional[str] = None,
    user_id: Optional[str] = None,
    admin_id: Optional[str] = None,
    related_entity_type: Optional[str] = None,
    related_entity_id: Optional[str] = None,
) -> EmailLog:
    to_list = recipients(to)
    cfg = load_resend_config()
    log = EmailLog(
        from_email=cfg.from_email,
        to_emails=to_list,
        subject=subject,
        html_content=html,
        text_content=text,
        reply_to=reply_to,
        email_type=email_type,
        user_id=user_id,
        admin_id=admin_id,
        related_entity_type=related_entity_type,
        related_entity_id=related_entity_id,
    )
    client = get_mail_client()
    if client is None or not to_list:
        log.status = "skipped"
        log.error_message = "no recipients" if client is not None else "email disabled"
    else:
        try:
            log.resend_email_id = client.send(to=to_list, subject=subject, html=html, text=text, reply_to=reply_to)
            log.status = "sent"
        except EmailDeliveryError as exc:
            logger.warning("email delivery failed type=%s code=%s", email_type, exc.code)
            log.status = "failed"
            log.error_message = exc.code
    session.add(log)
    session.flush()
    return log


def admin_recipients(session: Session) -> list[str]:
    """E-mail addresses of active admins, falling back to `RESEND_TO_EMAIL`."""
    rows = session.execute(
        select(Profile.email).where(Profile.role == ROLE_SERVICE, Profile.deleted_at.is_(None))
    ).scalars().all()
    emails = [e for e in rows if e]
    if not emails:
        fallback = load_resend_config().fallback_to
        if fallback:
            emails = [fallback]
    return emails
