"""Read access to the outbound e-mail log."""
from __future__ import annotations

from typing import Any, Dict

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.db.models import EmailLog

from .querying import ListParams, paginate
from .validation import get_or_404


COLUMNS = {
    "id": EmailLog.id,
    "subject": EmailLog.subject,
    "status": EmailLog.status,
    "email_type": EmailLog.email_type,
    "from_email": EmailLog.from_email,
    "to_emails": EmailLog.to_emails,
    "related_entity_type": EmailLog.related_entity_type,
    "related_entity_id": EmailLog.related_entity_id,
    "sent_at": EmailLog.sent_at,
    "created_at": EmailLog.created_at,
}


def _summary(row: Any) -> Dict[str, Any]:
    data = row.EmailLog.to_dict()
    data.pop("html_content", None)
    return data


def list_email_logs(session: Session, params: ListParams) -> Dict[str, Any]:
    return paginate(
        session,
        select(EmailLog),
        params,
        COLUMNS,
        search_columns=(EmailLog.subject, EmailLog.to_emails),
        mapper=_summary,
        default_sort="sent_at",
    )


def get_email_log(session: Session, log_id: str) -> Dict[str, Any]:
    return get_or_404(session, EmailLog, log_id, "Email log").to_dict()
