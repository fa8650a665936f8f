"""
Contact requests from the public site and admin replies.
"""
from __future__ import annotations

import pytest

from backend.academy import contact
from backend.academy.errors import ValidationFailed
from backend.academy.querying import ListParams
from backend.db import session_scope
from backend.db.models import ContactRequest, EmailLog

from factories import make_profile, reload


ADMIN = {"sub": "admin-1", "email": "office@hope.edu.np"}


def _submit(**overrides):
    payload = {
        "name": "Sita Sharma",
        "email": "Sita@Example.com",
        "phone": "+977 9812345678",
        "message": "Is there a weekend batch for web development?",
    }
    payload.update(overrides)
    with session_scope() as session:
        return contact.submit(session, **payload)


def test_submit_stores_request_and_notifies_admins(mail):
    make_profile(email="admin@example.com", role="service_role")
    created = _submit()
    assert created["status"] == "new"
    assert created["email"] == "sita@example.com"
    assert mail.sent[-1]["to"] == ["admin@example.com"]
    assert mail.sent[-1]["reply_to"] == "sita@example.com"


@pytest.mark.parametrize(
    "overrides, code",
    [
        ({"name": "S"}, "NAME_TOO_SHORT"),
        ({"email": "not-an-email"}, "INVALID_EMAIL"),
        ({"phone": "12345"}, "INVALID_PHONE"),
        ({"message": "Too short"}, "MESSAGE_TOO_SHORT"),
        ({"message": "x" * 5001}, "MESSAGE_TOO_LONG"),
    ],
)
def test_submit_validation(overrides, code):
    with pytest.raises(ValidationFailed) as exc:
        _submit(**overrides)
    assert exc.value.code == code
    with session_scope() as session:
        assert session.query(ContactRequest).count() == 0


def test_phone_is_optional():
    assert _submit(phone="")["phone"] is None


def test_status_transitions():
    created = _submit()
    with session_scope() as session:
        contact.update_status(session, created["id"], "in-progress")
    with session_scope() as session:
        contact.update_status(session, created["id"], "resolved")

    with pytest.raises(ValidationFailed) as exc:
        with session_scope() as session:
            contact.update_status(session, created["id"], "new")
    assert exc.value.code == "INVALID_STATUS_TRANSITION"
    assert exc.value.details["allowed"] == ["closed"]

    with session_scope() as session:
        assert contact.update_status(session, created["id"], "closed")["status"] == "closed"


def test_reply_moves_new_request_in_progress(mail):
    created = _submit()
    with session_scope() as session:
        stored = contact.reply(session, ADMIN, created["id"], "Weekend batch", "Yes, Saturdays 9-12.")
    assert stored["email_status"] == "sent"
    assert stored["admin_email"] == ADMIN["email"]
    assert mail.sent[-1]["to"] == ["sita@example.com"]
    assert mail.sent[-1]["reply_to"] == ADMIN["email"]
    assert reload(ContactRequest, created["id"]).status == "in-progress"

    with session_scope() as session:
        details = contact.get_request_details(session, created["id"])
        listing = contact.list_replies(session, ListParams.from_query({}))
    assert [r["id"] for r in details["replies"]] == [stored["id"]]
    assert listing["total"] == 1


def test_failed_reply_is_recorded(mail):
    created = _submit()
    mail.fail = True
    with session_scope() as session:
        stored = contact.reply(session, ADMIN, created["id"], "Weekend batch", "Yes.")
    assert stored["email_status"] == "failed"
    assert stored["error_message"] == "resend_rejected"
    with session_scope() as session:
        log = session.query(EmailLog).filter_by(email_type="contact_reply").one()
        assert log.admin_id == ADMIN["sub"]


def test_reply_requires_subject_and_message():
    created = _submit()
    with pytest.raises(ValidationFailed):
        with session_scope() as session:
            contact.reply(session, ADMIN, created["id"], "  ", "Body")


def test_list_requests_searches_and_counts_replies(mail):
    first = _submit()
    _submit(name="Ram Thapa", email="ram@example.com", message="Do you offer IELTS classes?")
    with session_scope() as session:
        contact.reply(session, ADMIN, first["id"], "Re: weekend", "Yes we do.")
    with session_scope() as session:
        result = contact.list_requests(session, ListParams.from_query({"search": "weekend"}))
    assert result["total"] == 1
    assert result["data"][0]["reply_count"] == 1
