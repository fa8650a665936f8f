"""
Enrollment services: seat accounting, status transitions and learner flows.
"""
from __future__ import annotations

import pytest

from backend.academy import enrollments
from backend.academy.errors import ConstraintViolation, Forbidden, NotFound, ValidationFailed
from backend.db import session_scope
from backend.db.models import EmailLog, Enrollment, Intake, Payment, Profile
from backend.db.session import utcnow

from factories import make_course, make_intake, make_profile, reload


def _setup(capacity: int = 2, **intake_kwargs):
    learner = make_profile(email="learner@example.com", full_name="Asha Learner")
    course = make_course(title="Web Development", price=15000)
    intake = make_intake(course.id, capacity=capacity, **intake_kwargs)
    return learner, course, intake


def _enroll(user_id: str, intake_id: str, status: str = "requested"):
    with session_scope() as session:
        return enrollments.create_enrollment(session, {"user_id": user_id, "intake_id": intake_id, "status": status})


def test_admin_enrollment_takes_a_seat_and_creates_pending_payment():
    learner, _course, intake = _setup()
    created = _enroll(learner.id, intake.id)

    assert created["status"] == "requested"
    assert reload(Intake, intake.id).total_registered == 1
    with session_scope() as session:
        payments = session.query(Payment).filter_by(enrollment_id=created["id"]).all()
        assert len(payments) == 1
        assert payments[0].status == "pending"
        assert payments[0].amount == 15000
        assert payments[0].payment_method == "cash"


def test_capacity_is_enforced():
    _learner, _course, intake = _setup(capacity=1)
    first = make_profile()
    second = make_profile()
    _enroll(first.id, intake.id)

    with pytest.raises(ConstraintViolation) as exc:
        _enroll(second.id, intake.id)
    assert exc.value.code == "CAPACITY_EXCEEDED"
    assert reload(Intake, intake.id).total_registered == 1


def test_duplicate_seat_for_same_intake_is_rejected():
    learner, _course, intake = _setup()
    _enroll(learner.id, intake.id)
    with pytest.raises(ConstraintViolation) as exc:
        _enroll(learner.id, intake.id)
    assert exc.value.code == "ALREADY_ENROLLED"


def test_closed_intake_rejects_enrollment():
    learner, _course, intake = _setup(is_open=False)
    with pytest.raises(ConstraintViolation) as exc:
        _enroll(learner.id, intake.id)
    assert exc.value.code == "INTAKE_CLOSED"


def test_unknown_or_deleted_user_is_rejected():
    _learner, _course, intake = _setup()
    with pytest.raises(ValidationFailed) as exc:
        _enroll("missing-user", intake.id)
    assert exc.value.code == "INVALID_USER_ID"


def test_status_transitions_follow_the_state_machine():
    learner, _course, intake = _setup()
    created = _enroll(learner.id, intake.id)

    with session_scope() as session:
        updated = enrollments.update_enrollment_status(session, created["id"], "enrolled")
    assert updated["status"] == "enrolled"

    with pytest.raises(ValidationFailed) as exc:
        with session_scope() as session:
            enrollments.update_enrollment_status(session, created["id"], "requested")
    assert exc.value.code == "INVALID_STATUS_TRANSITION"
    assert exc.value.details["allowed"] == ["completed", "cancelled"]


def test_same_status_is_a_no_op():
    learner, _course, intake = _setup()
    created = _enroll(learner.id, intake.id)
    with session_scope() as session:
        again = enrollments.update_enrollment_status(session, created["id"], "requested")
    assert again["status"] == "requested"
    assert reload(Intake, intake.id).total_registered == 1


def test_enrolling_completes_pending_payments_and_cancelling_releases_seat():
    learner, _course, intake = _setup()
    created = _enroll(learner.id, intake.id)

    with session_scope() as session:
        enrollments.update_enrollment_status(session, created["id"], "enrolled")
    with session_scope() as session:
        assert {p.status for p in session.query(Payment).filter_by(enrollment_id=created["id"])} == {"completed"}

    with session_scope() as session:
        enrollments.update_enrollment_status(session, created["id"], "cancelled", "Moved abroad")
    enrollment = reload(Enrollment, created["id"])
    assert enrollment.status == "cancelled"
    assert enrollment.cancelled_reason == "Moved abroad"
    assert reload(Intake, intake.id).total_registered == 0


def test_cancelled_enrollment_can_be_requested_again_if_seats_remain():
    learner, _course, intake = _setup(capacity=1)
    created = _enroll(learner.id, intake.id)
    with session_scope() as session:
        enrollments.update_enrollment_status(session, created["id"], "cancelled", "Changed plans")
    with session_scope() as session:
        again = enrollments.update_enrollment_status(session, created["id"], "requested")
    assert again["status"] == "requested"
    assert again["cancelled_reason"] is None
    assert reload(Intake, intake.id).total_registered == 1


def test_status_change_notifies_learner(mail):
    learner, _course, intake = _setup()
    created = _enroll(learner.id, intake.id)
    with session_scope() as session:
        enrollments.update_enrollment_status(session, created["id"], "enrolled")
    assert mail.sent[-1]["to"] == ["learner@example.com"]
    with session_scope() as session:
        log = session.query(EmailLog).filter_by(email_type="enrollment_status").one()
        assert log.status == "sent"
        assert log.related_entity_id == created["id"]


def test_mail_failure_does_not_fail_the_transition(mail):
    mail.fail = True
    learner, _course, intake = _setup()
    created = _enroll(learner.id, intake.id)
    with session_scope() as session:
        enrollments.update_enrollment_status(session, created["id"], "enrolled")
    assert reload(Enrollment, created["id"]).status == "enrolled"
    with session_scope() as session:
        log = session.query(EmailLog).filter_by(email_type="enrollment_status").one()
        assert log.status == "failed"
        assert log.error_message == "resend_rejected"


def test_without_mail_provider_logs_are_skipped():
    learner, _course, intake = _setup()
    created = _enroll(learner.id, intake.id)
    with session_scope() as session:
        enrollments.update_enrollment_status(session, created["id"], "enrolled")
    with session_scope() as session:
        log = session.query(EmailLog).filter_by(email_type="enrollment_status").one()
        assert log.status == "skipped"


def test_bulk_update_reports_failures_without_aborting():
    learner, _course, intake = _setup(capacity=5)
    other = make_profile()
    a = _enroll(learner.id, intake.id)
    b = _enroll(other.id, intake.id, status="enrolled")
    with session_scope() as session:
        enrollments.update_enrollment_status(session, b["id"], "completed")

    with session_scope() as session:
        result = enrollments.bulk_update_status(session, [a["id"], b["id"], "missing"], "enrolled")
    assert result["updated"] == [a["id"]]
    assert {f["id"]: f["code"] for f in result["failed"]} == {
        b["id"]: "INVALID_STATUS_TRANSITION",
        "missing": "NOT_FOUND",
    }


def test_delete_releases_seat_and_removes_payments_but_not_completed():
    learner, _course, intake = _setup()
    created = _enroll(learner.id, intake.id)
    with session_scope() as session:
        enrollments.delete_enrollment(session, created["id"])
    assert reload(Enrollment, created["id"]) is None
    assert reload(Intake, intake.id).total_registered == 0
    with session_scope() as session:
        assert session.query(Payment).count() == 0

    done = _enroll(learner.id, intake.id, status="enrolled")
    with session_scope() as session:
        enrollments.update_enrollment_status(session, done["id"], "completed")
    with pytest.raises(ConstraintViolation) as exc:
        with session_scope() as session:
            enrollments.delete_enrollment(session, done["id"])
    assert exc.value.code == "CANNOT_DELETE_COMPLETED"


def test_learner_request_notifies_admins_and_reports_full_intakes(mail):
    admin = make_profile(email="admin@example.com", role="service_role", full_name="Admin")
    learner, _course, intake = _setup(capacity=1)

    with session_scope() as session:
        created = enrollments.request_enrollment(session, learner.id, intake.id, notes="  Morning batch  ")
    assert created["status"] == "requested"
    assert created["notes"] == "Morning batch"
    assert mail.sent[-1]["to"] == [admin.email]
    assert mail.sent[-1]["reply_to"] == learner.email

    other = make_profile()
    with pytest.raises(ConstraintViolation) as exc:
        with session_scope() as session:
            enrollments.request_enrollment(session, other.id, intake.id)
    assert exc.value.code == "INTAKE_FULL"


def test_deleted_learner_cannot_request():
    learner, _course, intake = _setup()
    with session_scope() as session:
        profile = session.get(Profile, learner.id)
        profile.deleted_at = utcnow()
    with pytest.raises(Forbidden) as exc:
        with session_scope() as session:
            enrollments.request_enrollment(session, learner.id, intake.id)
    assert exc.value.code == "ACCOUNT_INACTIVE"


def test_learner_can_only_cancel_own_requested_enrollment():
    learner, _course, intake = _setup()
    stranger = make_profile()
    with session_scope() as session:
        created = enrollments.request_enrollment(session, learner.id, intake.id)

    with pytest.raises(NotFound):
        with session_scope() as session:
            enrollments.cancel_for_user(session, stranger.id, created["id"])

    with session_scope() as session:
        cancelled = enrollments.cancel_for_user(session, learner.id, created["id"])
    assert cancelled["status"] == "cancelled"
    assert cancelled["cancelled_reason"] == "Cancelled by learner"

    with pytest.raises(ValidationFailed):
        with session_scope() as session:
            enrollments.cancel_for_user(session, learner.id, created["id"])


def test_list_for_user_joins_course_details():
    learner, course, intake = _setup()
    with session_scope() as session:
        enrollments.request_enrollment(session, learner.id, intake.id)
    with session_scope() as session:
        listing = enrollments.list_for_user(session, learner.id)
    assert listing["total"] == 1
    row = listing["data"][0]
    assert row["course_title"] == course.title
    assert row["course_slug"] == course.slug
    assert row["course_price"] == 15000
