"""
Account lifecycle: profile bootstrap, role changes, soft deletion, restore and purge.
"""
from __future__ import annotations

from datetime import timedelta

import pytest

from backend.academy import enrollments, payments, profiles, user_deletion
from backend.academy.errors import ConstraintViolation, Forbidden, ValidationFailed
from backend.academy.querying import ListParams
from backend.db import session_scope
from backend.db.models import Enrollment, Intake, Payment, Profile, UserDeletionHistory
from backend.db.session import utcnow

from factories import FakeAuthClient, make_course, make_intake, make_profile, reload


def _admin() -> Profile:
    return make_profile(email="admin@example.com", full_name="Office Admin", role="service_role")


def _delete(admin_id: str, user_id: str, **kwargs):
    with session_scope() as session:
        return user_deletion.soft_delete(session, admin_id, user_id, kwargs.pop("reason", "Duplicate account"), **kwargs)


# --- Profiles -----------------------------------------------------------------


def test_ensure_profile_creates_once_and_tracks_email():
    with session_scope() as session:
        first = profiles.ensure_profile(session, "u-1", "New@Example.com")
        assert first.full_name == "new"
        assert first.role == "authenticated"
    with session_scope() as session:
        again = profiles.ensure_profile(session, "u-1", "changed@example.com", full_name="Ignored")
        assert again.full_name == "new"
        assert again.email == "changed@example.com"


def test_admin_cannot_change_own_role():
    admin = _admin()
    learner = make_profile()
    with pytest.raises(Forbidden) as exc:
        with session_scope() as session:
            profiles.update_role(session, admin.id, admin.id, "authenticated")
    assert exc.value.code == "SELF_ROLE_CHANGE"

    with session_scope() as session:
        assert profiles.update_role(session, admin.id, learner.id, "service_role")["role"] == "service_role"
    with pytest.raises(ValidationFailed):
        with session_scope() as session:
            profiles.update_role(session, admin.id, learner.id, "superuser")


def test_update_own_profile_validates_phone():
    learner = make_profile()
    with session_scope() as session:
        updated = profiles.update_own(session, learner.id, {"full_name": "  Asha K.  ", "phone": "9812345678"})
    assert updated["full_name"] == "Asha K."
    with pytest.raises(ValidationFailed):
        with session_scope() as session:
            profiles.update_own(session, learner.id, {"phone": "123"})


# --- Soft deletion ------------------------------------------------------------


def test_soft_delete_records_history_and_notifies(mail):
    admin = _admin()
    learner = make_profile(email="learner@example.com")
    history = _delete(admin.id, learner.id, schedule_days=30)

    profile = reload(Profile, learner.id)
    assert profile.deleted_at is not None
    assert profile.deletion_scheduled_for is not None
    assert profile.deletion_count == 1
    assert history["deleted_by"] == admin.id
    assert history["email_notification_sent"] is True
    assert mail.sent[-1]["to"] == ["learner@example.com"]

    with session_scope() as session:
        listing = profiles.list_profiles(session, ListParams.from_query({}))
        deleted = user_deletion.list_deleted(session, ListParams.from_query({}))
    assert learner.id not in {r["id"] for r in listing["data"]}
    assert [r["id"] for r in deleted["data"]] == [learner.id]


def test_soft_delete_guards():
    admin = _admin()
    learner = make_profile()
    with pytest.raises(Forbidden) as exc:
        _delete(admin.id, admin.id)
    assert exc.value.code == "SELF_DELETION"

    for days in (0, 366, "soon"):
        with pytest.raises(ValidationFailed) as exc:
            _delete(admin.id, learner.id, schedule_days=days)
        assert exc.value.code == "INVALID_SCHEDULE"

    with pytest.raises(ValidationFailed):
        _delete(admin.id, learner.id, reason="no")

    _delete(admin.id, learner.id, notify=False)
    with pytest.raises(ConstraintViolation) as exc:
        _delete(admin.id, learner.id)
    assert exc.value.code == "ALREADY_DELETED"


def test_restore_is_limited(monkeypatch):
    monkeypatch.setenv("MAX_USER_RESTORATIONS", "2")
    admin = _admin()
    learner = make_profile()

    with pytest.raises(ConstraintViolation) as exc:
        with session_scope() as session:
            user_deletion.restore(session, admin.id, learner.id)
    assert exc.value.code == "NOT_DELETED"

    _delete(admin.id, learner.id, notify=False)
    with session_scope() as session:
        restored = user_deletion.restore(session, admin.id, learner.id)
    assert restored["deleted_at"] is None

    _delete(admin.id, learner.id, notify=False)
    with pytest.raises(ConstraintViolation) as exc:
        with session_scope() as session:
            user_deletion.restore(session, admin.id, learner.id)
    assert exc.value.code == "RESTORE_LIMIT_REACHED"
    assert exc.value.details["max_restorations"] == 2

    with session_scope() as session:
        history = user_deletion.history_for_user(session, learner.id)
    assert len(history) == 2
    assert sum(1 for h in history if h["restored_by"] == admin.id) == 1


def test_deleted_account_is_not_an_admin_recipient(mail):
    admin = _admin()
    other_admin = make_profile(email="second@example.com", role="service_role")
    _delete(admin.id, other_admin.id, notify=False)
    learner = make_profile()
    course = make_course()
    intake = make_intake(course.id)
    with session_scope() as session:
        enrollments.request_enrollment(session, learner.id, intake.id)
    assert mail.sent[-1]["to"] == ["admin@example.com"]


# --- Purge --------------------------------------------------------------------


def test_purge_removes_due_accounts_and_their_records():
    admin = _admin()
    learner = make_profile()
    kept = make_profile()
    course = make_course(price=500)
    intake = make_intake(course.id)
    with session_scope() as session:
        enrollment = enrollments.create_enrollment(session, {"user_id": learner.id, "intake_id": intake.id})
    with session_scope() as session:
        payment = session.query(Payment).filter_by(enrollment_id=enrollment["id"]).one()
        payment.status = "completed"
        payment_id = payment.id
    with session_scope() as session:
        payments.refund_payment(session, payment_id, 100, "Partial refund")

    _delete(admin.id, learner.id, schedule_days=1, notify=False)
    _delete(admin.id, kept.id, notify=False)

    auth = FakeAuthClient()
    with session_scope() as session:
        nothing = user_deletion.purge_due(session, auth)
    assert nothing == {"purged": [], "failed": []}

    with session_scope() as session:
        result = user_deletion.purge_due(session, auth, now=utcnow() + timedelta(days=2))
    assert result == {"purged": [learner.id], "failed": []}
    assert auth.deleted == [learner.id]

    assert reload(Profile, learner.id) is None
    assert reload(Profile, kept.id) is not None
    assert reload(Intake, intake.id).total_registered == 0
    with session_scope() as session:
        assert session.query(Enrollment).count() == 0
        assert session.query(Payment).count() == 0
        assert session.query(UserDeletionHistory).filter_by(user_id=learner.id).count() == 0


def test_purge_keeps_accounts_the_provider_refused():
    admin = _admin()
    first = make_profile()
    second = make_profile()
    _delete(admin.id, first.id, schedule_days=1, notify=False)
    _delete(admin.id, second.id, schedule_days=1, notify=False)

    auth = FakeAuthClient()
    auth.failing_deletes.add(first.id)
    with session_scope() as session:
        result = user_deletion.purge_due(session, auth, now=utcnow() + timedelta(days=2))
    assert result["purged"] == [second.id]
    assert result["failed"] == [{"id": first.id, "error": "AuthProviderError"}]
    assert reload(Profile, first.id) is not None
