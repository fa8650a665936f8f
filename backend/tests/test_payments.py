"""
Payments and refunds: status machine, partial/full refunds and learner records.
"""
from __future__ import annotations

import pytest

from backend.academy import enrollments, payments, refunds
from backend.academy.errors import ConstraintViolation, ValidationFailed
from backend.academy.querying import ListParams
from backend.db import session_scope
from backend.db.models import Payment

from factories import make_course, make_intake, make_profile, reload


def _completed_payment(amount: float = 10000):
    learner = make_profile()
    course = make_course(price=amount)
    intake = make_intake(course.id)
    with session_scope() as session:
        enrollment = enrollments.create_enrollment(session, {"user_id": learner.id, "intake_id": intake.id})
    with session_scope() as session:
        payment = session.query(Payment).filter_by(enrollment_id=enrollment["id"]).one()
        payment.status = "completed"
        payment_id = payment.id
    return learner, enrollment, payment_id


def test_create_payment_validates_amount_and_enrollment():
    _learner, enrollment, _pid = _completed_payment()
    with session_scope() as session:
        created = payments.create_payment(
            session, {"enrollment_id": enrollment["id"], "amount": "2500.456", "payment_method": "fonepay"}
        )
    assert created["amount"] == 2500.46
    assert created["status"] == "pending"

    for bad in (0, -5, 1_000_001, "abc"):
        with pytest.raises(ValidationFailed) as exc:
            with session_scope() as session:
                payments.create_payment(session, {"enrollment_id": enrollment["id"], "amount": bad})
        assert exc.value.code == "INVALID_AMOUNT"

    with pytest.raises(ValidationFailed) as exc:
        with session_scope() as session:
            payments.create_payment(session, {"enrollment_id": "nope", "amount": 10})
    assert exc.value.code == "INVALID_ENROLLMENT"


def test_refunded_status_is_only_reachable_through_refund():
    _learner, _enrollment, payment_id = _completed_payment()
    with pytest.raises(ValidationFailed) as exc:
        with session_scope() as session:
            payments.update_payment_status(session, payment_id, "refunded")
    assert exc.value.code == "REFUND_REQUIRED"


def test_payment_transitions():
    _learner, enrollment, _pid = _completed_payment()
    with session_scope() as session:
        pending = payments.create_payment(session, {"enrollment_id": enrollment["id"], "amount": 100})
    with session_scope() as session:
        failed = payments.update_payment_status(session, pending["id"], "failed", "Card declined")
    assert failed["status"] == "failed"
    assert failed["remarks"] == "Card declined"
    with session_scope() as session:
        assert payments.update_payment_status(session, pending["id"], "pending")["status"] == "pending"
    with session_scope() as session:
        payments.update_payment_status(session, pending["id"], "cancelled")
    with pytest.raises(ValidationFailed) as exc:
        with session_scope() as session:
            payments.update_payment_status(session, pending["id"], "completed")
    assert exc.value.code == "INVALID_STATUS_TRANSITION"


def test_partial_then_full_refund():
    learner, enrollment, payment_id = _completed_payment(10000)

    with session_scope() as session:
        first = payments.refund_payment(session, payment_id, 4000, "Dropped half the modules")
    assert first["status"] == "completed"
    assert first["refunded_amount"] == 4000

    with pytest.raises(ValidationFailed) as exc:
        with session_scope() as session:
            payments.refund_payment(session, payment_id, 6000.01, "Too much")
    assert exc.value.code == "REFUND_EXCEEDS_AMOUNT"
    assert exc.value.details["refundable"] == 6000

    with session_scope() as session:
        second = payments.refund_payment(session, payment_id, 6000, "Course cancelled")
    assert second["status"] == "refunded"
    assert reload(Payment, payment_id).refunded_amount == 10000

    with session_scope() as session:
        rows = refunds.list_for_payment(session, payment_id)
    assert len(rows) == 2
    assert {r["user_id"] for r in rows} == {learner.id}
    assert {r["enrollment_id"] for r in rows} == {enrollment["id"]}

    with pytest.raises(ValidationFailed) as exc:
        with session_scope() as session:
            payments.refund_payment(session, payment_id, 1, "Again")
    assert exc.value.code == "INVALID_PAYMENT_STATUS"


def test_refund_requires_reason():
    _learner, _enrollment, payment_id = _completed_payment()
    with pytest.raises(ValidationFailed):
        with session_scope() as session:
            payments.refund_payment(session, payment_id, 10, "  ")
    assert reload(Payment, payment_id).refunded_amount == 0


def test_payment_details_and_refund_listing():
    _learner, _enrollment, payment_id = _completed_payment(5000)
    with session_scope() as session:
        result = payments.refund_payment(session, payment_id, 1500, "Partial refund")
    with session_scope() as session:
        details = payments.get_payment_details(session, payment_id)
    assert details["refundable_amount"] == 3500
    assert [r["id"] for r in details["refunds"]] == [result["refund_id"]]

    with session_scope() as session:
        listing = refunds.list_refunds(session, ListParams.from_query({}))
        detail = refunds.get_refund_details(session, result["refund_id"])
    assert listing["total"] == 1
    assert detail["amount"] == 1500


def test_payment_with_refunds_cannot_be_deleted():
    _learner, _enrollment, payment_id = _completed_payment()
    with session_scope() as session:
        payments.refund_payment(session, payment_id, 10, "Overcharge")
    with pytest.raises(ConstraintViolation):
        with session_scope() as session:
            payments.delete_payment(session, payment_id)


def test_amount_cannot_drop_below_refunded():
    _learner, _enrollment, payment_id = _completed_payment(1000)
    with session_scope() as session:
        payments.refund_payment(session, payment_id, 600, "Partial")
    with pytest.raises(ValidationFailed):
        with session_scope() as session:
            payments.update_payment(session, payment_id, {"amount": 500})


def test_learner_records_payment_only_for_own_enrollment():
    learner, enrollment, _pid = _completed_payment()
    stranger = make_profile()
    with pytest.raises(ValidationFailed):
        with session_scope() as session:
            payments.create_for_user(session, stranger.id, {"enrollment_id": enrollment["id"], "amount": 100})

    with session_scope() as session:
        created = payments.create_for_user(
            session, learner.id, {"enrollment_id": enrollment["id"], "amount": 100, "status": "completed"}
        )
    # learners can never set the status themselves
    assert created["status"] == "pending"

    with session_scope() as session:
        history = payments.history_for_user(session, learner.id, ListParams.from_query({}))
        other = payments.history_for_user(session, stranger.id, ListParams.from_query({}))
    assert history["total"] == 2
    assert other["total"] == 0
