"""
Catalog services: courses, categories, affiliations and intakes.
"""
from __future__ import annotations

import pytest

from backend.academy import affiliations, categories, courses, dashboard, enrollments, intakes
from backend.academy.errors import ConstraintViolation, UniqueViolation, ValidationFailed
from backend.academy.querying import ListParams
from backend.db import session_scope
from backend.db.models import Intake

from factories import make_affiliation, make_category, make_course, make_intake, make_profile


# --- Courses ------------------------------------------------------------------


def test_create_course_derives_slug_from_title():
    with session_scope() as session:
        created = courses.create_course(session, {"title": "Professional Cookery (Level 2)", "price": "25000"})
    assert created["slug"] == "professional-cookery-level-2"
    assert created["price"] == 25000


@pytest.mark.parametrize(
    "payload, code",
    [
        ({"title": "AB", "price": 100}, "TITLE_TOO_SHORT"),
        ({"title": "Web", "slug": "Web Dev!", "price": 100}, "INVALID_SLUG"),
        ({"title": "Web Development", "price": -1}, "INVALID_PRICE"),
        ({"title": "Web Development", "price": "free"}, "INVALID_PRICE"),
        ({"title": "Web Development", "price": 10, "duration_value": 0}, "INVALID_DURATION"),
    ],
)
def test_create_course_validation(payload, code):
    with pytest.raises(ValidationFailed) as exc:
        with session_scope() as session:
            courses.create_course(session, payload)
    assert exc.value.code == code


def test_duplicate_slug_is_rejected():
    make_course(title="Web Development")
    with pytest.raises(UniqueViolation):
        with session_scope() as session:
            courses.create_course(session, {"title": "Web Development", "price": 100})


def test_unknown_category_reference_is_rejected():
    with pytest.raises(ValidationFailed) as exc:
        with session_scope() as session:
            courses.create_course(session, {"title": "Web Development", "price": 1, "category_id": "missing"})
    assert exc.value.code == "INVALID_CATEGORY_ID"


def test_update_course_keeps_untouched_fields():
    course = make_course(title="Web Development", price=15000)
    with session_scope() as session:
        updated = courses.update_course(session, course.id, {"price": 18000})
    assert updated["price"] == 18000
    assert updated["title"] == "Web Development"
    assert updated["slug"] == "web-development"


def test_course_with_intakes_cannot_be_deleted():
    course = make_course()
    make_intake(course.id)
    with pytest.raises(ConstraintViolation):
        with session_scope() as session:
            courses.delete_course(session, course.id)


def test_public_list_filters_by_category_name_or_id():
    tech = make_category("Technology")
    hospitality = make_category("Hospitality")
    make_course(title="Web Development", category_id=tech.id)
    make_course(title="Basic Computer", category_id=tech.id)
    make_course(title="Professional Cookery", category_id=hospitality.id)

    with session_scope() as session:
        by_name = courses.public_list(session, ListParams.from_query({"filters": '{"category": "technology"}'}))
        by_id = courses.public_list(session, ListParams.from_query({"filters": f'{{"category": "{hospitality.id}"}}'}))
        everything = courses.public_list(session, ListParams.from_query({}))
    assert by_name["total"] == 2
    assert [r["title"] for r in by_id["data"]] == ["Professional Cookery"]
    assert everything["total"] == 3


def test_public_rows_carry_next_open_intake():
    course = make_course()
    make_intake(course.id, days_ahead=60, capacity=10)
    soon = make_intake(course.id, days_ahead=10, capacity=5, total_registered=2)
    make_intake(course.id, days_ahead=5, is_open=False)

    with session_scope() as session:
        row = courses.public_get_by_slug(session, course.slug)
    assert row["next_intake_id"] == soon.id
    assert row["available_seats"] == 3
    assert len(row["intakes"]) == 2


def test_related_courses_share_category():
    tech = make_category("Technology")
    web = make_course(title="Web Development", category_id=tech.id)
    make_course(title="Basic Computer", category_id=tech.id)
    make_course(title="Professional Cookery")
    with session_scope() as session:
        related = courses.related_courses(session, web.id)
    assert [r["title"] for r in related] == ["Basic Computer"]


# --- Categories and affiliations ----------------------------------------------


def test_category_names_are_unique_case_insensitively():
    with session_scope() as session:
        categories.create_category(session, {"name": "Technology"})
    with pytest.raises(UniqueViolation):
        with session_scope() as session:
            categories.create_category(session, {"name": "technology"})


def test_category_in_use_cannot_be_deleted():
    tech = make_category("Technology")
    make_course(category_id=tech.id)
    with pytest.raises(ConstraintViolation) as exc:
        with session_scope() as session:
            categories.delete_category(session, tech.id)
    assert exc.value.details == {"course_count": 1}


def test_public_categories_reflect_new_rows():
    make_category("Technology")
    with session_scope() as session:
        assert [c["name"] for c in categories.public_categories(session)] == ["Technology"]
    with session_scope() as session:
        categories.create_category(session, {"name": "Languages"})
    with session_scope() as session:
        assert len(categories.public_categories(session)) == 2


def test_affiliation_crud():
    with session_scope() as session:
        created = affiliations.create_affiliation(session, {"name": "CTEVT", "type": "Council"})
    with session_scope() as session:
        updated = affiliations.update_affiliation(session, created["id"], {"description": "Technical council"})
    assert updated["description"] == "Technical council"
    assert updated["type"] == "Council"

    used = make_affiliation("City & Guilds", "Awarding body")
    hotel = make_course(title="Hotel Management")
    with session_scope() as session:
        courses.update_course(session, hotel.id, {"affiliation_id": used.id})
    with pytest.raises(ConstraintViolation):
        with session_scope() as session:
            affiliations.delete_affiliation(session, used.id)

    with session_scope() as session:
        affiliations.delete_affiliation(session, created["id"])


# --- Intakes ------------------------------------------------------------------


def test_create_intake_validates_dates_and_capacity():
    course = make_course()
    with pytest.raises(ValidationFailed) as exc:
        with session_scope() as session:
            intakes.create_intake(
                session,
                {"course_id": course.id, "start_date": "2031-03-01", "end_date": "2031-02-01", "capacity": 10},
            )
    assert exc.value.code == "INVALID_DATE_RANGE"

    with pytest.raises(ValidationFailed) as exc:
        with session_scope() as session:
            intakes.create_intake(
                session,
                {"course_id": course.id, "start_date": "2031-01-01", "end_date": "2031-02-01", "capacity": 0},
            )
    assert exc.value.code == "INVALID_CAPACITY"

    with session_scope() as session:
        created = intakes.create_intake(
            session, {"course_id": course.id, "start_date": "2031-01-01", "end_date": "2031-04-01"}
        )
    assert created["capacity"] == 20
    assert created["is_open"] is True
    assert created["available_spots"] == 20


def test_capacity_cannot_drop_below_registered():
    course = make_course()
    intake = make_intake(course.id, capacity=10, total_registered=6)
    with pytest.raises(ValidationFailed) as exc:
        with session_scope() as session:
            intakes.update_intake(session, intake.id, {"capacity": 5})
    assert exc.value.code == "CAPACITY_BELOW_REGISTERED"


def test_intake_with_enrollments_cannot_be_deleted():
    course = make_course()
    intake = make_intake(course.id)
    learner = make_profile()
    with session_scope() as session:
        enrollments.create_enrollment(session, {"user_id": learner.id, "intake_id": intake.id})
    with pytest.raises(ConstraintViolation):
        with session_scope() as session:
            intakes.delete_intake(session, intake.id)


def test_generate_for_course_skips_existing_months():
    course = make_course()
    with session_scope() as session:
        first = intakes.generate_for_course(session, course.id, 2031, "quarterly", 25)
    assert len(first["created"]) == 4
    assert first["skipped"] == []
    assert {i["capacity"] for i in first["created"]} == {25}

    with session_scope() as session:
        again = intakes.generate_for_course(session, course.id, 2031, "quarterly", 25)
    assert again["created"] == []
    assert again["skipped"] == [1, 4, 7, 10]

    with session_scope() as session:
        bimonthly = intakes.generate_for_course(session, course.id, 2031, "bimonthly", 25)
    assert bimonthly["skipped"] == [1, 7]
    assert len(bimonthly["created"]) == 4

    with session_scope() as session:
        assert session.query(Intake).filter_by(course_id=course.id).count() == 8


@pytest.mark.parametrize("year", ["31", "abcd", 1800, "20311"])
def test_generate_rejects_bad_years(year):
    course = make_course()
    with pytest.raises(ValidationFailed) as exc:
        with session_scope() as session:
            intakes.generate_for_course(session, course.id, year)
    assert exc.value.code == "INVALID_YEAR"


def test_by_course_and_year_reports_utilization():
    course = make_course()
    with session_scope() as session:
        intakes.generate_for_course(session, course.id, 2031, "quarterly", 10)
    with session_scope() as session:
        first = session.query(Intake).filter_by(course_id=course.id).order_by(Intake.start_date).first()
        first.total_registered = 4
    with session_scope() as session:
        result = intakes.by_course_and_year(session, course.id, "2031")
    assert result["metadata"] == {
        "total_intakes": 4,
        "total_capacity": 40,
        "total_registered": 4,
        "utilization_rate": 10.0,
    }


def test_toggling_intake_hides_it_from_public_listing():
    course = make_course()
    intake = make_intake(course.id)
    with session_scope() as session:
        assert [i["id"] for i in intakes.public_by_course(session, course.id)] == [intake.id]
    with session_scope() as session:
        intakes.update_intake_status(session, intake.id, False)
    with session_scope() as session:
        assert intakes.public_by_course(session, course.id) == []


# --- Dashboard ----------------------------------------------------------------


def test_dashboard_summary_counts():
    learner = make_profile()
    make_profile(role="service_role")
    course = make_course(price=1000)
    intake = make_intake(course.id)
    with session_scope() as session:
        created = enrollments.create_enrollment(session, {"user_id": learner.id, "intake_id": intake.id})
    with session_scope() as session:
        enrollments.update_enrollment_status(session, created["id"], "enrolled")

    with session_scope() as session:
        summary = dashboard.summary(session)
    assert summary["total_users"] == 1
    assert summary["total_enrollments"] == 1
    assert {r["status"]: r["count"] for r in summary["enrollments_by_status"]}["enrolled"] == 1
    assert summary["total_income"] == 1000
    assert summary["recent_enrollments"][0]["id"] == created["id"]
