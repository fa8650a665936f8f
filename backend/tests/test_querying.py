"""
List query language: parameter parsing, filters, search, sorting and paging.

Runs `paginate` against real rows in SQLite so the generated SQL is exercised,
not just the parsing.
"""
from __future__ import annotations

from sqlalchemy import select

from backend.academy.querying import (
    MAX_PAGE_SIZE,
    ListParams,
    calculate_offset,
    paginate,
    parse_filters,
)
from backend.db import session_scope
from backend.db.models import Course

from factories import make_course


COLUMNS = {
    "title": Course.title,
    "slug": Course.slug,
    "price": Course.price,
    "level": Course.level,
    "created_at": Course.created_at,
}


def _page(query):
    params = ListParams.from_query(query)
    with session_scope() as session:
        return paginate(session, select(Course), params, COLUMNS, search_columns=(Course.title,))


def _seed_catalog():
    make_course(title="Basic Computer", price=5000)
    make_course(title="Web Development", price=15000)
    make_course(title="Professional Cookery", price=25000)
    make_course(title="IELTS Preparation", price=8000)


def test_list_params_defaults_and_clamping():
    params = ListParams.from_query({})
    assert (params.page, params.page_size, params.sort_by, params.order) == (1, 10, "created_at", "desc")

    params = ListParams.from_query({"page": "0", "pageSize": "5000", "order": "sideways"})
    assert params.page == 1
    assert params.page_size == MAX_PAGE_SIZE
    assert params.order == "desc"

    params = ListParams.from_query({"page": "abc", "pageSize": "-3"})
    assert params.page == 1
    assert params.page_size == 1


def test_calculate_offset():
    assert calculate_offset(1, 10) == 0
    assert calculate_offset(3, 10) == 20
    assert calculate_offset(0, 10) == 0


def test_parse_filters_accepts_both_shapes_and_ignores_garbage():
    assert parse_filters('[{"id": "title", "value": "web"}]') == [("title", "web")]
    assert parse_filters('{"title": "web", "level": 2}') == [("title", "web"), ("level", 2)]
    assert parse_filters("not json") == []
    assert parse_filters('"a string"') == []
    assert parse_filters(None) == []


def test_string_filter_is_case_insensitive_contains():
    _seed_catalog()
    result = _page({"filters": '[{"id": "title", "value": "WEB"}]'})
    assert result["total"] == 1
    assert result["data"][0]["title"] == "Web Development"


def test_numeric_range_filter_is_inclusive_and_allows_open_bounds():
    _seed_catalog()
    result = _page({"filters": '[{"id": "price", "value": [8000, 15000]}]'})
    assert sorted(r["title"] for r in result["data"]) == ["IELTS Preparation", "Web Development"]

    result = _page({"filters": '[{"id": "price", "value": [null, 6000]}]'})
    assert [r["title"] for r in result["data"]] == ["Basic Computer"]


def test_list_filter_becomes_in_clause():
    _seed_catalog()
    result = _page({"filters": '[{"id": "slug", "value": ["basic-computer", "ielts-preparation", "nope"]}]'})
    assert result["total"] == 2


def test_unknown_columns_and_empty_values_are_ignored():
    _seed_catalog()
    result = _page({"filters": '[{"id": "password", "value": "x"}, {"id": "title", "value": ""}]'})
    assert result["total"] == 4


def test_search_sort_and_paging():
    _seed_catalog()
    result = _page({"search": "o", "sortBy": "price", "order": "asc", "pageSize": "2"})
    # "Basic Computer", "Web Development", "Professional Cookery", "IELTS Preparation" all contain "o"
    assert result["total"] == 4
    assert [r["title"] for r in result["data"]] == ["Basic Computer", "IELTS Preparation"]
    assert result["page"] == 1 and result["pageSize"] == 2

    second = _page({"search": "o", "sortBy": "price", "order": "asc", "pageSize": "2", "page": "2"})
    assert [r["title"] for r in second["data"]] == ["Web Development", "Professional Cookery"]


def test_unknown_sort_column_falls_back_to_default():
    _seed_catalog()
    result = _page({"sortBy": "DROP TABLE courses", "order": "asc"})
    assert result["total"] == 4
    assert len(result["data"]) == 4


def test_cache_key_is_stable_for_equal_params():
    a = ListParams.from_query({"page": "2", "filters": '{"title": "web"}'})
    b = ListParams.from_query({"filters": '{"title": "web"}', "page": "2"})
    assert a.cache_key() == b.cache_key()
    assert a.filter_value("title") == "web"
    assert a.filter_value("price") is None
