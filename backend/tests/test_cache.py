"""
Query cache: TTL, prefix invalidation and commit-bound invalidation.
"""
from __future__ import annotations

import pytest

from backend.academy import courses
from backend.academy.cache import CACHE, QueryCache, QueryKeys, mark_stale
from backend.academy.querying import ListParams
from backend.db import session_scope

from factories import make_course


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_entries_expire_after_ttl():
    clock = _Clock()
    cache = QueryCache(default_ttl=10, clock=clock)
    cache.set(("a",), 1)
    assert cache.get(("a",)) == 1
    clock.now += 11
    assert cache.get(("a",)) is None
    assert len(cache) == 0


def test_cache_is_bounded_and_drops_expired_entries():
    clock = _Clock()
    cache = QueryCache(default_ttl=30, clock=clock, maxsize=100)
    for i in range(5001):
        cache.set(QueryKeys.courses("list", i), i)
    assert len(cache) == 100
    # Oldest keys were evicted, the newest ones are kept
    assert cache.get(QueryKeys.courses("list", 0)) is None
    assert cache.get(QueryKeys.courses("list", 5000)) == 5000

    clock.now += 31
    assert len(cache) == 0
    assert cache.invalidate(QueryKeys.courses()) == 0


def test_get_or_set_calls_loader_once():
    cache = QueryCache()
    calls = []

    def loader():
        calls.append(1)
        return {"value": 42}

    assert cache.get_or_set(("k",), loader) == {"value": 42}
    assert cache.get_or_set(("k",), loader) == {"value": 42}
    assert len(calls) == 1


def test_invalidate_drops_only_matching_prefix():
    cache = QueryCache()
    cache.set(QueryKeys.courses("list", 1), "a")
    cache.set(QueryKeys.courses("slug", "web"), "b")
    cache.set(QueryKeys.intakes("upcoming", 5), "c")
    assert cache.invalidate(QueryKeys.courses()) == 2
    assert cache.get(QueryKeys.intakes("upcoming", 5)) == "c"
    assert len(cache) == 1


def test_stale_prefixes_are_invalidated_on_commit_only():
    CACHE.set(QueryKeys.courses("list", "x"), "cached")

    with pytest.raises(RuntimeError):
        with session_scope() as session:
            mark_stale(session, QueryKeys.courses())
            raise RuntimeError("boom")
    assert CACHE.get(QueryKeys.courses("list", "x")) == "cached"

    with session_scope() as session:
        mark_stale(session, QueryKeys.courses())
    assert CACHE.get(QueryKeys.courses("list", "x")) is None


def test_public_listing_reflects_course_writes():
    make_course(title="Basic Computer")
    params = ListParams.from_query({})
    with session_scope() as session:
        first = courses.public_list(session, params)
    assert first["total"] == 1

    with session_scope() as session:
        courses.create_course(session, {"title": "Web Development", "price": 15000})
    with session_scope() as session:
        second = courses.public_list(session, params)
    assert second["total"] == 2
