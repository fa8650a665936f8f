"""
Read-through cache for catalog queries with hierarchical keys.

Why:
    Public pages (catalog, course detail, upcoming intakes) are read far more
    often than the admin writes that change them. Keys are tuples such as
    `("public", "courses", "list", <params>)` so a write can invalidate a whole
    branch with one prefix (e.g., `("public", "courses")`).

Behavior:
    - Entries live in a `cachetools.TTLCache`: bounded by `maxsize` (least
      recently used entries go first) and expired after `ttl` seconds.
    - Services call `mark_stale(session, prefix)` while they write.
    - The prefixes are invalidated only after the session commits; a rolled
      back transaction leaves the cache untouched.
"""
from __future__ import annotations

from typing import Any, Callable, Hashable, Optional, Tuple
import threading
import time

from cachetools import TTLCache
from sqlalchemy import event
from sqlalchemy.orm import Session


Key = Tuple[Hashable, ...]


class QueryCache:
    def __init__(
        self,
        default_ttl: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        maxsize: int = 1024,
    ) -> None:
        self.default_ttl = default_ttl
        self.maxsize = maxsize
        self._entries: TTLCache = TTLCache(maxsize=maxsize, ttl=default_ttl, timer=clock)
        self._lock = threading.Lock()

    def get(self, key: Key) -> Optional[Any]:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: Key, value: Any) -> None:
        with self._lock:
            self._entries[key] = value

    def get_or_set(self, key: Key, loader: Callable[[], Any]) -> Any:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = loader()
        self.set(key, value)
        return value

    def invalidate(self, prefix: Key = ()) -> int:
        """Drop all keys starting with `prefix`; returns how many were removed."""
        n = len(prefix)
        with self._lock:
            self._entries.expire()
            doomed = [k for k in self._entries if k[:n] == prefix]
            for k in doomed:
                self._entries.pop(k, None)
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            self._entries.expire()
            return len(self._entries)


class QueryKeys:
    """Key factories; keep the hierarchy in one place."""

    PUBLIC: Key = ("public",)

    @staticmethod
    def courses(*parts: Hashable) -> Key:
        return ("public", "courses", *parts)

    @staticmethod
    def intakes(*parts: Hashable) -> Key:
        return ("public", "intakes", *parts)

    @staticmethod
    def categories(*parts: Hashable) -> Key:
        return ("public", "categories", *parts)


CACHE = QueryCache()

_STALE_KEY = "hope_stale_prefixes"


def mark_stale(session: Session, *prefixes: Key) -> None:
    pending = session.info.setdefault(_STALE_KEY, set())
    for prefix in prefixes or (QueryKeys.PUBLIC,):
        pending.add(tuple(prefix))


@event.listens_for(Session, "after_commit")
def _invalidate_after_commit(session: Session) -> None:
    for prefix in session.info.pop(_STALE_KEY, ()):
        CACHE.invalidate(prefix)


@event.listens_for(Session, "after_rollback")
def _discard_after_rollback(session: Session) -> None:
    session.info.pop(_STALE_KEY, None)
