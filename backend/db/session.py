"""
Engine and session management for the relational store.

Why:
    All services receive an explicit SQLAlchemy `Session` so transactions stay
    visible at the call site (one request, one unit of work). The engine is
    configured from `DATABASE_URL`; tests swap it for in-memory SQLite.

Security:
    On Postgres every unit of work publishes the caller's claims via
    `set_config('request.jwt.claims', ..., true)`. The row-level-security
    policies in `backend.db.policies` read them through `auth.jwt()`, the same
    way Supabase does for PostgREST traffic.
"""
from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterator, Optional
import json
import logging
import os

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool


logger = logging.getLogger("hope.db")

DEFAULT_DATABASE_URL = "sqlite+pysqlite:///./hope.db"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


class Base(DeclarativeBase):
    def to_dict(self) -> Dict[str, Any]:
        return {col.key: to_jsonable(getattr(self, col.key)) for col in self.__mapper__.column_attrs}


_ENGINE: Engine | None = None
_SESSION_FACTORY: sessionmaker | None = None


def normalize_url(url: str) -> str:
    """Map plain Postgres URLs (as printed by Supabase) to the psycopg3 dialect."""
    if url.startswith("postgres://"):
        return "postgresql+psycopg://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        return "postgresql+psycopg://" + url[len("postgresql://"):]
    return url


def database_url() -> str:
    return normalize_url((os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL).strip())


def configure_engine(url: str | None = None, **engine_kwargs: Any) -> Engine:
    """(Re)bind the module-level engine and session factory.

    Parameters:
        url: SQLAlchemy URL; defaults to `DATABASE_URL`.
        engine_kwargs: Passed through to `create_engine` (e.g., `echo=True`).

    Behavior:
        - SQLite URLs get `check_same_thread=False`; in-memory databases share a
          single connection via `StaticPool` so every session sees the same data.
        - SQLite connections enforce foreign keys like Postgres does.
    """
    global _ENGINE, _SESSION_FACTORY
    target = normalize_url(url or database_url())
    kwargs: Dict[str, Any] = dict(engine_kwargs)
    if target.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        if target in ("sqlite://", "sqlite+pysqlite://") or ":memory:" in target:
            kwargs.setdefault("poolclass", StaticPool)
    else:
        kwargs.setdefault("pool_pre_ping", True)
    engine = create_engine(target, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = engine
    _SESSION_FACTORY = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    logger.info("Database engine configured (dialect=%s)", engine.dialect.name)
    return engine


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine() -> Engine:
    if _ENGINE is None:
        configure_engine()
    assert _ENGINE is not None
    return _ENGINE


@contextmanager
def session_scope(claims: Optional[Dict[str, Any]] = None) -> Iterator[Session]:
    """Yield a session wrapped in a transaction.

    Commits when the block finishes, rolls back on any exception and always
    closes the session. `claims` (e.g., `{"sub": ..., "role": "service_role"}`)
    are published to Postgres for row-level security.
    """
    get_engine()
    assert _SESSION_FACTORY is not None
    session = _SESSION_FACTORY()
    try:
        if claims and session.get_bind().dialect.name == "postgresql":
            session.execute(
                text("select set_config('request.jwt.claims', :claims, true)"),
                {"claims": json.dumps(claims)},
            )
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    from . import models  # noqa: F401  (register tables on Base.metadata)

    Base.metadata.create_all(get_engine())


def drop_db() -> None:
    from . import models  # noqa: F401

    Base.metadata.drop_all(get_engine())
