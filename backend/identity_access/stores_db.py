"""
Database-backed SessionStore for production use (Postgres/Supabase).

Why: In-memory sessions are not durable and do not scale across instances. This
store persists sessions in Postgres while keeping the cookie opaque.

Security:
- Intended to be used with a service role connection string; anon clients must
  not access the `app_sessions` table. RLS is enabled without policies, so
  only the table owner / service role can read it.
- Only the opaque `session_id` is set in the cookie; all user context stays server-side.

Note: Enabled via `SESSIONS_BACKEND=db`. Tests use the in-memory store.
"""
from __future__ import annotations

from typing import Optional, Sequence
import os
import re
import time

import psycopg
from psycopg import sql
from psycopg.types.json import Json

from .stores import SessionRecord


_TABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}(?:\.[A-Za-z_][A-Za-z0-9_]{0,62})?$")


def _now() -> int:
    return int(time.time())


def _plain_dsn(url: str) -> str:
    """psycopg wants a libpq URL; strip a SQLAlchemy driver suffix if present."""
    for prefix in ("postgresql+psycopg://", "postgres+psycopg://"):
        if url.startswith(prefix):
            return "postgresql://" + url[len(prefix):]
    return url


class DBSessionStore:
    """Postgres-backed session store.

    Parameters
    ----------
    dsn:
        Connection string; defaults to `DATABASE_URL`. Use a service role in Supabase.
    table:
        Fully qualified table name. Defaults to `public.app_sessions`.
    """

    def __init__(self, dsn: str | None = None, table: str = "public.app_sessions") -> None:
        self._dsn = _plain_dsn(dsn or os.getenv("DATABASE_URL") or "")
        if not self._dsn:
            raise RuntimeError("No database DSN provided for DBSessionStore")
        # Validate table identifier early
        if not _TABLE_RE.match(table or ""):
            raise ValueError("Invalid table name")
        self._table = table

    def _ident(self) -> sql.Composed:
        if "." in self._table:
            schema, name = self._table.split(".", 1)
        else:
            schema, name = "public", self._table
        return sql.SQL("{}.{}").format(sql.Identifier(schema), sql.Identifier(name))

    def ensure_table(self) -> None:
        stmt = sql.SQL(
            "create table if not exists {} ("
            " session_id text primary key,"
            " sub text not null,"
            " roles jsonb not null default '[]'::jsonb,"
            " name text not null default '',"
            " email text not null default '',"
            " access_token text,"
            " expires_at timestamptz not null,"
            " created_at timestamptz not null default now());"
            " alter table {} enable row level security;"
        ).format(self._ident(), self._ident())
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(stmt)

    def create(
        self,
        *,
        sub: str,
        roles: Sequence[str],
        name: str,
        email: str = "",
        access_token: Optional[str] = None,
        ttl_seconds: int = 3600,
    ) -> SessionRecord:
        expires_at = _now() + ttl_seconds
        stmt = sql.SQL(
            "insert into {} (session_id, sub, roles, name, email, access_token, expires_at) "
            "values (gen_random_uuid()::text, %s, %s, %s, %s, %s, to_timestamp(%s)) returning session_id"
        ).format(self._ident())
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(stmt, (sub, Json(list(roles)), name, email, access_token, expires_at))
                row = cur.fetchone()
        sid = str(row[0]) if row else ""
        return SessionRecord(
            session_id=sid,
            sub=sub,
            roles=list(roles),
            name=name,
            email=email,
            access_token=access_token,
            expires_at=expires_at,
            ttl_seconds=ttl_seconds,
        )

    def get(self, session_id: str) -> Optional[SessionRecord]:
        stmt = sql.SQL(
            "select session_id, sub, roles, name, email, access_token, extract(epoch from expires_at)::bigint "
            "from {} where session_id = %s and expires_at > now()"
        ).format(self._ident())
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(stmt, (session_id,))
                row = cur.fetchone()
        if not row:
            return None
        roles = row[2] if isinstance(row[2], list) else []
        return SessionRecord(
            session_id=row[0],
            sub=row[1],
            roles=roles,
            name=row[3],
            email=row[4] or "",
            access_token=row[5],
            expires_at=int(row[6]) if row[6] is not None else None,
        )

    def delete(self, session_id: str) -> None:
        stmt = sql.SQL("delete from {} where session_id = %s").format(self._ident())
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(stmt, (session_id,))

    def delete_for_sub(self, sub: str) -> list[str]:
        """Drop every session of `sub`; returns the removed session ids."""
        stmt = sql.SQL("delete from {} where sub = %s returning session_id").format(self._ident())
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(stmt, (sub,))
                rows = cur.fetchall()
        return [str(row[0]) for row in rows]
