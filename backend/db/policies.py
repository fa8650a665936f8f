"""
Row-level security policies for Postgres/Supabase.

Why:
    Route guards are the first line of defence; RLS makes the database refuse
    cross-user reads even if a query forgets a `where user_id = ...` clause.

Behavior:
    - `request_claims()` reads the JSON published by `session_scope()` via
      `set_config('request.jwt.claims', ...)`.
    - Catalog tables are world-readable; writes require `service_role`.
    - Learner-owned rows (enrollments, payments, refunds, profiles) are readable
      by their owner; enrollments and payments may also be inserted by the owner.
    - Operational tables (contact replies, email logs, deletion history) are
      `service_role` only, except that anyone may insert a contact request.

Permissions:
    Must be applied with a role that owns the tables (e.g., `postgres`).
    Calling `apply_policies` on a non-Postgres engine is a no-op.
"""
from __future__ import annotations

from typing import List
import logging

from sqlalchemy import text
from sqlalchemy.engine import Engine


logger = logging.getLogger("hope.db.policies")

_CLAIMS_FUNCTION = """
create or replace function public.request_claims() returns jsonb
language sql stable as $$
  select coalesce(nullif(current_setting('request.jwt.claims', true), ''), '{}')::jsonb
$$
"""

_IS_ADMIN = "(public.request_claims() ->> 'role') = 'service_role'"
_SUB = "(public.request_claims() ->> 'sub')"

_CATALOG_TABLES = ("course_categories", "affiliations", "courses", "intakes")
_ADMIN_ONLY_TABLES = ("customer_contact_replies", "email_logs", "user_deletion_history")


def _policy(table: str, name: str, command: str, using: str | None = None, check: str | None = None) -> List[str]:
    stmts = [f'drop policy if exists "{name}" on public.{table}']
    clause = f'create policy "{name}" on public.{table} as permissive for {command}'
    if using:
        clause += f" using ({using})"
    if check:
        clause += f" with check ({check})"
    stmts.append(clause)
    return stmts


def policy_statements() -> List[str]:
    stmts: List[str] = [_CLAIMS_FUNCTION]
    every_table = _CATALOG_TABLES + _ADMIN_ONLY_TABLES + (
        "profiles",
        "enrollments",
        "payments",
        "refunds",
        "customer_contact_requests",
    )
    for table in every_table:
        stmts.append(f"alter table public.{table} enable row level security")
        stmts += _policy(table, f"{table}: service_role all", "all", _IS_ADMIN, _IS_ADMIN)

    for table in _CATALOG_TABLES:
        stmts += _policy(table, f"{table}: public read", "select", "true")

    stmts += _policy("profiles", "profiles: owner read", "select", f"id = {_SUB}")
    stmts += _policy("profiles", "profiles: owner update", "update", f"id = {_SUB}", f"id = {_SUB}")
    stmts += _policy("enrollments", "enrollments: owner read", "select", f"user_id = {_SUB}")
    stmts += _policy("enrollments", "enrollments: owner insert", "insert", check=f"user_id = {_SUB}")
    stmts += _policy(
        "payments",
        "payments: owner read",
        "select",
        f"enrollment_id in (select id from public.enrollments where user_id = {_SUB})",
    )
    stmts += _policy(
        "payments",
        "payments: owner insert",
        "insert",
        check=f"enrollment_id in (select id from public.enrollments where user_id = {_SUB})",
    )
    stmts += _policy("refunds", "refunds: owner read", "select", f"user_id = {_SUB}")
    stmts += _policy("customer_contact_requests", "contact: anyone insert", "insert", check="true")
    return stmts


def apply_policies(engine: Engine) -> int:
    """Enable RLS and (re)create all policies. Returns the number of statements run."""
    if engine.dialect.name != "postgresql":
        logger.info("Skipping RLS policies for dialect %s", engine.dialect.name)
        return 0
    stmts = policy_statements()
    with engine.begin() as conn:
        for stmt in stmts:
            conn.execute(text(stmt))
    logger.info("Applied %d RLS statements", len(stmts))
    return len(stmts)
