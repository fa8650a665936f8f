"""
`hope-admin` operations CLI.
"""
from __future__ import annotations

from datetime import timedelta

from click.testing import CliRunner

from backend.db import session_scope
from backend.db.models import Course, Intake, Profile
from backend.db.session import utcnow
from backend.tools import cli as cli_module

from factories import FakeAuthClient, make_profile, reload


def _run(*args):
    return CliRunner().invoke(cli_module.cli, list(args))


def test_init_db():
    result = _run("init-db")
    assert result.exit_code == 0, result.output
    assert "Database initialised (sqlite)" in result.output


def test_reset_db_requires_confirmation():
    make_profile()
    result = _run("reset-db")
    assert result.exit_code == 1
    assert "--yes" in result.output
    with session_scope() as session:
        assert session.query(Profile).count() == 1

    result = _run("reset-db", "--yes")
    assert result.exit_code == 0, result.output
    with session_scope() as session:
        assert session.query(Profile).count() == 0


def test_seed_is_idempotent():
    first = _run("seed")
    assert first.exit_code == 0, first.output
    with session_scope() as session:
        courses = session.query(Course).count()
        intakes = session.query(Intake).count()
    assert courses > 0 and intakes > 0

    second = _run("seed")
    assert second.exit_code == 0, second.output
    assert "courses=0" in second.output
    assert "intakes=0" in second.output
    with session_scope() as session:
        assert session.query(Course).count() == courses


def test_seed_rejects_unknown_sections(tmp_path):
    seed_file = tmp_path / "seed.yml"
    seed_file.write_text("categories: []\nteachers: []\n", encoding="utf-8")
    result = _run("seed", "--file", str(seed_file))
    assert result.exit_code == 1
    assert "unknown sections" in result.output


def test_apply_policies_is_a_noop_on_sqlite():
    result = _run("apply-policies")
    assert result.exit_code == 0, result.output
    assert "only available on Postgres" in result.output


def test_purge_deletions(monkeypatch):
    due = make_profile()
    refused = make_profile()
    with session_scope() as session:
        for user_id in (due.id, refused.id):
            profile = session.get(Profile, user_id)
            profile.deleted_at = utcnow() - timedelta(days=40)
            profile.deletion_scheduled_for = utcnow() - timedelta(days=10)

    auth = FakeAuthClient()
    auth.failing_deletes.add(refused.id)
    monkeypatch.setattr(cli_module, "get_auth_admin", lambda: auth)

    result = _run("purge-deletions")
    assert result.exit_code == 0, result.output
    assert "Purged 1 user(s); 1 failed." in result.output
    assert f"{refused.id}: AuthProviderError" in result.output
    assert reload(Profile, due.id) is None
    assert reload(Profile, refused.id) is not None
