"""Operations CLI (`hope-admin`).

Usage examples:

    hope-admin init-db
    hope-admin seed --file backend/db/seed_data.yml
    hope-admin apply-policies
    hope-admin purge-deletions

The database comes from `DATABASE_URL` unless `--database-url` is given.
`purge-deletions` needs `SUPABASE_URL` and `SUPABASE_SERVICE_ROLE_KEY` to
remove users from Supabase Auth.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import click

from backend.academy import user_deletion
from backend.db import configure_engine, drop_db, get_engine, init_db, session_scope
from backend.db.policies import apply_policies
from backend.db.seed import SeedError, load_seed_file, seed
from backend.identity_access.supabase_auth import SupabaseAuthClient, load_auth_config


logger = logging.getLogger("hope.tools")


def get_auth_admin() -> SupabaseAuthClient:
    return SupabaseAuthClient(load_auth_config())


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--database-url", default=None, help="SQLAlchemy URL; defaults to DATABASE_URL.")
@click.option("-v", "--verbose", is_flag=True, help="Log at DEBUG level.")
def cli(database_url: str | None, verbose: bool) -> None:
    """Hope Institute portal administration."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    if database_url:
        configure_engine(database_url)


@cli.command("init-db")
def init_db_command() -> None:
    """Create all tables (and the session table when SESSIONS_BACKEND=db)."""
    init_db()
    engine = get_engine()
    if engine.dialect.name == "postgresql" and os.getenv("SESSIONS_BACKEND", "memory").lower() == "db":
        from backend.identity_access.stores_db import DBSessionStore

        DBSessionStore(dsn=engine.url.render_as_string(hide_password=False)).ensure_table()
        logger.info("session table ensured")
    click.echo(f"Database initialised ({engine.dialect.name}).")


@cli.command("reset-db")
@click.option("--yes", is_flag=True, help="Confirm dropping every table.")
def reset_db_command(yes: bool) -> None:
    """Drop and recreate all tables. Destroys all data."""
    if not yes:
        raise click.ClickException("Refusing to reset the database without --yes")
    drop_db()
    init_db()
    logger.warning("database reset dialect=%s", get_engine().dialect.name)
    click.echo("Database reset.")


@cli.command("seed")
@click.option(
    "--file",
    "seed_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML seed file; defaults to the bundled demo catalog.",
)
def seed_command(seed_file: Path | None) -> None:
    """Insert the seed catalog. Existing rows are kept."""
    try:
        data = load_seed_file(seed_file)
        with session_scope() as session:
            counts = seed(session, data)
    except SeedError as exc:
        raise click.ClickException(str(exc))
    click.echo("Created " + ", ".join(f"{name}={count}" for name, count in counts.items()))


@cli.command("apply-policies")
def apply_policies_command() -> None:
    """Enable row-level security and (re)create the policies (Postgres only)."""
    count = apply_policies(get_engine())
    if count == 0:
        click.echo("Row-level security is only available on Postgres; nothing applied.")
        return
    click.echo(f"Applied {count} statements.")


@cli.command("purge-deletions")
def purge_deletions_command() -> None:
    """Permanently remove users whose scheduled deletion date has passed."""
    auth_admin = get_auth_admin()
    with session_scope({"role": "service_role"}) as session:
        result = user_deletion.purge_due(session, auth_admin)
    click.echo(f"Purged {len(result['purged'])} user(s); {len(result['failed'])} failed.")
    for failure in result["failed"]:
        click.echo(f"  {failure['id']}: {failure['error']}", err=True)


if __name__ == "__main__":  # pragma: no cover - manual entry
    cli()
