"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend to avoid sandbox restrictions
that can affect the Trio backend (e.g., socketpair permission errors).

Every test runs against a fresh in-memory SQLite database, the in-memory
session store and fake provider clients, so the suite needs neither network
access nor a running Postgres.
"""
import os
import sys
import tempfile
from pathlib import Path

import pytest

# Environment must be settled before backend.web.main is imported: the app
# mounts the uploads directory and runs the startup guard at import time.
os.environ["HOPE_ENV"] = "dev"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret-with-enough-entropy"
os.environ.setdefault("UPLOADS_DIR", tempfile.mkdtemp(prefix="hope-uploads-"))
os.environ.pop("RESEND_API_KEY", None)
os.environ.pop("SESSIONS_BACKEND", None)

# Load .env only when E2E suite is explicit enabled.
try:
    from dotenv import load_dotenv  # type: ignore
    if os.getenv("RUN_E2E", "0") == "1":
        load_dotenv()
except ImportError:
    pass

REPO_ROOT = Path(__file__).resolve().parents[2]
TESTS_DIR = REPO_ROOT / "backend" / "tests"
for p in (str(REPO_ROOT), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)

from backend.academy.cache import CACHE  # noqa: E402
from backend.db import configure_engine, init_db  # noqa: E402
from backend.notifications import mailer  # noqa: E402
from backend.web.routes import auth as auth_routes  # noqa: E402
from backend.web.routes.public_api import CONTACT_LIMITER  # noqa: E402
from backend.web.sessions import SESSION_STORE, SETTINGS, _CSRF_BY_SESSION  # noqa: E402

from factories import FakeAuthClient, FakeMailClient  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _fresh_state(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Fresh database, sessions, caches and uploads directory per test.

    Why:
        Services, the session store, the query cache and the contact rate
        limiter are module-level singletons. Without a reset, rows, cached
        catalog pages and rate-limit hits leak between tests.
    """
    monkeypatch.setenv("UPLOADS_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("SUPABASE_JWT_SECRET", os.environ["SUPABASE_JWT_SECRET"])
    for var in ("HOPE_ENV", "HOPE_TRUST_PROXY", "RESEND_API_KEY", "MAX_USER_RESTORATIONS", "UPLOAD_MAX_BYTES"):
        monkeypatch.delenv(var, raising=False)
    configure_engine("sqlite://")
    init_db()
    SESSION_STORE.clear()
    _CSRF_BY_SESSION.clear()
    CACHE.clear()
    CONTACT_LIMITER.reset()
    SETTINGS.override_environment(None)
    yield
    SETTINGS.override_environment(None)


@pytest.fixture
def mail(monkeypatch: pytest.MonkeyPatch) -> FakeMailClient:
    """Capture outbound e-mail instead of calling Resend."""
    client = FakeMailClient()
    monkeypatch.setattr(mailer, "get_mail_client", lambda: client)
    return client


@pytest.fixture
def auth_provider(monkeypatch: pytest.MonkeyPatch) -> FakeAuthClient:
    """Stand-in for Supabase Auth used by the sign-in/sign-up routes."""
    provider = FakeAuthClient()
    monkeypatch.setattr(auth_routes, "get_auth_client", lambda: provider)
    return provider
