"""
Startup guard and small settings readers.
"""
from __future__ import annotations

import pytest

from backend.web import config


PROD_ENV = {
    "HOPE_ENV": "prod",
    "SUPABASE_SERVICE_ROLE_KEY": "service-role-key",
    "SUPABASE_JWT_SECRET": "jwt-secret",
    "DATABASE_URL": "postgresql://app:pw@db.example:5432/hope?sslmode=require",
    "SUPABASE_URL": "https://project.supabase.co",
}


def _apply(monkeypatch, **overrides):
    for key, value in {**PROD_ENV, **overrides}.items():
        if value is None:
            monkeypatch.delenv(key, raising=False)
        else:
            monkeypatch.setenv(key, value)


def test_dev_is_permissive(monkeypatch):
    monkeypatch.setenv("HOPE_ENV", "dev")
    monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)
    config.ensure_secure_config_on_startup()


def test_valid_production_config_passes(monkeypatch):
    _apply(monkeypatch)
    config.ensure_secure_config_on_startup()


@pytest.mark.parametrize(
    "overrides",
    [
        {"SUPABASE_SERVICE_ROLE_KEY": None},
        {"SUPABASE_SERVICE_ROLE_KEY": "CHANGE_ME_LATER"},
        {"SUPABASE_JWT_SECRET": None},
        {"DATABASE_URL": "sqlite:///hope.db"},
        {"DATABASE_URL": "postgresql://app:pw@db/hope?sslmode=disable"},
        {"SUPABASE_URL": "http://project.supabase.co"},
    ],
)
def test_insecure_production_config_aborts(monkeypatch, overrides):
    _apply(monkeypatch, **overrides)
    with pytest.raises(SystemExit):
        config.ensure_secure_config_on_startup()


def test_staging_is_treated_like_production(monkeypatch):
    _apply(monkeypatch, HOPE_ENV="staging", SUPABASE_JWT_SECRET=None)
    with pytest.raises(SystemExit):
        config.ensure_secure_config_on_startup()


@pytest.mark.parametrize(
    "raw, expected",
    [(None, (3, 300)), ("5/60", (5, 60)), ("garbage", (3, 300)), ("0/60", (3, 300))],
)
def test_contact_rate_limit(monkeypatch, raw, expected):
    if raw is None:
        monkeypatch.delenv("CONTACT_RATE_LIMIT", raising=False)
    else:
        monkeypatch.setenv("CONTACT_RATE_LIMIT", raw)
    assert config.contact_rate_limit() == expected


def test_session_ttl_and_base_url(monkeypatch):
    monkeypatch.setenv("SESSION_TTL_SECONDS", "-5")
    assert config.session_ttl_seconds() == 3600
    monkeypatch.setenv("SESSION_TTL_SECONDS", "900")
    assert config.session_ttl_seconds() == 900
    monkeypatch.setenv("SITE_BASE_URL", "https://hope.edu.np/")
    assert config.site_base_url() == "https://hope.edu.np"
