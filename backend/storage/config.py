"""
Centralized configuration for uploaded course images.

Behavior:
    - `get_uploads_dir()` returns the directory files are written to
      (env `UPLOADS_DIR`, default `<repo>/public/uploads`).
    - `get_upload_max_bytes()` returns the exclusive size bound
      (env `UPLOAD_MAX_BYTES`, default/clamped 5 MiB).

Permissions:
    Pure configuration; no external calls or privileges required.
"""
from __future__ import annotations

from pathlib import Path
import os


UPLOADS_URL_PREFIX = "/uploads/"
_REPO_ROOT = Path(__file__).resolve().parents[2]
UPLOADS_DIR_DEFAULT = _REPO_ROOT / "public" / "uploads"


def get_uploads_dir() -> Path:
    raw = (os.getenv("UPLOADS_DIR") or "").strip()
    return Path(raw).resolve() if raw else UPLOADS_DIR_DEFAULT


def _parse_int_env(name: str, default: int, *, contract_max: int | None = None) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if value <= 0:
        return default
    if isinstance(contract_max, int) and contract_max > 0:
        value = min(value, contract_max)
    return value


def get_upload_max_bytes() -> int:
    """Maximum image upload size (default/clamped 5 MiB)."""
    contract_max = 5 * 1024 * 1024
    return _parse_int_env("UPLOAD_MAX_BYTES", contract_max, contract_max=contract_max)


__all__ = [
    "UPLOADS_URL_PREFIX",
    "UPLOADS_DIR_DEFAULT",
    "get_uploads_dir",
    "get_upload_max_bytes",
]
