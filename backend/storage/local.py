"""
Local filesystem storage for course images served under `/uploads/`.

Why:
    Course images are small, public and few; keeping them next to the app
    avoids a storage bucket round-trip.

Behavior:
    - `save_image` checks the declared content type, the size bound and that
      Pillow can identify the bytes as an image, then writes
      `{epoch_ms}-{sanitized_name}` and returns its public URL.
    - `delete_image` only ever touches files directly inside the uploads dir.
"""
from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Optional
import logging
import os
import re
import time
import unicodedata

from PIL import Image, UnidentifiedImageError

from backend.academy.errors import Forbidden, ValidationFailed

from .config import UPLOADS_URL_PREFIX, get_upload_max_bytes, get_uploads_dir


logger = logging.getLogger("hope.storage")

_SANITIZE_PATTERN = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class StoredImage:
    url: str
    filename: str
    size: int
    content_type: str


def sanitize_filename(filename: str) -> str:
    base = os.path.basename((filename or "").strip())
    root, ext = os.path.splitext(base)
    ascii_root = unicodedata.normalize("NFKD", root).encode("ascii", "ignore").decode("ascii")
    clean_root = _SANITIZE_PATTERN.sub("_", ascii_root).strip("._") or "image"
    clean_ext = "".join(ch for ch in ext.lower() if ch.isalnum())
    return f"{clean_root[:64]}.{clean_ext}" if clean_ext else clean_root[:64]


def _check_is_image(data: bytes) -> None:
    try:
        with Image.open(BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        raise ValidationFailed("File must be an image", "INVALID_FILE_TYPE")


def save_image(filename: str, content_type: Optional[str], data: bytes, *, uploads_dir: Path | None = None) -> StoredImage:
    ctype = (content_type or "").strip().lower()
    if not ctype.startswith("image/"):
        raise ValidationFailed("File must be an image", "INVALID_FILE_TYPE", {"content_type": ctype})
    max_bytes = get_upload_max_bytes()
    if len(data) >= max_bytes:
        raise ValidationFailed(
            "File size must be less than 5MB",
            "FILE_TOO_LARGE",
            {"size": len(data), "max_bytes": max_bytes},
        )
    if not data:
        raise ValidationFailed("File is empty", "INVALID_FILE_TYPE")
    _check_is_image(data)

    target_dir = uploads_dir or get_uploads_dir()
    target_dir.mkdir(parents=True, exist_ok=True)
    stored = f"{int(time.time() * 1000)}-{sanitize_filename(filename)}"
    (target_dir / stored).write_bytes(data)
    logger.info("image stored name=%s size=%s", stored, len(data))
    return StoredImage(url=f"{UPLOADS_URL_PREFIX}{stored}", filename=stored, size=len(data), content_type=ctype)


def is_local_upload(image_url: Optional[str]) -> bool:
    return bool(image_url) and str(image_url).startswith(UPLOADS_URL_PREFIX)


def delete_image(image_url: str, *, uploads_dir: Path | None = None) -> bool:
    """Remove an uploaded image; returns False when the file did not exist.

    Raises:
        ValidationFailed: empty URL.
        Forbidden: the resolved path escapes the uploads directory.
    """
    if not image_url or not str(image_url).strip():
        raise ValidationFailed("Image URL is required", "IMAGE_URL_REQUIRED")
    base_dir = (uploads_dir or get_uploads_dir()).resolve()
    name = os.path.basename(str(image_url).strip().split("?", 1)[0])
    target = (base_dir / name).resolve()
    if target.parent != base_dir or not name or name in (".", ".."):
        logger.warning("refusing to delete outside uploads dir")
        raise Forbidden("Invalid image path", "INVALID_PATH")
    if not target.is_file():
        return False
    target.unlink()
    logger.info("image deleted name=%s", name)
    return True
