"""
Course image uploads: validation, storage naming and safe deletion.
"""
from __future__ import annotations

from io import BytesIO
import os

import pytest
from PIL import Image

from backend.academy.errors import Forbidden, ValidationFailed
from backend.storage import local as local_storage
from backend.storage.config import get_uploads_dir

from factories import api_client, envelope, login, make_profile


def _png_bytes() -> bytes:
    buf = BytesIO()
    Image.new("RGB", (4, 4), (200, 30, 30)).save(buf, format="PNG")
    return buf.getvalue()


def test_sanitize_filename():
    assert local_storage.sanitize_filename("../../My Photo (1).PNG") == "My_Photo_1.png"
    assert local_storage.sanitize_filename("") == "image"


def test_save_and_delete_image():
    stored = local_storage.save_image("cover.png", "image/png", _png_bytes())
    assert stored.url.startswith("/uploads/")
    assert stored.filename.endswith("-cover.png")
    assert (get_uploads_dir() / stored.filename).is_file()

    assert local_storage.delete_image(stored.url) is True
    assert local_storage.delete_image(stored.url) is False


def test_rejects_non_images():
    with pytest.raises(ValidationFailed) as exc:
        local_storage.save_image("notes.txt", "text/plain", b"hello")
    assert exc.value.code == "INVALID_FILE_TYPE"

    with pytest.raises(ValidationFailed) as exc:
        local_storage.save_image("fake.png", "image/png", b"definitely not a png")
    assert exc.value.code == "INVALID_FILE_TYPE"


def test_rejects_large_files(monkeypatch):
    monkeypatch.setenv("UPLOAD_MAX_BYTES", "64")
    with pytest.raises(ValidationFailed) as exc:
        local_storage.save_image("big.png", "image/png", _png_bytes() + b"\0" * 64)
    assert exc.value.code == "FILE_TOO_LARGE"


def test_delete_refuses_paths_outside_uploads():
    with pytest.raises(Forbidden) as exc:
        local_storage.delete_image("/uploads/..")
    assert exc.value.code == "INVALID_PATH"
    with pytest.raises(ValidationFailed):
        local_storage.delete_image("   ")


@pytest.mark.anyio
async def test_upload_endpoint_round_trip():
    admin = make_profile(role="service_role")
    async with api_client() as client:
        login(client, admin)
        resp = await client.post("/api/upload", files={"file": ("cover.png", _png_bytes(), "image/png")})
        assert resp.status_code == 201
        body = envelope(resp)
        assert body["data"]["type"] == "image/png"
        assert os.path.exists(get_uploads_dir() / body["data"]["filename"])

        resp = await client.post("/api/delete-image", json={"imageUrl": body["data"]["url"]})
        assert envelope(resp)["data"] == {"deleted": True}

        resp = await client.post("/api/upload", files={"file": ("notes.txt", b"hello", "text/plain")})
        assert resp.status_code == 400
        assert envelope(resp)["code"] == "INVALID_FILE_TYPE"

        resp = await client.post("/api/upload", data={"other": "x"})
        assert envelope(resp)["code"] == "NO_FILE"


@pytest.mark.anyio
async def test_upload_endpoint_is_admin_only():
    learner = make_profile()
    async with api_client() as client:
        login(client, learner)
        resp = await client.post("/api/upload", files={"file": ("cover.png", _png_bytes(), "image/png")})
    assert resp.status_code == 403
