"""
Image upload and deletion for course pictures.

Behavior:
    - `POST /api/upload` accepts a multipart `file`, validates it as an image
      below `UPLOAD_MAX_BYTES` and stores it under the uploads directory.
      Returns `{url, filename, size, type}` with status 201.
    - `POST /api/delete-image` removes a previously uploaded file by its
      `/uploads/...` URL. Missing files still succeed with `deleted: false`.

Permissions:
    Admin only (`service_role`), enforced by the middleware.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, File, Request, UploadFile
from pydantic import BaseModel, ConfigDict, Field

from backend.academy.errors import ServiceError
from backend.storage import local as local_storage
from backend.storage.config import get_upload_max_bytes

from ..responses import fail, json_private, ok
from .security import csrf_guard


uploads_router = APIRouter(tags=["Uploads"])
logger = logging.getLogger("hope.storage")


class DeleteImage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_url: str = Field(default="", max_length=2048, alias="imageUrl")


@uploads_router.post("/api/upload")
async def upload_image(request: Request, file: UploadFile | None = File(default=None)):
    rejected = csrf_guard(request)
    if rejected is not None:
        return rejected
    if file is None:
        return fail("No file uploaded", "NO_FILE")
    limit = get_upload_max_bytes()
    # Read one byte past the limit so oversize files are detected without buffering them whole
    data = await file.read(limit + 1)
    try:
        stored = local_storage.save_image(file.filename or "image", file.content_type, data)
    except ServiceError as exc:
        logger.info("upload rejected code=%s", exc.code)
        return json_private(exc.to_payload(), status_code=exc.status_code)
    except OSError as exc:
        logger.error("upload write failed error=%s", exc.__class__.__name__)
        return fail("Failed to upload file", "UPLOAD_FAILED", status_code=500)
    finally:
        await file.close()
    return ok(
        {"url": stored.url, "filename": stored.filename, "size": stored.size, "type": stored.content_type},
        status_code=201,
        message="File uploaded successfully",
    )


@uploads_router.post("/api/delete-image")
async def delete_image(request: Request, payload: DeleteImage):
    rejected = csrf_guard(request)
    if rejected is not None:
        return rejected
    try:
        deleted = local_storage.delete_image(payload.image_url)
    except ServiceError as exc:
        logger.warning("delete-image rejected code=%s", exc.code)
        return json_private(exc.to_payload(), status_code=exc.status_code)
    except OSError as exc:
        logger.error("delete-image failed error=%s", exc.__class__.__name__)
        return fail("Failed to delete image", "DELETE_FAILED", status_code=500)
    message = "Image deleted successfully" if deleted else "Image not found"
    return ok({"deleted": deleted}, message=message)
