"""
Admin user management API: profiles, roles, soft deletion and restoration.

Why:
    Accounts are never hard-deleted from the back-office. A soft delete hides
    the profile, optionally schedules the permanent purge and keeps an audit
    trail; the CLI (`hope-admin purge-deletions`) performs the purge later.

Permissions:
    Caller must hold `service_role`. Admins cannot delete themselves or change
    their own role; the services enforce both.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field

from backend.academy import profiles, user_deletion

from ..responses import list_params, run_service
from ..sessions import current_user, revoke_sessions_for


admin_users_router = APIRouter(tags=["Admin users"])
logger = logging.getLogger("hope.web.admin")


def _admin_id(request: Request) -> str:
    return str((current_user(request) or {}).get("sub") or "")


class RoleChange(BaseModel):
    role: str


class SoftDelete(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reason: str = Field(default="", max_length=2000)
    schedule_days: int | None = Field(default=None, alias="scheduleDays")
    notify: bool = True


@admin_users_router.get("/api/admin/profiles")
async def list_profiles(request: Request):
    include_deleted = (request.query_params.get("includeDeleted") or "").lower() in ("1", "true", "yes")
    params = list_params(request)
    return run_service(request, lambda s: profiles.list_profiles(s, params, include_deleted=include_deleted))


@admin_users_router.get("/api/admin/profiles/{user_id}")
async def get_profile(request: Request, user_id: str):
    return run_service(request, lambda s: profiles.get_profile(s, user_id))


@admin_users_router.patch("/api/admin/profiles/{user_id}/role")
async def change_role(request: Request, user_id: str, payload: RoleChange):
    admin_id = _admin_id(request)
    response = run_service(request, lambda s: profiles.update_role(s, admin_id, user_id, payload.role))
    if response.status_code == 200:
        # The role is copied into the session at sign-in
        revoke_sessions_for(user_id)
    return response


@admin_users_router.get("/api/admin/users/deleted")
async def list_deleted_users(request: Request):
    """Soft-deleted users.

    Query:
        list parameters plus `deletedFrom` / `deletedTo` (ISO-8601) bounds.
    """
    q = request.query_params
    params = list_params(request, default_sort="deleted_at")
    return run_service(
        request,
        lambda s: user_deletion.list_deleted(s, params, q.get("deletedFrom") or None, q.get("deletedTo") or None),
    )


@admin_users_router.delete("/api/admin/users/{user_id}")
async def soft_delete_user(request: Request, user_id: str, payload: SoftDelete):
    """Soft delete a user.

    Behavior:
        - 200 with the deletion history row.
        - 403 `SELF_DELETION`, 409 `ALREADY_DELETED`, 400 on reason/schedule.
        - The user's open sessions end immediately.
    """
    admin_id = _admin_id(request)
    response = run_service(
        request,
        lambda s: user_deletion.soft_delete(
            s, admin_id, user_id, payload.reason, payload.schedule_days, notify=payload.notify
        ),
        message="User deleted",
    )
    if response.status_code == 200:
        revoke_sessions_for(user_id)
    return response


@admin_users_router.post("/api/admin/users/{user_id}/restore")
async def restore_user(request: Request, user_id: str):
    admin_id = _admin_id(request)
    return run_service(request, lambda s: user_deletion.restore(s, admin_id, user_id), message="User restored")


@admin_users_router.get("/api/admin/users/{user_id}/deletion-history")
async def deletion_history(request: Request, user_id: str):
    return run_service(request, lambda s: user_deletion.history_for_user(s, user_id))
