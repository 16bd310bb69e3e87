from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

import httpx
from fastapi import APIRouter, HTTPException, status

from habit_api.core.admin import AdminDep
from habit_api.core.config import settings
from habit_api.core.deps import HttpDep, SupabaseDep
from habit_api.core.rate_limit import provision_limiter
from habit_api.core.security import AuthContext, AuthDep
from habit_api.schemas.users import (
    CreatedUserResponse,
    CreateUserRequest,
    ProfileOut,
    RoleResponse,
    UpdatedUserResponse,
    UpdateUserRequest,
)
from habit_api.services.supabase_auth import create_auth_user, delete_auth_user
from habit_api.services.supabase_rest import SupabaseRest

logger = logging.getLogger(__name__)

router = APIRouter()

PROFILE_FIELDS = "id,name,email,role,status,photo_url,created_at"


def _validate_user_id(user_id: str) -> str:
    try:
        return str(uuid.UUID(user_id))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid user ID"
        )


async def _select_profile(sb: SupabaseRest, **filters: str) -> dict | None:
    rows = await sb.select(
        "profiles",
        bearer_token=settings.supabase_service_role_key,
        params={
            "select": PROFILE_FIELDS,
            **{k: f"eq.{v}" for k, v in filters.items()},
            "limit": 1,
        },
    )
    return dict(rows[0]) if rows else None


async def _provision_user(
    body: CreateUserRequest,
    *,
    role: str,
    admin: AuthContext,
    sb: SupabaseRest,
    http: httpx.AsyncClient,
) -> str:
    await provision_limiter.hit(
        f"admin:{admin.user_id}", limit=settings.provision_rate_limit_per_minute
    )
    email = body.email.strip().lower()
    if await _select_profile(sb, email=email) is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User exists")

    user_id = await create_auth_user(
        http=http,
        email=email,
        password=body.password,
        user_metadata={"name": body.name},
    )
    try:
        await sb.insert_one(
            "profiles",
            bearer_token=settings.supabase_service_role_key,
            row={
                "id": user_id,
                "name": body.name,
                "email": email,
                "role": role,
                "photo_url": body.photo_url,
                "created_at": datetime.now(timezone.utc).isoformat(),
            },
        )
    except Exception:
        # An auth user without a profile blocks every retry with "email exists".
        logger.warning("Profile insert failed; removing auth user %s", user_id)
        await delete_auth_user(http=http, user_id=user_id)
        raise
    logger.info("Provisioned %s account %s", role, user_id)
    return user_id


@router.get("/users/me", response_model=ProfileOut)
async def get_me(auth: AuthDep, sb: SupabaseDep) -> ProfileOut:
    profile = await _select_profile(sb, id=auth.user_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return ProfileOut.model_validate(profile)


@router.get("/users/role", response_model=RoleResponse)
async def get_my_role(auth: AuthDep, sb: SupabaseDep) -> RoleResponse:
    profile = await _select_profile(sb, id=auth.user_id)
    role = profile.get("role") if profile else None
    return RoleResponse(role=role if isinstance(role, str) and role else "user")


@router.post(
    "/users",
    response_model=CreatedUserResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_user(
    body: CreateUserRequest, admin: AdminDep, sb: SupabaseDep, http: HttpDep
) -> CreatedUserResponse:
    user_id = await _provision_user(
        body, role=body.role, admin=admin, sb=sb, http=http
    )
    return CreatedUserResponse(message="User created", inserted_id=user_id)


@router.post(
    "/users/admin",
    response_model=CreatedUserResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_admin(
    body: CreateUserRequest, admin: AdminDep, sb: SupabaseDep, http: HttpDep
) -> CreatedUserResponse:
    user_id = await _provision_user(
        body, role="admin", admin=admin, sb=sb, http=http
    )
    return CreatedUserResponse(message="Admin created", inserted_id=user_id)


@router.get("/users", response_model=list[ProfileOut])
async def list_users(_: AdminDep, sb: SupabaseDep) -> list[ProfileOut]:
    rows = await sb.select(
        "profiles",
        bearer_token=settings.supabase_service_role_key,
        params={"select": PROFILE_FIELDS, "order": "created_at.desc"},
    )
    return [ProfileOut.model_validate(r) for r in rows]


@router.patch("/users/{user_id}", response_model=UpdatedUserResponse)
async def update_user(
    user_id: str, body: UpdateUserRequest, _: AdminDep, sb: SupabaseDep
) -> UpdatedUserResponse:
    user_id = _validate_user_id(user_id)
    changes = body.changes()
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update"
        )
    rows = await sb.patch(
        "profiles",
        bearer_token=settings.supabase_service_role_key,
        params={"id": f"eq.{user_id}", "select": PROFILE_FIELDS},
        payload=changes,
    )
    if not rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UpdatedUserResponse(
        message="User updated", updated_user=ProfileOut.model_validate(rows[0])
    )


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: str, _: AdminDep, sb: SupabaseDep, http: HttpDep
) -> dict:
    user_id = _validate_user_id(user_id)
    await sb.delete(
        "profiles",
        bearer_token=settings.supabase_service_role_key,
        params={"id": f"eq.{user_id}"},
    )
    await delete_auth_user(http=http, user_id=user_id)
    return {"message": "User deleted"}
