from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, HTTPException, status

from habit_api.core.config import settings
from habit_api.core.deps import SupabaseDep
from habit_api.core.security import AuthContext, verify_token


def require_role(role: str) -> Callable[..., Awaitable[AuthContext]]:
    async def _require_role(
        sb: SupabaseDep, auth: AuthContext = Depends(verify_token)
    ) -> AuthContext:
        rows = await sb.select(
            "profiles",
            bearer_token=settings.supabase_service_role_key,
            params={"select": "role", "id": f"eq.{auth.user_id}", "limit": 1},
        )
        if not rows or rows[0].get("role") != role:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return auth

    return _require_role


require_admin = require_role("admin")

AdminDep = Annotated[AuthContext, Depends(require_admin)]
