from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from habit_api.core.config import settings
from habit_api.core.rate_limit import auth_limiter
from habit_api.services.supabase_auth import get_current_user


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    email: str | None
    access_token: str


def _get_bearer_token(request: Request) -> str:
    auth = request.headers.get("authorization") or ""
    if not auth.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized access"
        )
    token = auth.split(" ", 1)[1].strip()
    if (not token) or (" " in token) or (len(token) < 20):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized access"
        )
    return token


async def get_auth_context(request: Request) -> AuthContext:
    token = _get_bearer_token(request)
    limit = settings.auth_rate_limit_per_minute

    # Pre-auth IP throttling to avoid flooding Supabase Auth.
    ip = request.client.host if request.client else "unknown"
    await auth_limiter.hit(f"ip:{ip}", limit=limit)

    # Delegate verification to the identity provider.
    try:
        user = await get_current_user(
            http=request.app.state.http, access_token=token, use_cache=True
        )
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token"
        )

    user_id = user.get("id")
    if not isinstance(user_id, str) or not user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token"
        )

    await auth_limiter.hit(f"user:{user_id}", limit=limit)

    email = user.get("email")
    return AuthContext(
        user_id=user_id,
        email=email.strip().lower() if isinstance(email, str) and email.strip() else None,
        access_token=token,
    )


async def verify_token(request: Request) -> AuthContext:
    return await get_auth_context(request)


AuthDep = Annotated[AuthContext, Depends(verify_token)]
