from __future__ import annotations

import logging
import time
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from habit_api.core.config import settings
from habit_api.services.supabase_rest import SupabaseRestError, raise_for_supabase_error

logger = logging.getLogger(__name__)

_USER_CACHE: dict[str, tuple[float, dict[str, Any]]] = {}
_CACHE_TTL_SECONDS = 30.0
_CACHE_MAX_ENTRIES = 2048

_RETRYABLE_STATUSES = {408, 425, 429, 500, 502, 503, 504}
_MAX_ATTEMPTS = 3


def _cache_get(token: str) -> dict[str, Any] | None:
    entry = _USER_CACHE.get(token)
    if not entry:
        return None
    expires_at, user = entry
    if expires_at <= time.time():
        _USER_CACHE.pop(token, None)
        return None
    return user


def _cache_set(token: str, user: dict[str, Any]) -> None:
    # Avoid unbounded growth.
    if len(_USER_CACHE) >= _CACHE_MAX_ENTRIES:
        _USER_CACHE.clear()
    _USER_CACHE[token] = (time.time() + _CACHE_TTL_SECONDS, user)


def clear_user_cache() -> None:
    _USER_CACHE.clear()


def _is_retryable_exception(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in _RETRYABLE_STATUSES
    if isinstance(exc, SupabaseRestError):
        return exc.status_code in _RETRYABLE_STATUSES
    return False


def _before_sleep_log(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Supabase Auth request retrying after %s (attempt %s)",
        type(exc).__name__ if exc else "unknown error",
        retry_state.attempt_number,
    )


def _retrying() -> AsyncRetrying:
    return AsyncRetrying(
        retry=retry_if_exception(_is_retryable_exception),
        stop=stop_after_attempt(_MAX_ATTEMPTS),
        wait=wait_exponential_jitter(initial=0.2, max=2.0),
        before_sleep=_before_sleep_log,
        reraise=True,
    )


def _auth_url(path: str) -> str:
    return str(settings.supabase_url).rstrip("/") + "/auth/v1" + path


def _service_headers() -> dict[str, str]:
    return {
        "apikey": settings.supabase_service_role_key,
        "authorization": f"Bearer {settings.supabase_service_role_key}",
        "accept": "application/json",
    }


async def get_current_user(
    *, http: httpx.AsyncClient, access_token: str, use_cache: bool = True
) -> dict[str, Any]:
    """
    Fetches the user behind an access token from Supabase Auth.

    Token verification is delegated entirely to the identity provider; an
    invalid or expired token surfaces as ``httpx.HTTPStatusError``.
    """
    if use_cache:
        cached = _cache_get(access_token)
        if cached is not None:
            return cached

    headers = {
        "apikey": settings.supabase_anon_key,
        "authorization": f"Bearer {access_token}",
        "accept": "application/json",
    }
    async for attempt in _retrying():
        with attempt:
            resp = await http.get(_auth_url("/user"), headers=headers)
            resp.raise_for_status()
    data = resp.json()
    if not isinstance(data, dict):
        raise ValueError("Unexpected Supabase user response")

    email = data.get("email")
    if use_cache and isinstance(email, str) and email.strip():
        _cache_set(access_token, data)

    return data


async def create_auth_user(
    *,
    http: httpx.AsyncClient,
    email: str,
    password: str,
    user_metadata: dict[str, Any] | None = None,
) -> str:
    """Provision a confirmed email/password user; returns the new user id.

    Password hashing and storage stay with Supabase Auth.
    """
    body = {
        "email": email,
        "password": password,
        "email_confirm": True,
        "user_metadata": user_metadata or {},
    }
    async for attempt in _retrying():
        with attempt:
            resp = await http.post(
                _auth_url("/admin/users"), headers=_service_headers(), json=body
            )
            raise_for_supabase_error(resp)
    data = resp.json()
    user_id = data.get("id") if isinstance(data, dict) else None
    if not isinstance(user_id, str) or not user_id:
        raise ValueError("Unexpected Supabase admin user response")
    return user_id


async def delete_auth_user(*, http: httpx.AsyncClient, user_id: str) -> None:
    async for attempt in _retrying():
        with attempt:
            resp = await http.delete(
                _auth_url(f"/admin/users/{user_id}"), headers=_service_headers()
            )
            if resp.status_code == 404:
                logger.info("Auth user %s already absent", user_id)
                return
            raise_for_supabase_error(resp)
