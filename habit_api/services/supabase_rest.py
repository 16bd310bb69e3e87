from __future__ import annotations

from typing import Any

import httpx


class SupabaseRestError(Exception):
    def __init__(
        self,
        *,
        status_code: int,
        message: str,
        code: str | None = None,
        hint: str | None = None,
        details: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.hint = hint
        self.details = details


def build_http_client(timeout_seconds: float = 30.0) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))


def raise_for_supabase_error(resp: httpx.Response) -> None:
    """Raise SupabaseRestError for a 4xx/5xx response from any Supabase API."""
    if resp.status_code < 400:
        return

    code: str | None = None
    message: str | None = None
    hint: str | None = None
    details: Any | None = None

    try:
        payload = resp.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        raw_code = payload.get("code") or payload.get("error_code")
        code = str(raw_code) if isinstance(raw_code, (str, int)) else None
        for key in ("message", "msg", "error_description", "error"):
            if isinstance(payload.get(key), str):
                message = payload[key]
                break
        hint = payload.get("hint") if isinstance(payload.get("hint"), str) else None
        details = payload.get("details")
    elif isinstance(payload, str):
        message = payload

    if not message:
        message = resp.text.strip() or None

    raise SupabaseRestError(
        status_code=resp.status_code,
        code=code,
        message=message or f"Supabase request failed ({resp.status_code})",
        hint=hint,
        details=details,
    )


class SupabaseRest:
    """Thin async client for the PostgREST endpoint of a Supabase project.

    The HTTP client is owned by the caller (the app lifespan), so instances are
    cheap and can be built per request.
    """

    def __init__(self, supabase_url: str, api_key: str, *, http: httpx.AsyncClient):
        self._rest_base = supabase_url.rstrip("/") + "/rest/v1"
        self._api_key = api_key
        self._http = http

    def _headers(
        self, bearer_token: str, *, prefer: str | None = None
    ) -> dict[str, str]:
        h = {
            "apikey": self._api_key,
            "authorization": f"Bearer {bearer_token}",
            "accept": "application/json",
        }
        if prefer:
            h["prefer"] = prefer
        return h

    def _raise_for_error(self, resp: httpx.Response) -> None:
        raise_for_supabase_error(resp)

    async def select(
        self,
        table: str,
        *,
        bearer_token: str,
        params: dict[str, Any],
    ) -> list[dict[str, Any]]:
        url = f"{self._rest_base}/{table}"
        resp = await self._http.get(
            url, headers=self._headers(bearer_token), params=params
        )
        self._raise_for_error(resp)
        data = resp.json()
        if isinstance(data, list):
            return data
        return [data]

    async def insert_one(
        self,
        table: str,
        *,
        bearer_token: str,
        row: dict[str, Any],
    ) -> dict[str, Any]:
        url = f"{self._rest_base}/{table}"
        headers = self._headers(bearer_token, prefer="return=representation")
        resp = await self._http.post(url, headers=headers, json=row)
        self._raise_for_error(resp)
        data = resp.json()
        if isinstance(data, list):
            return data[0] if data else {}
        return data

    async def patch(
        self,
        table: str,
        *,
        bearer_token: str,
        params: dict[str, Any],
        payload: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Update every row matching ``params``; returns the updated rows."""
        url = f"{self._rest_base}/{table}"
        headers = self._headers(bearer_token, prefer="return=representation")
        resp = await self._http.patch(url, headers=headers, params=params, json=payload)
        self._raise_for_error(resp)
        data = resp.json()
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            return [data]
        return []

    async def delete(
        self,
        table: str,
        *,
        bearer_token: str,
        params: dict[str, Any],
    ) -> None:
        url = f"{self._rest_base}/{table}"
        resp = await self._http.delete(
            url, headers=self._headers(bearer_token), params=params
        )
        self._raise_for_error(resp)

    async def rpc(
        self,
        fn_name: str,
        *,
        bearer_token: str,
        params: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        url = f"{self._rest_base}/rpc/{fn_name}"
        resp = await self._http.post(
            url, headers=self._headers(bearer_token), json=params or {}
        )
        self._raise_for_error(resp)
        data = resp.json()
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            return [data]
        return []
