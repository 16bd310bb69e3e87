from __future__ import annotations

import base64
import json
import os
from typing import Any
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

# Ensure CI can import app settings without a local .env file.
_ENV_DEFAULTS = {
    "APP_ENV": "test",
    "FRONTEND_URL": "http://localhost:5173",
    "SUPABASE_URL": "https://example.supabase.co",
    "SUPABASE_ANON_KEY": "test-anon-key",
    "SUPABASE_SERVICE_ROLE_KEY": "test-service-role-key",
}
for _key, _value in _ENV_DEFAULTS.items():
    os.environ.setdefault(_key, _value)

from habit_api.core.rate_limit import reset_limiters
from habit_api.core.deps import get_today
from habit_api.core.security import AuthContext, verify_token
from habit_api.main import app
from habit_api.services.supabase_auth import clear_user_cache
from habit_api.services.supabase_rest import SupabaseRest

from tests.factories import TEST_EMAIL, TEST_TODAY, TEST_USER_ID


def _base64url_json(value: dict[str, Any]) -> str:
    encoded = json.dumps(value, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64.urlsafe_b64encode(encoded).decode("utf-8").rstrip("=")


def build_fake_jwt(*, user_id: str = TEST_USER_ID, email: str = TEST_EMAIL) -> str:
    header = _base64url_json({"alg": "HS256", "typ": "JWT"})
    payload = _base64url_json(
        {
            "sub": user_id,
            "email": email,
            "role": "authenticated",
            "aud": "authenticated",
        }
    )
    signature = "signature-for-tests"
    return f"{header}.{payload}.{signature}"


@pytest.fixture(autouse=True)
def reset_test_state() -> None:
    app.dependency_overrides.clear()
    reset_limiters()
    clear_user_cache()


@pytest.fixture
def client() -> TestClient:
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def fake_jwt_token() -> str:
    return build_fake_jwt()


@pytest.fixture
def auth_headers(fake_jwt_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {fake_jwt_token}"}


@pytest.fixture
def fake_auth_context(fake_jwt_token: str) -> AuthContext:
    return AuthContext(
        user_id=TEST_USER_ID,
        email=TEST_EMAIL,
        access_token=fake_jwt_token,
    )


@pytest.fixture
def authenticated_client(client: TestClient, fake_auth_context: AuthContext) -> TestClient:
    async def _override_verify_token() -> AuthContext:
        return fake_auth_context

    app.dependency_overrides[verify_token] = _override_verify_token
    app.dependency_overrides[get_today] = lambda: TEST_TODAY
    return client


@pytest.fixture
def supabase_mock(monkeypatch: pytest.MonkeyPatch) -> dict[str, AsyncMock]:
    mocks = {
        "select": AsyncMock(return_value=[]),
        "insert_one": AsyncMock(return_value={}),
        "patch": AsyncMock(return_value=[]),
        "delete": AsyncMock(return_value=None),
        "rpc": AsyncMock(return_value=[]),
    }

    async def _select(self: SupabaseRest, table: str, *, bearer_token: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        return await mocks["select"](table=table, bearer_token=bearer_token, params=params)

    async def _insert_one(
        self: SupabaseRest,
        table: str,
        *,
        bearer_token: str,
        row: dict[str, Any],
    ) -> dict[str, Any]:
        return await mocks["insert_one"](table=table, bearer_token=bearer_token, row=row)

    async def _patch(
        self: SupabaseRest,
        table: str,
        *,
        bearer_token: str,
        params: dict[str, Any],
        payload: dict[str, Any],
    ) -> list[dict[str, Any]]:
        return await mocks["patch"](
            table=table, bearer_token=bearer_token, params=params, payload=payload
        )

    async def _delete(self: SupabaseRest, table: str, *, bearer_token: str, params: dict[str, Any]) -> None:
        await mocks["delete"](table=table, bearer_token=bearer_token, params=params)

    async def _rpc(
        self: SupabaseRest,
        fn_name: str,
        *,
        bearer_token: str,
        params: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        return await mocks["rpc"](fn_name=fn_name, bearer_token=bearer_token, params=params)

    monkeypatch.setattr(SupabaseRest, "select", _select)
    monkeypatch.setattr(SupabaseRest, "insert_one", _insert_one)
    monkeypatch.setattr(SupabaseRest, "patch", _patch)
    monkeypatch.setattr(SupabaseRest, "delete", _delete)
    monkeypatch.setattr(SupabaseRest, "rpc", _rpc)
    return mocks
