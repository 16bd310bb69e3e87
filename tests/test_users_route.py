from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

import habit_api.routes.users as users_route
from habit_api.core.config import settings
from habit_api.services.supabase_rest import SupabaseRestError
from tests.factories import TEST_USER_ID, profile_row

NEW_USER_ID = "00000000-0000-4000-8000-000000000042"


@pytest.fixture
def auth_admin_mock(monkeypatch: pytest.MonkeyPatch) -> dict[str, AsyncMock]:
    mocks = {
        "create": AsyncMock(return_value=NEW_USER_ID),
        "delete": AsyncMock(return_value=None),
    }
    monkeypatch.setattr(users_route, "create_auth_user", mocks["create"])
    monkeypatch.setattr(users_route, "delete_auth_user", mocks["delete"])
    return mocks


def _as_role(supabase_mock, role: str, *, existing: list[dict] | None = None) -> None:
    """Caller profile lookups return ``role``; email lookups return ``existing``."""

    async def _select(*, table, params, **kwargs):
        if table != "profiles":
            return []
        if params.get("id") == f"eq.{TEST_USER_ID}":
            return [profile_row(role=role)]
        if "email" in params:
            return existing or []
        return [profile_row(role=role), profile_row(user_id=NEW_USER_ID)]

    supabase_mock["select"].side_effect = _select


def _new_user_payload(**overrides) -> dict:
    payload = {
        "name": "New Person",
        "email": "New.Person@habits.test",
        "password": "s3cret-pass",
        "photoURL": "https://img.habits.test/p.png",
    }
    payload.update(overrides)
    return payload


def test_get_me_returns_profile(authenticated_client: TestClient, supabase_mock) -> None:
    _as_role(supabase_mock, "user")

    response = authenticated_client.get("/users/me")

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == TEST_USER_ID
    assert "password" not in body
    assert "photoURL" in body


def test_get_me_not_found(authenticated_client: TestClient, supabase_mock) -> None:
    supabase_mock["select"].return_value = []
    response = authenticated_client.get("/users/me")
    assert response.status_code == 404


def test_get_role_defaults_to_user(authenticated_client: TestClient, supabase_mock) -> None:
    supabase_mock["select"].return_value = []
    response = authenticated_client.get("/users/role")
    assert response.status_code == 200
    assert response.json() == {"role": "user"}


def test_get_role_reports_admin(authenticated_client: TestClient, supabase_mock) -> None:
    _as_role(supabase_mock, "admin")
    response = authenticated_client.get("/users/role")
    assert response.json() == {"role": "admin"}


def test_admin_routes_forbidden_for_regular_user(
    authenticated_client: TestClient, supabase_mock, auth_admin_mock
) -> None:
    _as_role(supabase_mock, "user")

    assert authenticated_client.get("/users").status_code == 403
    assert (
        authenticated_client.post("/users", json=_new_user_payload()).status_code == 403
    )
    assert auth_admin_mock["create"].await_count == 0


def test_admin_routes_require_auth(client: TestClient) -> None:
    assert client.get("/users").status_code == 401


def test_create_user_provisions_auth_user_and_profile(
    authenticated_client: TestClient, supabase_mock, auth_admin_mock
) -> None:
    _as_role(supabase_mock, "admin")

    response = authenticated_client.post("/users", json=_new_user_payload())

    assert response.status_code == 201
    assert response.json() == {"message": "User created", "insertedId": NEW_USER_ID}

    create_call = auth_admin_mock["create"].await_args.kwargs
    assert create_call["email"] == "new.person@habits.test"
    assert create_call["password"] == "s3cret-pass"

    row = supabase_mock["insert_one"].await_args.kwargs["row"]
    assert supabase_mock["insert_one"].await_args.kwargs["table"] == "profiles"
    assert row["id"] == NEW_USER_ID
    assert row["role"] == "user"
    assert row["photo_url"] == "https://img.habits.test/p.png"
    assert "password" not in row


def test_create_user_rejects_existing_email(
    authenticated_client: TestClient, supabase_mock, auth_admin_mock
) -> None:
    _as_role(supabase_mock, "admin", existing=[profile_row(user_id=NEW_USER_ID)])

    response = authenticated_client.post("/users", json=_new_user_payload())

    assert response.status_code == 400
    assert response.json()["detail"] == "User exists"
    assert auth_admin_mock["create"].await_count == 0
    assert supabase_mock["insert_one"].await_count == 0


def test_create_admin_forces_admin_role(
    authenticated_client: TestClient, supabase_mock, auth_admin_mock
) -> None:
    _as_role(supabase_mock, "admin")

    response = authenticated_client.post(
        "/users/admin", json=_new_user_payload(role="user")
    )

    assert response.status_code == 201
    assert response.json()["message"] == "Admin created"
    assert supabase_mock["insert_one"].await_args.kwargs["row"]["role"] == "admin"


def test_create_user_removes_auth_user_when_profile_insert_fails(
    authenticated_client: TestClient, supabase_mock, auth_admin_mock
) -> None:
    _as_role(supabase_mock, "admin")

    async def _insert(*, table, row, **kwargs):
        if table == "profiles":
            raise SupabaseRestError(status_code=500, message="insert failed")
        return {}

    supabase_mock["insert_one"].side_effect = _insert

    response = authenticated_client.post("/users", json=_new_user_payload())

    assert response.status_code == 502
    assert auth_admin_mock["create"].await_count == 1
    auth_admin_mock["delete"].assert_awaited_once()
    assert auth_admin_mock["delete"].await_args.kwargs["user_id"] == NEW_USER_ID


def test_provisioning_is_rate_limited_per_admin(
    authenticated_client: TestClient,
    supabase_mock,
    auth_admin_mock,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _as_role(supabase_mock, "admin")
    monkeypatch.setattr(settings, "provision_rate_limit_per_minute", 2)

    statuses = [
        authenticated_client.post("/users", json=_new_user_payload()).status_code
        for _ in range(3)
    ]

    assert statuses == [201, 201, 429]
    assert auth_admin_mock["create"].await_count == 2
    # Listing users is not throttled by the provisioning scope.
    assert authenticated_client.get("/users").status_code == 200


def test_list_users(authenticated_client: TestClient, supabase_mock) -> None:
    _as_role(supabase_mock, "admin")

    response = authenticated_client.get("/users")

    assert response.status_code == 200
    assert [u["id"] for u in response.json()] == [TEST_USER_ID, NEW_USER_ID]


def test_update_user(authenticated_client: TestClient, supabase_mock) -> None:
    _as_role(supabase_mock, "admin")
    supabase_mock["patch"].return_value = [
        {**profile_row(user_id=NEW_USER_ID), "status": "blocked"}
    ]

    response = authenticated_client.patch(
        f"/users/{NEW_USER_ID}", json={"status": "blocked"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "User updated"
    assert body["updatedUser"]["status"] == "blocked"
    assert supabase_mock["patch"].await_args.kwargs["payload"] == {"status": "blocked"}


def test_update_user_invalid_id(authenticated_client: TestClient, supabase_mock) -> None:
    _as_role(supabase_mock, "admin")
    response = authenticated_client.patch("/users/abc", json={"role": "admin"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid user ID"


def test_update_user_not_found(authenticated_client: TestClient, supabase_mock) -> None:
    _as_role(supabase_mock, "admin")
    supabase_mock["patch"].return_value = []
    response = authenticated_client.patch(
        f"/users/{NEW_USER_ID}", json={"role": "admin"}
    )
    assert response.status_code == 404


def test_delete_user_removes_profile_and_auth_user(
    authenticated_client: TestClient, supabase_mock, auth_admin_mock
) -> None:
    _as_role(supabase_mock, "admin")

    response = authenticated_client.delete(f"/users/{NEW_USER_ID}")

    assert response.status_code == 200
    assert response.json() == {"message": "User deleted"}
    assert supabase_mock["delete"].await_args.kwargs["params"] == {
        "id": f"eq.{NEW_USER_ID}"
    }
    assert auth_admin_mock["delete"].await_args.kwargs["user_id"] == NEW_USER_ID
