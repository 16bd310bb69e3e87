from __future__ import annotations

from datetime import date as Date
from datetime import datetime, timezone
from typing import Any

from fastapi import status

from habit_api.services.supabase_rest import SupabaseRest, SupabaseRestError

HABITS_TABLE = "habits"
APPEND_COMPLETION_FN = "append_habit_completion"
HABIT_FIELDS = (
    "id,title,description,category,reminder_time,image_url,"
    "user_email,user_name,public,completion_history,created_at"
)


def _normalize(row: dict[str, Any]) -> dict[str, Any]:
    out = dict(row)
    if not isinstance(out.get("completion_history"), list):
        out["completion_history"] = []
    return out


class HabitStore:
    """Habit persistence over the ``habits`` table."""

    def __init__(self, sb: SupabaseRest, *, bearer_token: str):
        self._sb = sb
        self._token = bearer_token

    async def get(self, habit_id: str) -> dict[str, Any] | None:
        rows = await self._sb.select(
            HABITS_TABLE,
            bearer_token=self._token,
            params={"select": HABIT_FIELDS, "id": f"eq.{habit_id}", "limit": 1},
        )
        if not rows:
            return None
        return _normalize(rows[0])

    async def list_habits(
        self,
        *,
        user_email: str | None = None,
        public_only: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "select": HABIT_FIELDS,
            "order": "created_at.desc",
        }
        # Owner emails are stored lowercased.
        owner = (user_email or "").strip().lower()
        if owner:
            params["user_email"] = f"eq.{owner}"
        if public_only:
            params["public"] = "eq.true"
        if limit:
            params["limit"] = limit
        rows = await self._sb.select(
            HABITS_TABLE, bearer_token=self._token, params=params
        )
        return [_normalize(r) for r in rows]

    async def create(self, fields: dict[str, Any], *, owner_email: str) -> dict[str, Any]:
        row = {
            **fields,
            "user_email": owner_email,
            "completion_history": [],
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        inserted = await self._sb.insert_one(
            HABITS_TABLE, bearer_token=self._token, row=row
        )
        if not inserted.get("id"):
            raise SupabaseRestError(
                status_code=status.HTTP_502_BAD_GATEWAY,
                message="Insert into habits returned no row.",
                hint="Check that the insert is allowed to return its representation.",
            )
        return _normalize(inserted)

    async def update(
        self, habit_id: str, fields: dict[str, Any]
    ) -> dict[str, Any] | None:
        rows = await self._sb.patch(
            HABITS_TABLE,
            bearer_token=self._token,
            params={"id": f"eq.{habit_id}"},
            payload=fields,
        )
        if not rows:
            return None
        return _normalize(rows[0])

    async def delete(self, habit_id: str) -> None:
        await self._sb.delete(
            HABITS_TABLE, bearer_token=self._token, params={"id": f"eq.{habit_id}"}
        )

    async def append_completion(
        self, habit_id: str, *, day: Date
    ) -> dict[str, Any] | None:
        """Append ``day`` to the stored history unless it is already there.

        ``append_habit_completion`` does ``array_append`` inside a single
        UPDATE guarded by ``not (p_day = any(completion_history))``, so the
        history is never rewritten from a stale read and a day is written at
        most once. Returns None when nothing was written.
        """
        rows = await self._sb.rpc(
            APPEND_COMPLETION_FN,
            bearer_token=self._token,
            params={"p_habit_id": habit_id, "p_day": day.isoformat()},
        )
        if not rows:
            return None
        return _normalize(rows[0])
