from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import APIRouter, HTTPException, Query, status

from habit_api.core.config import settings
from habit_api.core.deps import HabitStoreDep, TodayDep
from habit_api.core.security import AuthContext, AuthDep
from habit_api.schemas.habits import (
    CompleteHabitResponse,
    HabitCreate,
    HabitMutationResponse,
    HabitOut,
    HabitUpdate,
)
from habit_api.services.habit_store import HabitStore
from habit_api.services.streaks import compute_streak, record_completion

logger = logging.getLogger(__name__)

router = APIRouter()


def _with_streak(row: dict[str, Any]) -> HabitOut:
    # currentStreak is derived on every read and never persisted.
    return HabitOut.model_validate(
        {**row, "current_streak": compute_streak(row.get("completion_history"))}
    )


def _validate_habit_id(habit_id: str) -> str:
    try:
        return str(uuid.UUID(habit_id))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid habit ID"
        )


async def _load_habit(store: HabitStore, habit_id: str) -> dict[str, Any]:
    habit = await store.get(habit_id)
    if habit is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Habit not found"
        )
    return habit


async def _load_owned_habit(
    store: HabitStore, habit_id: str, auth: AuthContext
) -> dict[str, Any]:
    habit = await _load_habit(store, habit_id)
    owner = habit.get("user_email")
    if not auth.email or not isinstance(owner, str) or owner.lower() != auth.email:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return habit


@router.post("/habits", response_model=HabitMutationResponse)
async def create_habit(
    body: HabitCreate, auth: AuthDep, store: HabitStoreDep
) -> HabitMutationResponse:
    if not auth.email:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="An email address is required to own habits",
        )
    row = await store.create(body.model_dump(), owner_email=auth.email)
    return HabitMutationResponse(
        success=True, message="Habit added", habit=_with_streak(row)
    )


@router.get("/habits", response_model=list[HabitOut])
async def list_habits(
    store: HabitStoreDep,
    user_email: str | None = Query(default=None, alias="userEmail"),
    featured: bool = False,
) -> list[HabitOut]:
    rows = await store.list_habits(
        user_email=user_email,
        public_only=featured,
        limit=settings.featured_habits_limit if featured else None,
    )
    return [_with_streak(r) for r in rows]


@router.get("/habits/public", response_model=list[HabitOut])
async def list_public_habits(store: HabitStoreDep) -> list[HabitOut]:
    rows = await store.list_habits(public_only=True)
    return [_with_streak(r) for r in rows]


@router.get("/habits/{habit_id}", response_model=HabitOut)
async def get_habit(habit_id: str, store: HabitStoreDep) -> HabitOut:
    habit = await _load_habit(store, _validate_habit_id(habit_id))
    return _with_streak(habit)


@router.patch("/habits/{habit_id}", response_model=HabitMutationResponse)
async def update_habit(
    habit_id: str, body: HabitUpdate, auth: AuthDep, store: HabitStoreDep
) -> HabitMutationResponse:
    habit_id = _validate_habit_id(habit_id)
    changes = body.changes()
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update"
        )
    await _load_owned_habit(store, habit_id, auth)

    updated = await store.update(habit_id, changes)
    if updated is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Habit not found"
        )
    return HabitMutationResponse(
        success=True, message="Habit updated", habit=_with_streak(updated)
    )


@router.delete("/habits/{habit_id}", response_model=HabitMutationResponse)
async def delete_habit(
    habit_id: str, auth: AuthDep, store: HabitStoreDep
) -> HabitMutationResponse:
    habit_id = _validate_habit_id(habit_id)
    await _load_owned_habit(store, habit_id, auth)
    await store.delete(habit_id)
    return HabitMutationResponse(success=True, message="Habit deleted")


@router.patch("/habits/{habit_id}/complete", response_model=CompleteHabitResponse)
async def complete_habit(
    habit_id: str, auth: AuthDep, store: HabitStoreDep, today: TodayDep
) -> CompleteHabitResponse:
    habit_id = _validate_habit_id(habit_id)
    habit = await _load_owned_habit(store, habit_id, auth)

    result = record_completion(habit["completion_history"], today)
    if not result.accepted:
        return CompleteHabitResponse(
            success=False,
            message="Already completed today",
            current_streak=result.streak,
        )

    updated = await store.append_completion(habit_id, day=today)
    if updated is None:
        # Lost the race to a concurrent completion (or the habit was deleted).
        logger.info("Completion for habit %s on %s already recorded", habit_id, today)
        current = await _load_habit(store, habit_id)
        return CompleteHabitResponse(
            success=False,
            message="Already completed today",
            current_streak=compute_streak(current["completion_history"]),
        )

    streak = compute_streak(updated["completion_history"])
    logger.info("Habit %s marked complete on %s (streak=%s)", habit_id, today, streak)
    return CompleteHabitResponse(
        success=True,
        message="Marked complete",
        current_streak=streak,
        habit=_with_streak(updated),
    )
