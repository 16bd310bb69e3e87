from __future__ import annotations

from datetime import date as Date
from typing import Annotated

import httpx
from fastapi import Depends, Request

from habit_api.core.config import settings
from habit_api.services.habit_store import HabitStore
from habit_api.services.streaks import utc_today
from habit_api.services.supabase_rest import SupabaseRest


def get_http(request: Request) -> httpx.AsyncClient:
    return request.app.state.http


def get_supabase(
    http: Annotated[httpx.AsyncClient, Depends(get_http)],
) -> SupabaseRest:
    return SupabaseRest(
        str(settings.supabase_url), settings.supabase_service_role_key, http=http
    )


def get_habit_store(sb: Annotated[SupabaseRest, Depends(get_supabase)]) -> HabitStore:
    return HabitStore(sb, bearer_token=settings.supabase_service_role_key)


def get_today() -> Date:
    return utc_today()


HttpDep = Annotated[httpx.AsyncClient, Depends(get_http)]
SupabaseDep = Annotated[SupabaseRest, Depends(get_supabase)]
HabitStoreDep = Annotated[HabitStore, Depends(get_habit_store)]
TodayDep = Annotated[Date, Depends(get_today)]
